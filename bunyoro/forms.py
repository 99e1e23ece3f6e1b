"""Public contact form and newsletter routes."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from . import crud, schemas
from .auth import rate_limiter
from .database import get_db

router = APIRouter(tags=["forms"], dependencies=[Depends(rate_limiter())])


@router.post(
    "/contact", response_model=schemas.MessageOut, status_code=status.HTTP_201_CREATED
)
def submit_contact(contact_in: schemas.ContactCreate, db: Session = Depends(get_db)):
    """Leave a message for the site administrators."""
    crud.submit_contact(db, contact_in)
    return schemas.MessageOut(message="Thank you for your message")


@router.post(
    "/newsletter/subscribe",
    response_model=schemas.SubscriptionOut,
    status_code=status.HTTP_201_CREATED,
)
def subscribe(request: schemas.EmailRequest, db: Session = Depends(get_db)):
    """
    Subscribe an email address to the newsletter.

    Addresses that unsubscribed earlier are subscribed again.

    Args:
        request (EmailRequest): Address to subscribe.
        db (Session): Database session.

    Returns:
        SubscriptionOut: The active subscription.
    """
    return crud.subscribe_newsletter(db, request.email)


@router.post("/newsletter/unsubscribe", response_model=schemas.SubscriptionOut)
def unsubscribe(request: schemas.EmailRequest, db: Session = Depends(get_db)):
    return crud.unsubscribe_newsletter(db, request.email)
