"""Administrator routes."""

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from . import crud, schemas
from .auth import require_roles
from .core import get_settings
from .database import get_db
from .mail import send_contact_reply
from .models import ContactStatus, UserRole

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)


@router.put("/artists/{artist_id}/verify", response_model=schemas.UserOut)
def verify_artist(artist_id: int, db: Session = Depends(get_db)):
    """Mark an artist as verified after reviewing their documents."""
    return crud.verify_artist(db, artist_id)


@router.delete("/artists/{artist_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_artist(artist_id: int, db: Session = Depends(get_db)):
    """Remove an artist's profile and catalog; the account stays as a listener."""
    crud.delete_artist(db, artist_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(user_id: int, db: Session = Depends(get_db)):
    crud.delete_user(db, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/genres", response_model=schemas.GenreOut, status_code=status.HTTP_201_CREATED
)
def create_genre(genre_in: schemas.GenreCreate, db: Session = Depends(get_db)):
    return crud.create_genre(db, genre_in)


@router.get("/contacts", response_model=List[schemas.ContactOut])
def list_contacts(
    status: Optional[ContactStatus] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    """
    Retrieve contact messages, newest first.

    Args:
        status (ContactStatus | None): Only messages in this state.
        skip (int): Number of records to skip.
        limit (int): Maximum number of records to return.
        db (Session): Database session.

    Returns:
        list[ContactOut]: Contact messages.
    """
    return crud.list_contacts(db, status=status, skip=skip, limit=limit)


@router.get("/contacts/{contact_id}", response_model=schemas.ContactOut)
def get_contact(contact_id: int, db: Session = Depends(get_db)):
    """Read a contact message; unread messages become ``read``."""
    return crud.get_contact(db, contact_id)


@router.post("/contacts/{contact_id}/reply", response_model=schemas.ContactOut)
def reply_contact(
    contact_id: int,
    reply: schemas.ContactReply,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Store a reply to a contact message and email it to the sender."""
    contact = crud.reply_contact(db, contact_id, reply.response)
    send_contact_reply(
        background_tasks, contact.email, contact.name, contact.subject, reply.response
    )
    return contact


@router.post("/maintenance/purge-history", response_model=schemas.PurgeResult)
def purge_history(
    retention_days: Optional[int] = None, db: Session = Depends(get_db)
):
    """Delete play and download logs older than the retention window."""
    days = (
        retention_days
        if retention_days is not None
        else get_settings().HISTORY_RETENTION_DAYS
    )
    return crud.purge_history(db, days)
