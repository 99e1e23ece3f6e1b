"""User profile routes."""

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from . import crud, schemas
from .auth import get_current_user
from .database import get_db
from .storage import UploadBatch

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=schemas.UserOut)
def read_me(current_user=Depends(get_current_user)):
    """
    Retrieve details of the currently authenticated user.

    Args:
        current_user (User): Authenticated user obtained from JWT token.

    Returns:
        UserOut: User profile information.
    """
    return current_user


@router.patch("/me", response_model=schemas.UserOut)
def update_me(
    changes: schemas.UserUpdate,
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update profile fields; artists may also change their stage profile."""
    return crud.update_profile(db, current_user, changes)


@router.put("/me/profile-picture", response_model=schemas.UserOut)
def update_profile_picture(
    file: UploadFile = File(...),
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Upload a JPEG or PNG profile picture."""
    with UploadBatch() as uploads:
        blob = uploads.save(file, "images")
        return crud.update_profile(
            db, current_user, schemas.UserUpdate(profile_picture_url=blob.url)
        )


@router.post("/me/verification-document", response_model=schemas.UserOut)
def upload_verification_document(
    file: UploadFile = File(...),
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Submit an identity document for verification.

    Artists go back to unverified until an admin reviews the document.

    Args:
        file (UploadFile): PDF, JPEG or PNG document.
        current_user (User): Authenticated user.
        db (Session): Database session.

    Returns:
        UserOut: Updated user profile.
    """
    with UploadBatch() as uploads:
        blob = uploads.save(file, "documents")
        return crud.set_verification_document(db, current_user, blob.url)
