"""Artist directory and profile routes."""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from . import crud, schemas
from .core import get_settings
from .database import get_db

router = APIRouter(prefix="/artists", tags=["artists"])


@router.get("", response_model=List[schemas.ArtistSummary])
def list_artists(db: Session = Depends(get_db)):
    """Verified artists, those with the most tracks first."""
    return crud.list_artists(db, limit=get_settings().ARTISTS_LIMIT)


@router.get("/{artist_id}", response_model=schemas.ArtistProfile)
def get_artist(artist_id: int, db: Session = Depends(get_db)):
    """
    Retrieve an artist's profile with totals and recent work.

    Args:
        artist_id (int): Artist identifier.
        db (Session): Database session.

    Returns:
        ArtistProfile: Profile, counts, play and download totals, and
        previews of the latest tracks and videos.
    """
    return crud.get_artist_profile(db, artist_id)


@router.get("/{artist_id}/albums", response_model=List[schemas.AlbumOut])
def list_artist_albums(artist_id: int, db: Session = Depends(get_db)):
    crud.get_artist(db, artist_id)
    return crud.list_artist_albums(db, artist_id)
