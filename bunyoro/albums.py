"""Genre and album routes."""

from typing import List

from fastapi import APIRouter, Depends, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from . import crud, schemas
from .audio import artist_only
from .database import get_db

router = APIRouter(tags=["albums"])


@router.get("/genres", response_model=List[schemas.GenreOut])
def list_genres(db: Session = Depends(get_db)):
    """All genres, alphabetically."""
    return crud.list_genres(db)


@router.post(
    "/albums", response_model=schemas.AlbumOut, status_code=status.HTTP_201_CREATED
)
def create_album(
    album_in: schemas.AlbumCreate,
    current_user=Depends(artist_only),
    db: Session = Depends(get_db),
):
    """Create an album, EP or single for the signed-in artist."""
    return crud.create_album(db, current_user.id, album_in)


@router.get("/albums/{album_id}", response_model=schemas.AlbumDetail)
def get_album(album_id: int, db: Session = Depends(get_db)):
    """Album with its public tracks."""
    album = crud.get_album(db, album_id)
    tracks = crud.list_album_tracks(db, album_id)
    return schemas.AlbumDetail(
        **schemas.AlbumOut.model_validate(album).model_dump(),
        tracks=[schemas.TrackSummary.model_validate(t) for t in tracks],
    )


@router.delete("/albums/{album_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_album(
    album_id: int,
    current_user=Depends(artist_only),
    db: Session = Depends(get_db),
):
    """Delete an album; its tracks stay in the catalog without an album."""
    crud.delete_album(db, current_user.id, album_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
