"""Playlist and favorites routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from . import crud, schemas
from .auth import get_current_user, get_optional_user
from .database import get_db
from .models import ItemType

router = APIRouter(tags=["library"])


@router.post(
    "/playlists", response_model=schemas.PlaylistOut, status_code=status.HTTP_201_CREATED
)
def create_playlist(
    playlist_in: schemas.PlaylistCreate,
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a playlist with its initial tracks.

    Args:
        playlist_in (PlaylistCreate): Title, visibility and
            ``(track_id, position)`` entries.
        current_user (User): Playlist owner.
        db (Session): Database session.

    Returns:
        PlaylistOut: The playlist with its entries ordered by position.
    """
    return crud.create_playlist(db, current_user.id, playlist_in)


@router.get("/playlists/me", response_model=List[schemas.PlaylistOut])
def my_playlists(current_user=Depends(get_current_user), db: Session = Depends(get_db)):
    return crud.list_user_playlists(db, current_user.id)


@router.get("/playlists/{playlist_id}", response_model=schemas.PlaylistOut)
def get_playlist(
    playlist_id: int,
    current_user=Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Public playlists for everyone; private ones for their creator only."""
    return crud.get_playlist(
        db, playlist_id, viewer_id=current_user.id if current_user else None
    )


@router.post("/playlists/{playlist_id}/tracks", response_model=schemas.PlaylistOut)
def add_playlist_track(
    playlist_id: int,
    entry: schemas.PlaylistEntryIn,
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return crud.add_playlist_track(db, current_user.id, playlist_id, entry)


@router.delete(
    "/playlists/{playlist_id}/tracks/{track_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def remove_playlist_track(
    playlist_id: int,
    track_id: int,
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    crud.remove_playlist_track(db, current_user.id, playlist_id, track_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/playlists/{playlist_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_playlist(
    playlist_id: int,
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    crud.delete_playlist(db, current_user.id, playlist_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/favorites", response_model=schemas.FavoriteOut, status_code=status.HTTP_201_CREATED
)
def add_favorite(
    favorite_in: schemas.FavoriteCreate,
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Like a track or video. Liking the same item twice is a conflict."""
    return crud.add_favorite(db, current_user.id, favorite_in)


@router.get("/favorites", response_model=List[schemas.FavoriteOut])
def list_favorites(
    item_type: Optional[ItemType] = None,
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return crud.list_favorites(db, current_user.id, item_type)


@router.delete(
    "/favorites/{item_type}/{item_id}", status_code=status.HTTP_204_NO_CONTENT
)
def remove_favorite(
    item_type: ItemType,
    item_id: int,
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    crud.remove_favorite(db, current_user.id, item_id, item_type)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
