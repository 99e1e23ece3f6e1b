"""Audio track routes: listing, upload, playback and download counters."""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from . import crud, schemas
from .auth import get_optional_user, require_roles
from .core import get_settings
from .database import get_db
from .exceptions import ValidationError
from .models import ItemType, UserRole, Visibility
from .storage import UploadBatch

router = APIRouter(prefix="/audio", tags=["audio"])

artist_only = require_roles(UserRole.ARTIST)


def client_address(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


@router.get("", response_model=schemas.TrackPage)
def list_tracks(
    page: int = 1,
    limit: int = 20,
    genre: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """
    List public tracks, newest first.

    Args:
        page (int): 1-based page number.
        limit (int): Page size, 1 to 100.
        genre (str | None): Genre name filter.
        search (str | None): Substring of the title or artist name.
        db (Session): Database session.

    Returns:
        TrackPage: Tracks and pagination metadata.
    """
    return crud.list_audio_tracks(
        db, page=page, page_size=limit, genre=genre, search=search
    )


@router.get("/featured", response_model=List[schemas.TrackSummary])
def featured(db: Session = Depends(get_db)):
    """Most played public tracks."""
    return crud.featured_tracks(db, limit=get_settings().FEATURED_LIMIT)


@router.get("/popular", response_model=List[schemas.PopularTrack])
def popular(limit: int = 20, db: Session = Depends(get_db)):
    """Public tracks ranked by weighted plays and downloads."""
    if not 1 <= limit <= crud.MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {crud.MAX_PAGE_SIZE}")
    return crud.popular_tracks(db, limit=limit)


@router.post(
    "/upload", response_model=schemas.UploadResult, status_code=status.HTTP_201_CREATED
)
def upload_track(
    title: str = Form(..., min_length=1, max_length=255),
    duration: int = Form(..., ge=0),
    album_id: Optional[int] = Form(None),
    lyrics: Optional[str] = Form(None),
    release_date: Optional[date] = Form(None),
    copyright_info: Optional[str] = Form(None),
    visibility: Visibility = Form(Visibility.PUBLIC),
    genre_ids: List[int] = Form([]),
    audio: UploadFile = File(...),
    thumbnail: Optional[UploadFile] = File(None),
    current_user=Depends(artist_only),
    db: Session = Depends(get_db),
):
    """
    Upload an audio file with its metadata and genres.

    The track and its genre rows are stored together or not at all; the
    uploaded files are removed again when the track is rejected.

    Returns:
        UploadResult: Identifier of the new track.
    """
    track_in = schemas.AudioTrackCreate(
        title=title,
        duration=duration,
        album_id=album_id,
        lyrics=lyrics,
        release_date=release_date,
        copyright_info=copyright_info,
        visibility=visibility,
        genre_ids=genre_ids,
    )
    with UploadBatch() as uploads:
        audio_blob = uploads.save(audio, "audio")
        thumbnail_blob = uploads.save(thumbnail, "images") if thumbnail else None
        track_id = crud.upload_audio_track(
            db, current_user.id, track_in, audio_blob, thumbnail_blob
        )
    return schemas.UploadResult(message="Track uploaded successfully", id=track_id)


@router.get("/{track_id}", response_model=schemas.TrackDetail)
def get_track(track_id: int, db: Session = Depends(get_db)):
    return crud.get_audio_track(db, track_id)


@router.patch("/{track_id}", response_model=schemas.TrackDetail)
def update_track(
    track_id: int,
    changes: schemas.TrackUpdate,
    current_user=Depends(artist_only),
    db: Session = Depends(get_db),
):
    """Change visibility or processing status of one of your tracks."""
    return crud.update_track(db, current_user.id, track_id, changes)


@router.delete("/{track_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_track(
    track_id: int,
    current_user=Depends(artist_only),
    db: Session = Depends(get_db),
):
    crud.delete_audio_track(db, current_user.id, track_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{track_id}/play", response_model=schemas.CounterOut)
def play_track(
    track_id: int,
    request: Request,
    payload: Optional[schemas.PlayRequest] = None,
    current_user=Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Count a play of the track and append it to the play history."""
    count = crud.record_play(
        db,
        track_id,
        ItemType.AUDIO,
        user_id=current_user.id if current_user else None,
        duration_played=payload.duration_played if payload else 0,
        ip_address=client_address(request),
    )
    return schemas.CounterOut(id=track_id, count=count)


@router.post("/{track_id}/download", response_model=schemas.DownloadOut)
def download_track(
    track_id: int,
    request: Request,
    current_user=Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Count a download of the track and return the file to fetch."""
    file_url, count = crud.record_download(
        db,
        track_id,
        user_id=current_user.id if current_user else None,
        ip_address=client_address(request),
    )
    return schemas.DownloadOut(id=track_id, count=count, file_url=file_url)
