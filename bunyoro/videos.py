"""Music video routes."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from . import crud, schemas
from .audio import artist_only, client_address
from .auth import get_optional_user
from .database import get_db
from .models import ItemType, Visibility
from .storage import UploadBatch

router = APIRouter(prefix="/videos", tags=["videos"])


@router.get("", response_model=schemas.VideoPage)
def list_videos(page: int = 1, limit: int = 12, db: Session = Depends(get_db)):
    """List public videos, newest first."""
    return crud.list_videos(db, page=page, page_size=limit)


@router.post("", response_model=schemas.VideoSummary, status_code=status.HTTP_201_CREATED)
def upload_video(
    title: str = Form(..., min_length=1, max_length=255),
    duration: int = Form(..., ge=0),
    youtube_url: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    release_date: Optional[date] = Form(None),
    category: Optional[str] = Form(None),
    visibility: Visibility = Form(Visibility.PUBLIC),
    file: Optional[UploadFile] = File(None),
    thumbnail: Optional[UploadFile] = File(None),
    current_user=Depends(artist_only),
    db: Session = Depends(get_db),
):
    """
    Publish a video from a YouTube link or an uploaded MP4/WebM file.

    Returns:
        VideoSummary: The created video.
    """
    video_in = schemas.VideoCreate(
        title=title,
        duration=duration,
        youtube_url=youtube_url,
        description=description,
        release_date=release_date,
        category=category,
        visibility=visibility,
    )
    with UploadBatch() as uploads:
        file_blob = uploads.save(file, "videos") if file else None
        thumbnail_blob = uploads.save(thumbnail, "images") if thumbnail else None
        return crud.create_video(
            db, current_user.id, video_in, file_blob, thumbnail_blob
        )


@router.get("/{video_id}", response_model=schemas.VideoSummary)
def get_video(video_id: int, db: Session = Depends(get_db)):
    return crud.get_video(db, video_id)


@router.post("/{video_id}/view", response_model=schemas.CounterOut)
def view_video(
    video_id: int,
    request: Request,
    payload: Optional[schemas.PlayRequest] = None,
    current_user=Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Count a view of the video and append it to the play history."""
    count = crud.record_play(
        db,
        video_id,
        ItemType.VIDEO,
        user_id=current_user.id if current_user else None,
        duration_played=payload.duration_played if payload else 0,
        ip_address=client_address(request),
    )
    return schemas.CounterOut(id=video_id, count=count)


@router.delete("/{video_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_video(
    video_id: int,
    current_user=Depends(artist_only),
    db: Session = Depends(get_db),
):
    crud.delete_video(db, current_user.id, video_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
