"""Pydantic request and response schemas for the HTTP routes."""

from datetime import date, datetime
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, EmailStr, Field

from .models import (
    AlbumType,
    ContactStatus,
    ItemType,
    PlaylistVisibility,
    ProcessingStatus,
    SubscriptionStatus,
    UserRole,
    Visibility,
)


class ORMModel(BaseModel):
    """Base for response schemas read from SQLAlchemy objects."""

    model_config = ConfigDict(from_attributes=True)


def _strip(value):
    return value.strip() if isinstance(value, str) else value


#: Email address checked by email-validator, trimmed and lower-cased.
Email = Annotated[EmailStr, BeforeValidator(_strip), AfterValidator(str.lower)]


class UserBase(BaseModel):
    """Shared fields for user schemas."""

    email: Email
    full_name: str = Field(min_length=1, max_length=255)


class UserCreate(UserBase):
    """Payload for registering a listener or artist.

    ``stage_name`` is required when ``role`` is ``artist``; the artist
    fields are ignored for listeners.
    """

    password: str = Field(min_length=6)
    role: UserRole = UserRole.LISTENER
    location: Optional[str] = None
    phone_number: Optional[str] = Field(default=None, max_length=20)
    bio: Optional[str] = None
    stage_name: Optional[str] = None
    website_url: Optional[str] = None
    social_media_links: Optional[dict[str, str]] = None
    years_active: int = Field(default=0, ge=0)
    verification_document_url: Optional[str] = None


class UserUpdate(BaseModel):
    """Profile changes (all fields optional)."""

    full_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    location: Optional[str] = None
    phone_number: Optional[str] = Field(default=None, max_length=20)
    bio: Optional[str] = None
    profile_picture_url: Optional[str] = None
    stage_name: Optional[str] = Field(default=None, min_length=1)
    website_url: Optional[str] = None
    social_media_links: Optional[dict[str, str]] = None
    years_active: Optional[int] = Field(default=None, ge=0)


class ArtistInfo(ORMModel):
    stage_name: str
    years_active: int = 0
    website_url: Optional[str] = None
    social_media_links: Optional[dict[str, str]] = None


class UserOut(ORMModel):
    """Response schema for user data."""

    id: int
    email: str
    full_name: str
    role: UserRole
    is_verified: bool
    location: Optional[str] = None
    phone_number: Optional[str] = None
    bio: Optional[str] = None
    profile_picture_url: Optional[str] = None
    registration_date: Optional[datetime] = None
    last_login: Optional[datetime] = None
    verification_document_url: Optional[str] = None
    artist: Optional[ArtistInfo] = None


class Token(BaseModel):
    """JWT token response schema."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AuthResponse(Token):
    """Tokens plus the authenticated user."""

    user: UserOut


class TokenRefresh(BaseModel):
    """Schema for requesting a new access token from a refresh token."""

    refresh_token: str


class TokenData(BaseModel):
    """Claims carried inside a session token."""

    sub: str
    email: str
    role: UserRole
    scope: str = "access"
    exp: Optional[datetime] = None

    @property
    def user_id(self) -> int:
        return int(self.sub)


class GenreCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    icon_url: Optional[str] = None


class GenreOut(GenreCreate, ORMModel):
    id: int


class AlbumCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    release_date: Optional[date] = None
    cover_art_url: Optional[str] = None
    description: Optional[str] = None
    type: AlbumType = AlbumType.ALBUM


class AlbumOut(AlbumCreate, ORMModel):
    id: int
    artist_id: int
    created_at: Optional[datetime] = None


class AudioTrackCreate(BaseModel):
    """Metadata accompanying an audio upload."""

    title: str = Field(min_length=1, max_length=255)
    duration: int = Field(ge=0)
    album_id: Optional[int] = None
    lyrics: Optional[str] = None
    release_date: Optional[date] = None
    copyright_info: Optional[str] = None
    visibility: Visibility = Visibility.PUBLIC
    genre_ids: List[int] = []


class TrackSummary(ORMModel):
    """A track as it appears in listings."""

    id: int
    title: str
    duration: int
    file_url: str
    thumbnail_url: Optional[str] = None
    play_count: int
    download_count: int
    release_date: Optional[date] = None
    upload_date: Optional[datetime] = None
    artist_id: int
    artist_name: str
    stage_name: str
    genre_names: List[str] = []


class TrackDetail(TrackSummary):
    """A single track with lyrics and album information."""

    lyrics: Optional[str] = None
    file_format: str
    file_size: int
    copyright_info: Optional[str] = None
    visibility: Visibility
    processing_status: ProcessingStatus
    album_id: Optional[int] = None
    album_title: Optional[str] = None
    album_cover: Optional[str] = None


class PopularTrack(TrackSummary):
    popularity_score: float


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class TrackPage(BaseModel):
    tracks: List[TrackSummary]
    pagination: Pagination


class TrackUpdate(BaseModel):
    visibility: Optional[Visibility] = None
    processing_status: Optional[ProcessingStatus] = None


class UploadResult(BaseModel):
    message: str
    id: int


class PlayRequest(BaseModel):
    duration_played: int = Field(default=0, ge=0)


class CounterOut(BaseModel):
    """Counter value after a play, view or download was recorded."""

    id: int
    count: int


class VideoCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    duration: int = Field(ge=0)
    youtube_url: Optional[str] = None
    description: Optional[str] = None
    release_date: Optional[date] = None
    category: Optional[str] = None
    visibility: Visibility = Visibility.PUBLIC


class VideoSummary(ORMModel):
    id: int
    title: str
    youtube_url: Optional[str] = None
    file_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration: int
    view_count: int
    release_date: Optional[date] = None
    description: Optional[str] = None
    artist_id: int
    artist_name: str
    stage_name: str


class VideoPage(BaseModel):
    videos: List[VideoSummary]
    pagination: Pagination


class ArtistSummary(BaseModel):
    id: int
    full_name: str
    stage_name: str
    profile_picture_url: Optional[str] = None
    track_count: int
    video_count: int
    album_count: int


class ArtistTrackPreview(ORMModel):
    id: int
    title: str
    duration: int
    thumbnail_url: Optional[str] = None
    play_count: int
    download_count: int
    release_date: Optional[date] = None


class ArtistVideoPreview(ORMModel):
    id: int
    title: str
    youtube_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    view_count: int
    release_date: Optional[date] = None


class ArtistProfile(ArtistSummary):
    bio: Optional[str] = None
    location: Optional[str] = None
    website_url: Optional[str] = None
    social_media_links: Optional[dict[str, str]] = None
    years_active: int = 0
    is_verified: bool
    total_plays: int
    total_downloads: int
    tracks: List[ArtistTrackPreview] = []
    videos: List[ArtistVideoPreview] = []


class PlaylistEntryIn(BaseModel):
    track_id: int
    position: int = Field(ge=0)


class PlaylistCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    visibility: PlaylistVisibility = PlaylistVisibility.PUBLIC
    tracks: List[PlaylistEntryIn] = []


class PlaylistEntryOut(ORMModel):
    track_id: int
    position: int
    added_date: Optional[datetime] = None


class PlaylistOut(ORMModel):
    id: int
    creator_id: int
    title: str
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    visibility: PlaylistVisibility
    created_at: Optional[datetime] = None
    entries: List[PlaylistEntryOut] = []


class FavoriteCreate(BaseModel):
    item_id: int
    item_type: ItemType


class FavoriteOut(FavoriteCreate, ORMModel):
    id: int
    user_id: int
    created_at: Optional[datetime] = None


class ContactCreate(BaseModel):
    """Contact-form submission."""

    name: str = Field(min_length=1, max_length=255)
    email: Email
    subject: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)


class ContactReply(BaseModel):
    response: str = Field(min_length=1)


class ContactOut(ContactCreate, ORMModel):
    id: int
    status: ContactStatus
    submission_date: Optional[datetime] = None
    response: Optional[str] = None
    response_date: Optional[datetime] = None


class EmailRequest(BaseModel):
    """Schema for newsletter subscribe/unsubscribe requests."""

    email: Email


class SubscriptionOut(ORMModel):
    id: int
    email: Email
    status: SubscriptionStatus
    subscription_date: Optional[datetime] = None
    unsubscribe_date: Optional[datetime] = None


class PurgeResult(BaseModel):
    play_history_deleted: int
    downloads_deleted: int


class MessageOut(BaseModel):
    message: str


class DownloadOut(CounterOut):
    """Download recorded; ``file_url`` is the file to fetch."""

    file_url: str


class AlbumDetail(AlbumOut):
    tracks: List[TrackSummary] = []
