"""Database models for the Bunyoro music catalog.

This module defines SQLAlchemy ORM models used by the application.
Referential actions (cascade and set-null deletes) are declared on the
foreign keys so the database performs them; relationships use
``passive_deletes`` to leave that work to the database.
"""

import enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    PrimaryKeyConstraint,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from .database import Base

#: Weights of the popularity score used to rank tracks
PLAY_WEIGHT = 0.7
DOWNLOAD_WEIGHT = 0.3


class UserRole(str, enum.Enum):
    LISTENER = "listener"
    ARTIST = "artist"
    ADMIN = "admin"


class Visibility(str, enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    UNLISTED = "unlisted"


class PlaylistVisibility(str, enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class ProcessingStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AlbumType(str, enum.Enum):
    ALBUM = "album"
    EP = "ep"
    SINGLE = "single"


class ItemType(str, enum.Enum):
    AUDIO = "audio"
    VIDEO = "video"


class ContactStatus(str, enum.Enum):
    NEW = "new"
    READ = "read"
    REPLIED = "replied"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    UNSUBSCRIBED = "unsubscribed"


def _enum(enum_cls, name: str) -> Enum:
    """Store enum values (not names) as constrained strings."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )


class User(Base):
    """
    SQLAlchemy model representing an account.

    Listeners, artists and admins share this table. Artists additionally
    own an :class:`Artist` row keyed by the same identifier.
    """

    __tablename__ = "users"
    __table_args__ = (CheckConstraint("email LIKE '%@%.%'", name="chk_email"),)

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    role = Column(
        _enum(UserRole, "user_role"), default=UserRole.LISTENER, nullable=False
    )
    profile_picture_url = Column(String(500), nullable=True)
    location = Column(String(255), nullable=True)
    phone_number = Column(String(20), nullable=True)
    bio = Column(Text, nullable=True)
    registration_date = Column(DateTime, server_default=func.now(), nullable=False)
    last_login = Column(DateTime, nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)
    verification_document_url = Column(String(500), nullable=True)

    #: Role-specific extension, present only for artists
    artist = relationship(
        "Artist",
        back_populates="user",
        uselist=False,
        passive_deletes=True,
    )
    playlists = relationship("Playlist", back_populates="creator", passive_deletes=True)


class Artist(Base):
    """
    Artist extension of a :class:`User`.

    The primary key is also the foreign key to ``users``; deleting the user
    deletes the artist row and, through it, the artist's catalog.
    """

    __tablename__ = "artists"

    id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    stage_name = Column(String(255), nullable=False)
    years_active = Column(Integer, default=0, nullable=False)
    website_url = Column(String(500), nullable=True)
    social_media_links = Column(JSON, nullable=True)

    user = relationship("User", back_populates="artist")
    albums = relationship("Album", back_populates="artist", passive_deletes=True)
    tracks = relationship("AudioTrack", back_populates="artist", passive_deletes=True)
    videos = relationship("Video", back_populates="artist", passive_deletes=True)

    @property
    def full_name(self) -> str:
        return self.user.full_name

    @property
    def is_verified(self) -> bool:
        return self.user.is_verified


class Genre(Base):
    """Reference genre, e.g. *Runyege* or *Ekitaguriro*."""

    __tablename__ = "genres"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    icon_url = Column(String(500), nullable=True)


class Album(Base):
    """An album, EP or single released by one artist."""

    __tablename__ = "albums"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    artist_id = Column(
        Integer, ForeignKey("artists.id", ondelete="CASCADE"), nullable=False
    )
    release_date = Column(Date, nullable=True)
    cover_art_url = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    type = Column(_enum(AlbumType, "album_type"), default=AlbumType.ALBUM, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    artist = relationship("Artist", back_populates="albums")
    tracks = relationship("AudioTrack", back_populates="album", passive_deletes=True)


class TrackGenre(Base):
    """Membership of a track in a genre."""

    __tablename__ = "track_genres"
    __table_args__ = (PrimaryKeyConstraint("track_id", "genre_id"),)

    track_id = Column(
        Integer, ForeignKey("audio_tracks.id", ondelete="CASCADE"), nullable=False
    )
    genre_id = Column(
        Integer, ForeignKey("genres.id", ondelete="CASCADE"), nullable=False
    )


class AudioTrack(Base):
    """
    An uploaded audio track.

    ``play_count`` and ``download_count`` only ever grow, and only through
    in-place ``UPDATE ... SET col = col + 1`` statements.
    """

    __tablename__ = "audio_tracks"
    __table_args__ = (
        CheckConstraint("duration >= 0", name="chk_track_duration"),
        CheckConstraint("play_count >= 0", name="chk_track_play_count"),
        CheckConstraint("download_count >= 0", name="chk_track_download_count"),
        Index("idx_audio_tracks_visibility", "visibility"),
    )

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    artist_id = Column(
        Integer,
        ForeignKey("artists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    album_id = Column(
        Integer,
        ForeignKey("albums.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    duration = Column(Integer, nullable=False)
    file_url = Column(String(500), nullable=False)
    file_format = Column(String(10), nullable=False)
    file_size = Column(BigInteger, nullable=False)
    thumbnail_url = Column(String(500), nullable=True)
    lyrics = Column(Text, nullable=True)
    release_date = Column(Date, nullable=True)
    play_count = Column(Integer, default=0, nullable=False)
    download_count = Column(Integer, default=0, nullable=False)
    copyright_info = Column(String(500), nullable=True)
    visibility = Column(
        _enum(Visibility, "visibility"), default=Visibility.PUBLIC, nullable=False
    )
    upload_date = Column(DateTime, server_default=func.now(), nullable=False)
    processing_status = Column(
        _enum(ProcessingStatus, "processing_status"),
        default=ProcessingStatus.PENDING,
        nullable=False,
    )

    artist = relationship("Artist", back_populates="tracks")
    album = relationship("Album", back_populates="tracks")
    genres = relationship(
        "Genre",
        secondary="track_genres",
        order_by="Genre.name",
        viewonly=True,
    )

    @property
    def artist_name(self) -> str:
        return self.artist.user.full_name

    @property
    def stage_name(self) -> str:
        return self.artist.stage_name

    @property
    def album_title(self) -> str | None:
        return self.album.title if self.album is not None else None

    @property
    def album_cover(self) -> str | None:
        return self.album.cover_art_url if self.album is not None else None

    @property
    def genre_names(self) -> list[str]:
        return [genre.name for genre in self.genres]

    @property
    def popularity_score(self) -> float:
        return self.play_count * PLAY_WEIGHT + self.download_count * DOWNLOAD_WEIGHT


class Video(Base):
    """A music video, hosted on YouTube or uploaded as a file."""

    __tablename__ = "videos"
    __table_args__ = (CheckConstraint("view_count >= 0", name="chk_video_view_count"),)

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    artist_id = Column(
        Integer,
        ForeignKey("artists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    youtube_url = Column(String(500), nullable=True)
    file_url = Column(String(500), nullable=True)
    thumbnail_url = Column(String(500), nullable=True)
    duration = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    release_date = Column(Date, nullable=True)
    view_count = Column(Integer, default=0, nullable=False)
    category = Column(String(100), nullable=True)
    visibility = Column(
        _enum(Visibility, "video_visibility"), default=Visibility.PUBLIC, nullable=False
    )
    upload_date = Column(DateTime, server_default=func.now(), nullable=False)

    artist = relationship("Artist", back_populates="videos")

    @property
    def artist_name(self) -> str:
        return self.artist.user.full_name

    @property
    def stage_name(self) -> str:
        return self.artist.stage_name


class Playlist(Base):
    """A user-curated, ordered list of tracks."""

    __tablename__ = "playlists"

    id = Column(Integer, primary_key=True, index=True)
    creator_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    cover_image_url = Column(String(500), nullable=True)
    visibility = Column(
        _enum(PlaylistVisibility, "playlist_visibility"),
        default=PlaylistVisibility.PUBLIC,
        nullable=False,
    )
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    creator = relationship("User", back_populates="playlists")
    entries = relationship(
        "PlaylistTrack",
        back_populates="playlist",
        order_by="PlaylistTrack.position",
        passive_deletes=True,
    )


class PlaylistTrack(Base):
    """A track on a playlist at a caller-chosen position."""

    __tablename__ = "playlist_tracks"
    __table_args__ = (PrimaryKeyConstraint("playlist_id", "track_id"),)

    playlist_id = Column(
        Integer, ForeignKey("playlists.id", ondelete="CASCADE"), nullable=False
    )
    track_id = Column(
        Integer, ForeignKey("audio_tracks.id", ondelete="CASCADE"), nullable=False
    )
    position = Column(Integer, nullable=False)
    added_date = Column(DateTime, server_default=func.now(), nullable=False)

    playlist = relationship("Playlist", back_populates="entries")
    track = relationship("AudioTrack")


class Favorite(Base):
    """A user's like of an audio track or video; one row per triple."""

    __tablename__ = "favorites"
    __table_args__ = (
        UniqueConstraint("user_id", "item_id", "item_type", name="unique_favorite"),
        Index("idx_favorites_item", "item_id", "item_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id = Column(Integer, nullable=False)
    item_type = Column(_enum(ItemType, "favorite_item_type"), nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)


class Download(Base):
    """Append-only download log."""

    __tablename__ = "downloads"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    track_id = Column(
        Integer,
        ForeignKey("audio_tracks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    download_date = Column(DateTime, server_default=func.now(), nullable=False)
    ip_address = Column(String(45), nullable=True)


class PlayHistory(Base):
    """Append-only play log for audio tracks and videos."""

    __tablename__ = "play_history"
    __table_args__ = (Index("idx_play_history_item", "item_id", "item_type"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    item_id = Column(Integer, nullable=False)
    item_type = Column(_enum(ItemType, "play_item_type"), nullable=False)
    play_date = Column(DateTime, server_default=func.now(), nullable=False)
    duration_played = Column(Integer, default=0, nullable=False)
    ip_address = Column(String(45), nullable=True)


class Contact(Base):
    """A contact-form submission and the admin's reply."""

    __tablename__ = "contacts"
    __table_args__ = (
        CheckConstraint("email LIKE '%@%.%'", name="chk_contact_email"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    submission_date = Column(DateTime, server_default=func.now(), nullable=False)
    status = Column(
        _enum(ContactStatus, "contact_status"), default=ContactStatus.NEW, nullable=False
    )
    response = Column(Text, nullable=True)
    response_date = Column(DateTime, nullable=True)


class NewsletterSubscription(Base):
    """Newsletter subscription; one row per email address."""

    __tablename__ = "newsletter_subscriptions"
    __table_args__ = (
        CheckConstraint("email LIKE '%@%.%'", name="chk_newsletter_email"),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False)
    subscription_date = Column(DateTime, server_default=func.now(), nullable=False)
    status = Column(
        _enum(SubscriptionStatus, "subscription_status"),
        default=SubscriptionStatus.ACTIVE,
        nullable=False,
    )
    unsubscribe_date = Column(DateTime, nullable=True)
