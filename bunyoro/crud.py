"""Data access and domain operations for the music catalog.

This module contains database interaction logic for accounts, the audio
and video catalog, artist aggregation, engagement records and the public
forms, isolated from FastAPI route handlers. Every function takes the
session explicitly; every multi-statement write runs inside
:func:`bunyoro.database.transaction`. Failures are reported with the typed
errors from :mod:`bunyoro.exceptions`.
"""

import logging
import math
from datetime import datetime, timedelta, timezone

from email_validator import EmailNotValidError
from email_validator import validate_email as check_email_address
from sqlalchemy import delete, exists, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, contains_eager, joinedload, selectinload

from . import models, schemas
from .database import transaction
from .exceptions import (
    AlreadyExists,
    DuplicateEmail,
    Forbidden,
    NotFound,
    StorageUnavailable,
    ValidationError,
)
from .storage import StoredBlob

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
ARTIST_TRACK_PREVIEW = 10
ARTIST_VIDEO_PREVIEW = 5

DEFAULT_GENRES = [
    ("Traditional Bunyoro", "Authentic traditional music from the Bunyoro kingdom"),
    ("Cultural Fusion", "Music that blends traditional Bunyoro with modern elements"),
    ("Modern Bunyoro", "Contemporary music with Bunyoro cultural influences"),
    ("Ekitaguriro", "Traditional dance music"),
    ("Runyege", "Ceremonial and celebratory music"),
]


def _now() -> datetime:
    """Current UTC time as a naive datetime, matching the column type."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def validate_email(email: str) -> str:
    """
    Check the shape of an email address.

    Args:
        email (str): Address to check.

    Raises:
        ValidationError: If email-validator rejects the address.

    Returns:
        str: The address, trimmed and lower-cased.
    """
    email = (email or "").strip()
    try:
        check_email_address(email, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email address: {email!r}") from exc
    return email.lower()


def _escape_like(term: str) -> str:
    """Make ``%`` and ``_`` in a search term match literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _check_page(page: int, page_size: int) -> None:
    if page < 1:
        raise ValidationError("page must be 1 or greater")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValidationError(f"page size must be between 1 and {MAX_PAGE_SIZE}")


def _pagination(page: int, page_size: int, total: int) -> schemas.Pagination:
    return schemas.Pagination(
        page=page,
        limit=page_size,
        total=total,
        pages=math.ceil(total / page_size),
    )


# Accounts


def get_user_by_email(db: Session, email: str) -> models.User | None:
    """
    Retrieve a user by email address.

    Args:
        db (Session): Database session.
        email (str): User email.

    Returns:
        User | None: User if found, otherwise ``None``.
    """
    return db.execute(
        select(models.User)
        .options(joinedload(models.User.artist))
        .where(models.User.email == email.strip().lower())
    ).scalar_one_or_none()


def get_user_by_id(db: Session, user_id: int) -> models.User | None:
    """
    Retrieve a user by primary key.

    Args:
        db (Session): Database session.
        user_id (int): User identifier.

    Returns:
        User | None: User if found, otherwise ``None``.
    """
    return db.execute(
        select(models.User)
        .options(joinedload(models.User.artist))
        .where(models.User.id == user_id)
    ).scalar_one_or_none()


def register_user(
    db: Session, user_in: schemas.UserCreate, hashed_password: str
) -> models.User:
    """
    Create a user and, for artists, the artist profile in one transaction.

    Args:
        db (Session): SQLAlchemy database session.
        user_in (UserCreate): Incoming registration data.
        hashed_password (str): Salted password hash.

    Raises:
        ValidationError: Malformed email, admin role, or artist without a
            stage name.
        DuplicateEmail: If a user with the same email already exists.
        TransactionFailure: If any insert fails; nothing is kept.

    Returns:
        User: Newly created user instance.
    """
    email = validate_email(user_in.email)
    if user_in.role == models.UserRole.ADMIN:
        raise ValidationError("Admin accounts cannot be self-registered")

    is_artist = user_in.role == models.UserRole.ARTIST
    stage_name = (user_in.stage_name or "").strip()
    if is_artist and not stage_name:
        raise ValidationError("Stage name is required for artist accounts")

    if get_user_by_email(db, email) is not None:
        raise DuplicateEmail(email)

    with transaction(db):
        user = models.User(
            email=email,
            password_hash=hashed_password,
            full_name=user_in.full_name,
            role=user_in.role,
            location=user_in.location,
            phone_number=user_in.phone_number,
            bio=user_in.bio,
            verification_document_url=user_in.verification_document_url,
        )
        db.add(user)
        try:
            db.flush()
        except IntegrityError as exc:
            # lost a race against a concurrent registration
            raise DuplicateEmail(email) from exc

        if is_artist:
            db.add(
                models.Artist(
                    id=user.id,
                    stage_name=stage_name,
                    years_active=user_in.years_active,
                    website_url=user_in.website_url,
                    social_media_links=user_in.social_media_links,
                )
            )
            db.flush()

    db.refresh(user)
    logger.info("Registered %s account %s", user.role.value, user.id)
    return user


def update_last_login(db: Session, user: models.User) -> models.User:
    """Stamp the user's last successful login."""
    with transaction(db):
        user.last_login = _now()
        db.add(user)
    return user


def update_profile(
    db: Session, user: models.User, changes: schemas.UserUpdate
) -> models.User:
    """
    Apply profile changes to a user and, for artists, the artist row.

    Args:
        db (Session): Database session.
        user (User): User to update.
        changes (UserUpdate): Fields to change; unset fields are kept.

    Raises:
        ValidationError: If artist-only fields are sent by a non-artist.

    Returns:
        User: Updated user.
    """
    data = changes.model_dump(exclude_unset=True)
    artist_fields = {"stage_name", "website_url", "social_media_links", "years_active"}
    artist_changes = {k: data.pop(k) for k in list(data) if k in artist_fields}

    if artist_changes and user.artist is None:
        raise ValidationError("Only artists have a stage profile")

    with transaction(db):
        for key, value in data.items():
            setattr(user, key, value)
        for key, value in artist_changes.items():
            setattr(user.artist, key, value)
        db.add(user)
    db.refresh(user)
    return user


def set_verification_document(
    db: Session, user: models.User, document_url: str
) -> models.User:
    """
    Record a verification document for the user.

    A new document puts an artist back into review: ``is_verified`` is
    cleared until an admin verifies the account again.
    """
    with transaction(db):
        user.verification_document_url = document_url
        if user.role == models.UserRole.ARTIST:
            user.is_verified = False
        db.add(user)
    logger.info("Verification document stored for user %s", user.id)
    return user


def verify_artist(db: Session, artist_id: int) -> models.User:
    """
    Mark an artist account as verified.

    Raises:
        NotFound: If there is no artist with this id.
    """
    user = get_user_by_id(db, artist_id)
    if user is None or user.artist is None:
        raise NotFound("Artist", artist_id)
    with transaction(db):
        user.is_verified = True
        db.add(user)
    logger.info("Artist %s verified", artist_id)
    return user


def _delete_item_favorites(db: Session, audio_ids, video_ids) -> None:
    """Remove favorites pointing at items that are about to disappear."""
    db.execute(
        delete(models.Favorite).where(
            or_(
                (models.Favorite.item_type == models.ItemType.AUDIO)
                & models.Favorite.item_id.in_(audio_ids),
                (models.Favorite.item_type == models.ItemType.VIDEO)
                & models.Favorite.item_id.in_(video_ids),
            )
        )
    )


def delete_user(db: Session, user_id: int) -> None:
    """
    Delete a user.

    The database cascades the artist row, the artist's albums, tracks,
    videos and their genre, playlist and download rows, and the user's
    playlists and favorites. Download and play logs written by the user
    are kept with the user reference cleared.

    Raises:
        NotFound: If the user does not exist.
    """
    with transaction(db):
        audio_ids = select(models.AudioTrack.id).where(
            models.AudioTrack.artist_id == user_id
        )
        video_ids = select(models.Video.id).where(models.Video.artist_id == user_id)
        _delete_item_favorites(db, audio_ids, video_ids)
        result = db.execute(delete(models.User).where(models.User.id == user_id))
        if result.rowcount == 0:
            raise NotFound("User", user_id)
    db.expire_all()
    logger.info("Deleted user %s", user_id)


def delete_artist(db: Session, artist_id: int) -> None:
    """
    Delete an artist profile and its catalog, keeping the user account.

    The account is demoted to a listener.

    Raises:
        NotFound: If the artist does not exist.
    """
    with transaction(db):
        audio_ids = select(models.AudioTrack.id).where(
            models.AudioTrack.artist_id == artist_id
        )
        video_ids = select(models.Video.id).where(models.Video.artist_id == artist_id)
        _delete_item_favorites(db, audio_ids, video_ids)
        result = db.execute(delete(models.Artist).where(models.Artist.id == artist_id))
        if result.rowcount == 0:
            raise NotFound("Artist", artist_id)
        db.execute(
            update(models.User)
            .where(models.User.id == artist_id)
            .values(role=models.UserRole.LISTENER, is_verified=False)
        )
    db.expire_all()
    logger.info("Deleted artist %s", artist_id)


def get_artist(db: Session, artist_id: int) -> models.Artist:
    """Return the artist row or raise :class:`NotFound`."""
    artist = db.get(models.Artist, artist_id)
    if artist is None:
        raise NotFound("Artist", artist_id)
    return artist


# Genres


def list_genres(db: Session) -> list[models.Genre]:
    """Return all genres ordered by name."""
    return list(db.scalars(select(models.Genre).order_by(models.Genre.name)))


def create_genre(db: Session, genre_in: schemas.GenreCreate) -> models.Genre:
    """
    Add a genre to the reference set.

    Raises:
        AlreadyExists: If a genre with the same name exists.
    """
    with transaction(db):
        genre = models.Genre(**genre_in.model_dump())
        db.add(genre)
        try:
            db.flush()
        except IntegrityError as exc:
            raise AlreadyExists("Genre", genre_in.name) from exc
    return genre


def seed_genres(db: Session) -> int:
    """Insert the default genres when the table is empty; returns rows added."""
    if db.scalar(select(func.count(models.Genre.id))):
        return 0
    with transaction(db):
        db.add_all(
            models.Genre(name=name, description=description)
            for name, description in DEFAULT_GENRES
        )
    logger.info("Seeded %d default genres", len(DEFAULT_GENRES))
    return len(DEFAULT_GENRES)


# Albums


def create_album(
    db: Session, artist_id: int, album_in: schemas.AlbumCreate
) -> models.Album:
    """
    Create an album owned by the given artist.

    Raises:
        NotFound: If the artist does not exist.
    """
    get_artist(db, artist_id)
    with transaction(db):
        album = models.Album(**album_in.model_dump(), artist_id=artist_id)
        db.add(album)
    db.refresh(album)
    return album


def get_album(db: Session, album_id: int) -> models.Album:
    album = db.get(models.Album, album_id)
    if album is None:
        raise NotFound("Album", album_id)
    return album


def list_artist_albums(db: Session, artist_id: int) -> list[models.Album]:
    return list(
        db.scalars(
            select(models.Album)
            .where(models.Album.artist_id == artist_id)
            .order_by(models.Album.release_date.desc().nulls_last(), models.Album.id)
        )
    )


def list_album_tracks(db: Session, album_id: int) -> list[models.AudioTrack]:
    """Public tracks of an album, oldest upload first."""
    get_album(db, album_id)
    stmt = (
        _public_tracks(select(models.AudioTrack))
        .where(models.AudioTrack.album_id == album_id)
        .options(
            contains_eager(models.AudioTrack.artist).contains_eager(models.Artist.user),
            selectinload(models.AudioTrack.genres),
        )
        .order_by(models.AudioTrack.upload_date, models.AudioTrack.id)
    )
    return list(db.scalars(stmt))


def delete_album(db: Session, artist_id: int, album_id: int) -> None:
    """
    Delete an album. Its tracks remain, with the album reference cleared.

    Raises:
        NotFound: If the album does not exist.
        Forbidden: If the album belongs to another artist.
    """
    album = get_album(db, album_id)
    if album.artist_id != artist_id:
        raise Forbidden("Album belongs to another artist")
    with transaction(db):
        db.execute(delete(models.Album).where(models.Album.id == album_id))
    db.expire_all()


# Audio tracks


def _public_tracks(stmt):
    """Join artist and user onto ``stmt`` and keep public tracks only."""
    return (
        stmt.select_from(models.AudioTrack)
        .join(models.Artist, models.AudioTrack.artist_id == models.Artist.id)
        .join(models.User, models.Artist.id == models.User.id)
        .where(models.AudioTrack.visibility == models.Visibility.PUBLIC)
    )


def _filter_tracks(stmt, genre: str | None, search: str | None):
    if genre:
        stmt = stmt.where(
            exists(
                select(models.TrackGenre.track_id)
                .join(models.Genre, models.Genre.id == models.TrackGenre.genre_id)
                .where(
                    models.TrackGenre.track_id == models.AudioTrack.id,
                    models.Genre.name == genre,
                )
            )
        )
    if search:
        like_q = f"%{_escape_like(search)}%"
        stmt = stmt.where(
            or_(
                models.AudioTrack.title.ilike(like_q, escape="\\"),
                models.User.full_name.ilike(like_q, escape="\\"),
                models.Artist.stage_name.ilike(like_q, escape="\\"),
            )
        )
    return stmt


def _with_track_listing(stmt):
    return stmt.options(
        contains_eager(models.AudioTrack.artist).contains_eager(models.Artist.user),
        selectinload(models.AudioTrack.genres),
    )


def list_audio_tracks(
    db: Session,
    page: int = 1,
    page_size: int = 20,
    genre: str | None = None,
    search: str | None = None,
) -> schemas.TrackPage:
    """
    List public tracks, newest upload first.

    Supports filtering by genre name and case-insensitive substring search
    over the track title, the artist's full name and stage name.

    Args:
        db (Session): Database session.
        page (int): 1-based page number.
        page_size (int): Tracks per page.
        genre (str | None): Only tracks tagged with this genre.
        search (str | None): Optional search text.

    Raises:
        ValidationError: If the page or page size is out of range.

    Returns:
        TrackPage: Tracks and pagination metadata with the true total.
    """
    _check_page(page, page_size)

    count_stmt = _filter_tracks(
        _public_tracks(select(func.count(models.AudioTrack.id))), genre, search
    )
    total = db.scalar(count_stmt) or 0

    stmt = (
        _with_track_listing(
            _filter_tracks(_public_tracks(select(models.AudioTrack)), genre, search)
        )
        .order_by(models.AudioTrack.upload_date.desc(), models.AudioTrack.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    tracks = db.scalars(stmt).all()

    return schemas.TrackPage(
        tracks=[schemas.TrackSummary.model_validate(t) for t in tracks],
        pagination=_pagination(page, page_size, total),
    )


def get_audio_track(db: Session, track_id: int) -> models.AudioTrack:
    """
    Retrieve a public track with its album and genres.

    Raises:
        NotFound: If the track does not exist or is not public.
    """
    stmt = _with_track_listing(
        _public_tracks(select(models.AudioTrack)).where(
            models.AudioTrack.id == track_id
        )
    ).options(joinedload(models.AudioTrack.album))
    track = db.scalars(stmt).one_or_none()
    if track is None:
        raise NotFound("Audio track", track_id)
    return track


def featured_tracks(db: Session, limit: int = 6) -> list[models.AudioTrack]:
    """Most played public tracks, ties broken by downloads."""
    stmt = (
        _with_track_listing(_public_tracks(select(models.AudioTrack)))
        .order_by(
            models.AudioTrack.play_count.desc(),
            models.AudioTrack.download_count.desc(),
            models.AudioTrack.id,
        )
        .limit(limit)
    )
    return list(db.scalars(stmt))


def popular_tracks(db: Session, limit: int = 20) -> list[models.AudioTrack]:
    """Public tracks ranked by the weighted play/download score."""
    score = (
        models.AudioTrack.play_count * models.PLAY_WEIGHT
        + models.AudioTrack.download_count * models.DOWNLOAD_WEIGHT
    )
    stmt = (
        _with_track_listing(_public_tracks(select(models.AudioTrack)))
        .order_by(score.desc(), models.AudioTrack.id)
        .limit(limit)
    )
    return list(db.scalars(stmt))


def upload_audio_track(
    db: Session,
    artist_id: int,
    track_in: schemas.AudioTrackCreate,
    audio: StoredBlob,
    thumbnail: StoredBlob | None = None,
) -> int:
    """
    Insert a track and its genre associations as one transaction.

    Args:
        db (Session): Database session.
        artist_id (int): Owning artist.
        track_in (AudioTrackCreate): Track metadata and genre ids.
        audio (StoredBlob): Reference to the stored audio file.
        thumbnail (StoredBlob | None): Reference to the stored thumbnail.

    Raises:
        NotFound: If the artist does not exist, or the album does not
            exist or belongs to another artist.
        TransactionFailure: If any genre association cannot be written
            (for example an unknown genre id). No track row is kept.

    Returns:
        int: Identifier of the new track.
    """
    get_artist(db, artist_id)
    if track_in.album_id is not None:
        album = db.get(models.Album, track_in.album_id)
        if album is None or album.artist_id != artist_id:
            raise NotFound("Album", track_in.album_id)

    with transaction(db):
        track = models.AudioTrack(
            title=track_in.title,
            artist_id=artist_id,
            album_id=track_in.album_id,
            duration=track_in.duration,
            file_url=audio.url,
            file_format=audio.format,
            file_size=audio.size,
            thumbnail_url=thumbnail.url if thumbnail else None,
            lyrics=track_in.lyrics,
            release_date=track_in.release_date or _now().date(),
            copyright_info=track_in.copyright_info,
            visibility=track_in.visibility,
        )
        db.add(track)
        db.flush()
        for genre_id in dict.fromkeys(track_in.genre_ids):
            db.execute(
                insert(models.TrackGenre).values(track_id=track.id, genre_id=genre_id)
            )

    logger.info("Artist %s uploaded track %s", artist_id, track.id)
    return track.id


def get_owned_track(db: Session, artist_id: int, track_id: int) -> models.AudioTrack:
    """
    Return a track of any visibility, checking ownership.

    Raises:
        NotFound: If the track does not exist.
        Forbidden: If it belongs to another artist.
    """
    track = db.get(models.AudioTrack, track_id)
    if track is None:
        raise NotFound("Audio track", track_id)
    if track.artist_id != artist_id:
        raise Forbidden("Track belongs to another artist")
    return track


def update_track(
    db: Session, artist_id: int, track_id: int, changes: schemas.TrackUpdate
) -> models.AudioTrack:
    """Change a track's visibility or processing status."""
    track = get_owned_track(db, artist_id, track_id)
    with transaction(db):
        for key, value in changes.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(track, key, value)
        db.add(track)
    return track


def delete_audio_track(db: Session, artist_id: int, track_id: int) -> None:
    """Delete a track; genre, playlist and download rows cascade."""
    get_owned_track(db, artist_id, track_id)
    with transaction(db):
        _delete_item_favorites(db, [track_id], [])
        db.execute(delete(models.AudioTrack).where(models.AudioTrack.id == track_id))
    db.expire_all()
    logger.info("Artist %s deleted track %s", artist_id, track_id)


def _counter_target(item_type: models.ItemType):
    if item_type == models.ItemType.AUDIO:
        return models.AudioTrack, models.AudioTrack.play_count, "Audio track"
    return models.Video, models.Video.view_count, "Video"


def record_play(
    db: Session,
    item_id: int,
    item_type: models.ItemType = models.ItemType.AUDIO,
    user_id: int | None = None,
    duration_played: int = 0,
    ip_address: str | None = None,
) -> int:
    """
    Count one play of a track (or view of a video) and log it.

    The counter is incremented in place by the database and the history
    row is appended in the same transaction, so either both are visible
    or neither is.

    Args:
        db (Session): Database session.
        item_id (int): Track or video identifier.
        item_type (ItemType): ``audio`` bumps ``play_count``, ``video``
            bumps ``view_count``.
        user_id (int | None): Listener, if signed in.
        duration_played (int): Seconds played.
        ip_address (str | None): Client address.

    Raises:
        NotFound: If the item does not exist; nothing is written.

    Returns:
        int: Counter value after the increment.
    """
    model, counter, label = _counter_target(item_type)
    with transaction(db):
        result = db.execute(
            update(model)
            .where(model.id == item_id)
            .values({counter: counter + 1})
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            raise NotFound(label, item_id)
        db.add(
            models.PlayHistory(
                user_id=user_id,
                item_id=item_id,
                item_type=item_type,
                duration_played=duration_played,
                ip_address=ip_address,
            )
        )
        db.flush()
        count = db.scalar(select(counter).where(model.id == item_id))
    return count


def record_download(
    db: Session,
    track_id: int,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> tuple[str, int]:
    """
    Count one download of a track and log it, in one transaction.

    Raises:
        NotFound: If the track does not exist; nothing is written.

    Returns:
        tuple[str, int]: The track's file reference and the new count.
    """
    with transaction(db):
        result = db.execute(
            update(models.AudioTrack)
            .where(models.AudioTrack.id == track_id)
            .values(download_count=models.AudioTrack.download_count + 1)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            raise NotFound("Audio track", track_id)
        db.add(
            models.Download(user_id=user_id, track_id=track_id, ip_address=ip_address)
        )
        db.flush()
        file_url, count = db.execute(
            select(models.AudioTrack.file_url, models.AudioTrack.download_count).where(
                models.AudioTrack.id == track_id
            )
        ).one()
    return file_url, count


# Videos


def create_video(
    db: Session,
    artist_id: int,
    video_in: schemas.VideoCreate,
    file: StoredBlob | None = None,
    thumbnail: StoredBlob | None = None,
) -> models.Video:
    """
    Create a video from a YouTube link or an uploaded file.

    Raises:
        ValidationError: If neither a YouTube URL nor a file is given.
        NotFound: If the artist does not exist.
    """
    if not video_in.youtube_url and file is None:
        raise ValidationError("A YouTube URL or a video file is required")
    get_artist(db, artist_id)
    with transaction(db):
        video = models.Video(
            **video_in.model_dump(),
            artist_id=artist_id,
            file_url=file.url if file else None,
            thumbnail_url=thumbnail.url if thumbnail else None,
        )
        db.add(video)
    db.refresh(video)
    logger.info("Artist %s uploaded video %s", artist_id, video.id)
    return video


def _public_videos(stmt):
    return (
        stmt.select_from(models.Video)
        .join(models.Artist, models.Video.artist_id == models.Artist.id)
        .join(models.User, models.Artist.id == models.User.id)
        .where(models.Video.visibility == models.Visibility.PUBLIC)
    )


def list_videos(db: Session, page: int = 1, page_size: int = 12) -> schemas.VideoPage:
    """List public videos, newest upload first, with pagination metadata."""
    _check_page(page, page_size)
    total = db.scalar(_public_videos(select(func.count(models.Video.id)))) or 0
    stmt = (
        _public_videos(select(models.Video))
        .options(
            contains_eager(models.Video.artist).contains_eager(models.Artist.user)
        )
        .order_by(models.Video.upload_date.desc(), models.Video.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    videos = db.scalars(stmt).all()
    return schemas.VideoPage(
        videos=[schemas.VideoSummary.model_validate(v) for v in videos],
        pagination=_pagination(page, page_size, total),
    )


def get_video(db: Session, video_id: int) -> models.Video:
    """Retrieve a public video or raise :class:`NotFound`."""
    stmt = (
        _public_videos(select(models.Video))
        .options(
            contains_eager(models.Video.artist).contains_eager(models.Artist.user)
        )
        .where(models.Video.id == video_id)
    )
    video = db.scalars(stmt).one_or_none()
    if video is None:
        raise NotFound("Video", video_id)
    return video


def delete_video(db: Session, artist_id: int, video_id: int) -> None:
    video = db.get(models.Video, video_id)
    if video is None:
        raise NotFound("Video", video_id)
    if video.artist_id != artist_id:
        raise Forbidden("Video belongs to another artist")
    with transaction(db):
        _delete_item_favorites(db, [], [video_id])
        db.execute(delete(models.Video).where(models.Video.id == video_id))
    db.expire_all()


# Artist aggregation


def _count_for_artist(column, artist_column):
    return (
        select(func.count(column))
        .where(artist_column == models.Artist.id)
        .correlate(models.Artist)
        .scalar_subquery()
    )


def _artist_counts():
    return (
        _count_for_artist(models.AudioTrack.id, models.AudioTrack.artist_id).label(
            "track_count"
        ),
        _count_for_artist(models.Video.id, models.Video.artist_id).label("video_count"),
        _count_for_artist(models.Album.id, models.Album.artist_id).label("album_count"),
    )


def list_artists(db: Session, limit: int = 20) -> list[schemas.ArtistSummary]:
    """
    List verified artists with their catalog sizes.

    Args:
        db (Session): Database session.
        limit (int): Maximum number of artists.

    Returns:
        list[ArtistSummary]: Artists ordered by track count, highest first.
    """
    track_count, video_count, album_count = _artist_counts()
    stmt = (
        select(
            models.Artist.id,
            models.User.full_name,
            models.Artist.stage_name,
            models.User.profile_picture_url,
            track_count,
            video_count,
            album_count,
        )
        .join(models.User, models.User.id == models.Artist.id)
        .where(models.User.is_verified.is_(True))
        .order_by(track_count.desc(), models.Artist.id)
        .limit(limit)
    )
    return [schemas.ArtistSummary(**row._mapping) for row in db.execute(stmt)]


def get_artist_profile(db: Session, artist_id: int) -> schemas.ArtistProfile:
    """
    Aggregate an artist's profile, totals and a preview of recent work.

    Totals cover every track of the artist; the preview lists up to ten
    public tracks and five public videos, most recently released first.

    Raises:
        NotFound: If there is no such artist.
    """
    artist = db.execute(
        select(models.Artist)
        .options(joinedload(models.Artist.user))
        .where(models.Artist.id == artist_id)
    ).scalar_one_or_none()
    if artist is None:
        raise NotFound("Artist", artist_id)

    track_count, total_plays, total_downloads = db.execute(
        select(
            func.count(models.AudioTrack.id),
            func.coalesce(func.sum(models.AudioTrack.play_count), 0),
            func.coalesce(func.sum(models.AudioTrack.download_count), 0),
        ).where(models.AudioTrack.artist_id == artist_id)
    ).one()
    video_count = db.scalar(
        select(func.count(models.Video.id)).where(models.Video.artist_id == artist_id)
    )
    album_count = db.scalar(
        select(func.count(models.Album.id)).where(models.Album.artist_id == artist_id)
    )

    tracks = db.scalars(
        select(models.AudioTrack)
        .where(
            models.AudioTrack.artist_id == artist_id,
            models.AudioTrack.visibility == models.Visibility.PUBLIC,
        )
        .order_by(
            models.AudioTrack.release_date.desc().nulls_last(),
            models.AudioTrack.id.desc(),
        )
        .limit(ARTIST_TRACK_PREVIEW)
    ).all()
    videos = db.scalars(
        select(models.Video)
        .where(
            models.Video.artist_id == artist_id,
            models.Video.visibility == models.Visibility.PUBLIC,
        )
        .order_by(models.Video.release_date.desc().nulls_last(), models.Video.id.desc())
        .limit(ARTIST_VIDEO_PREVIEW)
    ).all()

    user = artist.user
    return schemas.ArtistProfile(
        id=artist.id,
        full_name=user.full_name,
        stage_name=artist.stage_name,
        profile_picture_url=user.profile_picture_url,
        bio=user.bio,
        location=user.location,
        website_url=artist.website_url,
        social_media_links=artist.social_media_links,
        years_active=artist.years_active,
        is_verified=user.is_verified,
        track_count=track_count,
        video_count=video_count,
        album_count=album_count,
        total_plays=total_plays,
        total_downloads=total_downloads,
        tracks=[schemas.ArtistTrackPreview.model_validate(t) for t in tracks],
        videos=[schemas.ArtistVideoPreview.model_validate(v) for v in videos],
    )


# Playlists


def create_playlist(
    db: Session, user_id: int, playlist_in: schemas.PlaylistCreate
) -> models.Playlist:
    """
    Create a playlist together with its ordered tracks.

    Positions are stored exactly as given. The playlist row and all of its
    track rows are written in one transaction.

    Raises:
        ValidationError: If a track id is listed twice.
        TransactionFailure: If a track row cannot be written (for example
            an unknown track id); the playlist is not kept either.
    """
    track_ids = [entry.track_id for entry in playlist_in.tracks]
    if len(track_ids) != len(set(track_ids)):
        raise ValidationError("A track can appear on a playlist only once")

    with transaction(db):
        playlist = models.Playlist(
            creator_id=user_id,
            title=playlist_in.title,
            description=playlist_in.description,
            cover_image_url=playlist_in.cover_image_url,
            visibility=playlist_in.visibility,
            entries=[
                models.PlaylistTrack(track_id=entry.track_id, position=entry.position)
                for entry in playlist_in.tracks
            ],
        )
        db.add(playlist)
        db.flush()
    db.refresh(playlist)
    return playlist


def get_playlist(
    db: Session, playlist_id: int, viewer_id: int | None = None
) -> models.Playlist:
    """
    Retrieve a playlist visible to ``viewer_id``.

    Private playlists are only visible to their creator; for anyone else
    they do not exist.
    """
    playlist = db.execute(
        select(models.Playlist)
        .options(selectinload(models.Playlist.entries))
        .where(models.Playlist.id == playlist_id)
    ).scalar_one_or_none()
    if playlist is None or (
        playlist.visibility == models.PlaylistVisibility.PRIVATE
        and playlist.creator_id != viewer_id
    ):
        raise NotFound("Playlist", playlist_id)
    return playlist


def list_user_playlists(db: Session, user_id: int) -> list[models.Playlist]:
    return list(
        db.scalars(
            select(models.Playlist)
            .options(selectinload(models.Playlist.entries))
            .where(models.Playlist.creator_id == user_id)
            .order_by(models.Playlist.created_at.desc(), models.Playlist.id.desc())
        )
    )


def _owned_playlist(db: Session, user_id: int, playlist_id: int) -> models.Playlist:
    playlist = db.get(models.Playlist, playlist_id)
    if playlist is None:
        raise NotFound("Playlist", playlist_id)
    if playlist.creator_id != user_id:
        raise Forbidden("Playlist belongs to another user")
    return playlist


def add_playlist_track(
    db: Session, user_id: int, playlist_id: int, entry: schemas.PlaylistEntryIn
) -> models.Playlist:
    """
    Put a track on a playlist at the given position.

    Raises:
        NotFound: If the playlist or the track does not exist.
        Forbidden: If the playlist belongs to another user.
        AlreadyExists: If the track is already on the playlist.
    """
    playlist = _owned_playlist(db, user_id, playlist_id)
    if db.get(models.AudioTrack, entry.track_id) is None:
        raise NotFound("Audio track", entry.track_id)

    with transaction(db):
        db.add(
            models.PlaylistTrack(
                playlist_id=playlist_id,
                track_id=entry.track_id,
                position=entry.position,
            )
        )
        try:
            db.flush()
        except IntegrityError as exc:
            raise AlreadyExists("Playlist track", entry.track_id) from exc
    db.expire(playlist, ["entries"])
    return playlist


def remove_playlist_track(
    db: Session, user_id: int, playlist_id: int, track_id: int
) -> None:
    _owned_playlist(db, user_id, playlist_id)
    with transaction(db):
        result = db.execute(
            delete(models.PlaylistTrack).where(
                models.PlaylistTrack.playlist_id == playlist_id,
                models.PlaylistTrack.track_id == track_id,
            )
        )
        if result.rowcount == 0:
            raise NotFound("Playlist track", track_id)
    db.expire_all()


def delete_playlist(db: Session, user_id: int, playlist_id: int) -> None:
    _owned_playlist(db, user_id, playlist_id)
    with transaction(db):
        db.execute(delete(models.Playlist).where(models.Playlist.id == playlist_id))
    db.expire_all()


# Favorites


def _item_exists(db: Session, item_id: int, item_type: models.ItemType) -> bool:
    model = models.AudioTrack if item_type == models.ItemType.AUDIO else models.Video
    return db.get(model, item_id) is not None


def add_favorite(
    db: Session, user_id: int, favorite_in: schemas.FavoriteCreate
) -> models.Favorite:
    """
    Like an audio track or video.

    The (user, item, type) triple is unique in storage, so a second add
    never creates a second row.

    Raises:
        NotFound: If the item does not exist.
        AlreadyExists: If the user already likes this item.
    """
    if not _item_exists(db, favorite_in.item_id, favorite_in.item_type):
        raise NotFound(favorite_in.item_type.value.capitalize(), favorite_in.item_id)

    with transaction(db):
        favorite = models.Favorite(
            user_id=user_id,
            item_id=favorite_in.item_id,
            item_type=favorite_in.item_type,
        )
        db.add(favorite)
        try:
            db.flush()
        except IntegrityError as exc:
            raise AlreadyExists(
                "Favorite", f"{favorite_in.item_type.value}:{favorite_in.item_id}"
            ) from exc
    db.refresh(favorite)
    return favorite


def remove_favorite(
    db: Session, user_id: int, item_id: int, item_type: models.ItemType
) -> None:
    with transaction(db):
        result = db.execute(
            delete(models.Favorite).where(
                models.Favorite.user_id == user_id,
                models.Favorite.item_id == item_id,
                models.Favorite.item_type == item_type,
            )
        )
        if result.rowcount == 0:
            raise NotFound("Favorite", f"{item_type.value}:{item_id}")


def list_favorites(
    db: Session, user_id: int, item_type: models.ItemType | None = None
) -> list[models.Favorite]:
    stmt = select(models.Favorite).where(models.Favorite.user_id == user_id)
    if item_type is not None:
        stmt = stmt.where(models.Favorite.item_type == item_type)
    return list(
        db.scalars(
            stmt.order_by(models.Favorite.created_at.desc(), models.Favorite.id.desc())
        )
    )


# Contact form and newsletter


def submit_contact(db: Session, contact_in: schemas.ContactCreate) -> models.Contact:
    """Store a contact-form message with status ``new``."""
    data = contact_in.model_dump()
    data["email"] = validate_email(contact_in.email)
    with transaction(db):
        contact = models.Contact(**data)
        db.add(contact)
    db.refresh(contact)
    logger.info("Contact message %s received", contact.id)
    return contact


def list_contacts(
    db: Session,
    status: models.ContactStatus | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[models.Contact]:
    """
    Retrieve contact messages, newest first.

    Args:
        db (Session): Database session.
        status (ContactStatus | None): Only messages in this state.
        skip (int): Number of records to skip.
        limit (int): Maximum number of records to return.

    Returns:
        list[Contact]: List of contact messages.
    """
    stmt = select(models.Contact)
    if status is not None:
        stmt = stmt.where(models.Contact.status == status)
    stmt = (
        stmt.order_by(models.Contact.submission_date.desc(), models.Contact.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(db.scalars(stmt))


def get_contact(db: Session, contact_id: int, mark_read: bool = True) -> models.Contact:
    """Retrieve a contact message, moving it from ``new`` to ``read``."""
    contact = db.get(models.Contact, contact_id)
    if contact is None:
        raise NotFound("Contact", contact_id)
    if mark_read and contact.status == models.ContactStatus.NEW:
        with transaction(db):
            contact.status = models.ContactStatus.READ
            db.add(contact)
    return contact


def reply_contact(db: Session, contact_id: int, response: str) -> models.Contact:
    """Store the admin's reply and mark the message as replied."""
    contact = get_contact(db, contact_id, mark_read=False)
    with transaction(db):
        contact.response = response
        contact.response_date = _now()
        contact.status = models.ContactStatus.REPLIED
        db.add(contact)
    return contact


def subscribe_newsletter(db: Session, email: str) -> models.NewsletterSubscription:
    """
    Subscribe an address to the newsletter.

    An address that unsubscribed earlier is re-activated.

    Raises:
        ValidationError: If the address is malformed.
        AlreadyExists: If the address already has an active subscription.
    """
    email = validate_email(email)
    subscription = db.execute(
        select(models.NewsletterSubscription).where(
            models.NewsletterSubscription.email == email
        )
    ).scalar_one_or_none()
    if subscription is not None and (
        subscription.status == models.SubscriptionStatus.ACTIVE
    ):
        raise AlreadyExists("Subscription for", email)

    with transaction(db):
        if subscription is None:
            subscription = models.NewsletterSubscription(email=email)
            db.add(subscription)
            try:
                db.flush()
            except IntegrityError as exc:
                raise AlreadyExists("Subscription for", email) from exc
        else:
            subscription.status = models.SubscriptionStatus.ACTIVE
            subscription.subscription_date = _now()
            subscription.unsubscribe_date = None
            db.add(subscription)
    db.refresh(subscription)
    return subscription


def unsubscribe_newsletter(db: Session, email: str) -> models.NewsletterSubscription:
    email = validate_email(email)
    subscription = db.execute(
        select(models.NewsletterSubscription).where(
            models.NewsletterSubscription.email == email
        )
    ).scalar_one_or_none()
    if subscription is None:
        raise NotFound("Subscription for", email)
    if subscription.status == models.SubscriptionStatus.ACTIVE:
        with transaction(db):
            subscription.status = models.SubscriptionStatus.UNSUBSCRIBED
            subscription.unsubscribe_date = _now()
            db.add(subscription)
    return subscription


# Maintenance


def purge_history(
    db: Session, retention_days: int, now: datetime | None = None
) -> schemas.PurgeResult:
    """
    Delete play history and download logs older than the retention window.

    Both deletions run in one transaction.

    Args:
        db (Session): Database session.
        retention_days (int): Age, in days, of the oldest rows kept.
        now (datetime | None): Reference time (naive UTC); defaults to now.

    Returns:
        PurgeResult: Number of rows deleted from each log.
    """
    if retention_days < 0:
        raise ValidationError("retention_days must not be negative")
    cutoff = (now or _now()) - timedelta(days=retention_days)
    with transaction(db):
        plays = db.execute(
            delete(models.PlayHistory).where(models.PlayHistory.play_date < cutoff)
        ).rowcount
        downloads = db.execute(
            delete(models.Download).where(models.Download.download_date < cutoff)
        ).rowcount
    logger.info(
        "Purged %d play history and %d download rows older than %s",
        plays,
        downloads,
        cutoff,
    )
    return schemas.PurgeResult(play_history_deleted=plays, downloads_deleted=downloads)


def check_database(db: Session) -> None:
    """
    Run a trivial query to prove the database is reachable.

    Raises:
        StorageUnavailable: If the query fails.
    """
    try:
        db.execute(select(1))
    except OperationalError as exc:
        raise StorageUnavailable("Database is unavailable") from exc
