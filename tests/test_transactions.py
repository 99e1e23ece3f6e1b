from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi import status
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from bunyoro import crud, models
from bunyoro.core import Settings
from bunyoro.database import (
    Base,
    create_db_engine,
    create_session_factory,
    transaction,
)
from bunyoro.errors import status_for
from bunyoro.exceptions import (
    AlreadyExists,
    DuplicateEmail,
    NotFound,
    StorageUnavailable,
    TransactionFailure,
    Unauthorized,
    ValidationError,
)
from bunyoro.schemas import (
    AlbumCreate,
    AudioTrackCreate,
    FavoriteCreate,
    PlaylistCreate,
    PlaylistEntryIn,
    UserCreate,
    VideoCreate,
)
from bunyoro.storage import StoredBlob


BLOB = StoredBlob(url="/uploads/audio/x.mp3", format="mp3", size=10)


@pytest.fixture()
def file_db(tmp_path):
    """File-backed database so several connections can work concurrently."""
    engine = create_db_engine(Settings(DATABASE_URL=f"sqlite:///{tmp_path / 'race.db'}"))
    Base.metadata.create_all(bind=engine)
    factory = create_session_factory(engine)
    yield factory
    engine.dispose()


def test_concurrent_plays_are_all_counted(file_db):
    with file_db() as db:
        user = crud.register_user(
            db,
            UserCreate(
                email="race@example.com",
                password="secret123",
                full_name="Racer",
                role="artist",
                stage_name="Racer",
            ),
            "hash",
        )
        track_id = crud.upload_audio_track(
            db, user.id, AudioTrackCreate(title="Hot", duration=60), BLOB
        )

    def play(_):
        with file_db() as db:
            crud.record_play(db, track_id)

    workers, plays = 8, 40
    with ThreadPoolExecutor(max_workers=workers) as pool:
        list(pool.map(play, range(plays)))

    with file_db() as db:
        track = db.get(models.AudioTrack, track_id)
        assert track.play_count == plays
        history = db.scalar(
            select(func.count(models.PlayHistory.id)).where(
                models.PlayHistory.item_id == track_id
            )
        )
        assert history == plays


def test_concurrent_downloads_are_all_counted(file_db):
    with file_db() as db:
        user = crud.register_user(
            db,
            UserCreate(
                email="dl@example.com",
                password="secret123",
                full_name="Loader",
                role="artist",
                stage_name="Loader",
            ),
            "hash",
        )
        track_id = crud.upload_audio_track(
            db, user.id, AudioTrackCreate(title="Get", duration=60), BLOB
        )

    def download(_):
        with file_db() as db:
            crud.record_download(db, track_id)

    with ThreadPoolExecutor(max_workers=6) as pool:
        list(pool.map(download, range(30)))

    with file_db() as db:
        assert db.get(models.AudioTrack, track_id).download_count == 30
        assert db.scalar(select(func.count(models.Download.id))) == 30


def test_transaction_rolls_back_on_domain_error(db_session):
    with pytest.raises(NotFound):
        with transaction(db_session):
            db_session.add(models.Genre(name="Temporary"))
            db_session.flush()
            raise NotFound("Thing", 1)
    assert (
        db_session.scalar(
            select(func.count(models.Genre.id)).where(models.Genre.name == "Temporary")
        )
        == 0
    )


def test_transaction_translates_constraint_violations(db_session):
    with pytest.raises(TransactionFailure) as exc_info:
        with transaction(db_session):
            db_session.add(models.Genre(name="Runyege"))
    assert "rolled back" in exc_info.value.message
    # session is usable afterwards
    assert len(crud.list_genres(db_session)) == len(crud.DEFAULT_GENRES)


def test_storage_check_constraint_rejects_bad_email(db_session):
    with pytest.raises(TransactionFailure):
        with transaction(db_session):
            db_session.add(
                models.NewsletterSubscription(email="not-an-address")
            )


def test_storage_check_constraint_rejects_negative_counters(artist, make_track, db_session):
    user, _ = artist
    track_id = make_track(user["id"])
    with pytest.raises(TransactionFailure):
        with transaction(db_session):
            db_session.execute(
                update(models.AudioTrack)
                .where(models.AudioTrack.id == track_id)
                .values(play_count=-1)
            )
    assert db_session.get(models.AudioTrack, track_id).play_count == 0


def test_unreachable_database_is_storage_unavailable(tmp_path):
    missing = tmp_path / "no" / "such" / "dir" / "db.sqlite"
    engine = create_db_engine(Settings(DATABASE_URL=f"sqlite:///{missing}"))
    factory = create_session_factory(engine)
    with factory() as db:
        with pytest.raises(StorageUnavailable):
            crud.check_database(db)
        with pytest.raises(StorageUnavailable):
            with transaction(db):
                db.execute(select(1))
    engine.dispose()


def test_transaction_maps_operational_errors(db_session):
    with pytest.raises(StorageUnavailable):
        with transaction(db_session):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))


def test_deleting_an_artist_account_cascades(client, admin_headers, artist, listener, db_session):
    user, _ = artist
    listener_json, _ = listener
    album = crud.create_album(db_session, user["id"], AlbumCreate(title="Gone"))
    genre = crud.list_genres(db_session)[0]
    track_id = crud.upload_audio_track(
        db_session,
        user["id"],
        AudioTrackCreate(
            title="Gone Track", duration=1, album_id=album.id, genre_ids=[genre.id]
        ),
        BLOB,
    )
    video = crud.create_video(
        db_session,
        user["id"],
        VideoCreate(title="Gone Video", duration=1, youtube_url="https://youtu.be/x"),
    )
    playlist = crud.create_playlist(
        db_session,
        listener_json["id"],
        PlaylistCreate(
            title="Keeps", tracks=[PlaylistEntryIn(track_id=track_id, position=1)]
        ),
    )
    crud.add_favorite(
        db_session, listener_json["id"], FavoriteCreate(item_id=track_id, item_type="audio")
    )
    crud.add_favorite(
        db_session, listener_json["id"], FavoriteCreate(item_id=video.id, item_type="video")
    )
    crud.record_play(db_session, track_id, user_id=user["id"])
    crud.record_download(db_session, track_id, user_id=listener_json["id"])

    response = client.delete(f"/admin/users/{user['id']}", headers=admin_headers)
    assert response.status_code == status.HTTP_204_NO_CONTENT

    def count(model):
        return db_session.scalar(select(func.count()).select_from(model))

    assert db_session.get(models.User, user["id"]) is None
    assert db_session.get(models.Artist, user["id"]) is None
    assert count(models.Album) == 0
    assert count(models.AudioTrack) == 0
    assert count(models.Video) == 0
    assert count(models.TrackGenre) == 0
    assert count(models.PlaylistTrack) == 0
    assert count(models.Favorite) == 0
    # download rows follow the deleted track; the listener's playlist stays
    assert count(models.Download) == 0
    assert db_session.get(models.Playlist, playlist.id) is not None
    # play history is append-only and loses only the user reference
    history = db_session.scalars(select(models.PlayHistory)).one()
    assert history.user_id is None


def test_deleting_a_listener_keeps_their_logs_anonymously(
    client, admin_headers, artist, listener, make_track, db_session
):
    user, _ = artist
    listener_json, _ = listener
    track_id = make_track(user["id"])
    crud.record_play(db_session, track_id, user_id=listener_json["id"])
    crud.record_download(db_session, track_id, user_id=listener_json["id"])

    response = client.delete(f"/admin/users/{listener_json['id']}", headers=admin_headers)
    assert response.status_code == status.HTTP_204_NO_CONTENT

    download = db_session.scalars(select(models.Download)).one()
    play = db_session.scalars(select(models.PlayHistory)).one()
    assert download.user_id is None
    assert play.user_id is None
    assert db_session.get(models.AudioTrack, track_id).download_count == 1


def test_delete_missing_user(client, admin_headers):
    response = client.delete("/admin/users/9999", headers=admin_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_delete_artist_profile_keeps_account(client, admin_headers, artist, make_track, db_session):
    user, headers = artist
    make_track(user["id"])
    response = client.delete(f"/admin/artists/{user['id']}", headers=admin_headers)
    assert response.status_code == status.HTTP_204_NO_CONTENT
    me = client.get("/users/me", headers=headers).json()
    assert me["role"] == "listener"
    assert me["artist"] is None
    assert db_session.scalar(select(func.count(models.AudioTrack.id))) == 0


def test_owner_deletes_track_and_dependents(client, artist, listener, make_track, db_session):
    user, headers = artist
    listener_json, listener_headers = listener
    track_id = make_track(user["id"], genre_ids=[crud.list_genres(db_session)[0].id])
    client.post(
        "/favorites", json={"item_id": track_id, "item_type": "audio"}, headers=listener_headers
    )
    client.post(
        "/playlists",
        json={"title": "P", "tracks": [{"track_id": track_id, "position": 0}]},
        headers=listener_headers,
    )

    assert client.delete(f"/audio/{track_id}", headers=listener_headers).status_code == 403
    assert client.delete(f"/audio/{track_id}", headers=headers).status_code == 204

    for model in (models.AudioTrack, models.TrackGenre, models.PlaylistTrack, models.Favorite):
        assert db_session.scalar(select(func.count()).select_from(model)) == 0


@pytest.mark.parametrize(
    "exc, expected",
    [
        (ValidationError("bad"), 422),
        (AlreadyExists("Genre", "x"), 409),
        (DuplicateEmail("a@b.co"), 409),
        (Unauthorized(), 401),
        (NotFound("Track", 1), 404),
        (TransactionFailure("aborted"), 409),
        (StorageUnavailable("down"), 503),
    ],
)
def test_error_status_mapping(exc, expected):
    assert status_for(exc) == expected
