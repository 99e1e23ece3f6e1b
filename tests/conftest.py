# tests/conftest.py
import os
import tempfile

# Settings are read once and cached; configure them before the app is imported
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["REDIS_URL"] = "redis://127.0.0.1:1/0"
os.environ["RATE_LIMIT_TIMES"] = "100000"
os.environ["SMTP_SUPPRESS_SEND"] = "true"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="bunyoro-uploads-")
os.environ.pop("CLOUDINARY_URL", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update

from bunyoro import crud, models
from bunyoro.auth import create_access_token, get_password_hash
from bunyoro.core import Settings
from bunyoro.database import Base, create_db_engine, create_session_factory, get_db
from bunyoro.schemas import AudioTrackCreate
from bunyoro.storage import StoredBlob
from main import app


# DB (SQLite in-memory for tests, foreign keys on)
engine = create_db_engine(Settings(DATABASE_URL="sqlite:///:memory:"))
TestingSessionLocal = create_session_factory(engine)


@pytest.fixture(autouse=True)
def prepare_database():
    Base.metadata.create_all(bind=engine)
    with TestingSessionLocal() as db:
        crud.seed_genres(db)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


# Client fixture: override DB dependency per test
@pytest.fixture()
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def register(client):
    """Register an account over HTTP; returns ``(user_json, headers)``."""

    def _register(email, password="secret123", full_name="Test User", **extra):
        payload = {"email": email, "password": password, "full_name": full_name}
        payload.update(extra)
        response = client.post("/auth/register", json=payload)
        assert response.status_code == 201, response.text
        data = response.json()
        return data["user"], auth_headers(data["access_token"])

    return _register


@pytest.fixture()
def listener(register):
    return register("listener@example.com", full_name="Amooti Listener")


@pytest.fixture()
def artist(register):
    return register(
        "artist@example.com",
        full_name="Kato Ruhweza",
        role="artist",
        stage_name="Kato R",
    )


@pytest.fixture()
def admin_headers(db_session):
    user = models.User(
        email="admin@example.com",
        password_hash=get_password_hash("adminpass"),
        full_name="Site Admin",
        role=models.UserRole.ADMIN,
        is_verified=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return auth_headers(create_access_token(user))


@pytest.fixture()
def make_track(db_session):
    """Insert a track through the domain layer, optionally with counters."""

    def _make(
        artist_id,
        title="Song",
        visibility=models.Visibility.PUBLIC,
        genre_ids=(),
        album_id=None,
        play_count=0,
        download_count=0,
        release_date=None,
    ):
        track_id = crud.upload_audio_track(
            db_session,
            artist_id,
            AudioTrackCreate(
                title=title,
                duration=180,
                visibility=visibility,
                genre_ids=list(genre_ids),
                album_id=album_id,
                release_date=release_date,
            ),
            StoredBlob(url=f"/uploads/audio/{title}.mp3", format="mp3", size=1024),
        )
        if play_count or download_count:
            db_session.execute(
                update(models.AudioTrack)
                .where(models.AudioTrack.id == track_id)
                .values(play_count=play_count, download_count=download_count)
            )
            db_session.commit()
        return track_id

    return _make


@pytest.fixture()
def genre_ids(db_session):
    return {genre.name: genre.id for genre in crud.list_genres(db_session)}
