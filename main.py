"""
Main application entry point for the Bunyoro Music API.

This module initializes the FastAPI application, sets up middleware,
configures CORS, owns the database and rate limiter lifecycle, and
includes the routers for accounts, the catalog, the library, the public
forms and administration.

Modules:
- FastAPI: Web framework
- CORSMiddleware: Middleware for handling CORS
- FastAPILimiter: Rate limiting
- redis.asyncio: Async Redis client
- fakeredis: In-process Redis used when no server is reachable
- bunyoro.database: Engine and session factory lifecycle
- bunyoro.crud: Domain operations
- bunyoro.core: Application settings
"""

import logging
from contextlib import asynccontextmanager

import redis.asyncio as redis
from fakeredis import FakeAsyncRedis
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi_limiter import FastAPILimiter
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from bunyoro import admin, albums, artists, audio, crud, forms, playlists, users, videos
from bunyoro.auth import router as auth_router
from bunyoro.core import Settings, get_settings
from bunyoro.database import dispose_database, get_db, init_database
from bunyoro.errors import register_exception_handlers
from bunyoro.logging_config import configure_logging
from bunyoro.storage import configure_storage

logger = logging.getLogger(__name__)

settings = get_settings()


async def init_rate_limiter(settings: Settings) -> None:
    """
    Initialize the rate limiter with the Redis backend.

    Falls back to an in-process fake Redis if the server is unreachable
    (e.g., during tests or offline development).
    """
    redis_client = redis.from_url(
        settings.REDIS_URL, encoding="utf-8", decode_responses=True
    )
    try:
        await redis_client.ping()
    except (RedisError, OSError):
        logger.warning("Redis at %s is unreachable, using FakeRedis", settings.REDIS_URL)
        await redis_client.aclose()
        redis_client = FakeAsyncRedis(decode_responses=True)
    await FastAPILimiter.init(redis_client)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the connection pool on startup and release it on shutdown."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    init_database(app.state, settings)
    with app.state.session_factory() as db:
        crud.seed_genres(db)
    configure_storage(settings)
    await init_rate_limiter(settings)
    logger.info("Bunyoro Music API started")
    try:
        yield
    finally:
        await FastAPILimiter.close()
        dispose_database(app.state)


# Initialize FastAPI application
app = FastAPI(title="Bunyoro Music API", lifespan=lifespan)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers for application areas
app.include_router(auth_router)
app.include_router(users.router)
app.include_router(audio.router)
app.include_router(videos.router)
app.include_router(albums.router)
app.include_router(artists.router)
app.include_router(playlists.router)
app.include_router(forms.router)
app.include_router(admin.router)

app.mount(
    "/uploads",
    StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False),
    name="uploads",
)


@app.get("/health")
def health(db: Session = Depends(get_db)):
    """Report whether the database answers queries."""
    crud.check_database(db)
    return {"status": "ok"}


@app.get("/")
def root():
    """
    Root endpoint for the API.

    Returns a simple JSON message directing users to the Swagger UI.

    Returns:
        dict: JSON message with information about the API
    """
    return {"msg": "Bunyoro Music API. Visit /docs for Swagger UI"}
