"""Database configuration and session management.

This module builds the SQLAlchemy engine and session factory, owns the
declarative base, and provides the request-scoped session dependency and
the scoped transaction used by every multi-statement operation.

The engine is not created at import time. The application lifespan calls
:func:`init_database` on startup and :func:`dispose_database` on shutdown,
keeping the pool on ``app.state``.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import (
    DBAPIError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .core import Settings
from .exceptions import StorageUnavailable, TransactionFailure

logger = logging.getLogger(__name__)


Base = declarative_base()
"""Declarative base class for SQLAlchemy models."""


def create_db_engine(settings: Settings) -> Engine:
    """
    Create an engine for the configured database URL.

    Server databases get a bounded connection pool. SQLite connections
    get foreign key enforcement, which SQLite leaves off by default.

    Args:
        settings (Settings): Application settings.

    Returns:
        Engine: Configured SQLAlchemy engine.
    """
    url = settings.DATABASE_URL
    kwargs: dict[str, Any] = {"echo": settings.DB_ECHO, "future": True}

    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
    else:
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_pre_ping=True,
        )

    engine = create_engine(url, **kwargs)
    if url.startswith("sqlite"):
        enable_sqlite_foreign_keys(engine)
    return engine


def enable_sqlite_foreign_keys(engine: Engine) -> None:
    """Turn on ``PRAGMA foreign_keys`` for every new SQLite connection."""

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, _connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_session_factory(engine: Engine) -> sessionmaker:
    """Return a session factory bound to ``engine``."""
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def init_database(state: Any, settings: Settings) -> Engine:
    """
    Create the engine, the tables and the session factory on ``state``.

    Args:
        state: Application state object (``app.state``).
        settings (Settings): Application settings.

    Returns:
        Engine: The newly created engine.
    """
    from . import models  # noqa: F401  registers the tables on Base

    engine = create_db_engine(settings)
    Base.metadata.create_all(bind=engine)
    state.engine = engine
    state.session_factory = create_session_factory(engine)
    logger.info("Database initialised (%s)", engine.url.render_as_string())
    return engine


def dispose_database(state: Any) -> None:
    """Release every pooled connection held by the engine on ``state``."""
    engine = getattr(state, "engine", None)
    if engine is not None:
        engine.dispose()
        state.engine = None
        state.session_factory = None
        logger.info("Database connections released")


def get_db(request: Request) -> Iterator[Session]:
    """
    Provide a SQLAlchemy database session.

    This function is used as a FastAPI dependency.
    It yields a database session and ensures it is
    properly closed after the request is completed.
    """
    factory = getattr(request.app.state, "session_factory", None)
    if factory is None:
        raise StorageUnavailable("Database is not initialised")

    db = factory()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Run the enclosed statements as one all-or-nothing unit of work.

    Commits when the block exits normally. On any exception the session is
    rolled back before the error propagates; SQLAlchemy errors are
    re-raised as :class:`StorageUnavailable` (connectivity, pool exhaustion)
    or :class:`TransactionFailure` (constraint violations and other
    statement failures). Catalog errors raised inside the block propagate
    unchanged.

    Args:
        db (Session): Session to run the unit of work on.

    Yields:
        Session: The same session.
    """
    try:
        yield db
        db.commit()
    except (OperationalError, PoolTimeoutError) as exc:
        db.rollback()
        logger.warning("Rolled back: storage unavailable: %s", exc)
        raise StorageUnavailable("Database is unavailable") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Rolled back: %s", _describe(exc))
        raise TransactionFailure(
            f"Operation aborted and rolled back: {_describe(exc)}"
        ) from exc
    except BaseException:
        db.rollback()
        raise


def _describe(exc: SQLAlchemyError) -> str:
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig)
    return str(exc)
