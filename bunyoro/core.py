"""Application configuration and settings management.

This module defines the application settings loaded from environment
variables and provides helper functions for accessing cached settings
and email configuration.
"""

from functools import lru_cache
from typing import List

from fastapi_mail import ConnectionConfig
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Attributes:
        DATABASE_URL: Database connection string.
        DB_POOL_SIZE: Number of pooled connections (server databases only).
        DB_MAX_OVERFLOW: Connections allowed above the pool size.
        DB_POOL_TIMEOUT: Seconds to wait for a free pooled connection.
        DB_ECHO: Echo SQL statements to the log.
        SECRET_KEY: Secret key used for JWT signing.
        ALGORITHM: Algorithm used to encode JWT tokens.
        ACCESS_TOKEN_EXPIRE_MINUTES: Access token lifetime in minutes.
        REFRESH_TOKEN_EXPIRE_MINUTES: Refresh token lifetime in minutes.
        ALLOWED_ORIGINS: Allowed origins for CORS.
        REDIS_URL: Redis connection URL for rate limiting.
        RATE_LIMIT_TIMES: Requests allowed per window on limited routes.
        RATE_LIMIT_SECONDS: Length of the rate limit window.
        CLOUDINARY_URL: Cloudinary connection URL for media uploads.
        UPLOAD_DIR: Local directory for uploads when Cloudinary is not set.
        MAX_UPLOAD_BYTES: Largest accepted upload.
        SMTP_FROM_EMAIL: Sender email address for outgoing emails.
        SMTP_USER: SMTP username.
        SMTP_PASSWORD: SMTP password.
        SMTP_PORT: SMTP server port.
        SMTP_HOST: SMTP server host.
        SMTP_SUPPRESS_SEND: Build messages without delivering them.
        LOG_LEVEL: Root log level.
        LOG_JSON: Emit JSON log lines instead of plain text.
        HISTORY_RETENTION_DAYS: Age after which play/download logs are purged.
        ARTISTS_LIMIT: Number of artists returned by the artist listing.
        FEATURED_LIMIT: Number of featured tracks.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    DATABASE_URL: str = "sqlite:///./bunyoro.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 0
    DB_POOL_TIMEOUT: int = 30
    DB_ECHO: bool = False
    SECRET_KEY: str = "dev-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    ALLOWED_ORIGINS: List[str] = ["*"]
    REDIS_URL: str = "redis://localhost:6379/0"
    RATE_LIMIT_TIMES: int = 10
    RATE_LIMIT_SECONDS: int = 60
    CLOUDINARY_URL: str | None = None
    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024
    SMTP_FROM_EMAIL: str = "noreply@example.com"
    SMTP_USER: str = "user"
    SMTP_PASSWORD: str = "password"
    SMTP_PORT: int = 1025
    SMTP_HOST: str = "localhost"
    SMTP_SUPPRESS_SEND: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    HISTORY_RETENTION_DAYS: int = 730
    ARTISTS_LIMIT: int = 20
    FEATURED_LIMIT: int = 6


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings.

    The settings object is cached to prevent reloading environment
    variables multiple times during application lifetime.
    """

    return Settings()


def get_mail_config() -> ConnectionConfig:
    """Create and return email configuration for FastAPI-Mail.

    Returns:
        ConnectionConfig: Configured email connection settings.
    """

    settings = get_settings()
    return ConnectionConfig(
        MAIL_USERNAME=settings.SMTP_USER,
        MAIL_PASSWORD=settings.SMTP_PASSWORD,
        MAIL_FROM=settings.SMTP_FROM_EMAIL,
        MAIL_PORT=settings.SMTP_PORT,
        MAIL_SERVER=settings.SMTP_HOST,
        MAIL_STARTTLS=True,
        MAIL_SSL_TLS=False,
        USE_CREDENTIALS=True,
        SUPPRESS_SEND=settings.SMTP_SUPPRESS_SEND,
    )
