"""Authentication and authorization related routes and helpers."""

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from fastapi_limiter.depends import RateLimiter
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError as SchemaError
from sqlalchemy.orm import Session

from . import crud, models, schemas
from .core import get_settings
from .database import get_db
from .exceptions import Forbidden, InvalidCredentials, Unauthorized

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)
router = APIRouter(prefix="/auth", tags=["auth"])


def rate_limiter() -> RateLimiter:
    """Rate limit dependency configured from settings."""
    settings = get_settings()
    return RateLimiter(
        times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
    )


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Compare a plain password with its hashed value."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate a password hash using the configured context."""
    return pwd_context.hash(password)


def create_access_token(
    user: models.User, expires_delta: timedelta | None = None, scope: str = "access"
) -> str:
    """
    Create a signed JWT for ``user``.

    Args:
        user (User): Token subject.
        expires_delta (timedelta | None): Lifetime; defaults to
            ``ACCESS_TOKEN_EXPIRE_MINUTES``.
        scope (str): ``access`` or ``refresh``.

    Returns:
        str: Encoded token.
    """
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role.value,
        "scope": scope,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_refresh_token(user: models.User) -> str:
    """Create a JWT refresh token with a longer lifetime."""
    settings = get_settings()
    return create_access_token(
        user,
        expires_delta=timedelta(minutes=settings.REFRESH_TOKEN_EXPIRE_MINUTES),
        scope="refresh",
    )


def issue_tokens(user: models.User) -> schemas.Token:
    return schemas.Token(
        access_token=create_access_token(user),
        refresh_token=create_refresh_token(user),
    )


def decode_token(token: str, scope: str = "access") -> schemas.TokenData:
    """
    Verify a token's signature, expiry and scope.

    Raises:
        Unauthorized: If the token is expired, tampered, malformed or of
            another scope.

    Returns:
        TokenData: The token claims.
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
        token_data = schemas.TokenData(**payload)
    except (JWTError, SchemaError) as exc:
        raise Unauthorized() from exc
    if token_data.scope != scope:
        raise Unauthorized("Invalid token scope")
    return token_data


def authenticate(db: Session, email: str, password: str) -> models.User:
    """
    Check an email and password and stamp the login time.

    Unknown emails still pay for one hash verification, and both failure
    modes raise the same error.

    Raises:
        InvalidCredentials: If the email is unknown or the password is wrong.

    Returns:
        User: The authenticated user.
    """
    user = crud.get_user_by_email(db, email)
    if user is None:
        pwd_context.dummy_verify()
        raise InvalidCredentials()
    if not verify_password(password, user.password_hash):
        raise InvalidCredentials()
    crud.update_last_login(db, user)
    return user


def _user_from_token(db: Session, token: str, scope: str = "access") -> models.User:
    token_data = decode_token(token, scope=scope)
    try:
        user_id = token_data.user_id
    except ValueError as exc:
        raise Unauthorized() from exc
    user = crud.get_user_by_id(db, user_id)
    if user is None:
        raise Unauthorized()
    return user


def get_current_user(
    token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> models.User:
    """Dependency that returns the authenticated user from the bearer token."""
    return _user_from_token(db, token)


def get_optional_user(
    token: str | None = Depends(optional_oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.User | None:
    """Like :func:`get_current_user`, but anonymous requests get ``None``."""
    if not token:
        return None
    return _user_from_token(db, token)


def require_roles(*roles: models.UserRole):
    """
    Build a dependency that admits only users with one of ``roles``.

    Raises:
        Forbidden: If the authenticated user's role is not listed.
    """

    def checker(user: models.User = Depends(get_current_user)) -> models.User:
        if user.role not in roles:
            raise Forbidden(
                f"This action requires one of: {', '.join(r.value for r in roles)}"
            )
        return user

    return checker


def _auth_response(user: models.User) -> schemas.AuthResponse:
    tokens = issue_tokens(user)
    return schemas.AuthResponse(
        **tokens.model_dump(), user=schemas.UserOut.model_validate(user)
    )


@router.post(
    "/register",
    response_model=schemas.AuthResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limiter())],
)
def register(user_in: schemas.UserCreate, db: Session = Depends(get_db)):
    """Register a listener or artist account and sign it in."""
    hashed_password = get_password_hash(user_in.password)
    user = crud.register_user(db, user_in, hashed_password)
    return _auth_response(user)


@router.post(
    "/login",
    response_model=schemas.AuthResponse,
    dependencies=[Depends(rate_limiter())],
)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)
):
    """Authenticate with email (as ``username``) and password."""
    user = authenticate(db, form_data.username, form_data.password)
    logger.info("User %s logged in", user.id)
    return _auth_response(user)


@router.post("/refresh", response_model=schemas.Token)
def refresh_tokens(payload: schemas.TokenRefresh, db: Session = Depends(get_db)):
    """Issue a new pair of tokens based on a refresh token."""
    user = _user_from_token(db, payload.refresh_token, scope="refresh")
    return issue_tokens(user)
