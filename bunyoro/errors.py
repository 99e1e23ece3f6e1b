"""Translation of catalog errors into HTTP responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .exceptions import (
    AlreadyExists,
    CatalogError,
    Forbidden,
    InvalidCredentials,
    NotFound,
    StorageUnavailable,
    TransactionFailure,
    Unauthorized,
    ValidationError,
)

logger = logging.getLogger(__name__)

#: Status code per error type; subclasses resolve through their MRO
STATUS_CODES = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    AlreadyExists: status.HTTP_409_CONFLICT,
    InvalidCredentials: status.HTTP_401_UNAUTHORIZED,
    Unauthorized: status.HTTP_401_UNAUTHORIZED,
    Forbidden: status.HTTP_403_FORBIDDEN,
    NotFound: status.HTTP_404_NOT_FOUND,
    TransactionFailure: status.HTTP_409_CONFLICT,
    StorageUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(exc: CatalogError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
    """
    Render a catalog error as ``{"detail": message}``.

    Args:
        request (Request): Incoming request.
        exc (CatalogError): Raised error.

    Returns:
        JSONResponse: Response with the mapped status code.
    """
    status_code = status_for(exc)
    headers = None
    if isinstance(exc, (Unauthorized, InvalidCredentials)):
        headers = {"WWW-Authenticate": "Bearer"}

    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    elif isinstance(exc, TransactionFailure):
        logger.warning("%s %s aborted: %s", request.method, request.url.path, exc.message)

    return JSONResponse(
        status_code=status_code, content={"detail": exc.message}, headers=headers
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the catalog error handler on ``app``."""
    app.add_exception_handler(CatalogError, catalog_error_handler)
