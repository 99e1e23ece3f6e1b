"""Typed errors raised by the data-access and domain layers.

Every error derives from :class:`CatalogError`. Route handlers let them
propagate and :mod:`bunyoro.errors` turns them into HTTP responses.
"""

from typing import Any


class CatalogError(Exception):
    """Base class for all catalog errors."""

    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class ValidationError(CatalogError):
    """Input is malformed (bad email shape, missing stage name, bad page)."""


class AlreadyExists(CatalogError):
    """A uniqueness rule would be violated."""

    def __init__(self, entity_type: str, key: Any) -> None:
        super().__init__(f"{entity_type} {key} already exists")
        self.entity_type = entity_type
        self.key = key


class DuplicateEmail(AlreadyExists):
    """Registration with an email that is already taken."""

    def __init__(self, email: str) -> None:
        super().__init__("User with email", email)
        self.message = "User with this email already exists"
        self.args = (self.message,)


class InvalidCredentials(CatalogError):
    """Login failed. Never says whether the email or the password was wrong."""

    def __init__(self) -> None:
        super().__init__("Invalid email or password")


class Unauthorized(CatalogError):
    """Session credential is missing, expired, tampered or of the wrong scope."""

    def __init__(self, message: str = "Could not validate credentials") -> None:
        super().__init__(message)


class Forbidden(CatalogError):
    """Authenticated, but the role does not allow the operation."""


class NotFound(CatalogError):
    """The requested entity does not exist (or is not visible to the caller)."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class TransactionFailure(CatalogError):
    """A multi-statement operation aborted and was rolled back."""


class StorageUnavailable(CatalogError):
    """The database could not be reached or the pool is exhausted."""
