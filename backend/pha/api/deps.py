"""API Dependencies."""
import logging
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status

from pha.core.auth import User, get_optional_user
from pha.core.database import get_async_session
from pha.core.exceptions import (
    ApplicationError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    # Retryable
    (StorageError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def to_http_exception(error: ApplicationError) -> HTTPException:
    """Map an application error to its HTTP status. Unmapped errors become a generic 500."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=error.message)

    logger.error(f"[API] Unhandled {type(error).__name__}: {error.message} {error.details}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error",
    )


def caller_id(user: Optional[User]) -> Optional[UUID]:
    return user.id if user else None


# Re-export for convenience
__all__ = [
    "get_async_session",
    "get_optional_user",
    "to_http_exception",
    "caller_id",
    "User",
]
