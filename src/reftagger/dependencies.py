"""Shared dependencies for FastAPI endpoints."""

from fastapi import HTTPException, status

from reftagger.database import get_db
from reftagger.exceptions import (
    NotFoundError,
    PartialMergeError,
    StorageUnavailableError,
    ValidationFailedError,
    VocabularyError,
)
from reftagger.settings import Settings, settings

__all__ = ["get_db", "get_settings", "status_for_error", "http_error"]


def get_settings() -> Settings:
    """Runtime settings; overridden in tests."""
    return settings


def status_for_error(exc: VocabularyError) -> int:
    if isinstance(exc, ValidationFailedError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, PartialMergeError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, StorageUnavailableError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def http_error(exc: VocabularyError) -> HTTPException:
    """Translate a domain error into the HTTPException the routers raise."""
    detail = exc.to_dict() if isinstance(exc, PartialMergeError) else str(exc)
    return HTTPException(status_code=status_for_error(exc), detail=detail)
