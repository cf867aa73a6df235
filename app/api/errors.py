"""
app/api/errors.py

Maps service and store exceptions to HTTP errors.

Every error body has the shape ``{"valid": false, "message": ...}``.
"""

from __future__ import annotations

from fastapi import HTTPException, status

from app.domain.errors import (
    ConflictError,
    DatasetServiceError,
    ExpiredResourceError,
    NotFoundError,
    ProcessingError,
    ValidationError,
)
from db.repositories.errors import DatasetNotFoundError, DatasetPersistenceError, DatasetStoreError

_STATUS_BY_ERROR: tuple[tuple[type[Exception], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (DatasetNotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ProcessingError, status.HTTP_406_NOT_ACCEPTABLE),
    (ExpiredResourceError, status.HTTP_410_GONE),
    (DatasetPersistenceError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)

HANDLED_ERRORS = (DatasetServiceError, DatasetStoreError)


def error_detail(message: str) -> dict[str, object]:
    return {"valid": False, "message": message}


def to_http_exception(exc: Exception) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            message = str(exc)
            if isinstance(exc, DatasetPersistenceError):
                message = "Unable to persist dataset changes."
            return HTTPException(status_code=status_code, detail=error_detail(message))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=error_detail("Unexpected dataset service error."),
    )
