"""
app/domain/errors.py

Service-level exceptions shared by ingestion, storage and query flows.
"""

from __future__ import annotations


class DatasetServiceError(Exception):
    """Base exception for dataset ingestion and query failures."""


class ValidationError(DatasetServiceError):
    """Raised when a request option is malformed, missing or unsupported."""


class NotFoundError(DatasetServiceError):
    """Raised when a dataset, import or temp upload reference is unknown."""


class ConflictError(DatasetServiceError):
    """Raised when an import already has a job in flight."""


class ProcessingError(DatasetServiceError):
    """Raised when the underlying spreadsheet cannot be read."""


class ExpiredResourceError(DatasetServiceError):
    """Raised when a temp upload has expired or was removed."""
