"""
app/domain package marker.
"""

from app.domain.errors import (
    ConflictError,
    DatasetServiceError,
    ExpiredResourceError,
    NotFoundError,
    ProcessingError,
    ValidationError,
)
from app.domain.options import ColumnSpec, ProcessingMode, ProcessingOptions, resolve_options

__all__ = [
    "ColumnSpec",
    "ConflictError",
    "DatasetServiceError",
    "ExpiredResourceError",
    "NotFoundError",
    "ProcessingError",
    "ProcessingOptions",
    "ProcessingMode",
    "ValidationError",
    "resolve_options",
]
