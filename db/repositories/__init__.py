"""
Repository layer exports.
"""

from db.repositories.dataset_store import DatasetStoreAdapter
from db.repositories.errors import (
    DatasetNotFoundError,
    DatasetPersistenceError,
    DatasetStoreError,
    ImportNotFoundError,
)
from db.repositories.types import DatasetMetadata, DatasetRecord, ImportInput, ImportRecord

__all__ = [
    "DatasetStoreAdapter",
    "DatasetMetadata",
    "DatasetRecord",
    "ImportInput",
    "ImportRecord",
    "DatasetStoreError",
    "DatasetNotFoundError",
    "ImportNotFoundError",
    "DatasetPersistenceError",
]
