"""
Repository-layer exceptions for dataset store flows.
"""

from __future__ import annotations


class DatasetStoreError(Exception):
    """Base exception for dataset store failures."""


class DatasetNotFoundError(DatasetStoreError):
    """Raised when a referenced dataset does not exist."""


class ImportNotFoundError(DatasetNotFoundError):
    """Raised when a referenced import does not belong to the dataset."""


class DatasetPersistenceError(DatasetStoreError):
    """Raised when a database write or read fails."""
