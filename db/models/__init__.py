"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.data_row import DataRow
from db.models.dataset import Dataset, DatasetStatus
from db.models.dataset_import import DatasetImport

__all__ = [
    "Dataset",
    "DatasetStatus",
    "DatasetImport",
    "DataRow",
]
