"""
Typed DTOs passed in and out of the dataset store.

The store hands back frozen snapshots instead of ORM instances so callers can
use them after the session that produced them is closed.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class ImportInput:
    """
    Source reference for one import: the temp upload handle and sheet.
    """

    filename: str
    sheet_index: int = 0
    sheet_name: str | None = None


@dataclass(frozen=True)
class DatasetMetadata:
    """
    Caller-supplied dataset metadata. ``None`` fields leave stored values as-is.
    """

    name: str | None = None
    title: str | None = None
    description: str | None = None
    user_ref: str | None = None

    def updates(self) -> dict[str, str]:
        return {
            key: value
            for key, value in (
                ("name", self.name),
                ("title", self.title),
                ("description", self.description),
                ("user_ref", self.user_ref),
            )
            if value is not None
        }


@dataclass(frozen=True)
class ImportRecord:
    id: uuid.UUID
    dataset_id: uuid.UUID
    seq: int
    dt: datetime
    filename: str
    sheet_index: int
    sheet_name: str | None
    status: str
    row_count: int
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "seq": self.seq,
            "dt": _iso(self.dt),
            "filename": self.filename,
            "sheet_index": self.sheet_index,
            "sheet_name": self.sheet_name,
            "status": self.status,
            "row_count": self.row_count,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class DatasetRecord:
    id: uuid.UUID
    name: str
    title: str | None
    description: str | None
    user_ref: str | None
    options: dict[str, Any] | None
    status: str
    error_message: str | None
    created_at: datetime
    updated_at: datetime
    imports: tuple[ImportRecord, ...] = field(default_factory=tuple)

    @property
    def row_count(self) -> int:
        return sum(item.row_count for item in self.imports)

    def find_import(self, import_id: uuid.UUID) -> ImportRecord | None:
        for item in self.imports:
            if item.id == import_id:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "user_ref": self.user_ref,
            "options": self.options,
            "status": self.status,
            "error_message": self.error_message,
            "imports": [item.to_dict() for item in self.imports],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
