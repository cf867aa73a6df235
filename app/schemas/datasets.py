"""
Schemas for dataset query responses.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class DatasetImportResponse(BaseModel):
    id: UUID
    seq: int
    dt: datetime
    filename: str
    sheet_index: int
    sheet_name: str | None = None
    status: str
    row_count: int
    error_message: str | None = None


class DatasetResponse(BaseModel):
    id: UUID
    name: str
    title: str | None = None
    description: str | None = None
    user_ref: str | None = None
    options: dict[str, Any] | None = None
    status: str
    error_message: str | None = None
    imports: list[DatasetImportResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class DatasetPageResponse(BaseModel):
    total: int = Field(description="Filtered row count before pagination")
    limit: int
    skip: int
    dataset: DatasetResponse
    rows: list[dict[str, Any]] = Field(default_factory=list)
