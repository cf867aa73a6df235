"""
Schemas for upload, reprocess and temp-file endpoints.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ProcessRequest(BaseModel):
    """
    Reprocess payload. Option fields left out fall back to the options stored
    on the dataset that already references ``filename``.
    """

    filename: str | None = Field(default=None, description="Temp upload name returned by /upload")
    mode: str | None = Field(default=None, description="preview | sync | async")
    max: int | str | None = None
    sheet_index: int | str | None = None
    header_index: int | str | None = None
    keys: str | list[str] | None = Field(default=None, description="Comma-separated or list")
    cols: str | list[dict[str, Any]] | None = Field(default=None, description="JSON string or list")
    lines: bool | int | str | None = None
    dataset_id: str | None = None
    name: str | None = None
    title: str | None = None
    description: str | None = None
    user_ref: str | None = None


class TempFileInfo(BaseModel):
    filename: str
    size: int
    age: int = Field(description="Seconds since upload")


class CheckFileResponse(BaseModel):
    exists: bool
    info: TempFileInfo | None = None
