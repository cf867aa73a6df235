"""
app/api/dependencies.py

Shared FastAPI dependencies for request validation.
"""

from __future__ import annotations

from pathlib import Path

from fastapi import File, HTTPException, UploadFile, status

from app.api.errors import error_detail
from app.readers.spreadsheet_reader import SUPPORTED_EXTENSIONS

SPREADSHEET_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "text/tab-separated-values",
    "application/vnd.ms-excel",
    "application/vnd.ms-excel.sheet.macroenabled.12",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/octet-stream",
}


def get_spreadsheet_upload(file: UploadFile = File(...)) -> UploadFile:
    """
    Validate that the uploaded file is a supported spreadsheet by extension,
    and that any declared MIME type is one a spreadsheet may carry.
    """

    filename = (file.filename or "").strip()
    content_type = (file.content_type or "").split(";")[0].strip().lower()

    if not filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail("No file name provided."),
        )

    extension = Path(filename).suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail(
                f"Unsupported file type '{extension}'. Allowed: {sorted(SUPPORTED_EXTENSIONS)}."
            ),
        )

    if content_type and content_type not in SPREADSHEET_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail(f"Unsupported content_type '{file.content_type}'."),
        )

    return file
