"""
app/api/routers/ingestion.py

Spreadsheet upload, reprocess and temp-file check endpoints.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any

from fastapi import APIRouter, Depends, Form, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response, StreamingResponse

from app.api.dependencies import get_spreadsheet_upload
from app.api.errors import HANDLED_ERRORS, to_http_exception
from app.schemas.ingestion import CheckFileResponse, ProcessRequest, TempFileInfo
from app.services.ingestion_orchestrator_service import (
    IngestionOrchestratorService,
    IngestionResult,
    get_ingestion_orchestrator_service,
)
from app.services.temp_upload_store import TempUploadStore, get_temp_upload_store
from db.repositories.types import DatasetMetadata

NDJSON_MEDIA_TYPE = "application/x-ndjson"

router = APIRouter(tags=["ingestion"])


@router.post("/upload")
def upload_spreadsheet(
    file: UploadFile = Depends(get_spreadsheet_upload),
    mode: str | None = Form(default=None, description="preview | sync | async"),
    max_rows: str | None = Form(default=None, alias="max", description="Row cap, clamped to the mode ceiling"),
    sheet_index: str | None = Form(default=None),
    header_index: str | None = Form(default=None),
    keys: str | None = Form(default=None, description="Comma-separated key override"),
    cols: str | None = Form(default=None, description="JSON list of column rules"),
    lines: str | None = Form(default=None, description="Stream rows as NDJSON when truthy"),
    dataset_id: str | None = Form(default=None, description="Append to this dataset"),
    name: str | None = Form(default=None),
    title: str | None = Form(default=None),
    description: str | None = Form(default=None),
    user_ref: str | None = Form(default=None),
    orchestrator: IngestionOrchestratorService = Depends(get_ingestion_orchestrator_service),
) -> Response:
    """
    Store the upload as a temp file and ingest it in the requested mode.
    """

    raw_options = {
        "mode": mode,
        "max": max_rows,
        "sheet_index": sheet_index,
        "header_index": header_index,
        "keys": keys,
        "cols": cols,
        "lines": lines,
    }
    try:
        result = orchestrator.upload(
            original_name=file.filename or "",
            stream=file.file,
            raw_options=raw_options,
            metadata=DatasetMetadata(
                name=name,
                title=title,
                description=description,
                user_ref=user_ref,
            ),
            dataset_id=dataset_id,
        )
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    finally:
        file.file.close()

    return render_result(result)


@router.put("/process")
def process_spreadsheet(
    payload: ProcessRequest,
    orchestrator: IngestionOrchestratorService = Depends(get_ingestion_orchestrator_service),
) -> Response:
    """
    Re-ingest a temp upload. Omitted options fall back to the stored ones.
    """

    try:
        result = orchestrator.process(payload.model_dump())
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return render_result(result)


@router.get(
    "/check-file/{file_name}",
    response_model=CheckFileResponse,
    response_model_exclude_none=True,
)
def check_file(
    file_name: str,
    temp_store: TempUploadStore = Depends(get_temp_upload_store),
) -> CheckFileResponse:
    try:
        info = temp_store.check(file_name)
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
    if info is None:
        return CheckFileResponse(exists=False)
    return CheckFileResponse(exists=True, info=TempFileInfo(**info))


def render_result(result: IngestionResult) -> Response:
    payload = jsonable_encoder(result.payload)
    if result.lines and "rows" in payload:
        return StreamingResponse(_ndjson_lines(payload), media_type=NDJSON_MEDIA_TYPE)
    return JSONResponse(content=payload)


def _ndjson_lines(payload: dict[str, Any]) -> Iterator[str]:
    """
    First line: the summary without rows. Then one line per row.
    """

    summary = {key: value for key, value in payload.items() if key != "rows"}
    yield json.dumps(summary) + "\n"
    for row in payload["rows"]:
        yield json.dumps(row) + "\n"
