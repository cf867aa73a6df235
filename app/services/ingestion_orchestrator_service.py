"""
Orchestrator for spreadsheet upload and reprocess flows.

Order of work for every request:
1. resolve and validate options (no store mutation before this succeeds),
2. resolve the temp upload to a path and check the sheet index,
3. read + normalize through the mode scheduler,
4. persist through the dataset store.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, BinaryIO, Mapping

from app.domain.errors import NotFoundError, ProcessingError, ValidationError
from app.domain.options import ProcessingMode, ProcessingOptions, resolve_options
from app.normalizers.row_normalizer import NormalizedSheet, RowNormalizer
from app.readers.spreadsheet_reader import SpreadsheetReader
from app.services.dataset_query_service import (
    DatasetQueryService,
    get_dataset_query_service,
    get_dataset_store,
    parse_uuid,
)
from app.services.mode_scheduler import JobHandle, ModeScheduler, get_mode_scheduler
from app.services.temp_upload_store import TempUploadStore, get_temp_upload_store
from db.models.dataset import DatasetStatus
from db.repositories.dataset_store import DatasetStoreAdapter
from db.repositories.types import DatasetMetadata, DatasetRecord, ImportInput, ImportRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestionResult:
    """
    Response payload plus how to render it.

    ``lines`` asks the HTTP layer to stream ``payload["rows"]`` as NDJSON.
    """

    payload: dict[str, Any]
    lines: bool = False
    job: JobHandle | None = None


@dataclass(frozen=True)
class _Target:
    """Where the rows of one request end up."""

    existing_import: ImportRecord | None = None
    dataset_id: uuid.UUID | None = None


class IngestionOrchestratorService:
    """
    Coordinates temp uploads, normalization, scheduling and persistence.
    """

    def __init__(
        self,
        *,
        store: DatasetStoreAdapter | None = None,
        temp_store: TempUploadStore | None = None,
        reader: SpreadsheetReader | None = None,
        normalizer: RowNormalizer | None = None,
        scheduler: ModeScheduler | None = None,
        query_service: DatasetQueryService | None = None,
    ) -> None:
        self._store = store or get_dataset_store()
        self._temp_store = temp_store or get_temp_upload_store()
        self._reader = reader or SpreadsheetReader()
        self._normalizer = normalizer or RowNormalizer()
        self._scheduler = scheduler or get_mode_scheduler()
        self._query_service = query_service or DatasetQueryService(store=self._store)

    def upload(
        self,
        *,
        original_name: str,
        stream: BinaryIO,
        raw_options: Mapping[str, Any],
        metadata: DatasetMetadata | None = None,
        dataset_id: str | uuid.UUID | None = None,
    ) -> IngestionResult:
        """
        Store an uploaded file and ingest it.

        Without ``dataset_id`` a sync/async upload creates a dataset; with it,
        a new import is appended to that dataset.
        """

        options = resolve_options(raw_options)
        target = _Target()
        if not _is_blank(dataset_id):
            target_id = parse_uuid(dataset_id, label="dataset_id")
            if self._store.get_dataset(target_id) is None:
                raise NotFoundError(f"Dataset not found: {dataset_id}")
            target = _Target(dataset_id=target_id)

        metadata = metadata or DatasetMetadata()
        if metadata.name is None:
            metadata = replace(metadata, name=original_name)

        stored = self._temp_store.save(original_name, stream)
        try:
            result = self._ingest(
                stored.path,
                stored.filename,
                options,
                metadata,
                target,
            )
        except ProcessingError:
            self._temp_store.delete(stored.filename)
            raise
        self._sweep_temp_uploads(stored.filename)
        return result

    def process(self, raw: Mapping[str, Any]) -> IngestionResult:
        """
        Re-ingest a previously uploaded temp file.

        An import already read from ``filename`` has its rows replaced;
        otherwise the file is ingested as a new dataset (or appended to
        ``dataset_id``).
        """

        filename = raw.get("filename")
        if _is_blank(filename):
            raise ValidationError("No file name provided.")
        filename = str(filename).strip()

        dataset_id = raw.get("dataset_id")
        target_id = None if _is_blank(dataset_id) else parse_uuid(dataset_id, label="dataset_id")

        existing = self._store.find_import_by_filename(filename, dataset_id=target_id)
        fallback: dict[str, Any] | None = None
        if existing is not None:
            dataset = self._store.get_dataset(existing.dataset_id)
            fallback = dataset.options if dataset is not None else None
        elif target_id is not None and self._store.get_dataset(target_id) is None:
            raise NotFoundError(f"Dataset not found: {dataset_id}")

        options = resolve_options(raw, fallback=fallback)
        path = self._temp_store.resolve(filename)

        result = self._ingest(
            path,
            filename,
            options,
            _metadata_from(raw),
            _Target(existing_import=existing, dataset_id=target_id),
        )
        self._sweep_temp_uploads(filename)
        return result

    # ── Modes ──────────────────────────────────────────────────────────────────

    def _ingest(
        self,
        path: Path,
        filename: str,
        options: ProcessingOptions,
        metadata: DatasetMetadata,
        target: _Target,
    ) -> IngestionResult:
        cap = self._scheduler.row_cap(options.mode, options.max)

        if options.is_preview:
            outcome = self._scheduler.run(
                ProcessingMode.PREVIEW,
                None,
                lambda: self._build_preview(path, filename, options, cap),
            )
            return IngestionResult(payload=outcome.result, job=outcome.handle)

        self._check_sheet_index(path, options.sheet_index)
        if options.mode == ProcessingMode.SYNC:
            return self._run_sync(path, filename, options, metadata, target, cap)
        return self._run_async(path, filename, options, metadata, target, cap)

    def _run_sync(
        self,
        path: Path,
        filename: str,
        options: ProcessingOptions,
        metadata: DatasetMetadata,
        target: _Target,
        cap: int,
    ) -> IngestionResult:
        existing = target.existing_import

        def work() -> tuple[DatasetRecord, uuid.UUID]:
            sheet_name, normalized = self._normalize(path, options, cap)
            if existing is not None:
                record = self._store.replace_import_rows(
                    existing.dataset_id,
                    existing.id,
                    normalized.rows,
                    options=options.to_dict(),
                    metadata=metadata,
                    sheet_index=options.sheet_index,
                    sheet_name=sheet_name,
                )
                return record, existing.id
            record = self._persist_new_import(
                filename, options, metadata, target, normalized.rows, sheet_name, DatasetStatus.READY
            )
            return record, record.imports[-1].id

        outcome = self._scheduler.run(
            ProcessingMode.SYNC,
            existing.id if existing is not None else None,
            work,
        )
        record, import_id = outcome.result
        payload = self._summary(record.id, import_id, filename, options)
        return IngestionResult(payload=payload, lines=options.lines, job=outcome.handle)

    def _run_async(
        self,
        path: Path,
        filename: str,
        options: ProcessingOptions,
        metadata: DatasetMetadata,
        target: _Target,
        cap: int,
    ) -> IngestionResult:
        existing = target.existing_import
        on_accept: Callable[[], None] | None = None
        if existing is not None:
            dataset_id, import_id = existing.dataset_id, existing.id

            def mark_processing() -> None:
                self._store.mark_import_processing(dataset_id, import_id)

            on_accept = mark_processing

        else:
            record = self._persist_new_import(
                filename, options, metadata, target, [], None, DatasetStatus.PROCESSING
            )
            dataset_id, import_id = record.id, record.imports[-1].id

        def work() -> None:
            sheet_name, normalized = self._normalize(path, options, cap)
            self._store.replace_import_rows(
                dataset_id,
                import_id,
                normalized.rows,
                options=options.to_dict(),
                metadata=metadata,
                sheet_index=options.sheet_index,
                sheet_name=sheet_name,
            )

        def on_failure(exc: Exception) -> None:
            self._store.mark_import_failed(dataset_id, import_id, str(exc) or type(exc).__name__)

        try:
            outcome = self._scheduler.run(
                ProcessingMode.ASYNC,
                import_id,
                work,
                on_accept=on_accept,
                on_failure=on_failure,
            )
        except Exception as exc:
            logger.exception("Failed to schedule async job for import=%s", import_id)
            on_failure(exc)
            raise
        payload = self._summary(dataset_id, import_id, filename, options)
        payload["job"] = {"state": outcome.handle.state, "joined": outcome.joined}
        return IngestionResult(payload=payload, lines=options.lines, job=outcome.handle)

    # ── Helpers ────────────────────────────────────────────────────────────────

    def _persist_new_import(
        self,
        filename: str,
        options: ProcessingOptions,
        metadata: DatasetMetadata,
        target: _Target,
        rows: list[dict[str, Any]],
        sheet_name: str | None,
        status: str,
    ) -> DatasetRecord:
        import_input = ImportInput(
            filename=filename,
            sheet_index=options.sheet_index,
            sheet_name=sheet_name,
        )
        if target.dataset_id is not None:
            return self._store.append_import(
                target.dataset_id,
                import_input=import_input,
                rows=rows,
                options=options.to_dict(),
                metadata=metadata,
                status=status,
            )
        return self._store.create_dataset(
            options=options.to_dict(),
            import_input=import_input,
            rows=rows,
            metadata=metadata,
            status=status,
        )

    def _normalize(
        self,
        path: Path,
        options: ProcessingOptions,
        cap: int,
    ) -> tuple[str, NormalizedSheet]:
        sheet = self._reader.read_sheet(
            path,
            options.sheet_index,
            row_limit=options.header_index + 1 + cap,
        )
        normalized = self._normalizer.normalize(
            sheet.rows,
            header_index=options.header_index,
            keys=options.keys,
            cols=options.cols,
            max_rows=cap,
        )
        return sheet.name, normalized

    def _build_preview(
        self,
        path: Path,
        filename: str,
        options: ProcessingOptions,
        cap: int,
    ) -> dict[str, Any]:
        sheets = []
        for sheet in self._reader.read_sheets(path, row_limit=options.header_index + 1 + cap):
            normalized = self._normalizer.normalize(
                sheet.rows,
                header_index=options.header_index,
                keys=options.keys,
                cols=options.cols,
                max_rows=cap,
            )
            sheets.append(
                {
                    "index": sheet.index,
                    "name": sheet.name,
                    "keys": normalized.keys,
                    "rows": normalized.rows,
                    "row_count": len(normalized.rows),
                    "warnings": normalized.warnings,
                }
            )
        return {
            "mode": ProcessingMode.PREVIEW,
            "filename": filename,
            "options": options.to_dict(),
            "sheets": sheets,
        }

    def _check_sheet_index(self, path: Path, sheet_index: int) -> None:
        count = self._reader.sheet_count(path)
        if sheet_index >= count:
            raise ValidationError(
                f"sheet_index {sheet_index} is out of range; the file has {count} sheet(s)."
            )

    def _summary(
        self,
        dataset_id: uuid.UUID,
        import_id: uuid.UUID,
        filename: str,
        options: ProcessingOptions,
    ) -> dict[str, Any]:
        payload = self._query_service.query(dataset_id)
        payload["mode"] = options.mode
        payload["filename"] = filename
        payload["import_id"] = str(import_id)
        return payload

    def _sweep_temp_uploads(self, current_filename: str) -> None:
        try:
            self._temp_store.cleanup_expired(exclude=[current_filename])
        except OSError:
            logger.exception("Temp upload sweep failed")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _metadata_from(raw: Mapping[str, Any]) -> DatasetMetadata:
    values: dict[str, str | None] = {}
    for name in ("name", "title", "description", "user_ref"):
        value = raw.get(name)
        values[name] = None if _is_blank(value) else str(value).strip()
    return DatasetMetadata(**values)


@lru_cache(maxsize=1)
def get_ingestion_orchestrator_service() -> IngestionOrchestratorService:
    return IngestionOrchestratorService(query_service=get_dataset_query_service())
