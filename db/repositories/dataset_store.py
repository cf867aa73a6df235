"""
Dataset store adapter: transactional persistence of datasets, imports and rows.

Every public operation runs in its own transaction. Row replacement for an
import is a delete + insert inside one transaction, so concurrent readers see
either the previous row set or the new one. Writers touching the same dataset
are additionally serialized in-process by a lock striped on the dataset id.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from db.base import utcnow
from db.models.data_row import DataRow
from db.models.dataset import Dataset, DatasetStatus
from db.models.dataset_import import DatasetImport
from db.repositories.errors import (
    DatasetNotFoundError,
    DatasetPersistenceError,
    ImportNotFoundError,
)
from db.repositories.types import DatasetMetadata, DatasetRecord, ImportInput, ImportRecord

logger = logging.getLogger(__name__)

ROW_INSERT_BATCH_SIZE = 1000
LOCK_STRIPES = 64


class _DatasetLocks:
    """Fixed pool of writer locks, striped by dataset id."""

    def __init__(self, stripes: int = LOCK_STRIPES) -> None:
        self._locks = tuple(threading.Lock() for _ in range(stripes))

    def get(self, dataset_id: uuid.UUID) -> threading.Lock:
        return self._locks[dataset_id.int % len(self._locks)]


class DatasetStoreAdapter:
    def __init__(self, *, session_factory: sessionmaker[Session] | None = None) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory
        self._locks = _DatasetLocks()

    # ── Writes ─────────────────────────────────────────────────────────────────

    def create_dataset(
        self,
        *,
        options: dict[str, Any],
        import_input: ImportInput,
        rows: Sequence[dict[str, Any]],
        metadata: DatasetMetadata | None = None,
        status: str = DatasetStatus.READY,
    ) -> DatasetRecord:
        """
        Create a dataset with its first import and that import's rows.

        ``name`` falls back to the import filename when metadata omits it.
        """

        metadata = metadata or DatasetMetadata()
        dataset_id = uuid.uuid4()
        with self._locks.get(dataset_id), self._transaction("create dataset") as session:
            dataset = Dataset(
                id=dataset_id,
                name=metadata.name or import_input.filename,
                title=metadata.title,
                description=metadata.description,
                user_ref=metadata.user_ref,
                options=dict(options),
                status=status,
            )
            session.add(dataset)
            dataset_import = self._new_import(dataset, import_input, rows, status=status, seq=0)
            session.flush()
            self._insert_rows(session, dataset.id, dataset_import.id, rows)
            record = _to_dataset_record(dataset)

        logger.info(
            "Created dataset id=%s import=%s rows=%d status=%s",
            record.id,
            dataset_import.id,
            len(rows),
            status,
        )
        return record

    def append_import(
        self,
        dataset_id: uuid.UUID,
        *,
        import_input: ImportInput,
        rows: Sequence[dict[str, Any]],
        options: dict[str, Any] | None = None,
        metadata: DatasetMetadata | None = None,
        status: str = DatasetStatus.READY,
    ) -> DatasetRecord:
        """
        Add a new import to an existing dataset, keeping all other imports' rows.
        """

        with self._locks.get(dataset_id), self._transaction("append import") as session:
            dataset = self._load_dataset(session, dataset_id)
            next_seq = session.scalar(
                select(func.coalesce(func.max(DatasetImport.seq), -1) + 1).where(
                    DatasetImport.dataset_id == dataset_id
                )
            )
            dataset_import = self._new_import(
                dataset, import_input, rows, status=status, seq=int(next_seq or 0)
            )
            self._apply_dataset_updates(dataset, options=options, metadata=metadata)
            session.flush()
            self._insert_rows(session, dataset.id, dataset_import.id, rows)
            _refresh_dataset_status(dataset)
            dataset.updated_at = utcnow()
            record = _to_dataset_record(dataset)

        logger.info(
            "Appended import=%s to dataset id=%s rows=%d",
            dataset_import.id,
            dataset_id,
            len(rows),
        )
        return record

    def replace_import_rows(
        self,
        dataset_id: uuid.UUID,
        import_id: uuid.UUID,
        rows: Sequence[dict[str, Any]],
        *,
        options: dict[str, Any] | None = None,
        metadata: DatasetMetadata | None = None,
        sheet_index: int | None = None,
        sheet_name: str | None = None,
    ) -> DatasetRecord:
        """
        Atomically swap the rows of one import. Other imports are untouched.

        The import timestamp is refreshed and its status set to ready.
        """

        with self._locks.get(dataset_id), self._transaction("replace import rows") as session:
            dataset = self._load_dataset(session, dataset_id)
            dataset_import = _find_loaded_import(dataset, import_id)

            session.execute(delete(DataRow).where(DataRow.import_id == import_id))
            self._insert_rows(session, dataset_id, import_id, rows)

            now = utcnow()
            dataset_import.dt = now
            dataset_import.row_count = len(rows)
            dataset_import.status = DatasetStatus.READY
            dataset_import.error_message = None
            if sheet_index is not None:
                dataset_import.sheet_index = sheet_index
            if sheet_name is not None:
                dataset_import.sheet_name = sheet_name

            self._apply_dataset_updates(dataset, options=options, metadata=metadata)
            _refresh_dataset_status(dataset)
            dataset.updated_at = now
            record = _to_dataset_record(dataset)

        logger.info(
            "Replaced rows for dataset id=%s import=%s rows=%d",
            dataset_id,
            import_id,
            len(rows),
        )
        return record

    def mark_import_processing(self, dataset_id: uuid.UUID, import_id: uuid.UUID) -> DatasetRecord:
        with self._locks.get(dataset_id), self._transaction("mark import processing") as session:
            dataset = self._load_dataset(session, dataset_id)
            dataset_import = _find_loaded_import(dataset, import_id)
            dataset_import.status = DatasetStatus.PROCESSING
            dataset_import.error_message = None
            _refresh_dataset_status(dataset)
            dataset.updated_at = utcnow()
            return _to_dataset_record(dataset)

    def mark_import_failed(
        self,
        dataset_id: uuid.UUID,
        import_id: uuid.UUID,
        error_message: str,
    ) -> DatasetRecord:
        """
        Record a background failure on the import and surface it on the dataset.
        """

        with self._locks.get(dataset_id), self._transaction("mark import failed") as session:
            dataset = self._load_dataset(session, dataset_id)
            dataset_import = _find_loaded_import(dataset, import_id)
            dataset_import.status = DatasetStatus.FAILED
            dataset_import.error_message = error_message
            dataset.status = DatasetStatus.FAILED
            dataset.error_message = error_message
            dataset.updated_at = utcnow()
            return _to_dataset_record(dataset)

    # ── Reads ──────────────────────────────────────────────────────────────────

    def get_dataset(self, dataset_id: uuid.UUID) -> DatasetRecord | None:
        with self._transaction("load dataset") as session:
            dataset = session.scalar(
                select(Dataset)
                .options(selectinload(Dataset.imports))
                .where(Dataset.id == dataset_id)
            )
            if dataset is None:
                return None
            return _to_dataset_record(dataset)

    def find_import_by_filename(
        self,
        filename: str,
        *,
        dataset_id: uuid.UUID | None = None,
    ) -> ImportRecord | None:
        """
        Return the most recently touched import that was read from ``filename``.
        """

        with self._transaction("find import") as session:
            stmt = select(DatasetImport).where(DatasetImport.filename == filename)
            if dataset_id is not None:
                stmt = stmt.where(DatasetImport.dataset_id == dataset_id)
            stmt = stmt.order_by(DatasetImport.updated_at.desc(), DatasetImport.seq.desc()).limit(1)
            dataset_import = session.scalar(stmt)
            if dataset_import is None:
                return None
            return _to_import_record(dataset_import)

    def fetch_rows(
        self,
        dataset_id: uuid.UUID,
        *,
        import_id: uuid.UUID | None = None,
    ) -> list[dict[str, Any]]:
        """
        Rows of a dataset in import order, then row position.
        """

        with self._transaction("fetch rows") as session:
            stmt = (
                select(DataRow.data)
                .join(DatasetImport, DatasetImport.id == DataRow.import_id)
                .where(DataRow.dataset_id == dataset_id)
            )
            if import_id is not None:
                stmt = stmt.where(DataRow.import_id == import_id)
            stmt = stmt.order_by(DatasetImport.seq, DataRow.position)
            return [dict(data) for data in session.scalars(stmt).all()]

    # ── Internals ──────────────────────────────────────────────────────────────

    @contextmanager
    def _transaction(self, action: str) -> Iterator[Session]:
        try:
            with self._session_factory() as session:
                with session.begin():
                    yield session
        except SQLAlchemyError as exc:
            logger.exception("Dataset store failed to %s", action)
            raise DatasetPersistenceError(f"Failed to {action}.") from exc

    @staticmethod
    def _load_dataset(session: Session, dataset_id: uuid.UUID) -> Dataset:
        dataset = session.scalar(
            select(Dataset)
            .options(selectinload(Dataset.imports))
            .where(Dataset.id == dataset_id)
        )
        if dataset is None:
            raise DatasetNotFoundError(f"Dataset not found: {dataset_id}")
        return dataset

    @staticmethod
    def _new_import(
        dataset: Dataset,
        import_input: ImportInput,
        rows: Sequence[dict[str, Any]],
        *,
        status: str,
        seq: int,
    ) -> DatasetImport:
        dataset_import = DatasetImport(
            id=uuid.uuid4(),
            seq=seq,
            dt=utcnow(),
            filename=import_input.filename,
            sheet_index=import_input.sheet_index,
            sheet_name=import_input.sheet_name,
            status=status,
            row_count=len(rows),
        )
        dataset.imports.append(dataset_import)
        return dataset_import

    @staticmethod
    def _apply_dataset_updates(
        dataset: Dataset,
        *,
        options: dict[str, Any] | None,
        metadata: DatasetMetadata | None,
    ) -> None:
        if options is not None:
            dataset.options = dict(options)
        if metadata is not None:
            for key, value in metadata.updates().items():
                setattr(dataset, key, value)

    @staticmethod
    def _insert_rows(
        session: Session,
        dataset_id: uuid.UUID,
        import_id: uuid.UUID,
        rows: Sequence[dict[str, Any]],
    ) -> None:
        if not rows:
            return
        for chunk_start in range(0, len(rows), ROW_INSERT_BATCH_SIZE):
            chunk = rows[chunk_start : chunk_start + ROW_INSERT_BATCH_SIZE]
            session.execute(
                insert(DataRow),
                [
                    {
                        "dataset_id": dataset_id,
                        "import_id": import_id,
                        "position": chunk_start + offset,
                        "data": row,
                    }
                    for offset, row in enumerate(chunk)
                ],
            )


def _find_loaded_import(dataset: Dataset, import_id: uuid.UUID) -> DatasetImport:
    for dataset_import in dataset.imports:
        if dataset_import.id == import_id:
            return dataset_import
    raise ImportNotFoundError(f"Import {import_id} not found in dataset {dataset.id}")


def _refresh_dataset_status(dataset: Dataset) -> None:
    statuses = {item.status for item in dataset.imports}
    if DatasetStatus.FAILED in statuses:
        dataset.status = DatasetStatus.FAILED
        failed = [item for item in dataset.imports if item.status == DatasetStatus.FAILED]
        dataset.error_message = failed[-1].error_message
    elif DatasetStatus.PROCESSING in statuses:
        dataset.status = DatasetStatus.PROCESSING
        dataset.error_message = None
    else:
        dataset.status = DatasetStatus.READY
        dataset.error_message = None


def _to_import_record(dataset_import: DatasetImport) -> ImportRecord:
    return ImportRecord(
        id=dataset_import.id,
        dataset_id=dataset_import.dataset_id,
        seq=dataset_import.seq,
        dt=dataset_import.dt,
        filename=dataset_import.filename,
        sheet_index=dataset_import.sheet_index,
        sheet_name=dataset_import.sheet_name,
        status=dataset_import.status,
        row_count=dataset_import.row_count,
        error_message=dataset_import.error_message,
    )


def _to_dataset_record(dataset: Dataset) -> DatasetRecord:
    return DatasetRecord(
        id=dataset.id,
        name=dataset.name,
        title=dataset.title,
        description=dataset.description,
        user_ref=dataset.user_ref,
        options=dict(dataset.options) if dataset.options is not None else None,
        status=dataset.status,
        error_message=dataset.error_message,
        created_at=dataset.created_at,
        updated_at=dataset.updated_at,
        imports=tuple(_to_import_record(item) for item in sorted(dataset.imports, key=lambda i: i.seq)),
    )
