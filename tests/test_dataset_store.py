"""
tests/test_dataset_store.py

Pytest tests for the dataset store adapter against a file-backed SQLite
database.
"""

from __future__ import annotations

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from db.models import DataRow
from db.models.dataset import DatasetStatus
from db.repositories import (
    DatasetMetadata,
    DatasetNotFoundError,
    DatasetStoreAdapter,
    ImportInput,
    ImportNotFoundError,
)
from db.repositories.dataset_store import _DatasetLocks

OPTIONS = {"mode": "sync", "header_index": 0}


def _rows(prefix: str, count: int) -> list[dict]:
    return [{"id": f"{prefix}{i}", "n": i} for i in range(count)]


def _count_rows(session_factory: sessionmaker[Session]) -> int:
    with session_factory() as session:
        return session.scalar(select(func.count()).select_from(DataRow))


class TestCreateDataset:
    def test_create_persists_dataset_import_and_rows(self, store: DatasetStoreAdapter) -> None:
        record = store.create_dataset(
            options=OPTIONS,
            import_input=ImportInput(filename="people--1.csv", sheet_name="people"),
            rows=_rows("a", 3),
            metadata=DatasetMetadata(name="People", user_ref="u-1"),
        )

        loaded = store.get_dataset(record.id)
        assert loaded is not None
        assert loaded.name == "People"
        assert loaded.user_ref == "u-1"
        assert loaded.status == DatasetStatus.READY
        assert loaded.options == OPTIONS
        assert [item.seq for item in loaded.imports] == [0]
        assert loaded.imports[0].row_count == 3
        assert loaded.row_count == 3
        assert store.fetch_rows(record.id) == _rows("a", 3)

    def test_name_defaults_to_filename(self, store: DatasetStoreAdapter) -> None:
        record = store.create_dataset(
            options=OPTIONS,
            import_input=ImportInput(filename="people--1.csv"),
            rows=[],
        )

        assert record.name == "people--1.csv"
        assert store.fetch_rows(record.id) == []

    def test_row_key_order_is_preserved(self, store: DatasetStoreAdapter) -> None:
        row = {"zeta": 1, "alpha": 2, "mid": {"y": 1, "x": 2}}
        record = store.create_dataset(
            options=OPTIONS,
            import_input=ImportInput(filename="order--1.csv"),
            rows=[row],
        )

        (stored,) = store.fetch_rows(record.id)
        assert list(stored) == ["zeta", "alpha", "mid"]
        assert list(stored["mid"]) == ["y", "x"]

    def test_large_row_sets_keep_position_order(self, store: DatasetStoreAdapter) -> None:
        rows = _rows("r", 2500)
        record = store.create_dataset(
            options=OPTIONS,
            import_input=ImportInput(filename="big--1.csv"),
            rows=rows,
        )

        assert store.fetch_rows(record.id) == rows

    def test_unknown_dataset_returns_none(self, store: DatasetStoreAdapter) -> None:
        assert store.get_dataset(uuid.uuid4()) is None


class TestImports:
    def test_append_keeps_existing_rows_and_orders_by_import(self, store: DatasetStoreAdapter) -> None:
        record = store.create_dataset(
            options=OPTIONS,
            import_input=ImportInput(filename="first--1.csv"),
            rows=_rows("a", 2),
        )

        updated = store.append_import(
            record.id,
            import_input=ImportInput(filename="second--1.csv"),
            rows=_rows("b", 2),
            metadata=DatasetMetadata(title="Merged"),
        )

        assert [item.seq for item in updated.imports] == [0, 1]
        assert updated.title == "Merged"
        assert updated.name == "first--1.csv"
        assert store.fetch_rows(record.id) == _rows("a", 2) + _rows("b", 2)
        assert store.fetch_rows(record.id, import_id=updated.imports[1].id) == _rows("b", 2)

    def test_replace_only_touches_target_import(
        self,
        store: DatasetStoreAdapter,
        session_factory: sessionmaker[Session],
    ) -> None:
        record = store.create_dataset(
            options=OPTIONS,
            import_input=ImportInput(filename="first--1.csv"),
            rows=_rows("a", 2),
        )
        record = store.append_import(
            record.id,
            import_input=ImportInput(filename="second--1.csv"),
            rows=_rows("b", 3),
        )
        first, second = record.imports

        updated = store.replace_import_rows(record.id, second.id, _rows("c", 1), sheet_name="Sheet2")

        assert store.fetch_rows(record.id) == _rows("a", 2) + _rows("c", 1)
        assert _count_rows(session_factory) == 3
        refreshed = updated.find_import(second.id)
        assert refreshed.row_count == 1
        assert refreshed.sheet_name == "Sheet2"
        assert updated.find_import(first.id).row_count == 2

    def test_replace_twice_does_not_accumulate(
        self,
        store: DatasetStoreAdapter,
        session_factory: sessionmaker[Session],
    ) -> None:
        record = store.create_dataset(
            options=OPTIONS,
            import_input=ImportInput(filename="first--1.csv"),
            rows=_rows("a", 4),
        )
        import_id = record.imports[0].id

        store.replace_import_rows(record.id, import_id, _rows("a", 4))
        store.replace_import_rows(record.id, import_id, _rows("a", 4))

        assert _count_rows(session_factory) == 4
        assert len(store.get_dataset(record.id).imports) == 1

    def test_replace_updates_options(self, store: DatasetStoreAdapter) -> None:
        record = store.create_dataset(
            options=OPTIONS,
            import_input=ImportInput(filename="first--1.csv"),
            rows=[],
        )

        updated = store.replace_import_rows(
            record.id,
            record.imports[0].id,
            [],
            options={"mode": "async", "header_index": 1},
        )

        assert updated.options == {"mode": "async", "header_index": 1}

    def test_find_import_by_filename(self, store: DatasetStoreAdapter) -> None:
        record = store.create_dataset(
            options=OPTIONS,
            import_input=ImportInput(filename="first--1.csv"),
            rows=[],
        )

        found = store.find_import_by_filename("first--1.csv")
        assert found is not None
        assert found.id == record.imports[0].id
        assert store.find_import_by_filename("first--1.csv", dataset_id=uuid.uuid4()) is None
        assert store.find_import_by_filename("other--1.csv") is None

    def test_unknown_targets_raise(self, store: DatasetStoreAdapter) -> None:
        record = store.create_dataset(
            options=OPTIONS,
            import_input=ImportInput(filename="first--1.csv"),
            rows=[],
        )

        with pytest.raises(DatasetNotFoundError):
            store.replace_import_rows(uuid.uuid4(), record.imports[0].id, [])
        with pytest.raises(ImportNotFoundError):
            store.replace_import_rows(record.id, uuid.uuid4(), [])
        with pytest.raises(DatasetNotFoundError):
            store.append_import(uuid.uuid4(), import_input=ImportInput(filename="x--1.csv"), rows=[])


class TestStatus:
    def test_processing_then_ready(self, store: DatasetStoreAdapter) -> None:
        record = store.create_dataset(
            options=OPTIONS,
            import_input=ImportInput(filename="async--1.csv"),
            rows=[],
            status=DatasetStatus.PROCESSING,
        )
        assert record.status == DatasetStatus.PROCESSING
        assert record.imports[0].status == DatasetStatus.PROCESSING

        ready = store.replace_import_rows(record.id, record.imports[0].id, _rows("a", 2))

        assert ready.status == DatasetStatus.READY
        assert ready.imports[0].status == DatasetStatus.READY

    def test_mark_failed_surfaces_on_dataset(self, store: DatasetStoreAdapter) -> None:
        record = store.create_dataset(
            options=OPTIONS,
            import_input=ImportInput(filename="async--1.csv"),
            rows=[],
            status=DatasetStatus.PROCESSING,
        )

        failed = store.mark_import_failed(record.id, record.imports[0].id, "corrupt workbook")

        assert failed.status == DatasetStatus.FAILED
        assert failed.error_message == "corrupt workbook"
        assert failed.imports[0].error_message == "corrupt workbook"

    def test_successful_reprocess_clears_failure(self, store: DatasetStoreAdapter) -> None:
        record = store.create_dataset(
            options=OPTIONS,
            import_input=ImportInput(filename="async--1.csv"),
            rows=[],
        )
        import_id = record.imports[0].id
        store.mark_import_failed(record.id, import_id, "corrupt workbook")

        processing = store.mark_import_processing(record.id, import_id)
        assert processing.status == DatasetStatus.PROCESSING

        ready = store.replace_import_rows(record.id, import_id, _rows("a", 1))
        assert ready.status == DatasetStatus.READY
        assert ready.error_message is None


class TestConcurrency:
    def test_readers_see_whole_row_sets_during_replacement(self, store: DatasetStoreAdapter) -> None:
        old_rows = _rows("old", 40)
        new_rows = _rows("new", 25)
        record = store.create_dataset(
            options=OPTIONS,
            import_input=ImportInput(filename="swap--1.csv"),
            rows=old_rows,
        )
        import_id = record.imports[0].id
        writes_done = threading.Event()

        def write() -> None:
            try:
                for turn in range(20):
                    store.replace_import_rows(
                        record.id,
                        import_id,
                        new_rows if turn % 2 == 0 else old_rows,
                    )
            finally:
                writes_done.set()

        def read() -> list[list[dict]]:
            observed = []
            while not writes_done.is_set():
                observed.append(store.fetch_rows(record.id, import_id=import_id))
            observed.append(store.fetch_rows(record.id, import_id=import_id))
            return observed

        with ThreadPoolExecutor(max_workers=2) as pool:
            reader = pool.submit(read)
            writer = pool.submit(write)
            writer.result()
            observed = reader.result()

        assert observed
        assert all(rows == old_rows or rows == new_rows for rows in observed)
        assert observed[-1] == old_rows

    def test_writer_locks_are_a_fixed_pool(self) -> None:
        locks = _DatasetLocks(stripes=4)
        dataset_ids = [uuid.uuid4() for _ in range(100)]

        assert len({id(locks.get(dataset_id)) for dataset_id in dataset_ids}) <= 4
        assert all(locks.get(dataset_id) is locks.get(dataset_id) for dataset_id in dataset_ids)
