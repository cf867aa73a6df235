"""
tests/test_temp_upload_store.py

Pytest tests for temp upload naming, lookup and expiry.
"""

from __future__ import annotations

import io
import os
import re
import time

import pytest

from app.config import TempUploadSettings
from app.domain.errors import ExpiredResourceError, NotFoundError, ValidationError
from app.services.temp_upload_store import TempUploadStore, to_kebab_case

CSV = b"name,age\nAlice,30\n"


def test_to_kebab_case() -> None:
    assert to_kebab_case("  My Report (Final) ") == "my-report-final"
    assert to_kebab_case("Q3_sales.v2") == "q3-sales-v2"
    assert to_kebab_case("***") == ""


class TestSave:
    def test_generated_name_format(self, temp_store: TempUploadStore) -> None:
        stored = temp_store.save("My Report (Final).CSV", io.BytesIO(CSV))

        assert re.fullmatch(r"my-report-final--\d{1,6}\.csv", stored.filename)
        assert stored.path.read_bytes() == CSV
        assert stored.size == len(CSV)
        assert stored.path.parent == temp_store.root

    def test_names_are_unique(self, temp_store: TempUploadStore) -> None:
        first = temp_store.save("data.csv", io.BytesIO(CSV))
        second = temp_store.save("data.csv", io.BytesIO(CSV))

        assert first.filename != second.filename
        assert first.path.is_file()
        assert second.path.is_file()

    def test_blank_stem_falls_back(self, temp_store: TempUploadStore) -> None:
        stored = temp_store.save("???.xlsx", io.BytesIO(b"PK"))

        assert stored.filename.startswith("upload--")

    def test_unsupported_extension(self, temp_store: TempUploadStore) -> None:
        with pytest.raises(ValidationError):
            temp_store.save("notes.txt", io.BytesIO(b"hello"))

    def test_empty_upload_leaves_nothing_behind(self, temp_store: TempUploadStore) -> None:
        with pytest.raises(ValidationError):
            temp_store.save("data.csv", io.BytesIO(b""))

        assert list(temp_store.root.iterdir()) == []

    def test_oversized_upload(self, tmp_path) -> None:
        store = TempUploadStore(TempUploadSettings(root_dir=str(tmp_path), max_upload_bytes=8))

        with pytest.raises(ValidationError):
            store.save("data.csv", io.BytesIO(CSV))
        assert list(store.root.iterdir()) == []


class TestLookup:
    def test_resolve_and_check_live_upload(self, temp_store: TempUploadStore) -> None:
        stored = temp_store.save("data.csv", io.BytesIO(CSV))

        assert temp_store.resolve(stored.filename) == stored.path
        info = temp_store.check(stored.filename)
        assert info["filename"] == stored.filename
        assert info["size"] == len(CSV)
        assert info["age"] >= 0

    def test_generated_name_that_is_gone_has_expired(self, temp_store: TempUploadStore) -> None:
        stored = temp_store.save("data.csv", io.BytesIO(CSV))
        assert temp_store.delete(stored.filename)

        with pytest.raises(ExpiredResourceError):
            temp_store.resolve(stored.filename)
        assert temp_store.check(stored.filename) is None
        assert not temp_store.delete(stored.filename)

    def test_foreign_name_is_not_found(self, temp_store: TempUploadStore) -> None:
        with pytest.raises(NotFoundError):
            temp_store.resolve("quarterly report.xlsx")

    @pytest.mark.parametrize("name", ["", "..", "../secret.csv", "a/b--1.csv", "a\\b--1.csv"])
    def test_path_like_names_are_rejected(self, temp_store: TempUploadStore, name: str) -> None:
        with pytest.raises(ValidationError):
            temp_store.resolve(name)


class TestCleanup:
    def test_removes_only_expired_uploads(self, temp_store: TempUploadStore) -> None:
        old = temp_store.save("old.csv", io.BytesIO(CSV))
        fresh = temp_store.save("fresh.csv", io.BytesIO(CSV))
        two_hours_ago = time.time() - 7200
        os.utime(old.path, (two_hours_ago, two_hours_ago))

        deleted = temp_store.cleanup_expired()

        assert deleted == [old.filename]
        assert not old.path.exists()
        assert fresh.path.exists()

    def test_excluded_uploads_survive(self, temp_store: TempUploadStore) -> None:
        first = temp_store.save("first.csv", io.BytesIO(CSV))
        second = temp_store.save("second.csv", io.BytesIO(CSV))

        deleted = temp_store.cleanup_expired(now=time.time() + 7200, exclude=[first.filename])

        assert deleted == [second.filename]
        assert first.path.exists()

    def test_missing_root_is_a_no_op(self, tmp_path) -> None:
        store = TempUploadStore(TempUploadSettings(root_dir=str(tmp_path / "nowhere")))

        assert store.cleanup_expired() == []
