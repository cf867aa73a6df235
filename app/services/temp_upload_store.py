"""
app/services/temp_upload_store.py

Short-lived storage for uploaded spreadsheets.

Uploads are written under ``<TMP_FILE_DIR>/<SPREADSHEET_SUBDIR>`` as
``<kebab-stem>--<timestamp>.<ext>``. The generated name is the handle callers
pass back to ``PUT /process``. Files older than the expiry are removed by the
periodic cleanup job.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Iterable
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, BinaryIO

from app.config import TempUploadSettings, get_temp_upload_settings
from app.domain.errors import ExpiredResourceError, NotFoundError, ProcessingError, ValidationError
from app.readers.spreadsheet_reader import SUPPORTED_EXTENSIONS

logger = logging.getLogger(__name__)

COPY_CHUNK_BYTES = 1024 * 1024

_NON_ALNUM = re.compile(r"[^0-9a-z]+")
_GENERATED_NAME = re.compile(r"^[0-9a-z-]*--\d+(-\d+)?\.[0-9a-z]+$")


def to_kebab_case(text: str) -> str:
    return _NON_ALNUM.sub("-", text.strip().lower()).strip("-")


@dataclass(frozen=True)
class StoredUpload:
    filename: str
    path: Path
    size: int


class TempUploadStore:
    def __init__(self, settings: TempUploadSettings | None = None) -> None:
        self._settings = settings or get_temp_upload_settings()
        self._root = Path(self._settings.root_dir) / self._settings.sub_dir

    @property
    def root(self) -> Path:
        return self._root

    @property
    def settings(self) -> TempUploadSettings:
        return self._settings

    def save(self, original_name: str, stream: BinaryIO) -> StoredUpload:
        """
        Copy ``stream`` into the temp directory under a generated name.

        The copy is written to a ``.part`` file first and renamed once complete.
        """

        extension = Path(original_name or "").suffix.lower()
        if extension not in SUPPORTED_EXTENSIONS:
            raise ValidationError(
                f"Unsupported file type '{extension or original_name}'. "
                f"Allowed: {sorted(SUPPORTED_EXTENSIONS)}."
            )

        self._root.mkdir(parents=True, exist_ok=True)
        target = self._unique_target(Path(original_name).stem, extension)
        part_path = target.with_name(f"{target.name}.part")

        size = 0
        try:
            with part_path.open("wb") as handle:
                while True:
                    chunk = stream.read(COPY_CHUNK_BYTES)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self._settings.max_upload_bytes:
                        raise ValidationError("Uploaded file exceeds configured size limit.")
                    handle.write(chunk)
            if size == 0:
                raise ValidationError("Uploaded file content is empty.")
            part_path.replace(target)
        except OSError as exc:
            raise ProcessingError("Failed to write uploaded file to temp storage.") from exc
        finally:
            if part_path.exists():
                try:
                    part_path.unlink()
                except OSError:
                    logger.warning("Could not remove partial upload %s", part_path)

        logger.info("Stored temp upload %s (%d bytes)", target.name, size)
        return StoredUpload(filename=target.name, path=target, size=size)

    def resolve(self, filename: str) -> Path:
        """
        Path of a stored upload.

        Raises NotFoundError for names this store never generates and
        ExpiredResourceError when a generated upload is gone.
        """

        safe_name = self._validate_name(filename)
        path = self._root / safe_name
        if path.is_file():
            return path
        if _GENERATED_NAME.match(safe_name):
            raise ExpiredResourceError(
                f"Temp file '{safe_name}' has expired or was removed; upload it again."
            )
        raise NotFoundError(f"Temp file not found: {safe_name}")

    def check(self, filename: str) -> dict[str, Any] | None:
        """
        ``{filename, size, age}`` for a live upload, else None. ``age`` is in
        whole seconds since the file was written.
        """

        safe_name = self._validate_name(filename)
        path = self._root / safe_name
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        if not path.is_file():
            return None
        return {
            "filename": safe_name,
            "size": stat.st_size,
            "age": max(0, int(time.time() - stat.st_mtime)),
        }

    def delete(self, filename: str) -> bool:
        path = self._root / self._validate_name(filename)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Deleted temp upload %s", path.name)
        return True

    def cleanup_expired(
        self,
        *,
        now: float | None = None,
        exclude: Iterable[str] = (),
    ) -> list[str]:
        """
        Delete uploads older than the configured expiry. Returns deleted names.
        """

        if not self._root.is_dir():
            return []

        current = time.time() if now is None else now
        cutoff = current - self._settings.expire_after_seconds
        keep = set(exclude)
        deleted: list[str] = []
        for path in sorted(self._root.iterdir()):
            if not path.is_file() or path.name in keep:
                continue
            try:
                if path.stat().st_mtime > cutoff:
                    continue
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError:
                logger.exception("Failed to delete expired temp upload %s", path.name)
                continue
            deleted.append(path.name)

        if deleted:
            logger.info("Temp upload cleanup removed %d file(s)", len(deleted))
        return deleted

    def _unique_target(self, stem: str, extension: str) -> Path:
        base = f"{to_kebab_case(stem) or 'upload'}--{int(time.time()) % 1_000_000}"
        target = self._root / f"{base}{extension}"
        counter = 2
        while target.exists():
            target = self._root / f"{base}-{counter}{extension}"
            counter += 1
        return target

    @staticmethod
    def _validate_name(filename: str) -> str:
        name = (filename or "").strip()
        if not name or name in {".", ".."} or "/" in name or "\\" in name:
            raise ValidationError("filename must be a bare temp upload name.")
        return name


@lru_cache(maxsize=1)
def get_temp_upload_store() -> TempUploadStore:
    return TempUploadStore()
