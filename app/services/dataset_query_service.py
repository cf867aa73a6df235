"""
app/services/dataset_query_service.py

Dataset read path: load a dataset's rows from the store and run the query
engine over them.
"""

from __future__ import annotations

import logging
import uuid
from functools import lru_cache
from typing import Any

from app.config import QuerySettings, get_query_settings
from app.domain.errors import NotFoundError, ValidationError
from app.services.query_engine import Predicate, SortSpec, build_predicate, build_sort, query_rows
from db.repositories.dataset_store import DatasetStoreAdapter

logger = logging.getLogger(__name__)


class DatasetQueryService:
    def __init__(
        self,
        *,
        store: DatasetStoreAdapter | None = None,
        settings: QuerySettings | None = None,
    ) -> None:
        self._store = store or get_dataset_store()
        self._settings = settings or get_query_settings()

    @property
    def settings(self) -> QuerySettings:
        return self._settings

    def query(
        self,
        dataset_id: uuid.UUID | str,
        *,
        field: str | None = None,
        value: str | None = None,
        operator: str = "eq",
        sort: str | None = None,
        direction: str | None = None,
        start: int = 0,
        limit: int | None = None,
        import_id: uuid.UUID | str | None = None,
    ) -> dict[str, Any]:
        """
        Return one page: ``{total, limit, skip, dataset, rows}``.
        """

        dataset_uuid = parse_uuid(dataset_id, label="dataset_id")
        import_uuid = parse_uuid(import_id, label="import_id") if import_id is not None else None

        predicate: Predicate | None = None
        if field is not None and field.strip():
            predicate = build_predicate(field, operator, value)
        sort_spec: SortSpec | None = build_sort(sort, direction)
        page_size = self._resolve_limit(limit)
        if start < 0:
            raise ValidationError("start must be >= 0.")

        dataset = self._store.get_dataset(dataset_uuid)
        if dataset is None:
            raise NotFoundError(f"Dataset not found: {dataset_id}")
        if import_uuid is not None and dataset.find_import(import_uuid) is None:
            raise NotFoundError(f"Import {import_uuid} not found in dataset {dataset_uuid}")

        rows = self._store.fetch_rows(dataset_uuid, import_id=import_uuid)
        result = query_rows(rows, predicate=predicate, sort=sort_spec, start=start, limit=page_size)

        logger.debug(
            "Queried dataset id=%s filter=%s total=%d page=%d",
            dataset_uuid,
            predicate,
            result.total,
            len(result.rows),
        )
        return {
            "total": result.total,
            "limit": page_size,
            "skip": start,
            "dataset": dataset.to_dict(),
            "rows": result.rows,
        }

    def _resolve_limit(self, limit: int | None) -> int:
        if limit is None:
            return self._settings.default_page_size
        if limit < 1:
            raise ValidationError("limit must be >= 1.")
        if limit > self._settings.max_page_size:
            raise ValidationError(f"limit must be <= {self._settings.max_page_size}.")
        return limit


def parse_uuid(value: uuid.UUID | str, *, label: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except ValueError as exc:
        raise ValidationError(f"{label} must be a valid UUID.") from exc


@lru_cache(maxsize=1)
def get_dataset_store() -> DatasetStoreAdapter:
    return DatasetStoreAdapter()


@lru_cache(maxsize=1)
def get_dataset_query_service() -> DatasetQueryService:
    return DatasetQueryService()
