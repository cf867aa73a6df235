"""
app/api/routers/datasets.py

Dataset query endpoint.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from app.api.errors import HANDLED_ERRORS, to_http_exception
from app.schemas.datasets import DatasetPageResponse
from app.services.dataset_query_service import DatasetQueryService, get_dataset_query_service

router = APIRouter(tags=["datasets"])


@router.get("/dataset/{dataset_id}", response_model=DatasetPageResponse)
def query_dataset(
    dataset_id: str,
    f: str | None = Query(default=None, description="Filter field (dotted path)"),
    v: str | None = Query(default=None, description="Filter value; JSON literal or raw text"),
    o: str = Query(default="eq", description="Operator: eq, ne, gt, gte, lt, lte, in, nin, like, rgx, rcs, starts, ends"),
    sort: str | None = Query(default=None, description="Sort field"),
    dir: str | None = Query(default=None, description="asc | desc"),
    start: int = Query(default=0, ge=0, description="0-based offset"),
    limit: int | None = Query(default=None, ge=1, description="Page size"),
    import_id: str | None = Query(default=None, description="Restrict to one import's rows"),
    query_service: DatasetQueryService = Depends(get_dataset_query_service),
) -> dict[str, Any]:
    """
    Filter, sort and paginate a dataset. ``total`` is the filtered count.
    """

    try:
        return query_service.query(
            dataset_id,
            field=f,
            value=v,
            operator=o,
            sort=sort,
            direction=dir,
            start=start,
            limit=limit,
            import_id=import_id,
        )
    except HANDLED_ERRORS as exc:
        raise to_http_exception(exc) from exc
