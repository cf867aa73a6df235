"""
app/api/routers/welcome.py

API metadata and liveness endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter

from app.schemas.welcome import HealthResponse, RouteInfo, WelcomeResponse

API_TITLE = "Spreadsheet Datasets API"
API_DESCRIPTION = (
    "Upload CSV or Excel spreadsheets, normalize their rows into datasets, "
    "and query them with filters, sorting and pagination."
)
API_VERSION = "1.0.0"

ROUTES: tuple[RouteInfo, ...] = (
    RouteInfo(method="GET", path="/", description="API metadata and route listing"),
    RouteInfo(
        method="POST",
        path="/upload",
        description="Upload a spreadsheet (multipart) and ingest it in preview, sync or async mode",
    ),
    RouteInfo(
        method="PUT",
        path="/process",
        description="Re-ingest a previously uploaded temp file with new or stored options",
    ),
    RouteInfo(
        method="GET",
        path="/dataset/{dataset_id}",
        description="Query dataset rows with f, v, o, sort, dir, start, limit and import_id",
    ),
    RouteInfo(
        method="GET",
        path="/check-file/{file_name}",
        description="Check whether a temp upload is still available for reprocessing",
    ),
    RouteInfo(method="GET", path="/health", description="Liveness probe"),
)

router = APIRouter(tags=["meta"])


@router.get("/", response_model=WelcomeResponse)
def welcome() -> WelcomeResponse:
    return WelcomeResponse(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        routes=list(ROUTES),
    )


@router.get("/health", response_model=HealthResponse)
def healthcheck() -> HealthResponse:
    return HealthResponse(status="ok")
