"""
app/schemas package marker.
"""

from app.schemas.datasets import DatasetImportResponse, DatasetPageResponse, DatasetResponse
from app.schemas.ingestion import (
    CheckFileResponse,
    ProcessRequest,
    TempFileInfo,
)
from app.schemas.welcome import HealthResponse, RouteInfo, WelcomeResponse

__all__ = [
    "CheckFileResponse",
    "DatasetImportResponse",
    "DatasetPageResponse",
    "DatasetResponse",
    "HealthResponse",
    "ProcessRequest",
    "RouteInfo",
    "TempFileInfo",
    "WelcomeResponse",
]
