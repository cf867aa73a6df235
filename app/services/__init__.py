"""
app/services package marker.
"""

from app.services.dataset_query_service import DatasetQueryService, get_dataset_query_service
from app.services.ingestion_orchestrator_service import (
    IngestionOrchestratorService,
    IngestionResult,
    get_ingestion_orchestrator_service,
)
from app.services.mode_scheduler import JobRegistry, JobState, ModeScheduler, get_mode_scheduler
from app.services.temp_upload_store import TempUploadStore, get_temp_upload_store

__all__ = [
    "DatasetQueryService",
    "get_dataset_query_service",
    "IngestionOrchestratorService",
    "IngestionResult",
    "get_ingestion_orchestrator_service",
    "JobRegistry",
    "JobState",
    "ModeScheduler",
    "get_mode_scheduler",
    "TempUploadStore",
    "get_temp_upload_store",
]
