"""
tests/conftest.py

Shared fixtures: a file-backed SQLite dataset store, an isolated temp upload
directory, and a mode scheduler with its own worker pool.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

import db.models  # noqa: F401 registers tables on Base.metadata
from app.config import QuerySettings, RowLimitSettings, TempUploadSettings
from app.services.dataset_query_service import DatasetQueryService
from app.services.ingestion_orchestrator_service import IngestionOrchestratorService
from app.services.mode_scheduler import JobRegistry, ModeScheduler, ThreadPoolTaskExecutor
from app.services.temp_upload_store import TempUploadStore
from db.base import Base
from db.repositories.dataset_store import DatasetStoreAdapter
from db.session import build_session_factory


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


@pytest.fixture()
def session_factory(tmp_path: Path) -> Iterator[sessionmaker[Session]]:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'datasets.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture()
def store(session_factory: sessionmaker[Session]) -> DatasetStoreAdapter:
    return DatasetStoreAdapter(session_factory=session_factory)


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture()
def temp_settings(tmp_path: Path) -> TempUploadSettings:
    return TempUploadSettings(
        root_dir=str(tmp_path / "uploads"),
        sub_dir="sheets",
        expire_after_seconds=3600,
        cleanup_interval_seconds=300,
        max_upload_bytes=5 * 1024 * 1024,
    )


@pytest.fixture()
def temp_store(temp_settings: TempUploadSettings) -> TempUploadStore:
    return TempUploadStore(temp_settings)


@pytest.fixture()
def limits() -> RowLimitSettings:
    return RowLimitSettings(
        default_preview_limit=25,
        max_preview_limit=50,
        default_limit=100_000,
        max_limit=100_000,
    )


@pytest.fixture()
def executor() -> Iterator[ThreadPoolTaskExecutor]:
    pool = ThreadPoolTaskExecutor(max_workers=2)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture()
def mode_scheduler(executor: ThreadPoolTaskExecutor, limits: RowLimitSettings) -> ModeScheduler:
    return ModeScheduler(executor=executor, registry=JobRegistry(), limits=limits)


@pytest.fixture()
def query_service(store: DatasetStoreAdapter) -> DatasetQueryService:
    return DatasetQueryService(
        store=store,
        settings=QuerySettings(default_page_size=100, max_page_size=1000),
    )


@pytest.fixture()
def orchestrator(
    store: DatasetStoreAdapter,
    temp_store: TempUploadStore,
    mode_scheduler: ModeScheduler,
    query_service: DatasetQueryService,
) -> IngestionOrchestratorService:
    return IngestionOrchestratorService(
        store=store,
        temp_store=temp_store,
        scheduler=mode_scheduler,
        query_service=query_service,
    )
