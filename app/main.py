from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI

from app.api.routers.welcome import API_DESCRIPTION, API_TITLE, API_VERSION


def _validate_env() -> None:
    """
    Validate required environment variables at startup.

    Runs before any service or database connection is initialised.
    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.

    Rules:
    - A PostgreSQL URL must be configured (SQLite is not permitted).
    - Numeric tuning variables, when set, must be positive integers.
    """

    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    # --- Database URL ---------------------------------------------------
    urls = [
        os.getenv(name, "").strip()
        for name in ("DATABASE_URL", "CLOUD_DATABASE_URL", "LOCAL_DATABASE_URL")
    ]
    configured = [url for url in urls if url]
    if not configured:
        errors.append(
            "No database URL configured. Set DATABASE_URL, CLOUD_DATABASE_URL or "
            "LOCAL_DATABASE_URL."
        )
    elif configured[0].startswith("sqlite"):
        errors.append("SQLite database URLs are not permitted; use PostgreSQL.")

    # --- Numeric settings -----------------------------------------------
    for name in (
        "DEFAULT_PREVIEW_LIMIT",
        "MAX_PREVIEW_LIMIT",
        "DEFAULT_LIMIT",
        "MAX_LIMIT",
        "DELETE_TMP_FILES_AFTER_SECONDS",
        "TMP_CLEANUP_INTERVAL_SECONDS",
        "UPLOAD_MAX_BYTES",
        "ASYNC_WORKERS",
        "DEFAULT_PAGE_SIZE",
        "MAX_PAGE_SIZE",
    ):
        raw = os.getenv(name)
        if raw is None or not raw.strip():
            continue
        try:
            if int(raw) < 1:
                raise ValueError
        except ValueError:
            errors.append(f"{name}='{raw}' is not valid. It must be a positive integer.")

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Run SELECT 1 on the dataset store engine. Raises RuntimeError if unreachable."""
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    from db.session import get_engine

    try:
        with get_engine().connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise RuntimeError("Dataset store database is unavailable.") from exc


def _check_schema() -> None:
    """
    The datasets, dataset_imports and data_rows tables must already exist.

    Startup never creates tables; run ``alembic upgrade head`` first.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401 registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    existing = set(sa_inspect(get_engine()).get_table_names())
    missing = sorted(set(Base.metadata.tables) - existing)
    if not missing:
        return

    listed = ", ".join(missing)
    logging.getLogger(__name__).critical(
        "Dataset tables missing: %s. Run 'alembic upgrade head' and restart.",
        listed,
    )
    raise RuntimeError(f"Dataset tables missing ({listed}). Run migrations and restart.")


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Check the DB, start temp cleanup on boot; stop it and the worker pool on exit."""
    log = logging.getLogger(__name__)
    _check_db()
    log.info("Database connectivity confirmed")
    _check_schema()
    log.info("Database schema validated")

    from app.scheduler.jobs import build_scheduler
    from app.services.mode_scheduler import get_task_executor

    scheduler = build_scheduler()
    scheduler.start()
    log.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
    try:
        yield
    finally:
        scheduler.shutdown(wait=True)
        log.info("Scheduler shut down")
        get_task_executor().shutdown(wait=True)
        log.info("Async ingestion pool shut down")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        lifespan=_lifespan,
    )

    from app.api.routers import datasets_router, ingestion_router, welcome_router

    application.include_router(welcome_router)
    application.include_router(ingestion_router)
    application.include_router(datasets_router)

    return application


app = create_app()
