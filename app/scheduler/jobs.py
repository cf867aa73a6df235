"""
app/scheduler/jobs.py

APScheduler-based housekeeping for temporary uploads.

Schedule
--------
  temp_upload_cleanup - every TMP_CLEANUP_INTERVAL_SECONDS (default 300 s);
                        deletes temp uploads older than
                        DELETE_TMP_FILES_AFTER_SECONDS (default 3600 s)

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.services.temp_upload_store import TempUploadStore, get_temp_upload_store

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Job: temp upload cleanup
# ---------------------------------------------------------------------------


def run_temp_upload_cleanup(temp_store: TempUploadStore | None = None) -> int:
    """
    Delete expired temp uploads. Returns the number of files removed.
    """
    store = temp_store or get_temp_upload_store()
    logger.info("Scheduler: temp_upload_cleanup starting in %s", store.root)
    deleted = store.cleanup_expired()
    logger.info("Scheduler: temp_upload_cleanup removed %d file(s)", len(deleted))
    return len(deleted)


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler(temp_store: TempUploadStore | None = None) -> BackgroundScheduler:
    """
    Build and register all periodic jobs.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    The caller must call ``.start()`` and ``.shutdown(wait=True)`` at the
    appropriate lifecycle points.
    """
    store = temp_store or get_temp_upload_store()
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        run_temp_upload_cleanup,
        trigger="interval",
        seconds=store.settings.cleanup_interval_seconds,
        kwargs={"temp_store": store},
        id="temp_upload_cleanup",
        name="Temp upload cleanup",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    return scheduler
