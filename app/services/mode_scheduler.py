"""
app/services/mode_scheduler.py

Runs ingestion work in the requested processing mode.

preview  -> inline, no job key, nothing durable
sync     -> inline, holds the import's job key for the duration
async    -> submitted to the background pool; a second async request for the
            same import joins the in-flight job, a sync one is rejected
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Protocol

from app.config import RowLimitSettings, get_row_limit_settings, get_worker_settings
from app.domain.errors import ConflictError, ValidationError
from app.domain.options import ALLOWED_MODES, ProcessingMode

logger = logging.getLogger(__name__)


class JobState:
    RECEIVED = "received"
    PREVIEWING = "previewing"
    PROCESSING = "processing"
    DEFERRED = "deferred"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED})


class TaskExecutor(Protocol):
    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        ...


class ThreadPoolTaskExecutor:
    """Process-wide pool for async ingestion jobs."""

    def __init__(self, max_workers: int) -> None:
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="dataset-ingest",
        )

    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        return self._pool.submit(task, *args, **kwargs)

    def shutdown(self, *, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)


@dataclass
class JobHandle:
    key: uuid.UUID | None
    mode: str
    state: str = JobState.RECEIVED
    future: Future | None = None
    error: str | None = None
    done: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def is_active(self) -> bool:
        return self.state not in TERMINAL_STATES

    def finish(self, state: str, error: str | None = None) -> None:
        self.state = state
        self.error = error
        self.done.set()


class JobRegistry:
    """
    Maps import id to the job currently working on it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: dict[uuid.UUID, JobHandle] = {}

    def claim(self, handle: JobHandle) -> JobHandle | None:
        """
        Register ``handle`` unless an active job holds its key.

        Returns the active job when there is one, else None.
        """

        if handle.key is None:
            return None
        with self._lock:
            existing = self._jobs.get(handle.key)
            if existing is not None and existing.is_active:
                return existing
            self._jobs[handle.key] = handle
            return None

    def release(self, handle: JobHandle) -> None:
        if handle.key is None:
            return
        with self._lock:
            if self._jobs.get(handle.key) is handle:
                del self._jobs[handle.key]


@dataclass(frozen=True)
class ScheduleOutcome:
    handle: JobHandle
    result: Any = None
    joined: bool = False

    @property
    def deferred(self) -> bool:
        return self.handle.mode == ProcessingMode.ASYNC


class ModeScheduler:
    def __init__(
        self,
        *,
        executor: TaskExecutor | None = None,
        registry: JobRegistry | None = None,
        limits: RowLimitSettings | None = None,
    ) -> None:
        self._executor = executor or get_task_executor()
        self._registry = registry or JobRegistry()
        self._limits = limits or get_row_limit_settings()

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    def row_cap(self, mode: str, requested: int | None) -> int:
        """
        Effective row cap: ``requested`` clamped to the mode ceiling, else the
        mode default. Preview caps apply per sheet.
        """

        if mode == ProcessingMode.PREVIEW:
            ceiling = self._limits.max_preview_limit
            default = self._limits.default_preview_limit
        else:
            ceiling = self._limits.max_limit
            default = self._limits.default_limit
        if requested is None:
            return default
        return max(1, min(requested, ceiling))

    def run(
        self,
        mode: str,
        job_key: uuid.UUID | None,
        work: Callable[[], Any],
        *,
        on_accept: Callable[[], None] | None = None,
        on_failure: Callable[[Exception], None] | None = None,
    ) -> ScheduleOutcome:
        if mode not in ALLOWED_MODES:
            raise ValidationError(f"Unsupported mode '{mode}'.")

        if mode == ProcessingMode.PREVIEW:
            handle = JobHandle(key=None, mode=mode, state=JobState.PREVIEWING)
            return ScheduleOutcome(handle=handle, result=self._run_inline(handle, work))

        if mode == ProcessingMode.SYNC:
            handle = JobHandle(key=job_key, mode=mode)
            active = self._registry.claim(handle)
            if active is not None:
                raise ConflictError(f"Import {job_key} already has a job in flight.")
            handle.state = JobState.PROCESSING
            try:
                if on_accept is not None:
                    on_accept()
                return ScheduleOutcome(handle=handle, result=self._run_inline(handle, work))
            finally:
                self._registry.release(handle)

        return self._defer(job_key, work, on_accept=on_accept, on_failure=on_failure)

    def _defer(
        self,
        job_key: uuid.UUID | None,
        work: Callable[[], Any],
        *,
        on_accept: Callable[[], None] | None,
        on_failure: Callable[[Exception], None] | None,
    ) -> ScheduleOutcome:
        handle = JobHandle(key=job_key, mode=ProcessingMode.ASYNC)
        active = self._registry.claim(handle)
        if active is not None:
            logger.info("Joined in-flight job for import=%s state=%s", job_key, active.state)
            return ScheduleOutcome(handle=active, joined=True)

        handle.state = JobState.DEFERRED
        try:
            if on_accept is not None:
                on_accept()
            handle.future = self._executor.submit(self._run_deferred, handle, work, on_failure)
        except Exception as exc:
            handle.finish(JobState.FAILED, str(exc))
            self._registry.release(handle)
            raise

        logger.info("Accepted async job for import=%s", job_key)
        return ScheduleOutcome(handle=handle)

    def _run_inline(self, handle: JobHandle, work: Callable[[], Any]) -> Any:
        try:
            result = work()
        except Exception as exc:
            handle.finish(JobState.FAILED, str(exc))
            raise
        handle.finish(JobState.COMPLETED)
        return result

    def _run_deferred(
        self,
        handle: JobHandle,
        work: Callable[[], Any],
        on_failure: Callable[[Exception], None] | None,
    ) -> None:
        handle.state = JobState.PROCESSING
        try:
            work()
        except Exception as exc:
            logger.exception("Async job failed for import=%s", handle.key)
            if on_failure is not None:
                try:
                    on_failure(exc)
                except Exception:
                    logger.exception("Failed to record job failure for import=%s", handle.key)
            handle.finish(JobState.FAILED, str(exc))
        else:
            logger.info("Async job completed for import=%s", handle.key)
            handle.finish(JobState.COMPLETED)
        finally:
            self._registry.release(handle)


@lru_cache(maxsize=1)
def get_task_executor() -> ThreadPoolTaskExecutor:
    return ThreadPoolTaskExecutor(max_workers=get_worker_settings().async_workers)


@lru_cache(maxsize=1)
def get_mode_scheduler() -> ModeScheduler:
    return ModeScheduler()
