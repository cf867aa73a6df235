"""
tests/test_mode_scheduler.py

Pytest unit tests for processing-mode dispatch, row caps and the in-flight
job registry.
"""

from __future__ import annotations

import threading
import uuid
from concurrent.futures import Future
from typing import Any, Callable

import pytest

from app.config import RowLimitSettings
from app.domain.errors import ConflictError, ValidationError
from app.domain.options import ProcessingMode
from app.services.mode_scheduler import JobHandle, JobRegistry, JobState, ModeScheduler


class _RejectingExecutor:
    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        raise RuntimeError("pool is shut down")


def _key_is_free(registry: JobRegistry, key: uuid.UUID) -> bool:
    handle = JobHandle(key=key, mode=ProcessingMode.SYNC)
    free = registry.claim(handle) is None
    registry.release(handle)
    return free


# ---------------------------------------------------------------------------
# Row caps
# ---------------------------------------------------------------------------


class TestRowCap:
    def test_defaults_per_mode(self, mode_scheduler: ModeScheduler, limits: RowLimitSettings) -> None:
        assert mode_scheduler.row_cap(ProcessingMode.PREVIEW, None) == limits.default_preview_limit
        assert mode_scheduler.row_cap(ProcessingMode.SYNC, None) == limits.default_limit
        assert mode_scheduler.row_cap(ProcessingMode.ASYNC, None) == limits.default_limit

    def test_requested_is_clamped_to_mode_ceiling(self, mode_scheduler: ModeScheduler) -> None:
        assert mode_scheduler.row_cap(ProcessingMode.PREVIEW, 10) == 10
        assert mode_scheduler.row_cap(ProcessingMode.PREVIEW, 5000) == 50
        assert mode_scheduler.row_cap(ProcessingMode.SYNC, 500_000) == 100_000
        assert mode_scheduler.row_cap(ProcessingMode.SYNC, 0) == 1


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestJobRegistry:
    def test_claim_returns_active_holder(self) -> None:
        registry = JobRegistry()
        key = uuid.uuid4()
        first = JobHandle(key=key, mode=ProcessingMode.ASYNC)
        second = JobHandle(key=key, mode=ProcessingMode.ASYNC)

        assert registry.claim(first) is None
        assert registry.claim(second) is first
        assert not _key_is_free(registry, key)

    def test_finished_holder_can_be_replaced(self) -> None:
        registry = JobRegistry()
        key = uuid.uuid4()
        first = JobHandle(key=key, mode=ProcessingMode.ASYNC)
        registry.claim(first)
        first.finish(JobState.COMPLETED)

        second = JobHandle(key=key, mode=ProcessingMode.ASYNC)
        assert registry.claim(second) is None
        assert registry.claim(JobHandle(key=key, mode=ProcessingMode.ASYNC)) is second

    def test_release_only_removes_own_handle(self) -> None:
        registry = JobRegistry()
        key = uuid.uuid4()
        holder = JobHandle(key=key, mode=ProcessingMode.SYNC)
        stranger = JobHandle(key=key, mode=ProcessingMode.SYNC)
        registry.claim(holder)

        registry.release(stranger)
        assert registry.claim(JobHandle(key=key, mode=ProcessingMode.SYNC)) is holder

        registry.release(holder)
        assert _key_is_free(registry, key)

    def test_keyless_handles_are_never_registered(self) -> None:
        registry = JobRegistry()

        assert registry.claim(JobHandle(key=None, mode=ProcessingMode.SYNC)) is None
        assert registry.claim(JobHandle(key=None, mode=ProcessingMode.SYNC)) is None


# ---------------------------------------------------------------------------
# Inline modes
# ---------------------------------------------------------------------------


class TestInlineModes:
    def test_preview_runs_inline(self, mode_scheduler: ModeScheduler) -> None:
        outcome = mode_scheduler.run(ProcessingMode.PREVIEW, None, lambda: {"rows": []})

        assert outcome.result == {"rows": []}
        assert outcome.handle.state == JobState.COMPLETED
        assert not outcome.deferred

    def test_unknown_mode_is_rejected(self, mode_scheduler: ModeScheduler) -> None:
        with pytest.raises(ValidationError):
            mode_scheduler.run("later", None, lambda: None)

    def test_sync_releases_key_after_success_and_failure(self, mode_scheduler: ModeScheduler) -> None:
        key = uuid.uuid4()
        mode_scheduler.run(ProcessingMode.SYNC, key, lambda: 1)
        assert _key_is_free(mode_scheduler.registry, key)

        def boom() -> None:
            raise ValueError("bad sheet")

        with pytest.raises(ValueError):
            mode_scheduler.run(ProcessingMode.SYNC, key, boom)
        assert _key_is_free(mode_scheduler.registry, key)

    def test_sync_conflicts_with_in_flight_job(self, mode_scheduler: ModeScheduler) -> None:
        key = uuid.uuid4()
        mode_scheduler.registry.claim(JobHandle(key=key, mode=ProcessingMode.ASYNC))
        ran: list[bool] = []

        with pytest.raises(ConflictError):
            mode_scheduler.run(ProcessingMode.SYNC, key, lambda: ran.append(True))
        assert ran == []


# ---------------------------------------------------------------------------
# Deferred mode
# ---------------------------------------------------------------------------


class TestDeferredMode:
    def test_async_returns_before_work_finishes(self, mode_scheduler: ModeScheduler) -> None:
        key = uuid.uuid4()
        gate = threading.Event()
        accepted: list[bool] = []

        outcome = mode_scheduler.run(
            ProcessingMode.ASYNC,
            key,
            lambda: gate.wait(timeout=10),
            on_accept=lambda: accepted.append(True),
        )

        assert outcome.deferred
        assert not outcome.joined
        assert accepted == [True]
        assert outcome.handle.is_active
        assert not outcome.handle.done.is_set()

        gate.set()
        outcome.handle.future.result(timeout=10)
        assert outcome.handle.state == JobState.COMPLETED
        assert _key_is_free(mode_scheduler.registry, key)

    def test_second_async_request_joins_in_flight_job(self, mode_scheduler: ModeScheduler) -> None:
        key = uuid.uuid4()
        gate = threading.Event()
        calls: list[int] = []

        def work() -> None:
            calls.append(1)
            gate.wait(timeout=10)

        first = mode_scheduler.run(ProcessingMode.ASYNC, key, work)
        second = mode_scheduler.run(ProcessingMode.ASYNC, key, work)

        assert second.joined
        assert second.handle is first.handle

        gate.set()
        first.handle.future.result(timeout=10)
        assert calls == [1]

    def test_failure_invokes_on_failure_and_marks_handle(self, mode_scheduler: ModeScheduler) -> None:
        key = uuid.uuid4()
        failures: list[str] = []

        def boom() -> None:
            raise ValueError("corrupt workbook")

        outcome = mode_scheduler.run(
            ProcessingMode.ASYNC,
            key,
            boom,
            on_failure=lambda exc: failures.append(str(exc)),
        )
        outcome.handle.future.result(timeout=10)

        assert failures == ["corrupt workbook"]
        assert outcome.handle.state == JobState.FAILED
        assert outcome.handle.error == "corrupt workbook"
        assert _key_is_free(mode_scheduler.registry, key)

    def test_failing_failure_hook_still_finishes_job(self, mode_scheduler: ModeScheduler) -> None:
        def boom() -> None:
            raise ValueError("corrupt workbook")

        def broken_hook(exc: Exception) -> None:
            raise RuntimeError("store unavailable")

        outcome = mode_scheduler.run(ProcessingMode.ASYNC, uuid.uuid4(), boom, on_failure=broken_hook)
        outcome.handle.future.result(timeout=10)

        assert outcome.handle.state == JobState.FAILED

    def test_submit_failure_releases_key(self, limits: RowLimitSettings) -> None:
        scheduler = ModeScheduler(executor=_RejectingExecutor(), registry=JobRegistry(), limits=limits)
        key = uuid.uuid4()

        with pytest.raises(RuntimeError):
            scheduler.run(ProcessingMode.ASYNC, key, lambda: None)
        assert _key_is_free(scheduler.registry, key)
