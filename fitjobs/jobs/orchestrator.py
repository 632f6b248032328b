# -*- coding: utf-8 -*-
"""
Generation job orchestrator

Submits a generation request, short-circuits cache hits, and otherwise polls
the job through the backoff scheduler until a terminal outcome, a
cancellation, or the attempt budget. Each submission hands exactly one
outcome to the ResultSink.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Callable, Deque, List, Optional
from uuid import uuid4

from ..config import settings
from .backoff import BackoffScheduler, TickToken
from .client import JobStatusClient
from .errors import (
    GenerationError,
    GenerationTimeout,
    JobAlreadyActiveError,
    ServiceReportedFailure,
    TransportError,
    UnexpectedResponseError,
    error_kind,
)
from .models import CacheHit, GenerationJob, GenerationRequest, JobStateChange, JobStatus, PollResult
from .sink import ResultSink
from .state import JobStateMachine
from .storage import PendingJobStore

logger = logging.getLogger(__name__)

Listener = Callable[[JobStateChange], None]

RECENT_JOBS_LIMIT = 20


def _now_iso() -> str:
    return datetime.utcnow().isoformat() + "Z"


class StartPolicy(str, Enum):
    """What start() does while another submission is active."""

    reject = "reject"
    replace = "replace"


@dataclass(eq=False)
class GenerationHandle:
    """Caller-side handle for one submission."""

    submission_id: str
    outcome: asyncio.Future
    job_id: Optional[str] = None
    live: bool = True
    attempts: int = 0
    last_error: Optional[BaseException] = field(default=None, repr=False)
    tick: Optional[TickToken] = field(default=None, repr=False)

    async def wait(self) -> JobStateChange:
        return await asyncio.shield(self.outcome)


class JobOrchestrator:
    """Drives one generation target; at most one submission active at a time."""

    def __init__(
        self,
        client: JobStatusClient,
        sink: ResultSink,
        *,
        scheduler: Optional[BackoffScheduler] = None,
        max_attempts: Optional[int] = None,
        start_policy: StartPolicy | str | None = None,
        store: Optional[PendingJobStore] = None,
    ) -> None:
        self.client = client
        self.sink = sink
        self.scheduler = scheduler or BackoffScheduler()
        self.max_attempts = max_attempts if max_attempts is not None else settings.poll_max_attempts
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.start_policy = StartPolicy(start_policy or settings.start_policy)
        self.store = store
        self._machine = JobStateMachine()
        self._active: Optional[GenerationHandle] = None
        self._listeners: List[Listener] = []
        self._recent: Deque[GenerationJob] = deque(maxlen=RECENT_JOBS_LIMIT)

    # ---- read side ----

    @property
    def status(self) -> JobStatus:
        return self._machine.status

    @property
    def current_job(self) -> Optional[GenerationJob]:
        return self._machine.job

    @property
    def active_handle(self) -> Optional[GenerationHandle]:
        return self._active

    @property
    def recent_jobs(self) -> List[GenerationJob]:
        return list(self._recent)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ---- commands ----

    async def start(self, request: GenerationRequest) -> GenerationHandle:
        """Submit `request`. Raises ValidationError/TransportError if no job could be created."""
        handle = self._claim()
        try:
            outcome = await self.client.submit(request)
        except (Exception, asyncio.CancelledError):
            self._abandon(handle)
            raise

        if not handle.live:
            logger.info("Discarding submit result for cancelled submission %s", handle.submission_id)
            return handle

        if isinstance(outcome, CacheHit):
            logger.info("Cache hit for submission %s", handle.submission_id)
            job = GenerationJob(
                job_id=f"cache-hit:{handle.submission_id}",
                status=JobStatus.completed,
                created_at=_now_iso(),
                result=outcome.result,
                generation_time_ms=0,
            )
            handle.job_id = job.job_id
            self._machine.start(job)
            self._finish(handle)
            return handle

        job = GenerationJob(
            job_id=outcome.job_id,
            status=JobStatus.pending,
            created_at=_now_iso(),
            estimated_time_remaining_seconds=outcome.estimated_time_remaining_seconds,
        )
        logger.info("Job %s started for submission %s", job.job_id, handle.submission_id)
        self._begin_polling(handle, job)
        return handle

    async def resume(self) -> Optional[GenerationHandle]:
        """Re-enter the poll loop for a job persisted by a previous process."""
        if self.store is None:
            return None
        stored = self.store.load()
        if stored is None:
            return None
        if stored.status.is_terminal or stored.status is JobStatus.idle:
            self.store.clear()
            return None
        handle = self._claim()
        logger.info("Resuming job %s (stored status %s)", stored.job_id, stored.status.value)
        # Processing is re-reached from the next poll.
        self._begin_polling(handle, stored.model_copy(update={"status": JobStatus.pending}))
        return handle

    def cancel(self, handle: Optional[GenerationHandle] = None) -> bool:
        """Stop the active submission. No state change or sink call happens for it afterwards."""
        active = self._active
        if active is None or (handle is not None and handle is not active):
            return False
        if active.tick is not None:
            self.scheduler.cancel(active.tick)
        if self._owns_machine(active):
            self._machine.apply(JobStatus.cancelled)
        logger.info("Cancelled submission %s (job %s)", active.submission_id, active.job_id or "-")
        self._finish(active)
        return True

    async def check_status(self, job_id: str) -> GenerationJob:
        """One-off status read; does not touch the active job."""
        result = await self.client.poll(job_id)
        return GenerationJob(
            job_id=result.job_id,
            status=result.status,
            created_at=result.created_at or _now_iso(),
            estimated_time_remaining_seconds=result.estimated_time_remaining_seconds,
            result=result.result if result.status is JobStatus.completed else None,
            error=result.error if result.status is JobStatus.failed else None,
            generation_time_ms=result.generation_time_ms if result.status is JobStatus.completed else None,
        )

    async def aclose(self) -> None:
        self.cancel()
        await self.scheduler.aclose()
        self._listeners.clear()

    # ---- internals ----

    def _claim(self) -> GenerationHandle:
        if self._active is not None:
            if self.start_policy is StartPolicy.reject:
                raise JobAlreadyActiveError(self._active.submission_id, self._active.job_id)
            self.cancel(self._active)
        handle = GenerationHandle(
            submission_id=uuid4().hex,
            outcome=asyncio.get_running_loop().create_future(),
        )
        self._active = handle
        return handle

    def _abandon(self, handle: GenerationHandle) -> None:
        # Submit failed: no job exists, so there is nothing to hand to the sink.
        handle.live = False
        if self._active is handle:
            self._active = None
        if not handle.outcome.done():
            handle.outcome.cancel()

    def _owns_machine(self, handle: GenerationHandle) -> bool:
        job = self._machine.job
        return job is not None and handle.job_id is not None and job.job_id == handle.job_id

    def _is_current(self, handle: GenerationHandle, token: TickToken) -> bool:
        return (
            handle.live
            and token.live
            and self._active is handle
            and self._machine.is_active
            and self._owns_machine(handle)
        )

    def _begin_polling(self, handle: GenerationHandle, job: GenerationJob) -> None:
        handle.job_id = job.job_id
        self._machine.start(job)
        self._persist(job)
        self._emit(handle, job)
        self._arm(handle)

    def _arm(self, handle: GenerationHandle) -> None:
        handle.tick = self.scheduler.schedule(partial(self._tick, handle), attempt=handle.attempts)
        logger.debug(
            "Polling job %s in %.0fms (attempt %s/%s)",
            handle.job_id,
            handle.tick.delay_ms,
            handle.attempts + 1,
            self.max_attempts,
        )

    async def _tick(self, handle: GenerationHandle, token: TickToken) -> None:
        if not self._is_current(handle, token):
            return
        job_id = handle.job_id or ""
        try:
            result = await self.client.poll(job_id)
        except TransportError as exc:
            if not self._is_current(handle, token):
                logger.warning("Discarding poll error for stale job %s: %s", job_id, exc)
                return
            handle.attempts += 1
            handle.last_error = exc
            logger.warning(
                "Transient error polling job %s (attempt %s/%s): %s",
                job_id,
                handle.attempts,
                self.max_attempts,
                exc,
            )
            self._continue_or_timeout(handle)
            return
        except GenerationError as exc:
            if not self._is_current(handle, token):
                logger.warning("Discarding poll error for stale job %s: %s", job_id, exc)
                return
            logger.warning("Job %s status check rejected: %s", job_id, exc)
            self._fail(handle, exc)
            return
        except Exception as exc:
            if not self._is_current(handle, token):
                logger.warning("Discarding poll error for stale job %s: %s", job_id, exc)
                return
            logger.exception("Unexpected error polling job %s", job_id)
            self._fail(
                handle,
                UnexpectedResponseError(f"Status check for job {job_id} failed: {exc}", status_code=0),
            )
            return

        if not self._is_current(handle, token):
            logger.warning("Discarding stale poll response for job %s (%s)", job_id, result.status.value)
            return
        handle.attempts += 1
        self._apply(handle, result)

    def _apply(self, handle: GenerationHandle, result: PollResult) -> None:
        status = result.status
        if status is JobStatus.completed:
            if result.result is None:
                self._fail(
                    handle,
                    UnexpectedResponseError(
                        f"Job {handle.job_id or result.job_id} completed without a result", status_code=200
                    ),
                )
                return
            self._machine.apply(
                JobStatus.completed,
                result=result.result,
                generation_time_ms=result.generation_time_ms,
                estimated_time_remaining_seconds=None,
            )
            self._finish(handle)
            return
        if status is JobStatus.failed:
            job_id = handle.job_id or result.job_id
            self._fail(handle, ServiceReportedFailure(result.error or "Job failed", job_id=job_id))
            return
        if status is JobStatus.cancelled:
            logger.info("Job %s was cancelled by the service", handle.job_id)
            self._machine.apply(JobStatus.cancelled)
            self._finish(handle)
            return

        previous = self._machine.job
        # The service may still say "pending" after we have seen "processing".
        target = (
            JobStatus.processing
            if status is JobStatus.processing or self._machine.status is JobStatus.processing
            else JobStatus.pending
        )
        changes = {}
        if result.estimated_time_remaining_seconds is not None:
            changes["estimated_time_remaining_seconds"] = result.estimated_time_remaining_seconds
        job = self._machine.apply(target, **changes)
        if previous is None or job.status != previous.status or job != previous:
            self._persist(job)
            self._emit(handle, job)
        self._continue_or_timeout(handle)

    def _continue_or_timeout(self, handle: GenerationHandle) -> None:
        if handle.attempts < self.max_attempts:
            self._arm(handle)
            return
        timeout = GenerationTimeout(
            job_id=handle.job_id or "",
            attempts=handle.attempts,
            last_error=handle.last_error,
        )
        logger.info("Stopped polling job %s after %s attempts", handle.job_id, handle.attempts)
        self._fail(handle, timeout)

    def _fail(self, handle: GenerationHandle, error: GenerationError) -> None:
        self._machine.apply(JobStatus.failed, error=str(error), estimated_time_remaining_seconds=None)
        self._finish(handle, error)

    def _finish(self, handle: GenerationHandle, error: Optional[GenerationError] = None) -> None:
        """Hand the terminal outcome to the sink once, then return to Idle."""
        if not handle.live:
            return
        handle.live = False
        if self._active is handle:
            self._active = None
        if handle.tick is not None:
            self.scheduler.cancel(handle.tick)

        job = self._machine.job if self._owns_machine(handle) else None
        status = job.status if job is not None else JobStatus.cancelled
        change = self._emit(handle, job, status=status, error=error)

        try:
            if status is JobStatus.completed and job is not None:
                self.sink.on_completed(job.result, job.generation_time_ms or 0)
            elif status is JobStatus.failed and error is not None:
                self.sink.on_failed(error)
            else:
                self.sink.on_cancelled()
        except Exception:
            logger.exception("Result sink failed for submission %s", handle.submission_id)
        finally:
            if job is not None:
                self._machine.reset()
                self._recent.appendleft(job)
                # A timed-out job may still finish server-side; keep it resumable.
                if not isinstance(error, GenerationTimeout):
                    self._forget()
            if not handle.outcome.done():
                handle.outcome.set_result(change)

    def _emit(
        self,
        handle: GenerationHandle,
        job: Optional[GenerationJob],
        *,
        status: Optional[JobStatus] = None,
        error: Optional[GenerationError] = None,
    ) -> JobStateChange:
        change = JobStateChange(
            submission_id=handle.submission_id,
            job_id=handle.job_id,
            status=status or (job.status if job is not None else JobStatus.idle),
            error=str(error) if error is not None else (job.error if job is not None else None),
            error_kind=error_kind(error) if error is not None else None,
            estimated_time_remaining_seconds=job.estimated_time_remaining_seconds if job is not None else None,
            generation_time_ms=job.generation_time_ms if job is not None else None,
        )
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("State change listener failed")
        return change

    def _persist(self, job: GenerationJob) -> None:
        if self.store is None:
            return
        try:
            self.store.save(job)
        except OSError as exc:
            logger.warning("Failed to persist pending job %s: %s", job.job_id, exc)

    def _forget(self) -> None:
        if self.store is None:
            return
        try:
            self.store.clear()
        except OSError as exc:
            logger.warning("Failed to clear pending job record: %s", exc)
