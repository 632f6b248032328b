# -*- coding: utf-8 -*-
"""Canonical state of the (at most one) active generation job."""

from __future__ import annotations

from typing import Dict, FrozenSet, Optional

from .errors import InvalidTransitionError
from .models import GenerationJob, JobStatus

_ALLOWED: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.idle: frozenset({JobStatus.pending, JobStatus.completed}),
    JobStatus.pending: frozenset(
        {JobStatus.processing, JobStatus.completed, JobStatus.failed, JobStatus.cancelled}
    ),
    JobStatus.processing: frozenset({JobStatus.completed, JobStatus.failed, JobStatus.cancelled}),
    JobStatus.completed: frozenset({JobStatus.idle}),
    JobStatus.failed: frozenset({JobStatus.idle}),
    JobStatus.cancelled: frozenset({JobStatus.idle}),
}


class JobStateMachine:
    """Enforces Idle -> Pending -> Processing -> terminal -> Idle."""

    def __init__(self) -> None:
        self._job: Optional[GenerationJob] = None

    @property
    def status(self) -> JobStatus:
        return self._job.status if self._job is not None else JobStatus.idle

    @property
    def job(self) -> Optional[GenerationJob]:
        return self._job

    @property
    def is_active(self) -> bool:
        return self.status in (JobStatus.pending, JobStatus.processing)

    def can_transition(self, to_status: JobStatus) -> bool:
        return to_status in _ALLOWED[self.status]

    def _check(self, to_status: JobStatus) -> None:
        if not self.can_transition(to_status):
            raise InvalidTransitionError(self.status.value, to_status.value)

    def start(self, job: GenerationJob) -> GenerationJob:
        """Idle -> Pending (job started) or Idle -> Completed (cache hit)."""
        if job.status not in (JobStatus.pending, JobStatus.completed):
            raise InvalidTransitionError(self.status.value, job.status.value)
        self._check(job.status)
        self._job = job
        return job

    def apply(self, to_status: JobStatus, **changes: object) -> GenerationJob:
        """Move the active job to `to_status`, merging any field updates.

        Re-reporting the current non-terminal status (e.g. several
        "processing" polls in a row) only refreshes the fields.
        """
        if self._job is None:
            raise InvalidTransitionError(JobStatus.idle.value, to_status.value)
        if to_status == self._job.status and not to_status.is_terminal:
            self._job = self._job.model_copy(update=changes)
            return self._job
        if to_status is JobStatus.idle:
            raise InvalidTransitionError(self.status.value, to_status.value)
        self._check(to_status)
        self._job = self._job.model_copy(update={**changes, "status": to_status})
        return self._job

    def reset(self) -> Optional[GenerationJob]:
        """Terminal -> Idle once the outcome has been consumed."""
        self._check(JobStatus.idle)
        job, self._job = self._job, None
        return job
