# -*- coding: utf-8 -*-
"""Generation jobs: error taxonomy."""

from __future__ import annotations

from typing import Any, Optional


class GenerationError(Exception):
    """Base class for every error raised by the generation job client."""


class TransportError(GenerationError):
    """Network failure, timeout, 5xx or 429. Retried while polling."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ServiceError(GenerationError):
    """Non-retryable error answer from the generation service."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        code: Optional[str] = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.details = details


class ValidationError(ServiceError):
    """The service rejected the request before any job was created."""


class UnexpectedResponseError(ServiceError):
    pass


class ServiceReportedFailure(GenerationError):
    """The service finished the job with status "failed"."""

    def __init__(self, message: str, *, job_id: str) -> None:
        super().__init__(message)
        self.job_id = job_id


class GenerationTimeout(GenerationError):
    """Polling budget ran out while the job was still pending or processing.

    The server-side job may still finish; callers should present this as
    "still processing, check back later" rather than as a failure.
    """

    def __init__(
        self,
        *,
        job_id: str,
        attempts: int,
        last_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            f"Generation for job {job_id} is still processing after {attempts} checks - please check back later"
        )
        self.job_id = job_id
        self.attempts = attempts
        self.last_error = last_error


class InvalidTransitionError(GenerationError):
    """Illegal state machine transition. Indicates a programming error."""

    def __init__(self, from_status: Any, to_status: Any) -> None:
        super().__init__(f"Illegal job transition {from_status!s} -> {to_status!s}")
        self.from_status = from_status
        self.to_status = to_status


class JobAlreadyActiveError(GenerationError):
    def __init__(self, submission_id: str, job_id: Optional[str] = None) -> None:
        super().__init__(
            f"A generation is already active (submission={submission_id}, job={job_id or '-'})"
        )
        self.submission_id = submission_id
        self.job_id = job_id


def error_kind(error: BaseException) -> str:
    """Short classification used in state-change events."""
    if isinstance(error, GenerationTimeout):
        return "timeout"
    if isinstance(error, ServiceReportedFailure):
        return "service_failure"
    if isinstance(error, TransportError):
        return "transport"
    return "service_error"
