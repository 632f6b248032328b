# -*- coding: utf-8 -*-
"""Generation service request/response boundary.

One call per method, no retries and no timing: the orchestrator owns both.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError as ModelValidationError

from ..config import settings
from .errors import ServiceError, TransportError, UnexpectedResponseError, ValidationError
from .models import (
    CacheHit,
    GenerationRequest,
    GenerationTarget,
    JobListItem,
    JobStarted,
    JobStatus,
    PollResult,
    SubmitOutcome,
    request_payload,
)

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = 429
_VALIDATION_STATUSES = {400, 422}


def _error_fields(body: Any) -> Tuple[Optional[str], Optional[str], Any]:
    """Return (code, message, details) from the service error envelope.

    The service answers either `{"error": "..."}` or
    `{"error": {"code": "...", "message": "..."}}`.
    """
    if not isinstance(body, dict):
        return None, None, None
    err = body.get("error")
    code = body.get("errorCode")
    details = body.get("details")
    if isinstance(err, dict):
        return err.get("code") or code, err.get("message"), err.get("details", details)
    if isinstance(err, str):
        return code, err, details
    return code, None, details


def _parse_status(value: Any) -> JobStatus:
    try:
        status = JobStatus(str(value).strip().lower())
    except ValueError as exc:
        raise UnexpectedResponseError(
            f"Unknown job status: {value!r}", status_code=200
        ) from exc
    if status is JobStatus.idle:
        raise UnexpectedResponseError("Service reported an idle job", status_code=200)
    return status


def _error_text(value: Any) -> Optional[str]:
    """Job errors arrive as a plain string or as a `{code, message}` object."""
    if value is None:
        return None
    if isinstance(value, dict):
        message = value.get("message") or value.get("code")
        return str(message) if message else None
    return str(value)


def _opt_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class JobStatusClient:
    """Thin async client for the generation service's job endpoints."""

    def __init__(
        self,
        target: GenerationTarget = "diet",
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        auth_token: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.target = target
        self.base_url = (base_url or settings.workers_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.workers_timeout
        self.auth_token = auth_token if auth_token is not None else settings.auth_token
        self._http_client = http_client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def _send(self, client: httpx.AsyncClient, method: str, path: str, payload: Any) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            return await client.request(method, url, json=payload, headers=self._headers())
        except httpx.TimeoutException as exc:
            raise TransportError(f"Request to {path} timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransportError(f"Request to {path} failed: {exc}") from exc

    async def _request(self, method: str, path: str, payload: Any = None) -> Tuple[int, Dict[str, Any]]:
        if self._http_client is not None:
            resp = await self._send(self._http_client, method, path, payload)
        else:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                resp = await self._send(client, method, path, payload)

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.status_code >= 500 or resp.status_code == _RETRYABLE_STATUS:
            _code, message, _details = _error_fields(body)
            raise TransportError(
                message or f"HTTP {resp.status_code} from {path}",
                status_code=resp.status_code,
            )
        if resp.status_code >= 400:
            code, message, details = _error_fields(body)
            raise ServiceError(
                message or f"HTTP {resp.status_code} from {path}",
                status_code=resp.status_code,
                code=code,
                details=details,
            )
        if not isinstance(body, dict):
            raise UnexpectedResponseError(
                f"Non-JSON response from {path}", status_code=resp.status_code
            )
        if body.get("success") is False:
            code, message, details = _error_fields(body)
            raise ServiceError(
                message or f"Request to {path} failed",
                status_code=resp.status_code,
                code=code,
                details=details,
            )
        return resp.status_code, body

    async def submit(self, request: GenerationRequest) -> SubmitOutcome:
        path = f"/{self.target}/generate"
        payload = request_payload(request)
        payload["async"] = True
        try:
            status_code, body = await self._request("POST", path, payload)
        except ServiceError as exc:
            if exc.status_code in _VALIDATION_STATUSES or exc.code == "VALIDATION_ERROR":
                raise ValidationError(
                    str(exc), status_code=exc.status_code, code=exc.code, details=exc.details
                ) from exc
            raise

        data = body.get("data")
        if isinstance(data, dict) and data.get("jobId"):
            minutes = _opt_float(data.get("estimatedTimeMinutes"))
            if minutes is None:
                minutes = settings.default_estimate_minutes
            try:
                started = JobStarted(
                    job_id=str(data["jobId"]),
                    estimated_time_remaining_seconds=minutes * 60,
                )
            except ModelValidationError as exc:
                raise UnexpectedResponseError(
                    f"Malformed job start from {path}: {exc}", status_code=status_code
                ) from exc
            logger.info("Submitted %s generation, job %s started", self.target, started.job_id)
            return started
        if status_code == 200 and data is not None:
            logger.info("Submitted %s generation, served from cache", self.target)
            return CacheHit(result=data)
        raise UnexpectedResponseError(
            f"Unexpected response format from {path}", status_code=status_code
        )

    async def poll(self, job_id: str) -> PollResult:
        _status_code, body = await self._request("GET", f"/{self.target}/jobs/{job_id}")
        data = body.get("data")
        if not isinstance(data, dict):
            raise UnexpectedResponseError("Job status response has no data", status_code=200)
        metadata = data.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        status = _parse_status(data.get("status"))
        try:
            return PollResult(
                job_id=str(data.get("jobId") or job_id),
                status=status,
                result=data.get("result"),
                error=_error_text(data.get("error")),
                generation_time_ms=_opt_float(metadata.get("generationTimeMs")),
                estimated_time_remaining_seconds=_opt_float(data.get("estimatedTime")),
                created_at=metadata.get("createdAt"),
            )
        except ModelValidationError as exc:
            raise UnexpectedResponseError(
                f"Malformed status for job {job_id}: {exc}", status_code=200
            ) from exc

    async def list_jobs(self) -> List[JobListItem]:
        _status_code, body = await self._request("GET", f"/{self.target}/jobs")
        data = body.get("data") or {}
        items: List[JobListItem] = []
        for raw in data.get("jobs") or []:
            if not isinstance(raw, dict) or not raw.get("jobId"):
                continue
            try:
                item = JobListItem(
                    job_id=str(raw["jobId"]),
                    status=_parse_status(raw.get("status")),
                    created_at=raw.get("createdAt"),
                    completed_at=raw.get("completedAt"),
                    error=_error_text(raw.get("error")),
                )
            except (ModelValidationError, UnexpectedResponseError) as exc:
                logger.warning("Skipping malformed %s job entry %r: %s", self.target, raw.get("jobId"), exc)
                continue
            items.append(item)
        return items
