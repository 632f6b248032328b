# -*- coding: utf-8 -*-
"""Generation jobs: API endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as ModelValidationError

from .client import JobStatusClient
from .errors import (
    JobAlreadyActiveError,
    ServiceError,
    TransportError,
    ValidationError,
)
from .models import (
    DietGenerationRequest,
    GenerationJob,
    GenerationTarget,
    JobStateChange,
    WorkoutGenerationRequest,
)
from .orchestrator import JobOrchestrator
from .sink import OutcomeRecorder
from .storage import PendingJobStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/generation", tags=["Generation"])

_REQUEST_MODELS = {
    "diet": DietGenerationRequest,
    "workout": WorkoutGenerationRequest,
}


class GenerationRegistry:
    """One orchestrator per generation target, created on first use."""

    def __init__(self, factory: Optional[Callable[[str], JobOrchestrator]] = None) -> None:
        self._factory = factory or self._default_factory
        self._orchestrators: Dict[str, JobOrchestrator] = {}

    @staticmethod
    def _default_factory(target: str) -> JobOrchestrator:
        return JobOrchestrator(
            JobStatusClient(target),  # type: ignore[arg-type]
            OutcomeRecorder(target),
            store=PendingJobStore(target),
        )

    def get(self, target: str) -> JobOrchestrator:
        if target not in _REQUEST_MODELS:
            raise HTTPException(status_code=404, detail=f"Unknown generation target: {target}")
        orchestrator = self._orchestrators.get(target)
        if orchestrator is None:
            orchestrator = self._factory(target)
            self._orchestrators[target] = orchestrator
        return orchestrator

    async def aclose(self) -> None:
        for orchestrator in self._orchestrators.values():
            await orchestrator.aclose()
        self._orchestrators.clear()


registry = GenerationRegistry()


def get_registry() -> GenerationRegistry:
    return registry


def _job_payload(orchestrator: JobOrchestrator) -> Dict[str, Any]:
    job = orchestrator.current_job
    sink = orchestrator.sink
    last = getattr(sink, "last_outcome", None)
    if job is None:
        return {"status": "idle", "job": None, "last_outcome": last}
    return {"status": job.status.value, "job": job.model_dump(mode="json"), "last_outcome": last}


@router.post("/{target}", summary="Start a generation")
async def start_generation(
    target: GenerationTarget,
    payload: Dict[str, Any] = Body(...),
    reg: GenerationRegistry = Depends(get_registry),
):
    orchestrator = reg.get(target)
    try:
        request = _REQUEST_MODELS[target].model_validate(payload)
    except ModelValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc

    try:
        handle = await orchestrator.start(request)
    except JobAlreadyActiveError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TransportError as exc:
        raise HTTPException(status_code=502, detail=f"Generation service unreachable: {exc}") from exc
    except ServiceError as exc:
        raise HTTPException(status_code=502, detail=f"Generation service error: {exc}") from exc

    if handle.outcome.done():
        # Cache hits finish before start() returns.
        status = handle.outcome.result().status.value
    else:
        status = orchestrator.status.value
    return {"submission_id": handle.submission_id, "job_id": handle.job_id, "status": status}


@router.get("/{target}", summary="Current generation state")
async def get_generation(target: GenerationTarget, reg: GenerationRegistry = Depends(get_registry)):
    return _job_payload(reg.get(target))


@router.delete("/{target}", summary="Cancel the active generation")
async def cancel_generation(target: GenerationTarget, reg: GenerationRegistry = Depends(get_registry)):
    cancelled = reg.get(target).cancel()
    return {"cancelled": cancelled}


@router.post("/{target}/resume", summary="Resume a job left over from a previous run")
async def resume_generation(target: GenerationTarget, reg: GenerationRegistry = Depends(get_registry)):
    orchestrator = reg.get(target)
    try:
        handle = await orchestrator.resume()
    except JobAlreadyActiveError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if handle is None:
        return {"resumed": False, "job_id": None}
    return {"resumed": True, "job_id": handle.job_id}


@router.get("/jobs/{job_id}", response_model=GenerationJob, summary="One-off job status check")
async def check_job(
    job_id: str,
    target: GenerationTarget = Query(default="diet"),
    reg: GenerationRegistry = Depends(get_registry),
):
    try:
        return await reg.get(target).check_status(job_id)
    except TransportError as exc:
        raise HTTPException(status_code=502, detail=f"Generation service unreachable: {exc}") from exc
    except ServiceError as exc:
        status_code = exc.status_code if 400 <= exc.status_code < 500 else 502
        raise HTTPException(status_code=status_code, detail=str(exc)) from exc


@router.get("/{target}/recent", summary="Recently finished jobs")
async def recent_jobs(target: GenerationTarget, reg: GenerationRegistry = Depends(get_registry)):
    return {"items": [job.model_dump(mode="json") for job in reg.get(target).recent_jobs]}


@router.websocket("/{target}/events")
async def generation_events(
    websocket: WebSocket,
    target: str,
    reg: GenerationRegistry = Depends(get_registry),
):
    if target not in _REQUEST_MODELS:
        await websocket.close(code=4404)
        return
    orchestrator = reg.get(target)
    await websocket.accept()
    queue: asyncio.Queue[JobStateChange] = asyncio.Queue()
    unsubscribe = orchestrator.subscribe(queue.put_nowait)
    logger.info("Generation event stream opened: %s", target)

    async def _forward() -> None:
        while True:
            change = await queue.get()
            await websocket.send_json({"type": "state_change", **change.model_dump(mode="json")})

    forwarder: Optional[asyncio.Task] = None
    try:
        await websocket.send_json({"type": "snapshot", **_job_payload(orchestrator)})
        forwarder = asyncio.create_task(_forward())
        # Incoming messages are ignored; the loop only notices the disconnect.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Generation event stream closed: %s", target)
    finally:
        unsubscribe()
        if forwarder is not None:
            forwarder.cancel()
