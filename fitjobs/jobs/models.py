# -*- coding: utf-8 -*-
"""Generation jobs: Pydantic models."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    idle = "idle"
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.completed, JobStatus.failed, JobStatus.cancelled})

GenerationTarget = Literal["diet", "workout"]


class GenerationJob(BaseModel):
    job_id: str
    status: JobStatus
    created_at: str = Field(..., description="ISO8601 timestamp of submission")
    estimated_time_remaining_seconds: Optional[float] = Field(None, ge=0)
    result: Optional[Any] = None
    error: Optional[str] = None
    generation_time_ms: Optional[float] = Field(None, ge=0)


# ---- submit() outcomes ----


class CacheHit(BaseModel):
    kind: Literal["cache_hit"] = "cache_hit"
    result: Any


class JobStarted(BaseModel):
    kind: Literal["job_started"] = "job_started"
    job_id: str = Field(..., min_length=1)
    estimated_time_remaining_seconds: Optional[float] = Field(None, ge=0)


SubmitOutcome = Union[CacheHit, JobStarted]


class PollResult(BaseModel):
    job_id: str
    status: JobStatus
    result: Optional[Any] = None
    error: Optional[str] = None
    generation_time_ms: Optional[float] = None
    estimated_time_remaining_seconds: Optional[float] = None
    created_at: Optional[str] = None


class JobStateChange(BaseModel):
    """Update emitted to subscribers on every state change."""

    submission_id: str
    job_id: Optional[str] = None
    status: JobStatus
    error: Optional[str] = None
    error_kind: Optional[str] = Field(None, description="timeout | service_failure | transport | service_error")
    estimated_time_remaining_seconds: Optional[float] = None
    generation_time_ms: Optional[float] = None


class JobListItem(BaseModel):
    job_id: str
    status: JobStatus
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
    error: Optional[str] = None


# ---- generation inputs (forwarded to the service as-is) ----


class ProfileInput(BaseModel):
    age: int = Field(..., ge=1, le=120)
    gender: str
    weight: float = Field(..., gt=0, description="kg")
    height: float = Field(..., gt=0, description="cm")
    activity_level: str
    fitness_goal: str


class MacroSplit(BaseModel):
    protein: float = Field(..., ge=0)
    carbs: float = Field(..., ge=0)
    fats: float = Field(..., ge=0)


class DietGenerationRequest(BaseModel):
    profile: ProfileInput
    calorie_target: Optional[float] = Field(None, gt=0)
    meals_per_day: Optional[int] = Field(None, ge=1, le=8)
    macros: Optional[MacroSplit] = None
    dietary_restrictions: List[str] = Field(default_factory=list)
    exclude_ingredients: List[str] = Field(default_factory=list)
    model: Optional[str] = None


class WorkoutGenerationRequest(BaseModel):
    profile: ProfileInput
    workout_type: Optional[str] = None
    duration_minutes: Optional[int] = Field(None, ge=5, le=240)
    days_per_week: Optional[int] = Field(None, ge=1, le=7)
    equipment: List[str] = Field(default_factory=list)
    injuries: List[str] = Field(default_factory=list)
    model: Optional[str] = None


GenerationRequest = Union[DietGenerationRequest, WorkoutGenerationRequest, Dict[str, Any]]


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _camelize(value: Any) -> Any:
    if isinstance(value, dict):
        return {_camel(str(k)): _camelize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_camelize(v) for v in value]
    return value


def request_payload(request: GenerationRequest) -> Dict[str, Any]:
    """Serialize a generation request into the service's camelCase body."""
    if isinstance(request, BaseModel):
        return _camelize(request.model_dump(exclude_none=True))
    return dict(request)
