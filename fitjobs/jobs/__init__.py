# -*- coding: utf-8 -*-
"""
Generation jobs

Submit long-running plan generation to the FitAI workers service and follow
the job to a single terminal outcome.
"""

from .backoff import BackoffPolicy, BackoffScheduler, TickToken
from .client import JobStatusClient
from .errors import (
    GenerationError,
    GenerationTimeout,
    InvalidTransitionError,
    JobAlreadyActiveError,
    ServiceError,
    ServiceReportedFailure,
    TransportError,
    ValidationError,
)
from .models import CacheHit, GenerationJob, JobStarted, JobStateChange, JobStatus, PollResult
from .orchestrator import GenerationHandle, JobOrchestrator, StartPolicy
from .sink import OutcomeRecorder, ResultSink
from .state import JobStateMachine
from .storage import PendingJobStore

__all__ = [
    'BackoffPolicy',
    'BackoffScheduler',
    'CacheHit',
    'GenerationError',
    'GenerationHandle',
    'GenerationJob',
    'GenerationTimeout',
    'InvalidTransitionError',
    'JobAlreadyActiveError',
    'JobOrchestrator',
    'JobStarted',
    'JobStateChange',
    'JobStateMachine',
    'JobStatus',
    'JobStatusClient',
    'OutcomeRecorder',
    'PendingJobStore',
    'PollResult',
    'ResultSink',
    'ServiceError',
    'ServiceReportedFailure',
    'StartPolicy',
    'TickToken',
    'TransportError',
    'ValidationError',
]
