# -*- coding: utf-8 -*-
"""Terminal outcome handoff."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

from .errors import GenerationError, error_kind

logger = logging.getLogger(__name__)


class ResultSink(Protocol):
    """Receives exactly one terminal outcome per submission.

    Persistence of the finished artifact and any user-facing notification
    live behind this interface.
    """

    def on_completed(self, result: Any, generation_time_ms: float) -> None: ...

    def on_failed(self, error: GenerationError) -> None: ...

    def on_cancelled(self) -> None: ...


class OutcomeRecorder:
    """Sink that keeps the latest outcome in memory for the HTTP surface."""

    def __init__(self, target: str) -> None:
        self.target = target
        self.last_outcome: Optional[Dict[str, Any]] = None

    def on_completed(self, result: Any, generation_time_ms: float) -> None:
        logger.info("%s generation completed in %.0fms", self.target, generation_time_ms)
        self.last_outcome = {
            "status": "completed",
            "result": result,
            "generation_time_ms": generation_time_ms,
        }

    def on_failed(self, error: GenerationError) -> None:
        kind = error_kind(error)
        # A timeout is "still processing", not a definitive failure.
        if kind == "timeout":
            logger.info("%s generation still processing: %s", self.target, error)
        else:
            logger.warning("%s generation failed (%s): %s", self.target, kind, error)
        self.last_outcome = {"status": "failed", "error": str(error), "error_kind": kind}

    def on_cancelled(self) -> None:
        logger.info("%s generation cancelled", self.target)
        self.last_outcome = {"status": "cancelled"}
