# -*- coding: utf-8 -*-
"""Generation jobs: JSON file storage for the in-flight job (resume after restart)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from pydantic import ValidationError as ModelValidationError

from ..config import settings
from .models import GenerationJob


def _ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


class PendingJobStore:
    """One JSON record per generation target."""

    def __init__(self, target: str, data_root: Path | None = None) -> None:
        root = data_root or settings.data_root
        self.path = root / "jobs" / f"{target}_pending.json"

    def save(self, job: GenerationJob) -> None:
        _ensure_dir(self.path.parent)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(job.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def load(self) -> Optional[GenerationJob]:
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return GenerationJob.model_validate(raw)
        except (json.JSONDecodeError, ModelValidationError):
            # Unreadable record; drop it so the next start is not blocked.
            self.clear()
            return None

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
