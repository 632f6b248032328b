from __future__ import annotations

import os
from pathlib import Path
from typing import List


class Settings:
    """Centralized configuration for the generation job client."""

    def __init__(self) -> None:
        base_dir = Path(__file__).resolve().parent
        repo_root = base_dir.parent
        data_root_default = repo_root / "data"

        # ---- Generation service ----
        self.workers_base_url: str = os.environ.get(
            "FITJOBS_WORKERS_BASE_URL", "http://127.0.0.1:8787"
        )
        self.workers_timeout: float = float(
            os.environ.get("FITJOBS_WORKERS_TIMEOUT", "30")
        )
        self.auth_token: str | None = os.environ.get("FITJOBS_AUTH_TOKEN") or None

        # ---- Polling ----
        self.poll_initial_ms: int = int(os.environ.get("FITJOBS_POLL_INITIAL_MS", "3000"))
        self.poll_max_ms: int = int(os.environ.get("FITJOBS_POLL_MAX_MS", "15000"))
        self.poll_growth_factor: float = float(
            os.environ.get("FITJOBS_POLL_GROWTH_FACTOR", "1.5")
        )
        self.poll_growth_every: int = int(os.environ.get("FITJOBS_POLL_GROWTH_EVERY", "5"))
        # 60 attempts is roughly three minutes with the default ramp.
        self.poll_max_attempts: int = int(os.environ.get("FITJOBS_POLL_MAX_ATTEMPTS", "60"))
        self.start_policy: str = (os.environ.get("FITJOBS_START_POLICY") or "reject").strip().lower()
        self.default_estimate_minutes: float = float(
            os.environ.get("FITJOBS_DEFAULT_ESTIMATE_MINUTES", "2")
        )

        self.data_root: Path = Path(
            os.environ.get("FITJOBS_DATA_ROOT") or data_root_default
        ).expanduser()

        cors = os.environ.get("FITJOBS_CORS_ORIGINS", "*")
        if cors.strip() == "*":
            self.cors_origins: List[str] = ["*"]
        else:
            self.cors_origins = [
                origin.strip() for origin in cors.split(",") if origin.strip()
            ]


settings = Settings()
