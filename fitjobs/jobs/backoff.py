# -*- coding: utf-8 -*-
"""Poll interval policy and the single-slot cancellable timer."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from itertools import count
from typing import Awaitable, Callable, List, Optional

from ..config import settings

logger = logging.getLogger(__name__)

_token_ids = count(1)


@dataclass(frozen=True)
class BackoffPolicy:
    initial_interval_ms: float = 3000
    max_interval_ms: float = 15000
    growth_factor: float = 1.5
    growth_every_n_attempts: int = 5

    def __post_init__(self) -> None:
        if self.initial_interval_ms < 0 or self.max_interval_ms < 0:
            raise ValueError("Poll intervals must be non-negative")
        if self.growth_factor < 1:
            raise ValueError("growth_factor must be >= 1")
        if self.growth_every_n_attempts < 1:
            raise ValueError("growth_every_n_attempts must be >= 1")

    @classmethod
    def from_settings(cls) -> "BackoffPolicy":
        return cls(
            initial_interval_ms=settings.poll_initial_ms,
            max_interval_ms=settings.poll_max_ms,
            growth_factor=settings.poll_growth_factor,
            growth_every_n_attempts=settings.poll_growth_every,
        )

    def interval_ms(self, attempt: int) -> float:
        """Wait before poll number `attempt` (0-based), capped at max_interval_ms."""
        step = max(attempt, 0) // self.growth_every_n_attempts
        # Past this point the cap always wins; avoids float overflow on huge attempts.
        if self.growth_factor > 1 and self.initial_interval_ms > 0:
            limit = math.log(max(self.max_interval_ms, 1.0) / self.initial_interval_ms, self.growth_factor)
            if step > limit + 1:
                return float(self.max_interval_ms)
        return float(min(self.initial_interval_ms * self.growth_factor ** step, self.max_interval_ms))

    def intervals(self, attempts: int) -> List[float]:
        return [self.interval_ms(n) for n in range(attempts)]


@dataclass(eq=False)
class TickToken:
    """Handle for one armed tick. `live` turns False once cancelled."""

    attempt: int
    delay_ms: float
    token_id: int = field(default_factory=lambda: next(_token_ids))
    cancelled: bool = False
    fired: bool = False
    _task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def live(self) -> bool:
        return not self.cancelled


TickCallback = Callable[[TickToken], Awaitable[None]]
SleepFn = Callable[[float], Awaitable[None]]


class BackoffScheduler:
    """Arms at most one delayed tick at a time.

    The tick runs inside the scheduler's task; once it has fired the slot is
    free again, so the callback itself may re-arm.
    """

    def __init__(self, policy: Optional[BackoffPolicy] = None, *, sleep: Optional[SleepFn] = None) -> None:
        self.policy = policy or BackoffPolicy.from_settings()
        self._sleep: SleepFn = sleep or asyncio.sleep
        self._pending: Optional[TickToken] = None
        self._running: Optional[TickToken] = None

    @property
    def armed(self) -> bool:
        return self._pending is not None

    def schedule(self, callback: TickCallback, *, attempt: int) -> TickToken:
        if self._pending is not None:
            raise RuntimeError(
                f"Scheduler already armed (tick {self._pending.token_id}, attempt {self._pending.attempt})"
            )
        token = TickToken(attempt=attempt, delay_ms=self.policy.interval_ms(attempt))
        token._task = asyncio.get_running_loop().create_task(self._run(token, callback))
        self._pending = token
        logger.debug("Armed tick %s: attempt=%s delay=%.0fms", token.token_id, attempt, token.delay_ms)
        return token

    def cancel(self, token: Optional[TickToken] = None) -> bool:
        """Disarm `token` (default: the armed one). Its callback will not start afterwards.

        A callback that is already running is left to finish; it must check
        `token.live` before touching any state.
        """
        token = token or self._pending
        if token is None or token.cancelled:
            return False
        token.cancelled = True
        if self._pending is token:
            self._pending = None
        if not token.fired and token._task is not None:
            token._task.cancel()
        return True

    async def aclose(self) -> None:
        """Cancel everything, including a tick whose callback is mid-flight."""
        tasks = []
        for token in (self._pending, self._running):
            if token is None:
                continue
            token.cancelled = True
            if token._task is not None and not token._task.done():
                token._task.cancel()
                tasks.append(token._task)
        self._pending = None
        self._running = None
        current = asyncio.current_task()
        for task in tasks:
            if task is current:
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self, token: TickToken, callback: TickCallback) -> None:
        try:
            await self._sleep(token.delay_ms / 1000.0)
        except asyncio.CancelledError:
            logger.debug("Tick %s cancelled before firing", token.token_id)
            return
        if token.cancelled:
            return
        token.fired = True
        if self._pending is token:
            self._pending = None
        self._running = token
        try:
            await callback(token)
        except asyncio.CancelledError:
            logger.debug("Tick %s cancelled while running", token.token_id)
        except Exception:
            logger.exception("Tick %s callback failed", token.token_id)
        finally:
            if self._running is token:
                self._running = None
