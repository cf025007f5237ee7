"""
Fixed-window request limiter keyed by (client address, provider).

Counters live in process memory. ``hit`` contains no suspension point, so on
a single event loop each check-and-increment is atomic without a lock.
Counters idle for ``idle_windows`` windows are swept at most once per window.
"""

import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from app.vars import RATE_LIMIT_IDLE_WINDOWS, RATE_LIMIT_MAX, RATE_LIMIT_WINDOW


@dataclass
class RateLimitState:
    """Request count for one key within its current window."""

    count: int
    window_start: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: float

    def headers(self) -> Dict[str, str]:
        reset = str(max(0, math.ceil(self.reset_after)))
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": reset,
        }
        if not self.allowed:
            headers["Retry-After"] = reset
        return headers


class FixedWindowRateLimiter:
    """Caps requests per (client, provider) pair within a fixed time window."""

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_MAX,
        window_seconds: float = RATE_LIMIT_WINDOW,
        idle_windows: int = RATE_LIMIT_IDLE_WINDOWS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.idle_windows = max(1, idle_windows)
        self._clock = clock
        self._states: Dict[Tuple[str, str], RateLimitState] = {}
        self._last_sweep = clock()

    async def hit(self, client: str, provider_key: str) -> RateLimitDecision:
        """Count one request and report whether it may proceed."""
        now = self._clock()
        self._maybe_sweep(now)

        key = (client, provider_key)
        state = self._states.get(key)
        if state is None or now - state.window_start >= self.window_seconds:
            state = RateLimitState(count=0, window_start=now)
            self._states[key] = state

        reset_after = state.window_start + self.window_seconds - now
        if state.count >= self.max_requests:
            return RateLimitDecision(
                allowed=False,
                limit=self.max_requests,
                remaining=0,
                reset_after=reset_after,
            )

        state.count += 1
        return RateLimitDecision(
            allowed=True,
            limit=self.max_requests,
            remaining=self.max_requests - state.count,
            reset_after=reset_after,
        )

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        horizon = self.window_seconds * (self.idle_windows + 1)
        stale = [
            key
            for key, state in self._states.items()
            if now - state.window_start >= horizon
        ]
        for key in stale:
            del self._states[key]

    def stats(self) -> dict:
        """Limiter settings and number of tracked keys, reported by /health."""
        return {
            "limit": self.max_requests,
            "windowSeconds": self.window_seconds,
            "activeKeys": len(self._states),
        }
