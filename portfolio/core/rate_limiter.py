"""Per-client fixed-window throttling for the unauthenticated account endpoints."""
from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Tuple

from fastapi import HTTPException, Request

SWEEP_INTERVAL_SECONDS = 60.0


class _RateLimiter:
    """Counts hits per key inside a fixed window and forgets windows that ended."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval: float = SWEEP_INTERVAL_SECONDS) -> None:
        self._hits: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._next_sweep = 0.0

    def __len__(self) -> int:
        return len(self._hits)

    def _sweep(self, now: float) -> None:
        if now < self._next_sweep:
            return
        expired = [key for key, (_, window_end) in self._hits.items() if window_end < now]
        for key in expired:
            del self._hits[key]
        self._next_sweep = now + self._sweep_interval

    def check(self, key: str, limit: int, window_seconds: int) -> None:
        now = self._clock()
        with self._lock:
            self._sweep(now)
            count, window_end = self._hits.get(key, (0, now + window_seconds))
            if now > window_end:
                count, window_end = 0, now + window_seconds
            count += 1
            self._hits[key] = (count, window_end)
        if count > limit:
            raise HTTPException(429, "Too many requests. Try again shortly.")

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._next_sweep = 0.0


_limiter = _RateLimiter()


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit_ip(request: Request, scope: str, *, limit: int, window_seconds: int) -> None:
    _limiter.check(f"{scope}:{_client_ip(request)}", limit, window_seconds)


def reset_limits() -> None:
    _limiter.reset()
