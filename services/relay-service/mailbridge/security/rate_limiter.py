"""In-memory fixed window rate limiter implementation."""

from __future__ import annotations

import time
from threading import Lock


class FixedWindowRateLimiter:
    """Thread-safe fixed window rate limiter.

    Each key owns a window that opens on its first request and lasts
    ``window_seconds``. A burst straddling a window boundary may see up to twice
    the nominal rate; that approximation is accepted.
    """

    def __init__(self, max_requests: int, window_seconds: int) -> None:
        """Initialise limiter parameters and per-key storage."""
        self._max_requests = max_requests
        self._window = window_seconds
        self._windows: dict[str, tuple[float, int]] = {}
        self._next_sweep = 0.0
        self._lock = Lock()

    async def allow(self, key: str) -> bool:
        """Count a request for ``key`` and return ``True`` while it is within the limit."""
        now = time.time()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self._window:
                started, count = now, 0
            count += 1
            self._windows[key] = (started, count)
            return count <= self._max_requests

    def _sweep(self, now: float) -> None:
        """Drop windows that have closed; caller holds the lock."""
        expired = [key for key, (started, _) in self._windows.items() if now - started >= self._window]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self._window
