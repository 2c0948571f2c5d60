"""Fixed-window request throttling.

The counter store is injected through ``app.state.rate_limit_store`` so a
multi-process deployment can swap the in-memory store for a shared one.
"""
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Protocol

from fastapi import Request

from catalog.exceptions import RateLimitError

logger = logging.getLogger(__name__)


@dataclass
class RateLimitWindow:
    count: int
    reset_at: float


class RateLimitStore(Protocol):
    def hit(self, key: str, window_seconds: float, now: float) -> RateLimitWindow:
        """Count one request for ``key`` and return the current window."""
        ...


class InMemoryRateLimitStore:
    """Single-process store. Expired windows are purged every ``purge_interval`` seconds."""

    def __init__(self, purge_interval: float = 300.0):
        self._windows: dict[str, RateLimitWindow] = {}
        self._lock = threading.Lock()
        self._purge_interval = purge_interval
        self._next_purge = 0.0

    def hit(self, key: str, window_seconds: float, now: float) -> RateLimitWindow:
        with self._lock:
            if now >= self._next_purge:
                self._purge(now)
            window = self._windows.get(key)
            if window is None or window.reset_at <= now:
                window = RateLimitWindow(count=0, reset_at=now + window_seconds)
                self._windows[key] = window
            window.count += 1
            return RateLimitWindow(count=window.count, reset_at=window.reset_at)

    def _purge(self, now: float) -> None:
        expired = [k for k, w in self._windows.items() if w.reset_at <= now]
        for k in expired:
            del self._windows[k]
        self._next_purge = now + self._purge_interval

    def __len__(self) -> int:
        return len(self._windows)


def get_rate_limit_store(request: Request) -> RateLimitStore:
    return request.app.state.rate_limit_store


class RateLimiter:
    """FastAPI dependency: ``Depends(RateLimiter(20, 900, "login"))``."""

    def __init__(self, max_requests: int, window_seconds: float, key_prefix: str = "default"):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.key_prefix = key_prefix

    def check(self, store: RateLimitStore, client_id: str, now: float | None = None) -> int:
        """Record a request and return how many remain in the window."""
        now = time.time() if now is None else now
        window = store.hit(f"{self.key_prefix}:{client_id}", self.window_seconds, now)
        if window.count > self.max_requests:
            retry_after = max(1, math.ceil(window.reset_at - now))
            logger.warning("Rate limit exceeded for %s:%s", self.key_prefix, client_id)
            raise RateLimitError("Too many requests, please try again later", retry_after=retry_after)
        return self.max_requests - window.count

    def __call__(self, request: Request) -> None:
        client_id = request.client.host if request.client else "unknown"
        self.check(get_rate_limit_store(request), client_id)
