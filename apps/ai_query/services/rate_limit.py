"""Per-subject fixed-window rate limiter for AI endpoints.

State lives behind WindowStore so a multi-process deployment can swap in a shared store.
The default in-memory store is process-local: an approximate limiter, not a hard quota.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Protocol, runtime_checkable

from apps.ai_query.config import config

logger = logging.getLogger(__name__)


@dataclass
class RateLimitWindow:
    """Active window for one subject. reset_at is epoch milliseconds."""

    request_count: int
    reset_at: int


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of RateLimiter.check. reset_at is epoch milliseconds."""

    allowed: bool
    remaining: int
    reset_at: int
    limit: int

    def headers(self) -> dict[str, str]:
        """X-RateLimit-* response headers. Reset is epoch milliseconds."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }

    def reset_at_iso(self) -> str:
        return datetime.fromtimestamp(self.reset_at / 1000, tz=timezone.utc).isoformat()


@runtime_checkable
class WindowStore(Protocol):
    """Key-value store of RateLimitWindow by subject id."""

    def get(self, subject_id: str) -> RateLimitWindow | None:
        ...

    def set(self, subject_id: str, window: RateLimitWindow) -> None:
        ...

    def clear(self) -> None:
        ...


class InMemoryWindowStore:
    """Process-wide dict store."""

    def __init__(self) -> None:
        self._windows: dict[str, RateLimitWindow] = {}

    def get(self, subject_id: str) -> RateLimitWindow | None:
        return self._windows.get(subject_id)

    def set(self, subject_id: str, window: RateLimitWindow) -> None:
        self._windows[subject_id] = window

    def clear(self) -> None:
        self._windows.clear()


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """
    Bounds requests per subject per window.

    check() on a missing or elapsed window starts a new one with count=1.
    A full window rejects without mutating state.
    """

    def __init__(
        self,
        max_requests: int | None = None,
        window_ms: int | None = None,
        store: WindowStore | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.max_requests = max_requests if max_requests is not None else config.RATE_LIMIT_PER_MINUTE
        self.window_ms = window_ms if window_ms is not None else config.RATE_LIMIT_WINDOW_MS
        self.store = store if store is not None else InMemoryWindowStore()
        self._clock = clock
        self._lock = threading.Lock()

    def check(self, subject_id: str) -> RateLimitResult:
        """Count one request for subject_id. subject_id must come from the identity provider."""
        with self._lock:
            now = self._clock()
            window = self.store.get(subject_id)

            if window is None or now >= window.reset_at:
                reset_at = now + self.window_ms
                self.store.set(subject_id, RateLimitWindow(request_count=1, reset_at=reset_at))
                return RateLimitResult(True, self.max_requests - 1, reset_at, self.max_requests)

            if window.request_count >= self.max_requests:
                logger.info("Rate limit exceeded subject_id=%s reset_at=%s", subject_id, window.reset_at)
                return RateLimitResult(False, 0, window.reset_at, self.max_requests)

            updated = RateLimitWindow(request_count=window.request_count + 1, reset_at=window.reset_at)
            self.store.set(subject_id, updated)
            return RateLimitResult(
                True,
                self.max_requests - updated.request_count,
                updated.reset_at,
                self.max_requests,
            )

    def reset(self) -> None:
        """Drop all windows."""
        with self._lock:
            self.store.clear()


_limiters: dict[str, RateLimiter] = {}


def get_rate_limiter(name: str = "query") -> RateLimiter:
    """Return the process-wide limiter for an endpoint family ('query', 'chat'). Lazy-initialized."""
    limiter = _limiters.get(name)
    if limiter is None:
        limiter = _limiters.setdefault(name, RateLimiter())
    return limiter
