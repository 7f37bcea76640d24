import threading
import time
from typing import Callable

from listingscope.config import settings


class RateLimitInfo:
    """Rate limit check result with metadata for response headers."""

    __slots__ = ("allowed", "remaining", "limit", "reset")

    def __init__(self, allowed: bool, remaining: int, limit: int, reset: int):
        self.allowed = allowed
        self.remaining = remaining
        self.limit = limit
        self.reset = reset  # Unix timestamp when the window resets


class _Window:
    __slots__ = ("started", "count")

    def __init__(self, started: float):
        self.started = started
        self.count = 0


class RateLimiter:
    """In-memory per-client fixed window counter.

    A client's window opens with its first admitted request and lasts
    ``window`` seconds. Up to ``limit`` requests are admitted inside it;
    denials do not count. Expiry is evaluated on read against ``clock``
    so behaviour is deterministic under a fake clock.
    """

    def __init__(
        self,
        limit: int | None = None,
        window: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit if limit is not None else settings.RATE_LIMIT_SCRAPE
        self.window = window if window is not None else settings.RATE_LIMIT_WINDOW
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _expired(self, entry: _Window, now: float) -> bool:
        return now - entry.started >= self.window

    def _sweep(self, now: float) -> None:
        # Called with the lock held; at most once per window.
        if now - self._last_sweep < self.window:
            return
        self._last_sweep = now
        stale = [k for k, w in self._windows.items() if self._expired(w, now)]
        for key in stale:
            del self._windows[key]

    def admit(self, client_id: str) -> RateLimitInfo:
        now = self._clock()
        with self._lock:
            self._sweep(now)
            entry = self._windows.get(client_id)
            if entry is None or self._expired(entry, now):
                entry = _Window(now)
                self._windows[client_id] = entry

            reset_at = int(time.time() + (self.window - (now - entry.started)))

            if entry.count >= self.limit:
                return RateLimitInfo(
                    allowed=False, remaining=0, limit=self.limit, reset=reset_at
                )

            entry.count += 1
            return RateLimitInfo(
                allowed=True,
                remaining=self.limit - entry.count,
                limit=self.limit,
                reset=reset_at,
            )

    def reset(self, client_id: str | None = None) -> None:
        with self._lock:
            if client_id is None:
                self._windows.clear()
            else:
                self._windows.pop(client_id, None)

    def __len__(self) -> int:
        return len(self._windows)


scrape_rate_limiter = RateLimiter()
