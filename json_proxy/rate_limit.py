"""Fixed-window per-client rate limiting.

Each client gets a window of `window_seconds`; within it at most
`max_requests` requests are admitted. A request arriving exactly at the
window's reset time still belongs to the old window (strict `>`), so bursts at
window boundaries can reach twice the ceiling. That is accepted.

The limiter is shared by every request, so the read-modify-write of a
client's window happens under a single lock. Expired windows are swept once
the table reaches `max_entries`; if every window is still live, the ones
closest to expiry are evicted from the front of the table.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass
class RateWindow:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    now: float

    @property
    def reset_in(self) -> float:
        return max(0.0, self.reset_at - self.now)

    def headers(self) -> dict[str, str]:
        """RateLimit-* response headers (draft IETF names, integer seconds)."""
        reset = str(int(math.ceil(self.reset_in)))
        out = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": reset,
        }
        if not self.allowed:
            out["Retry-After"] = reset
        return out


class FixedWindowRateLimiter:
    def __init__(
        self,
        window_seconds: float = 60.0,
        max_requests: int = 30,
        *,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.max_entries = max(1, max_entries)
        self._clock = clock
        # Ordered by reset_at, oldest first: every new window ends at now + window_seconds.
        self._windows: OrderedDict[str, RateWindow] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._windows)

    def check(self, client_id: str, now: float | None = None) -> RateDecision:
        """Count one request for `client_id` and report whether it is admitted."""
        if now is None:
            now = self._clock()

        with self._lock:
            window = self._windows.get(client_id)
            if window is None or now > window.reset_at:
                if window is None and len(self._windows) >= self.max_entries:
                    self._sweep_locked(now, make_room=True)
                window = RateWindow(count=1, reset_at=now + self.window_seconds)
                self._windows[client_id] = window
                self._windows.move_to_end(client_id)
                allowed = True
            elif window.count < self.max_requests:
                window.count += 1
                allowed = True
            else:
                allowed = False

            decision = RateDecision(
                allowed=allowed,
                limit=self.max_requests,
                remaining=max(0, self.max_requests - window.count),
                reset_at=window.reset_at,
                now=now,
            )

        if not allowed:
            logger.info("rate limit exceeded for client %s", client_id)
        return decision

    def admit(self, client_id: str, now: float | None = None) -> bool:
        return self.check(client_id, now).allowed

    def sweep(self, now: float | None = None) -> int:
        """Drop windows that have expired. Returns the number removed."""
        if now is None:
            now = self._clock()
        with self._lock:
            return self._sweep_locked(now)

    def _sweep_locked(self, now: float, *, make_room: bool = False) -> int:
        removed = 0
        while self._windows:
            window = next(iter(self._windows.values()))
            if now <= window.reset_at:
                break
            self._windows.popitem(last=False)
            removed += 1

        # Still full of live windows: evict the ones closest to expiry.
        if make_room:
            while len(self._windows) >= self.max_entries:
                self._windows.popitem(last=False)
                removed += 1

        if removed:
            logger.debug("swept %d rate-limit windows", removed)
        return removed

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
