"""Fixed-window admission guard.

Each caller identity gets a window of ``max_requests`` requests that starts
with its first request and lasts ``window_seconds``.  Once the window has
passed, the next request opens a fresh one.  Counting is not rolling, so a
caller can burst up to twice the limit across a window boundary.

State is bounded: expired windows are swept at most once per window length,
and above ``max_identities`` the least recently seen identities are dropped.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from fitsync.config import Settings, get_settings

logger = logging.getLogger("fitsync.rate_limit")

# Paths that are never rate limited
EXEMPT_PATHS: set[str] = {"/health"}

DEFAULT_IDENTITY = "127.0.0.1"


@dataclass
class RateWindow:
    count: int
    reset_time: float


@dataclass(frozen=True)
class Admission:
    """Outcome of one admission check."""

    admitted: bool
    limit: int
    remaining: int
    retry_after: float  # seconds until the current window resets


class FixedWindowLimiter:
    """Thread-safe fixed-window counter keyed by caller identity."""

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 15 * 60,
        max_identities: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_identities = max_identities
        self._clock = clock
        self._windows: OrderedDict[str, RateWindow] = OrderedDict()
        self._lock = threading.Lock()
        self._next_sweep = clock() + window_seconds

    def __len__(self) -> int:
        return len(self._windows)

    def window(self, identity: str) -> RateWindow | None:
        """Current window for an identity (for inspection)."""
        return self._windows.get(identity)

    def check(self, identity: str) -> Admission:
        now = self._clock()
        with self._lock:
            self._maybe_sweep(now)
            window = self._windows.get(identity)

            if window is None or now > window.reset_time:
                window = RateWindow(count=1, reset_time=now + self.window_seconds)
                self._windows[identity] = window
                self._windows.move_to_end(identity)
                self._evict_overflow()
                return self._admission(True, window, now)

            self._windows.move_to_end(identity)
            if window.count >= self.max_requests:
                return self._admission(False, window, now)

            window.count += 1
            return self._admission(True, window, now)

    def is_rate_limited(self, identity: str) -> bool:
        return not self.check(identity).admitted

    def _admission(self, admitted: bool, window: RateWindow, now: float) -> Admission:
        return Admission(
            admitted=admitted,
            limit=self.max_requests,
            remaining=max(self.max_requests - window.count, 0),
            retry_after=max(window.reset_time - now, 0.0),
        )

    def _maybe_sweep(self, now: float) -> None:
        if now < self._next_sweep:
            return
        expired = [k for k, w in self._windows.items() if now > w.reset_time]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self.window_seconds
        if expired:
            logger.debug("Swept %d expired rate windows", len(expired))

    def _evict_overflow(self) -> None:
        while len(self._windows) > self.max_identities:
            identity, _ = self._windows.popitem(last=False)
            logger.debug("Evicted rate window for %s", identity)


def client_identity(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else DEFAULT_IDENTITY


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests over the per-identity budget with 429."""

    def __init__(
        self,
        app: Any,
        settings: Settings | None = None,
        limiter: FixedWindowLimiter | None = None,
    ) -> None:
        super().__init__(app)
        s = settings or get_settings()
        self._limiter = limiter or FixedWindowLimiter(
            max_requests=s.rate_limit_max_requests,
            window_seconds=s.rate_limit_window_seconds,
            max_identities=s.rate_limit_max_identities,
        )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        identity = client_identity(request)
        admission = self._limiter.check(identity)

        if not admission.admitted:
            logger.warning("Rate limit exceeded for %s on %s", identity, request.url.path)
            return Response(
                content=json.dumps({"detail": "Rate limit exceeded. Please try again later."}),
                status_code=429,
                media_type="application/json",
                headers={
                    "Retry-After": str(max(int(admission.retry_after), 1)),
                    "X-RateLimit-Limit": str(admission.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(admission.limit)
        response.headers["X-RateLimit-Remaining"] = str(admission.remaining)
        return response
