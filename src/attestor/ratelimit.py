"""Per-client admission control in front of the pipeline.

Fixed window counter keyed by client address. State lives in this process
only, so the limit is per replica; a shared limiter belongs in the ingress
when the service is scaled out.
"""
from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Iterable, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from starlette.types import ASGIApp

from .obs.prom import RATE_LIMITED


class FixedWindowLimiter:
    def __init__(self, max_requests: int, window_sec: float, clock: Callable[[], float] = time.monotonic):
        self.max_requests = int(max_requests)
        self.window = float(window_sec)
        self._clock = clock
        self._windows: Dict[Any, Tuple[float, int]] = {}
        self._lock = threading.Lock()

    def allow(self, key: Any) -> bool:
        if self.max_requests <= 0:
            return True
        now = self._clock()
        with self._lock:
            start, count = self._windows.get(key, (now, 0))
            if now - start >= self.window:
                start, count = now, 0
            if count >= self.max_requests:
                self._windows[key] = (start, count)
                return False
            self._windows[key] = (start, count + 1)
            if len(self._windows) > 10_000:
                self._evict(now)
            return True

    def _evict(self, now: float) -> None:
        stale = [k for k, (start, _) in self._windows.items() if now - start >= self.window]
        for k in stale:
            del self._windows[k]


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, limiter: FixedWindowLimiter, exempt_paths: Iterable[str] = ()):
        super().__init__(app)
        self.limiter = limiter
        self.exempt = set(exempt_paths)

    async def dispatch(self, request, call_next):
        if request.method == "OPTIONS" or request.url.path in self.exempt:
            return await call_next(request)
        client = request.client.host if request.client else "unknown"
        if not self.limiter.allow(client):
            RATE_LIMITED.inc()
            return JSONResponse(
                {"error": "rate_limited", "detail": "Rate limit exceeded. Please try again later."},
                status_code=429,
            )
        return await call_next(request)
