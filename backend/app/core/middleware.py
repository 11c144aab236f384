"""HTTP middleware: access log and per-client fixed-window rate limiting."""

import logging
import math
import time
from typing import Callable

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.errors import error_body

logger = logging.getLogger("app.access")

# prune expired windows once the table grows past this
_PRUNE_THRESHOLD = 10_000


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Allow `max_requests` per client address in each `window_ms` window."""

    def __init__(
        self,
        app,
        window_ms: int,
        max_requests: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(app)
        self.window = window_ms / 1000
        self.max_requests = max_requests
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}

    def _prune(self, now: float) -> None:
        self._windows = {
            key: (start, count)
            for key, (start, count) in self._windows.items()
            if now - start < self.window
        }

    async def dispatch(self, request: Request, call_next):
        client = request.client.host if request.client else "unknown"
        now = self._clock()
        if len(self._windows) > _PRUNE_THRESHOLD:
            self._prune(now)

        start, count = self._windows.get(client, (now, 0))
        if now - start >= self.window:
            start, count = now, 0
        count += 1
        self._windows[client] = (start, count)

        if count > self.max_requests:
            retry_after = max(1, math.ceil(self.window - (now - start)))
            logger.warning("Rate limit exceeded for %s on %s", client, request.url.path)
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=error_body("Too many requests from this IP, please try again later."),
                headers={"Retry-After": str(retry_after)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.max_requests - count))
        return response
