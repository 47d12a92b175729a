"""
API Middleware.

Per-request correlation IDs with an audit log line, and a per-client
request cap for the operator-facing endpoints.
"""

from __future__ import annotations

import time
from collections import deque
from typing import Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from leadcall.logging_config import call_id_var, generate_trace_id, get_logger, trace_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
RATE_LIMIT_WINDOW = 60  # seconds
RATE_LIMIT_MAX = 100    # requests per window per client

# Provider callbacks are never throttled; a 429 would trigger redelivery storms
RATE_LIMIT_EXEMPT_PREFIXES = ("/webhooks/", "/health")


class SlidingWindowLimiter:
    """
    In-process sliding-window counter keyed by client address.

    Clients whose window has fully expired are forgotten, so memory is
    bounded by the number of clients active within one window.
    """

    def __init__(self, max_requests: int = RATE_LIMIT_MAX, window_seconds: float = RATE_LIMIT_WINDOW) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._hits: dict[str, deque[float]] = {}

    def __len__(self) -> int:
        return len(self._hits)

    def reset(self) -> None:
        self._hits.clear()

    def _evict(self, now: float) -> None:
        cutoff = now - self.window_seconds
        for key in [k for k, hits in self._hits.items() if not hits or hits[-1] <= cutoff]:
            del self._hits[key]

    def allow(self, key: str, now: Optional[float] = None) -> bool:
        """Record a hit for ``key``; False once it is over the cap."""
        now = time.monotonic() if now is None else now
        self._evict(now)

        hits = self._hits.setdefault(key, deque())
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()

        if len(hits) >= self.max_requests:
            return False
        hits.append(now)
        return True


limiter = SlidingWindowLimiter()


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Correlate log lines per request and echo the id back to the caller."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_trace_id()
        trace_token = trace_id_var.set(request_id)
        call_token = call_id_var.set("")
        started = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
            response.headers[REQUEST_ID_HEADER] = request_id
            response.headers["X-Response-Time-Ms"] = str(elapsed_ms)
            logger.info(
                "api_request",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                elapsed_ms=elapsed_ms,
            )
            return response
        finally:
            call_id_var.reset(call_token)
            trace_id_var.reset(trace_token)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject clients that exceed the request cap with a JSON 429."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path.startswith(RATE_LIMIT_EXEMPT_PREFIXES):
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        if not limiter.allow(client):
            logger.warning("rate_limit_exceeded", client_ip=client, path=path)
            return JSONResponse(
                status_code=429,
                content={"success": False, "error": "Rate limit exceeded"},
                headers={"Retry-After": str(RATE_LIMIT_WINDOW)},
            )
        return await call_next(request)
