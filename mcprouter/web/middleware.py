"""FastAPI middleware: request ID injection and rate limiting."""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from starlette.requests import Request
    from starlette.responses import Response

logger = structlog.get_logger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Adds a unique X-Request-ID header to every response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory sliding-window limiter.

    Limits requests per client IP to ``max_requests`` within
    ``window_seconds``, counted separately per matching prefix. Paths
    under ``exempt_prefixes`` are never counted.
    """

    def __init__(
        self,
        app: object,
        max_requests: int = 60,
        window_seconds: int = 60,
        prefixes: Sequence[str] = ("/api/",),
        exempt_prefixes: Sequence[str] = (),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._max_requests = max_requests
        self._window = window_seconds
        self._prefixes = tuple(prefixes)
        self._exempt = tuple(exempt_prefixes)
        self._clock = clock
        self._hits: dict[str, list[float]] = {}

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if path.startswith(self._exempt):
            return await call_next(request)
        prefix = next((p for p in self._prefixes if path.startswith(p)), None)
        if prefix is None:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        bucket = f"{client_ip}:{prefix}"
        now = self._clock()
        self._prune(now)

        hits = self._hits.get(bucket, [])
        if len(hits) >= self._max_requests:
            logger.warning("rate_limit_exceeded", ip=client_ip, path=path)
            return JSONResponse(
                {"error": "Too many requests. Try again later."},
                status_code=429,
                headers={"Retry-After": str(self._window)},
            )

        hits.append(now)
        self._hits[bucket] = hits
        return await call_next(request)

    def _prune(self, now: float) -> None:
        """Drop expired hits, and buckets left empty."""
        for bucket in list(self._hits):
            live = [t for t in self._hits[bucket] if now - t < self._window]
            if live:
                self._hits[bucket] = live
            else:
                del self._hits[bucket]
