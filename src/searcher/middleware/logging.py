"""Request logging middleware."""
import time
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

EXCLUDED_PATHS = frozenset({
    "/health/live",
    "/health/ready",
})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs search requests with their query string and latency.

    Health probes are not logged.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            query=request.url.query or None,
            status=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        return response
