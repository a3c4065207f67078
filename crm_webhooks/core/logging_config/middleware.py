import logging
from time import perf_counter

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

logger = logging.getLogger(__name__)

QUIET_PATHS = frozenset({"/health_check"})


class LoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Log every HTTP request with method, path, status code and duration.

        Webhook deliveries tag the request state with their webhook id so the
        access line can be correlated with the pipeline logs.
        """
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        started = perf_counter()
        response = await call_next(request)
        duration_ms = int((perf_counter() - started) * 1000)

        webhook_id = getattr(request.state, "webhook_id", None) or "-"

        logger.info(
            f"HTTP {request.method} {request.url.path} {response.status_code} "
            f"{duration_ms}ms webhook_id={webhook_id}"
        )

        return response
