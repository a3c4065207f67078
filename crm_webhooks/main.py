import logging
from collections.abc import Awaitable
from typing import cast

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from crm_webhooks.api import cron, webhooks
from crm_webhooks.core.cache import client as cache_client
from crm_webhooks.core.config import get_settings
from crm_webhooks.core.lifespan import lifespan
from crm_webhooks.core.logging_config.middleware import LoggingMiddleware
from crm_webhooks.core.rate_limit import limiter
from crm_webhooks.db.session import get_async_sessionmaker
from crm_webhooks.version import __version__

logger = logging.getLogger(__name__)

app = FastAPI(
    title="CRM Webhooks API",
    description="Signed CRM webhook intake with durable, prioritized queue processing",
    version=__version__,
    debug=get_settings().LOG_LEVEL == "DEBUG",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(LoggingMiddleware)

app.include_router(webhooks.router)
app.include_router(cron.router)


@app.get("/health_check")
async def health_check(
    check_db: bool = False,
    check_redis: bool = False,
) -> dict[str, str | bool]:
    """Health check endpoint to verify API is running.

    Args:
        check_db: If True, also checks database connectivity
        check_redis: If True, checks Redis connectivity
    """
    settings = get_settings()
    result: dict[str, str | bool] = {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
    }

    if check_db:
        session_factory = get_async_sessionmaker()

        try:
            async with session_factory() as session:
                await session.execute(text("SELECT 1"))
                result["database"] = "connected"
        except Exception as e:
            result["status"] = "unhealthy"
            result["database"] = "disconnected"
            result["error"] = str(e)

    if check_redis:
        redis_client = cache_client.get_redis_client()
        if redis_client is None:
            result["redis"] = "not_configured"
        else:
            try:
                await cast(Awaitable[bool], redis_client.ping())
                result["redis"] = "connected"
            except Exception as e:
                result["status"] = "unhealthy"
                result["redis"] = "disconnected"
                if "error" not in result:
                    result["error"] = str(e)

    return result
