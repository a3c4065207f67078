import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from crm_webhooks.core.cache.client import get_redis_client
from crm_webhooks.core.config import get_settings
from crm_webhooks.core.logging_config.setup import setup_logging
from crm_webhooks.db.session import get_async_engine
from crm_webhooks.version import __version__

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    logger.info(f"Starting crm-webhooks {__version__} environment={settings.ENVIRONMENT}")

    yield

    redis_client = get_redis_client()
    if redis_client is not None:
        await redis_client.aclose()
    await get_async_engine().dispose()
    logger.info("Shutdown complete")
