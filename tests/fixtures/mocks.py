"""Mock-related test fixtures."""

from collections.abc import Generator
from typing import Any
from unittest.mock import patch

import pytest
from fakeredis.aioredis import FakeRedis
from pytest_mock import MockerFixture

from crm_webhooks.core.cache.client import get_redis_client
from crm_webhooks.services.crm.client import LocationSetupTrigger


@pytest.fixture(autouse=True)
def avoid_external_requests(mocker: MockerFixture) -> None:
    """Block external HTTP requests during tests.

    Note: AsyncClient with ASGITransport doesn't make real HTTP requests,
    so we only block real network calls via HTTPTransport.
    """

    def fail(*args: Any, **kwargs: Any) -> None:
        raise RuntimeError("External HTTP communication disabled for tests")

    # Block real HTTP requests
    mocker.patch("httpx._transports.default.AsyncHTTPTransport.handle_async_request", new=fail)
    mocker.patch("httpx._transports.default.HTTPTransport.handle_request", new=fail)


@pytest.fixture(autouse=True)
def patch_redis() -> Generator[Any, Any, Any]:
    """Patch Redis with FakeRedis for testing."""
    with patch("crm_webhooks.core.cache.client.Redis.from_url", return_value=FakeRedis()):
        get_redis_client.cache_clear()
        yield
    get_redis_client.cache_clear()


@pytest.fixture(autouse=True)
async def clear_redis(patch_redis: Any):
    """Clear Redis cache and rate limit storage before/after each test."""
    from crm_webhooks.core.rate_limit import limiter

    client = get_redis_client()
    await client.flushdb()

    # Clear rate limit storage (memory storage for tests)
    limiter.reset()

    yield

    await client.flushdb()
    limiter.reset()


@pytest.fixture
def mock_setup_trigger(mocker: MockerFixture) -> Any:
    """LocationSetupTrigger whose ``trigger`` succeeds. Configure per test."""
    trigger = mocker.Mock(spec=LocationSetupTrigger)
    trigger.trigger = mocker.AsyncMock(return_value={"success": True, "status_code": 200})
    return trigger
