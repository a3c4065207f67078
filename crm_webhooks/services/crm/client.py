"""Authenticated outbound calls to the CRM platform."""

import logging
from functools import lru_cache
from typing import Any, Protocol

import httpx

from crm_webhooks.core.config import get_settings

logger = logging.getLogger(__name__)


class AuthHeaderProvider(Protocol):
    """Supplies the credential headers for a request on behalf of a tenant."""

    async def auth_headers(self, location_id: str | None = None) -> dict[str, str]: ...


class ApiKeyAuthProvider:
    """Bearer credential from a static API key."""

    def __init__(self, api_key: str):
        self.api_key = api_key

    async def auth_headers(self, location_id: str | None = None) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}


class LocationSetupTrigger:
    """Kicks off the external setup routine for a freshly installed location."""

    MAX_RETRIES = 1

    def __init__(
        self,
        url: str | None,
        auth_provider: AuthHeaderProvider | None = None,
        timeout: float = 10.0,
    ):
        """
        Initialize the setup trigger.

        Args:
            url: Setup endpoint. If None, every trigger reports failure so the
                location is flagged for manual setup.
            auth_provider: Source of the bearer credential
            timeout: Request timeout in seconds
        """
        self.url = url
        self.auth_provider = auth_provider
        self.timeout = timeout

    async def _get_headers(self, location_id: str) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_provider is not None:
            headers.update(await self.auth_provider.auth_headers(location_id))
        return headers

    async def trigger(
        self, location_id: str, webhook_id: str, retries: int = 0
    ) -> dict[str, Any]:
        """
        Request setup of a location.

        Args:
            location_id: Installed location
            webhook_id: INSTALL webhook that caused the setup
            retries: Current retry count

        Returns:
            Response dict with success status and error when it failed
        """
        if not self.url:
            return {"success": False, "error": "Setup trigger URL is not configured"}

        payload = {"locationId": location_id, "fullSync": True, "webhookId": webhook_id}

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.url,
                    headers=await self._get_headers(location_id),
                    json=payload,
                    timeout=self.timeout,
                )

            if response.is_success:
                logger.info(f"Setup triggered for location {location_id}")
                return {"success": True, "status_code": response.status_code}

            logger.error(f"Setup trigger error for {location_id}: {response.status_code}")
            return {
                "success": False,
                "error": f"Setup endpoint returned {response.status_code}",
                "status_code": response.status_code,
            }

        except Exception as e:
            logger.error(f"Error triggering setup for {location_id}: {str(e)}")

            if retries < self.MAX_RETRIES:
                logger.info(f"Retrying setup trigger... (attempt {retries + 1}/{self.MAX_RETRIES})")
                return await self.trigger(location_id, webhook_id, retries + 1)

            return {
                "success": False,
                "error": f"Failed after {self.MAX_RETRIES + 1} attempts: {str(e)}",
            }


@lru_cache
def get_setup_trigger() -> LocationSetupTrigger:
    settings = get_settings()
    auth_provider = None
    if settings.CRM_API_KEY is not None:
        auth_provider = ApiKeyAuthProvider(settings.CRM_API_KEY.get_secret_value())

    return LocationSetupTrigger(
        url=settings.SETUP_TRIGGER_URL,
        auth_provider=auth_provider,
        timeout=settings.SETUP_TRIGGER_TIMEOUT_SECONDS,
    )
