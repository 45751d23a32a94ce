"""
Location source - resolves the user's current city using IP geolocation
"""
import httpx
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class IPLocationSource:
    """Resolves a city name from the caller's public IP address."""

    URL = "http://ip-api.com/json/"

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, trust_env=False)
        return self._client

    def set_client(self, client: httpx.AsyncClient):
        self._client = client

    async def resolve_current_city(self) -> Optional[str]:
        """
        Return the current city name, or None when no location is available.
        Unavailability is not an error: every failure is logged and mapped to None.
        """
        try:
            response = await self.client.get(self.URL, params={"fields": "status,city"})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Failed to get city from location: %s", exc)
            return None

        if not isinstance(data, dict) or data.get("status") != "success":
            logger.warning("Location lookup returned no fix: %s", data)
            return None
        city = (data.get("city") or "").strip()
        return city or None

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
