import httpx
import logging
from typing import Dict, Any, Optional, List

from glasscast.schemas.city import FavoriteCity

logger = logging.getLogger(__name__)


class FavoritesStoreError(Exception):
    """Raised when the Supabase favorites table rejects a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FavoritesStoreClient:
    """Client for the Supabase REST ``favorite_cities`` table."""

    TABLE = "favorite_cities"

    def __init__(
        self,
        base_url: Optional[str] = None,
        anon_key: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.anon_key = anon_key
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.anon_key)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, trust_env=False)
        return self._client

    def set_client(self, client: httpx.AsyncClient):
        self._client = client

    @property
    def table_url(self) -> str:
        return f"{self.base_url}/rest/v1/{self.TABLE}"

    def _headers(self, access_token: Optional[str]) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "apikey": self.anon_key or "",
            "Authorization": f"Bearer {access_token or self.anon_key}",
        }

    async def _request(
        self,
        method: str,
        access_token: Optional[str],
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        if not self.configured:
            raise FavoritesStoreError("Supabase not configured")
        try:
            response = await self.client.request(
                method,
                self.table_url,
                params=params,
                json=json,
                headers=self._headers(access_token),
            )
        except httpx.RequestError as exc:
            raise FavoritesStoreError(f"Network error: {exc}") from exc

        logger.debug("Supabase %s %s -> %s", method, self.TABLE, response.status_code)
        if not response.is_success:
            raise FavoritesStoreError(
                f"Invalid response from Supabase ({response.status_code})",
                status_code=response.status_code,
            )
        return response

    async def list_favorites(self, access_token: Optional[str] = None) -> List[FavoriteCity]:
        response = await self._request("GET", access_token, params={"select": "*"})
        try:
            rows = response.json()
            return [FavoriteCity(**row) for row in rows]
        except (TypeError, ValueError) as exc:
            raise FavoritesStoreError("Failed to decode favorite cities") from exc

    async def insert_favorite(
        self,
        city_name: str,
        lat: float,
        lon: float,
        user_id: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> None:
        values: Dict[str, Any] = {"city_name": city_name, "lat": lat, "lon": lon}
        if user_id:
            values["user_id"] = user_id
        await self._request("POST", access_token, json=values)

    async def delete_favorite(self, favorite_id: str, access_token: Optional[str] = None) -> None:
        await self._request("DELETE", access_token, params={"id": f"eq.{favorite_id}"})

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
