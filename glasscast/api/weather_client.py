import httpx
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List

import pycountry

from glasscast.schemas.city import CitySearchResult
from glasscast.schemas.weather import (
    LoadErrorKind,
    RawForecastSample,
    TemperatureUnit,
    WeatherSnapshot,
)

logger = logging.getLogger(__name__)


class WeatherAPIError(Exception):
    """Raised when OpenWeatherMap requests fail."""

    def __init__(
        self,
        message: str,
        kind: LoadErrorKind = LoadErrorKind.TRANSPORT,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


def country_display_name(code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    country = pycountry.countries.get(alpha_2=code.upper())
    if country is None:
        return code
    return getattr(country, "common_name", None) or country.name


class WeatherAPIClient:
    """Client for OpenWeatherMap API."""

    BASE_URL = "https://api.openweathermap.org/data/2.5"
    GEO_URL = "https://api.openweathermap.org/geo/1.0"

    def __init__(self, api_key: Optional[str] = None, timeout: float = 30.0):
        self.api_key = api_key
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, trust_env=False)
        return self._client

    def set_client(self, client: httpx.AsyncClient):
        self._client = client

    async def _request_json(self, url: str, params: Dict[str, Any]) -> Any:
        if not self.api_key:
            raise WeatherAPIError(
                "Weather API key not configured", kind=LoadErrorKind.CONFIGURATION
            )
        params = {**params, "appid": self.api_key}
        try:
            response = await self.client.get(url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 404:
                raise WeatherAPIError(
                    "City not found", kind=LoadErrorKind.NOT_FOUND, status_code=status
                ) from exc
            message = f"Weather service request failed ({status})"
            try:
                payload = exc.response.json()
                if isinstance(payload, dict) and payload.get("message"):
                    message = f"{message}: {payload['message']}"
            except ValueError:
                pass
            raise WeatherAPIError(
                message, kind=LoadErrorKind.TRANSPORT, status_code=status
            ) from exc
        except httpx.RequestError as exc:
            raise WeatherAPIError(
                f"Network error: {exc}", kind=LoadErrorKind.TRANSPORT
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise WeatherAPIError(
                "Failed to process weather data", kind=LoadErrorKind.DECODING
            ) from exc

    async def fetch_current(
        self, city: str, units: TemperatureUnit = TemperatureUnit.METRIC
    ) -> WeatherSnapshot:
        """Fetch current conditions for a city name."""
        data = await self._request_json(
            f"{self.BASE_URL}/weather", params={"q": city, "units": units.value}
        )
        try:
            condition = (data.get("weather") or [{}])[0]
            return WeatherSnapshot(
                city_name=data["name"],
                country=(data.get("sys") or {}).get("country"),
                observed_at=datetime.fromtimestamp(int(data["dt"]), tz=timezone.utc),
                current_temp=data["main"]["temp"],
                feels_like=data["main"]["feels_like"],
                high_temp=data["main"]["temp_max"],
                low_temp=data["main"]["temp_min"],
                humidity=data["main"]["humidity"],
                wind_speed=data["wind"]["speed"],
                condition_code=condition.get("icon", ""),
                condition_label=condition.get("main", ""),
                condition_description=condition.get("description", ""),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Malformed current weather payload for %s: %s", city, exc)
            raise WeatherAPIError(
                "Failed to process weather data", kind=LoadErrorKind.DECODING
            ) from exc

    async def fetch_forecast_samples(
        self, city: str, units: TemperatureUnit = TemperatureUnit.METRIC
    ) -> List[RawForecastSample]:
        """Fetch the 5-day / 3-hour forecast feed for a city name."""
        data = await self._request_json(
            f"{self.BASE_URL}/forecast", params={"q": city, "units": units.value}
        )
        try:
            samples = []
            for item in data["list"]:
                condition = (item.get("weather") or [{}])[0]
                samples.append(RawForecastSample(
                    timestamp=int(item["dt"]),
                    temp_max=item["main"]["temp_max"],
                    temp_min=item["main"]["temp_min"],
                    condition_code=condition.get("icon", ""),
                    condition_label=condition.get("main", ""),
                ))
            return samples
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Malformed forecast payload for %s: %s", city, exc)
            raise WeatherAPIError(
                "Failed to process weather data", kind=LoadErrorKind.DECODING
            ) from exc

    async def lookup_cities(self, query: str, limit: int = 5) -> List[CitySearchResult]:
        """Resolve a free-text query to candidate cities."""
        data = await self._request_json(
            f"{self.GEO_URL}/direct", params={"q": query, "limit": limit}
        )
        if not isinstance(data, list):
            raise WeatherAPIError(
                "Failed to process search results", kind=LoadErrorKind.DECODING
            )
        results: List[CitySearchResult] = []
        try:
            for item in data:
                country = item.get("country")
                display_name = item["name"]
                country_name = country_display_name(country)
                if country_name:
                    display_name = f"{item['name']}, {country_name}"
                results.append(CitySearchResult(
                    name=item["name"],
                    lat=item["lat"],
                    lon=item["lon"],
                    country=country,
                    state=item.get("state"),
                    display_name=display_name,
                ))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise WeatherAPIError(
                "Failed to process search results", kind=LoadErrorKind.DECODING
            ) from exc
        return results

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
