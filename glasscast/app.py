import asyncio
from typing import Optional

from glasscast.api.favorites_client import FavoritesStoreClient
from glasscast.api.location_source import IPLocationSource
from glasscast.api.weather_client import WeatherAPIClient
from glasscast.config import AppConfig
from glasscast.schemas.city import CitySearchResult
from glasscast.schemas.weather import LoadState
from glasscast.services.city_search import CitySearchSynchronizer
from glasscast.services.weather_loader import WeatherLoadOrchestrator


class GlassCastSession:
    """One home context and one search context sharing a set of clients."""

    def __init__(
        self,
        weather: WeatherLoadOrchestrator,
        search: CitySearchSynchronizer,
        clients: tuple = (),
    ):
        self.weather = weather
        self.search = search
        self._clients = clients

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        access_token: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> "GlassCastSession":
        weather_client = WeatherAPIClient(api_key=config.weather_api_key)
        favorites_client = FavoritesStoreClient(
            base_url=config.supabase_url, anon_key=config.supabase_anon_key
        )
        location_source = IPLocationSource()

        weather = WeatherLoadOrchestrator(
            weather_client, location_source=location_source, units=config.units
        )
        search = CitySearchSynchronizer(
            weather_client,
            favorites_client,
            access_token=access_token,
            user_id=user_id,
            debounce_seconds=config.search_debounce_seconds,
        )
        return cls(weather, search, clients=(weather_client, favorites_client, location_source))

    async def select_city(self, city: CitySearchResult) -> LoadState:
        """Show weather for a search result and remember it as a favorite."""
        state, _ = await asyncio.gather(
            self.weather.load_weather(city.name),
            self.search.add_favorite(city),
        )
        return state

    async def aclose(self) -> None:
        self.search.close()
        for client in self._clients:
            await client.close()
