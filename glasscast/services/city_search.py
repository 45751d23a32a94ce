import asyncio
import logging
from typing import Callable, List, Optional, Set, Union

from glasscast.api.favorites_client import FavoritesStoreError
from glasscast.api.weather_client import WeatherAPIError
from glasscast.schemas.city import CitySearchResult, FavoriteCity

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = "Favorites are not configured"


class CitySearchSynchronizer:
    """Debounced city search plus a cached copy of the remote favorites.

    Each lookup gets a generation number; only the newest lookup may touch
    ``results`` or clear ``is_searching``. The favorites cache is only ever
    replaced in full from the remote list, and only by the newest refresh.
    """

    def __init__(
        self,
        geocoder,
        favorites_store,
        access_token: Optional[str] = None,
        user_id: Optional[str] = None,
        debounce_seconds: float = 0.5,
        result_limit: int = 5,
    ):
        self.geocoder = geocoder
        self.favorites_store = favorites_store
        self.access_token = access_token
        self.user_id = user_id
        self.debounce_seconds = debounce_seconds
        self.result_limit = result_limit

        self._query = ""
        self._results: List[CitySearchResult] = []
        self._favorites: List[FavoriteCity] = []
        self._is_searching = False
        self._is_loading_favorites = False
        self._error_message: Optional[str] = None

        self._generation = 0
        self._favorites_generation = 0
        self._last_dispatched: Optional[str] = None
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._listeners: List[Callable[["CitySearchSynchronizer"], None]] = []

    @property
    def query(self) -> str:
        return self._query

    @property
    def results(self) -> List[CitySearchResult]:
        return list(self._results)

    @property
    def favorites(self) -> List[FavoriteCity]:
        return list(self._favorites)

    @property
    def is_searching(self) -> bool:
        return self._is_searching

    @property
    def is_loading_favorites(self) -> bool:
        return self._is_loading_favorites

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    def subscribe(self, listener: Callable[["CitySearchSynchronizer"], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def clear_error(self) -> None:
        self._error_message = None
        self._notify()

    # Search

    def set_query(self, text: str) -> None:
        """Update the query text. Must be called from a running event loop."""
        self._query = text
        self._cancel_debounce()

        if not text.strip():
            # invalidate any lookup still in flight
            self._generation += 1
            self._last_dispatched = None
            self._results = []
            self._is_searching = False
            self._notify()
            return

        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(
            self.debounce_seconds, self._debounce_elapsed, text
        )
        self._notify()

    def _cancel_debounce(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

    def _debounce_elapsed(self, text: str) -> None:
        self._debounce_handle = None
        if text == self._last_dispatched:
            return
        task = asyncio.get_running_loop().create_task(self.search(text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def search(self, query: str) -> None:
        self._last_dispatched = query
        self._generation += 1
        generation = self._generation
        self._is_searching = True
        self._error_message = None
        self._notify()

        try:
            results = await self.geocoder.lookup_cities(query, self.result_limit)
        except WeatherAPIError as exc:
            if generation == self._generation:
                logger.warning("Search for %r failed: %s", query, exc)
                self._results = []
                self._error_message = f"Search failed: {exc}"
        else:
            if generation == self._generation:
                self._results = list(results)
            else:
                logger.debug("Dropping stale search results for %r", query)
        finally:
            if generation == self._generation:
                self._is_searching = False
                self._notify()

    # Favorites

    def _favorites_available(self) -> bool:
        if self.favorites_store is None or not self.favorites_store.configured:
            logger.warning("Favorites store not configured")
            self._error_message = NOT_CONFIGURED_MESSAGE
            self._notify()
            return False
        return True

    def is_favorite(self, city: Union[CitySearchResult, str]) -> bool:
        name = city if isinstance(city, str) else city.name
        return any(favorite.city_name == name for favorite in self._favorites)

    async def refresh_favorites(self) -> None:
        if not self._favorites_available():
            return

        self._favorites_generation += 1
        generation = self._favorites_generation
        self._is_loading_favorites = True
        self._notify()
        try:
            favorites = await self.favorites_store.list_favorites(self.access_token)
        except FavoritesStoreError as exc:
            if generation == self._favorites_generation:
                # keep the last-known-good list
                logger.warning("Failed to load favorites: %s", exc)
                self._error_message = "Failed to load favorites"
        else:
            if generation == self._favorites_generation:
                self._favorites = list(favorites)
                logger.debug("Loaded %d favorite cities", len(self._favorites))
            else:
                logger.debug("Dropping stale favorites list")
        finally:
            if generation == self._favorites_generation:
                self._is_loading_favorites = False
                self._notify()

    async def add_favorite(self, city: CitySearchResult) -> None:
        if not self._favorites_available():
            return
        if self.is_favorite(city):
            logger.debug("%s is already a favorite", city.name)
            return

        try:
            await self.favorites_store.insert_favorite(
                city.name, city.lat, city.lon,
                user_id=self.user_id, access_token=self.access_token,
            )
        except FavoritesStoreError as exc:
            logger.warning("Error adding favorite %s: %s", city.name, exc)
            self._error_message = "Failed to add favorite"
            self._notify()
            return
        await self.refresh_favorites()

    async def remove_favorite(self, favorite_id: str) -> None:
        if not self._favorites_available():
            return

        try:
            await self.favorites_store.delete_favorite(
                favorite_id, access_token=self.access_token
            )
        except FavoritesStoreError as exc:
            logger.warning("Error removing favorite %s: %s", favorite_id, exc)
            self._error_message = "Failed to remove favorite"
            self._notify()
            return
        await self.refresh_favorites()

    def close(self) -> None:
        self._cancel_debounce()
        for task in list(self._tasks):
            task.cancel()
