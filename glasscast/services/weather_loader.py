import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional

from glasscast.api.weather_client import WeatherAPIError
from glasscast.schemas.weather import (
    ErrorState,
    IdleState,
    LoadErrorKind,
    LoadingState,
    LoadState,
    ReadyState,
    TemperatureUnit,
)
from glasscast.services.bucketizer import bucketize

logger = logging.getLogger(__name__)

StateListener = Callable[[LoadState], None]


def _local_now() -> datetime:
    return datetime.now().astimezone()


class WeatherLoadOrchestrator:
    """Owns the weather-loading lifecycle of one selected city.

    Every dispatched load carries a generation token. Results are applied
    only while their token is still the latest one, so a late response for
    a previously selected city never overwrites a newer state. The state is
    mutated only here; consumers read ``state`` or subscribe to changes.
    """

    def __init__(
        self,
        weather_source,
        location_source=None,
        units: TemperatureUnit = TemperatureUnit.METRIC,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.weather_source = weather_source
        self.location_source = location_source
        self.units = units
        self._clock = clock or _local_now
        self._state: LoadState = IdleState()
        self._selected_city: Optional[str] = None
        self._generation = 0
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def selected_city(self) -> Optional[str]:
        return self._selected_city

    @property
    def is_loading(self) -> bool:
        return isinstance(self._state, LoadingState)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: LoadState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def _begin(self) -> int:
        self._generation += 1
        self._set_state(LoadingState())
        return self._generation

    async def load_weather(self, city: str) -> LoadState:
        """Load weather for ``city``.

        Selecting a different city supersedes any in-flight load. Asking for
        the city that is already loading is a no-op.
        """
        if city == self._selected_city and self.is_loading:
            return self._state
        self._selected_city = city
        return await self._fetch(city, self._begin())

    async def refresh(self) -> LoadState:
        if self._selected_city is None or self.is_loading:
            return self._state
        return await self._fetch(self._selected_city, self._begin())

    async def load_weather_for_current_location(self) -> LoadState:
        generation = self._begin()
        # the resolved city is unknown until the lookup returns
        self._selected_city = None
        city = None
        if self.location_source is not None:
            try:
                city = await self.location_source.resolve_current_city()
            except Exception as exc:
                logger.warning("Location source failed: %s", exc)

        if generation != self._generation:
            return self._state
        if not city:
            # no fix is a prompt to search, not a failure
            self._selected_city = None
            self._set_state(IdleState())
            return self._state

        self._selected_city = city
        return await self._fetch(city, generation)

    async def _fetch(self, city: str, generation: int) -> LoadState:
        current, samples = await asyncio.gather(
            self.weather_source.fetch_current(city, self.units),
            self.weather_source.fetch_forecast_samples(city, self.units),
            return_exceptions=True,
        )

        if generation != self._generation:
            logger.debug(
                "Dropping stale weather result for %s (generation %d, current %d)",
                city, generation, self._generation,
            )
            return self._state

        for result in (current, samples):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                self._set_state(self._error_state(city, result))
                return self._state

        try:
            forecast = bucketize(samples, self._clock())
        except Exception as exc:
            self._set_state(self._error_state(city, exc))
            return self._state

        self._set_state(ReadyState(snapshot=current, forecast=forecast))
        return self._state

    def _error_state(self, city: str, exc: Exception) -> ErrorState:
        if isinstance(exc, WeatherAPIError):
            logger.warning("Weather load failed for %s: %s", city, exc)
            return ErrorState(kind=exc.kind, message=str(exc))
        logger.error("Unexpected error loading weather for %s", city, exc_info=exc)
        return ErrorState(
            kind=LoadErrorKind.UNEXPECTED,
            message="Unable to load weather right now",
        )
