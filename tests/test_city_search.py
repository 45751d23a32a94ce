import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from glasscast.api.favorites_client import FavoritesStoreError
from glasscast.api.weather_client import WeatherAPIError
from glasscast.schemas.city import CitySearchResult, FavoriteCity
from glasscast.services.city_search import CitySearchSynchronizer

DEBOUNCE = 0.02
SETTLE = 0.15


def build_city(name: str = "London") -> CitySearchResult:
    return CitySearchResult(
        name=name, lat=51.5074, lon=-0.1278, country="GB", display_name=f"{name}, United Kingdom"
    )


def build_favorite(name: str = "London", favorite_id: str = "fav-1") -> FavoriteCity:
    return FavoriteCity(
        id=favorite_id,
        user_id="user-1",
        city_name=name,
        lat=51.5074,
        lon=-0.1278,
        created_at=datetime(2026, 1, 20, tzinfo=timezone.utc),
    )


def build_geocoder() -> MagicMock:
    geocoder = MagicMock()
    geocoder.lookup_cities = AsyncMock(side_effect=lambda query, limit: [build_city(query)])
    return geocoder


def build_store(configured: bool = True) -> MagicMock:
    store = MagicMock()
    store.configured = configured
    store.list_favorites = AsyncMock(return_value=[])
    store.insert_favorite = AsyncMock(return_value=None)
    store.delete_favorite = AsyncMock(return_value=None)
    return store


def build_synchronizer(geocoder=None, store=None) -> CitySearchSynchronizer:
    return CitySearchSynchronizer(
        geocoder or build_geocoder(),
        store or build_store(),
        access_token="token-123",
        user_id="user-1",
        debounce_seconds=DEBOUNCE,
    )


@pytest.mark.asyncio
async def test_keystrokes_within_debounce_window_issue_one_lookup():
    geocoder = build_geocoder()
    sync = build_synchronizer(geocoder=geocoder)

    sync.set_query("Lon")
    sync.set_query("Lond")
    sync.set_query("London")
    await asyncio.sleep(SETTLE)

    geocoder.lookup_cities.assert_awaited_once_with("London", 5)
    assert [city.name for city in sync.results] == ["London"]
    assert sync.is_searching is False


@pytest.mark.asyncio
async def test_identical_query_is_not_fetched_twice():
    geocoder = build_geocoder()
    sync = build_synchronizer(geocoder=geocoder)

    sync.set_query("Paris")
    await asyncio.sleep(SETTLE)
    sync.set_query("Pari")
    sync.set_query("Paris")
    await asyncio.sleep(SETTLE)

    assert geocoder.lookup_cities.await_count == 1


@pytest.mark.asyncio
async def test_empty_query_clears_results_without_lookup():
    geocoder = build_geocoder()
    sync = build_synchronizer(geocoder=geocoder)
    sync.set_query("Oslo")
    await asyncio.sleep(SETTLE)
    assert sync.results

    sync.set_query("   ")

    assert sync.results == []
    assert sync.is_searching is False
    await asyncio.sleep(SETTLE)
    assert geocoder.lookup_cities.await_count == 1


@pytest.mark.asyncio
async def test_out_of_order_response_is_discarded():
    release_first = asyncio.Event()
    geocoder = build_geocoder()

    async def lookup(query, limit):
        if query == "Lond":
            await release_first.wait()
        return [build_city(query)]

    geocoder.lookup_cities.side_effect = lookup
    sync = build_synchronizer(geocoder=geocoder)

    first = asyncio.create_task(sync.search("Lond"))
    await asyncio.sleep(0)
    await sync.search("London")
    assert [city.name for city in sync.results] == ["London"]

    release_first.set()
    await first

    assert [city.name for city in sync.results] == ["London"]
    assert sync.is_searching is False


@pytest.mark.asyncio
async def test_search_failure_sets_message_and_clears_results():
    geocoder = build_geocoder()
    sync = build_synchronizer(geocoder=geocoder)
    await sync.search("Rome")
    geocoder.lookup_cities.side_effect = WeatherAPIError("Network error: offline")

    await sync.search("Roma")

    assert sync.results == []
    assert sync.error_message == "Search failed: Network error: offline"
    assert sync.is_searching is False


@pytest.mark.asyncio
async def test_next_successful_search_clears_failure_message():
    geocoder = build_geocoder()
    geocoder.lookup_cities.side_effect = WeatherAPIError("Network error: offline")
    sync = build_synchronizer(geocoder=geocoder)
    await sync.search("Lon")
    assert sync.error_message is not None

    geocoder.lookup_cities.side_effect = lambda query, limit: [build_city(query)]
    await sync.search("London")

    assert [city.name for city in sync.results] == ["London"]
    assert sync.error_message is None


@pytest.mark.asyncio
async def test_add_favorite_inserts_then_refreshes():
    store = build_store()
    store.list_favorites.return_value = [build_favorite("London")]
    sync = build_synchronizer(store=store)
    city = build_city("London")

    assert sync.is_favorite(city) is False
    await sync.add_favorite(city)

    store.insert_favorite.assert_awaited_once_with(
        "London", 51.5074, -0.1278, user_id="user-1", access_token="token-123"
    )
    store.list_favorites.assert_awaited_once_with("token-123")
    assert sync.is_favorite(city) is True
    assert sync.is_loading_favorites is False


@pytest.mark.asyncio
async def test_add_favorite_is_not_optimistic():
    release_list = asyncio.Event()
    store = build_store()

    async def slow_list(access_token):
        await release_list.wait()
        return [build_favorite("London")]

    store.list_favorites.side_effect = slow_list
    sync = build_synchronizer(store=store)

    task = asyncio.create_task(sync.add_favorite(build_city("London")))
    await asyncio.sleep(0.01)
    assert sync.is_favorite("London") is False
    assert sync.is_loading_favorites is True

    release_list.set()
    await task
    assert sync.is_favorite("London") is True


@pytest.mark.asyncio
async def test_add_existing_favorite_skips_insert():
    store = build_store()
    store.list_favorites.return_value = [build_favorite("London")]
    sync = build_synchronizer(store=store)
    await sync.refresh_favorites()

    await sync.add_favorite(build_city("London"))

    store.insert_favorite.assert_not_called()


@pytest.mark.asyncio
async def test_membership_is_case_sensitive():
    store = build_store()
    store.list_favorites.return_value = [build_favorite("London")]
    sync = build_synchronizer(store=store)
    await sync.refresh_favorites()

    assert sync.is_favorite("London") is True
    assert sync.is_favorite("london") is False


@pytest.mark.asyncio
async def test_failed_insert_sets_message_and_skips_refresh():
    store = build_store()
    store.insert_favorite.side_effect = FavoritesStoreError("Invalid response from Supabase (500)", 500)
    sync = build_synchronizer(store=store)

    await sync.add_favorite(build_city("London"))

    assert sync.error_message == "Failed to add favorite"
    store.list_favorites.assert_not_called()


@pytest.mark.asyncio
async def test_failed_refresh_keeps_last_known_good_cache():
    store = build_store()
    store.list_favorites.return_value = [build_favorite("London"), build_favorite("Paris", "fav-2")]
    sync = build_synchronizer(store=store)
    await sync.refresh_favorites()

    store.list_favorites.side_effect = FavoritesStoreError("Invalid response from Supabase (503)", 503)
    await sync.refresh_favorites()

    assert [favorite.city_name for favorite in sync.favorites] == ["London", "Paris"]
    assert sync.error_message == "Failed to load favorites"
    assert sync.is_loading_favorites is False


@pytest.mark.asyncio
async def test_refresh_replaces_cache_in_full():
    store = build_store()
    store.list_favorites.return_value = [build_favorite("London"), build_favorite("Paris", "fav-2")]
    sync = build_synchronizer(store=store)
    await sync.refresh_favorites()

    store.list_favorites.return_value = [build_favorite("Paris", "fav-2")]
    await sync.refresh_favorites()

    assert [favorite.id for favorite in sync.favorites] == ["fav-2"]


@pytest.mark.asyncio
async def test_late_older_refresh_does_not_overwrite_newer_list():
    release_older = asyncio.Event()
    store = build_store()
    calls = []

    async def list_favorites(access_token):
        calls.append(access_token)
        if len(calls) == 1:
            await release_older.wait()
            return [build_favorite("London")]
        return [build_favorite("London"), build_favorite("Paris", "fav-2")]

    store.list_favorites.side_effect = list_favorites
    sync = build_synchronizer(store=store)

    older = asyncio.create_task(sync.refresh_favorites())
    await asyncio.sleep(0)
    await sync.refresh_favorites()
    assert [favorite.city_name for favorite in sync.favorites] == ["London", "Paris"]
    assert sync.is_loading_favorites is False

    release_older.set()
    await older

    assert [favorite.city_name for favorite in sync.favorites] == ["London", "Paris"]
    assert sync.is_loading_favorites is False


@pytest.mark.asyncio
async def test_loading_flag_held_until_newest_refresh_finishes():
    release_older = asyncio.Event()
    release_newer = asyncio.Event()
    store = build_store()
    calls = []

    async def list_favorites(access_token):
        calls.append(access_token)
        if len(calls) == 1:
            await release_older.wait()
            return [build_favorite("London")]
        await release_newer.wait()
        return [build_favorite("Paris", "fav-2")]

    store.list_favorites.side_effect = list_favorites
    sync = build_synchronizer(store=store)

    older = asyncio.create_task(sync.refresh_favorites())
    await asyncio.sleep(0)
    newer = asyncio.create_task(sync.refresh_favorites())
    await asyncio.sleep(0)

    release_older.set()
    await older
    assert sync.is_loading_favorites is True
    assert sync.favorites == []

    release_newer.set()
    await newer

    assert [favorite.id for favorite in sync.favorites] == ["fav-2"]
    assert sync.is_loading_favorites is False


@pytest.mark.asyncio
async def test_remove_favorite_deletes_then_refreshes():
    store = build_store()
    store.list_favorites.return_value = [build_favorite("London")]
    sync = build_synchronizer(store=store)
    await sync.refresh_favorites()
    store.list_favorites.return_value = []

    await sync.remove_favorite("fav-1")

    store.delete_favorite.assert_awaited_once_with("fav-1", access_token="token-123")
    assert sync.favorites == []


@pytest.mark.asyncio
async def test_unconfigured_store_turns_favorites_into_noops():
    store = build_store(configured=False)
    sync = build_synchronizer(store=store)

    await sync.add_favorite(build_city("London"))
    await sync.remove_favorite("fav-1")
    await sync.refresh_favorites()

    store.insert_favorite.assert_not_called()
    store.delete_favorite.assert_not_called()
    store.list_favorites.assert_not_called()
    assert sync.error_message == "Favorites are not configured"


@pytest.mark.asyncio
async def test_clear_error_dismisses_message():
    store = build_store(configured=False)
    sync = build_synchronizer(store=store)
    await sync.refresh_favorites()
    seen = []
    sync.subscribe(lambda s: seen.append(s.error_message))

    sync.clear_error()

    assert sync.error_message is None
    assert seen == [None]


@pytest.mark.asyncio
async def test_listeners_see_search_flag_transitions():
    sync = build_synchronizer()
    flags = []
    sync.subscribe(lambda s: flags.append(s.is_searching))

    await sync.search("Madrid")

    assert flags == [True, False]


@pytest.mark.asyncio
async def test_close_cancels_pending_debounce():
    geocoder = build_geocoder()
    sync = build_synchronizer(geocoder=geocoder)

    sync.set_query("Lisbon")
    sync.close()
    await asyncio.sleep(SETTLE)

    geocoder.lookup_cities.assert_not_called()
