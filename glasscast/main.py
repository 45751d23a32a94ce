import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware

from glasscast.app import GlassCastSession
from glasscast.config import AppConfig, load_config
from glasscast.schemas.city import (
    CitySearchResult,
    FavoritesStatus,
    SearchQueryUpdate,
    SearchStatus,
)
from glasscast.schemas.weather import AnyLoadState, CityLoadRequest, SystemStatus


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = load_config()
    app.state.config = config
    app.state.session = GlassCastSession.from_config(config)
    yield
    await app.state.session.aclose()


app = FastAPI(title="GlassCast Weather API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_session(request: Request) -> GlassCastSession:
    return request.app.state.session


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def _search_status(session: GlassCastSession) -> SearchStatus:
    search = session.search
    return SearchStatus(
        query=search.query,
        results=search.results,
        is_searching=search.is_searching,
        error_message=search.error_message,
    )


def _favorites_status(session: GlassCastSession) -> FavoritesStatus:
    search = session.search
    return FavoritesStatus(
        favorites=search.favorites,
        is_loading_favorites=search.is_loading_favorites,
        error_message=search.error_message,
    )


@app.get("/")
async def root():
    return {
        "message": "GlassCast Weather API",
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


@app.get("/system/status", response_model=SystemStatus)
async def get_system_status(config: AppConfig = Depends(get_config)):
    return SystemStatus(
        weather_api_configured=config.weather_api_configured,
        favorites_configured=config.supabase_configured,
        units=config.units,
    )


@app.get("/weather", response_model=AnyLoadState)
async def get_weather(session: GlassCastSession = Depends(get_session)):
    return session.weather.state


@app.post("/weather/city", response_model=AnyLoadState)
async def load_city_weather(
    body: CityLoadRequest,
    session: GlassCastSession = Depends(get_session),
):
    return await session.weather.load_weather(body.city)


@app.post("/weather/refresh", response_model=AnyLoadState)
async def refresh_weather(session: GlassCastSession = Depends(get_session)):
    return await session.weather.refresh()


@app.post("/weather/current-location", response_model=AnyLoadState)
async def load_current_location_weather(session: GlassCastSession = Depends(get_session)):
    return await session.weather.load_weather_for_current_location()


@app.get("/search", response_model=SearchStatus)
async def get_search(session: GlassCastSession = Depends(get_session)):
    return _search_status(session)


@app.put("/search/query", response_model=SearchStatus, status_code=202)
async def update_search_query(
    body: SearchQueryUpdate,
    session: GlassCastSession = Depends(get_session),
):
    session.search.set_query(body.text)
    return _search_status(session)


@app.delete("/search/error", response_model=SearchStatus)
async def dismiss_search_error(session: GlassCastSession = Depends(get_session)):
    session.search.clear_error()
    return _search_status(session)


@app.post("/search/select", response_model=AnyLoadState)
async def select_search_result(
    city: CitySearchResult,
    session: GlassCastSession = Depends(get_session),
):
    return await session.select_city(city)


@app.get("/favorites", response_model=FavoritesStatus)
async def get_favorites(session: GlassCastSession = Depends(get_session)):
    return _favorites_status(session)


@app.post("/favorites", response_model=FavoritesStatus)
async def add_favorite(
    city: CitySearchResult,
    session: GlassCastSession = Depends(get_session),
):
    await session.search.add_favorite(city)
    return _favorites_status(session)


@app.post("/favorites/refresh", response_model=FavoritesStatus)
async def refresh_favorites(session: GlassCastSession = Depends(get_session)):
    await session.search.refresh_favorites()
    return _favorites_status(session)


@app.delete("/favorites/{favorite_id}", response_model=FavoritesStatus)
async def remove_favorite(
    favorite_id: str,
    session: GlassCastSession = Depends(get_session),
):
    await session.search.remove_favorite(favorite_id)
    return _favorites_status(session)


@app.get("/favorites/{city_name}/status")
async def favorite_status(
    city_name: str,
    session: GlassCastSession = Depends(get_session),
):
    return {"city_name": city_name, "is_favorite": session.search.is_favorite(city_name)}


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="127.0.0.1", port=8000)
