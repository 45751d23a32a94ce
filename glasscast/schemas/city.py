from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class CitySearchResult(BaseModel):
    name: str
    lat: float
    lon: float
    country: Optional[str] = None
    state: Optional[str] = None
    display_name: str


class FavoriteCity(BaseModel):
    """A row of the remote ``favorite_cities`` table."""

    id: str
    user_id: Optional[str] = None
    city_name: str
    lat: float
    lon: float
    created_at: Optional[datetime] = None


class SearchQueryUpdate(BaseModel):
    text: str


class SearchStatus(BaseModel):
    query: str
    results: List[CitySearchResult]
    is_searching: bool
    error_message: Optional[str] = None


class FavoritesStatus(BaseModel):
    favorites: List[FavoriteCity]
    is_loading_favorites: bool
    error_message: Optional[str] = None
