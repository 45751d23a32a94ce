"""Environment-driven application configuration."""
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from glasscast.schemas.weather import TemperatureUnit

logger = logging.getLogger(__name__)

PLACEHOLDER_VALUES = {
    "YOUR_API_KEY_HERE",
    "YOUR_SUPABASE_PROJECT_URL",
    "YOUR_SUPABASE_ANON_KEY",
}


def _get_env(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip().strip('"').strip("'")
    if not value or value in PLACEHOLDER_VALUES:
        return None
    return value


class AppConfig(BaseModel):
    weather_api_key: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    units: TemperatureUnit = TemperatureUnit.METRIC
    search_debounce_seconds: float = Field(default=0.5, ge=0.0)

    @property
    def weather_api_configured(self) -> bool:
        return bool(self.weather_api_key)

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)


def load_config(dotenv_path: Optional[str] = None) -> AppConfig:
    """Build the configuration from the process environment.

    A ``.env`` file is loaded first; variables already set in the
    environment take precedence over it.
    """
    load_dotenv(dotenv_path=dotenv_path)

    units = TemperatureUnit.METRIC
    raw_units = _get_env("GLASSCAST_UNITS")
    if raw_units:
        try:
            units = TemperatureUnit(raw_units.lower())
        except ValueError:
            logger.warning("Unknown GLASSCAST_UNITS value %r, using metric", raw_units)

    debounce_seconds = 0.5
    raw_debounce = _get_env("GLASSCAST_SEARCH_DEBOUNCE_MS")
    if raw_debounce:
        try:
            debounce_seconds = max(0, int(raw_debounce)) / 1000
        except ValueError:
            logger.warning("Invalid GLASSCAST_SEARCH_DEBOUNCE_MS value %r, using 500", raw_debounce)

    config = AppConfig(
        weather_api_key=_get_env("OPENWEATHER_API_KEY"),
        supabase_url=_get_env("SUPABASE_URL"),
        supabase_anon_key=_get_env("SUPABASE_ANON_KEY"),
        units=units,
        search_debounce_seconds=debounce_seconds,
    )
    if not config.weather_api_configured:
        logger.warning("OPENWEATHER_API_KEY not found in environment variables.")
    if not config.supabase_configured:
        logger.info("Supabase is not configured; favorites are disabled.")
    return config
