from datetime import date, datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class TemperatureUnit(str, Enum):
    METRIC = "metric"
    IMPERIAL = "imperial"


class LoadErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    NOT_FOUND = "not_found"
    TRANSPORT = "transport"
    DECODING = "decoding"
    UNEXPECTED = "unexpected"


class RawForecastSample(BaseModel):
    """One 3-hour slot of the forecast feed. Timestamps are UTC epoch seconds."""

    model_config = {"frozen": True}

    timestamp: int
    temp_max: float
    temp_min: float
    condition_code: str
    condition_label: str


class DailySummary(BaseModel):
    calendar_day: date
    day_label: str
    condition_code: str
    condition_label: str
    high_temp: float
    low_temp: float


class WeatherSnapshot(BaseModel):
    city_name: str
    country: Optional[str] = None
    observed_at: datetime
    current_temp: float
    feels_like: float
    high_temp: float
    low_temp: float
    humidity: int
    wind_speed: float
    condition_code: str
    condition_label: str
    condition_description: str = ""


class IdleState(BaseModel):
    status: Literal["idle"] = "idle"


class LoadingState(BaseModel):
    status: Literal["loading"] = "loading"


class ReadyState(BaseModel):
    status: Literal["ready"] = "ready"
    snapshot: WeatherSnapshot
    forecast: List[DailySummary]


class ErrorState(BaseModel):
    status: Literal["error"] = "error"
    kind: LoadErrorKind
    message: str


AnyLoadState = Union[IdleState, LoadingState, ReadyState, ErrorState]

LoadState = Annotated[AnyLoadState, Field(discriminator="status")]


class CityLoadRequest(BaseModel):
    city: str = Field(..., min_length=1)


class SystemStatus(BaseModel):
    weather_api_configured: bool
    favorites_configured: bool
    units: TemperatureUnit
