"""Collapse the 3-hourly forecast feed into per-day summaries."""
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List

from glasscast.schemas.weather import DailySummary, RawForecastSample

FORECAST_DAYS = 5

# fixed English abbreviations, independent of LC_TIME
WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def local_day(timestamp: int, now: datetime) -> date:
    """Calendar day of a UTC epoch timestamp in ``now``'s time zone.

    A naive ``now`` means the host's local time zone.
    """
    return datetime.fromtimestamp(timestamp, tz=now.tzinfo).date()


def day_label(day: date, today: date) -> str:
    if day == today:
        return "Today"
    if day == today + timedelta(days=1):
        return "Tomorrow"
    return WEEKDAY_LABELS[day.weekday()]


def bucketize(samples: Iterable[RawForecastSample], now: datetime) -> List[DailySummary]:
    buckets: Dict[date, dict] = {}

    for sample in samples:
        day = local_day(sample.timestamp, now)
        bucket = buckets.get(day)
        if bucket is None:
            # first sample of the day decides the condition
            buckets[day] = {
                "high": sample.temp_max,
                "low": sample.temp_min,
                "code": sample.condition_code,
                "label": sample.condition_label,
            }
        else:
            bucket["high"] = max(bucket["high"], sample.temp_max)
            bucket["low"] = min(bucket["low"], sample.temp_min)

    today = now.date()
    return [
        DailySummary(
            calendar_day=day,
            day_label=day_label(day, today),
            condition_code=buckets[day]["code"],
            condition_label=buckets[day]["label"],
            high_temp=buckets[day]["high"],
            low_temp=buckets[day]["low"],
        )
        for day in sorted(buckets)[:FORECAST_DAYS]
    ]
