from __future__ import annotations

from datetime import date, timedelta, tzinfo
from typing import NamedTuple

from ..domain.models import (
    AllDay,
    ForecastSnapshot,
    ForecastType,
    ProcessedEvent,
    WeatherConfig,
    WeatherData,
    WeatherForecast,
)

FALLBACK_ICON = "mdi:weather-cloudy-alert"

CONDITION_ICONS = {
    "clear-night": "mdi:weather-night",
    "cloudy": "mdi:weather-cloudy",
    "fog": "mdi:weather-fog",
    "hail": "mdi:weather-hail",
    "lightning": "mdi:weather-lightning",
    "lightning-rainy": "mdi:weather-lightning-rainy",
    "partlycloudy": "mdi:weather-partly-cloudy",
    "pouring": "mdi:weather-pouring",
    "rainy": "mdi:weather-rainy",
    "snowy": "mdi:weather-snowy",
    "snowy-rainy": "mdi:weather-snowy-rainy",
    "sunny": "mdi:weather-sunny",
    "windy": "mdi:weather-windy",
    "windy-variant": "mdi:weather-windy-variant",
    "exceptional": FALLBACK_ICON,
}

NIGHT_ICONS = {
    "sunny": "mdi:weather-night",
    "partlycloudy": "mdi:weather-night-partly-cloudy",
    "lightning-rainy": "mdi:weather-lightning",
}


class ForecastIndex(NamedTuple):
    daily: dict[str, WeatherData]
    hourly: dict[str, WeatherData]


def required_forecast_types(config: WeatherConfig) -> list[ForecastType]:
    """Forecast kinds to fetch: daily for day headers, hourly too for events."""
    if not config.enabled:
        return []
    if config.position == "date":
        return ["daily"]
    return ["daily", "hourly"]


def weather_icon(condition: str, hour: int | None = None) -> str:
    is_night = hour is not None and (hour >= 18 or hour < 6)
    if is_night and condition in NIGHT_ICONS:
        return NIGHT_ICONS[condition]
    return CONDITION_ICONS.get(condition, FALLBACK_ICON)


def hourly_key(day: date, hour: int) -> str:
    return f"{day.isoformat()}_{hour}"


def _weather_data(forecast: WeatherForecast, hour: int | None) -> WeatherData:
    return WeatherData(
        icon=weather_icon(forecast.condition, hour),
        condition=forecast.condition,
        temperature=forecast.temperature,
        templow=forecast.templow,
        valid_at=forecast.valid_at,
        hour=hour,
        precipitation=forecast.precipitation,
        precipitation_probability=forecast.precipitation_probability,
    )


def index_forecasts(snapshot: ForecastSnapshot, tz: tzinfo) -> ForecastIndex:
    """Key daily forecasts by local date and hourly ones by ``<date>_<hour>``."""
    daily: dict[str, WeatherData] = {}
    for forecast in snapshot.daily:
        daily[forecast.valid_at.astimezone(tz).date().isoformat()] = _weather_data(forecast, None)

    hourly: dict[str, WeatherData] = {}
    for forecast in snapshot.hourly:
        local_time = forecast.valid_at.astimezone(tz)
        hourly[hourly_key(local_time.date(), local_time.hour)] = _weather_data(forecast, local_time.hour)
    return ForecastIndex(daily=daily, hourly=hourly)


def find_daily_forecast(day: date, forecasts: ForecastIndex) -> WeatherData | None:
    return forecasts.daily.get(day.isoformat())


def find_forecast_for_event(
    event: ProcessedEvent,
    forecasts: ForecastIndex,
    tz: tzinfo,
) -> WeatherData | None:
    """Daily forecast for all-day events, else the forecast of the next full hour.

    An event starting on the hour uses that hour; 23:30 rolls over to 00:00
    of the following day.
    """
    if event.is_empty_placeholder:
        return None
    if isinstance(event.start, AllDay):
        return forecasts.daily.get(event.start.date.isoformat())

    local_start = event.start.instant.astimezone(tz)
    target = local_start.replace(minute=0, second=0, microsecond=0)
    if local_start.minute:
        target += timedelta(hours=1)
    return forecasts.hourly.get(hourly_key(target.date(), target.hour))
