from __future__ import annotations

import json
import math
from datetime import date, datetime, time, timezone
from typing import Any, Literal, Sequence
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ...domain.models import ForecastSnapshot, ForecastType, WeatherForecast
from .base import WeatherAdapterError

OPEN_METEO_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
DEFAULT_TIMEOUT_SECONDS = 10
USER_AGENT = "dayview/0.1"

DAILY_FIELDS = (
    "weather_code,temperature_2m_max,temperature_2m_min,"
    "precipitation_sum,precipitation_probability_max"
)
HOURLY_FIELDS = "weather_code,temperature_2m,precipitation,precipitation_probability"

# WMO weather codes mapped onto Home Assistant condition names.
WEATHER_CODE_CONDITIONS = {
    0: "sunny",
    1: "partlycloudy",
    2: "partlycloudy",
    3: "cloudy",
    45: "fog",
    48: "fog",
    51: "rainy",
    53: "rainy",
    55: "rainy",
    56: "snowy-rainy",
    57: "snowy-rainy",
    61: "rainy",
    63: "rainy",
    65: "pouring",
    66: "snowy-rainy",
    67: "snowy-rainy",
    71: "snowy",
    73: "snowy",
    75: "snowy",
    77: "snowy",
    80: "rainy",
    81: "rainy",
    82: "pouring",
    85: "snowy",
    86: "snowy",
    95: "lightning-rainy",
    96: "hail",
    99: "hail",
}
UNKNOWN_CONDITION = "exceptional"


def _round_temperature(value: Any, *, field_name: str) -> int:
    try:
        return math.floor(float(value) + 0.5)
    except (TypeError, ValueError) as exc:
        raise WeatherAdapterError(f"Invalid numeric value for {field_name}") from exc


def _coerce_int(value: Any, *, field_name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise WeatherAdapterError(f"Invalid integer value for {field_name}") from exc


def _coerce_optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _coerce_optional_percent(value: Any) -> int | None:
    number = _coerce_optional_float(value)
    if number is None:
        return None
    return min(100, max(0, int(round(number))))


def weather_condition(code: int) -> str:
    return WEATHER_CODE_CONDITIONS.get(code, UNKNOWN_CONDITION)


def _fetch_json(url: str) -> dict[str, Any]:
    request = Request(url, headers={"User-Agent": USER_AGENT})
    try:
        with urlopen(request, timeout=DEFAULT_TIMEOUT_SECONDS) as response:
            payload = json.loads(response.read().decode("utf-8"))
    except (HTTPError, URLError, TimeoutError, json.JSONDecodeError) as exc:
        raise WeatherAdapterError("Failed to fetch weather data from Open-Meteo") from exc

    if not isinstance(payload, dict):
        raise WeatherAdapterError("Unexpected Open-Meteo response shape")
    return payload


def _series(data: dict[str, Any], names: Sequence[str], *, section: str) -> list[list[Any]]:
    columns = [data.get(name) for name in names]
    if not all(isinstance(column, list) for column in columns):
        raise WeatherAdapterError(f"Open-Meteo {section} forecast payload was incomplete")
    return columns


def _optional_series(data: dict[str, Any], name: str, length: int) -> list[Any]:
    column = data.get(name)
    return column if isinstance(column, list) else [None] * length


class OpenMeteoWeatherAdapter:
    def __init__(
        self,
        *,
        units: Literal["metric", "imperial"] = "metric",
        timezone_name: str,
    ) -> None:
        try:
            self._timezone = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise WeatherAdapterError(f"Unknown timezone for weather adapter: {timezone_name}") from exc
        self._timezone_name = timezone_name
        self._units = units

    def get_forecasts(
        self,
        lat: float,
        lon: float,
        *,
        days: int = 7,
        forecast_types: Sequence[ForecastType] = ("daily",),
    ) -> ForecastSnapshot:
        params = {
            "latitude": f"{lat:.5f}",
            "longitude": f"{lon:.5f}",
            "daily": DAILY_FIELDS,
            "timezone": self._timezone_name,
            "forecast_days": str(min(max(days, 1), 16)),
        }
        if "hourly" in forecast_types:
            params["hourly"] = HOURLY_FIELDS
        if self._units == "imperial":
            params["temperature_unit"] = "fahrenheit"
            params["precipitation_unit"] = "inch"

        payload = _fetch_json(f"{OPEN_METEO_FORECAST_URL}?{urlencode(params)}")

        daily_data = payload.get("daily")
        if not isinstance(daily_data, dict):
            raise WeatherAdapterError("Open-Meteo response did not include daily forecasts")
        daily = self._parse_daily(daily_data) if "daily" in forecast_types else []

        hourly: list[WeatherForecast] = []
        if "hourly" in forecast_types:
            hourly_data = payload.get("hourly")
            if not isinstance(hourly_data, dict):
                raise WeatherAdapterError("Open-Meteo response did not include hourly forecasts")
            hourly = self._parse_hourly(hourly_data)

        return ForecastSnapshot(daily=daily, hourly=hourly, fetched_at=datetime.now(timezone.utc))

    def _parse_daily(self, daily_data: dict[str, Any]) -> list[WeatherForecast]:
        dates, max_temps, min_temps, codes = _series(
            daily_data,
            ("time", "temperature_2m_max", "temperature_2m_min", "weather_code"),
            section="daily",
        )
        count = min(len(dates), len(max_temps), len(min_temps), len(codes))
        precipitation = _optional_series(daily_data, "precipitation_sum", count)
        probability = _optional_series(daily_data, "precipitation_probability_max", count)

        forecasts: list[WeatherForecast] = []
        for index in range(count):
            try:
                day = date.fromisoformat(str(dates[index]))
            except ValueError as exc:
                raise WeatherAdapterError("Open-Meteo daily forecast date was invalid") from exc

            forecasts.append(
                WeatherForecast(
                    forecast_type="daily",
                    valid_at=datetime.combine(day, time.min, tzinfo=self._timezone),
                    condition=weather_condition(_coerce_int(codes[index], field_name="daily.weather_code")),
                    temperature=_round_temperature(max_temps[index], field_name="daily.temperature_2m_max"),
                    templow=_round_temperature(min_temps[index], field_name="daily.temperature_2m_min"),
                    precipitation=_coerce_optional_float(precipitation[index] if index < len(precipitation) else None),
                    precipitation_probability=_coerce_optional_percent(
                        probability[index] if index < len(probability) else None
                    ),
                )
            )
        return forecasts

    def _parse_hourly(self, hourly_data: dict[str, Any]) -> list[WeatherForecast]:
        times, temps, codes = _series(
            hourly_data,
            ("time", "temperature_2m", "weather_code"),
            section="hourly",
        )
        count = min(len(times), len(temps), len(codes))
        precipitation = _optional_series(hourly_data, "precipitation", count)
        probability = _optional_series(hourly_data, "precipitation_probability", count)

        forecasts: list[WeatherForecast] = []
        for index in range(count):
            try:
                valid_at = datetime.fromisoformat(str(times[index]))
            except ValueError as exc:
                raise WeatherAdapterError("Open-Meteo hourly forecast time was invalid") from exc
            if valid_at.tzinfo is None:
                valid_at = valid_at.replace(tzinfo=self._timezone)

            forecasts.append(
                WeatherForecast(
                    forecast_type="hourly",
                    valid_at=valid_at,
                    condition=weather_condition(_coerce_int(codes[index], field_name="hourly.weather_code")),
                    temperature=_round_temperature(temps[index], field_name="hourly.temperature_2m"),
                    precipitation=_coerce_optional_float(precipitation[index] if index < len(precipitation) else None),
                    precipitation_probability=_coerce_optional_percent(
                        probability[index] if index < len(probability) else None
                    ),
                )
            )
        return forecasts
