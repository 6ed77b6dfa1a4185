from __future__ import annotations

from typing import Protocol, Sequence

from ...domain.models import ForecastSnapshot, ForecastType


class WeatherAdapterError(RuntimeError):
    """Raised when a weather provider request cannot be completed."""


class WeatherSource(Protocol):
    def get_forecasts(
        self,
        lat: float,
        lon: float,
        *,
        days: int = 7,
        forecast_types: Sequence[ForecastType] = ("daily",),
    ) -> ForecastSnapshot:
        """Fetch daily and/or hourly forecasts for the provided coordinates."""
