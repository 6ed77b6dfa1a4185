from .base import WeatherAdapterError, WeatherSource
from .open_meteo import OpenMeteoWeatherAdapter

__all__ = ["OpenMeteoWeatherAdapter", "WeatherAdapterError", "WeatherSource"]
