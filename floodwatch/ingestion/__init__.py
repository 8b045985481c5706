"""Weather data ingestion."""

from .weather_service import FetchStatus, OpenWeatherClient, WeatherResult

__all__ = ["FetchStatus", "OpenWeatherClient", "WeatherResult"]
