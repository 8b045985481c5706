"""Monitored area schema and storage."""

from .models import AreaRiskUpdate, MonitoredArea, WeatherSample, parse_areas
from .repository import AreaRepository, InMemoryAreaRepository, SqlAreaRepository

__all__ = [
    "AreaRepository",
    "AreaRiskUpdate",
    "InMemoryAreaRepository",
    "MonitoredArea",
    "SqlAreaRepository",
    "WeatherSample",
    "parse_areas",
]
