"""
weather_service.py: OpenWeatherMap ingestion for the live risk monitor.

Turns one coordinate into one ``WeatherSample`` (the shape the classifier
consumes) or a typed failure. The client never raises to its caller.

Endpoints Used
==============
    GET {base}/weather   current conditions  (rain, wind, temperature)
    GET {base}/forecast  5-day / 3-hour forecast; first 16 slots = 48 h

Normalisation
=============
    rainfall           rain["1h"], else rain["3h"] / 3, else 0      (mm/hr)
    wind_speed         wind.speed × 3.6                            (km/h)
    temperature        main.temp                                   (°C, units=metric)
    storm_alerts       "Thunderstorm Warning" when weather[0].main is Thunderstorm
    forecast_rainfall  Σ rain["3h"] over the first 16 forecast slots (mm)

The two calls are made one after the other, never in parallel, so the
monitor's batch size is also the ceiling on concurrent provider requests.

Error Handling Strategy
=======================
    Credential missing / malformed  → UNAVAILABLE, no request is sent
    Coordinates out of range        → INVALID_INPUT
    Timeout                         → TIMEOUT
    Connection / transport failure  → NETWORK_ERROR
    Non-2xx status                  → API_ERROR
    Undecodable or malformed body   → PARSE_ERROR
    Forecast call fails             → success, forecast_rainfall = 0, status PARTIAL

No retries: a failed area is simply picked up again on the next cycle.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PayloadError

from floodwatch.areas.models import WeatherSample
from floodwatch.core.config import is_valid_api_key, settings
from floodwatch.core.errors import ExternalServiceError
from floodwatch.risk.classifier import KMH_PER_MS

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

FORECAST_SLOTS_48H = 16  # 16 × 3 h
THUNDERSTORM_ALERT = "Thunderstorm Warning"


class FetchStatus(str, Enum):
    """Outcome of a weather fetch."""
    SUCCESS = "success"
    PARTIAL = "partial"            # current ok, forecast missing
    UNAVAILABLE = "unavailable"    # no usable credential
    INVALID_INPUT = "invalid_input"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    API_ERROR = "api_error"
    PARSE_ERROR = "parse_error"


@dataclass(frozen=True)
class WeatherResult:
    """
    Result of one fetch. Callers check ``success`` before using ``sample``;
    on failure ``error_message`` carries the diagnostic for logging.
    """
    success: bool
    status: FetchStatus
    latitude: float
    longitude: float
    sample: Optional[WeatherSample] = None
    error_message: str = ""
    fetch_duration_ms: int = 0


# ---------------------------------------------------------------------------
# Provider payloads
# ---------------------------------------------------------------------------

class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, allow_inf_nan=False)


class _Precipitation(_Payload):
    one_hour: Optional[float] = Field(default=None, alias="1h")
    three_hour: Optional[float] = Field(default=None, alias="3h")


class _Condition(_Payload):
    main: str = ""


class _MainBlock(_Payload):
    temp: float


class _Wind(_Payload):
    speed: float = 0.0


class CurrentWeatherPayload(_Payload):
    main: _MainBlock
    wind: _Wind = Field(default_factory=_Wind)
    rain: Optional[_Precipitation] = None
    weather: List[_Condition] = Field(default_factory=list)

    @property
    def rainfall_rate(self) -> float:
        if self.rain is None:
            return 0.0
        if self.rain.one_hour:
            return self.rain.one_hour
        if self.rain.three_hour:
            return self.rain.three_hour / 3
        return 0.0


class _ForecastSlot(_Payload):
    rain: Optional[_Precipitation] = None


class ForecastPayload(_Payload):
    slots: List[_ForecastSlot] = Field(default_factory=list, alias="list")

    def rainfall_48h(self) -> float:
        return sum(
            (slot.rain.three_hour or 0.0) if slot.rain else 0.0
            for slot in self.slots[:FORECAST_SLOTS_48H]
        )


def parse_current(data: Any) -> CurrentWeatherPayload:
    return CurrentWeatherPayload.model_validate(data)


def parse_forecast(data: Any) -> ForecastPayload:
    return ForecastPayload.model_validate(data)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class OpenWeatherClient:
    """
    Async OpenWeatherMap client for the live risk monitor.

    Usage:
        client = OpenWeatherClient()
        if client.available:
            result = await client.fetch_weather(14.59, 120.98)
            if result.success:
                print(result.sample.rainfall)
        await client.close()
    """

    SERVICE = "openweathermap"

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = (api_key if api_key is not None else settings.OPENWEATHER_API_KEY) or ""
        self.base_url = (base_url or settings.OPENWEATHER_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.WEATHER_FETCH_TIMEOUT
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def available(self) -> bool:
        """Credential is present and structurally valid."""
        return is_valid_api_key(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def _get_json(self, endpoint: str, latitude: float, longitude: float) -> Dict[str, Any]:
        """GET one endpoint; every failure becomes ExternalServiceError."""
        client = await self._get_client()
        params = {
            "lat": latitude,
            "lon": longitude,
            "appid": self.api_key.strip(),
            "units": "metric",
        }
        try:
            response = await client.get(f"{self.base_url}/{endpoint}", params=params)
        except httpx.TimeoutException as e:
            raise ExternalServiceError(self.SERVICE, f"timeout: {e}", status=FetchStatus.TIMEOUT) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(self.SERVICE, str(e), status=FetchStatus.NETWORK_ERROR) from e

        if not response.is_success:
            raise ExternalServiceError(
                self.SERVICE,
                f"HTTP {response.status_code}: {response.text[:200]}",
                status=FetchStatus.API_ERROR,
            )
        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError(self.SERVICE, f"invalid JSON: {e}", status=FetchStatus.PARSE_ERROR) from e

    async def fetch_weather(self, latitude: float, longitude: float) -> WeatherResult:
        """Fetch and normalise weather for one coordinate. Never raises."""
        start = time.monotonic()

        def failed(status: FetchStatus, message: str) -> WeatherResult:
            return WeatherResult(
                success=False,
                status=status,
                latitude=latitude,
                longitude=longitude,
                error_message=message,
                fetch_duration_ms=int((time.monotonic() - start) * 1000),
            )

        if not self.available:
            return failed(FetchStatus.UNAVAILABLE, "weather credential missing or malformed")
        if not (-90.0 <= latitude <= 90.0):
            return failed(FetchStatus.INVALID_INPUT, f"Latitude must be in [-90, 90], got {latitude}")
        if not (-180.0 <= longitude <= 180.0):
            return failed(FetchStatus.INVALID_INPUT, f"Longitude must be in [-180, 180], got {longitude}")

        try:
            current = parse_current(await self._get_json("weather", latitude, longitude))
        except ExternalServiceError as e:
            return failed(e.details.get("status", FetchStatus.NETWORK_ERROR), e.message)
        except PayloadError as e:
            return failed(FetchStatus.PARSE_ERROR, f"malformed current-weather payload: {e.error_count()} error(s)")

        status = FetchStatus.SUCCESS
        try:
            forecast_rainfall = parse_forecast(
                await self._get_json("forecast", latitude, longitude)
            ).rainfall_48h()
        except (ExternalServiceError, PayloadError) as e:
            logger.warning(
                "Forecast unavailable for (%.4f, %.4f), using 0 mm: %s",
                latitude, longitude, e,
                extra={"lat": latitude, "lon": longitude},
            )
            forecast_rainfall = 0.0
            status = FetchStatus.PARTIAL

        condition = current.weather[0].main if current.weather else ""
        try:
            sample = WeatherSample(
                rainfall=max(current.rainfall_rate, 0.0),
                forecast_rainfall=max(forecast_rainfall, 0.0),
                wind_speed=max(current.wind.speed * KMH_PER_MS, 0.0),
                temperature=current.main.temp,
                storm_alerts=THUNDERSTORM_ALERT if condition == "Thunderstorm" else "",
            )
        except PayloadError as e:
            return failed(FetchStatus.PARSE_ERROR, f"unusable weather values: {e.error_count()} error(s)")

        return WeatherResult(
            success=True,
            status=status,
            latitude=latitude,
            longitude=longitude,
            sample=sample,
            fetch_duration_ms=int((time.monotonic() - start) * 1000),
        )
