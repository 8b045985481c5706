"""
test_weather_service.py: Tests for OpenWeatherMap ingestion.

All provider traffic goes through ``httpx.MockTransport``; nothing leaves
the process.

Covers:
    • Credential gate (no request without a well-formed key)
    • Normalisation (1h / 3h rain, km/h wind, thunderstorm alert)
    • 48 h forecast accumulation (first 16 slots)
    • Sequential current → forecast calls
    • Partial success when the forecast fails
    • Typed failures (timeout, network, HTTP status, bad payload)
    • Non-finite (NaN / Infinity) payload values

Run with:
    pytest tests/test_weather_service.py -v
"""

from __future__ import annotations

import asyncio
from typing import Callable, List

import httpx
import pytest

from floodwatch.core.config import is_valid_api_key
from floodwatch.ingestion.weather_service import (
    FetchStatus,
    OpenWeatherClient,
    WeatherResult,
    parse_current,
    parse_forecast,
)

VALID_KEY = "abcdef0123456789abcdef0123456789"
MANILA_LAT = 14.5995
MANILA_LON = 120.9842


def _current_payload(
    rain: dict | None = None,
    wind_ms: float = 5.0,
    temp: float = 28.4,
    condition: str = "Rain",
) -> dict:
    payload = {
        "weather": [{"id": 500, "main": condition, "description": "light rain"}],
        "main": {"temp": temp, "humidity": 80},
        "wind": {"speed": wind_ms, "deg": 200},
        "name": "Manila",
    }
    if rain is not None:
        payload["rain"] = rain
    return payload


def _forecast_payload(rain_per_slot: float = 2.0, slots: int = 40) -> dict:
    return {"list": [{"dt": i, "rain": {"3h": rain_per_slot}} for i in range(slots)]}


def _make_client(
    handler: Callable[[httpx.Request], httpx.Response],
    api_key: str = VALID_KEY,
) -> OpenWeatherClient:
    return OpenWeatherClient(
        api_key,
        base_url="https://owm.test/data/2.5",
        timeout=2.0,
        transport=httpx.MockTransport(handler),
    )


def _routing_handler(current: dict, forecast: dict, seen: List[httpx.Request]):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/weather"):
            return httpx.Response(200, json=current)
        return httpx.Response(200, json=forecast)
    return handler


def _fetch(client: OpenWeatherClient, lat: float = MANILA_LAT, lon: float = MANILA_LON) -> WeatherResult:
    async def run():
        try:
            return await client.fetch_weather(lat, lon)
        finally:
            await client.close()
    return asyncio.run(run())


class TestCredential:
    def test_valid_key(self):
        assert is_valid_api_key(VALID_KEY)
        assert is_valid_api_key(f"  {VALID_KEY}\n")

    @pytest.mark.parametrize("key", [
        None, "", "short", "x" * 19, "a" * 31, "a" * 33, "abcdef0123456789abcdef012345678-",
    ])
    def test_invalid_keys(self, key):
        assert not is_valid_api_key(key)

    def test_no_request_without_key(self):
        seen: List[httpx.Request] = []
        client = _make_client(_routing_handler({}, {}, seen), api_key="1234567890123456789")
        assert not client.available
        result = _fetch(client)
        assert not result.success
        assert result.status is FetchStatus.UNAVAILABLE
        assert seen == []


class TestPayloadParsing:
    def test_one_hour_rain_preferred(self):
        assert parse_current(_current_payload(rain={"1h": 4.2, "3h": 9.0})).rainfall_rate == 4.2

    def test_three_hour_rain_averaged(self):
        assert parse_current(_current_payload(rain={"3h": 9.0})).rainfall_rate == pytest.approx(3.0)

    def test_no_rain(self):
        assert parse_current(_current_payload()).rainfall_rate == 0.0

    def test_missing_temperature_rejected(self):
        from pydantic import ValidationError
        with pytest.raises(ValidationError):
            parse_current({"main": {}, "wind": {"speed": 1}})

    def test_forecast_sums_first_16_slots(self):
        assert parse_forecast(_forecast_payload(2.0, 40)).rainfall_48h() == pytest.approx(32.0)

    def test_forecast_fewer_slots_and_dry_slots(self):
        data = {"list": [{"rain": {"3h": 1.5}}, {}, {"rain": {}}, {"rain": {"3h": 0.5}}]}
        assert parse_forecast(data).rainfall_48h() == pytest.approx(2.0)

    def test_forecast_empty(self):
        assert parse_forecast({}).rainfall_48h() == 0.0


class TestFetchWeather:
    def test_success_normalises_sample(self):
        seen: List[httpx.Request] = []
        client = _make_client(_routing_handler(
            _current_payload(rain={"1h": 4.0}, wind_ms=10.0, temp=27.0),
            _forecast_payload(3.0, 20),
            seen,
        ))
        result = _fetch(client)

        assert result.success
        assert result.status is FetchStatus.SUCCESS
        assert result.sample.rainfall == 4.0
        assert result.sample.wind_speed == pytest.approx(36.0)
        assert result.sample.temperature == 27.0
        assert result.sample.forecast_rainfall == pytest.approx(48.0)
        assert result.sample.storm_alerts == ""

    def test_request_shape_and_order(self):
        seen: List[httpx.Request] = []
        client = _make_client(_routing_handler(_current_payload(), _forecast_payload(), seen))
        _fetch(client)

        assert [r.url.path for r in seen] == ["/data/2.5/weather", "/data/2.5/forecast"]
        params = seen[0].url.params
        assert params["appid"] == VALID_KEY
        assert params["units"] == "metric"
        assert float(params["lat"]) == MANILA_LAT
        assert float(params["lon"]) == MANILA_LON

    def test_thunderstorm_alert(self):
        seen: List[httpx.Request] = []
        client = _make_client(_routing_handler(
            _current_payload(condition="Thunderstorm"), _forecast_payload(), seen,
        ))
        assert _fetch(client).sample.storm_alerts == "Thunderstorm Warning"

    def test_forecast_failure_is_partial(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/weather"):
                return httpx.Response(200, json=_current_payload(rain={"1h": 2.0}))
            return httpx.Response(500, text="upstream exploded")

        result = _fetch(_make_client(handler))
        assert result.success
        assert result.status is FetchStatus.PARTIAL
        assert result.sample.rainfall == 2.0
        assert result.sample.forecast_rainfall == 0.0

    def test_current_http_error(self):
        result = _fetch(_make_client(lambda r: httpx.Response(401, json={"cod": 401})))
        assert not result.success
        assert result.status is FetchStatus.API_ERROR
        assert result.sample is None
        assert "401" in result.error_message

    def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        result = _fetch(_make_client(handler))
        assert result.status is FetchStatus.TIMEOUT

    def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = _fetch(_make_client(handler))
        assert result.status is FetchStatus.NETWORK_ERROR

    def test_invalid_json(self):
        result = _fetch(_make_client(lambda r: httpx.Response(200, text="<html>")))
        assert result.status is FetchStatus.PARSE_ERROR

    def test_malformed_current_payload(self):
        result = _fetch(_make_client(lambda r: httpx.Response(200, json={"cod": 200})))
        assert result.status is FetchStatus.PARSE_ERROR

    @pytest.mark.parametrize("body", [
        b'{"main": {"temp": 20}, "wind": {"speed": 1}, "rain": {"1h": NaN}}',
        b'{"main": {"temp": NaN}, "wind": {"speed": 1}}',
        b'{"main": {"temp": 20}, "wind": {"speed": Infinity}}',
    ])
    def test_non_finite_current_values(self, body):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/weather"):
                return httpx.Response(200, content=body, headers={"content-type": "application/json"})
            return httpx.Response(200, json=_forecast_payload())

        result = _fetch(_make_client(handler))
        assert not result.success
        assert result.status is FetchStatus.PARSE_ERROR
        assert result.sample is None

    def test_non_finite_forecast_is_partial(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/weather"):
                return httpx.Response(200, json=_current_payload(rain={"1h": 2.0}))
            return httpx.Response(200, content=b'{"list": [{"rain": {"3h": NaN}}]}')

        result = _fetch(_make_client(handler))
        assert result.status is FetchStatus.PARTIAL
        assert result.sample.forecast_rainfall == 0.0

    @pytest.mark.parametrize("lat,lon", [(91.0, 0.0), (0.0, -181.0)])
    def test_invalid_coordinates(self, lat, lon):
        seen: List[httpx.Request] = []
        client = _make_client(_routing_handler({}, {}, seen))
        result = _fetch(client, lat, lon)
        assert result.status is FetchStatus.INVALID_INPUT
        assert seen == []
