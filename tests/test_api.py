"""
test_api.py: HTTP surface tests through FastAPI's TestClient.

The app is built with an in-memory area store and a fake weather fetcher,
so no database, Redis or provider is touched.

Run with:
    pytest tests/test_api.py -v
"""

from __future__ import annotations

from typing import List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from floodwatch.areas.models import WeatherSample
from floodwatch.areas.repository import InMemoryAreaRepository
from floodwatch.ingestion.weather_service import FetchStatus, WeatherResult
from floodwatch.main import create_app


class StubFetcher:
    def __init__(self, available: bool = True, sample: Optional[WeatherSample] = None):
        self._available = available
        self.sample = sample or WeatherSample(rainfall=10, forecast_rainfall=50, wind_speed=20)
        self.calls: List[Tuple[float, float]] = []

    @property
    def available(self) -> bool:
        return self._available

    async def fetch_weather(self, latitude: float, longitude: float) -> WeatherResult:
        self.calls.append((latitude, longitude))
        return WeatherResult(
            success=True, status=FetchStatus.SUCCESS,
            latitude=latitude, longitude=longitude, sample=self.sample,
        )


def _make_records() -> list:
    return [
        {
            "id": "riverside",
            "basicInfo": {"name": "Riverside", "type": "residential"},
            "geometry": {"type": "Point", "coordinates": [120.98, 14.59]},
            "hydrological": {
                "waterBody": "river",
                "floodHistory": {"hasFlooded": True, "frequency": "frequent"},
            },
            "exposure": {"population": 1500},
        },
        {
            "id": "hilltop",
            "basicInfo": {"name": "Hilltop", "type": "agricultural"},
            "geometry": {"type": "Polygon", "coordinates": [[[121.2, 14.7], [121.3, 14.7], [121.2, 14.7]]]},
            "physical": {"elevation": 20, "slope": "gentle"},
            "exposure": {"population": 200},
        },
    ]


@pytest.fixture
def fetcher() -> StubFetcher:
    return StubFetcher()


@pytest.fixture
def client(fetcher):
    app = create_app(
        repository=InMemoryAreaRepository(_make_records()),
        fetcher=fetcher,
        autostart=False,
    )
    with TestClient(app) as c:
        yield c


class TestRootAndHealth:
    def test_root(self, client):
        body = client.get("/").json()
        assert body["service"] == "Flood Risk Monitor"
        assert "live-monitor" in body["modules"]

    def test_liveness(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_stopped_monitor_is_degraded(self, client):
        body = client.get("/health").json()
        assert body["status"] == "degraded"
        components = {c["name"]: c for c in body["components"]}
        assert components["weather_provider"]["status"] == "healthy"
        assert components["area_store"]["status"] == "healthy"
        assert components["risk_monitor"]["status"] == "degraded"
        assert client.get("/health/ready").status_code == 200

    def test_missing_credential_not_ready(self):
        app = create_app(
            repository=InMemoryAreaRepository(_make_records()),
            fetcher=StubFetcher(available=False),
            autostart=True,
        )
        with TestClient(app) as c:
            response = c.get("/health/ready")
            assert response.status_code == 503
            assert response.json()["status"] == "unhealthy"
            assert c.get("/api/v1/monitor").json()["running"] is False

    def test_request_id_header(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"
        assert "X-Process-Time" in response.headers


class TestMonitorRoutes:
    def test_status(self, client):
        body = client.get("/api/v1/monitor").json()
        assert body["running"] is False
        assert body["available"] is True
        assert body["batch_size"] == 3
        assert body["last_result"] is None

    def test_run_cycle(self, client, fetcher):
        body = client.post("/api/v1/monitor/run").json()
        assert body["areas_considered"] == 2
        assert body["areas_changed"] == 2
        levels = {c["area_id"]: c["new_level"] for c in body["changes"]}
        assert levels["riverside"] == "Severe"
        assert len(fetcher.calls) == 2
        assert (14.59, 120.98) in fetcher.calls
        assert (14.7, 121.2) in fetcher.calls

    def test_changes_feed(self, client):
        client.post("/api/v1/monitor/run")
        body = client.get("/api/v1/monitor/changes").json()
        assert body["count"] == 2
        alerts = client.get("/api/v1/monitor/changes", params={"alerts_only": True}).json()
        assert [c["area_id"] for c in alerts["changes"]] == ["riverside"]

    def test_start_and_stop(self, client):
        started = client.post("/api/v1/monitor/start").json()
        assert started["running"] is True
        stopped = client.post("/api/v1/monitor/stop").json()
        assert stopped["running"] is False

    def test_start_without_credential(self):
        app = create_app(
            repository=InMemoryAreaRepository(_make_records()),
            fetcher=StubFetcher(available=False),
            autostart=False,
        )
        with TestClient(app) as c:
            response = c.post("/api/v1/monitor/start")
            assert response.status_code == 503
            assert response.json()["error"]["code"] == "WEATHER_UNAVAILABLE"
            assert c.post("/api/v1/monitor/run").status_code == 503


class TestAreaRoutes:
    def test_list_before_and_after_cycle(self, client):
        before = client.get("/api/v1/areas").json()
        assert before["count"] == 2
        assert all(a["risk_level"] is None for a in before["areas"])

        client.post("/api/v1/monitor/run")
        after = client.get("/api/v1/areas").json()
        levels = {a["id"]: a["risk_level"] for a in after["areas"]}
        assert levels["riverside"] == "Severe"

    def test_filter_by_level(self, client):
        client.post("/api/v1/monitor/run")
        body = client.get("/api/v1/areas", params={"level": "Severe"}).json()
        assert [a["id"] for a in body["areas"]] == ["riverside"]
        alerts = client.get("/api/v1/areas", params={"alerts_only": True}).json()
        assert alerts["count"] == 1

    def test_summary_counts_and_population_at_risk(self, client):
        before = client.get("/api/v1/areas/summary").json()
        assert before["total_areas"] == 2
        assert before["unclassified"] == 2
        assert before["total_population"] == 1700
        assert before["population_at_risk"] == 0
        assert set(before["risk_level_counts"]) == {"Very Low", "Low", "Moderate", "High", "Severe"}

        client.post("/api/v1/monitor/run")
        after = client.get("/api/v1/areas/summary").json()
        assert after["unclassified"] == 0
        assert after["risk_level_counts"]["Severe"] == 1
        assert sum(after["risk_level_counts"].values()) == 2
        assert after["population_at_risk"] == 1500

    def test_get_area(self, client):
        body = client.get("/api/v1/areas/hilltop").json()
        assert body["name"] == "Hilltop"
        assert body["exposure"]["population"] == 200

    def test_unknown_area(self, client):
        response = client.get("/api/v1/areas/nowhere")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestRiskRoute:
    def test_classify_severe(self, client):
        body = client.post("/api/v1/risk/classify", json={
            "population": 1500,
            "water_body": "river",
            "has_flooded": True,
            "flood_frequency": "frequent",
            "rainfall": 10,
            "forecast_rainfall": 50,
            "wind_speed": 20,
        }).json()
        assert body["score"] == 90
        assert body["tier"] == "High"
        assert body["level"] == "Severe"
        assert body["terrain"] == "river"
        assert body["flood_history"] == "high"
        assert body["rainfall_24h"] == 60.0

    def test_classify_defaults(self, client):
        body = client.post("/api/v1/risk/classify", json={}).json()
        assert body["score"] == 10
        assert body["level"] == "Very Low"

    def test_negative_rainfall_rejected(self, client):
        response = client.post("/api/v1/risk/classify", json={"rainfall": -1})
        assert response.status_code == 422
