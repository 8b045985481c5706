"""
Health check aggregation: deep health probe for the monitoring service.

Checks:
    • Weather provider credential (monitoring cannot run without it)
    • Area store connectivity
    • Monitor liveness (running, last cycle not overdue)
    • Cache configuration

Overall status is the worst component status.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List

from floodwatch.core.config import settings

if TYPE_CHECKING:
    from floodwatch.areas.repository import AreaRepository
    from floodwatch.monitor.scheduler import RiskMonitor

logger = logging.getLogger(__name__)

# A running monitor whose last cycle is older than this many intervals is degraded.
OVERDUE_INTERVALS = 3


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


_SEVERITY = {HealthStatus.HEALTHY: 0, HealthStatus.DEGRADED: 1, HealthStatus.UNHEALTHY: 2}


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


_start_time = time.monotonic()


def check_weather(monitor: "RiskMonitor") -> ComponentHealth:
    comp = ComponentHealth(name="weather_provider")
    if monitor.available:
        comp.message = "Credential configured"
    else:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = "OPENWEATHER_API_KEY missing or malformed"
    return comp


async def check_area_store(repository: "AreaRepository") -> ComponentHealth:
    comp = ComponentHealth(name="area_store")
    start = time.monotonic()
    try:
        if await repository.ping():
            comp.message = "Reachable"
        else:
            comp.status = HealthStatus.UNHEALTHY
            comp.message = "Ping failed"
    except Exception as e:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = str(e)
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


def check_monitor(monitor: "RiskMonitor") -> ComponentHealth:
    comp = ComponentHealth(name="risk_monitor")
    comp.details = {
        "running": monitor.is_running,
        "cycles_completed": monitor.cycles_completed,
    }
    if not monitor.is_running:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Monitoring is stopped"
        return comp

    last = monitor.last_result
    if last is None:
        comp.message = "Waiting for first cycle"
        return comp

    age = (datetime.now(timezone.utc) - last.completed_at).total_seconds()
    comp.details["last_cycle_age_seconds"] = round(age, 1)
    if age > OVERDUE_INTERVALS * monitor.interval_seconds:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Last completed cycle is overdue"
    else:
        comp.message = "Cycling normally"
    return comp


def check_cache() -> ComponentHealth:
    comp = ComponentHealth(name="redis")
    if settings.REDIS_URL:
        comp.message = "Configured"
        comp.details = {"url": settings.REDIS_URL.split("@")[-1]}
    else:
        comp.message = "Disabled"
    return comp


async def run_health_check(monitor: "RiskMonitor", repository: "AreaRepository") -> HealthReport:
    components = [
        check_weather(monitor),
        await check_area_store(repository),
        check_monitor(monitor),
        check_cache(),
    ]
    worst = max((c.status for c in components), key=_SEVERITY.__getitem__)
    report = HealthReport(
        status=worst,
        uptime_seconds=time.monotonic() - _start_time,
        components=components,
    )
    if worst is not HealthStatus.HEALTHY:
        logger.warning("Health check %s: %s", worst.value, [
            c.name for c in components if c.status is not HealthStatus.HEALTHY
        ])
    return report
