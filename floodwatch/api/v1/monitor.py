"""
FastAPI routes: live risk monitor control and status.

    GET  /api/v1/monitor           status + last cycle summary
    POST /api/v1/monitor/start     start (503 when the weather credential is invalid)
    POST /api/v1/monitor/stop      stop after the in-flight batch
    POST /api/v1/monitor/run       run one cycle now (409 while a cycle runs)
    GET  /api/v1/monitor/changes   recent risk level changes
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from floodwatch.api.deps import get_change_feed, get_monitor
from floodwatch.core.errors import RepositoryError, WeatherUnavailableError
from floodwatch.monitor.feed import ChangeFeed
from floodwatch.monitor.scheduler import RiskMonitor

router = APIRouter(prefix="/api/v1/monitor", tags=["monitor"])


@router.get("")
async def monitor_status(monitor: RiskMonitor = Depends(get_monitor)) -> Dict[str, Any]:
    return monitor.status()


@router.post("/start")
async def start_monitor(monitor: RiskMonitor = Depends(get_monitor)) -> Dict[str, Any]:
    if not await monitor.start():
        raise WeatherUnavailableError()
    return monitor.status()


@router.post("/stop")
async def stop_monitor(monitor: RiskMonitor = Depends(get_monitor)) -> Dict[str, Any]:
    await monitor.stop()
    return monitor.status()


@router.post("/run")
async def run_cycle_now(monitor: RiskMonitor = Depends(get_monitor)) -> Dict[str, Any]:
    result = await monitor.run_cycle()
    if result is None:
        raise RepositoryError("list", "cycle aborted, see logs")
    return result.to_dict()


@router.get("/changes")
async def recent_changes(
    limit: int = Query(default=20, ge=1, le=100),
    alerts_only: bool = Query(default=False, description="Only changes to High/Severe"),
    feed: ChangeFeed = Depends(get_change_feed),
) -> Dict[str, Any]:
    changes = feed.recent(limit, alerts_only=alerts_only)
    return {
        "count": len(changes),
        "changes": [c.to_dict() for c in changes],
    }
