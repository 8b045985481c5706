"""FastAPI dependencies resolving the objects built in the app lifespan."""

from __future__ import annotations

from fastapi import Request

from floodwatch.areas.repository import AreaRepository
from floodwatch.monitor.feed import ChangeFeed
from floodwatch.monitor.scheduler import RiskMonitor


def get_monitor(request: Request) -> RiskMonitor:
    return request.app.state.monitor


def get_repository(request: Request) -> AreaRepository:
    return request.app.state.repository


def get_change_feed(request: Request) -> ChangeFeed:
    return request.app.state.change_feed
