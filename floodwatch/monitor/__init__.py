"""
Live flood risk monitoring.

This package provides:
- RiskMonitor: timer-driven weather refresh + reclassification of all areas
- MonitorCycleResult / AreaRiskChange: per-cycle summaries
- EventBus / MonitorEvent: structured event stream for metrics and alerting
- ChangeFeed: in-memory history of recent risk changes
"""

from .events import EventBus, MonitorEvent, MonitorEventType
from .feed import ChangeFeed
from .scheduler import AreaOutcome, AreaRiskChange, MonitorCycleResult, RiskMonitor

__all__ = [
    "AreaOutcome",
    "AreaRiskChange",
    "ChangeFeed",
    "EventBus",
    "MonitorCycleResult",
    "MonitorEvent",
    "MonitorEventType",
    "RiskMonitor",
]
