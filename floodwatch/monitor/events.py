"""
Structured monitor event stream.

The scheduler publishes one ``MonitorEvent`` per notable moment (cycle
start/finish, skipped area, write failure, ...). Listeners may be plain
functions or coroutines; a listener that raises is logged and ignored so
observers can never stall or break monitoring.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Union

logger = logging.getLogger(__name__)


class MonitorEventType(str, Enum):
    MONITOR_STARTED = "monitor.started"
    MONITOR_STOPPED = "monitor.stopped"
    MONITOR_UNAVAILABLE = "monitor.unavailable"
    TICK_SKIPPED = "monitor.tick_skipped"
    CYCLE_STARTED = "cycle.started"
    CYCLE_COMPLETED = "cycle.completed"
    CYCLE_FAILED = "cycle.failed"
    AREA_SKIPPED = "area.skipped"
    AREA_UPDATED = "area.updated"
    AREA_WRITE_FAILED = "area.write_failed"


@dataclass(frozen=True)
class MonitorEvent:
    type: MonitorEventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


Listener = Callable[[MonitorEvent], Union[None, Awaitable[None]]]


async def notify_all(listeners: Iterable[Callable[[Any], Any]], payload: Any, what: str) -> None:
    """Call each listener with ``payload``, awaiting coroutines; failures are logged and skipped."""
    for listener in list(listeners):
        try:
            result = listener(payload)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("%s listener failed", what)


class EventBus:
    """Fan-out of monitor events to subscribed listeners."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def publish(self, event: MonitorEvent) -> None:
        await notify_all(self._listeners, event, f"Monitor event {event.type.value}")
