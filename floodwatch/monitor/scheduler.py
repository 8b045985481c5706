"""
Live risk monitor: keeps every area's flood risk classification current.

═══════════════════════════════════════════════════════════════════════════
LIFECYCLE
═══════════════════════════════════════════════════════════════════════════

    STOPPED ──start()──▶ RUNNING ──stop()──▶ STOPPED

start():
    - refuses (returns False) when the weather credential is missing or
      malformed; nothing is sent to the provider
    - runs one cycle immediately, then one per interval (default 5 min)
    - no-op when already running

stop():
    - disarms the timer, lets the in-flight batch finish, starts no new
      batch or cycle; no-op when already stopped

start() and stop() are serialised: a start() issued while a stop() is
waiting on its in-flight batch begins only after the stop has completed.

Overlap: a tick that fires while the previous cycle is still running is
skipped (``monitor.tick_skipped``), never queued.

═══════════════════════════════════════════════════════════════════════════
ONE CYCLE
═══════════════════════════════════════════════════════════════════════════

    1. list areas                      (failure → cycle aborted, monitor lives)
    2. drop areas with empty geometry
    3. batches of 3, run in list order; areas inside a batch run concurrently;
       1 s pause between batches (provider rate limits)
    4. per area: fetch weather → no data? leave area untouched
                                → classify → level changed? write back
    5. emit MonitorCycleResult; notify change listeners if anything changed

No error from one area may escape that area's own handling.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

from floodwatch.areas.models import AreaRiskUpdate, MonitoredArea
from floodwatch.areas.repository import AreaRepository
from floodwatch.core.config import settings
from floodwatch.core.errors import MonitorBusyError, WeatherUnavailableError
from floodwatch.core.logging_config import set_log_context
from floodwatch.ingestion.weather_service import WeatherResult
from floodwatch.monitor.events import EventBus, MonitorEvent, MonitorEventType, notify_all
from floodwatch.risk.classifier import RiskLevel, assess_area

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ═══════════════════════════════════════════════════════════════════════════
# Results
# ═══════════════════════════════════════════════════════════════════════════

class AreaOutcome(str, Enum):
    CHANGED = "changed"
    UNCHANGED = "unchanged"
    NO_DATA = "no_data"
    WRITE_FAILED = "write_failed"
    ERROR = "error"


@dataclass(frozen=True)
class AreaRiskChange:
    area_id: str
    name: str
    previous_level: Optional[RiskLevel]
    new_level: RiskLevel
    score: int
    changed_at: datetime

    @property
    def is_escalation(self) -> bool:
        if self.previous_level is None:
            return True
        return self.new_level.rank > self.previous_level.rank

    def to_dict(self) -> Dict[str, Any]:
        return {
            "area_id": self.area_id,
            "name": self.name,
            "previous_level": self.previous_level.value if self.previous_level else None,
            "new_level": self.new_level.value,
            "score": self.score,
            "is_escalation": self.is_escalation,
            "changed_at": self.changed_at.isoformat(),
        }


@dataclass
class MonitorCycleResult:
    """Summary emitted once per completed cycle."""
    cycle_id: str
    started_at: datetime
    completed_at: datetime
    areas_considered: int = 0
    areas_changed: int = 0
    areas_skipped: int = 0
    write_failures: int = 0
    halted: bool = False
    changes: List[AreaRiskChange] = field(default_factory=list)

    @property
    def timestamp(self) -> datetime:
        return self.completed_at

    @property
    def duration_ms(self) -> int:
        return int((self.completed_at - self.started_at).total_seconds() * 1000)

    @property
    def alert_changes(self) -> List[AreaRiskChange]:
        """Changes that put an area at High or Severe."""
        return [c for c in self.changes if c.new_level.is_alert]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_ms": self.duration_ms,
            "areas_considered": self.areas_considered,
            "areas_changed": self.areas_changed,
            "areas_skipped": self.areas_skipped,
            "write_failures": self.write_failures,
            "halted": self.halted,
            "changes": [c.to_dict() for c in self.changes],
        }


@dataclass(frozen=True)
class _AreaResult:
    outcome: AreaOutcome
    change: Optional[AreaRiskChange] = None


class WeatherFetcher(Protocol):
    @property
    def available(self) -> bool: ...

    async def fetch_weather(self, latitude: float, longitude: float) -> WeatherResult: ...


RiskChangeCallback = Callable[[MonitorCycleResult], Union[None, Awaitable[None]]]


def _batched(items: Sequence[T], size: int) -> List[Sequence[T]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


# ═══════════════════════════════════════════════════════════════════════════
# Monitor
# ═══════════════════════════════════════════════════════════════════════════

class RiskMonitor:
    """
    Periodic weather refresh + reclassification of all monitored areas.

    Usage:
        monitor = RiskMonitor(SqlAreaRepository(), OpenWeatherClient())
        monitor.on_risk_change(lambda result: print(result.areas_changed))
        monitor.events.subscribe(print)

        if not await monitor.start():
            print("weather credential invalid: monitoring unavailable")
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        repository: AreaRepository,
        fetcher: WeatherFetcher,
        *,
        interval_seconds: Optional[float] = None,
        batch_size: Optional[int] = None,
        batch_delay_seconds: Optional[float] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.repository = repository
        self.fetcher = fetcher
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.MONITOR_INTERVAL_SECONDS
        )
        self.batch_size = batch_size if batch_size is not None else settings.MONITOR_BATCH_SIZE
        self.batch_delay_seconds = (
            batch_delay_seconds if batch_delay_seconds is not None
            else settings.MONITOR_BATCH_DELAY_SECONDS
        )
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.batch_delay_seconds < 0:
            raise ValueError("batch_delay_seconds cannot be negative")

        self.events = event_bus or EventBus()
        self.last_result: Optional[MonitorCycleResult] = None
        self.cycles_completed = 0
        self.started_at: Optional[datetime] = None

        self._running = False
        self._halt = False
        self._ticker: Optional[asyncio.Task] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self._lifecycle_lock = asyncio.Lock()
        self._change_callbacks: List[RiskChangeCallback] = []

    # ── State ──

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def available(self) -> bool:
        return self.fetcher.available

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_task is not None and not self._cycle_task.done()

    def status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "available": self.available,
            "cycle_in_progress": self.cycle_in_progress,
            "interval_seconds": self.interval_seconds,
            "batch_size": self.batch_size,
            "batch_delay_seconds": self.batch_delay_seconds,
            "cycles_completed": self.cycles_completed,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }

    def on_risk_change(self, callback: RiskChangeCallback) -> Callable[[], None]:
        """Call ``callback(result)`` after every cycle that changed at least one area."""
        self._change_callbacks.append(callback)

        def remove() -> None:
            if callback in self._change_callbacks:
                self._change_callbacks.remove(callback)

        return remove

    # ── Lifecycle ──

    async def start(self) -> bool:
        # Waits for a pending stop() so its halted cycle is never revived.
        async with self._lifecycle_lock:
            return await self._start()

    async def stop(self) -> None:
        async with self._lifecycle_lock:
            await self._stop()

    async def _start(self) -> bool:
        if self._running:
            return True

        if not self.fetcher.available:
            logger.error("Cannot start monitoring: weather credential is missing or malformed")
            await self._publish(MonitorEventType.MONITOR_UNAVAILABLE, reason="invalid_credential")
            return False

        self._running = True
        self._halt = False
        self.started_at = datetime.now(timezone.utc)
        logger.info(
            "Live risk monitoring started (every %.0fs, batches of %d)",
            self.interval_seconds, self.batch_size,
        )
        await self._publish(
            MonitorEventType.MONITOR_STARTED,
            interval_seconds=self.interval_seconds,
            batch_size=self.batch_size,
        )

        if not self._launch_cycle():
            logger.warning("A manual cycle is already running, first scheduled cycle skipped")
            await self._publish(MonitorEventType.TICK_SKIPPED)
        self._ticker = asyncio.create_task(self._tick_loop(), name="risk-monitor-ticker")
        return True

    async def _stop(self) -> None:
        if not self._running:
            return

        self._running = False
        self._halt = True
        if self._ticker:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None

        try:
            await self.wait_idle()
        finally:
            self._halt = False

        if not self._running:
            logger.info("Live risk monitoring stopped")
            await self._publish(MonitorEventType.MONITOR_STOPPED)

    async def wait_idle(self) -> None:
        """Wait for the in-flight cycle, if any, to finish."""
        task = self._cycle_task
        if task is not None and not task.done():
            await asyncio.shield(task)

    async def run_cycle(self) -> Optional[MonitorCycleResult]:
        """
        Run one cycle now and return its result (None if the area list
        could not be read). Raises MonitorBusyError if a cycle is running.
        """
        if not self.fetcher.available:
            raise WeatherUnavailableError()
        if not self._launch_cycle():
            raise MonitorBusyError()
        return await asyncio.shield(self._cycle_task)

    async def _tick_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_seconds)
            if not self._running:
                break
            if not self._launch_cycle():
                logger.warning("Previous monitoring cycle still running, skipping this tick")
                await self._publish(MonitorEventType.TICK_SKIPPED)

    def _launch_cycle(self) -> bool:
        if self.cycle_in_progress:
            return False
        self._cycle_task = asyncio.create_task(self._execute_cycle(), name="risk-monitor-cycle")
        return True

    # ── Cycle ──

    async def _execute_cycle(self) -> Optional[MonitorCycleResult]:
        cycle_id = uuid.uuid4().hex[:12]
        set_log_context(cycle_id=cycle_id)
        try:
            return await self._cycle(cycle_id)
        except Exception:
            logger.exception("Monitoring cycle %s crashed", cycle_id)
            return None
        finally:
            set_log_context()

    async def _cycle(self, cycle_id: str) -> Optional[MonitorCycleResult]:
        started_at = datetime.now(timezone.utc)
        logger.info("Running live risk monitoring cycle %s", cycle_id)
        await self._publish(MonitorEventType.CYCLE_STARTED, cycle_id=cycle_id)

        try:
            areas = await self.repository.list_areas()
        except Exception as e:
            logger.error("Cycle %s aborted, could not list areas: %s", cycle_id, e)
            await self._publish(MonitorEventType.CYCLE_FAILED, cycle_id=cycle_id, error=str(e))
            return None

        targets: List[Tuple[MonitoredArea, Tuple[float, float]]] = []
        for area in areas:
            coordinate = area.representative_coordinate()
            if coordinate is None:
                logger.debug("Area %s has no coordinates, skipped", area.id)
                await self._publish(
                    MonitorEventType.AREA_SKIPPED,
                    cycle_id=cycle_id, area_id=area.id, reason="empty_geometry",
                )
                continue
            targets.append((area, coordinate))

        results: List[_AreaResult] = []
        halted = False
        for index, batch in enumerate(_batched(targets, self.batch_size)):
            if index > 0 and not self._halt:
                await asyncio.sleep(self.batch_delay_seconds)
            if self._halt:
                halted = True
                logger.info("Cycle %s halted before batch %d", cycle_id, index + 1)
                break
            results.extend(await asyncio.gather(
                *(self._process_area(cycle_id, area, coordinate) for area, coordinate in batch)
            ))

        changes = [r.change for r in results if r.outcome is AreaOutcome.CHANGED and r.change]
        result = MonitorCycleResult(
            cycle_id=cycle_id,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            areas_considered=len(results),
            areas_changed=len(changes),
            areas_skipped=sum(
                1 for r in results if r.outcome in (AreaOutcome.NO_DATA, AreaOutcome.ERROR)
            ),
            write_failures=sum(1 for r in results if r.outcome is AreaOutcome.WRITE_FAILED),
            halted=halted,
            changes=changes,
        )
        self.last_result = result
        self.cycles_completed += 1

        logger.info(
            "Cycle %s complete: %d area(s) considered, %d changed, %d skipped (%dms)",
            cycle_id, result.areas_considered, result.areas_changed,
            result.areas_skipped, result.duration_ms,
            extra={
                "cycle_id": cycle_id,
                "areas_considered": result.areas_considered,
                "areas_changed": result.areas_changed,
                "duration_ms": result.duration_ms,
            },
        )
        await self._publish(MonitorEventType.CYCLE_COMPLETED, **result.to_dict())

        if changes:
            await self._notify_change(result)
        return result

    async def _process_area(
        self,
        cycle_id: str,
        area: MonitoredArea,
        coordinate: Tuple[float, float],
    ) -> _AreaResult:
        try:
            return await self._refresh_area(cycle_id, area, coordinate)
        except Exception as e:
            logger.exception("Unexpected error refreshing area %s", area.id)
            await self._publish(
                MonitorEventType.AREA_SKIPPED,
                cycle_id=cycle_id, area_id=area.id, reason="error", error=str(e),
            )
            return _AreaResult(AreaOutcome.ERROR)

    async def _refresh_area(
        self,
        cycle_id: str,
        area: MonitoredArea,
        coordinate: Tuple[float, float],
    ) -> _AreaResult:
        lon, lat = coordinate
        weather: WeatherResult = await self.fetcher.fetch_weather(lat, lon)
        if not weather.success or weather.sample is None:
            logger.warning(
                "No weather data for area %s (%s): %s",
                area.id, weather.status.value, weather.error_message,
                extra={"area_id": area.id, "lat": lat, "lon": lon},
            )
            await self._publish(
                MonitorEventType.AREA_SKIPPED,
                cycle_id=cycle_id, area_id=area.id,
                reason=weather.status.value, error=weather.error_message,
            )
            return _AreaResult(AreaOutcome.NO_DATA)

        assessment = assess_area(area.with_weather(weather.sample))
        if assessment.level == area.risk_level:
            return _AreaResult(AreaOutcome.UNCHANGED)

        now = datetime.now(timezone.utc)
        try:
            await self.repository.update_area_risk(
                area.id,
                AreaRiskUpdate(
                    weather=weather.sample,
                    risk_level=assessment.level,
                    risk_score=assessment.score,
                    last_risk_update=now,
                ),
            )
        except Exception as e:
            logger.error(
                "Failed to persist risk level for area %s: %s", area.id, e,
                extra={"area_id": area.id, "risk_level": assessment.level.value},
            )
            await self._publish(
                MonitorEventType.AREA_WRITE_FAILED,
                cycle_id=cycle_id, area_id=area.id, error=str(e),
            )
            return _AreaResult(AreaOutcome.WRITE_FAILED)

        change = AreaRiskChange(
            area_id=area.id,
            name=area.name,
            previous_level=area.risk_level,
            new_level=assessment.level,
            score=assessment.score,
            changed_at=now,
        )
        logger.info(
            "Risk level updated for %s: %s → %s (score %d)",
            area.name or area.id,
            area.risk_level.value if area.risk_level else "unset",
            assessment.level.value, assessment.score,
            extra={
                "area_id": area.id,
                "risk_level": assessment.level.value,
                "risk_score": assessment.score,
            },
        )
        await self._publish(MonitorEventType.AREA_UPDATED, cycle_id=cycle_id, **change.to_dict())
        return _AreaResult(AreaOutcome.CHANGED, change)

    # ── Observers ──

    async def _publish(self, event_type: MonitorEventType, **data: Any) -> None:
        await self.events.publish(MonitorEvent(type=event_type, data=data))

    async def _notify_change(self, result: MonitorCycleResult) -> None:
        await notify_all(self._change_callbacks, result, "Risk change")
