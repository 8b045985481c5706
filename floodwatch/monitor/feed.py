"""
Recent risk changes, kept in memory for dashboard polling.

Registered as a ``RiskMonitor.on_risk_change`` listener: each cycle that
changed something appends its changes, newest first on read.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, List, Optional

from floodwatch.core.config import settings
from floodwatch.monitor.scheduler import AreaRiskChange, MonitorCycleResult


class ChangeFeed:
    def __init__(self, maxlen: Optional[int] = None):
        self._changes: Deque[AreaRiskChange] = deque(maxlen=maxlen or settings.CHANGE_FEED_SIZE)
        self.cycles_with_changes = 0

    def record(self, result: MonitorCycleResult) -> None:
        self._changes.extend(result.changes)
        self.cycles_with_changes += 1

    def recent(self, limit: int = 20, *, alerts_only: bool = False) -> List[AreaRiskChange]:
        changes = [c for c in reversed(self._changes) if not alerts_only or c.new_level.is_alert]
        return changes[:limit]

    def __len__(self) -> int:
        return len(self._changes)
