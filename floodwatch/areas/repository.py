"""
Area repositories: durable storage of monitored areas.

The monitor only needs three things from a store: a full snapshot listing,
a single-area read, and a partial update of the weather/risk fields by id.
Two implementations are provided:

    InMemoryAreaRepository  raw documents in a dict (local runs, tests)
    SqlAreaRepository       SQLAlchemy 2.0 async ORM, table flood_risk_areas

Both validate on read (see ``floodwatch.areas.models``); an invalid stored
document is skipped, never cast.
"""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from pydantic import ValidationError as SchemaError
from sqlalchemy import JSON, DateTime, Integer, String, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from floodwatch.areas.models import AreaRiskUpdate, MonitoredArea, parse_area, parse_areas
from floodwatch.core.database import Base, get_session_factory
from floodwatch.core.errors import NotFoundError, RepositoryError, ValidationError

logger = logging.getLogger(__name__)


def _validate_new(record: Dict[str, Any]) -> MonitoredArea:
    try:
        return parse_area(record)
    except SchemaError as e:
        raise ValidationError(
            "Invalid area record",
            field=".".join(str(p) for p in e.errors()[0]["loc"]),
            error_count=e.error_count(),
        ) from e


@runtime_checkable
class AreaRepository(Protocol):
    async def list_areas(self) -> List[MonitoredArea]: ...

    async def get_area(self, area_id: str) -> Optional[MonitoredArea]: ...

    async def update_area_risk(self, area_id: str, risk_update: AreaRiskUpdate) -> None: ...

    async def add_area(self, record: Dict[str, Any]) -> MonitoredArea: ...

    async def ping(self) -> bool: ...


# ═══════════════════════════════════════════════════════════════════════════
# In-memory store
# ═══════════════════════════════════════════════════════════════════════════

class InMemoryAreaRepository:
    """
    Keeps raw documents exactly as written so that read-time validation
    behaves as it does against a real store.
    """

    def __init__(self, records: Optional[List[Dict[str, Any]]] = None):
        self._records: Dict[str, Dict[str, Any]] = {}
        for record in records or []:
            self._records[str(record.get("id") or uuid.uuid4().hex)] = copy.deepcopy(record)

    def raw(self, area_id: str) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._records.get(area_id))

    async def list_areas(self) -> List[MonitoredArea]:
        docs = [{**doc, "id": area_id} for area_id, doc in self._records.items()]
        return parse_areas(docs)

    async def get_area(self, area_id: str) -> Optional[MonitoredArea]:
        doc = self._records.get(area_id)
        if doc is None:
            return None
        return parse_area({**doc, "id": area_id})

    async def update_area_risk(self, area_id: str, risk_update: AreaRiskUpdate) -> None:
        doc = self._records.get(area_id)
        if doc is None:
            raise NotFoundError("Area", id=area_id)
        fields = risk_update.to_fields()
        fields["last_risk_update"] = fields["last_risk_update"].isoformat()
        # Drop camelCase duplicates so the written snake_case value wins.
        for stale in ("riskLevel", "riskScore", "lastRiskUpdate"):
            doc.pop(stale, None)
        doc.update(fields)

    async def add_area(self, record: Dict[str, Any]) -> MonitoredArea:
        record = copy.deepcopy(record)
        record.setdefault("id", uuid.uuid4().hex)
        area = _validate_new(record)
        self._records[area.id] = record
        return area

    async def ping(self) -> bool:
        return True


# ═══════════════════════════════════════════════════════════════════════════
# SQL store
# ═══════════════════════════════════════════════════════════════════════════

class AreaRecord(Base):
    """One row per monitored area; attribute groups are JSON documents."""
    __tablename__ = "flood_risk_areas"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), default="")
    area_type: Mapped[str] = mapped_column(String(64), default="other")
    geometry: Mapped[Dict[str, Any]] = mapped_column(JSON)
    physical: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    hydrological: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    exposure: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    weather: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    risk_level: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    risk_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_risk_update: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "area_type": self.area_type,
            "geometry": self.geometry,
            "physical": self.physical or {},
            "hydrological": self.hydrological or {},
            "exposure": self.exposure or {},
            "weather": self.weather or {},
            "risk_level": self.risk_level,
            "risk_score": self.risk_score,
            "last_risk_update": self.last_risk_update,
        }


class SqlAreaRepository:
    """
    Area store backed by SQLAlchemy async sessions.

    Usage:
        repo = SqlAreaRepository()          # shared engine from settings
        repo = SqlAreaRepository(engine)    # explicit engine (tests)
    """

    def __init__(self, engine: Optional[AsyncEngine] = None):
        self._session_factory: async_sessionmaker[AsyncSession] = get_session_factory(engine)

    async def list_areas(self) -> List[MonitoredArea]:
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(select(AreaRecord))).scalars().all()
                docs = [row.to_document() for row in rows]
        except SQLAlchemyError as e:
            raise RepositoryError("list", str(e)) from e
        return parse_areas(docs)

    async def get_area(self, area_id: str) -> Optional[MonitoredArea]:
        try:
            async with self._session_factory() as session:
                row = await session.get(AreaRecord, area_id)
                doc = row.to_document() if row else None
        except SQLAlchemyError as e:
            raise RepositoryError("read", str(e), id=area_id) from e
        return parse_area(doc) if doc else None

    async def update_area_risk(self, area_id: str, risk_update: AreaRiskUpdate) -> None:
        stmt = (
            update(AreaRecord)
            .where(AreaRecord.id == area_id)
            .values(**risk_update.to_fields())
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise RepositoryError("update", str(e), id=area_id) from e
        if result.rowcount == 0:
            raise NotFoundError("Area", id=area_id)

    async def add_area(self, record: Dict[str, Any]) -> MonitoredArea:
        area = _validate_new({"id": uuid.uuid4().hex, **record})
        row = AreaRecord(
            id=area.id,
            name=area.name,
            area_type=area.area_type,
            geometry=area.geometry.model_dump(mode="json"),
            physical=area.physical.model_dump(mode="json"),
            hydrological=area.hydrological.model_dump(mode="json"),
            exposure=area.exposure.model_dump(mode="json"),
            weather=area.weather.model_dump(mode="json"),
            risk_level=area.risk_level.value if area.risk_level else None,
            risk_score=area.risk_score,
            last_risk_update=area.last_risk_update,
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as e:
            raise RepositoryError("insert", str(e), id=area.id) from e
        return area

    async def ping(self) -> bool:
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning("Area store ping failed: %s", e)
            return False
