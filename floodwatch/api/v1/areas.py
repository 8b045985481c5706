"""
FastAPI routes: monitored areas with their current risk classification.

The listing is cached in Redis under the ``areas`` prefix; the monitor
clears that prefix whenever a cycle changes any level.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from floodwatch.api.deps import get_repository
from floodwatch.areas.repository import AreaRepository
from floodwatch.core.cache import AREAS_PREFIX, cache_get, cache_set
from floodwatch.core.errors import NotFoundError
from floodwatch.risk.classifier import RiskLevel

router = APIRouter(prefix="/api/v1/areas", tags=["areas"])


@router.get("")
async def list_areas(
    level: Optional[RiskLevel] = Query(default=None, description="Only areas at this level"),
    alerts_only: bool = Query(default=False, description="Only High/Severe areas"),
    repository: AreaRepository = Depends(get_repository),
) -> Dict[str, Any]:
    cache_key = f"{AREAS_PREFIX}:list:{level.value if level else '*'}:{int(alerts_only)}"
    cached = await cache_get(cache_key)
    if cached is not None:
        return cached

    areas = await repository.list_areas()
    if level is not None:
        areas = [a for a in areas if a.risk_level == level]
    if alerts_only:
        areas = [a for a in areas if a.risk_level is not None and a.risk_level.is_alert]

    body = {
        "count": len(areas),
        "areas": [a.summary() for a in areas],
    }
    await cache_set(cache_key, body)
    return body


@router.get("/summary")
async def area_summary(
    repository: AreaRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Area count per risk level and the population living in High/Severe areas."""
    cache_key = f"{AREAS_PREFIX}:summary"
    cached = await cache_get(cache_key)
    if cached is not None:
        return cached

    areas = await repository.list_areas()
    counts = {level.value: 0 for level in RiskLevel}
    unclassified = 0
    for area in areas:
        if area.risk_level is None:
            unclassified += 1
        else:
            counts[area.risk_level.value] += 1

    body = {
        "total_areas": len(areas),
        "risk_level_counts": counts,
        "unclassified": unclassified,
        "total_population": sum(a.exposure.population for a in areas),
        "population_at_risk": sum(
            a.exposure.population
            for a in areas
            if a.risk_level is not None and a.risk_level.is_alert
        ),
    }
    await cache_set(cache_key, body)
    return body


@router.get("/{area_id}")
async def get_area(
    area_id: str,
    repository: AreaRepository = Depends(get_repository),
) -> Dict[str, Any]:
    area = await repository.get_area(area_id)
    if area is None:
        raise NotFoundError("Area", id=area_id)
    return area.model_dump(mode="json")
