"""
Monitored area schema: strict validation at the repository boundary.

Area documents arrive from the store loosely shaped (camelCase keys from the
map client, polygon coordinates occasionally persisted as a JSON string).
Everything is validated here, once; the classifier and monitor only ever
see a well-formed ``MonitoredArea``.

Geometry follows GeoJSON ordering: positions are ``[longitude, latitude]``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from floodwatch.risk.classifier import RiskLevel

logger = logging.getLogger(__name__)


class GeometryType(str, Enum):
    POINT = "Point"
    POLYGON = "Polygon"


class SlopeType(str, Enum):
    FLAT = "flat"
    GENTLE = "gentle"
    STEEP = "steep"


class WaterBody(str, Enum):
    RIVER = "river"
    CREEK = "creek"
    SEA = "sea"
    LAKE = "lake"
    CANAL = "canal"
    NONE = "none"


class FloodFrequency(str, Enum):
    RARE = "rare"
    OCCASIONAL = "occasional"
    FREQUENT = "frequent"
    VERY_FREQUENT = "very frequent"


class _Document(BaseModel):
    """Accepts snake_case or the map client's camelCase keys."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _is_position(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) >= 2
        and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value[:2])
    )


class Geometry(_Document):
    type: GeometryType
    coordinates: Any = Field(default_factory=list)

    @field_validator("coordinates", mode="before")
    @classmethod
    def _decode_json_string(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError as e:
                raise ValueError(f"coordinates are not valid JSON: {e}") from e
        return value

    @model_validator(mode="after")
    def _check_shape(self) -> "Geometry":
        coords = self.coordinates
        if not isinstance(coords, list):
            raise ValueError("coordinates must be a list")
        if self.type is GeometryType.POINT:
            if coords and not _is_position(coords):
                raise ValueError("Point coordinates must be [lon, lat]")
        else:
            for ring in coords:
                if not isinstance(ring, list) or not all(_is_position(p) for p in ring):
                    raise ValueError("Polygon rings must be lists of [lon, lat] positions")
        return self

    def representative_coordinate(self) -> Optional[Tuple[float, float]]:
        """
        (lon, lat) used for the weather lookup.

        Point → the point. Polygon → first vertex of the outer ring (not a
        centroid). None when the geometry is empty.
        """
        coords = self.coordinates
        if not coords:
            return None
        if self.type is GeometryType.POINT:
            return float(coords[0]), float(coords[1])
        ring = coords[0]
        if not ring:
            return None
        return float(ring[0][0]), float(ring[0][1])


class PhysicalAttributes(_Document):
    elevation: float = 0.0
    slope: SlopeType = SlopeType.FLAT
    soil: Optional[str] = None
    drainage: Optional[str] = None
    surface_cover: Optional[str] = None


class FloodHistory(_Document):
    has_flooded: bool = False
    frequency: Optional[FloodFrequency] = None


class HydrologicalAttributes(_Document):
    water_body: WaterBody = WaterBody.NONE
    distance: Optional[float] = None
    flood_history: FloodHistory = Field(default_factory=FloodHistory)


class ExposureAttributes(_Document):
    population: int = Field(default=0, ge=0)

    @field_validator("population", mode="before")
    @classmethod
    def _absent_is_zero(cls, value: Any) -> Any:
        return 0 if value is None else value


class WeatherSample(_Document):
    """Current weather at an area's representative coordinate."""
    model_config = ConfigDict(frozen=True)

    rainfall: float = Field(default=0.0, ge=0.0)           # mm/hr
    forecast_rainfall: float = Field(default=0.0, ge=0.0)  # mm over 48 h
    wind_speed: float = Field(default=0.0, ge=0.0)         # km/h
    temperature: float = 0.0                               # °C
    storm_alerts: str = ""


class MonitoredArea(_Document):
    id: str = Field(min_length=1)
    name: str = ""
    area_type: str = "other"
    geometry: Geometry
    physical: PhysicalAttributes = Field(default_factory=PhysicalAttributes)
    hydrological: HydrologicalAttributes = Field(default_factory=HydrologicalAttributes)
    exposure: ExposureAttributes = Field(default_factory=ExposureAttributes)
    weather: WeatherSample = Field(default_factory=WeatherSample)
    risk_level: Optional[RiskLevel] = None
    risk_score: Optional[int] = None
    last_risk_update: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _lift_basic_info(cls, data: Any) -> Any:
        # Map-client documents nest name/type under basicInfo.
        if isinstance(data, dict) and isinstance(data.get("basicInfo"), dict):
            info = data["basicInfo"]
            data = dict(data)
            data.setdefault("name", info.get("name", ""))
            data.setdefault("areaType", info.get("type", "other"))
        return data

    def representative_coordinate(self) -> Optional[Tuple[float, float]]:
        return self.geometry.representative_coordinate()

    def with_weather(self, sample: WeatherSample) -> "MonitoredArea":
        """New area value carrying ``sample`` as its last-known weather."""
        return self.model_copy(update={"weather": sample})

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "area_type": self.area_type,
            "geometry_type": self.geometry.type.value,
            "risk_level": self.risk_level.value if self.risk_level else None,
            "risk_score": self.risk_score,
            "last_risk_update": (
                self.last_risk_update.isoformat() if self.last_risk_update else None
            ),
        }


@dataclass(frozen=True)
class AreaRiskUpdate:
    """Partial update written back when an area's level changes."""
    weather: WeatherSample
    risk_level: RiskLevel
    risk_score: int
    last_risk_update: datetime

    def to_fields(self) -> Dict[str, Any]:
        return {
            "weather": self.weather.model_dump(),
            "risk_level": self.risk_level.value,
            "risk_score": self.risk_score,
            "last_risk_update": self.last_risk_update,
        }


def parse_area(record: Dict[str, Any]) -> MonitoredArea:
    return MonitoredArea.model_validate(record)


def parse_areas(records: Iterable[Dict[str, Any]]) -> List[MonitoredArea]:
    """Validate raw documents; malformed ones are logged and dropped."""
    areas: List[MonitoredArea] = []
    for record in records:
        try:
            areas.append(parse_area(record))
        except ValidationError as e:
            logger.warning(
                "Rejected area record %s: %d validation error(s)",
                record.get("id", "<no id>") if isinstance(record, dict) else "<invalid>",
                e.error_count(),
            )
    return areas
