"""
Flood risk classifier: deterministic scoring of one area against one
weather sample.

Scoring Policy
==============
The score accumulates from zero:

    Factor                      Condition                  Points
    ─────────────────────────   ────────────────────────   ──────
    rainfall_24h (mm)           > 50 / > 20 / otherwise    30 / 15 / 5
    forecast_rain_48h (mm)      > 80 / > 40 / otherwise    25 / 15 / 5
    wind speed (m/s)            > 15                       10
    terrain                     river, coastal / mountain  15 / 10
    flood history bucket        high / medium              20 / 10
    landslide history bucket    high / medium              20 / 10
    population                  > 1000                     10

``rainfall_24h`` is an estimate: the current rainfall rate (mm/hr) held for
six hours. Wind arrives in km/h and is converted to m/s.

Two-Stage Classification
========================
The raw score first falls into a tier, then the tier is refined into the
five-level scale stored on every area:

    score ≥ 70  → HIGH tier    → "Severe" if score ≥ 85 else "High"
    score ≥ 40  → MEDIUM tier  → "Moderate" (no sub-threshold)
    otherwise   → LOW tier     → "Very Low" if score < 20 else "Low"

The classifier is pure: no I/O, no clock, no mutable state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from floodwatch.areas.models import MonitoredArea, WeatherSample


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

RAINFALL_24H_HOURS = 6  # hours of sustained current intensity
KMH_PER_MS = 3.6
DEFAULT_HUMIDITY_PCT = 70.0  # not collected from the provider
MOUNTAIN_ELEVATION_M = 100.0

TIER_HIGH_MIN = 70
TIER_MEDIUM_MIN = 40
VERY_LOW_BELOW = 20
SEVERE_FROM = 85

POPULATION_THRESHOLD = 1000


class TerrainType(str, Enum):
    COASTAL = "coastal"
    RIVER = "river"
    MOUNTAIN = "mountain"
    FLAT = "flat"


class HistoryBucket(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskTier(str, Enum):
    """Intermediate 3-way classification of the raw score."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class RiskLevel(str, Enum):
    """Five ordered severity labels assigned to an area."""
    VERY_LOW = "Very Low"
    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"
    SEVERE = "Severe"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    @property
    def is_alert(self) -> bool:
        """High and Severe areas raise the flood risk alert banner."""
        return self in (RiskLevel.HIGH, RiskLevel.SEVERE)


_LEVEL_ORDER = [
    RiskLevel.VERY_LOW,
    RiskLevel.LOW,
    RiskLevel.MODERATE,
    RiskLevel.HIGH,
    RiskLevel.SEVERE,
]


# ---------------------------------------------------------------------------
# Inputs / output
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AreaRiskFactors:
    """Static, risk-relevant attributes of an area."""
    population: int = 0
    terrain: TerrainType = TerrainType.FLAT
    flood_history: HistoryBucket = HistoryBucket.LOW
    landslide_history: HistoryBucket = HistoryBucket.LOW


@dataclass(frozen=True)
class WeatherFactors:
    """Weather expressed in the units the scoring policy uses."""
    rainfall_24h: float = 0.0       # mm
    forecast_rain_48h: float = 0.0  # mm
    wind_speed_ms: float = 0.0      # m/s
    humidity_pct: float = DEFAULT_HUMIDITY_PCT


@dataclass(frozen=True)
class RiskAssessment:
    score: int
    tier: RiskTier
    level: RiskLevel

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "tier": self.tier.value,
            "level": self.level.value,
        }


# ---------------------------------------------------------------------------
# Attribute derivation
# ---------------------------------------------------------------------------

def derive_terrain(
    water_body: Optional[str],
    slope: Optional[str],
    elevation_m: float = 0.0,
) -> TerrainType:
    """
    Terrain from hydrology and physical attributes.

    Precedence is fixed: sea, then river/creek, then steep slope or
    elevation above 100 m, then flat.
    """
    if water_body == "sea":
        return TerrainType.COASTAL
    if water_body in ("river", "creek"):
        return TerrainType.RIVER
    if slope == "steep" or (elevation_m or 0.0) > MOUNTAIN_ELEVATION_M:
        return TerrainType.MOUNTAIN
    return TerrainType.FLAT


def derive_flood_history(has_flooded: bool, frequency: Optional[str]) -> HistoryBucket:
    """Collapse recorded flood frequency into a low/medium/high bucket."""
    if not has_flooded:
        return HistoryBucket.LOW
    if frequency in ("very frequent", "frequent"):
        return HistoryBucket.HIGH
    if frequency == "occasional":
        return HistoryBucket.MEDIUM
    return HistoryBucket.LOW


def area_factors(area: "MonitoredArea") -> AreaRiskFactors:
    hydro = area.hydrological
    return AreaRiskFactors(
        population=area.exposure.population or 0,
        terrain=derive_terrain(
            hydro.water_body.value,
            area.physical.slope.value,
            area.physical.elevation,
        ),
        flood_history=derive_flood_history(
            hydro.flood_history.has_flooded,
            hydro.flood_history.frequency.value if hydro.flood_history.frequency else None,
        ),
        # No landslide data source exists yet.
        landslide_history=HistoryBucket.LOW,
    )


def weather_factors(sample: "WeatherSample") -> WeatherFactors:
    return WeatherFactors(
        rainfall_24h=sample.rainfall * RAINFALL_24H_HOURS,
        forecast_rain_48h=sample.forecast_rainfall,
        wind_speed_ms=sample.wind_speed / KMH_PER_MS,
    )


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

_TERRAIN_POINTS = {
    TerrainType.RIVER: 15,
    TerrainType.COASTAL: 15,
    TerrainType.MOUNTAIN: 10,
    TerrainType.FLAT: 0,
}

_HISTORY_POINTS = {
    HistoryBucket.HIGH: 20,
    HistoryBucket.MEDIUM: 10,
    HistoryBucket.LOW: 0,
}


def score_risk(factors: AreaRiskFactors, weather: WeatherFactors) -> int:
    score = 0

    if weather.rainfall_24h > 50:
        score += 30
    elif weather.rainfall_24h > 20:
        score += 15
    else:
        score += 5

    if weather.forecast_rain_48h > 80:
        score += 25
    elif weather.forecast_rain_48h > 40:
        score += 15
    else:
        score += 5

    if weather.wind_speed_ms > 15:
        score += 10

    score += _TERRAIN_POINTS[factors.terrain]
    score += _HISTORY_POINTS[factors.flood_history]
    score += _HISTORY_POINTS[factors.landslide_history]

    if (factors.population or 0) > POPULATION_THRESHOLD:
        score += 10

    return score


def classify_tier(score: int) -> RiskTier:
    if score >= TIER_HIGH_MIN:
        return RiskTier.HIGH
    if score >= TIER_MEDIUM_MIN:
        return RiskTier.MEDIUM
    return RiskTier.LOW


def refine_level(tier: RiskTier, score: int) -> RiskLevel:
    """Refine a tier into the five-level scale."""
    if tier is RiskTier.LOW:
        return RiskLevel.VERY_LOW if score < VERY_LOW_BELOW else RiskLevel.LOW
    if tier is RiskTier.MEDIUM:
        return RiskLevel.MODERATE
    return RiskLevel.SEVERE if score >= SEVERE_FROM else RiskLevel.HIGH


def level_for_score(score: int) -> RiskLevel:
    return refine_level(classify_tier(score), score)


def classify(factors: AreaRiskFactors, weather: WeatherFactors) -> RiskAssessment:
    """Score and classify. Total: every input combination yields an assessment."""
    score = score_risk(factors, weather)
    tier = classify_tier(score)
    return RiskAssessment(score=score, tier=tier, level=refine_level(tier, score))


def assess_area(area: "MonitoredArea", sample: Optional["WeatherSample"] = None) -> RiskAssessment:
    """Assess an area against ``sample`` (default: its last-known weather)."""
    return classify(area_factors(area), weather_factors(sample or area.weather))
