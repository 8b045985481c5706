"""
FastAPI route: ad-hoc risk assessment.

Scores submitted area attributes + weather without touching the store:
the "run prediction" path used while an area is being drafted.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from floodwatch.areas.models import FloodFrequency, SlopeType, WaterBody, WeatherSample
from floodwatch.risk.classifier import (
    AreaRiskFactors,
    HistoryBucket,
    classify,
    derive_flood_history,
    derive_terrain,
    weather_factors,
)

router = APIRouter(prefix="/api/v1/risk", tags=["risk"])


class RiskClassifyRequest(BaseModel):
    population: int = Field(default=0, ge=0, examples=[1500])
    water_body: WaterBody = Field(default=WaterBody.NONE, examples=["river"])
    slope: SlopeType = Field(default=SlopeType.FLAT, examples=["flat"])
    elevation: float = Field(default=0.0, description="Metres above sea level", examples=[12.0])
    has_flooded: bool = Field(default=False, examples=[True])
    flood_frequency: Optional[FloodFrequency] = Field(default=None, examples=["frequent"])

    rainfall: float = Field(default=0.0, ge=0.0, description="Current rainfall, mm/hr", examples=[10.0])
    forecast_rainfall: float = Field(default=0.0, ge=0.0, description="Forecast rain over 48 h, mm", examples=[50.0])
    wind_speed: float = Field(default=0.0, ge=0.0, description="Wind speed, km/h", examples=[20.0])


class RiskClassifyResponse(BaseModel):
    score: int
    tier: str
    level: str
    terrain: str
    flood_history: str
    landslide_history: str
    rainfall_24h: float
    forecast_rain_48h: float
    wind_speed_ms: float


@router.post("/classify", response_model=RiskClassifyResponse)
async def classify_risk(req: RiskClassifyRequest) -> RiskClassifyResponse:
    factors = AreaRiskFactors(
        population=req.population,
        terrain=derive_terrain(req.water_body.value, req.slope.value, req.elevation),
        flood_history=derive_flood_history(
            req.has_flooded,
            req.flood_frequency.value if req.flood_frequency else None,
        ),
        landslide_history=HistoryBucket.LOW,
    )
    weather = weather_factors(WeatherSample(
        rainfall=req.rainfall,
        forecast_rainfall=req.forecast_rainfall,
        wind_speed=req.wind_speed,
    ))
    assessment = classify(factors, weather)

    return RiskClassifyResponse(
        score=assessment.score,
        tier=assessment.tier.value,
        level=assessment.level.value,
        terrain=factors.terrain.value,
        flood_history=factors.flood_history.value,
        landslide_history=factors.landslide_history.value,
        rainfall_24h=round(weather.rainfall_24h, 2),
        forecast_rain_48h=round(weather.forecast_rain_48h, 2),
        wind_speed_ms=round(weather.wind_speed_ms, 2),
    )
