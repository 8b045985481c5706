"""Deterministic flood risk scoring."""

from .classifier import (
    AreaRiskFactors,
    HistoryBucket,
    RiskAssessment,
    RiskLevel,
    RiskTier,
    TerrainType,
    WeatherFactors,
    assess_area,
    classify,
)

__all__ = [
    "AreaRiskFactors",
    "HistoryBucket",
    "RiskAssessment",
    "RiskLevel",
    "RiskTier",
    "TerrainType",
    "WeatherFactors",
    "assess_area",
    "classify",
]
