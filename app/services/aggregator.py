"""
Workmate — Score aggregation.

Combines the seven per-dimension sub-scores into a single 0-100 total:

    total_score = round_half_up(100 × Σ weight_i × score_i)

and maps the total to a coarse label:

    >= 85 Excellent   >= 70 Good   >= 55 Fair   otherwise Poor

Weights and thresholds live in explicit value objects so they can be tuned
from configuration without touching scoring logic.
"""

from __future__ import annotations

import math

import structlog
from pydantic import BaseModel, Field, model_validator

from app.config import Settings, get_settings
from app.schemas.match import DIMENSIONS, CompatibilityLabel

logger = structlog.get_logger("workmate.aggregator")

_WEIGHT_SUM_TOLERANCE = 1e-6


class ScoringWeights(BaseModel):
    """Per-dimension weights; must cover every dimension and sum to 1.0."""

    model_config = {"frozen": True}

    age: float = Field(default=0.10, ge=0.0, le=1.0)
    interests: float = Field(default=0.15, ge=0.0, le=1.0)
    availability: float = Field(default=0.15, ge=0.0, le=1.0)
    occupation: float = Field(default=0.10, ge=0.0, le=1.0)
    work_date_ratio: float = Field(default=0.15, ge=0.0, le=1.0)
    location: float = Field(default=0.15, ge=0.0, le=1.0)
    work_style: float = Field(default=0.20, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _must_sum_to_one(self) -> "ScoringWeights":
        total = sum(self.as_dict().values())
        if abs(total - 1.0) > _WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"Scoring weights must sum to 1.0, got {total:.6f}")
        return self

    def as_dict(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in DIMENSIONS}


class LabelThresholds(BaseModel):
    model_config = {"frozen": True}

    excellent: int = 85
    good: int = 70
    fair: int = 55

    @model_validator(mode="after")
    def _must_descend(self) -> "LabelThresholds":
        if not self.excellent > self.good > self.fair:
            raise ValueError("Label thresholds must be strictly decreasing")
        return self


class Aggregator:
    """Weighted sum of sub-scores plus label lookup."""

    def __init__(
        self,
        weights: ScoringWeights | None = None,
        thresholds: LabelThresholds | None = None,
    ) -> None:
        self.weights = weights or ScoringWeights()
        self.thresholds = thresholds or LabelThresholds()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "Aggregator":
        settings = settings or get_settings()
        return cls(
            weights=ScoringWeights(**settings.dimension_weights),
            thresholds=LabelThresholds(
                excellent=settings.LABEL_EXCELLENT,
                good=settings.LABEL_GOOD,
                fair=settings.LABEL_FAIR,
            ),
        )

    def total_score(self, breakdown: dict[str, float]) -> int:
        missing = [name for name in DIMENSIONS if name not in breakdown]
        if missing:
            raise KeyError(f"Breakdown is missing dimensions: {missing}")

        weighted = sum(
            weight * breakdown[name] for name, weight in self.weights.as_dict().items()
        )
        # Half-up, so 84.5 rounds to 85 rather than to the even 84
        score = max(0, min(100, math.floor(weighted * 100 + 0.5)))
        logger.debug("total_score_calculated", weighted=round(weighted, 4), total_score=score)
        return score

    def label(self, total_score: int) -> CompatibilityLabel:
        if total_score >= self.thresholds.excellent:
            return CompatibilityLabel.EXCELLENT
        if total_score >= self.thresholds.good:
            return CompatibilityLabel.GOOD
        if total_score >= self.thresholds.fair:
            return CompatibilityLabel.FAIR
        return CompatibilityLabel.POOR
