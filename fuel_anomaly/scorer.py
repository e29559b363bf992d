"""
scorer.py — Risk Scoring Engine.

Turns a set of anomalies into a risk score on a 0–10 scale. Two formulas
are in use and are deliberately kept apart:

    DailyRiskStrategy       — severity points × phase multiplier, used while
                              annotating each generated day. Range [1, 10].
    ContextualRiskStrategy  — value-weighted average by anomaly type, scaled
                              by vessel history and fleet standing. Used to
                              re-score a period. Range [0, 10].

The two can disagree substantially on the same anomalies; neither is a
correction of the other.

Risk levels (shared):
    Normal       ≤ 3
    Monitor      ≤ 6
    Investigate  ≤ 8.5
    Critical     > 8.5
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from fuel_anomaly.models import AnomalyRecord, AnomalyType, RiskLevel, Severity

logger = logging.getLogger(__name__)

# Weight per anomaly type for the contextual scorer
TYPE_WEIGHTS: dict[AnomalyType, float] = {
    AnomalyType.EXCESS_CONSUMPTION: 0.35,
    AnomalyType.STATIC_CONSUMPTION: 0.25,
    AnomalyType.RPM_INFLATION: 0.15,
    AnomalyType.WEATHER_MISREPORT: 0.10,
    AnomalyType.POWER_MISMATCH: 0.10,
    AnomalyType.CORRELATION_BREAK: 0.05,
}

# Applied only to a type value missing from TYPE_WEIGHTS
FALLBACK_TYPE_WEIGHT = 0.1


def classify_risk_level(score: float) -> RiskLevel:
    """Map a 0–10 risk score to its RiskLevel."""
    if score <= RiskLevel.LOW.upper:
        return RiskLevel.LOW
    elif score <= RiskLevel.MEDIUM.upper:
        return RiskLevel.MEDIUM
    elif score <= RiskLevel.HIGH.upper:
        return RiskLevel.HIGH
    else:
        return RiskLevel.CRITICAL


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def type_weight(anomaly_type: AnomalyType) -> float:
    return TYPE_WEIGHTS.get(anomaly_type, FALLBACK_TYPE_WEIGHT)


@dataclass(frozen=True)
class VesselHistory:
    prior_issues: int = 0


@dataclass(frozen=True)
class FleetBaseline:
    """Vessel efficiency relative to the fleet; 1.0 is fleet average."""

    performance_ratio: float = 1.0


class RiskStrategy(ABC):
    """Interface shared by every risk formula."""

    name = "base"

    @abstractmethod
    def score(self, anomalies: list[AnomalyRecord], **context) -> float:
        """Return a risk score for the given anomalies."""


class DailyRiskStrategy(RiskStrategy):
    """Per-day severity-point scorer.

    score = Σ points(severity) × (1 + (phase − 1) × 0.2), clamped to [1, 10].
    A day with no anomalies scores max(1, phase × 0.5), so later phases keep
    a non-trivial floor.
    """

    name = "daily"

    def __init__(self, phase_step: float = 0.2, min_score: float = 1.0, max_score: float = 10.0):
        self.phase_step = phase_step
        self.min_score = min_score
        self.max_score = max_score

    def score(self, anomalies: list[AnomalyRecord], phase: int = 1, **context) -> float:
        if not anomalies:
            return max(self.min_score, phase * 0.5)
        points = sum(a.severity.points for a in anomalies)
        points *= 1 + (phase - 1) * self.phase_step
        return _clamp(points, self.min_score, self.max_score)


class ContextualRiskStrategy(RiskStrategy):
    """Weighted, context-adjusted scorer for period re-scoring.

    Each anomaly contributes (value / 100) × weight(type) × multiplier(severity).
    The base score is Σcontribution / Σweight × 10, then multiplied by a
    history adjustment (1 + prior_issues × 0.1) and a fleet adjustment (1.2
    when the vessel runs below 80% of fleet efficiency), and clamped to
    [0, 10].
    """

    name = "contextual"

    def __init__(
        self,
        prior_issue_step: float = 0.1,
        fleet_ratio_floor: float = 0.8,
        fleet_multiplier: float = 1.2,
    ):
        self.prior_issue_step = prior_issue_step
        self.fleet_ratio_floor = fleet_ratio_floor
        self.fleet_multiplier = fleet_multiplier

    def history_adjustment(self, history: Optional[VesselHistory]) -> float:
        if history is not None and history.prior_issues > 0:
            return 1 + history.prior_issues * self.prior_issue_step
        return 1.0

    def fleet_adjustment(self, fleet: Optional[FleetBaseline]) -> float:
        if fleet is not None and fleet.performance_ratio < self.fleet_ratio_floor:
            return self.fleet_multiplier
        return 1.0

    def base_score(self, anomalies: list[AnomalyRecord]) -> float:
        contribution = 0.0
        weight_sum = 0.0
        for anomaly in anomalies:
            weight = type_weight(anomaly.type)
            contribution += (anomaly.value / 100) * weight * anomaly.severity.multiplier
            weight_sum += weight
        return (contribution / weight_sum) * 10 if weight_sum > 0 else 0.0

    def score(
        self,
        anomalies: list[AnomalyRecord],
        history: Optional[VesselHistory] = None,
        fleet: Optional[FleetBaseline] = None,
        **context,
    ) -> float:
        raw = (
            self.base_score(anomalies)
            * self.history_adjustment(history)
            * self.fleet_adjustment(fleet)
        )
        if raw > 10:
            logger.debug("Contextual score %.2f clamped to 10", raw)
        return _clamp(raw, 0.0, 10.0)


def severity_breakdown(anomalies: list[AnomalyRecord]) -> dict[str, int]:
    """Count anomalies per severity tag, every tier present."""
    return {s.tag: sum(1 for a in anomalies if a.severity is s) for s in Severity}
