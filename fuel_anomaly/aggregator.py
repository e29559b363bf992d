"""
aggregator.py — Day Annotation, Period Summary & Investigation Priority.

annotate_days() runs the per-day stages in their fixed order:

    detect → daily risk score → risk level → daily confidence
           → daily / cumulative excess → correlations

Days of one vessel must be annotated in date order because the cumulative
excess is a running sum. summarize_period() then only reads the annotated
days and selects an investigation tier from INVESTIGATION_TIERS.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional

from fuel_anomaly.confidence import (
    DataQuality,
    assess_data_quality,
    daily_confidence,
    period_confidence,
)
from fuel_anomaly.detector import compute_correlations, detect_anomalies
from fuel_anomaly.models import (
    ANALYSIS_LEVEL_TYPES,
    INVESTIGATION_TIERS,
    NORMAL_TIER,
    AnalysisLevel,
    AnomalyRecord,
    AnomalyType,
    InvestigationTier,
    RiskLevel,
    TelemetryDay,
)
from fuel_anomaly.scorer import (
    DailyRiskStrategy,
    RiskStrategy,
    classify_risk_level,
    severity_breakdown,
)

logger = logging.getLogger(__name__)


@dataclass
class PeriodSummary:
    total_days: int
    anomalous_days: int
    anomaly_rate: int
    total_excess_fuel: float
    avg_risk_score: float
    overall_risk_level: RiskLevel
    confidence: int
    anomaly_types: dict[str, int]
    investigation_priority: InvestigationTier
    detection_confidence: float = 0.1
    severity_breakdown: dict[str, int] = field(default_factory=dict)
    date_range: Optional[tuple[str, str]] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "total_days": self.total_days,
            "anomalous_days": self.anomalous_days,
            "anomaly_rate": self.anomaly_rate,
            "total_excess_fuel": self.total_excess_fuel,
            "avg_risk_score": self.avg_risk_score,
            "overall_risk_level": self.overall_risk_level.label,
            "confidence": self.confidence,
            "anomaly_types": dict(self.anomaly_types),
            "investigation_priority": self.investigation_priority.level,
            "detection_confidence": self.detection_confidence,
            "severity_breakdown": dict(self.severity_breakdown),
            "date_range": self.date_range,
        }


def _check_sequence(days: list[TelemetryDay]) -> None:
    """Raise ValueError unless the days are one vessel in strictly ascending date order."""
    for previous, day in zip(days, days[1:]):
        if day.vessel_id != previous.vessel_id:
            raise ValueError(
                f"Cannot annotate mixed vessels: {previous.vessel_id} and {day.vessel_id}"
            )
        if day.date <= previous.date:
            raise ValueError(f"Days out of order at {day.date} for {day.vessel_id}")


def annotate_days(
    days: list[TelemetryDay],
    strategy: Optional[RiskStrategy] = None,
    det_cfg: Optional[dict[str, Any]] = None,
) -> list[TelemetryDay]:
    """Fill in the anomaly assessment and correlations of each day, in order.

    Args:
        days: One vessel's days, sorted by date.
        strategy: Per-day risk formula. Defaults to DailyRiskStrategy.
        det_cfg: Detection threshold overrides.

    Returns:
        The same list, annotated in place.

    Raises:
        ValueError: If the days are not in ascending date order or mix vessels.
            The whole sequence is checked first, so no day is modified.
    """
    strategy = strategy or DailyRiskStrategy()
    _check_sequence(days)

    cumulative = 0.0
    for day in days:
        detected = detect_anomalies(day, day.phase, det_cfg)
        score = strategy.score(detected, phase=day.phase)
        daily_excess = max(0.0, day.reported.fuel_consumption - day.calculated.theoretical_fuel)
        cumulative += daily_excess

        assessment = day.anomalies
        assessment.detected = detected
        assessment.risk_score = score
        assessment.risk_level = classify_risk_level(score)
        assessment.confidence = daily_confidence(detected, day.phase)
        assessment.daily_excess = daily_excess
        assessment.cumulative_excess = cumulative
        day.correlations = compute_correlations(day)

    logger.info(
        "Annotated %d days with %s scorer | cumulative excess %.1f MT",
        len(days),
        strategy.name,
        cumulative,
    )
    return days


def select_investigation_priority(
    risk_score: float,
    confidence: float,
    excess_fuel: float,
    tiers: tuple[InvestigationTier, ...] = INVESTIGATION_TIERS,
) -> InvestigationTier:
    """Pick the first tier whose three thresholds are all met.

    Tiers are tried from the highest risk-score threshold down; the NORMAL
    tier applies when none qualifies.

    Args:
        risk_score: Average risk score (0–10).
        confidence: Confidence as a fraction (0–1).
        excess_fuel: Total excess fuel in MT.
    """
    for tier in sorted(tiers, key=lambda t: t.risk_score, reverse=True):
        if (
            risk_score >= tier.risk_score
            and confidence >= tier.confidence
            and excess_fuel >= tier.excess_fuel
        ):
            return tier
    return NORMAL_TIER


def all_anomalies(days: list[TelemetryDay]) -> list[AnomalyRecord]:
    return [a for day in days for a in day.anomalies.detected]


def summarize_period(
    days: list[TelemetryDay],
    data_quality: Optional[DataQuality] = None,
) -> PeriodSummary:
    """Roll an annotated day sequence into period statistics.

    Args:
        days: Annotated days of one vessel, in date order.
        data_quality: Quality of the source data for the period confidence
            estimate. Assessed from the days when omitted.

    Averages and totals are rounded to one decimal and the detection rate
    to a whole percentage before the risk level and investigation tier are
    chosen, so both can be re-derived from the reported fields: an average
    of 8.46 is reported as 8.5 and qualifies for IMMEDIATE.

    Returns:
        PeriodSummary. An empty sequence gives a zeroed summary on the
        NORMAL tier.
    """
    if not days:
        logger.warning("Summarising an empty day sequence")
        return PeriodSummary(
            total_days=0,
            anomalous_days=0,
            anomaly_rate=0,
            total_excess_fuel=0.0,
            avg_risk_score=0.0,
            overall_risk_level=RiskLevel.LOW,
            confidence=0,
            anomaly_types={},
            investigation_priority=NORMAL_TIER,
            severity_breakdown=severity_breakdown([]),
        )

    total_days = len(days)
    anomalous_days = sum(1 for d in days if d.anomalies.detected)
    avg_risk = round(sum(d.anomalies.risk_score for d in days) / total_days, 1)
    total_excess = round(days[-1].anomalies.cumulative_excess, 1)
    confidence_pct = round(anomalous_days / total_days * 100)

    anomalies = all_anomalies(days)
    type_counts = Counter(a.type for a in anomalies)
    anomaly_types = {t.value: type_counts[t] for t in AnomalyType if type_counts[t]}

    quality = data_quality or assess_data_quality(days)
    # Tier and level come from the same rounded figures the summary reports
    priority = select_investigation_priority(avg_risk, confidence_pct / 100, total_excess)

    summary = PeriodSummary(
        total_days=total_days,
        anomalous_days=anomalous_days,
        anomaly_rate=confidence_pct,
        total_excess_fuel=total_excess,
        avg_risk_score=avg_risk,
        overall_risk_level=classify_risk_level(avg_risk),
        confidence=confidence_pct,
        anomaly_types=anomaly_types,
        investigation_priority=priority,
        detection_confidence=round(
            period_confidence(anomalies, quality, timespan_days=total_days), 2
        ),
        severity_breakdown=severity_breakdown(anomalies),
        date_range=(days[0].date.isoformat(), days[-1].date.isoformat()),
    )
    logger.info(
        "Period summary — %d/%d anomalous days | avg risk %.1f (%s) | "
        "excess %.1f MT | priority %s",
        summary.anomalous_days,
        summary.total_days,
        summary.avg_risk_score,
        summary.overall_risk_level.label,
        summary.total_excess_fuel,
        priority.level,
    )
    return summary


def analysis_level_metrics(days: list[TelemetryDay]) -> dict[str, dict[str, Any]]:
    """Break anomalies down by reconciliation layer.

    For each AnalysisLevel: number of anomalies, average risk score over the
    days affected at that level, affected day count, and the first three
    distinct anomaly descriptions.
    """
    metrics = {}
    for level in AnalysisLevel:
        types = ANALYSIS_LEVEL_TYPES[level]
        issue_count = 0
        affected_days = 0
        risk_total = 0.0
        top_issues: list[str] = []
        for day in days:
            hits = [a for a in day.anomalies.detected if a.type in types]
            if not hits:
                continue
            affected_days += 1
            issue_count += len(hits)
            risk_total += day.anomalies.risk_score
            for anomaly in hits:
                if anomaly.description not in top_issues:
                    top_issues.append(anomaly.description)
        metrics[level.value] = {
            "issue_count": issue_count,
            "risk_score": risk_total / affected_days if affected_days else 0.0,
            "affected_days": affected_days,
            "top_issues": top_issues[:3],
        }
    return metrics


def fleet_performance_ratios(fleet_days: dict[str, list[TelemetryDay]]) -> dict[str, float]:
    """Each vessel's physics efficiency relative to the fleet mean.

    Efficiency is Σtheoretical / Σreported fuel, so 1.0 means the logbook
    matches what the engine load implies. A ratio below 1.0 means the vessel
    reports more fuel per unit of work than the fleet does on average.
    Vessels without usable figures are left out.
    """
    efficiency = {}
    for vessel_id, days in fleet_days.items():
        reported = sum(d.reported.fuel_consumption for d in days)
        theoretical = sum(d.calculated.theoretical_fuel for d in days)
        if reported > 0 and theoretical > 0:
            efficiency[vessel_id] = theoretical / reported

    if not efficiency:
        return {}
    fleet_mean = sum(efficiency.values()) / len(efficiency)
    return {vessel_id: eff / fleet_mean for vessel_id, eff in efficiency.items()}
