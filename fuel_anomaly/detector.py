"""
detector.py — Multi-Rule Fuel Anomaly Detection Engine.

Applies five independent rules to one TelemetryDay and returns every
anomaly raised. Rules never depend on each other, so a single day can
trigger several (e.g. a static-consumption day that is also far above the
sister vessel).

Detection Rules:
    1. Excess Consumption   — reported fuel > theoretical by 20%
    2. RPM Inflation        — reported RPM > sensor RPM by 10%
    3. Weather Misreport    — reported vs actual Beaufort differ by > 2
    4. Static Consumption   — phase ≥ 3 and reported fuel within 2 MT of 32
    5. Sister Mismatch      — reported fuel > sister vessel fuel by 15%

A ratio whose denominator is zero, missing or non-finite yields no anomaly
for that rule. A day without sister data skips rule 5.
"""

import logging
import math
import numbers
from collections import Counter
from typing import Any, Optional

from fuel_anomaly.models import (
    AnomalyRecord,
    AnomalyType,
    Correlations,
    Severity,
    TelemetryDay,
)

logger = logging.getLogger(__name__)

DEFAULT_DETECTION_CONFIG: dict[str, Any] = {
    "excess_threshold": 0.2,
    "excess_high_threshold": 0.4,
    "rpm_threshold": 0.1,
    "rpm_high_threshold": 0.2,
    "weather_threshold": 2,
    "weather_high_threshold": 4,
    "static_min_phase": 3,
    "static_reference_fuel": 32.0,
    "static_band": 2.0,
    "sister_threshold": 0.15,
    "sister_high_threshold": 0.3,
}


def _is_number(value: Any) -> bool:
    """Finite real number, Python or NumPy scalar; bools excluded."""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    return math.isfinite(value)


def _safe_ratio(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    """Return numerator / denominator, or None when the result would be unusable."""
    if not _is_number(numerator) or not _is_number(denominator) or denominator == 0:
        return None
    return numerator / denominator


def _relative_variance(reported: Optional[float], reference: Optional[float]) -> Optional[float]:
    if not _is_number(reported):
        return None
    return _safe_ratio(reported - reference, reference) if _is_number(reference) else None


# ---------------------------------------------------------------------------
# Rule 1: Excess Consumption
# ---------------------------------------------------------------------------

def detect_excess_consumption(
    day: TelemetryDay,
    threshold: float = 0.2,
    high_threshold: float = 0.4,
) -> Optional[AnomalyRecord]:
    """Flag reported fuel well above the power-derived theoretical figure."""
    variance = _relative_variance(
        day.reported.fuel_consumption, day.calculated.theoretical_fuel
    )
    if variance is None:
        logger.debug("%s %s: excess rule skipped, no theoretical fuel", day.vessel_id, day.date)
        return None
    if variance <= threshold:
        return None
    pct = round(variance * 100)
    return AnomalyRecord(
        type=AnomalyType.EXCESS_CONSUMPTION,
        severity=Severity.HIGH if variance > high_threshold else Severity.MEDIUM,
        value=pct,
        description=f"{pct}% excess fuel consumption",
    )


# ---------------------------------------------------------------------------
# Rule 2: RPM Inflation
# ---------------------------------------------------------------------------

def detect_rpm_inflation(
    day: TelemetryDay,
    threshold: float = 0.1,
    high_threshold: float = 0.2,
) -> Optional[AnomalyRecord]:
    """Flag logbook RPM above what the shaft sensor measured."""
    variance = _relative_variance(day.reported.rpm, day.sensor.rpm_actual)
    if variance is None:
        logger.debug("%s %s: RPM rule skipped, no sensor RPM", day.vessel_id, day.date)
        return None
    if variance <= threshold:
        return None
    pct = round(variance * 100)
    return AnomalyRecord(
        type=AnomalyType.RPM_INFLATION,
        severity=Severity.HIGH if variance > high_threshold else Severity.MEDIUM,
        value=pct,
        description=f"{pct}% RPM over-reporting",
    )


# ---------------------------------------------------------------------------
# Rule 3: Weather Misreport
# ---------------------------------------------------------------------------

def detect_weather_misreport(
    day: TelemetryDay,
    threshold: int = 2,
    high_threshold: int = 4,
) -> Optional[AnomalyRecord]:
    """Flag a reported Beaufort force far from the measured one."""
    reported = day.reported.weather_bf
    actual = day.sensor.weather_actual
    if not _is_number(reported) or not _is_number(actual):
        logger.debug("%s %s: weather rule skipped, missing force", day.vessel_id, day.date)
        return None
    delta = abs(reported - actual)
    if delta <= threshold:
        return None
    return AnomalyRecord(
        type=AnomalyType.WEATHER_MISREPORT,
        severity=Severity.HIGH if delta > high_threshold else Severity.MEDIUM,
        value=delta,
        description=f"Weather misreported by {delta} BF scales",
    )


# ---------------------------------------------------------------------------
# Rule 4: Static Consumption
# ---------------------------------------------------------------------------

def detect_static_consumption(
    day: TelemetryDay,
    phase: int,
    min_phase: int = 3,
    reference_fuel: float = 32.0,
    band: float = 2.0,
) -> Optional[AnomalyRecord]:
    """Flag reported fuel parked on the reference band once manipulation is established.

    Never fires before `min_phase`, whatever the reported figure.
    """
    if phase < min_phase:
        return None
    reported = day.reported.fuel_consumption
    if not _is_number(reported) or abs(reported - reference_fuel) >= band:
        return None
    return AnomalyRecord(
        type=AnomalyType.STATIC_CONSUMPTION,
        severity=Severity.HIGH,
        value=round(reported, 1),
        description="Fuel consumption artificially static despite varying engine load",
    )


# ---------------------------------------------------------------------------
# Rule 5: Sister-Vessel Mismatch
# ---------------------------------------------------------------------------

def detect_sister_mismatch(
    day: TelemetryDay,
    threshold: float = 0.15,
    high_threshold: float = 0.3,
) -> Optional[AnomalyRecord]:
    """Flag reported fuel well above the sister vessel's on the same day."""
    if day.sister is None or day.sister.fuel_consumption is None:
        logger.debug("%s %s: sister rule not evaluated, no comparator", day.vessel_id, day.date)
        return None
    variance = _relative_variance(day.reported.fuel_consumption, day.sister.fuel_consumption)
    if variance is None or variance <= threshold:
        return None
    pct = round(variance * 100)
    return AnomalyRecord(
        type=AnomalyType.POWER_MISMATCH,
        severity=Severity.HIGH if variance > high_threshold else Severity.MEDIUM,
        value=pct,
        description=f"{pct}% higher consumption than sister vessel",
    )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

def detect_anomalies(
    day: TelemetryDay,
    phase: int,
    det_cfg: Optional[dict[str, Any]] = None,
) -> list[AnomalyRecord]:
    """Run all five rules against one day.

    Args:
        day: The telemetry record to check.
        phase: Fraud phase of the day (1–4).
        det_cfg: Overrides for DEFAULT_DETECTION_CONFIG.

    Returns:
        Anomalies in rule order; empty when the day is clean.
    """
    cfg = {**DEFAULT_DETECTION_CONFIG, **(det_cfg or {})}

    results = [
        detect_excess_consumption(
            day, cfg["excess_threshold"], cfg["excess_high_threshold"]
        ),
        detect_rpm_inflation(day, cfg["rpm_threshold"], cfg["rpm_high_threshold"]),
        detect_weather_misreport(
            day, cfg["weather_threshold"], cfg["weather_high_threshold"]
        ),
        detect_static_consumption(
            day,
            phase,
            cfg["static_min_phase"],
            cfg["static_reference_fuel"],
            cfg["static_band"],
        ),
        detect_sister_mismatch(
            day, cfg["sister_threshold"], cfg["sister_high_threshold"]
        ),
    ]
    return [r for r in results if r is not None]


def compute_correlations(day: TelemetryDay) -> Correlations:
    """Day-level agreement indicators between reported and measured figures.

    fuel_vs_power compares reported fuel with the fuel the measured engine
    power implies; RPM agreement is penalised twice as hard. Both floor at 0.
    """
    fuel_ratio = _safe_ratio(
        abs(day.reported.fuel_consumption - day.calculated.theoretical_fuel)
        if _is_number(day.reported.fuel_consumption)
        else None,
        day.calculated.theoretical_fuel,
    )
    rpm_ratio = _safe_ratio(
        abs(day.reported.rpm - day.sensor.rpm_actual)
        if _is_number(day.reported.rpm)
        else None,
        day.sensor.rpm_actual,
    )
    weather_match = (
        _is_number(day.reported.weather_bf)
        and day.reported.weather_bf == day.sensor.weather_actual
    )
    return Correlations(
        fuel_vs_power=max(0.0, 1 - fuel_ratio) if fuel_ratio is not None else 0.0,
        reported_vs_actual_rpm=max(0.0, 1 - rpm_ratio * 2) if rpm_ratio is not None else 0.0,
        weather_accuracy=1.0 if weather_match else 0.0,
    )


def summarize_detections(days: list[TelemetryDay]) -> dict[str, Any]:
    """Count flags per rule and per severity across annotated days."""
    by_rule: Counter = Counter()
    by_severity: Counter = Counter()
    for day in days:
        for anomaly in day.anomalies.detected:
            by_rule[anomaly.type.value] += 1
            by_severity[anomaly.severity.tag] += 1

    summary = {
        "total_days": len(days),
        "total_flags": sum(by_rule.values()),
        "by_rule": dict(by_rule),
        "by_severity": {s.tag: by_severity.get(s.tag, 0) for s in Severity},
    }
    logger.info(
        "Detection complete — %d flags across %d days",
        summary["total_flags"],
        summary["total_days"],
    )
    return summary
