"""
confidence.py — Detection Confidence Estimation.

Two estimators:
    daily_confidence   — per day, from anomaly count, high-severity count
                         and fraud phase
    period_confidence  — per summary period, additionally scaled by data
                         quality and boosted by observation timespan

Both return a value in [0.1, 0.99]; 0.1 whenever there is nothing to be
confident about.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from fuel_anomaly.models import AnomalyRecord, Severity, TelemetryDay

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.99

# Plausible ranges per field, used to grade accuracy
VALIDATION_RANGES: dict[str, tuple[float, float]] = {
    "fuel_consumption": (0.0, 200.0),
    "rpm": (0.0, 200.0),
    "weather_bf": (0, 12),
    "speed_obs": (0.0, 30.0),
    "distance": (0.0, 800.0),
    "engine_power": (0.0, 100_000.0),
    "rpm_actual": (0.0, 200.0),
    "weather_actual": (0, 12),
    "fuel_flow_rate": (0.0, 10.0),
}


@dataclass(frozen=True)
class DataQuality:
    """Completeness and accuracy percentages (0–100)."""

    completeness: float = 100.0
    accuracy: float = 100.0

    @property
    def factor(self) -> float:
        return (self.completeness / 100) * (self.accuracy / 100)


def _clamp_confidence(value: float) -> float:
    return min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, value))


def _high_count(anomalies: list[AnomalyRecord]) -> int:
    return sum(1 for a in anomalies if a.severity is Severity.HIGH)


def daily_confidence(anomalies: list[AnomalyRecord], phase: int) -> float:
    """Confidence that a single day's anomalies reflect manipulation.

    0.3 base, +0.1 per anomaly (max +0.4), +0.15 per high-severity anomaly,
    +0.1 per phase beyond the first.
    """
    if not anomalies:
        return MIN_CONFIDENCE
    confidence = 0.3
    confidence += min(0.4, len(anomalies) * 0.1)
    confidence += _high_count(anomalies) * 0.15
    confidence += (phase - 1) * 0.1
    return _clamp_confidence(confidence)


def period_confidence(
    anomalies: list[AnomalyRecord],
    data_quality: Optional[DataQuality] = None,
    timespan_days: float = 0,
) -> float:
    """Confidence for a whole observation period.

    Args:
        anomalies: Every anomaly raised in the period.
        data_quality: Completeness/accuracy of the underlying data. Perfect
            data is assumed when omitted.
        timespan_days: Length of the period; up to +0.2 for 180+ days.

    Returns:
        Confidence in [0.1, 0.99].
    """
    if not anomalies:
        return MIN_CONFIDENCE
    quality = data_quality or DataQuality()

    confidence = min(0.6, len(anomalies) * 0.1)
    confidence += _high_count(anomalies) * 0.15
    if len(anomalies) > 5:
        confidence += 0.2  # consistent pattern
    confidence *= quality.factor
    confidence += min(0.2, max(0, timespan_days) / 180)
    return _clamp_confidence(confidence)


def assess_data_quality(days: list[TelemetryDay]) -> DataQuality:
    """Grade reported and sensor fields across a day sequence.

    completeness — % of fields present and finite
    accuracy     — % of present fields inside VALIDATION_RANGES
    """
    expected = 0
    present = 0
    in_range = 0
    for day in days:
        for source in (day.reported, day.sensor):
            for name, (low, high) in VALIDATION_RANGES.items():
                if not hasattr(source, name):
                    continue
                expected += 1
                value = getattr(source, name)
                if value is None or not math.isfinite(value):
                    continue
                present += 1
                if low <= value <= high:
                    in_range += 1

    if expected == 0:
        return DataQuality(completeness=0.0, accuracy=0.0)

    quality = DataQuality(
        completeness=present / expected * 100,
        accuracy=in_range / present * 100 if present else 0.0,
    )
    logger.debug(
        "Data quality: completeness %.1f%% | accuracy %.1f%%",
        quality.completeness,
        quality.accuracy,
    )
    return quality
