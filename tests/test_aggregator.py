"""
test_aggregator.py — Unit tests for day annotation, period summaries and
investigation priority.
"""

import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

# Ensure the package is importable from project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from fuel_anomaly.aggregator import (
    analysis_level_metrics,
    annotate_days,
    fleet_performance_ratios,
    select_investigation_priority,
    summarize_period,
)
from fuel_anomaly.confidence import DataQuality
from fuel_anomaly.data_generator import generate_telemetry
from fuel_anomaly.models import (
    AnomalyRecord,
    AnomalyType,
    CalculatedData,
    ReportedData,
    RiskLevel,
    SensorData,
    Severity,
    TelemetryDay,
)

END_DATE = date(2024, 6, 30)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _make_day(
    offset=0,
    reported_fuel=25.0,
    theoretical=25.0,
    reported_rpm=95.0,
    vessel_id="vessel_1",
    phase=1,
) -> TelemetryDay:
    return TelemetryDay(
        vessel_id=vessel_id,
        date=date(2024, 1, 1) + timedelta(days=offset),
        phase=phase,
        reported=ReportedData(
            fuel_consumption=reported_fuel,
            rpm=reported_rpm,
            weather_bf=3,
            speed_obs=12.8,
            distance=295.0,
        ),
        sensor=SensorData(
            engine_power=5000.0,
            rpm_actual=95.0,
            weather_actual=3,
            fuel_flow_rate=theoretical / 24,
        ),
        calculated=CalculatedData(
            theoretical_fuel=theoretical,
            sfoc_actual=194.25,
            fuel_variance_pct=(reported_fuel - theoretical) / theoretical * 100,
        ),
    )


def _make_annotated_day(offset, risk_score, cumulative, anomalies=()) -> TelemetryDay:
    """Day with a hand-set assessment, bypassing the detector."""
    day = _make_day(offset)
    day.anomalies.detected = list(anomalies)
    day.anomalies.risk_score = risk_score
    day.anomalies.cumulative_excess = cumulative
    return day


def _excess(value=30, severity=Severity.MEDIUM) -> AnomalyRecord:
    return AnomalyRecord(AnomalyType.EXCESS_CONSUMPTION, severity, value, f"{value}% excess fuel consumption")


@pytest.fixture(scope="module")
def annotated_days():
    days = generate_telemetry("vessel_1", "vessel_2", 6, seed=42, end_date=END_DATE)
    return annotate_days(days)


# ---------------------------------------------------------------------------
# Annotation
# ---------------------------------------------------------------------------

class TestAnnotateDays:
    """Per-day stages run in order and respect their bounds."""

    def test_risk_and_confidence_bounds(self, annotated_days):
        for day in annotated_days:
            assert 1.0 <= day.anomalies.risk_score <= 10.0
            assert 0.1 <= day.anomalies.confidence <= 0.99

    def test_cumulative_excess_non_decreasing(self, annotated_days):
        cumulative = [d.anomalies.cumulative_excess for d in annotated_days]
        assert all(b >= a for a, b in zip(cumulative, cumulative[1:]))
        assert cumulative[-1] == pytest.approx(sum(d.anomalies.daily_excess for d in annotated_days))

    def test_static_never_flagged_before_phase_three(self, annotated_days):
        for day in annotated_days:
            if day.phase < 3:
                assert AnomalyType.STATIC_CONSUMPTION not in {a.type for a in day.anomalies.detected}

    def test_phase_four_is_always_static(self, annotated_days):
        for day in annotated_days:
            if day.phase == 4:
                assert AnomalyType.STATIC_CONSUMPTION in {a.type for a in day.anomalies.detected}

    def test_risk_level_matches_score(self, annotated_days):
        for day in annotated_days:
            score = day.anomalies.risk_score
            assert day.anomalies.risk_level.upper >= score or day.anomalies.risk_level is RiskLevel.CRITICAL

    def test_correlations_filled(self, annotated_days):
        assert all(d.correlations is not None for d in annotated_days)

    def test_daily_excess_is_positive_part(self):
        days = annotate_days([_make_day(0, reported_fuel=20.0), _make_day(1, reported_fuel=28.0)])
        assert days[0].anomalies.daily_excess == 0.0
        assert days[1].anomalies.daily_excess == pytest.approx(3.0)
        assert days[1].anomalies.cumulative_excess == pytest.approx(3.0)

    def test_out_of_order_rejected(self):
        days = [_make_day(0, reported_fuel=40.0), _make_day(2), _make_day(1)]
        with pytest.raises(ValueError, match="out of order"):
            annotate_days(days)
        assert days[0].anomalies.detected == []
        assert days[0].anomalies.risk_score == 0.0
        assert days[0].anomalies.cumulative_excess == 0.0
        assert days[0].correlations is None

    def test_mixed_vessels_rejected(self):
        days = [_make_day(0, reported_fuel=40.0), _make_day(1, vessel_id="vessel_2")]
        with pytest.raises(ValueError, match="mixed vessels"):
            annotate_days(days)
        assert days[0].anomalies.detected == []
        assert days[0].correlations is None


# ---------------------------------------------------------------------------
# Investigation priority
# ---------------------------------------------------------------------------

class TestSelectInvestigationPriority:

    def test_immediate(self):
        assert select_investigation_priority(8.6, 0.92, 250).level == "IMMEDIATE"

    def test_low_confidence_falls_through(self):
        assert select_investigation_priority(8.6, 0.5, 250).level == "MONITOR"

    def test_thresholds_inclusive(self):
        assert select_investigation_priority(5.0, 0.6, 50).level == "SCHEDULED"

    def test_insufficient_excess_falls_through(self):
        assert select_investigation_priority(9.0, 0.95, 150).level == "URGENT"

    def test_nothing_qualifies_is_normal(self):
        assert select_investigation_priority(0.0, 0.0, 0.0).level == "NORMAL"


# ---------------------------------------------------------------------------
# Period summary
# ---------------------------------------------------------------------------

class TestSummarizePeriod:

    def _make_period(self):
        return [
            _make_annotated_day(0, 1.0, 0.0),
            _make_annotated_day(1, 1.0, 0.0),
            _make_annotated_day(2, 6.0, 10.0, [_excess(30)]),
            _make_annotated_day(
                3, 8.0, 30.0,
                [_excess(45, Severity.HIGH), AnomalyRecord(AnomalyType.RPM_INFLATION, Severity.MEDIUM, 15, "rpm")],
            ),
        ]

    def test_summary_fields(self):
        summary = summarize_period(self._make_period())
        assert summary.total_days == 4
        assert summary.anomalous_days == 2
        assert summary.anomaly_rate == 50
        assert summary.confidence == 50
        assert summary.avg_risk_score == pytest.approx(4.0)
        assert summary.overall_risk_level is RiskLevel.MEDIUM
        assert summary.total_excess_fuel == pytest.approx(30.0)
        assert summary.anomaly_types == {"excess_consumption": 2, "rpm_inflation": 1}
        assert summary.severity_breakdown == {"low": 0, "medium": 2, "high": 1}
        assert summary.date_range == ("2024-01-01", "2024-01-04")

    def test_priority_uses_detection_rate_as_confidence(self):
        assert summarize_period(self._make_period()).investigation_priority.level == "MONITOR"

    def test_detection_confidence_scaled_by_quality(self):
        perfect = summarize_period(self._make_period(), DataQuality())
        degraded = summarize_period(self._make_period(), DataQuality(completeness=50.0))
        assert 0.1 <= degraded.detection_confidence < perfect.detection_confidence <= 0.99

    def test_tier_follows_reported_rounding(self):
        """An 8.46 average is reported as 8.5 and selects the 8.5 tier."""
        scores = [8.5] * 9 + [8.1]
        days = [
            _make_annotated_day(i, score, 25.0 * (i + 1), [_excess(45, Severity.HIGH)] if i else [])
            for i, score in enumerate(scores)
        ]
        summary = summarize_period(days)
        assert summary.avg_risk_score == 8.5
        assert summary.confidence == 90
        assert summary.total_excess_fuel == 250.0
        assert summary.overall_risk_level is RiskLevel.HIGH
        assert summary.investigation_priority.level == "IMMEDIATE"

    def test_empty_period(self):
        summary = summarize_period([])
        assert summary.total_days == 0
        assert summary.avg_risk_score == 0.0
        assert summary.overall_risk_level is RiskLevel.LOW
        assert summary.investigation_priority.level == "NORMAL"
        assert summary.as_dict()["investigation_priority"] == "NORMAL"

    def test_generated_period_has_findings(self, annotated_days):
        summary = summarize_period(annotated_days)
        assert summary.total_days == len(annotated_days)
        assert summary.anomalous_days > 0
        assert summary.total_excess_fuel > 0
        assert 0 <= summary.avg_risk_score <= 10
        assert "static_consumption" in summary.anomaly_types


# ---------------------------------------------------------------------------
# Analysis levels & fleet ratios
# ---------------------------------------------------------------------------

class TestAnalysisLevelMetrics:

    def test_anomalies_grouped_by_level(self):
        days = [
            _make_annotated_day(
                0, 6.0, 0.0,
                [_excess(30), AnomalyRecord(AnomalyType.RPM_INFLATION, Severity.MEDIUM, 15, "rpm")],
            ),
            _make_annotated_day(1, 2.0, 0.0, [_excess(25)]),
            _make_annotated_day(2, 1.0, 0.0),
        ]
        metrics = analysis_level_metrics(days)
        assert set(metrics) == {"lf_vs_hf", "physics", "benchmark"}
        assert metrics["physics"]["issue_count"] == 2
        assert metrics["physics"]["affected_days"] == 2
        assert metrics["physics"]["risk_score"] == pytest.approx(4.0)
        assert metrics["lf_vs_hf"]["issue_count"] == 1
        assert metrics["benchmark"] == {
            "issue_count": 0, "risk_score": 0.0, "affected_days": 0, "top_issues": [],
        }

    def test_top_issues_distinct_and_capped(self):
        days = [_make_annotated_day(i, 3.0, 0.0, [_excess(21 + i)]) for i in range(5)]
        days.append(_make_annotated_day(5, 3.0, 0.0, [_excess(21)]))
        top = analysis_level_metrics(days)["physics"]["top_issues"]
        assert len(top) == 3
        assert len(set(top)) == 3


class TestFleetPerformanceRatios:

    def test_over_reporting_vessel_below_one(self):
        honest = [_make_day(i, reported_fuel=25.0) for i in range(3)]
        inflated = [_make_day(i, reported_fuel=50.0, vessel_id="vessel_2") for i in range(3)]
        ratios = fleet_performance_ratios({"vessel_1": honest, "vessel_2": inflated})
        # efficiencies 1.0 and 0.5, fleet mean 0.75
        assert ratios["vessel_1"] == pytest.approx(4 / 3)
        assert ratios["vessel_2"] == pytest.approx(2 / 3)

    def test_empty_fleet(self):
        assert fleet_performance_ratios({}) == {}
