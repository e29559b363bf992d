"""
test_pipeline.py — Integration tests for per-vessel and fleet analysis.
"""

import sys
from datetime import date
from pathlib import Path

import pytest
import yaml

# Ensure the package is importable from project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from fuel_anomaly.data_generator import build_registry, load_config
from fuel_anomaly.exceptions import InvalidParameterError
from fuel_anomaly.pipeline import (
    analyze_fleet,
    analyze_vessel,
    fleet_summary_frame,
    generate_fleet_telemetry,
    resolve_sister,
)
from fuel_anomaly.scorer import VesselHistory

CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"
END_DATE = date(2024, 6, 30)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _make_config_file(tmp_path: Path) -> Path:
    cfg = load_config(str(CONFIG_PATH))
    cfg["generation"]["months"] = 2
    cfg["fleet"]["vessels"].append(
        {
            "id": "vessel_bad",
            "name": "MV Phantom",
            "class": "Panamax Bulk Carrier",
            "sister_vessel_id": "ghost",
        }
    )
    path = tmp_path / "config.yaml"
    with open(path, "w") as fh:
        yaml.safe_dump(cfg, fh)
    return path


@pytest.fixture(scope="module")
def registry():
    return build_registry(load_config(str(CONFIG_PATH)))


# ---------------------------------------------------------------------------
# Sister resolution
# ---------------------------------------------------------------------------

class TestResolveSister:

    def test_configured_sister_wins(self, registry):
        assert resolve_sister(registry["vessel_1"], registry) == "vessel_2"

    def test_falls_back_to_most_similar(self, registry):
        assert resolve_sister(registry["vessel_3"], registry) in {"vessel_1", "vessel_2"}


# ---------------------------------------------------------------------------
# Single vessel
# ---------------------------------------------------------------------------

class TestAnalyzeVessel:

    def test_full_result(self, registry):
        result = analyze_vessel(
            "vessel_1", "vessel_2", 6, seed=42, registry=registry, end_date=END_DATE
        )
        assert result.summary.total_days == len(result.days) == 184
        assert 0 <= result.contextual_risk_score <= 10
        assert set(result.level_metrics) == {"lf_vs_hf", "physics", "benchmark"}
        assert result.financial_impact.direct_cost == pytest.approx(
            result.summary.total_excess_fuel * 600
        )

    def test_reproducible(self):
        a = analyze_vessel("vessel_1", None, 2, seed=5, end_date=END_DATE)
        b = analyze_vessel("vessel_1", None, 2, seed=5, end_date=END_DATE)
        assert a.summary.as_dict() == b.summary.as_dict()
        assert a.contextual_risk_score == b.contextual_risk_score

    def test_no_sister_skips_benchmark_level(self):
        result = analyze_vessel("vessel_3", None, 2, seed=5, end_date=END_DATE)
        assert result.sister_vessel_id is None
        assert result.level_metrics["benchmark"]["issue_count"] == 0

    def test_history_raises_contextual_score(self):
        base = analyze_vessel("vessel_1", None, 2, seed=5, end_date=END_DATE)
        flagged = analyze_vessel(
            "vessel_1", None, 2, seed=5, end_date=END_DATE,
            history=VesselHistory(prior_issues=3),
        )
        assert flagged.contextual_risk_score >= base.contextual_risk_score

    def test_invalid_window(self):
        with pytest.raises(InvalidParameterError):
            analyze_vessel("vessel_1", None, 0, seed=1)


# ---------------------------------------------------------------------------
# Fleet
# ---------------------------------------------------------------------------

class TestAnalyzeFleet:

    def test_failing_vessel_isolated(self, tmp_path):
        analysis = analyze_fleet(str(_make_config_file(tmp_path)), end_date=END_DATE)
        assert set(analysis.results) == {"vessel_1", "vessel_2", "vessel_3"}
        assert set(analysis.failures) == {"vessel_bad"}
        assert "ghost" in analysis.failures["vessel_bad"]

    def test_fleet_ratios_attached(self):
        analysis = analyze_fleet(str(CONFIG_PATH), months=2, end_date=END_DATE)
        ratios = [r.fleet_performance_ratio for r in analysis.results.values()]
        assert all(ratio is not None and ratio > 0 for ratio in ratios)
        assert sum(ratios) / len(ratios) == pytest.approx(1.0, abs=0.01)

    def test_summary_frame_sorted_by_risk(self):
        analysis = analyze_fleet(str(CONFIG_PATH), months=2, end_date=END_DATE)
        frame = fleet_summary_frame(analysis)
        assert len(frame) == 3
        assert frame["avg_risk_score"].is_monotonic_decreasing

    def test_missing_config(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            analyze_fleet(str(tmp_path / "missing.yaml"))


class TestGenerateFleetTelemetry:

    def test_every_valid_vessel_generated(self, tmp_path):
        cfg = load_config(str(_make_config_file(tmp_path)))
        fleet_days = generate_fleet_telemetry(cfg, months=1, end_date=END_DATE)
        assert set(fleet_days) == {"vessel_1", "vessel_2", "vessel_3"}
        assert all(days[-1].date == END_DATE for days in fleet_days.values())
