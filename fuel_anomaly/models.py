"""
models.py — Domain types and reference tables for fuel anomaly analysis.

A TelemetryDay holds four independent views of one vessel-day of fuel use:
    reported    — crew logbook figures (low-frequency, LF)
    sensor      — engine sensor figures (high-frequency, HF)
    calculated  — physics-derived theoretical consumption
    sister      — a comparable vessel's consumption on the same day

The detector, scorer and confidence estimator fill in `anomalies` and
`correlations` in that order; once a day has been aggregated nobody writes
to it again.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional


class AnomalyType(Enum):
    """Closed set of anomaly tags a detection rule can emit."""

    EXCESS_CONSUMPTION = "excess_consumption"
    RPM_INFLATION = "rpm_inflation"
    WEATHER_MISREPORT = "weather_misreport"
    STATIC_CONSUMPTION = "static_consumption"
    POWER_MISMATCH = "power_mismatch"
    CORRELATION_BREAK = "correlation_break"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class Severity(Enum):
    """Severity tier of a single anomaly.

    `points` feed the per-day scorer, `multiplier` the contextual scorer.
    """

    LOW = ("low", 1, 1)
    MEDIUM = ("medium", 2, 2)
    HIGH = ("high", 3, 3)

    def __init__(self, tag: str, points: int, multiplier: int):
        self.tag = tag
        self.points = points
        self.multiplier = multiplier

    def __str__(self) -> str:
        return self.tag


class RiskLevel(Enum):
    """Risk classification bound to an upper score limit and display colour."""

    LOW = ("low", "Normal", 2.0, 3.0, "#10b981")
    MEDIUM = ("medium", "Monitor", 5.0, 6.0, "#f59e0b")
    HIGH = ("high", "Investigate", 8.0, 8.5, "#ef4444")
    CRITICAL = ("critical", "Critical", 9.5, 10.0, "#dc2626")

    def __init__(self, level: str, label: str, score: float, upper: float, color: str):
        self.level = level
        self.label = label
        self.score = score
        self.upper = upper
        self.color = color


class AnalysisLevel(Enum):
    """The three reconciliation layers an anomaly belongs to."""

    LF_VS_HF = "lf_vs_hf"
    PHYSICS_CHECK = "physics"
    FLEET_BENCHMARK = "benchmark"


ANALYSIS_LEVEL_TYPES: dict[AnalysisLevel, frozenset[AnomalyType]] = {
    AnalysisLevel.LF_VS_HF: frozenset(
        {AnomalyType.RPM_INFLATION, AnomalyType.WEATHER_MISREPORT}
    ),
    AnalysisLevel.PHYSICS_CHECK: frozenset(
        {
            AnomalyType.EXCESS_CONSUMPTION,
            AnomalyType.STATIC_CONSUMPTION,
            AnomalyType.CORRELATION_BREAK,
        }
    ),
    AnalysisLevel.FLEET_BENCHMARK: frozenset({AnomalyType.POWER_MISMATCH}),
}


# ---------------------------------------------------------------------------
# Vessel reference data
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Vessel:
    """Static registry entry for one vessel."""

    vessel_id: str
    name: str
    vessel_class: Optional[str] = None
    last_dry_dock: Optional[date] = None
    routes: tuple[str, ...] = ()
    age: Optional[float] = None
    engine_type: Optional[str] = None
    sister_vessel_id: Optional[str] = None
    prior_issues: int = 0


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------

@dataclass
class ReportedData:
    fuel_consumption: float
    rpm: float
    weather_bf: Optional[int]
    speed_obs: float
    distance: float


@dataclass
class SensorData:
    engine_power: float
    rpm_actual: float
    weather_actual: Optional[int]
    fuel_flow_rate: float


@dataclass(frozen=True)
class CalculatedData:
    theoretical_fuel: float
    sfoc_actual: float
    fuel_variance_pct: Optional[float]


@dataclass
class SisterData:
    vessel_id: str
    fuel_consumption: Optional[float]
    speed: float
    weather_normalized_fuel: Optional[float]


@dataclass(frozen=True)
class AnomalyRecord:
    type: AnomalyType
    severity: Severity
    value: float
    description: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.tag,
            "value": self.value,
            "description": self.description,
        }


@dataclass
class AnomalyAssessment:
    """Per-day detection output. Empty until the day has been annotated."""

    detected: list[AnomalyRecord] = field(default_factory=list)
    risk_score: float = 0.0
    risk_level: RiskLevel = RiskLevel.LOW
    daily_excess: float = 0.0
    cumulative_excess: float = 0.0
    confidence: float = 0.1


@dataclass
class Correlations:
    fuel_vs_power: float
    reported_vs_actual_rpm: float
    weather_accuracy: float


@dataclass
class TelemetryDay:
    vessel_id: str
    date: date
    phase: int
    reported: ReportedData
    sensor: SensorData
    calculated: CalculatedData
    sister: Optional[SisterData] = None
    anomalies: AnomalyAssessment = field(default_factory=AnomalyAssessment)
    correlations: Optional[Correlations] = None


# ---------------------------------------------------------------------------
# Investigation priority matrix
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InvestigationTier:
    level: str
    risk_score: float
    confidence: float
    excess_fuel: float
    description: str


INVESTIGATION_TIERS: tuple[InvestigationTier, ...] = (
    InvestigationTier(
        "IMMEDIATE", 8.5, 0.9, 200,
        "Immediate investigation required - high probability fraud",
    ),
    InvestigationTier(
        "URGENT", 7.0, 0.8, 100,
        "Urgent investigation - likely anomalies detected",
    ),
    InvestigationTier(
        "SCHEDULED", 5.0, 0.6, 50,
        "Schedule investigation - patterns warrant review",
    ),
    InvestigationTier(
        "MONITOR", 3.0, 0.4, 25,
        "Continue monitoring - minor concerns identified",
    ),
    InvestigationTier(
        "NORMAL", 1.0, 0.2, 10,
        "Normal operations - no significant anomalies",
    ),
)

NORMAL_TIER = INVESTIGATION_TIERS[-1]


# ---------------------------------------------------------------------------
# Fraud pattern templates (reference only)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FraudPhase:
    phase: int
    duration: str
    description: str
    indicators: tuple[str, ...] = ()


@dataclass(frozen=True)
class FraudPattern:
    key: str
    name: str
    description: str
    phases: tuple[FraudPhase, ...]
    total_excess_mt: float
    detection_confidence: float


FRAUD_PATTERNS: dict[str, FraudPattern] = {
    "static_consumption_with_inflation": FraudPattern(
        key="static_consumption_with_inflation",
        name="Static Consumption with Parameter Inflation",
        description=(
            "Fuel consumption remains artificially flat while RPM, weather, "
            "and power are over-reported"
        ),
        phases=(
            FraudPhase(1, "2 months", "Normal operations - baseline establishment"),
            FraudPhase(
                2, "1 month",
                "Early manipulation - slight over-reporting begins",
                ("minor_rpm_inflation", "weather_exaggeration"),
            ),
            FraudPhase(
                3, "2 months",
                "Clear manipulation - static consumption pattern emerges",
                ("static_fuel", "rpm_inflation", "weather_misreport"),
            ),
            FraudPhase(
                4, "1+ months",
                "Severe manipulation - multiple schemes active",
                (
                    "static_fuel", "high_rpm_inflation",
                    "systematic_misreport", "physical_concealment",
                ),
            ),
        ),
        total_excess_mt=500,
        detection_confidence=0.94,
    ),
    "gradual_skimming": FraudPattern(
        key="gradual_skimming",
        name="Gradual Fuel Skimming",
        description=(
            "Small but consistent over-reporting without obvious pattern breaks"
        ),
        phases=(
            FraudPhase(1, "1 month", "Baseline establishment"),
            FraudPhase(
                2, "5+ months",
                "Consistent small over-reporting",
                ("minor_excess", "gradual_increase"),
            ),
        ),
        total_excess_mt=150,
        detection_confidence=0.75,
    ),
}
