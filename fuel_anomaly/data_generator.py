"""
data_generator.py — Synthetic Vessel Telemetry Generator.

Generates one TelemetryDay per calendar day for a vessel over an observation
window, with a four-phase fuel-fraud timeline injected so the detection
engine can be validated against a known signature:

    Phase 1 (first third)   — normal operation, accurate reporting
    Phase 2 (33%–50%)       — weather and RPM start being over-reported
    Phase 3 (50%–83%)       — reported fuel goes static around 28.5 MT/day
    Phase 4 (final 17%)     — reported fuel pinned around 32 MT/day

All randomness comes from an injected NumPy Generator, so the same seed
always produces the same sequence.
"""

import logging
import math
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

import numpy as np
import pandas as pd
import yaml

from fuel_anomaly.exceptions import InvalidParameterError
from fuel_anomaly.models import (
    FRAUD_PATTERNS,
    CalculatedData,
    ReportedData,
    SensorData,
    SisterData,
    TelemetryDay,
    Vessel,
)

logger = logging.getLogger(__name__)

SFOC_DEGRADATION = 1.05  # service SFOC vs shop-test reference conditions

INJECTED_PATTERN = FRAUD_PATTERNS["static_consumption_with_inflation"]

DEFAULT_GENERATION_CONFIG: dict[str, Any] = {
    "sfoc_base": 185.0,
    "normal_fuel_consumption": 28.5,
    "severe_fuel_consumption": 32.0,
    "normal_rpm": 95.0,
    "normal_speed": 12.8,
    "normal_distance": 295.0,
    "sister_speed": 13.1,
    "sister_efficiency": 0.92,
    "weather_penalty_per_bf": 0.5,
    "rpm_inflation_per_phase": 0.05,
    "weather_misreport_per_phase": 0.2,
}


def load_config(config_path: str = "config.yaml") -> dict[str, Any]:
    """Load YAML configuration file.

    Args:
        config_path: Path to config.yaml relative to project root.

    Returns:
        Parsed configuration dictionary.

    Raises:
        FileNotFoundError: If config file does not exist.
        yaml.YAMLError: If config file is malformed.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    with open(config_path, "r") as fh:
        config = yaml.safe_load(fh)
    logger.debug("Configuration loaded from %s", config_path)
    return config


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value), "%Y-%m-%d").date()


def build_registry(cfg: dict[str, Any]) -> dict[str, Vessel]:
    """Build the static fleet registry from the `fleet.vessels` config section.

    Args:
        cfg: Full configuration dictionary.

    Returns:
        Mapping of vessel id to Vessel.

    Raises:
        InvalidParameterError: If a vessel entry has no id or an id repeats.
    """
    registry: dict[str, Vessel] = {}
    for entry in cfg.get("fleet", {}).get("vessels", []):
        vessel_id = entry.get("id")
        if not vessel_id:
            raise InvalidParameterError(f"Fleet entry without an id: {entry}")
        if vessel_id in registry:
            raise InvalidParameterError(f"Duplicate vessel id in fleet: {vessel_id}")
        registry[vessel_id] = Vessel(
            vessel_id=vessel_id,
            name=entry.get("name", vessel_id),
            vessel_class=entry.get("class"),
            last_dry_dock=_parse_date(entry.get("last_dry_dock")),
            routes=tuple(entry.get("routes", ())),
            age=entry.get("age"),
            engine_type=entry.get("engine_type"),
            sister_vessel_id=entry.get("sister_vessel_id"),
            prior_issues=int(entry.get("prior_issues", 0)),
        )
    logger.info("Fleet registry built with %d vessels", len(registry))
    return registry


def phase_for_fraction(fraction: float) -> int:
    """Map the elapsed fraction of the observation window to a fraud phase."""
    if fraction < 0.33:
        return 1
    elif fraction < 0.5:
        return 2
    elif fraction < 0.83:
        return 3
    else:
        return 4


def calculate_theoretical_fuel(engine_power_kw: float, sfoc_base: float) -> float:
    """Daily fuel (MT) implied by engine power at a degraded SFOC.

    fuel = power(kW) × 24h × SFOC(g/kWh) × 1.05 / 1,000,000
    """
    return engine_power_kw * 24 * sfoc_base * SFOC_DEGRADATION / 1_000_000


def _reported_weather(
    actual: int,
    phase: int,
    rng: np.random.Generator,
    misreport_per_phase: float,
) -> int:
    """Crew report good weather as worse to justify extra consumption."""
    if phase <= 1:
        return actual
    if actual <= 4 and rng.random() < phase * misreport_per_phase:
        return min(8, actual + int(rng.integers(1, 4)))
    return actual


def _reported_rpm(actual: float, phase: int, inflation_per_phase: float) -> float:
    if phase <= 1:
        return actual
    return actual * (1 + (phase - 1) * inflation_per_phase)


def _reported_fuel(
    theoretical: float,
    phase: int,
    rng: np.random.Generator,
    gen_cfg: dict[str, Any],
) -> float:
    if phase <= 1:
        return theoretical + float(rng.uniform(-2, 2))
    if phase == 2:
        return theoretical + float(rng.uniform(1, 4))
    if phase == 3:
        # Static around the normal figure, regardless of engine load
        return gen_cfg["normal_fuel_consumption"] + float(rng.uniform(-2, 2))
    return gen_cfg["severe_fuel_consumption"] + float(rng.uniform(-1.5, 1.5))


def _sister_data(
    sister_vessel_id: str,
    theoretical: float,
    weather: int,
    rng: np.random.Generator,
    gen_cfg: dict[str, Any],
) -> SisterData:
    fuel = theoretical * gen_cfg["sister_efficiency"] + float(rng.uniform(-1, 1))
    penalty = max(0, weather - 4) * gen_cfg["weather_penalty_per_bf"]
    return SisterData(
        vessel_id=sister_vessel_id,
        fuel_consumption=fuel,
        speed=gen_cfg["sister_speed"] + float(rng.uniform(-0.75, 0.75)),
        weather_normalized_fuel=fuel + penalty,
    )


def _validate_request(
    vessel_id: str,
    sister_vessel_id: Optional[str],
    months: Any,
    registry: Optional[dict[str, Vessel]],
) -> None:
    if isinstance(months, bool) or not isinstance(months, (int, np.integer)):
        raise InvalidParameterError(f"Window length must be an integer, got {months!r}")
    if months <= 0:
        raise InvalidParameterError(f"Window length must be > 0 months, got {months}")
    if not vessel_id:
        raise InvalidParameterError("Vessel id is required")
    if registry is not None:
        if vessel_id not in registry:
            raise InvalidParameterError(f"Unknown vessel id: {vessel_id}")
        if sister_vessel_id is not None and sister_vessel_id not in registry:
            raise InvalidParameterError(f"Unknown sister vessel id: {sister_vessel_id}")
    if sister_vessel_id is not None and sister_vessel_id == vessel_id:
        raise InvalidParameterError(f"Vessel {vessel_id} cannot be its own sister vessel")


def generate_telemetry(
    vessel_id: str,
    sister_vessel_id: Optional[str],
    months: int,
    *,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None,
    end_date: Optional[date] = None,
    registry: Optional[dict[str, Vessel]] = None,
    gen_cfg: Optional[dict[str, Any]] = None,
) -> list[TelemetryDay]:
    """Generate one raw TelemetryDay per calendar day in the window.

    The window runs from `end_date` back `months` calendar months, inclusive
    at both ends. Days are returned in date order with an empty anomaly
    assessment; aggregator.annotate_days() fills it in.

    Args:
        vessel_id: Vessel to simulate.
        sister_vessel_id: Comparison vessel, or None when there is none. With
            no sister, days carry `sister=None` and the sister-vessel rule is
            skipped downstream.
        months: Observation window length, integer > 0.
        rng: Injected random source. Takes precedence over `seed`.
        seed: Seed for a fresh `np.random.default_rng` when `rng` is None.
        end_date: Last day of the window. Defaults to today.
        registry: Fleet registry used to validate both ids, when given.
        gen_cfg: Overrides for DEFAULT_GENERATION_CONFIG.

    Returns:
        Ordered list of TelemetryDay.

    Raises:
        InvalidParameterError: On a non-positive window or unknown vessel id.
    """
    _validate_request(vessel_id, sister_vessel_id, months, registry)

    cfg = {**DEFAULT_GENERATION_CONFIG, **(gen_cfg or {})}
    if rng is None:
        rng = np.random.default_rng(seed)

    end = pd.Timestamp(end_date or date.today()).normalize()
    start = end - pd.DateOffset(months=int(months))
    dates = pd.date_range(start, end, freq="D")
    total_days = len(dates)

    days: list[TelemetryDay] = []
    for day_index, current in enumerate(dates):
        phase = phase_for_fraction(day_index / total_days)

        actual_weather = int(rng.integers(1, 9))  # Beaufort 1-8
        reported_weather = _reported_weather(
            actual_weather, phase, rng, cfg["weather_misreport_per_phase"]
        )

        engine_power = (
            3800 + float(rng.uniform(0, 2400)) + math.sin(day_index * 0.1) * 600
        )
        theoretical = calculate_theoretical_fuel(engine_power, cfg["sfoc_base"])

        actual_rpm = cfg["normal_rpm"] + float(rng.uniform(-7.5, 7.5))
        reported_rpm = _reported_rpm(actual_rpm, phase, cfg["rpm_inflation_per_phase"])
        reported_fuel = _reported_fuel(theoretical, phase, rng, cfg)

        sister = None
        if sister_vessel_id is not None:
            sister = _sister_data(sister_vessel_id, theoretical, actual_weather, rng, cfg)

        days.append(
            TelemetryDay(
                vessel_id=vessel_id,
                date=current.date(),
                phase=phase,
                reported=ReportedData(
                    fuel_consumption=reported_fuel,
                    rpm=reported_rpm,
                    weather_bf=reported_weather,
                    speed_obs=cfg["normal_speed"] + float(rng.uniform(-1, 1)),
                    distance=cfg["normal_distance"] + float(rng.uniform(-10, 10)),
                ),
                sensor=SensorData(
                    engine_power=engine_power,
                    rpm_actual=actual_rpm,
                    weather_actual=actual_weather,
                    fuel_flow_rate=theoretical / 24,
                ),
                calculated=CalculatedData(
                    theoretical_fuel=theoretical,
                    sfoc_actual=theoretical * 1_000_000 / (engine_power * 24),
                    fuel_variance_pct=(reported_fuel - theoretical) / theoretical * 100,
                ),
                sister=sister,
            )
        )

    logger.info(
        "Generated %d telemetry days for %s (sister=%s, pattern=%s, %s → %s)",
        total_days,
        vessel_id,
        sister_vessel_id or "none",
        INJECTED_PATTERN.key,
        dates[0].date(),
        dates[-1].date(),
    )
    return days


def telemetry_to_frame(days: list[TelemetryDay]) -> pd.DataFrame:
    """Flatten a day sequence into one DataFrame row per day.

    Anomaly types are joined with '|' so one column holds every tag raised
    on the day.

    Args:
        days: Annotated or raw TelemetryDay list.

    Returns:
        DataFrame with reported (lf_*), sensor (hf_*), calculated, sister and
        assessment columns. Empty input gives an empty DataFrame.
    """
    records = []
    for day in days:
        assessment = day.anomalies
        sister = day.sister
        corr = day.correlations
        records.append(
            {
                "vessel_id": day.vessel_id,
                "date": day.date,
                "phase": day.phase,
                "lf_fuel_consumption": round(day.reported.fuel_consumption, 1),
                "lf_rpm": round(day.reported.rpm),
                "lf_weather_bf": day.reported.weather_bf,
                "lf_speed_obs": round(day.reported.speed_obs, 2),
                "lf_distance": round(day.reported.distance, 1),
                "hf_engine_power": round(day.sensor.engine_power),
                "hf_rpm_actual": round(day.sensor.rpm_actual, 1),
                "hf_weather_actual": day.sensor.weather_actual,
                "hf_fuel_flow_rate": round(day.sensor.fuel_flow_rate, 2),
                "theoretical_fuel": round(day.calculated.theoretical_fuel, 1),
                "sfoc_actual": round(day.calculated.sfoc_actual, 2),
                "fuel_variance_pct": (
                    round(day.calculated.fuel_variance_pct, 1)
                    if day.calculated.fuel_variance_pct is not None
                    else np.nan
                ),
                "sister_vessel_id": sister.vessel_id if sister else None,
                "sister_fuel_consumption": (
                    round(sister.fuel_consumption, 1)
                    if sister and sister.fuel_consumption is not None
                    else np.nan
                ),
                "sister_weather_normalized_fuel": (
                    round(sister.weather_normalized_fuel, 1)
                    if sister and sister.weather_normalized_fuel is not None
                    else np.nan
                ),
                "anomaly_count": len(assessment.detected),
                "anomaly_types": "|".join(a.type.value for a in assessment.detected),
                "risk_score": round(assessment.risk_score, 2),
                "risk_level": assessment.risk_level.label,
                "daily_excess": round(assessment.daily_excess, 1),
                "cumulative_excess": round(assessment.cumulative_excess, 1),
                "confidence": round(assessment.confidence, 2),
                "corr_fuel_vs_power": round(corr.fuel_vs_power, 3) if corr else np.nan,
                "corr_rpm": round(corr.reported_vs_actual_rpm, 3) if corr else np.nan,
                "corr_weather": corr.weather_accuracy if corr else np.nan,
            }
        )
    return pd.DataFrame(records)
