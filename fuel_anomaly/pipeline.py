"""
pipeline.py — Per-Vessel and Fleet Analysis Orchestration.

For each vessel:
    generate → annotate (detect, score, confidence, excess) → summarise
             → contextual re-score → financial impact

Vessels are independent of each other; a vessel that fails is logged and
recorded in FleetAnalysis.failures while the rest of the fleet carries on.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

import numpy as np
import pandas as pd

from fuel_anomaly.aggregator import (
    PeriodSummary,
    all_anomalies,
    analysis_level_metrics,
    annotate_days,
    fleet_performance_ratios,
    summarize_period,
)
from fuel_anomaly.data_generator import build_registry, generate_telemetry, load_config
from fuel_anomaly.exceptions import InvalidParameterError
from fuel_anomaly.financial import (
    DEFAULT_FUEL_PRICE_PER_MT,
    DEFAULT_INVESTIGATION_COST,
    FinancialImpact,
    calculate_financial_impact,
)
from fuel_anomaly.models import TelemetryDay, Vessel
from fuel_anomaly.scorer import (
    ContextualRiskStrategy,
    DailyRiskStrategy,
    FleetBaseline,
    VesselHistory,
)
from fuel_anomaly.similarity import suggest_sister_vessels

logger = logging.getLogger(__name__)


@dataclass
class VesselAnalysis:
    vessel_id: str
    sister_vessel_id: Optional[str]
    days: list[TelemetryDay]
    summary: PeriodSummary
    contextual_risk_score: float
    level_metrics: dict[str, dict[str, Any]]
    financial_impact: FinancialImpact
    fleet_performance_ratio: Optional[float] = None


@dataclass
class FleetAnalysis:
    results: dict[str, VesselAnalysis] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)


def resolve_sister(vessel: Vessel, registry: dict[str, Vessel]) -> Optional[str]:
    """Configured sister vessel, else the most similar vessel in the registry."""
    if vessel.sister_vessel_id:
        return vessel.sister_vessel_id
    suggestions = suggest_sister_vessels(vessel, registry.values(), top_n=1)
    if not suggestions:
        logger.warning("No sister vessel available for %s", vessel.vessel_id)
        return None
    sister, score = suggestions[0]
    logger.info(
        "Using %s as sister vessel for %s (similarity %.2f)",
        sister.vessel_id,
        vessel.vessel_id,
        score,
    )
    return sister.vessel_id


def analyze_vessel(
    vessel_id: str,
    sister_vessel_id: Optional[str],
    months: int,
    *,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    registry: Optional[dict[str, Vessel]] = None,
    fuel_price: float = DEFAULT_FUEL_PRICE_PER_MT,
    investigation_cost: float = DEFAULT_INVESTIGATION_COST,
    history: Optional[VesselHistory] = None,
    fleet: Optional[FleetBaseline] = None,
    end_date: Optional[date] = None,
    gen_cfg: Optional[dict[str, Any]] = None,
    det_cfg: Optional[dict[str, Any]] = None,
    daily_strategy: Optional[DailyRiskStrategy] = None,
    contextual_strategy: Optional[ContextualRiskStrategy] = None,
) -> VesselAnalysis:
    """Run the full pipeline for one vessel.

    Raises:
        InvalidParameterError: On a non-positive window or unknown vessel id.
    """
    days = generate_telemetry(
        vessel_id,
        sister_vessel_id,
        months,
        rng=rng,
        seed=seed,
        end_date=end_date,
        registry=registry,
        gen_cfg=gen_cfg,
    )
    annotate_days(days, strategy=daily_strategy, det_cfg=det_cfg)
    summary = summarize_period(days)

    if history is None and registry is not None:
        history = VesselHistory(prior_issues=registry[vessel_id].prior_issues)
    contextual = contextual_strategy or ContextualRiskStrategy()
    contextual_score = contextual.score(all_anomalies(days), history=history, fleet=fleet)

    impact = calculate_financial_impact(
        summary.total_excess_fuel, fuel_price, investigation_cost
    )
    logger.info(
        "%s analysed — daily avg %.1f | contextual %.1f | impact %.0f",
        vessel_id,
        summary.avg_risk_score,
        contextual_score,
        impact.total_impact,
    )
    return VesselAnalysis(
        vessel_id=vessel_id,
        sister_vessel_id=sister_vessel_id,
        days=days,
        summary=summary,
        contextual_risk_score=round(contextual_score, 2),
        level_metrics=analysis_level_metrics(days),
        financial_impact=impact,
    )


def generate_fleet_telemetry(
    cfg: dict[str, Any],
    months: Optional[int] = None,
    seed: Optional[int] = None,
    end_date: Optional[date] = None,
) -> dict[str, list[TelemetryDay]]:
    """Generate raw (unannotated) telemetry for every vessel in the registry."""
    gen_cfg = cfg.get("generation", {})
    registry = build_registry(cfg)
    months = months if months is not None else gen_cfg.get("months", 6)
    base_seed = seed if seed is not None else gen_cfg.get("seed", 42)

    fleet_days = {}
    for index, vessel in enumerate(registry.values()):
        try:
            fleet_days[vessel.vessel_id] = generate_telemetry(
                vessel.vessel_id,
                resolve_sister(vessel, registry),
                months,
                seed=base_seed + index,
                end_date=end_date,
                registry=registry,
                gen_cfg=gen_cfg.get("baseline"),
            )
        except InvalidParameterError as exc:
            logger.error("Skipping vessel %s: %s", vessel.vessel_id, exc)
    return fleet_days


def analyze_fleet(
    config_path: str = "config.yaml",
    months: Optional[int] = None,
    seed: Optional[int] = None,
    end_date: Optional[date] = None,
) -> FleetAnalysis:
    """Analyse every vessel in the configured fleet.

    Each vessel gets seed `base_seed + position in registry`, so results are
    reproducible for a fixed config. Once all vessels are done, contextual
    scores are recomputed with each vessel's fleet performance ratio.

    Args:
        config_path: Path to configuration YAML.
        months: Window override; `generation.months` otherwise.
        seed: Base seed override; `generation.seed` otherwise.
        end_date: Last day of the window. Defaults to today.

    Returns:
        FleetAnalysis with per-vessel results and per-vessel failures.
    """
    cfg = load_config(config_path)
    registry = build_registry(cfg)
    gen_cfg = cfg.get("generation", {})
    scoring_cfg = cfg.get("scoring", {})
    fin_cfg = cfg.get("financial", {})

    months = months if months is not None else gen_cfg.get("months", 6)
    base_seed = seed if seed is not None else gen_cfg.get("seed", 42)
    daily_strategy = DailyRiskStrategy(**scoring_cfg.get("daily", {}))
    contextual_strategy = ContextualRiskStrategy(**scoring_cfg.get("contextual", {}))

    logger.info(
        "Analysing fleet of %d vessels over %d months (seed=%d)",
        len(registry),
        months,
        base_seed,
    )

    analysis = FleetAnalysis()
    for index, vessel in enumerate(registry.values()):
        try:
            analysis.results[vessel.vessel_id] = analyze_vessel(
                vessel.vessel_id,
                resolve_sister(vessel, registry),
                months,
                seed=base_seed + index,
                registry=registry,
                fuel_price=fin_cfg.get("fuel_price_per_mt", DEFAULT_FUEL_PRICE_PER_MT),
                investigation_cost=fin_cfg.get("investigation_cost", DEFAULT_INVESTIGATION_COST),
                end_date=end_date,
                gen_cfg=gen_cfg.get("baseline"),
                det_cfg=cfg.get("detection"),
                daily_strategy=daily_strategy,
                contextual_strategy=contextual_strategy,
            )
        except InvalidParameterError as exc:
            logger.error("Skipping vessel %s: %s", vessel.vessel_id, exc)
            analysis.failures[vessel.vessel_id] = str(exc)
        except Exception as exc:
            logger.error("Analysis failed for vessel %s: %s", vessel.vessel_id, exc, exc_info=True)
            analysis.failures[vessel.vessel_id] = str(exc)

    ratios = fleet_performance_ratios(
        {vid: result.days for vid, result in analysis.results.items()}
    )
    for vessel_id, result in analysis.results.items():
        ratio = ratios.get(vessel_id)
        if ratio is None:
            continue
        result.fleet_performance_ratio = round(ratio, 3)
        result.contextual_risk_score = round(
            contextual_strategy.score(
                all_anomalies(result.days),
                history=VesselHistory(prior_issues=registry[vessel_id].prior_issues),
                fleet=FleetBaseline(performance_ratio=ratio),
            ),
            2,
        )

    logger.info(
        "Fleet analysis complete — %d analysed | %d failed",
        len(analysis.results),
        len(analysis.failures),
    )
    return analysis


def fleet_summary_frame(analysis: FleetAnalysis) -> pd.DataFrame:
    """One row per analysed vessel, highest average risk first."""
    rows = []
    for vessel_id, result in analysis.results.items():
        summary = result.summary
        rows.append(
            {
                "vessel_id": vessel_id,
                "sister_vessel_id": result.sister_vessel_id,
                "total_days": summary.total_days,
                "anomalous_days": summary.anomalous_days,
                "anomaly_rate": summary.anomaly_rate,
                "total_excess_fuel": summary.total_excess_fuel,
                "avg_risk_score": summary.avg_risk_score,
                "overall_risk_level": summary.overall_risk_level.label,
                "confidence": summary.confidence,
                "detection_confidence": summary.detection_confidence,
                "investigation_priority": summary.investigation_priority.level,
                "contextual_risk_score": result.contextual_risk_score,
                "fleet_performance_ratio": result.fleet_performance_ratio,
                "total_impact": round(result.financial_impact.total_impact, 2),
            }
        )
    if not rows:
        return pd.DataFrame()
    return (
        pd.DataFrame(rows)
        .sort_values("avg_risk_score", ascending=False)
        .reset_index(drop=True)
    )
