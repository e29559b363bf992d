"""
similarity.py — Sister-Vessel Similarity Scoring.

Scores how good a benchmark one vessel is for another:

    vessel class match            0.30
    dry-dock within 6 months      0.25 × (1 − months / 6)
    route overlap (Jaccard)       0.20 × |A ∩ B| / |A ∪ B|
    age within 5 years            0.15 × (1 − Δage / 5)
    engine type match             0.10

A factor whose data is missing on either side contributes nothing. When
neither vessel has any comparable attribute the score is None (not
evaluated) rather than 0.
"""

import logging
from typing import Iterable, Optional

from fuel_anomaly.models import Vessel

logger = logging.getLogger(__name__)

SIMILARITY_WEIGHTS = {
    "vessel_class": 0.30,
    "dry_dock": 0.25,
    "routes": 0.20,
    "age": 0.15,
    "engine_type": 0.10,
}

DRY_DOCK_WINDOW_MONTHS = 6
AGE_WINDOW_YEARS = 5
DAYS_PER_MONTH = 30


def route_overlap(routes_a: Iterable[str], routes_b: Iterable[str]) -> float:
    a, b = set(routes_a or ()), set(routes_b or ())
    union = a | b
    return len(a & b) / len(union) if union else 0.0


def _has_comparable_data(a: Vessel, b: Vessel) -> bool:
    return any(
        [
            a.vessel_class is not None and b.vessel_class is not None,
            a.last_dry_dock is not None and b.last_dry_dock is not None,
            bool(a.routes) and bool(b.routes),
            a.age is not None and b.age is not None,
            a.engine_type is not None and b.engine_type is not None,
        ]
    )


def vessel_similarity(a: Optional[Vessel], b: Optional[Vessel]) -> Optional[float]:
    """Weighted similarity of two vessels in [0, 1], or None if not comparable."""
    if a is None or b is None or not _has_comparable_data(a, b):
        logger.debug(
            "Similarity not evaluated for %s / %s",
            getattr(a, "vessel_id", None),
            getattr(b, "vessel_id", None),
        )
        return None

    score = 0.0
    if a.vessel_class is not None and a.vessel_class == b.vessel_class:
        score += SIMILARITY_WEIGHTS["vessel_class"]

    if a.last_dry_dock is not None and b.last_dry_dock is not None:
        months_apart = abs((a.last_dry_dock - b.last_dry_dock).days) / DAYS_PER_MONTH
        if months_apart <= DRY_DOCK_WINDOW_MONTHS:
            score += SIMILARITY_WEIGHTS["dry_dock"] * (1 - months_apart / DRY_DOCK_WINDOW_MONTHS)

    score += SIMILARITY_WEIGHTS["routes"] * route_overlap(a.routes, b.routes)

    if a.age is not None and b.age is not None:
        age_diff = abs(a.age - b.age)
        if age_diff <= AGE_WINDOW_YEARS:
            score += SIMILARITY_WEIGHTS["age"] * (1 - age_diff / AGE_WINDOW_YEARS)

    if a.engine_type is not None and a.engine_type == b.engine_type:
        score += SIMILARITY_WEIGHTS["engine_type"]

    return min(1.0, max(0.0, score))


def suggest_sister_vessels(
    vessel: Vessel,
    candidates: Iterable[Vessel],
    top_n: int = 3,
    min_similarity: float = 0.0,
) -> list[tuple[Vessel, float]]:
    """Rank candidate benchmark vessels by similarity, best first.

    The vessel itself and candidates that cannot be evaluated are skipped.
    Ties keep candidate order.
    """
    scored = []
    for candidate in candidates:
        if candidate.vessel_id == vessel.vessel_id:
            continue
        score = vessel_similarity(vessel, candidate)
        if score is None or score < min_similarity:
            continue
        scored.append((candidate, score))

    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:top_n]
