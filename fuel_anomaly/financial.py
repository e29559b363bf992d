"""
financial.py — Financial Impact of Excess Fuel.

    direct_cost        = excess MT × price per MT
    investigation_cost = fixed estimate
    reputational_risk  = 50% of direct cost
    total_impact       = sum of the three
"""

from dataclasses import asdict, dataclass
from typing import Any

from fuel_anomaly.exceptions import InvalidParameterError

DEFAULT_FUEL_PRICE_PER_MT = 600.0
DEFAULT_INVESTIGATION_COST = 50_000.0
REPUTATIONAL_RISK_FACTOR = 0.5


@dataclass(frozen=True)
class FinancialImpact:
    direct_cost: float
    investigation_cost: float
    reputational_risk: float
    total_impact: float

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def calculate_financial_impact(
    excess_fuel_mt: float,
    fuel_price_per_mt: float = DEFAULT_FUEL_PRICE_PER_MT,
    investigation_cost: float = DEFAULT_INVESTIGATION_COST,
) -> FinancialImpact:
    """Estimate the cost of a period's excess fuel.

    Raises:
        InvalidParameterError: If any input is negative.
    """
    if excess_fuel_mt < 0:
        raise InvalidParameterError(f"Excess fuel cannot be negative: {excess_fuel_mt}")
    if fuel_price_per_mt < 0:
        raise InvalidParameterError(f"Fuel price cannot be negative: {fuel_price_per_mt}")
    if investigation_cost < 0:
        raise InvalidParameterError(f"Investigation cost cannot be negative: {investigation_cost}")

    direct_cost = excess_fuel_mt * fuel_price_per_mt
    reputational_risk = direct_cost * REPUTATIONAL_RISK_FACTOR
    return FinancialImpact(
        direct_cost=direct_cost,
        investigation_cost=investigation_cost,
        reputational_risk=reputational_risk,
        total_impact=direct_cost + investigation_cost + reputational_risk,
    )
