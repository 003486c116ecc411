"""
Rate Model - Kinked utilization-based interest rates

All inputs and outputs are fractions (0.115 = 11.5%) unless a name ends in
_pct.
"""

import math
from dataclasses import dataclass

import numpy as np
import pandas as pd

from ..errors import InvalidAmount, MalformedConfig
from ..state.models import InterestConfig


@dataclass(frozen=True)
class RateQuote:
    """Borrow and supply APR at one utilization"""

    utilization: float
    borrow_apr: float
    supply_apr: float


def _finite_non_negative(name: str, value: float) -> float:
    value = float(value)
    if not math.isfinite(value) or value < 0:
        raise InvalidAmount(f"{name} must be finite and non-negative, got {value}")
    return value


def utilization(total_supply: float, total_borrow: float) -> float:
    """
    Borrow / supply, clamped to [0, 1]

    Returns 0 for an empty pool.
    """
    total_supply = _finite_non_negative("total_supply", total_supply)
    total_borrow = _finite_non_negative("total_borrow", total_borrow)

    if total_supply == 0:
        return 0.0
    return min(1.0, total_borrow / total_supply)


def _clamp_utilization(u: float) -> float:
    u = float(u)
    if not math.isfinite(u):
        raise InvalidAmount(f"utilization must be finite, got {u}")
    return min(1.0, max(0.0, u))


def borrow_apr(u: float, config: InterestConfig) -> float:
    """
    Borrow APR on the two-segment curve

    Below the kink the rate rises by base_slope per unit of utilization,
    above it by excess_slope. The curve is continuous at the kink.
    """
    u = _clamp_utilization(u)
    optimal = config.optimal_utilization

    if u <= optimal:
        return config.base_rate + config.base_slope * u
    return (
        config.base_rate
        + config.base_slope * optimal
        + config.excess_slope * (u - optimal)
    )


def supply_apr(borrow_rate: float, u: float, protocol_spread: float) -> float:
    """Supplier APR: borrow revenue scaled by utilization, net of protocol spread"""
    u = _clamp_utilization(u)
    protocol_spread = float(protocol_spread)
    if not math.isfinite(protocol_spread) or not 0 <= protocol_spread <= 1:
        raise MalformedConfig(f"protocol_spread must be in [0, 1], got {protocol_spread}")

    return borrow_rate * u * (1 - protocol_spread)


def rates(u: float, config: InterestConfig, protocol_spread: float) -> RateQuote:
    """Borrow and supply APR for a utilization"""
    u = _clamp_utilization(u)
    borrow = borrow_apr(u, config)
    return RateQuote(
        utilization=u,
        borrow_apr=borrow,
        supply_apr=supply_apr(borrow, u, protocol_spread),
    )


def rate_curve(
    config: InterestConfig, protocol_spread: float, steps: int = 16
) -> pd.DataFrame:
    """
    Sample the rate curve across utilization 0..1

    Args:
        config: Interest configuration
        protocol_spread: Protocol spread fraction
        steps: Number of intervals (steps + 1 samples)

    Returns:
        DataFrame with utilization_pct, borrow_apr_pct, supply_apr_pct
    """
    if steps < 1:
        raise InvalidAmount(f"steps must be at least 1, got {steps}")

    rows = []
    for u in np.linspace(0.0, 1.0, steps + 1):
        quote = rates(float(u), config, protocol_spread)
        rows.append({
            "utilization_pct": quote.utilization * 100,
            "borrow_apr_pct": quote.borrow_apr * 100,
            "supply_apr_pct": quote.supply_apr * 100,
        })

    return pd.DataFrame(rows)


def project_earnings(deposit: float, apr_pct: float, days: int) -> float:
    """
    Projected interest on a deposit

    Horizons up to 30 days use simple interest, longer ones compound daily.

    Args:
        deposit: Amount deposited
        apr_pct: Annual rate in percent
        days: Horizon in days

    Returns:
        Interest earned over the horizon (same unit as deposit)
    """
    deposit = _finite_non_negative("deposit", deposit)
    days = _finite_non_negative("days", days)
    daily_rate = apr_pct / 100 / 365

    if days <= 30:
        return deposit * daily_rate * days

    return deposit * (1 + daily_rate) ** days - deposit
