"""
Risk Engine - Health factor and liquidation risk for margin positions
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..config import AT_RISK_BUFFER, DEFAULT_LIQUIDATION_THRESHOLD, RISK_RATIO_SENTINEL
from ..errors import InvalidAmount, PriceUnavailable
from ..state.models import Position

logger = logging.getLogger(__name__)

# Upper bucket edges above the liquidation threshold
RISK_RATIO_EDGES = [1.10, 1.20, 1.50]

ESTIMATED_GAS_COST_USD = 0.50
ESTIMATED_SLIPPAGE = 0.003


@dataclass(frozen=True)
class RiskAssessment:
    """Risk evaluation of a single position"""

    risk_ratio: float
    is_liquidatable: bool
    distance_to_liquidation_pct: float
    collateral_usd: float
    debt_usd: float
    liquidation_threshold: float

    def to_dict(self) -> Dict:
        return {
            "risk_ratio": self.risk_ratio,
            "is_liquidatable": self.is_liquidatable,
            "distance_to_liquidation_pct": self.distance_to_liquidation_pct,
            "collateral_usd": self.collateral_usd,
            "debt_usd": self.debt_usd,
            "liquidation_threshold": self.liquidation_threshold,
        }


def _usd(position: Position, name: str) -> float:
    value = getattr(position, name)
    if value is None:
        raise PriceUnavailable(f"{name} unavailable for {position.margin_manager_id}")
    value = float(value)
    if not math.isfinite(value):
        raise PriceUnavailable(f"{name} is not finite for {position.margin_manager_id}")
    if value < 0:
        raise InvalidAmount(f"{name} must be non-negative, got {value}")
    return value


def risk_ratio_buckets(
    liquidation_threshold: float = DEFAULT_LIQUIDATION_THRESHOLD,
) -> List[Tuple[str, float, float]]:
    """
    Risk ratio histogram edges for a liquidation threshold

    The first bucket holds everything below the threshold. Edges in
    RISK_RATIO_EDGES at or below the threshold are dropped.

    Returns:
        List of (label, min_ratio, max_ratio) tuples covering [0, inf)
    """
    if not liquidation_threshold > 0 or not math.isfinite(liquidation_threshold):
        raise InvalidAmount(f"Liquidation threshold must be positive, got {liquidation_threshold}")

    edges = [liquidation_threshold] + [e for e in RISK_RATIO_EDGES if e > liquidation_threshold]

    buckets = [(f"< {edges[0]:.2f}", 0.0, edges[0])]
    for lo, hi in zip(edges, edges[1:]):
        buckets.append((f"{lo:.2f}-{hi:.2f}", lo, hi))
    buckets.append((f"{edges[-1]:.2f}+", edges[-1], float("inf")))
    return buckets


def position_values(position: Position) -> Tuple[float, float]:
    """
    Collateral and debt in USD

    Raises:
        PriceUnavailable: if any USD valuation is missing
    """
    collateral = _usd(position, "base_asset_usd") + _usd(position, "quote_asset_usd")
    debt = _usd(position, "base_debt_usd") + _usd(position, "quote_debt_usd")
    return collateral, debt


def evaluate(position: Position) -> RiskAssessment:
    """
    Evaluate a position's risk ratio against its liquidation threshold

    A position without debt gets the RISK_RATIO_SENTINEL ratio and is never
    liquidatable. A ratio exactly at the threshold is liquidatable.

    Args:
        position: Position snapshot with USD valuations

    Returns:
        RiskAssessment

    Raises:
        PriceUnavailable: if any USD valuation is missing
    """
    collateral, debt = position_values(position)
    threshold = position.liquidation_threshold

    risk_ratio = collateral / debt if debt > 0 else RISK_RATIO_SENTINEL

    return RiskAssessment(
        risk_ratio=risk_ratio,
        is_liquidatable=debt > 0 and risk_ratio <= threshold,
        distance_to_liquidation_pct=(risk_ratio - threshold) / threshold * 100,
        collateral_usd=collateral,
        debt_usd=debt,
        liquidation_threshold=threshold,
    )


def risk_band(distance_pct: float) -> str:
    """
    Band a position by its distance to liquidation

    Returns:
        critical (<= 5%), warning (<= 15%), watch (<= 30%) or safe
    """
    if distance_pct <= 5:
        return "critical"
    if distance_pct <= 15:
        return "warning"
    if distance_pct <= 30:
        return "watch"
    return "safe"


def estimated_liquidation_reward(position: Position) -> float:
    """Gross liquidator + pool reward in USD for liquidating the position"""
    _, debt = position_values(position)
    return debt * (position.user_liquidation_reward_pct + position.pool_liquidation_reward_pct)


def net_liquidation_profit(
    position: Position,
    gas_cost_usd: float = ESTIMATED_GAS_COST_USD,
    slippage: float = ESTIMATED_SLIPPAGE,
) -> float:
    """Liquidation reward after estimated gas and slippage on the repaid debt"""
    _, debt = position_values(position)
    return estimated_liquidation_reward(position) - gas_cost_usd - debt * slippage


class RiskMetrics:
    """Calculates risk metrics across a set of positions"""

    def __init__(
        self,
        positions: List[Position],
        at_risk_buffer: float = AT_RISK_BUFFER,
        liquidation_threshold: Optional[float] = None,
    ):
        """
        Initialize risk metrics

        Args:
            positions: Positions to evaluate
            at_risk_buffer: Fraction above the liquidation threshold that
                still counts as at risk
            liquidation_threshold: First edge of the risk distribution; if
                None, the threshold shared by all priced positions, or the
                default when they differ
        """
        self.positions = positions
        self.at_risk_buffer = at_risk_buffer
        self.liquidation_threshold = liquidation_threshold

        self.assessments: List[Tuple[Position, RiskAssessment]] = []
        self.unpriced_positions: List[Position] = []

        for position in positions:
            try:
                self.assessments.append((position, evaluate(position)))
            except PriceUnavailable as e:
                logger.warning(f"Skipping position: {e}")
                self.unpriced_positions.append(position)

    def _is_at_risk(self, assessment: RiskAssessment) -> bool:
        limit = assessment.liquidation_threshold * (1 + self.at_risk_buffer)
        return assessment.debt_usd > 0 and assessment.risk_ratio <= limit

    def liquidatable_count(self) -> int:
        return sum(1 for _, a in self.assessments if a.is_liquidatable)

    def at_risk_count(self) -> int:
        return sum(1 for _, a in self.assessments if self._is_at_risk(a))

    def total_debt_usd(self) -> float:
        return sum(a.debt_usd for _, a in self.assessments)

    def total_debt_at_risk_usd(self) -> float:
        return sum(a.debt_usd for _, a in self.assessments if self._is_at_risk(a))

    def positions_by_risk(self) -> List[Tuple[Position, RiskAssessment]]:
        """
        All priced positions, most at risk first

        Returns:
            List of (position, assessment) sorted by ascending risk ratio
        """
        return sorted(self.assessments, key=lambda pa: pa[1].risk_ratio)

    def distribution_threshold(self) -> float:
        if self.liquidation_threshold is not None:
            return self.liquidation_threshold
        thresholds = {a.liquidation_threshold for _, a in self.assessments}
        if len(thresholds) == 1:
            return thresholds.pop()
        return DEFAULT_LIQUIDATION_THRESHOLD

    def risk_distribution(self) -> List[Dict]:
        """
        Histogram of positions by risk ratio

        The lowest bucket ends at the liquidation threshold (see
        distribution_threshold).

        Returns:
            List of buckets with label, min_ratio, max_ratio, count, total_debt_usd
        """
        buckets = [
            {"label": label, "min_ratio": lo, "max_ratio": hi, "count": 0, "total_debt_usd": 0.0}
            for label, lo, hi in risk_ratio_buckets(self.distribution_threshold())
        ]

        for _, assessment in self.assessments:
            for bucket in buckets:
                if bucket["min_ratio"] <= assessment.risk_ratio < bucket["max_ratio"]:
                    bucket["count"] += 1
                    bucket["total_debt_usd"] += assessment.debt_usd
                    break

        return buckets

    def compute_all_metrics(self) -> Dict[str, float]:
        """
        Compute all risk metrics and return as a dictionary

        Returns:
            Dict with aggregate position risk metrics
        """
        return {
            "total_positions": len(self.positions),
            "priced_positions": len(self.assessments),
            "unpriced_positions": len(self.unpriced_positions),
            "liquidatable_count": self.liquidatable_count(),
            "at_risk_count": self.at_risk_count(),
            "total_debt_usd": self.total_debt_usd(),
            "total_debt_at_risk_usd": self.total_debt_at_risk_usd(),
        }

    def summary_report(self) -> str:
        """
        Generate a human-readable summary report

        Returns:
            Formatted string with key metrics
        """
        metrics = self.compute_all_metrics()

        report = f"""
=== Position Risk Summary ===

Positions: {metrics['total_positions']} ({metrics['unpriced_positions']} without prices)
Total Debt: ${metrics['total_debt_usd']:,.2f}
Liquidatable: {metrics['liquidatable_count']}
At Risk (within {self.at_risk_buffer:.0%} of threshold): {metrics['at_risk_count']}
Debt at Risk: ${metrics['total_debt_at_risk_usd']:,.2f}

--- Risk Ratio Distribution ---
"""
        for bucket in self.risk_distribution():
            report += f"{bucket['label']}: {bucket['count']} positions (${bucket['total_debt_usd']:,.2f})\n"

        return report
