"""
Stress Testing Engine - Simulates base asset price shocks on margin positions
"""

import logging
from typing import Dict, List, Optional, Sequence

import pandas as pd

from ..config import AT_RISK_BUFFER, DEFAULT_PRICE_CHANGES, DEFAULT_STRESS_SCENARIOS
from ..errors import PriceUnavailable
from ..metrics.risk import RiskAssessment, evaluate, position_values
from ..state.models import Position
from .models import StressResult

logger = logging.getLogger(__name__)

# A cliff needs debt at risk to at least double, with more than this at risk
CLIFF_MIN_MULTIPLIER = 2.0
CLIFF_MIN_DEBT_USD = 100.0
CLIFF_FROM_ZERO_MULTIPLIER = 999.0


def simulate(
    position: Position, price_change_pct: float, quote_price_change_pct: float = 0.0
) -> RiskAssessment:
    """
    Re-evaluate a position after a base asset price move

    Base collateral and base debt are rescaled by (1 + change/100); the quote
    side is left unchanged unless quote_price_change_pct is given.

    Args:
        position: Position snapshot
        price_change_pct: Base price move in percent (-10 for a 10% drop)
        quote_price_change_pct: Quote price move in percent

    Returns:
        RiskAssessment of the shocked position
    """
    return evaluate(position.with_price_change(price_change_pct, quote_price_change_pct))


def sweep(
    position: Position, changes: Optional[Sequence[float]] = None
) -> List[RiskAssessment]:
    """
    Simulate one position across several price moves

    Returns:
        One RiskAssessment per change, in the order given
    """
    if changes is None:
        changes = DEFAULT_PRICE_CHANGES
    return [simulate(position, change) for change in changes]


class StressTestEngine:
    """Runs price shock scenarios over a set of positions"""

    DEFAULT_SCENARIOS = DEFAULT_STRESS_SCENARIOS

    def __init__(
        self,
        positions: List[Position],
        scenarios: Optional[List[float]] = None,
        at_risk_buffer: float = AT_RISK_BUFFER,
    ):
        """
        Initialize stress test engine

        Args:
            positions: Positions to test
            scenarios: Base price moves in percent (e.g., -10 for -10%)
            at_risk_buffer: Fraction above the threshold that counts as at risk
        """
        self.scenarios = list(scenarios) if scenarios is not None else list(self.DEFAULT_SCENARIOS)
        self.at_risk_buffer = at_risk_buffer

        self.positions: List[Position] = []
        self.baseline: List[RiskAssessment] = []
        self.unpriced_positions: List[Position] = []

        for position in positions:
            try:
                assessment = evaluate(position)
            except PriceUnavailable as e:
                logger.warning(f"Excluding position from stress test: {e}")
                self.unpriced_positions.append(position)
                continue
            self.positions.append(position)
            self.baseline.append(assessment)

    @property
    def total_debt_usd(self) -> float:
        return sum(a.debt_usd for a in self.baseline)

    def apply_price_shock(self, price_change_pct: float) -> StressResult:
        """
        Apply a base price move to every position

        Args:
            price_change_pct: Base price move in percent

        Returns:
            StressResult with liquidation metrics; debt at risk is the shocked
            debt of positions that become liquidatable
        """
        liquidatable = []
        newly_liquidatable = 0
        at_risk = 0

        for position, before in zip(self.positions, self.baseline):
            shocked = simulate(position, price_change_pct)

            if shocked.debt_usd > 0 and shocked.risk_ratio <= (
                shocked.liquidation_threshold * (1 + self.at_risk_buffer)
            ):
                at_risk += 1

            if shocked.is_liquidatable:
                if not before.is_liquidatable:
                    newly_liquidatable += 1
                liquidatable.append({
                    "margin_manager_id": position.margin_manager_id,
                    "original_risk_ratio": before.risk_ratio,
                    "new_risk_ratio": shocked.risk_ratio,
                    "collateral_usd": shocked.collateral_usd,
                    "debt_usd": shocked.debt_usd,
                    "shortfall_usd": max(0.0, shocked.debt_usd - shocked.collateral_usd),
                })

        debt_at_risk = sum(p["debt_usd"] for p in liquidatable)
        total_debt = self.total_debt_usd

        return StressResult(
            scenario_name=f"{price_change_pct:+.0f}% base price",
            price_change_pct=price_change_pct,
            liquidatable_positions=len(liquidatable),
            newly_liquidatable_positions=newly_liquidatable,
            at_risk_positions=at_risk,
            debt_at_risk_usd=debt_at_risk,
            pct_debt_affected=(debt_at_risk / total_debt * 100) if total_debt > 0 else 0.0,
            unpriced_positions=len(self.unpriced_positions),
            positions_details=liquidatable,
        )

    def run_all_scenarios(self) -> pd.DataFrame:
        """
        Run all scenarios and return the stress curve

        Returns:
            DataFrame with one row per scenario, in scenario order
        """
        results = []

        for change in self.scenarios:
            result = self.apply_price_shock(change)
            results.append({
                "price_change_pct": change,
                "liquidatable_positions": result.liquidatable_positions,
                "newly_liquidatable_positions": result.newly_liquidatable_positions,
                "at_risk_positions": result.at_risk_positions,
                "debt_at_risk_usd": result.debt_at_risk_usd,
                "pct_debt_affected": result.pct_debt_affected,
            })

        return pd.DataFrame(
            results,
            columns=[
                "price_change_pct",
                "liquidatable_positions",
                "newly_liquidatable_positions",
                "at_risk_positions",
                "debt_at_risk_usd",
                "pct_debt_affected",
            ],
        )

    def first_liquidation_point(self) -> Optional[float]:
        """
        Smallest base price drop that makes a currently healthy position liquidatable

        For each healthy position the drop is solved from its net base
        exposure (base collateral minus base debt): the price change at which
        collateral reaches threshold * debt. Positions short the base asset
        or with negligible exposure are ignored.

        Returns:
            Price change in percent (negative), or None if no drop liquidates anyone
        """
        closest = None

        for position, assessment in zip(self.positions, self.baseline):
            if assessment.is_liquidatable or assessment.debt_usd == 0:
                continue

            collateral, debt = position_values(position)
            net_base_exposure = position.base_asset_usd - position.base_debt_usd
            if abs(net_base_exposure) <= 0.01:
                continue

            # collateral + x * base_asset = threshold * (debt + x * base_debt)
            target = assessment.liquidation_threshold * debt
            base_sensitivity = (
                position.base_asset_usd - assessment.liquidation_threshold * position.base_debt_usd
            )
            if abs(base_sensitivity) <= 1e-12:
                continue
            change_pct = (target - collateral) / base_sensitivity * 100

            if -100 < change_pct < 0 and (closest is None or change_pct > closest):
                closest = change_pct

        return closest

    def find_cliff_point(self, results: pd.DataFrame = None) -> Optional[Dict]:
        """
        Find the sharpest jump in debt at risk between consecutive scenarios

        Scenarios are walked from the most severe drop upward, so the jump is
        measured in the direction the price would fall.

        Args:
            results: DataFrame from run_all_scenarios (if None, will run it)

        Returns:
            Dict with price_change_pct, debt_before, debt_after, multiplier,
            or None if no step at least doubles with more than $100 at risk
        """
        if results is None:
            results = self.run_all_scenarios()

        curve = results.sort_values("price_change_pct", ascending=False).reset_index(drop=True)
        if len(curve) < 2:
            return None

        cliff = None
        max_jump = 0.0

        for i in range(1, len(curve)):
            prev = curve.loc[i - 1, "debt_at_risk_usd"]
            curr = curve.loc[i, "debt_at_risk_usd"]

            if prev > 0:
                multiplier = curr / prev
            else:
                multiplier = CLIFF_FROM_ZERO_MULTIPLIER if curr > 0 else 1.0

            if multiplier > max_jump and multiplier >= CLIFF_MIN_MULTIPLIER and curr > CLIFF_MIN_DEBT_USD:
                max_jump = multiplier
                cliff = {
                    "price_change_pct": float(curve.loc[i, "price_change_pct"]),
                    "debt_before": float(prev),
                    "debt_after": float(curr),
                    "multiplier": float(multiplier),
                }

        return cliff

    def get_liquidation_threshold(self, target_pct: float = 10.0) -> Optional[float]:
        """
        Find the mildest price drop that liquidates target_pct of debt

        Args:
            target_pct: Target percentage of debt liquidatable

        Returns:
            Price change percentage (or None if not reached)
        """
        results = self.run_all_scenarios().sort_values("price_change_pct", ascending=False)

        for _, row in results.iterrows():
            if row["price_change_pct"] <= 0 and row["pct_debt_affected"] >= target_pct:
                return row["price_change_pct"]

        return None

    def generate_summary(self) -> str:
        """
        Generate stress test summary

        Returns:
            Formatted string with stress test analysis
        """
        results = self.run_all_scenarios()
        cliff = self.find_cliff_point(results)
        first = self.first_liquidation_point()

        summary = f"""
=== Stress Test Summary ===

Positions: {len(self.positions)} ({len(self.unpriced_positions)} excluded without prices)
Total Debt: ${self.total_debt_usd:,.2f}

--- Scenarios Tested ---
"""

        for _, row in results.iterrows():
            summary += (
                f"{row['price_change_pct']:+.0f}%: "
                f"{row['liquidatable_positions']} liquidatable, "
                f"${row['debt_at_risk_usd']:,.2f} at risk ({row['pct_debt_affected']:.1f}%)\n"
            )

        summary += "\n--- Key Points ---\n"
        if first is not None:
            summary += f"First liquidation at: {first:+.1f}%\n"
        else:
            summary += "First liquidation at: none within a full price drop\n"

        if cliff:
            summary += (
                f"Cliff at {cliff['price_change_pct']:+.0f}%: "
                f"${cliff['debt_before']:,.2f} -> ${cliff['debt_after']:,.2f} "
                f"({cliff['multiplier']:.1f}x)\n"
            )
        else:
            summary += "No cliff detected\n"

        return summary
