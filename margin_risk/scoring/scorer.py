"""
Risk Scoring Framework - Calculates composite pool risk scores
"""

from typing import Dict, List, Optional

import pandas as pd

from ..metrics.concentration import herfindahl
from ..state.models import PoolState

DEFAULT_CONCENTRATION_RISK = 30.0


def _clamp(score: float) -> float:
    return min(100.0, max(0.0, score))


def score_utilization(utilization_pct: float, kink_pct: float) -> float:
    """
    Score utilization relative to the rate curve kink (0-100, higher = riskier)

    Scoring logic:
    - up to 60% of the kink = safe zone (0-20 points)
    - approaching the kink = 20-50 points
    - above the kink = 50-100 points

    Args:
        utilization_pct: Utilization in percent (e.g., 85.0)
        kink_pct: Optimal utilization in percent

    Returns:
        Risk score (0-100)
    """
    if utilization_pct <= 0:
        return 0.0

    safe_zone = kink_pct * 0.6
    if utilization_pct <= safe_zone:
        score = utilization_pct / safe_zone * 20
    elif utilization_pct <= kink_pct:
        score = 20 + (utilization_pct - safe_zone) / (kink_pct * 0.4) * 30
    else:
        score = 50 + (utilization_pct - kink_pct) / (100 - kink_pct) * 50

    return _clamp(score)


def score_liquidity(available_pct: float) -> float:
    """
    Score available liquidity as a percentage of supply (0-100, higher = riskier)

    More than half the supply available scores 0; below 20% available
    scores 50-100.
    """
    if available_pct > 50:
        score = 0.0
    elif available_pct > 20:
        score = (50 - available_pct) / 30 * 50
    else:
        score = 50 + (20 - available_pct) / 20 * 50

    return _clamp(score)


def score_rate(utilization_pct: float) -> float:
    return min(100.0, utilization_pct * 0.8)


def score_concentration(hhi: float) -> float:
    """
    Score supplier concentration from the Herfindahl index (0-100)

    HHI > 2500 = highly concentrated (70-100 points)
    HHI > 1500 = moderately concentrated (40-70 points)
    HHI < 1500 = not concentrated (0-40 points)
    """
    if hhi > 2500:
        score = 70 + min((hhi - 2500) / 75, 30)
    elif hhi > 1500:
        score = 40 + (hhi - 1500) / 33.3
    else:
        score = hhi / 37.5

    return _clamp(score)


class RiskScorer:
    """Calculates composite risk score for a pool (0-100, higher = riskier)"""

    DEFAULT_WEIGHTS = {
        'utilization': 0.35,
        'liquidity': 0.30,
        'rate': 0.20,
        'concentration': 0.15,
    }

    def __init__(
        self,
        pool: PoolState,
        supply_balances: Optional[List[float]] = None,
        weights: Dict[str, float] = None
    ):
        """
        Initialize risk scorer

        Args:
            pool: Pool snapshot
            supply_balances: Per-supplier balances for concentration risk (optional)
            weights: Custom weights for risk components (optional)
        """
        self.pool = pool
        self.supply_balances = supply_balances
        self.weights = weights or self.DEFAULT_WEIGHTS

        weight_sum = sum(self.weights.values())
        if abs(weight_sum - 1.0) > 0.01:
            raise ValueError(f"Weights must sum to 1.0, got {weight_sum}")

    @property
    def kink_pct(self) -> float:
        return self.pool.interest_config.optimal_utilization * 100

    def _concentration_score(self) -> float:
        if not self.supply_balances:
            return DEFAULT_CONCENTRATION_RISK
        return score_concentration(herfindahl(self.supply_balances))

    def _component_scores(self, supply: float, borrow: float) -> Dict[str, float]:
        if supply > 0:
            utilization_pct = min(100.0, max(0.0, borrow / supply * 100))
            available_pct = max(0.0, supply - borrow) / supply * 100
        else:
            utilization_pct = 0.0
            available_pct = 100.0

        return {
            'utilization': score_utilization(utilization_pct, self.kink_pct),
            'liquidity': score_liquidity(available_pct),
            'rate': score_rate(utilization_pct),
            'concentration': self._concentration_score(),
        }

    def _combine(self, scores: Dict[str, float]) -> float:
        composite = sum(scores[k] * self.weights[k] for k in scores)
        return round(_clamp(composite), 2)

    def get_component_scores(self) -> Dict[str, float]:
        """
        Get individual component scores for transparency

        Returns:
            Dict with score for each component
        """
        return self._component_scores(self.pool.total_supply, self.pool.total_borrow)

    def calculate_composite_score(self) -> float:
        """
        Calculate composite risk score (0-100, higher = riskier)

        Returns:
            Weighted combination of all risk components
        """
        return self._combine(self.get_component_scores())

    def get_risk_level(self, score: float = None) -> str:
        """
        Convert numeric score to risk level label

        Args:
            score: Risk score (if None, calculates composite score)

        Returns:
            Risk level label (LOW/MODERATE/HIGH)
        """
        if score is None:
            score = self.calculate_composite_score()

        if score >= 70:
            return "HIGH"
        elif score >= 40:
            return "MODERATE"
        else:
            return "LOW"

    def score_history(self, history: pd.DataFrame) -> pd.DataFrame:
        """
        Score a daily series of pool totals

        Args:
            history: DataFrame with 'supply' and 'borrow' columns (any units,
                as long as both match)

        Returns:
            Copy of history with one column per component, 'risk_score' and 'risk_level'
        """
        scored = history.copy()
        rows = [
            self._component_scores(float(supply), float(borrow))
            for supply, borrow in zip(history['supply'], history['borrow'])
        ]

        for component in self.weights:
            scored[f'{component}_risk'] = [row[component] for row in rows]
        scored['risk_score'] = [self._combine(row) for row in rows]
        scored['risk_level'] = [self.get_risk_level(s) for s in scored['risk_score']]

        return scored

    def generate_report(self) -> str:
        """
        Generate risk scoring report

        Returns:
            Formatted string with all scores
        """
        component_scores = self.get_component_scores()
        composite_score = self._combine(component_scores)
        risk_level = self.get_risk_level(composite_score)

        report = f"""
=== Risk Score Report ===

Pool: {self.pool.asset} {self.pool.pool_id}

--- Composite Risk Score ---
Overall Score: {composite_score:.1f} / 100
Risk Level: {risk_level}

--- Component Scores ---
"""

        for component, score in component_scores.items():
            weight = self.weights[component] * 100
            contribution = score * self.weights[component]
            report += f"{component.title()}: {score:.1f} / 100 (weight: {weight:.0f}%, contributes {contribution:.1f})\n"

        if self.supply_balances is None:
            report += "\nConcentration uses a default score (no supplier balances given)\n"

        sorted_components = sorted(component_scores.items(), key=lambda x: x[1], reverse=True)
        if sorted_components[0][1] > 60:
            report += f"\nTop risk factor: {sorted_components[0][0].title()} (score: {sorted_components[0][1]:.1f})\n"

        return report
