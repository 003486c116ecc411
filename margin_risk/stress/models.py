"""
Stress Testing Models - Data structures for stress test results
"""

from dataclasses import dataclass, field
from typing import Dict, List


@dataclass
class StressResult:
    """Results from a single price scenario across a set of positions"""

    scenario_name: str
    price_change_pct: float
    liquidatable_positions: int
    newly_liquidatable_positions: int
    at_risk_positions: int
    debt_at_risk_usd: float
    pct_debt_affected: float
    unpriced_positions: int = 0
    positions_details: List[Dict] = field(default_factory=list)

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization"""
        return {
            "scenario_name": self.scenario_name,
            "price_change_pct": self.price_change_pct,
            "liquidatable_positions": self.liquidatable_positions,
            "newly_liquidatable_positions": self.newly_liquidatable_positions,
            "at_risk_positions": self.at_risk_positions,
            "debt_at_risk_usd": self.debt_at_risk_usd,
            "pct_debt_affected": self.pct_debt_affected,
            "unpriced_positions": self.unpriced_positions,
            "positions_count": len(self.positions_details),
        }

    def summary(self) -> str:
        """Generate human-readable summary"""
        return f"""
Stress Test: {self.scenario_name}
----------------------------------------
Price Change: {self.price_change_pct:+.1f}%
Liquidatable Positions: {self.liquidatable_positions} ({self.newly_liquidatable_positions} new)
At-Risk Positions: {self.at_risk_positions}
Debt at Risk: ${self.debt_at_risk_usd:,.2f}
Debt Affected: {self.pct_debt_affected:.1f}%
"""
