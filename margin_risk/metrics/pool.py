"""
Pool Accountant - Derived metrics for a margin pool snapshot
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..config import FLOAT_SCALING, MS_PER_YEAR
from ..errors import InvalidAmount
from ..state import shares
from ..state.models import PoolState
from .rates import RateQuote, borrow_apr, project_earnings, rates


@dataclass(frozen=True)
class PoolMetrics:
    """Display values for a pool"""

    asset: str
    utilization_pct: float
    borrow_apr_pct: float
    supply_apr_pct: float
    available_liquidity: float

    def to_dict(self) -> Dict:
        return {
            "asset": self.asset,
            "utilization_pct": self.utilization_pct,
            "borrow_apr_pct": self.borrow_apr_pct,
            "supply_apr_pct": self.supply_apr_pct,
            "available_liquidity": self.available_liquidity,
        }


def accrued_interest(pool: PoolState, now_ms: int) -> Tuple[int, int]:
    """
    Interest accrued since the pool's last update

    Args:
        pool: Pool snapshot
        now_ms: Current time in epoch milliseconds

    Returns:
        (interest, protocol_fees) in smallest units, both truncated down
    """
    if now_ms < pool.last_update_timestamp:
        raise InvalidAmount(
            f"now_ms {now_ms} is before last update {pool.last_update_timestamp}"
        )

    elapsed = now_ms - pool.last_update_timestamp
    if elapsed == 0 or pool.total_borrow == 0:
        return 0, 0

    rate_scaled = int(round(borrow_apr(pool.utilization, pool.interest_config) * FLOAT_SCALING))
    interest = pool.total_borrow * rate_scaled * elapsed // (FLOAT_SCALING * MS_PER_YEAR)

    spread_scaled = int(round(pool.pool_config.protocol_spread * FLOAT_SCALING))
    protocol_fees = interest * spread_scaled // FLOAT_SCALING

    return interest, protocol_fees


def accrue(pool: PoolState, now_ms: int) -> PoolState:
    """
    New snapshot with pending interest posted into supply and borrow

    Both totals grow by the full interest; the protocol's share of it is
    reported by accrued_interest and not deducted here.
    """
    interest, _ = accrued_interest(pool, now_ms)
    return pool.with_totals(
        total_supply=pool.total_supply + interest,
        total_borrow=pool.total_borrow + interest,
        timestamp=now_ms,
    )


class PoolAccountant:
    """Calculates pool-level metrics for a pool snapshot"""

    def __init__(self, pool: PoolState, now_ms: Optional[int] = None):
        """
        Initialize pool accountant

        Args:
            pool: Pool snapshot
            now_ms: If given, interest pending since the snapshot is accrued first
        """
        self.raw_pool = pool
        self.now_ms = now_ms
        self.pool = accrue(pool, now_ms) if now_ms is not None else pool

    # ====== Rates ======

    def utilization(self) -> float:
        return self.pool.utilization

    def rates(self) -> RateQuote:
        return rates(
            self.pool.utilization,
            self.pool.interest_config,
            self.pool.pool_config.protocol_spread,
        )

    # ====== Liquidity ======

    def available_liquidity(self) -> float:
        """Supply not lent out, in whole tokens (never negative)"""
        return max(0, self.pool.total_supply - self.pool.total_borrow) / self.pool.unit

    def withdrawable_liquidity(self, now_ms: Optional[int] = None) -> float:
        """
        Liquidity suppliers can withdraw right now, in whole tokens

        Limited by the withdrawal rate limiter when one is enabled.
        """
        raw = max(0, self.pool.total_supply - self.pool.total_borrow)
        limiter = self.pool.pool_config.rate_limiter

        if limiter is not None and limiter.enabled:
            when = now_ms if now_ms is not None else (self.now_ms or limiter.last_updated_ms)
            raw = min(raw, limiter.available_at(when))

        return raw / self.pool.unit

    def borrow_headroom(self) -> float:
        """Amount that can still be borrowed before max utilization, in whole tokens"""
        cap = self.pool.total_supply * self.pool.pool_config.max_utilization_rate
        return max(0.0, cap - self.pool.total_borrow) / self.pool.unit

    def supply_headroom(self) -> float:
        """Amount that can still be supplied before the supply cap, in whole tokens"""
        return max(0, self.pool.pool_config.supply_cap - self.pool.total_supply) / self.pool.unit

    # ====== Balances ======

    def supply_balance(self, supply_shares: int) -> float:
        """Current value of supply shares in whole tokens"""
        return shares.supply_shares_to_amount(self.pool, supply_shares) / self.pool.unit

    def borrow_balance(self, borrow_shares: int) -> float:
        """Current debt for borrow shares in whole tokens"""
        return shares.borrow_shares_to_amount(self.pool, borrow_shares) / self.pool.unit

    def pending_protocol_fees(self) -> float:
        """Protocol fees accrued but not yet posted, in whole tokens"""
        if self.now_ms is None:
            return 0.0
        _, fees = accrued_interest(self.raw_pool, self.now_ms)
        return fees / self.pool.unit

    # ====== Projections ======

    def earnings_range(self, deposit: float, days: int) -> Dict[str, float]:
        """
        Projected supplier earnings under three utilization scenarios

        Optimistic assumes utilization moves to the kink, pessimistic assumes
        it halves (at least 1%). High is never below current and low never
        above 80% of current.

        Returns:
            Dict with APYs (percent) and earnings for low/current/high
        """
        ic = self.pool.interest_config
        spread = self.pool.pool_config.protocol_spread
        current_apy = self.rates().supply_apr * 100

        optimal = ic.optimal_utilization
        optimistic_apy = borrow_apr(optimal, ic) * optimal * (1 - spread) * 100

        low_util = max(self.pool.utilization * 0.5, 0.01)
        pessimistic_apy = borrow_apr(low_util, ic) * low_util * (1 - spread) * 100

        high_apy = max(optimistic_apy, current_apy)
        low_apy = min(pessimistic_apy, current_apy * 0.8)

        return {
            "low_apy_pct": low_apy,
            "current_apy_pct": current_apy,
            "high_apy_pct": high_apy,
            "low_utilization_pct": low_util * 100,
            "high_utilization_pct": optimal * 100,
            "low_earnings": project_earnings(deposit, low_apy, days),
            "current_earnings": project_earnings(deposit, current_apy, days),
            "high_earnings": project_earnings(deposit, high_apy, days),
        }

    # ====== Summary ======

    def snapshot(self) -> PoolMetrics:
        quote = self.rates()
        return PoolMetrics(
            asset=self.pool.asset,
            utilization_pct=quote.utilization * 100,
            borrow_apr_pct=quote.borrow_apr * 100,
            supply_apr_pct=quote.supply_apr * 100,
            available_liquidity=self.available_liquidity(),
        )

    def summary_report(self) -> str:
        """
        Generate a human-readable summary report

        Returns:
            Formatted string with key pool metrics
        """
        metrics = self.snapshot()
        ic = self.pool.interest_config

        return f"""
=== Pool Summary ===

Pool: {self.pool.asset} {self.pool.pool_id}

--- Balances ---
Total Supply: {self.pool.supply:,.4f} {self.pool.asset}
Total Borrow: {self.pool.borrow:,.4f} {self.pool.asset}
Available Liquidity: {metrics.available_liquidity:,.4f} {self.pool.asset}
Borrow Headroom: {self.borrow_headroom():,.4f} {self.pool.asset}
Supply Cap Headroom: {self.supply_headroom():,.4f} {self.pool.asset}

--- Rates ---
Utilization: {metrics.utilization_pct:.2f}% (kink at {ic.optimal_utilization:.0%})
Borrow APR: {metrics.borrow_apr_pct:.2f}%
Supply APR: {metrics.supply_apr_pct:.2f}%
"""


def snapshot(pool: PoolState, now_ms: Optional[int] = None) -> PoolMetrics:
    """Pool display metrics, optionally accruing pending interest to `now_ms` first"""
    return PoolAccountant(pool, now_ms).snapshot()
