"""Data models for margin pools, positions and participant balances"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from ..config import DEFAULT_LIQUIDATION_THRESHOLD, FLOAT_SCALING
from ..errors import InvalidAmount, MalformedConfig


def _fraction(name: str, value: float) -> float:
    """Validate that a config value is a finite fraction in [0, 1]"""
    if value is None:
        raise MalformedConfig(f"{name} is missing")
    value = float(value)
    if not math.isfinite(value) or value < 0 or value > 1:
        raise MalformedConfig(f"{name} must be a fraction in [0, 1], got {value}")
    return value


def _non_negative_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer amount, got {value!r}")
    if value < 0:
        raise InvalidAmount(f"{name} must be non-negative, got {value}")
    return value


@dataclass(frozen=True)
class InterestConfig:
    """Kinked interest rate curve parameters, all fractions in [0, 1]"""

    base_rate: float
    base_slope: float
    optimal_utilization: float
    excess_slope: float

    def __post_init__(self):
        for name in ("base_rate", "base_slope", "optimal_utilization", "excess_slope"):
            object.__setattr__(self, name, _fraction(name, getattr(self, name)))

    @classmethod
    def from_raw(cls, raw: dict, scale: int = FLOAT_SCALING) -> "InterestConfig":
        """
        Build from on-chain fixed point values

        Args:
            raw: Dict with base_rate, base_slope, optimal_utilization, excess_slope
            scale: Fixed point scale (1e9 on chain)
        """
        try:
            return cls(
                base_rate=int(raw["base_rate"]) / scale,
                base_slope=int(raw["base_slope"]) / scale,
                optimal_utilization=int(raw["optimal_utilization"]) / scale,
                excess_slope=int(raw["excess_slope"]) / scale,
            )
        except KeyError as e:
            raise MalformedConfig(f"interest_config missing {e.args[0]}") from e


@dataclass(frozen=True)
class RateLimiter:
    """Withdrawal rate limiter (token bucket, smallest units)"""

    capacity: int
    refill_rate_per_ms: int
    available: int = 0
    last_updated_ms: int = 0
    enabled: bool = True

    def available_at(self, now_ms: int) -> int:
        """
        Withdrawable amount at a point in time

        The bucket refills linearly from `available` and never exceeds capacity.
        """
        if now_ms < self.last_updated_ms:
            raise InvalidAmount(
                f"now_ms {now_ms} is before limiter update {self.last_updated_ms}"
            )
        refilled = self.available + self.refill_rate_per_ms * (now_ms - self.last_updated_ms)
        return min(self.capacity, refilled)


@dataclass(frozen=True)
class MarginPoolConfig:
    """Pool-level limits. Caps are in smallest units, rates are fractions."""

    supply_cap: int
    max_utilization_rate: float
    protocol_spread: float
    min_borrow: int
    rate_limiter: Optional[RateLimiter] = None

    def __post_init__(self):
        object.__setattr__(
            self, "max_utilization_rate",
            _fraction("max_utilization_rate", self.max_utilization_rate),
        )
        object.__setattr__(
            self, "protocol_spread", _fraction("protocol_spread", self.protocol_spread)
        )
        _non_negative_int("supply_cap", self.supply_cap)
        _non_negative_int("min_borrow", self.min_borrow)

    @classmethod
    def from_raw(
        cls, raw: dict, rate_limiter: Optional[dict] = None, scale: int = FLOAT_SCALING
    ) -> "MarginPoolConfig":
        """Build from on-chain values (ratios in fixed point, caps in smallest units)"""
        try:
            limiter = None
            if rate_limiter:
                limiter = RateLimiter(
                    capacity=int(rate_limiter["capacity"]),
                    refill_rate_per_ms=int(rate_limiter["refill_rate_per_ms"]),
                    available=int(rate_limiter.get("available", rate_limiter["capacity"])),
                    last_updated_ms=int(rate_limiter.get("last_updated_ms", 0)),
                    enabled=bool(rate_limiter.get("enabled", True)),
                )

            return cls(
                supply_cap=int(raw["supply_cap"]),
                max_utilization_rate=int(raw["max_utilization_rate"]) / scale,
                protocol_spread=int(raw["protocol_spread"]) / scale,
                min_borrow=int(raw["min_borrow"]),
                rate_limiter=limiter,
            )
        except KeyError as e:
            raise MalformedConfig(f"margin_pool_config missing {e.args[0]}") from e


@dataclass(frozen=True)
class PoolState:
    """Point-in-time snapshot of a margin lending pool"""

    asset: str
    total_supply: int
    total_borrow: int
    supply_shares: int
    borrow_shares: int
    last_update_timestamp: int
    interest_config: InterestConfig
    pool_config: MarginPoolConfig
    decimals: int = 9
    pool_id: str = ""

    def __post_init__(self):
        for name in ("total_supply", "total_borrow", "supply_shares", "borrow_shares"):
            _non_negative_int(name, getattr(self, name))

        if self.total_borrow > self.total_supply:
            raise InvalidAmount(
                f"total_borrow {self.total_borrow} exceeds total_supply {self.total_supply}"
            )
        if self.supply_shares == 0 and self.total_supply != 0:
            raise InvalidAmount("supply_shares is zero but total_supply is not")
        if self.borrow_shares == 0 and self.total_borrow != 0:
            raise InvalidAmount("borrow_shares is zero but total_borrow is not")

    @property
    def unit(self) -> int:
        """Smallest units per whole token"""
        return 10 ** self.decimals

    @property
    def supply(self) -> float:
        """Total supply in whole tokens"""
        return self.total_supply / self.unit

    @property
    def borrow(self) -> float:
        """Total borrow in whole tokens"""
        return self.total_borrow / self.unit

    @property
    def utilization(self) -> float:
        """Borrow / supply as a fraction (0 for an empty pool)"""
        if self.total_supply == 0:
            return 0.0
        return min(1.0, self.total_borrow / self.total_supply)

    def with_totals(self, total_supply: int, total_borrow: int, timestamp: int) -> "PoolState":
        """Copy of this snapshot with new totals (shares unchanged)"""
        return replace(
            self,
            total_supply=total_supply,
            total_borrow=total_borrow,
            last_update_timestamp=timestamp,
        )

    def to_dict(self) -> dict:
        """Convert pool state to dictionary"""
        return {
            "pool_id": self.pool_id,
            "asset": self.asset,
            "decimals": self.decimals,
            "total_supply": self.total_supply,
            "total_borrow": self.total_borrow,
            "supply_shares": self.supply_shares,
            "borrow_shares": self.borrow_shares,
            "last_update_timestamp": self.last_update_timestamp,
            "utilization": self.utilization,
        }


@dataclass(frozen=True)
class Position:
    """
    A margin account's balances and their USD valuations

    USD fields are None when the price feed for that side is unavailable.
    The risk ratio is never stored; see metrics.risk.evaluate.
    """

    margin_manager_id: str
    base_asset_usd: Optional[float]
    quote_asset_usd: Optional[float]
    base_debt_usd: Optional[float]
    quote_debt_usd: Optional[float]
    liquidation_threshold: float = DEFAULT_LIQUIDATION_THRESHOLD
    deepbook_pool_id: str = ""
    base_asset: float = 0.0
    quote_asset: float = 0.0
    base_debt: float = 0.0
    quote_debt: float = 0.0
    base_asset_symbol: str = "BASE"
    quote_asset_symbol: str = "QUOTE"
    base_price: Optional[float] = None
    user_liquidation_reward_pct: float = 0.02
    pool_liquidation_reward_pct: float = 0.01
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        threshold = self.liquidation_threshold
        if threshold is None or not math.isfinite(threshold) or threshold <= 0:
            raise MalformedConfig(
                f"liquidation_threshold must be positive, got {threshold}"
            )

    def with_price_change(
        self, base_price_change_pct: float, quote_price_change_pct: float = 0.0
    ) -> "Position":
        """
        Copy of this position with base (and optionally quote) prices moved

        Args:
            base_price_change_pct: Base asset price move in percent (-10 for a 10% drop)
            quote_price_change_pct: Quote asset price move in percent

        Returns:
            New Position with rescaled USD valuations
        """
        base_mult = 1 + base_price_change_pct / 100
        quote_mult = 1 + quote_price_change_pct / 100

        def scale(value, mult):
            return None if value is None else value * mult

        return replace(
            self,
            base_asset_usd=scale(self.base_asset_usd, base_mult),
            base_debt_usd=scale(self.base_debt_usd, base_mult),
            quote_asset_usd=scale(self.quote_asset_usd, quote_mult),
            quote_debt_usd=scale(self.quote_debt_usd, quote_mult),
            base_price=scale(self.base_price, base_mult),
        )

    def to_dict(self) -> dict:
        """Convert position to dictionary"""
        return {
            "margin_manager_id": self.margin_manager_id,
            "deepbook_pool_id": self.deepbook_pool_id,
            "base_asset": self.base_asset,
            "quote_asset": self.quote_asset,
            "base_debt": self.base_debt,
            "quote_debt": self.quote_debt,
            "base_asset_usd": self.base_asset_usd,
            "quote_asset_usd": self.quote_asset_usd,
            "base_debt_usd": self.base_debt_usd,
            "quote_debt_usd": self.quote_debt_usd,
            "liquidation_threshold": self.liquidation_threshold,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class ParticipantBalance:
    """Net balance of one address, the input to concentration analysis"""

    address: str
    net_amount: float


@dataclass(frozen=True)
class LedgerEvent:
    """A supply/withdraw/borrow/repay event in whole-token units"""

    kind: str  # supplied | withdrawn | borrowed | repaid
    address: str
    amount: float
    timestamp_ms: int


@dataclass
class ParticipantStats:
    """Running totals for one address, built by replaying ledger events"""

    address: str
    participant_type: str  # supplier | borrower
    first_seen: int
    last_seen: int
    net_amount: float = 0.0
    supply_amount: float = 0.0
    withdraw_amount: float = 0.0
    borrow_amount: float = 0.0
    repay_amount: float = 0.0
    total_inflow: float = 0.0
    total_outflow: float = 0.0
    transaction_count: int = 0

    def to_balance(self) -> ParticipantBalance:
        return ParticipantBalance(address=self.address, net_amount=self.net_amount)


@dataclass(frozen=True)
class ParticipantStatus:
    """Time-relative classification of a participant"""

    address: str
    is_new: bool
    churned: bool


@dataclass(frozen=True)
class InterestEstimate:
    """
    Interest earned on a supply position

    exact is False when the deposit-time share ratio was not known and
    1.0 was assumed, so interest_earned is only an approximation.
    """

    current_balance: float
    deposited_balance: float
    interest_earned: float
    exact: bool
    details: dict = field(default_factory=dict)
