"""
Share Ledger - Converts between pool shares and underlying amounts

All arithmetic is exact integer math in smallest units with the on-chain
FLOAT_SCALING ratio. Every truncation rounds toward the pool: withdrawals
never pay out more than the shares are worth, and deposits never mint more
shares than the amount buys.
"""

from typing import Optional

from ..config import FLOAT_SCALING
from ..errors import InvalidAmount
from .models import InterestEstimate, PoolState


def _check(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidAmount(f"{name} must be non-negative, got {value}")
    return value


def conversion_ratio(total_underlying: int, total_shares: int, scale: int = FLOAT_SCALING) -> int:
    """
    Underlying units per share, scaled by `scale`

    An empty pool (no shares) bootstraps at exactly one unit per share. Shares
    backed by nothing (or by less than one unit per `scale` shares) give a
    ratio of 0, so they are worth nothing.
    """
    _check("total_underlying", total_underlying)
    _check("total_shares", total_shares)
    if _check("scale", scale) == 0:
        raise InvalidAmount("scale must be positive")

    if total_shares == 0:
        return scale

    return total_underlying * scale // total_shares


def shares_to_amount(
    shares: int, total_underlying: int, total_shares: int, scale: int = FLOAT_SCALING
) -> int:
    """
    Convert shares into underlying units

    Args:
        shares: Shares to convert
        total_underlying: Pool total (supply or borrow) in smallest units
        total_shares: Pool total shares on the same side
        scale: Fixed point scale of the ratio

    Returns:
        Underlying amount, truncated down
    """
    _check("shares", shares)
    ratio = conversion_ratio(total_underlying, total_shares, scale)
    return shares * ratio // scale


def amount_to_shares(
    amount: int, total_underlying: int, total_shares: int, scale: int = FLOAT_SCALING
) -> int:
    """
    Convert underlying units into shares

    Uses the same ratio as shares_to_amount and truncates down, so
    amount_to_shares(shares_to_amount(s)) <= s. When existing shares are
    worthless the amount is minted one share per unit, which leaves the new
    shares diluted by the old ones.
    """
    _check("amount", amount)
    ratio = conversion_ratio(total_underlying, total_shares, scale)
    if ratio == 0:
        return amount
    return amount * scale // ratio


def supply_shares_to_amount(pool: PoolState, shares: int) -> int:
    return shares_to_amount(shares, pool.total_supply, pool.supply_shares)


def supply_amount_to_shares(pool: PoolState, amount: int) -> int:
    return amount_to_shares(amount, pool.total_supply, pool.supply_shares)


def borrow_shares_to_amount(pool: PoolState, shares: int) -> int:
    return shares_to_amount(shares, pool.total_borrow, pool.borrow_shares)


def borrow_amount_to_shares(pool: PoolState, amount: int) -> int:
    return amount_to_shares(amount, pool.total_borrow, pool.borrow_shares)


def supply_share_price(pool: PoolState) -> float:
    """Underlying tokens per supply share as a float (1.0 at bootstrap)"""
    return conversion_ratio(pool.total_supply, pool.supply_shares) / FLOAT_SCALING


def interest_earned(
    pool: PoolState, shares: int, deposit_ratio: Optional[int] = None
) -> InterestEstimate:
    """
    Interest accrued on a supply position

    Args:
        pool: Current pool snapshot
        shares: Supplier's shares (smallest units)
        deposit_ratio: Share ratio (scaled by FLOAT_SCALING) at deposit time,
            if known from the deposit events

    Returns:
        InterestEstimate in whole tokens. Without deposit_ratio the deposit is
        assumed to have happened at ratio 1.0 and the estimate is marked
        inexact: deposits made after interest had already accrued are
        overstated.
    """
    _check("shares", shares)
    exact = deposit_ratio is not None
    if deposit_ratio is None:
        deposit_ratio = FLOAT_SCALING
    _check("deposit_ratio", deposit_ratio)

    current = supply_shares_to_amount(pool, shares)
    deposited = shares * deposit_ratio // FLOAT_SCALING

    return InterestEstimate(
        current_balance=current / pool.unit,
        deposited_balance=deposited / pool.unit,
        interest_earned=(current - deposited) / pool.unit,
        exact=exact,
        details={
            "shares": shares,
            "current_ratio": conversion_ratio(pool.total_supply, pool.supply_shares),
            "deposit_ratio": deposit_ratio,
        },
    )
