"""State reconstruction from raw on-chain and indexer data"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from ..config import (
    DEFAULT_LIQUIDATION_THRESHOLD,
    DEFAULT_POOL_LIQUIDATION_REWARD,
    DEFAULT_USER_LIQUIDATION_REWARD,
    FLOAT_SCALING,
    KNOWN_ASSET_DECIMALS,
)
from ..errors import InvalidAmount
from .models import (
    InterestConfig,
    LedgerEvent,
    MarginPoolConfig,
    ParticipantStats,
    ParticipantStatus,
    PoolState,
    Position,
)

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000

TIME_RANGE_MS = {
    "1W": 7 * DAY_MS,
    "1M": 30 * DAY_MS,
    "3M": 90 * DAY_MS,
}

EVENT_SIDES = {
    "supplied": ("supplier", 1),
    "withdrawn": ("supplier", -1),
    "borrowed": ("borrower", 1),
    "repaid": ("borrower", -1),
}


def detect_asset(asset_type: str) -> Tuple[str, int]:
    """
    Detect asset symbol and decimals from a Move coin type string

    Args:
        asset_type: e.g. "0x2::sui::SUI"

    Returns:
        (symbol, decimals); unknown types fall back to ("UNKNOWN", 9)
    """
    for symbol, decimals in KNOWN_ASSET_DECIMALS.items():
        module = symbol if symbol == "DBUSDC" else symbol.lower()
        if f"::{module}::{symbol}" in asset_type:
            return symbol, decimals
    return "UNKNOWN", 9


def pyth_price_to_usd(
    amount: float, pyth_price: Optional[float], pyth_decimals: Optional[int]
) -> Optional[float]:
    """
    Value an amount (whole tokens) with a Pyth price scaled by 10^|decimals|

    Returns None when the price is unavailable. A zero amount is worth zero
    whether or not a price exists.
    """
    if amount == 0:
        return 0.0
    if not pyth_price or pyth_decimals is None:
        return None

    price = pyth_price / (10 ** abs(int(pyth_decimals)))
    return amount * price


def _float_or_zero(value) -> float:
    if value is None or value == "":
        return 0.0
    return float(value)


class StateReconstructor:
    """Reconstructs pool and position snapshots from raw data"""

    def __init__(self, pool_config: dict):
        """
        Initialize state reconstructor

        Args:
            pool_config: Pool configuration from pools.yaml
        """
        self.pool_config = pool_config
        self.decimals = pool_config.get(
            "decimals", KNOWN_ASSET_DECIMALS.get(pool_config["asset"], 9)
        )
        self.interest_config = InterestConfig.from_raw(pool_config["interest_config"])
        self.margin_pool_config = MarginPoolConfig.from_raw(
            pool_config["margin_pool_config"], pool_config.get("rate_limiter")
        )

        logger.info(f"Initialized reconstructor for {pool_config['name']}")
        logger.info(f"  Asset decimals: {self.decimals}")

    def build_pool_state(self, raw_state: dict, pool_id: str = "") -> PoolState:
        """
        Convert raw on-chain margin state (u64 fields) into a PoolState

        Args:
            raw_state: Dict with total_supply, total_borrow, supply_shares,
                borrow_shares, last_update_timestamp
            pool_id: Margin pool object id
        """
        return PoolState(
            asset=self.pool_config["asset"],
            total_supply=int(raw_state["total_supply"]),
            total_borrow=int(raw_state["total_borrow"]),
            supply_shares=int(raw_state["supply_shares"]),
            borrow_shares=int(raw_state["borrow_shares"]),
            last_update_timestamp=int(raw_state.get("last_update_timestamp", 0)),
            interest_config=self.interest_config,
            pool_config=self.margin_pool_config,
            decimals=self.decimals,
            pool_id=pool_id,
        )

    def liquidation_threshold(self, risk_config: Optional[dict] = None) -> float:
        """
        Liquidation risk ratio from a DeepBook pool config event

        The event carries the ratio in 9-decimal fixed point under
        risk_ratios.liquidation_risk_ratio; without it the pool's configured
        threshold is used.
        """
        if risk_config:
            raw = (risk_config.get("risk_ratios") or {}).get("liquidation_risk_ratio")
            if raw:
                return int(raw) / FLOAT_SCALING
        return float(self.pool_config.get("liquidation_threshold", DEFAULT_LIQUIDATION_THRESHOLD))

    def position_from_manager_state(
        self, state: dict, risk_config: Optional[dict] = None
    ) -> Position:
        """
        Convert an indexer margin manager state into a Position

        Args:
            state: Margin manager state (amounts in whole tokens, Pyth prices raw)
            risk_config: Optional DeepBook pool config for the liquidation threshold

        Returns:
            Position with USD valuations; a side whose price is missing is None
        """
        base_asset = _float_or_zero(state.get("base_asset"))
        quote_asset = _float_or_zero(state.get("quote_asset"))
        base_debt = _float_or_zero(state.get("base_debt"))
        quote_debt = _float_or_zero(state.get("quote_debt"))

        base_price = state.get("base_pyth_price")
        base_decimals = state.get("base_pyth_decimals")
        quote_price = state.get("quote_pyth_price")
        quote_decimals = state.get("quote_pyth_decimals")

        updated_at = state.get("updated_at")
        if updated_at and not isinstance(updated_at, datetime):
            updated_at = pd.to_datetime(updated_at).to_pydatetime()

        user_reward = DEFAULT_USER_LIQUIDATION_REWARD
        pool_reward = DEFAULT_POOL_LIQUIDATION_REWARD
        if risk_config and risk_config.get("user_liquidation_reward"):
            user_reward = int(risk_config["user_liquidation_reward"]) / FLOAT_SCALING
        elif "user_liquidation_reward" in self.pool_config:
            user_reward = float(self.pool_config["user_liquidation_reward"])
        if risk_config and risk_config.get("pool_liquidation_reward"):
            pool_reward = int(risk_config["pool_liquidation_reward"]) / FLOAT_SCALING
        elif "pool_liquidation_reward" in self.pool_config:
            pool_reward = float(self.pool_config["pool_liquidation_reward"])

        return Position(
            margin_manager_id=state["margin_manager_id"],
            deepbook_pool_id=state.get("deepbook_pool_id", ""),
            base_asset=base_asset,
            quote_asset=quote_asset,
            base_debt=base_debt,
            quote_debt=quote_debt,
            base_asset_usd=pyth_price_to_usd(base_asset, base_price, base_decimals),
            quote_asset_usd=pyth_price_to_usd(quote_asset, quote_price, quote_decimals),
            base_debt_usd=pyth_price_to_usd(base_debt, base_price, base_decimals),
            quote_debt_usd=pyth_price_to_usd(quote_debt, quote_price, quote_decimals),
            base_price=pyth_price_to_usd(1.0, base_price, base_decimals),
            liquidation_threshold=self.liquidation_threshold(risk_config),
            base_asset_symbol=state.get("base_asset_symbol") or "BASE",
            quote_asset_symbol=state.get("quote_asset_symbol") or "QUOTE",
            user_liquidation_reward_pct=user_reward,
            pool_liquidation_reward_pct=pool_reward,
            updated_at=updated_at,
        )

    def reconstruct_positions(
        self, states_df: pd.DataFrame, risk_config: Optional[dict] = None
    ) -> List[Position]:
        """
        Convert margin manager states into Positions, keeping only those with debt

        Args:
            states_df: DataFrame with one margin manager state per row
            risk_config: Optional DeepBook pool config

        Returns:
            List of Position objects
        """
        logger.info("Reconstructing positions...")

        if states_df.empty:
            logger.warning("No margin manager states available")
            return []

        positions = []
        skipped = 0

        for _, row in states_df.iterrows():
            state = {k: (None if pd.isna(v) else v) for k, v in row.to_dict().items()}

            if _float_or_zero(state.get("base_debt")) <= 0 and _float_or_zero(
                state.get("quote_debt")
            ) <= 0:
                skipped += 1
                continue

            positions.append(self.position_from_manager_state(state, risk_config))

        logger.info(f"Reconstructed {len(positions)} positions ({skipped} without debt skipped)")

        unpriced = sum(
            1
            for p in positions
            if None in (p.base_asset_usd, p.quote_asset_usd, p.base_debt_usd, p.quote_debt_usd)
        )
        if unpriced:
            logger.warning(f"  {unpriced} positions have missing price data")

        return positions


def replay_events(events: Iterable[LedgerEvent]) -> Dict[str, ParticipantStats]:
    """
    Fold ledger events into per-address running balances

    Supply and borrow events add to the net amount, withdraw and repay events
    subtract from it. An address is created the first time it is seen and is
    never removed, even when its balance returns to zero.

    Args:
        events: Ledger events in any order

    Returns:
        Dict of address -> ParticipantStats
    """
    participants: Dict[str, ParticipantStats] = {}

    for event in events:
        if event.kind not in EVENT_SIDES:
            raise InvalidAmount(f"Unknown ledger event kind: {event.kind}")
        if event.amount < 0:
            raise InvalidAmount(f"Event amount must be non-negative, got {event.amount}")

        participant_type, sign = EVENT_SIDES[event.kind]

        p = participants.get(event.address)
        if p is None:
            p = ParticipantStats(
                address=event.address,
                participant_type=participant_type,
                first_seen=event.timestamp_ms,
                last_seen=event.timestamp_ms,
            )
            participants[event.address] = p
        else:
            p.first_seen = min(p.first_seen, event.timestamp_ms)
            p.last_seen = max(p.last_seen, event.timestamp_ms)

        p.net_amount += sign * event.amount
        if sign > 0:
            p.total_inflow += event.amount
        else:
            p.total_outflow += event.amount

        if event.kind == "supplied":
            p.supply_amount += event.amount
        elif event.kind == "withdrawn":
            p.withdraw_amount += event.amount
        elif event.kind == "borrowed":
            p.borrow_amount += event.amount
        else:
            p.repay_amount += event.amount

        p.transaction_count += 1

    return participants


def events_from_dataframe(
    df: pd.DataFrame,
    kind: str,
    address_column: str,
    amount_column: str,
    decimals: int,
    timestamp_column: str = "checkpoint_timestamp_ms",
) -> List[LedgerEvent]:
    """
    Build ledger events from an indexer response table

    Args:
        df: Event rows (raw amounts in smallest units)
        kind: supplied | withdrawn | borrowed | repaid
        address_column: e.g. "supplier" or "margin_manager_id"
        amount_column: e.g. "amount", "loan_amount", "repay_amount"
        decimals: Asset decimals used to convert amounts to whole tokens

    Returns:
        List of LedgerEvent
    """
    if df.empty:
        return []

    return [
        LedgerEvent(
            kind=kind,
            address=row[address_column],
            amount=float(row[amount_column]) / (10 ** decimals),
            timestamp_ms=int(row[timestamp_column]),
        )
        for _, row in df.iterrows()
    ]


def _range_duration_ms(time_range: str, now_ms: int) -> int:
    if time_range == "YTD":
        now = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc)
        year_start = datetime(now.year, 1, 1, tzinfo=timezone.utc)
        return now_ms - int(year_start.timestamp() * 1000)
    return TIME_RANGE_MS.get(time_range, TIME_RANGE_MS["1M"])


def classify_participants(
    participants: Dict[str, ParticipantStats], now_ms: int, time_range: str = "ALL"
) -> Dict[str, ParticipantStatus]:
    """
    Classify participants as new and/or churned relative to `now_ms`

    For "ALL", every participant is new and those with a negative net balance
    are churned. For a bounded range, a participant is new if first seen
    inside the range, and churned if its net balance is negative and it has
    not been seen during the most recent 20% of the range.

    Args:
        participants: Output of replay_events
        now_ms: Reference time in epoch milliseconds
        time_range: ALL | 1W | 1M | 3M | YTD

    Returns:
        Dict of address -> ParticipantStatus
    """
    if time_range == "ALL":
        return {
            address: ParticipantStatus(address=address, is_new=True, churned=p.net_amount < 0)
            for address, p in participants.items()
        }

    duration = _range_duration_ms(time_range, now_ms)
    period_start = now_ms - duration
    recent_threshold = now_ms - duration * 0.2

    return {
        address: ParticipantStatus(
            address=address,
            is_new=p.first_seen >= period_start,
            churned=p.net_amount < 0 and p.last_seen < recent_threshold,
        )
        for address, p in participants.items()
    }
