"""Tests for StateReconstructor and ledger event replay"""

from datetime import datetime, timezone

import pandas as pd
import pytest

from margin_risk.errors import InvalidAmount
from margin_risk.state.models import LedgerEvent, PoolState, Position
from margin_risk.state.reconstructor import (
    StateReconstructor,
    classify_participants,
    detect_asset,
    events_from_dataframe,
    pyth_price_to_usd,
    replay_events,
)

DAY_MS = 24 * 60 * 60 * 1000


@pytest.fixture
def pool_config():
    """Sample pool configuration"""
    return {
        'name': 'SUI Margin Pool',
        'asset': 'SUI',
        'decimals': 9,
        'liquidation_threshold': 1.05,
        'interest_config': {
            'base_rate': 20_000_000,
            'base_slope': 50_000_000,
            'optimal_utilization': 700_000_000,
            'excess_slope': 600_000_000,
        },
        'margin_pool_config': {
            'supply_cap': 1_000_000_000_000_000,
            'max_utilization_rate': 900_000_000,
            'protocol_spread': 100_000_000,
            'min_borrow': 1_000_000_000,
        },
        'rate_limiter': {
            'capacity': 100_000_000_000,
            'refill_rate_per_ms': 1_000,
        },
    }


@pytest.fixture
def reconstructor(pool_config):
    return StateReconstructor(pool_config)


@pytest.fixture
def manager_state():
    """Margin manager state as returned by the indexer"""
    return {
        'margin_manager_id': '0xmanager1',
        'deepbook_pool_id': '0xdeepbook',
        'base_asset': 100.0,
        'quote_asset': 50.0,
        'base_debt': 0.0,
        'quote_debt': 300.0,
        'base_pyth_price': 350_000_000,   # 3.50 with 8 decimals
        'base_pyth_decimals': -8,
        'quote_pyth_price': 100_000_000,  # 1.00
        'quote_pyth_decimals': -8,
        'base_asset_symbol': 'SUI',
        'quote_asset_symbol': 'USDC',
        'updated_at': '2025-01-01T00:00:00Z',
    }


class TestHelpers:
    """Test suite for conversion helpers"""

    @pytest.mark.parametrize("asset_type,expected", [
        ("0x2::sui::SUI", ("SUI", 9)),
        ("0xdba3::usdc::USDC", ("USDC", 6)),
        ("0xdeeb::deep::DEEP", ("DEEP", 6)),
        ("0xabc::other::OTHER", ("UNKNOWN", 9)),
    ])
    def test_detect_asset(self, asset_type, expected):
        assert detect_asset(asset_type) == expected

    def test_pyth_price_to_usd(self):
        assert pyth_price_to_usd(10.0, 350_000_000, -8) == pytest.approx(35.0)

    def test_missing_price(self):
        assert pyth_price_to_usd(10.0, None, -8) is None
        assert pyth_price_to_usd(10.0, 350_000_000, None) is None

    def test_zero_amount_without_price(self):
        assert pyth_price_to_usd(0.0, None, None) == 0.0


class TestStateReconstructor:
    """Test suite for StateReconstructor"""

    def test_init(self, reconstructor):
        assert reconstructor.decimals == 9
        assert reconstructor.interest_config.optimal_utilization == pytest.approx(0.7)
        assert reconstructor.margin_pool_config.protocol_spread == pytest.approx(0.1)
        assert reconstructor.margin_pool_config.rate_limiter.capacity == 100_000_000_000

    def test_build_pool_state(self, reconstructor):
        pool = reconstructor.build_pool_state({
            'total_supply': '1000000000000',
            'total_borrow': '800000000000',
            'supply_shares': '950000000000',
            'borrow_shares': '780000000000',
            'last_update_timestamp': '1735689600000',
        }, pool_id='0xpool')

        assert isinstance(pool, PoolState)
        assert pool.total_supply == 1_000_000_000_000
        assert pool.utilization == pytest.approx(0.8)
        assert pool.pool_id == '0xpool'
        assert pool.last_update_timestamp == 1_735_689_600_000

    def test_liquidation_threshold_from_risk_config(self, reconstructor):
        risk_config = {'risk_ratios': {'liquidation_risk_ratio': 1_100_000_000}}

        assert reconstructor.liquidation_threshold(risk_config) == pytest.approx(1.1)
        assert reconstructor.liquidation_threshold() == pytest.approx(1.05)

    def test_position_from_manager_state(self, reconstructor, manager_state):
        position = reconstructor.position_from_manager_state(manager_state)

        assert isinstance(position, Position)
        assert position.base_asset_usd == pytest.approx(350.0)
        assert position.quote_asset_usd == pytest.approx(50.0)
        assert position.base_debt_usd == 0.0
        assert position.quote_debt_usd == pytest.approx(300.0)
        assert position.base_price == pytest.approx(3.5)
        assert position.updated_at == datetime(2025, 1, 1, tzinfo=timezone.utc)

    def test_rewards_from_risk_config(self, reconstructor, manager_state):
        risk_config = {
            'user_liquidation_reward': 30_000_000,
            'pool_liquidation_reward': 5_000_000,
        }
        position = reconstructor.position_from_manager_state(manager_state, risk_config)

        assert position.user_liquidation_reward_pct == pytest.approx(0.03)
        assert position.pool_liquidation_reward_pct == pytest.approx(0.005)

    def test_missing_quote_price(self, reconstructor, manager_state):
        manager_state['quote_pyth_price'] = None
        position = reconstructor.position_from_manager_state(manager_state)

        assert position.quote_asset_usd is None
        assert position.quote_debt_usd is None
        assert position.base_asset_usd == pytest.approx(350.0)

    def test_reconstruct_positions(self, reconstructor, manager_state):
        no_debt = dict(manager_state, margin_manager_id='0xmanager2', quote_debt=0.0)
        states_df = pd.DataFrame([manager_state, no_debt])

        positions = reconstructor.reconstruct_positions(states_df)

        assert [p.margin_manager_id for p in positions] == ['0xmanager1']

    def test_reconstruct_positions_empty(self, reconstructor):
        assert reconstructor.reconstruct_positions(pd.DataFrame()) == []


class TestReplayEvents:
    """Test suite for ledger event replay"""

    def test_running_balances(self):
        participants = replay_events([
            LedgerEvent("supplied", "0xa", 100.0, 1_000),
            LedgerEvent("supplied", "0xa", 50.0, 3_000),
            LedgerEvent("withdrawn", "0xa", 30.0, 2_000),
            LedgerEvent("borrowed", "0xb", 40.0, 1_500),
        ])

        a = participants["0xa"]
        assert a.participant_type == "supplier"
        assert a.net_amount == pytest.approx(120.0)
        assert a.supply_amount == pytest.approx(150.0)
        assert a.withdraw_amount == pytest.approx(30.0)
        assert a.first_seen == 1_000
        assert a.last_seen == 3_000
        assert a.transaction_count == 3
        assert participants["0xb"].participant_type == "borrower"

    def test_zero_balance_keeps_address(self):
        participants = replay_events([
            LedgerEvent("supplied", "0xa", 100.0, 1_000),
            LedgerEvent("withdrawn", "0xa", 100.0, 2_000),
        ])

        assert participants["0xa"].net_amount == 0.0
        assert participants["0xa"].to_balance().net_amount == 0.0

    def test_unknown_kind(self):
        with pytest.raises(InvalidAmount):
            replay_events([LedgerEvent("liquidated", "0xa", 1.0, 0)])

    def test_negative_amount(self):
        with pytest.raises(InvalidAmount):
            replay_events([LedgerEvent("supplied", "0xa", -1.0, 0)])

    def test_events_from_dataframe(self):
        df = pd.DataFrame([
            {'supplier': '0xa', 'amount': 2_500_000, 'checkpoint_timestamp_ms': 10},
            {'supplier': '0xb', 'amount': 1_000_000, 'checkpoint_timestamp_ms': 20},
        ])
        events = events_from_dataframe(df, 'supplied', 'supplier', 'amount', decimals=6)

        assert events[0] == LedgerEvent('supplied', '0xa', 2.5, 10)
        assert events[1].amount == pytest.approx(1.0)
        assert events_from_dataframe(pd.DataFrame(), 'supplied', 'supplier', 'amount', 6) == []


class TestClassifyParticipants:
    """Test suite for new/churned classification"""

    @pytest.fixture
    def participants(self):
        now = 100 * DAY_MS
        return replay_events([
            LedgerEvent("supplied", "0xold", 500.0, now - 60 * DAY_MS),
            LedgerEvent("supplied", "0xnew", 200.0, now - 2 * DAY_MS),
            LedgerEvent("supplied", "0xgone", 100.0, now - 50 * DAY_MS),
            LedgerEvent("withdrawn", "0xgone", 150.0, now - 20 * DAY_MS),
        ])

    def test_all_range(self, participants):
        statuses = classify_participants(participants, now_ms=100 * DAY_MS)

        assert all(s.is_new for s in statuses.values())
        assert statuses["0xgone"].churned is True
        assert statuses["0xold"].churned is False

    def test_bounded_range(self, participants):
        statuses = classify_participants(participants, now_ms=100 * DAY_MS, time_range="1M")

        assert statuses["0xnew"].is_new is True
        assert statuses["0xold"].is_new is False
        # Negative balance, last seen 20 days ago (outside the last 6 days)
        assert statuses["0xgone"].churned is True

    def test_quarter_and_year_to_date_ranges(self, participants):
        statuses = classify_participants(participants, now_ms=100 * DAY_MS, time_range="3M")

        # Last 20% of 90 days is 18 days: 0xgone was seen 20 days ago
        assert statuses["0xgone"].churned is True
        statuses = classify_participants(participants, now_ms=100 * DAY_MS, time_range="YTD")
        assert set(statuses) == {"0xold", "0xnew", "0xgone"}

    def test_deterministic(self, participants):
        first = classify_participants(participants, now_ms=100 * DAY_MS, time_range="1W")
        second = classify_participants(participants, now_ms=100 * DAY_MS, time_range="1W")
        assert first == second
