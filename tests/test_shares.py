"""Tests for share/amount conversion"""

import pytest

from margin_risk.config import FLOAT_SCALING
from margin_risk.errors import InvalidAmount
from margin_risk.state import shares
from margin_risk.state.models import InterestConfig, MarginPoolConfig, PoolState


@pytest.fixture
def pool():
    """Pool where each supply share is worth 1.1 tokens"""
    return PoolState(
        asset="SUI",
        total_supply=1_100_000_000_000,
        total_borrow=500_000_000_000,
        supply_shares=1_000_000_000_000,
        borrow_shares=400_000_000_000,
        last_update_timestamp=0,
        interest_config=InterestConfig(0.02, 0.05, 0.7, 0.6),
        pool_config=MarginPoolConfig(
            supply_cap=10_000_000_000_000,
            max_utilization_rate=0.9,
            protocol_spread=0.1,
            min_borrow=0,
        ),
    )


class TestConversionRatio:
    """Test suite for the share conversion ratio"""

    def test_empty_pool_bootstraps_one_to_one(self):
        assert shares.conversion_ratio(0, 0) == FLOAT_SCALING
        assert shares.shares_to_amount(1234, 0, 0) == 1234
        assert shares.amount_to_shares(1234, 0, 0) == 1234

    def test_shares_backed_by_nothing_are_worthless(self):
        assert shares.conversion_ratio(0, 100) == 0
        assert shares.shares_to_amount(100, 0, 100) == 0

    def test_dust_backing_truncates_to_zero(self):
        # 1 unit spread over more than FLOAT_SCALING shares
        assert shares.shares_to_amount(500, 1, 2 * FLOAT_SCALING) == 0

    def test_minting_against_worthless_shares(self):
        assert shares.amount_to_shares(250, 0, 100) == 250

    def test_ratio_reflects_accrued_interest(self):
        assert shares.conversion_ratio(1100, 1000) == 1_100_000_000

    def test_zero_scale_rejected(self):
        with pytest.raises(InvalidAmount):
            shares.conversion_ratio(100, 100, scale=0)


class TestSharesToAmount:
    """Test suite for share/amount conversion"""

    def test_zero_shares(self):
        assert shares.shares_to_amount(0, 1100, 1000) == 0

    def test_conversion(self):
        assert shares.shares_to_amount(500, 1100, 1000) == 550
        assert shares.amount_to_shares(550, 1100, 1000) == 500

    def test_truncates_toward_pool(self):
        # 1000 units over 3 shares: one share is worth 333.33 units
        assert shares.shares_to_amount(1, 1000, 3) == 333
        assert shares.amount_to_shares(333, 1000, 3) == 0

    @pytest.mark.parametrize("underlying,total_shares", [
        (1_000, 1_000),
        (1_100, 1_000),
        (1_000_000_007, 999_999_937),
        (123_456_789_012, 100_000_000_000),
    ])
    def test_round_trip_never_favors_depositor(self, underlying, total_shares):
        for s in [0, 1, 7, 999, 123_456, total_shares]:
            back = shares.amount_to_shares(
                shares.shares_to_amount(s, underlying, total_shares), underlying, total_shares
            )
            assert back <= s
            assert s - back <= 1

    @pytest.mark.parametrize("amount", [0, 1, 10, 5_555, 1_000_000])
    def test_deposit_then_withdraw_never_gains(self, amount):
        minted = shares.amount_to_shares(amount, 1_000_000_007, 999_999_937)
        assert shares.shares_to_amount(minted, 1_000_000_007, 999_999_937) <= amount

    def test_negative_inputs_rejected(self):
        with pytest.raises(InvalidAmount):
            shares.shares_to_amount(-1, 100, 100)
        with pytest.raises(InvalidAmount):
            shares.amount_to_shares(-1, 100, 100)
        with pytest.raises(InvalidAmount):
            shares.shares_to_amount(1, -100, 100)

    def test_non_integer_inputs_rejected(self):
        with pytest.raises(InvalidAmount):
            shares.shares_to_amount(1.5, 100, 100)


class TestPoolShares:
    """Test suite for pool-level share helpers"""

    def test_supply_conversion(self, pool):
        assert shares.supply_shares_to_amount(pool, 100_000_000_000) == 110_000_000_000
        assert shares.supply_amount_to_shares(pool, 110_000_000_000) == 100_000_000_000

    def test_borrow_conversion(self, pool):
        assert shares.borrow_shares_to_amount(pool, 40_000_000_000) == 50_000_000_000
        assert shares.borrow_amount_to_shares(pool, 50_000_000_000) == 40_000_000_000

    def test_supply_share_price(self, pool):
        assert shares.supply_share_price(pool) == pytest.approx(1.1)

    def test_borrow_shares_without_debt_pay_nothing(self, pool):
        repaid = pool.with_totals(pool.total_supply, 0, timestamp=0)

        assert shares.borrow_shares_to_amount(repaid, 500) == 0
        assert shares.borrow_shares_to_amount(repaid, repaid.borrow_shares) <= repaid.total_borrow

    def test_interest_earned_without_deposit_ratio_is_inexact(self, pool):
        estimate = shares.interest_earned(pool, 100_000_000_000)

        assert estimate.current_balance == pytest.approx(110.0)
        assert estimate.deposited_balance == pytest.approx(100.0)
        assert estimate.interest_earned == pytest.approx(10.0)
        assert estimate.exact is False

    def test_interest_earned_with_deposit_ratio(self, pool):
        estimate = shares.interest_earned(pool, 100_000_000_000, deposit_ratio=1_050_000_000)

        assert estimate.deposited_balance == pytest.approx(105.0)
        assert estimate.interest_earned == pytest.approx(5.0)
        assert estimate.exact is True
        assert estimate.details["current_ratio"] == 1_100_000_000
