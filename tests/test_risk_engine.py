"""
Tests for position risk evaluation
"""

import pytest

from margin_risk.config import RISK_RATIO_SENTINEL
from margin_risk.errors import InvalidAmount, PriceUnavailable
from margin_risk.metrics.risk import (
    RiskMetrics,
    estimated_liquidation_reward,
    evaluate,
    net_liquidation_profit,
    risk_band,
    risk_ratio_buckets,
)
from margin_risk.state.models import Position


def make_position(manager_id="0x1", collateral=1050.0, debt=1000.0, **kwargs):
    """Long base position: base collateral against quote debt"""
    return Position(
        margin_manager_id=manager_id,
        base_asset_usd=collateral,
        quote_asset_usd=0.0,
        base_debt_usd=0.0,
        quote_debt_usd=debt,
        **kwargs,
    )


@pytest.fixture
def sample_positions():
    """Positions at risk ratios 2.0, 1.2 and 1.0, plus one without a quote price"""
    return [
        make_position("0xsafe", collateral=2000.0, debt=1000.0),
        make_position("0xnear", collateral=1200.0, debt=1000.0),
        make_position("0xunder", collateral=1000.0, debt=1000.0),
        Position(
            margin_manager_id="0xunpriced",
            base_asset_usd=500.0,
            quote_asset_usd=0.0,
            base_debt_usd=0.0,
            quote_debt_usd=None,
        ),
    ]


class TestEvaluate:
    """Test suite for evaluate"""

    def test_threshold_boundary_is_liquidatable(self):
        result = evaluate(make_position(collateral=1050.0, debt=1000.0))

        assert result.risk_ratio == pytest.approx(1.05)
        assert result.is_liquidatable is True
        assert result.distance_to_liquidation_pct == pytest.approx(0.0, abs=1e-9)

    def test_healthy_position(self):
        result = evaluate(make_position(collateral=2100.0, debt=1000.0))

        assert result.risk_ratio == pytest.approx(2.1)
        assert result.is_liquidatable is False
        assert result.distance_to_liquidation_pct == pytest.approx(100.0)

    def test_distance_is_signed(self):
        result = evaluate(make_position(collateral=1000.0, debt=1000.0))

        assert result.is_liquidatable is True
        assert result.distance_to_liquidation_pct < 0

    def test_collateral_and_debt_sum_both_sides(self):
        position = Position(
            margin_manager_id="0x2",
            base_asset_usd=600.0,
            quote_asset_usd=900.0,
            base_debt_usd=200.0,
            quote_debt_usd=800.0,
        )
        result = evaluate(position)

        assert result.collateral_usd == pytest.approx(1500.0)
        assert result.debt_usd == pytest.approx(1000.0)
        assert result.risk_ratio == pytest.approx(1.5)

    def test_zero_debt_uses_sentinel(self):
        result = evaluate(make_position(collateral=500.0, debt=0.0))

        assert result.risk_ratio == RISK_RATIO_SENTINEL
        assert result.is_liquidatable is False

    def test_custom_threshold(self):
        result = evaluate(make_position(collateral=1080.0, debt=1000.0, liquidation_threshold=1.1))
        assert result.is_liquidatable is True

    def test_missing_price(self):
        with pytest.raises(PriceUnavailable):
            evaluate(make_position(debt=None))

    def test_non_finite_value(self):
        with pytest.raises(PriceUnavailable):
            evaluate(make_position(collateral=float("nan")))

    def test_negative_value(self):
        with pytest.raises(InvalidAmount):
            evaluate(make_position(collateral=-1.0))


class TestRiskBand:
    """Test suite for risk bands"""

    @pytest.mark.parametrize("distance,band", [
        (-3.0, "critical"),
        (5.0, "critical"),
        (10.0, "warning"),
        (30.0, "watch"),
        (31.0, "safe"),
    ])
    def test_bands(self, distance, band):
        assert risk_band(distance) == band


class TestLiquidationEconomics:
    """Test suite for liquidation rewards"""

    def test_reward(self):
        assert estimated_liquidation_reward(make_position(debt=1000.0)) == pytest.approx(30.0)

    def test_net_profit(self):
        # 30 reward - 0.50 gas - 3.00 slippage
        assert net_liquidation_profit(make_position(debt=1000.0)) == pytest.approx(26.5)

    def test_custom_rewards(self):
        position = make_position(
            debt=1000.0, user_liquidation_reward_pct=0.05, pool_liquidation_reward_pct=0.0
        )
        assert estimated_liquidation_reward(position) == pytest.approx(50.0)


class TestRiskMetrics:
    """Test suite for RiskMetrics"""

    def test_unpriced_positions_are_skipped(self, sample_positions):
        metrics = RiskMetrics(sample_positions)

        assert len(metrics.assessments) == 3
        assert [p.margin_manager_id for p in metrics.unpriced_positions] == ["0xunpriced"]

    def test_counts(self, sample_positions):
        metrics = RiskMetrics(sample_positions)

        assert metrics.liquidatable_count() == 1
        # Within 20% of 1.05: ratios 1.2 and 1.0
        assert metrics.at_risk_count() == 2
        assert metrics.total_debt_usd() == pytest.approx(3000.0)
        assert metrics.total_debt_at_risk_usd() == pytest.approx(2000.0)

    def test_positions_by_risk(self, sample_positions):
        ordered = RiskMetrics(sample_positions).positions_by_risk()
        assert [p.margin_manager_id for p, _ in ordered] == ["0xunder", "0xnear", "0xsafe"]

    def test_risk_distribution(self, sample_positions):
        buckets = {b["label"]: b for b in RiskMetrics(sample_positions).risk_distribution()}

        assert buckets["< 1.05"]["count"] == 1
        assert buckets["1.20-1.50"]["count"] == 1
        assert buckets["1.50+"]["count"] == 1
        assert buckets["1.05-1.10"]["count"] == 0
        assert buckets["< 1.05"]["total_debt_usd"] == pytest.approx(1000.0)

    def test_risk_distribution_follows_pool_threshold(self):
        positions = [
            make_position("0xa", collateral=1080.0, debt=1000.0, liquidation_threshold=1.10),
            make_position("0xb", collateral=1150.0, debt=1000.0, liquidation_threshold=1.10),
        ]
        buckets = RiskMetrics(positions).risk_distribution()

        assert [b["label"] for b in buckets] == ["< 1.10", "1.10-1.20", "1.20-1.50", "1.50+"]
        assert buckets[0]["count"] == 1
        assert buckets[1]["count"] == 1

    def test_risk_distribution_explicit_threshold(self, sample_positions):
        buckets = RiskMetrics(sample_positions, liquidation_threshold=1.25).risk_distribution()

        assert [b["label"] for b in buckets] == ["< 1.25", "1.25-1.50", "1.50+"]
        assert buckets[0]["count"] == 2

    def test_risk_distribution_mixed_thresholds_use_default(self):
        positions = [
            make_position("0xa", liquidation_threshold=1.05),
            make_position("0xb", liquidation_threshold=1.10),
        ]
        assert RiskMetrics(positions).distribution_threshold() == pytest.approx(1.05)

    def test_risk_ratio_buckets_cover_all_ratios(self):
        buckets = risk_ratio_buckets(1.10)

        assert buckets[0] == ("< 1.10", 0.0, 1.10)
        assert buckets[-1][2] == float("inf")
        for (_, _, hi), (_, lo, _) in zip(buckets, buckets[1:]):
            assert hi == lo
        with pytest.raises(InvalidAmount):
            risk_ratio_buckets(0)

    def test_compute_all_metrics(self, sample_positions):
        metrics = RiskMetrics(sample_positions).compute_all_metrics()

        assert metrics["total_positions"] == 4
        assert metrics["priced_positions"] == 3
        assert metrics["unpriced_positions"] == 1

    def test_summary_report(self, sample_positions):
        report = RiskMetrics(sample_positions).summary_report()

        assert "Position Risk Summary" in report
        assert "Liquidatable: 1" in report
        assert "1 without prices" in report

    def test_empty(self):
        metrics = RiskMetrics([])

        assert metrics.liquidatable_count() == 0
        assert metrics.total_debt_usd() == 0
