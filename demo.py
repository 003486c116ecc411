"""
Demo script to run the margin pool analytics end to end

This script demonstrates:
1. Loading pool configuration
2. Building pool snapshots and pool metrics
3. Evaluating margin positions
4. Running price shock scenarios
5. Supplier concentration and composite risk scores

Positions and ledger events are sample data; pool state comes from the
`state` block of each pool in config/pools.yaml.
"""

import logging
import re
import sys
import time

import numpy as np
import pandas as pd
from dotenv import load_dotenv

from margin_risk.config import load_pools_config
from margin_risk.errors import MarginRiskError
from margin_risk.metrics import ConcentrationAnalyzer, PoolAccountant, RiskMetrics
from margin_risk.metrics.rates import rate_curve
from margin_risk.metrics.risk import risk_band
from margin_risk.scoring import RiskScorer
from margin_risk.state import StateReconstructor, classify_participants, replay_events
from margin_risk.state.models import LedgerEvent
from margin_risk.stress import StressTestEngine

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


# ANSI color codes for pretty output
class Colors:
    HEADER = "\033[95m"
    OKBLUE = "\033[94m"
    OKCYAN = "\033[96m"
    OKGREEN = "\033[92m"
    WARNING = "\033[93m"
    FAIL = "\033[91m"
    ENDC = "\033[0m"
    BOLD = "\033[1m"


def readable_number(num):
    """Convert number to K/M/B notation"""
    if abs(num) < 1000:
        return f"{num:.2f}"

    for unit in ["K", "M", "B", "T"]:
        num /= 1000
        if abs(num) < 1000:
            return f"{num:.2f}{unit}"
    return f"{num:.2f}P"


def _format_dollars(text):
    """Auto-format dollar amounts in text with K/M/B notation"""

    def replace_amount(match):
        amount_str = match.group(1).replace(",", "")
        try:
            return f"${readable_number(float(amount_str))}"
        except ValueError:
            return match.group(0)

    return re.sub(r"\$([0-9,]+\.?[0-9]*)", replace_amount, text)


def print_header(text):
    """Print a colored header"""
    print(f"\n{Colors.HEADER}{Colors.BOLD}{'=' * 60}{Colors.ENDC}")
    print(f"{Colors.HEADER}{Colors.BOLD}{text.center(60)}{Colors.ENDC}")
    print(f"{Colors.HEADER}{Colors.BOLD}{'=' * 60}{Colors.ENDC}\n")


def print_success(text):
    print(f"{Colors.OKGREEN}[OK] {_format_dollars(text)}{Colors.ENDC}")


def print_info(text):
    print(f"{Colors.OKCYAN}  {_format_dollars(text)}{Colors.ENDC}")


def print_warning(text):
    print(f"{Colors.WARNING}[WARNING] {_format_dollars(text)}{Colors.ENDC}")


def print_error(text):
    print(f"{Colors.FAIL}[ERROR] {_format_dollars(text)}{Colors.ENDC}")


def sample_manager_states(base_symbol, base_price, count=25, seed=7):
    """
    Generate margin manager states around a base price

    Prices are in Pyth format (8 decimals). Every fifth manager has no quote
    price to show how unpriced positions are handled.
    """
    rng = np.random.default_rng(seed)
    rows = []

    for i in range(count):
        base_asset = float(rng.uniform(50, 5_000))
        leverage = float(rng.uniform(1.1, 4.0))
        collateral_usd = base_asset * base_price
        quote_debt = collateral_usd / leverage

        rows.append({
            "margin_manager_id": f"0x{i:04x}",
            "deepbook_pool_id": f"{base_symbol}_USDC",
            "base_asset": base_asset,
            "quote_asset": 0.0,
            "base_debt": 0.0,
            "quote_debt": quote_debt,
            "base_pyth_price": int(base_price * 1e8),
            "base_pyth_decimals": -8,
            "quote_pyth_price": None if i % 5 == 4 else 100_000_000,
            "quote_pyth_decimals": -8,
            "base_asset_symbol": base_symbol,
            "quote_asset_symbol": "USDC",
        })

    return pd.DataFrame(rows)


def sample_supply_events(now_ms, count=40, seed=11):
    """Generate supply and withdraw events over the last 90 days"""
    rng = np.random.default_rng(seed)
    events = []

    for i in range(count):
        address = f"0xsupplier{i % 12:02d}"
        timestamp = now_ms - int(rng.uniform(0, 90)) * DAY_MS
        amount = float(rng.lognormal(mean=7, sigma=1.5))
        kind = "withdrawn" if i % 7 == 6 else "supplied"
        events.append(LedgerEvent(kind=kind, address=address, amount=amount, timestamp_ms=timestamp))

    return events


def load_configuration():
    """Load pool configuration"""
    print_header("Loading Configuration")

    try:
        pools = load_pools_config()
    except (FileNotFoundError, MarginRiskError) as e:
        print_error(str(e))
        sys.exit(1)

    print_success(f"Loaded configuration for {len(pools)} pools")
    for pool in pools:
        print_info(f"  - {pool['name']} (liquidation threshold: {pool['liquidation_threshold']})")

    return pools


def analyze_pool(pool_config, now_ms):
    """Build the pool snapshot and print pool metrics"""
    print_header(f"Pool: {pool_config['name']}")

    reconstructor = StateReconstructor(pool_config)
    pool = reconstructor.build_pool_state(pool_config["state"], pool_id=pool_config["name"])
    accountant = PoolAccountant(pool, now_ms=now_ms)

    print(accountant.summary_report())
    print_info(f"Withdrawable now: {accountant.withdrawable_liquidity():,.4f} {pool.asset}")
    print_info(f"Pending protocol fees: {accountant.pending_protocol_fees():,.6f} {pool.asset}")

    projection = accountant.earnings_range(deposit=1_000, days=30)
    print_info(
        f"30-day earnings on 1,000 {pool.asset}: "
        f"{projection['low_earnings']:.2f} / {projection['current_earnings']:.2f} / "
        f"{projection['high_earnings']:.2f}"
    )

    curve = rate_curve(pool.interest_config, pool.pool_config.protocol_spread, steps=6)
    print(f"\n{curve.to_string(index=False, float_format=lambda v: f'{v:.2f}')}\n")

    return reconstructor, accountant


def analyze_positions(reconstructor, base_price):
    """Evaluate sample positions and print risk metrics"""
    print_header("Position Risk")

    states = sample_manager_states(reconstructor.pool_config["asset"], base_price)
    positions = reconstructor.reconstruct_positions(states)
    metrics = RiskMetrics(positions)

    print(metrics.summary_report())

    print(f"{Colors.BOLD}Most at risk:{Colors.ENDC}")
    for position, assessment in metrics.positions_by_risk()[:5]:
        band = risk_band(assessment.distance_to_liquidation_pct)
        print_info(
            f"{position.margin_manager_id}: ratio {assessment.risk_ratio:.3f} "
            f"({band}, {assessment.distance_to_liquidation_pct:+.1f}% to liquidation)"
        )

    if metrics.unpriced_positions:
        print_warning(f"{len(metrics.unpriced_positions)} positions skipped without prices")

    return positions


def run_stress_tests(positions):
    """Run price shock scenarios"""
    print_header("Stress Tests")

    engine = StressTestEngine(positions)
    print(engine.generate_summary())

    threshold = engine.get_liquidation_threshold(target_pct=10.0)
    if threshold is not None:
        print_warning(f"10% of debt is liquidatable after a {threshold:+.0f}% move")
    else:
        print_success("No tested scenario liquidates 10% of debt")


def analyze_suppliers(now_ms):
    """Replay sample supply events and print concentration"""
    print_header("Supplier Concentration")

    participants = replay_events(sample_supply_events(now_ms))
    statuses = classify_participants(participants, now_ms, time_range="1M")
    analyzer = ConcentrationAnalyzer(participants, statuses)

    concentration = analyzer.concentration_metrics(top_n=5)
    composition = analyzer.composition_stats()

    print_info(f"HHI: {concentration['hhi']:,.0f} ({concentration['hhi_label']})")
    print_info(f"Gini: {concentration['gini']:.3f} ({concentration['gini_label']})")
    print_info(f"Top 5 suppliers hold {concentration['supply_top_n_pct']:.1f}% of supply")
    print_info(
        f"{composition['unique_suppliers']} suppliers, "
        f"{composition['new_wallets']} new, {composition['churned_wallets']} churned"
    )

    for bucket in analyzer.size_distribution():
        if bucket["count"]:
            print_info(f"  {bucket['name']}: {bucket['count']} ({bucket['percentage']:.1f}% of volume)")

    return [p.net_amount for p in analyzer.active_suppliers()]


def calculate_risk_score(pool, supply_balances):
    """Print the composite pool risk score"""
    print_header("Risk Score")

    scorer = RiskScorer(pool, supply_balances=supply_balances)
    print(scorer.generate_report())

    return scorer.calculate_composite_score(), scorer.get_risk_level()


def main():
    """Run the demo"""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    print(f"\n{Colors.BOLD}Margin Pool Risk Analytics Demo{Colors.ENDC}\n")

    now_ms = int(time.time() * 1000)
    base_prices = {"SUI": 3.50, "DEEP": 0.15, "WAL": 0.60}

    try:
        pools = load_configuration()
        results = []

        for pool_config in pools:
            if "state" not in pool_config:
                print_warning(f"{pool_config['name']} has no state block, skipping")
                continue

            reconstructor, accountant = analyze_pool(pool_config, now_ms)

            base_price = base_prices.get(pool_config["asset"])
            if base_price is not None:
                positions = analyze_positions(reconstructor, base_price)
                if positions:
                    run_stress_tests(positions)

            supply_balances = analyze_suppliers(now_ms)
            score, level = calculate_risk_score(accountant.pool, supply_balances)
            results.append((pool_config["name"], accountant, score, level))

        print_header("Summary")
        for name, accountant, score, level in results:
            color = {"HIGH": Colors.FAIL, "MODERATE": Colors.WARNING}.get(level, Colors.OKGREEN)
            print(
                f"{color}{name:<30} | Score: {score:>5.1f} ({level:<8}) | "
                f"Util: {accountant.utilization() * 100:>5.1f}%{Colors.ENDC}"
            )
        print()

    except KeyboardInterrupt:
        print_warning("\n\nDemo interrupted by user")
        sys.exit(0)
    except MarginRiskError as e:
        print_error(f"\nDemo failed with error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
