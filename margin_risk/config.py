"""Engine defaults and pool configuration loading (config/pools.yaml)"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .errors import MalformedConfig

logger = logging.getLogger(__name__)

# On-chain fixed point scale for ratios and configuration values
FLOAT_SCALING = 1_000_000_000

# Risk ratio reported for positions without debt
RISK_RATIO_SENTINEL = 999.0

DEFAULT_LIQUIDATION_THRESHOLD = 1.05

# Positions within 20% above the liquidation threshold count as at risk
AT_RISK_BUFFER = 0.20

DEFAULT_USER_LIQUIDATION_REWARD = 0.02
DEFAULT_POOL_LIQUIDATION_REWARD = 0.01

# Base asset price moves (percent) for a single-position sweep
DEFAULT_PRICE_CHANGES = [-30, -20, -15, -10, -5, 0, 5, 10, 15, 20, 30]

# Stress curve: -50% to +20% in 2% steps
DEFAULT_STRESS_SCENARIOS = list(range(-50, 21, 2))

MS_PER_YEAR = 365 * 24 * 60 * 60 * 1000

# Seed account whose balance is not a real participant
DELETED_SEED_ACCOUNT = "0xb51e160d6ee5366a1b2dda76445ed343aadba29873ad92df50725beb427248e1"

KNOWN_ASSET_DECIMALS = {
    "SUI": 9,
    "USDC": 6,
    "DEEP": 6,
    "WAL": 9,
    "DBUSDC": 6,
}

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "pools.yaml"

REQUIRED_POOL_KEYS = ("name", "asset", "interest_config", "margin_pool_config")
REQUIRED_INTEREST_KEYS = ("base_rate", "base_slope", "optimal_utilization", "excess_slope")
REQUIRED_MARGIN_POOL_KEYS = ("supply_cap", "max_utilization_rate", "protocol_spread", "min_borrow")


def _validate_pool(pool: dict):
    """Raise MalformedConfig if a pool entry is missing required keys"""
    missing = [k for k in REQUIRED_POOL_KEYS if k not in pool]
    if missing:
        raise MalformedConfig(f"Pool {pool.get('name', '?')} missing keys: {missing}")

    missing = [k for k in REQUIRED_INTEREST_KEYS if k not in pool["interest_config"]]
    if missing:
        raise MalformedConfig(f"Pool {pool['name']} interest_config missing: {missing}")

    missing = [k for k in REQUIRED_MARGIN_POOL_KEYS if k not in pool["margin_pool_config"]]
    if missing:
        raise MalformedConfig(f"Pool {pool['name']} margin_pool_config missing: {missing}")

    threshold = pool.get("liquidation_threshold", DEFAULT_LIQUIDATION_THRESHOLD)
    if float(threshold) <= 0:
        raise MalformedConfig(
            f"Pool {pool['name']} liquidation_threshold must be positive, got {threshold}"
        )


def load_pools_config(config_path: Optional[Path] = None) -> List[Dict]:
    """
    Load pool configuration from YAML

    Args:
        config_path: Path to pools.yaml. Falls back to $MARGIN_RISK_CONFIG,
            then to config/pools.yaml in the project root.

    Returns:
        List of pool configuration dicts with defaults filled in
    """
    load_dotenv()

    if config_path is None:
        config_path = os.environ.get("MARGIN_RISK_CONFIG") or DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    pools = config.get("pools")
    if not pools:
        raise MalformedConfig(f"No pools defined in {config_path}")

    for pool in pools:
        _validate_pool(pool)
        pool.setdefault("decimals", KNOWN_ASSET_DECIMALS.get(pool["asset"], 9))
        pool.setdefault("liquidation_threshold", DEFAULT_LIQUIDATION_THRESHOLD)
        pool.setdefault("user_liquidation_reward", DEFAULT_USER_LIQUIDATION_REWARD)
        pool.setdefault("pool_liquidation_reward", DEFAULT_POOL_LIQUIDATION_REWARD)

    logger.info(f"Loaded configuration for {len(pools)} pools from {config_path}")
    return pools


def get_pool_config(pools: List[Dict], asset: str) -> Dict:
    """Find the pool entry for an asset symbol"""
    for pool in pools:
        if pool["asset"] == asset:
            return pool
    raise MalformedConfig(f"No pool configured for asset {asset}")
