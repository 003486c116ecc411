"""Tests for pool configuration loading"""

import pytest
import yaml

from margin_risk.config import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_LIQUIDATION_THRESHOLD,
    get_pool_config,
    load_pools_config,
)
from margin_risk.errors import MalformedConfig
from margin_risk.state.reconstructor import StateReconstructor


def pool_entry(**overrides):
    entry = {
        'name': 'DEEP Margin Pool',
        'asset': 'DEEP',
        'interest_config': {
            'base_rate': 10_000_000,
            'base_slope': 50_000_000,
            'optimal_utilization': 800_000_000,
            'excess_slope': 500_000_000,
        },
        'margin_pool_config': {
            'supply_cap': 1_000_000_000,
            'max_utilization_rate': 900_000_000,
            'protocol_spread': 100_000_000,
            'min_borrow': 1_000,
        },
    }
    entry.update(overrides)
    return entry


@pytest.fixture
def write_config(tmp_path):
    def _write(pools):
        path = tmp_path / "pools.yaml"
        path.write_text(yaml.safe_dump({'pools': pools}))
        return path
    return _write


class TestLoadPoolsConfig:
    """Test suite for load_pools_config"""

    def test_bundled_config(self):
        pools = load_pools_config(DEFAULT_CONFIG_PATH)
        assets = [p['asset'] for p in pools]

        assert 'SUI' in assets
        assert 'USDC' in assets

    def test_bundled_pools_build(self):
        for pool_config in load_pools_config(DEFAULT_CONFIG_PATH):
            pool = StateReconstructor(pool_config).build_pool_state(pool_config['state'])
            assert 0 <= pool.utilization <= 1

    def test_defaults_filled_in(self, write_config):
        pools = load_pools_config(write_config([pool_entry()]))

        assert pools[0]['decimals'] == 6
        assert pools[0]['liquidation_threshold'] == DEFAULT_LIQUIDATION_THRESHOLD
        assert pools[0]['user_liquidation_reward'] == pytest.approx(0.02)

    def test_env_override(self, write_config, monkeypatch):
        path = write_config([pool_entry(name='From Env')])
        monkeypatch.setenv('MARGIN_RISK_CONFIG', str(path))

        assert load_pools_config()[0]['name'] == 'From Env'

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_pools_config(tmp_path / "missing.yaml")

    def test_no_pools(self, write_config):
        with pytest.raises(MalformedConfig):
            load_pools_config(write_config([]))

    def test_missing_interest_key(self, write_config):
        entry = pool_entry()
        del entry['interest_config']['excess_slope']

        with pytest.raises(MalformedConfig):
            load_pools_config(write_config([entry]))

    def test_invalid_threshold(self, write_config):
        with pytest.raises(MalformedConfig):
            load_pools_config(write_config([pool_entry(liquidation_threshold=0)]))

    def test_get_pool_config(self, write_config):
        pools = load_pools_config(write_config([pool_entry()]))

        assert get_pool_config(pools, 'DEEP')['name'] == 'DEEP Margin Pool'
        with pytest.raises(MalformedConfig):
            get_pool_config(pools, 'SUI')
