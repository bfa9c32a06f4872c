"""Configuration loading and reconciler construction."""

import pytest
import yaml

from mvpulse.mirror.cache import EntityClass
from mvpulse.mirror.config import ENV_OVERRIDES, load_config, staleness_windows
from mvpulse.mirror.reconciler import build_reconciler


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ENV_OVERRIDES:
        monkeypatch.delenv(var, raising=False)


def write_config(tmp_path, data) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(str(tmp_path / "nope.yaml"))
    assert config["network"] == "testnet"
    assert config["ledger"]["staking_contract"] is None
    assert config["swap"]["default_slippage_bps"] == 50


def test_file_merges_over_defaults(tmp_path):
    path = write_config(tmp_path, {
        "ledger": {"poll_contract": "0x90"},
        "cache": {"staleness_seconds": {"pool": 3}},
    })
    config = load_config(path)
    assert config["ledger"]["poll_contract"] == "0x90"
    assert config["ledger"]["timeout"] == 30.0
    windows = staleness_windows(config)
    assert windows[EntityClass.POOL] == 3.0
    assert windows[EntityClass.POLLS] == 300.0


def test_env_overrides_file(tmp_path, monkeypatch):
    path = write_config(tmp_path, {"network": "testnet", "ledger": {"rpc_url": "http://file"}})
    monkeypatch.setenv("MVPULSE_NETWORK", "mainnet")
    monkeypatch.setenv("MVPULSE_RPC_URL", "http://env/v1")
    monkeypatch.setenv("MVPULSE_STAKING_CONTRACT", "0x57")
    config = load_config(path)
    assert config["network"] == "mainnet"
    assert config["ledger"]["rpc_url"] == "http://env/v1"
    assert config["ledger"]["staking_contract"] == "0x57"


def test_unknown_cache_class_rejected(tmp_path):
    path = write_config(tmp_path, {"cache": {"staleness_seconds": {"orders": 5}}})
    with pytest.raises(ValueError, match="orders"):
        load_config(path)


@pytest.mark.parametrize("slippage", [-1, 10_001, "50"])
def test_bad_slippage_rejected(tmp_path, slippage):
    path = write_config(tmp_path, {"swap": {"default_slippage_bps": slippage}})
    with pytest.raises(ValueError):
        load_config(path)


def test_build_reconciler_wires_contracts(tmp_path):
    path = write_config(tmp_path, {
        "network": "mainnet",
        "ledger": {
            "swap_contract": "0x5a",
            "usdc_type": "0xcafe::usdc::USDC",
            "poll_contract": "0x90",
        },
        "stats_api": {"base_url": "http://stats.test"},
        "swap": {"verify_quotes": False, "default_slippage_bps": 75},
        "cache": {"staleness_seconds": {"staking": 5}},
    })
    r = build_reconciler(load_config(path))
    assert r.network == "mainnet"
    assert r.swap_contract.stable_type == "0xcafe::usdc::USDC"
    assert r.poll_contract.address == "0x90"
    assert not r.staking_contract.is_configured
    assert r.stats is not None
    assert r.default_slippage_bps == 75
    assert not r.verify_quotes
    assert r.cache.staleness[EntityClass.STAKING] == 5.0


def test_build_reconciler_without_swap(tmp_path):
    r = build_reconciler(load_config(str(tmp_path / "none.yaml")))
    assert r.swap_contract is None
    assert r.poll_contract is None
    assert r.stats is None
