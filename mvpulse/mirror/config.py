"""
Configuration loader for the ledger mirror.

Reads a YAML config, layers it over defaults, and applies overrides
from environment variables (a local ``.env`` is loaded first).
"""

import os

import yaml
from dotenv import load_dotenv

from .cache import DEFAULT_STALENESS, EntityClass

load_dotenv()

DEFAULTS: dict = {
    "network": "testnet",
    "ledger": {
        "rpc_url": "http://127.0.0.1:8080/v1",
        "timeout": 30.0,
        "confirmation_timeout": 60.0,
        "poll_contract": None,
        "swap_contract": None,
        "staking_contract": None,
        "usdc_type": None,
    },
    "stats_api": {
        "base_url": None,
    },
    "cache": {
        "staleness_seconds": {c.value: s for c, s in DEFAULT_STALENESS.items()},
    },
    "swap": {
        "default_slippage_bps": 50,
        "verify_quotes": True,
    },
}

# env var -> (section, key); section None means top level
ENV_OVERRIDES: dict[str, tuple] = {
    "MVPULSE_NETWORK": (None, "network"),
    "MVPULSE_RPC_URL": ("ledger", "rpc_url"),
    "MVPULSE_POLL_CONTRACT": ("ledger", "poll_contract"),
    "MVPULSE_SWAP_CONTRACT": ("ledger", "swap_contract"),
    "MVPULSE_STAKING_CONTRACT": ("ledger", "staking_contract"),
    "MVPULSE_USDC_TYPE": ("ledger", "usdc_type"),
    "MVPULSE_STATS_API_URL": ("stats_api", "base_url"),
}


def _merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str = "config.yaml") -> dict:
    """
    Load configuration from a YAML file.

    A missing file is not an error: defaults plus environment apply.

    Raises:
        ValueError: unknown cache entity class or out-of-range slippage
    """
    file_config: dict = {}
    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            file_config = yaml.safe_load(f) or {}

    config = _merge(DEFAULTS, file_config)

    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if not value:
            continue
        if section is None:
            config[key] = value
        else:
            config[section] = {**config.get(section, {}), key: value}

    _validate(config)
    return config


def _validate(config: dict) -> None:
    known = {c.value for c in EntityClass}
    unknown = set(config["cache"]["staleness_seconds"]) - known
    if unknown:
        raise ValueError(f"Unknown cache entity classes: {sorted(unknown)}")

    slippage = config["swap"]["default_slippage_bps"]
    if not isinstance(slippage, int) or not 0 <= slippage <= 10_000:
        raise ValueError(f"swap.default_slippage_bps must be 0..10000, got {slippage!r}")


def staleness_windows(config: dict) -> dict[EntityClass, float]:
    return {
        EntityClass(name): float(seconds)
        for name, seconds in config["cache"]["staleness_seconds"].items()
    }
