# src/fiscus/runtime/chain_config.py
from __future__ import annotations

"""Operator config for one Fiscus node.

A JSON file (FISCUS_CHAIN_CONFIG_PATH) names the chain, where the ledger
database lives and which protocol genesis to deploy on first boot. Missing
keys fall back to `default_chain_config()`. Everything is validated up front
so a misconfigured node refuses to start instead of failing mid-block.
"""

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

Json = Dict[str, Any]

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}

_ALLOWED_MODES = {"dev", "testnet", "prod"}
_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_MIN_BLOCK_INTERVAL_MS = 250


@dataclass(frozen=True)
class ChainConfig:
    chain_id: str
    node_id: str
    mode: str  # "dev" | "testnet" | "prod"

    db_path: str
    # Protocol genesis (YAML or JSON). Empty starts from an empty ledger.
    genesis_path: str

    block_interval_ms: int
    max_txs_per_block: int

    api_host: str
    api_port: int

    allow_unsigned_txs: bool

    log_level: str


# Field -> env var exported by apply_chain_config_to_env.
_ENV_NAMES = {
    "chain_id": "FISCUS_CHAIN_ID",
    "node_id": "FISCUS_NODE_ID",
    "mode": "FISCUS_MODE",
    "db_path": "FISCUS_DB_PATH",
    "genesis_path": "FISCUS_GENESIS_PATH",
    "block_interval_ms": "FISCUS_BLOCK_INTERVAL_MS",
    "max_txs_per_block": "FISCUS_MAX_TXS_PER_BLOCK",
    "log_level": "FISCUS_LOG_LEVEL",
    "allow_unsigned_txs": "FISCUS_ALLOW_UNSIGNED_TXS",
}


def default_chain_config() -> ChainConfig:
    return ChainConfig(
        chain_id="fiscus-dev",
        node_id="local-node",
        mode="prod",
        db_path="./data/fiscus.db",
        genesis_path="",
        block_interval_ms=6_000,
        max_txs_per_block=500,
        api_host="127.0.0.1",
        api_port=8000,
        allow_unsigned_txs=False,
        log_level="INFO",
    )


def _coerce(raw: Any, default: Any) -> Any:
    """Coerce a JSON value to the type of `default`; unusable values keep the default."""
    if raw is None:
        return default
    if isinstance(default, bool):
        if isinstance(raw, bool):
            return raw
        s = str(raw).strip().lower()
        return True if s in _TRUE else False if s in _FALSE else default
    if isinstance(default, int):
        try:
            return int(raw)
        except (TypeError, ValueError):
            return default
    s = str(raw)
    return s if s.strip() else default


def validate_chain_config(cfg: ChainConfig) -> None:
    """Raise ValueError on the first unsafe or unusable setting."""
    for name in ("chain_id", "node_id", "db_path"):
        v = getattr(cfg, name)
        if not isinstance(v, str) or not v.strip():
            raise ValueError(f"{name} must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {sorted(_ALLOWED_MODES)}; got: {cfg.mode!r}")
    if not 0 < int(cfg.api_port) <= 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")
    if int(cfg.block_interval_ms) < _MIN_BLOCK_INTERVAL_MS:
        raise ValueError(f"block_interval_ms must be >= {_MIN_BLOCK_INTERVAL_MS}; got: {cfg.block_interval_ms}")
    if int(cfg.max_txs_per_block) <= 0:
        raise ValueError(f"max_txs_per_block must be > 0; got: {cfg.max_txs_per_block}")
    if cfg.genesis_path and not Path(cfg.genesis_path).is_file():
        raise ValueError(f"genesis_path does not exist or is not a file: {cfg.genesis_path!r}")
    if str(cfg.log_level).upper() not in _ALLOWED_LOG_LEVELS:
        raise ValueError(f"log_level must be one of {sorted(_ALLOWED_LOG_LEVELS)}; got: {cfg.log_level!r}")
    # Unsigned envelopes would let anyone act as any account.
    if cfg.allow_unsigned_txs and mode == "prod":
        raise ValueError("allow_unsigned_txs is not permitted in prod mode")


def read_chain_config_file(path: str) -> ChainConfig:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("chain config must be a JSON object")

    d = default_chain_config()
    values: Json = {f.name: _coerce(raw.get(f.name), getattr(d, f.name)) for f in fields(ChainConfig)}
    values["mode"] = str(values["mode"]).strip().lower()
    values["log_level"] = str(values["log_level"]).upper()

    cfg = ChainConfig(**values)
    validate_chain_config(cfg)
    return cfg


def load_chain_config(*, config_path: Optional[str] = None) -> ChainConfig:
    p = config_path or os.environ.get("FISCUS_CHAIN_CONFIG_PATH")
    if p:
        return read_chain_config_file(p)

    cfg = default_chain_config()
    validate_chain_config(cfg)
    return cfg


def apply_chain_config_to_env(cfg: ChainConfig) -> None:
    """Export the config as FISCUS_* variables for the executor and block loop."""
    validate_chain_config(cfg)
    for name, env_name in _ENV_NAMES.items():
        v = getattr(cfg, name)
        if isinstance(v, bool):
            os.environ[env_name] = "1" if v else "0"
        else:
            os.environ[env_name] = str(v)


__all__ = [
    "ChainConfig",
    "apply_chain_config_to_env",
    "default_chain_config",
    "load_chain_config",
    "read_chain_config_file",
    "validate_chain_config",
]
