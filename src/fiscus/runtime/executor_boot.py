# src/fiscus/runtime/executor_boot.py

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from fiscus.runtime.chain_config import ChainConfig, load_chain_config
from fiscus.runtime.executor import FiscusExecutor


@dataclass
class ExecutorBootConfig:
    db_path: str
    node_id: str
    chain_id: str
    genesis_path: str


def boot_config_from_env(base: Optional[ChainConfig] = None) -> ExecutorBootConfig:
    """Resolve where the node keeps its ledger and which protocol genesis it deploys.

    FISCUS_* variables win over the chain config file (FISCUS_CHAIN_CONFIG_PATH),
    which wins over the built-in defaults.
    """
    c = base or load_chain_config()
    return ExecutorBootConfig(
        db_path=os.environ.get("FISCUS_DB_PATH") or c.db_path,
        node_id=os.environ.get("FISCUS_NODE_ID") or c.node_id,
        chain_id=os.environ.get("FISCUS_CHAIN_ID") or c.chain_id,
        genesis_path=os.environ.get("FISCUS_GENESIS_PATH") or c.genesis_path,
    )


def build_executor(cfg: Optional[ExecutorBootConfig] = None) -> FiscusExecutor:
    """Open (or create) the node ledger. Genesis is applied on first boot only."""
    c = cfg or boot_config_from_env()
    if c.genesis_path and not os.path.isfile(c.genesis_path):
        raise FileNotFoundError(f"genesis file not found: {c.genesis_path}")
    return FiscusExecutor(
        db_path=c.db_path,
        node_id=c.node_id,
        chain_id=c.chain_id,
        genesis_path=c.genesis_path,
    )


__all__ = ["ExecutorBootConfig", "boot_config_from_env", "build_executor"]
