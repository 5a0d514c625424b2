from __future__ import annotations

import copy
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import pytest
import yaml

# Ensure local "src/" takes precedence over any globally-installed "fiscus" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

from fiscus.runtime.domain_apply import apply_tx_atomic  # noqa: E402
from fiscus.runtime.genesis_config import apply_genesis_config_to_ledger_state, parse_genesis  # noqa: E402
from fiscus.testing.sigtools import pubkey_for_label  # noqa: E402

Json = Dict[str, Any]

UNIT = 10**9
DAI_UNIT = 10**18


def base_genesis_doc() -> Json:
    return {
        "chain_id": "fiscus-test",
        "deployer": "deployer",
        "authority": {"governor": "gov", "guardian": "guardian", "policy": "policy"},
        "contracts": {
            "fisc": "FISC",
            "sfisc": "SFISC",
            "gfisc": "GFISC",
            "staking": "STAKING",
            "treasury": "TREASURY",
            "distributor": "DISTRIBUTOR",
        },
        "epoch": {"length": 10, "first_number": 1, "first_block": 9},
        "index": UNIT,
        "treasury": {"blocks_needed_for_queue": 0, "permissions": [], "debt_limits": {}},
        "distributor": {"bounty": 0, "recipients": []},
        "reserve_tokens": [{"address": "DAI", "name": "Dai", "symbol": "DAI", "decimals": 18, "minter": "dai_minter"}],
        "balances": [
            {"token": "FISC", "account": "alice", "amount": 10_000 * UNIT},
            {"token": "DAI", "account": "alice", "amount": 10_000 * DAI_UNIT},
        ],
        "accounts": {
            "alice": pubkey_for_label("alice"),
            "bob": pubkey_for_label("bob"),
            "gov": pubkey_for_label("gov"),
        },
    }


def _deploy(doc: Optional[Json] = None, *, height: int = 1) -> Json:
    state: Json = {"chain_id": "fiscus-test", "height": 0}
    changed, state = apply_genesis_config_to_ledger_state(state, parse_genesis(doc or base_genesis_doc()))
    assert changed is True
    state["height"] = int(height)
    return state


@pytest.fixture
def genesis_doc() -> Json:
    return copy.deepcopy(base_genesis_doc())


@pytest.fixture
def genesis_path(tmp_path: Path, genesis_doc: Json) -> str:
    p = tmp_path / "genesis.yaml"
    p.write_text(yaml.safe_dump(genesis_doc, sort_keys=False), encoding="utf-8")
    return str(p)


@pytest.fixture
def state() -> Json:
    return _deploy()


@pytest.fixture
def deploy() -> Callable[..., Json]:
    """Build a deployed state from a (modified) genesis document."""
    return _deploy


@pytest.fixture
def run_tx() -> Callable[..., Optional[Json]]:
    """Apply one tx atomically: run_tx(state, "STAKE", "alice", amount=...)."""

    def _run(st: Json, tx_type: str, signer: str, **payload: Any) -> Optional[Json]:
        nonce = int(st.get("accounts", {}).get(signer, {}).get("nonce", 0)) + 1
        env = {"tx_type": tx_type, "signer": signer, "nonce": nonce, "payload": payload}
        return apply_tx_atomic(st, env)

    return _run
