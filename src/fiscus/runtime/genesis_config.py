# src/fiscus/runtime/genesis_config.py
from __future__ import annotations

"""Protocol deployment at height 0.

A genesis file (YAML or JSON) names every component address, the authority
roles, epoch parameters and the initial treasury permissions. Applying it runs
the same constructors and privileged setters a deployer would call, in
dependency order, so the resulting state is indistinguishable from one built
transaction by transaction.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from fiscus.ledger.constants import FISC_DECIMALS, FISC_NAME, FISC_SYMBOL, REWARDMANAGER, SFISC
from fiscus.runtime.apply import authority, distributor, gtoken, staking, stoken, tokens, treasury
from fiscus.runtime.apply.accounts import protocol_addresses
from fiscus.runtime.events import drain_events
from fiscus.runtime.state_invariants import ensure_state

Json = Dict[str, Any]


@dataclass(frozen=True)
class GenesisReserveToken:
    address: str
    name: str
    symbol: str
    decimals: int
    minter: str = ""


@dataclass(frozen=True)
class GenesisConfig:
    chain_id: str
    deployer: str
    governor: str
    guardian: str
    policy: str
    contracts: Dict[str, str]
    epoch_length: int
    first_epoch_number: int
    first_epoch_block: int
    warmup_period: int = 0
    index: int = 0
    blocks_needed_for_queue: int = 0
    enable_timelock: bool = False
    bounty: int = 0
    recipients: List[Tuple[str, int]] = field(default_factory=list)
    reserve_tokens: List[GenesisReserveToken] = field(default_factory=list)
    permissions: List[Tuple[int, str]] = field(default_factory=list)
    debt_limits: Dict[str, int] = field(default_factory=dict)
    balances: List[Tuple[str, str, int]] = field(default_factory=list)
    accounts: Dict[str, str] = field(default_factory=dict)
    params: Json = field(default_factory=dict)


_REQUIRED_CONTRACTS = ("fisc", "sfisc", "gfisc", "staking", "treasury", "distributor")


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) else ""


def _as_int(v: Any, default: int = 0) -> int:
    if v is None or isinstance(v, bool):
        return int(default)
    return int(v)


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _as_list(v: Any) -> List[Any]:
    return v if isinstance(v, list) else []


def parse_genesis(obj: Any) -> GenesisConfig:
    """Validate a decoded genesis document and return a GenesisConfig."""
    if not isinstance(obj, dict):
        raise ValueError("genesis config must be a mapping")

    roles = _as_dict(obj.get("authority"))
    contracts = {k: _as_str(v) for k, v in _as_dict(obj.get("contracts")).items()}
    missing = [k for k in _REQUIRED_CONTRACTS if not contracts.get(k)]
    if missing:
        raise ValueError(f"genesis contracts missing: {missing}")

    deployer = _as_str(obj.get("deployer"))
    governor = _as_str(roles.get("governor"))
    if not deployer or not governor:
        raise ValueError("genesis requires deployer and authority.governor")

    epoch = _as_dict(obj.get("epoch"))
    tre = _as_dict(obj.get("treasury"))
    dist = _as_dict(obj.get("distributor"))

    reserve_tokens = [
        GenesisReserveToken(
            address=_as_str(t.get("address")),
            name=_as_str(t.get("name")) or _as_str(t.get("symbol")),
            symbol=_as_str(t.get("symbol")),
            decimals=_as_int(t.get("decimals"), 18),
            minter=_as_str(t.get("minter")),
        )
        for t in _as_list(obj.get("reserve_tokens"))
        if isinstance(t, dict) and _as_str(t.get("address"))
    ]

    return GenesisConfig(
        chain_id=_as_str(obj.get("chain_id")),
        deployer=deployer,
        governor=governor,
        guardian=_as_str(roles.get("guardian")) or governor,
        policy=_as_str(roles.get("policy")) or governor,
        contracts=contracts,
        epoch_length=_as_int(epoch.get("length")),
        first_epoch_number=_as_int(epoch.get("first_number"), 1),
        first_epoch_block=_as_int(epoch.get("first_block")),
        warmup_period=_as_int(obj.get("warmup_period")),
        index=_as_int(obj.get("index")),
        blocks_needed_for_queue=_as_int(tre.get("blocks_needed_for_queue")),
        enable_timelock=bool(tre.get("enable_timelock", False)),
        bounty=_as_int(dist.get("bounty")),
        recipients=[
            (_as_str(r.get("recipient")), _as_int(r.get("rate")))
            for r in _as_list(dist.get("recipients"))
            if isinstance(r, dict)
        ],
        reserve_tokens=reserve_tokens,
        permissions=[
            (_as_int(p.get("status")), _as_str(p.get("address")))
            for p in _as_list(tre.get("permissions"))
            if isinstance(p, dict)
        ],
        debt_limits={_as_str(k): _as_int(v) for k, v in _as_dict(tre.get("debt_limits")).items()},
        balances=[
            (_as_str(b.get("token")), _as_str(b.get("account")), _as_int(b.get("amount")))
            for b in _as_list(obj.get("balances"))
            if isinstance(b, dict)
        ],
        accounts={_as_str(k): _as_str(v) for k, v in _as_dict(obj.get("accounts")).items()},
        params=_as_dict(obj.get("params")),
    )


def load_genesis(path: str) -> GenesisConfig:
    """Load GenesisConfig from a `.json` file or a YAML file."""
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(str(p))
    text = p.read_text(encoding="utf-8")
    obj = json.loads(text) if p.suffix.lower() == ".json" else yaml.safe_load(text)
    return parse_genesis(obj)


def apply_genesis_config_to_ledger_state(state: Json, cfg: GenesisConfig) -> Tuple[bool, Json]:
    """Deploy the protocol into a ledger state dict.

    Returns (changed, state). Only applies at height 0 and only once; a state
    that already carries a genesis marker is returned unchanged.
    """
    ensure_state(state)
    if int(state.get("height", 0) or 0) != 0 or isinstance(state.get("genesis"), dict):
        return False, state

    c = cfg.contracts
    gov = cfg.governor

    authority.construct_authority(
        state, governor=gov, guardian=cfg.guardian, policy=cfg.policy, vault=c["treasury"]
    )
    tokens.create_token(
        state, c["fisc"], name=FISC_NAME, symbol=FISC_SYMBOL, decimals=FISC_DECIMALS, mint_role="vault"
    )
    for rt in cfg.reserve_tokens:
        tokens.create_token(
            state, rt.address, name=rt.name, symbol=rt.symbol, decimals=rt.decimals, minter=rt.minter
        )

    stoken.construct_stoken(state, c["sfisc"], initializer=cfg.deployer)
    gtoken.construct_gtoken(state, c["gfisc"], migrator=cfg.deployer, sfisc=c["sfisc"])
    staking.construct_staking(
        state,
        c["staking"],
        fisc=c["fisc"],
        sfisc=c["sfisc"],
        gfisc=c["gfisc"],
        epoch_length=cfg.epoch_length,
        first_epoch_number=cfg.first_epoch_number,
        first_epoch_block=cfg.first_epoch_block,
    )
    gtoken.migrate(state, cfg.deployer, c["staking"], c["sfisc"])
    stoken.set_gfisc(state, cfg.deployer, c["gfisc"])
    if cfg.index > 0:
        stoken.set_index(state, cfg.deployer, cfg.index)
    stoken.initialize(state, cfg.deployer, c["staking"], c["treasury"])

    treasury.construct_treasury(
        state, c["treasury"], fisc=c["fisc"], blocks_needed_for_queue=cfg.blocks_needed_for_queue
    )
    treasury.enable(state, gov, SFISC, c["sfisc"])
    treasury.enable(state, gov, REWARDMANAGER, c["distributor"])
    for status, address in cfg.permissions:
        treasury.enable(state, gov, status, address)
    for account, limit in cfg.debt_limits.items():
        treasury.set_debt_limit(state, gov, account, limit)

    distributor.construct_distributor(
        state, c["distributor"], treasury_addr=c["treasury"], fisc=c["fisc"], staking_addr=c["staking"]
    )
    if cfg.bounty:
        distributor.set_bounty(state, gov, cfg.bounty)
    for recipient, rate in cfg.recipients:
        distributor.add_recipient(state, gov, recipient, rate)
    staking.set_distributor(state, gov, c["distributor"])
    if cfg.warmup_period:
        staking.set_warmup_length(state, gov, cfg.warmup_period)

    for token, account, amount in cfg.balances:
        tokens.mint(state, token, account, amount)

    reserved = sorted(set(cfg.accounts) & protocol_addresses(state))
    if reserved:
        raise ValueError(f"genesis accounts cannot bind keys to protocol addresses: {reserved}")
    accounts = state["accounts"]
    for account_id, pubkey in cfg.accounts.items():
        acct = accounts.setdefault(account_id, {"nonce": 0, "keys": []})
        if pubkey and not any(k.get("pubkey") == pubkey for k in acct["keys"]):
            acct["keys"].append({"pubkey": pubkey, "active": True})

    state["params"].update(cfg.params)

    if cfg.enable_timelock:
        treasury.initialize(state, gov)

    events = drain_events(state)
    state["genesis"] = {"chain_id": cfg.chain_id, "event_count": len(events)}
    if cfg.chain_id and not state.get("chain_id"):
        state["chain_id"] = cfg.chain_id
    return True, state


__all__ = [
    "GenesisConfig",
    "GenesisReserveToken",
    "apply_genesis_config_to_ledger_state",
    "load_genesis",
    "parse_genesis",
]
