# src/fiscus/runtime/apply/stoken.py
from __future__ import annotations

"""Rebasing ledger (sFISC).

Balances are kept in gons. The gon supply is fixed (TOTAL_GONS) and is minted
in full to the staking engine by `initialize`; a rebase grows the displayed
total supply, which shrinks gons_per_fragment and therefore grows every
displayed balance proportionally.

`index()` is the single authoritative index. It is stored once, as a gon
amount, by `set_index`; its displayed value grows with every rebase. The
wrapped token reads it from here and never stores its own copy.

Debt: the treasury records per-account debt in sFISC units here, since sFISC
is the collateral. A transfer may never leave the sender below its debt.
"""

from typing import Any, Dict, List, Optional, Set

from fiscus.ledger.constants import (
    INITIAL_FRAGMENTS_SUPPLY,
    MAX_SUPPLY,
    SFISC_DECIMALS,
    SFISC_NAME,
    SFISC_SYMBOL,
    TOTAL_GONS,
    ZERO_ADDRESS,
)
from fiscus.runtime.apply import gtoken, staking
from fiscus.runtime.errors import (
    ApplyError,
    AuthorizationError,
    ConstructionError,
    LimitExceededError,
    StateError,
)
from fiscus.runtime.events import emit
from fiscus.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int, float)) else ""


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _is_null(addr: str) -> bool:
    return not addr or addr == ZERO_ADDRESS


def construct_stoken(state: Json, address: str, *, initializer: str) -> Json:
    if _is_null(address) or _is_null(initializer):
        raise ConstructionError("null_address", {"component": "sfisc"})
    if isinstance(state.get("stoken"), dict) and state["stoken"].get("address"):
        raise StateError("already_constructed", {"component": "sfisc"})

    root: Json = {
        "address": address,
        "name": SFISC_NAME,
        "symbol": SFISC_SYMBOL,
        "decimals": SFISC_DECIMALS,
        "initializer": initializer,
        "staking": "",
        "treasury": "",
        "gfisc": "",
        "total_supply": INITIAL_FRAGMENTS_SUPPLY,
        "gons_per_fragment": TOTAL_GONS // INITIAL_FRAGMENTS_SUPPLY,
        "index_gons": 0,
        "gon_balances": {},
        "allowances": {},
        "debt_balances": {},
        "rebases": [],
    }
    state["stoken"] = root
    state.setdefault("contracts", {})["sfisc"] = address
    return root


def get_root(state: Json) -> Json:
    root = state.get("stoken")
    if not isinstance(root, dict) or not root.get("address"):
        raise StateError("sfisc_not_constructed")
    return root


def address_of(state: Json) -> str:
    root = state.get("stoken")
    if not isinstance(root, dict):
        return ""
    return _as_str(root.get("address"))


def is_stoken(state: Json, token: str) -> bool:
    addr = address_of(state)
    return bool(addr) and addr == _as_str(token)


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def gons_per_fragment(state: Json) -> int:
    return int(get_root(state)["gons_per_fragment"])


def gons_for_balance(state: Json, amount: int) -> int:
    return int(amount) * gons_per_fragment(state)


def balance_for_gons(state: Json, gons: int) -> int:
    return int(gons) // gons_per_fragment(state)


def total_supply(state: Json) -> int:
    return int(get_root(state)["total_supply"])


def balance_of(state: Json, who: str) -> int:
    root = get_root(state)
    return int(root["gon_balances"].get(who, 0)) // int(root["gons_per_fragment"])


def allowance(state: Json, owner: str, spender: str) -> int:
    return int(_as_dict(get_root(state)["allowances"].get(owner)).get(spender, 0))


def debt_balance(state: Json, who: str) -> int:
    return int(get_root(state)["debt_balances"].get(who, 0))


def index(state: Json) -> int:
    return balance_for_gons(state, int(get_root(state)["index_gons"]))


def circulating_supply(state: Json) -> int:
    """Supply held outside the staking engine.

    total - engine-held + gFISC converted back at the current index + warmup.
    Wrapped supply only counts once `set_gfisc` has wired the gFISC address.
    """
    root = get_root(state)
    engine = _as_str(root.get("staking"))
    held = balance_of(state, engine) if engine else 0
    gfisc = _as_str(root.get("gfisc"))
    wrapped = 0
    if gfisc and index(state) > 0:
        wrapped = gtoken.balance_from(state, gtoken.supply_at(state, gfisc))
    return int(root["total_supply"]) - held + wrapped + staking.supply_in_warmup(state)


def to_g(state: Json, amount: int) -> int:
    return gtoken.balance_to(state, amount)


def from_g(state: Json, amount: int) -> int:
    return gtoken.balance_from(state, amount)


# ---------------------------------------------------------------------------
# Initializer-only setup
# ---------------------------------------------------------------------------


def _require_initializer(root: Json, caller: str) -> None:
    init = _as_str(root.get("initializer"))
    if not init:
        raise StateError("initializer_cleared", {"caller": caller})
    if init != _as_str(caller):
        raise AuthorizationError("not_initializer", {"caller": caller})


def set_index(state: Json, caller: str, value: int) -> int:
    root = get_root(state)
    _require_initializer(root, caller)
    if int(root["index_gons"]) != 0:
        raise StateError("index_already_set", {"index": index(state)})
    root["index_gons"] = gons_for_balance(state, value)
    emit(state, root["address"], "LogIndexSet", index=index(state))
    return index(state)


def set_gfisc(state: Json, caller: str, gfisc: str) -> None:
    root = get_root(state)
    _require_initializer(root, caller)
    if _is_null(gfisc):
        raise ConstructionError("null_address", {"field": "gfisc"})
    root["gfisc"] = gfisc
    emit(state, root["address"], "LogGFISCUpdated", gfisc=gfisc)


def initialize(state: Json, caller: str, staking_addr: str, treasury: str) -> None:
    root = get_root(state)
    _require_initializer(root, caller)
    if _is_null(staking_addr) or _is_null(treasury):
        raise ConstructionError("null_address", {"staking": staking_addr, "treasury": treasury})

    root["staking"] = staking_addr
    root["gon_balances"][staking_addr] = TOTAL_GONS
    root["treasury"] = treasury
    root["initializer"] = ""
    emit(state, root["address"], "Transfer", **{"from": ZERO_ADDRESS, "to": staking_addr, "value": int(root["total_supply"])})
    emit(state, root["address"], "LogStakingContractUpdated", staking=staking_addr)


# ---------------------------------------------------------------------------
# Rebase
# ---------------------------------------------------------------------------


def rebase(state: Json, caller: str, profit: int, epoch: int) -> int:
    """Grow total supply by `profit` scaled to the circulating share."""
    root = get_root(state)
    if _as_str(caller) != _as_str(root.get("staking")):
        raise AuthorizationError("only_staking", {"caller": caller})

    profit = int(profit)
    circulating = circulating_supply(state)
    supply = int(root["total_supply"])

    if profit == 0:
        emit(state, root["address"], "LogSupply", epoch=int(epoch), total_supply=supply)
        emit(state, root["address"], "LogRebase", epoch=int(epoch), rebase=0, index=index(state))
        return supply

    if circulating > 0:
        rebase_amount = profit * supply // circulating
    else:
        rebase_amount = profit

    supply = min(supply + rebase_amount, MAX_SUPPLY)
    root["total_supply"] = supply
    root["gons_per_fragment"] = TOTAL_GONS // supply

    _store_rebase(state, root, circulating, profit, int(epoch))
    return supply


def _store_rebase(state: Json, root: Json, previous_circulating: int, profit: int, epoch: int) -> None:
    percent = profit * 10**18 // previous_circulating if previous_circulating > 0 else 0
    rec: Json = {
        "epoch": epoch,
        "rebase": percent,
        "total_staked_before": previous_circulating,
        "total_staked_after": circulating_supply(state),
        "amount_rebased": profit,
        "index": index(state),
        "block_number_occured": int(state.get("height", 0) or 0),
    }
    root["rebases"].append(rec)
    emit(state, root["address"], "LogSupply", epoch=epoch, total_supply=int(root["total_supply"]))
    emit(state, root["address"], "LogRebase", epoch=epoch, rebase=percent, index=rec["index"])


def rebases(state: Json) -> List[Json]:
    return list(get_root(state)["rebases"])


# ---------------------------------------------------------------------------
# ERC20 surface
# ---------------------------------------------------------------------------


def _require_debt_cover(root: Json, who: str) -> None:
    bal = int(root["gon_balances"].get(who, 0)) // int(root["gons_per_fragment"])
    debt = int(root["debt_balances"].get(who, 0))
    if bal < debt:
        raise LimitExceededError("debt_locked", {"account": who, "balance": bal, "debt": debt})


def _move(state: Json, root: Json, sender: str, to: str, value: int) -> None:
    if _is_null(to):
        raise ApplyError("invalid_payload", "transfer_to_zero_address", {"token": root["address"]})
    gons = int(value) * int(root["gons_per_fragment"])
    balances = root["gon_balances"]
    have = int(balances.get(sender, 0))
    if have < gons:
        raise LimitExceededError(
            "insufficient_balance",
            {"token": root["address"], "account": sender, "balance": have // int(root["gons_per_fragment"]), "amount": int(value)},
        )
    balances[sender] = have - gons
    balances[to] = int(balances.get(to, 0)) + gons
    _require_debt_cover(root, sender)
    emit(state, root["address"], "Transfer", **{"from": sender, "to": to, "value": int(value)})


def _set_allowance(state: Json, root: Json, owner: str, spender: str, value: int) -> None:
    root["allowances"].setdefault(owner, {})[spender] = int(value)
    emit(state, root["address"], "Approval", owner=owner, spender=spender, value=int(value))


def transfer(state: Json, sender: str, to: str, value: int) -> None:
    _move(state, get_root(state), sender, to, value)


def transfer_from(state: Json, spender: str, owner: str, to: str, value: int) -> None:
    root = get_root(state)
    have = allowance(state, owner, spender)
    if have < int(value):
        raise LimitExceededError(
            "insufficient_allowance",
            {"token": root["address"], "owner": owner, "spender": spender, "allowance": have, "amount": int(value)},
        )
    _set_allowance(state, root, owner, spender, have - int(value))
    _move(state, root, owner, to, value)


def approve(state: Json, owner: str, spender: str, value: int) -> None:
    _set_allowance(state, get_root(state), owner, spender, value)


def increase_allowance(state: Json, owner: str, spender: str, added: int) -> None:
    _set_allowance(state, get_root(state), owner, spender, allowance(state, owner, spender) + int(added))


def decrease_allowance(state: Json, owner: str, spender: str, subtracted: int) -> None:
    have = allowance(state, owner, spender)
    _set_allowance(state, get_root(state), owner, spender, max(0, have - int(subtracted)))


# ---------------------------------------------------------------------------
# Debt (treasury only)
# ---------------------------------------------------------------------------


def change_debt(state: Json, caller: str, amount: int, debtor: str, add: bool) -> int:
    root = get_root(state)
    if not root.get("treasury") or _as_str(caller) != _as_str(root.get("treasury")):
        raise AuthorizationError("only_treasury", {"caller": caller})

    debts = root["debt_balances"]
    current = int(debts.get(debtor, 0))
    if add:
        new = current + int(amount)
        bal = balance_of(state, debtor)
        if new > bal:
            raise LimitExceededError("insufficient_balance", {"account": debtor, "balance": bal, "debt": new})
    else:
        if int(amount) > current:
            raise LimitExceededError("exceeds_debt", {"account": debtor, "debt": current, "amount": int(amount)})
        new = current - int(amount)
    debts[debtor] = new
    return new


# ---------------------------------------------------------------------------
# Tx handlers
# ---------------------------------------------------------------------------


def _apply_stoken_set_index(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    if p.get("index") is None:
        raise ApplyError("invalid_payload", "missing_index", {"tx_type": env.tx_type})
    value = _as_int(p.get("index"), -1)
    if value <= 0:
        raise ApplyError("invalid_payload", "bad_index", {"index": p.get("index")})
    return {"applied": "STOKEN_SET_INDEX", "index": set_index(state, env.signer, value)}


def _apply_stoken_set_gfisc(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    addr = _as_str(p.get("gfisc"))
    set_gfisc(state, env.signer, addr)
    return {"applied": "STOKEN_SET_GFISC", "gfisc": addr}


def _apply_stoken_initialize(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    staking_addr = _as_str(p.get("staking"))
    treasury = _as_str(p.get("treasury"))
    initialize(state, env.signer, staking_addr, treasury)
    return {"applied": "STOKEN_INITIALIZE", "staking": staking_addr, "treasury": treasury}


STOKEN_TX_TYPES: Set[str] = {
    "STOKEN_SET_INDEX",
    "STOKEN_SET_GFISC",
    "STOKEN_INITIALIZE",
}


def apply_stoken(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = _as_str(env.tx_type).upper()
    if t not in STOKEN_TX_TYPES:
        return None

    if t == "STOKEN_SET_INDEX":
        return _apply_stoken_set_index(state, env)
    if t == "STOKEN_SET_GFISC":
        return _apply_stoken_set_gfisc(state, env)
    if t == "STOKEN_INITIALIZE":
        return _apply_stoken_initialize(state, env)

    return None


__all__ = [
    "STOKEN_TX_TYPES",
    "allowance",
    "apply_stoken",
    "approve",
    "balance_for_gons",
    "balance_of",
    "change_debt",
    "circulating_supply",
    "construct_stoken",
    "debt_balance",
    "decrease_allowance",
    "gons_for_balance",
    "increase_allowance",
    "index",
    "initialize",
    "rebase",
    "set_gfisc",
    "set_index",
    "total_supply",
    "transfer",
    "transfer_from",
]
