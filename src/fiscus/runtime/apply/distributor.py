# src/fiscus/runtime/apply/distributor.py
from __future__ import annotations

"""Per-epoch reward distribution.

Each recipient has a rate in millionths of the FISC supply. On every rebase
the staking engine calls `distribute` (mint each recipient's share through the
treasury, then step any pending rate adjustment) and `retrieve_bounty` (mint
the caller bounty to the engine).
"""

from typing import Any, Dict, Optional, Set

from fiscus.ledger.constants import GUARDIAN_ADJUSTMENT_DIVISOR, MAX_BOUNTY, RATE_DENOMINATOR, ZERO_ADDRESS
from fiscus.runtime.apply import authority, tokens, treasury
from fiscus.runtime.errors import ApplyError, AuthorizationError, ConstructionError, LimitExceededError, StateError
from fiscus.runtime.events import emit
from fiscus.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int, float)) else ""


def _as_bool(v: Any, default: bool = False) -> bool:
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _is_null(addr: str) -> bool:
    return not addr or addr == ZERO_ADDRESS


def construct_distributor(state: Json, address: str, *, treasury_addr: str, fisc: str, staking_addr: str) -> Json:
    for field, addr in (("address", address), ("treasury", treasury_addr), ("fisc", fisc), ("staking", staking_addr)):
        if _is_null(addr):
            raise ConstructionError("null_address", {"component": "distributor", "field": field})
    root: Json = {
        "address": address,
        "treasury": treasury_addr,
        "fisc": fisc,
        "staking": staking_addr,
        "bounty": 0,
        "info": [],
        "adjustments": {},
    }
    state["distributor"] = root
    state.setdefault("contracts", {})["distributor"] = address
    return root


def get_root(state: Json) -> Json:
    root = state.get("distributor")
    if not isinstance(root, dict) or not root.get("address"):
        raise StateError("distributor_not_constructed")
    return root


def _require_staking(root: Json, caller: str) -> None:
    if _as_str(caller) != _as_str(root["staking"]):
        raise AuthorizationError("only_staking", {"caller": caller})


def next_reward_at(state: Json, rate: int) -> int:
    return tokens.total_supply(state, get_root(state)["fisc"]) * int(rate) // RATE_DENOMINATOR


def next_reward_for(state: Json, recipient: str) -> int:
    total = 0
    for info in get_root(state)["info"]:
        if info["recipient"] == recipient:
            total += next_reward_at(state, int(info["rate"]))
    return total


def _adjust(root: Json, index: int) -> None:
    adj = root["adjustments"].get(str(index))
    if not isinstance(adj, dict) or int(adj.get("rate", 0)) == 0:
        return
    info = root["info"][index]
    rate = int(info["rate"])
    step = int(adj["rate"])
    target = int(adj["target"])
    if bool(adj["add"]):
        rate += step
        if rate >= target:
            rate = target
            adj["rate"] = 0
    else:
        rate = rate - step if rate > step else 0
        if rate <= target:
            rate = target
            adj["rate"] = 0
    info["rate"] = rate


def distribute(state: Json, caller: str) -> int:
    root = get_root(state)
    _require_staking(root, caller)
    minted = 0
    for i, info in enumerate(root["info"]):
        rate = int(info["rate"])
        if rate > 0:
            amount = next_reward_at(state, rate)
            treasury.mint(state, root["address"], info["recipient"], amount)
            minted += amount
            _adjust(root, i)
    return minted


def retrieve_bounty(state: Json, caller: str) -> int:
    root = get_root(state)
    _require_staking(root, caller)
    bounty = int(root["bounty"])
    if bounty != 0:
        treasury.mint(state, root["address"], root["staking"], bounty)
    return bounty


def set_bounty(state: Json, caller: str, bounty: int) -> None:
    root = get_root(state)
    authority.require_role(state, caller, "governor")
    if int(bounty) > MAX_BOUNTY:
        raise LimitExceededError("bounty_too_large", {"bounty": int(bounty), "max": MAX_BOUNTY})
    root["bounty"] = int(bounty)
    emit(state, root["address"], "BountySet", bounty=int(bounty))


def add_recipient(state: Json, caller: str, recipient: str, rate: int) -> int:
    root = get_root(state)
    authority.require_role(state, caller, "governor")
    if _is_null(recipient):
        raise ApplyError("invalid_payload", "null_recipient")
    if int(rate) > RATE_DENOMINATOR:
        raise LimitExceededError("rate_exceeds_denominator", {"rate": int(rate), "max": RATE_DENOMINATOR})
    root["info"].append({"recipient": recipient, "rate": int(rate)})
    idx = len(root["info"]) - 1
    emit(state, root["address"], "RecipientAdded", index=idx, recipient=recipient, rate=int(rate))
    return idx


def _info_at(root: Json, index: int) -> Json:
    if index < 0 or index >= len(root["info"]) or not root["info"][index]["recipient"]:
        raise ApplyError("not_found", "recipient_not_found", {"index": index})
    return root["info"][index]


def remove_recipient(state: Json, caller: str, index: int) -> None:
    root = get_root(state)
    authority.require_role(state, caller, "governor", "guardian")
    info = _info_at(root, index)
    info["recipient"] = ""
    info["rate"] = 0
    root["adjustments"].pop(str(index), None)
    emit(state, root["address"], "RecipientRemoved", index=index)


def set_adjustment(state: Json, caller: str, index: int, add: bool, rate: int, target: int) -> None:
    root = get_root(state)
    authority.require_role(state, caller, "governor", "guardian")
    info = _info_at(root, index)
    current = int(info["rate"])
    if authority.has_role(state, caller, "guardian") and not authority.has_role(state, caller, "governor"):
        if int(rate) > current // GUARDIAN_ADJUSTMENT_DIVISOR:
            raise LimitExceededError("adjustment_exceeds_limiter", {"rate": int(rate), "max": current // GUARDIAN_ADJUSTMENT_DIVISOR})
    if not add and int(rate) > current:
        raise LimitExceededError("decrease_exceeds_rate", {"rate": int(rate), "current": current})
    root["adjustments"][str(index)] = {"add": bool(add), "rate": int(rate), "target": int(target)}
    emit(state, root["address"], "AdjustmentSet", index=index, add=bool(add), rate=int(rate), target=int(target))


def _apply_distributor_set_bounty(state: Json, env: TxEnvelope) -> Json:
    bounty = tokens.parse_amount(_as_dict(env.payload), "bounty")
    set_bounty(state, env.signer, bounty)
    return {"applied": "DISTRIBUTOR_SET_BOUNTY", "bounty": bounty}


def _apply_distributor_add_recipient(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    recipient = tokens.parse_address(p, "recipient")
    rate = tokens.parse_amount(p, "rate")
    idx = add_recipient(state, env.signer, recipient, rate)
    return {"applied": "DISTRIBUTOR_ADD_RECIPIENT", "index": idx, "recipient": recipient, "rate": rate}


def _apply_distributor_remove_recipient(state: Json, env: TxEnvelope) -> Json:
    idx = tokens.parse_amount(_as_dict(env.payload), "index")
    remove_recipient(state, env.signer, idx)
    return {"applied": "DISTRIBUTOR_REMOVE_RECIPIENT", "index": idx}


def _apply_distributor_set_adjustment(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    idx = tokens.parse_amount(p, "index")
    add = _as_bool(p.get("add"), False)
    rate = tokens.parse_amount(p, "rate")
    target = tokens.parse_amount(p, "target")
    set_adjustment(state, env.signer, idx, add, rate, target)
    return {"applied": "DISTRIBUTOR_SET_ADJUSTMENT", "index": idx, "add": add, "rate": rate, "target": target}


DISTRIBUTOR_TX_TYPES: Set[str] = {
    "DISTRIBUTOR_SET_BOUNTY",
    "DISTRIBUTOR_ADD_RECIPIENT",
    "DISTRIBUTOR_REMOVE_RECIPIENT",
    "DISTRIBUTOR_SET_ADJUSTMENT",
}


def apply_distributor(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = _as_str(env.tx_type).upper()
    if t not in DISTRIBUTOR_TX_TYPES:
        return None

    if t == "DISTRIBUTOR_SET_BOUNTY":
        return _apply_distributor_set_bounty(state, env)
    if t == "DISTRIBUTOR_ADD_RECIPIENT":
        return _apply_distributor_add_recipient(state, env)
    if t == "DISTRIBUTOR_REMOVE_RECIPIENT":
        return _apply_distributor_remove_recipient(state, env)
    if t == "DISTRIBUTOR_SET_ADJUSTMENT":
        return _apply_distributor_set_adjustment(state, env)

    return None


__all__ = [
    "DISTRIBUTOR_TX_TYPES",
    "add_recipient",
    "apply_distributor",
    "construct_distributor",
    "distribute",
    "next_reward_at",
    "next_reward_for",
    "remove_recipient",
    "retrieve_bounty",
    "set_adjustment",
    "set_bounty",
]
