# src/fiscus/runtime/apply/staking.py
from __future__ import annotations

"""Staking engine.

Deposit lifecycle (per recipient):

  None -> Warmup -> Claimable -> ClaimedRebasing | ClaimedWrapped
          Warmup -> Forfeited

A stake lands in warmup unless the caller asks to claim and the warmup period
is zero. Warmup deposits are held as gons, so they keep accruing rebases until
claimed; a forfeit refunds only the original FISC deposit.

Epochs are block-based. `rebase` does nothing until the current height reaches
`epoch.end`; after that each call advances exactly one epoch.
"""

from typing import Any, Dict, Optional, Set

from fiscus.ledger.constants import ZERO_ADDRESS
from fiscus.runtime.apply import authority, distributor, gtoken, stoken, tokens
from fiscus.runtime.errors import ApplyError, ConstructionError, LockedError, StateError
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


def _height(state: Json) -> int:
    return int(state.get("height", 0) or 0)


def construct_staking(
    state: Json,
    address: str,
    *,
    fisc: str,
    sfisc: str,
    gfisc: str,
    epoch_length: int,
    first_epoch_number: int,
    first_epoch_block: int,
) -> Json:
    for field, addr in (("address", address), ("fisc", fisc), ("sfisc", sfisc), ("gfisc", gfisc)):
        if _is_null(addr):
            raise ConstructionError("null_address", {"component": "staking", "field": field})
    if not authority.role_holder(state, "governor"):
        raise ConstructionError("null_address", {"component": "staking", "field": "authority"})
    if int(epoch_length) <= 0:
        raise ConstructionError("zero_epoch_length", {"epoch_length": epoch_length})

    root: Json = {
        "address": address,
        "fisc": fisc,
        "sfisc": sfisc,
        "gfisc": gfisc,
        "distributor": "",
        "epoch": {
            "length": int(epoch_length),
            "number": int(first_epoch_number),
            "end": int(first_epoch_block),
            "distribute": 0,
        },
        "warmup_period": 0,
        "gons_in_warmup": 0,
        "warmup_info": {},
    }
    state["staking"] = root
    state.setdefault("contracts", {})["staking"] = address
    return root


def get_root(state: Json) -> Json:
    root = state.get("staking")
    if not isinstance(root, dict) or not root.get("address"):
        raise StateError("staking_not_constructed")
    return root


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def epoch(state: Json) -> Json:
    return dict(get_root(state)["epoch"])


def index(state: Json) -> int:
    return stoken.index(state)


def supply_in_warmup(state: Json) -> int:
    root = state.get("staking")
    if not isinstance(root, dict) or not root.get("address"):
        return 0
    return stoken.balance_for_gons(state, int(root["gons_in_warmup"]))


def warmup_info(state: Json, account: str) -> Json:
    rec = _as_dict(get_root(state)["warmup_info"].get(account))
    return {
        "deposit": int(rec.get("deposit", 0)),
        "gons": int(rec.get("gons", 0)),
        "expiry": int(rec.get("expiry", 0)),
        "lock": bool(rec.get("lock", False)),
    }


def blocks_to_next_epoch(state: Json) -> int:
    return max(0, int(get_root(state)["epoch"]["end"]) - _height(state))


def _check_lock(root: Json, caller: str, to: str, reason: str) -> None:
    if to == caller:
        return
    if bool(_as_dict(root["warmup_info"].get(caller)).get("lock", False)):
        raise LockedError(reason, {"caller": caller, "to": to})


def _send(state: Json, root: Json, to: str, amount: int, rebasing: bool) -> int:
    if rebasing:
        stoken.transfer(state, root["address"], to, amount)
        return int(amount)
    g = gtoken.balance_to(state, amount)
    gtoken.mint(state, root["address"], to, g)
    return g


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def stake(state: Json, caller: str, to: str, amount: int, rebasing: bool, claim: bool) -> int:
    root = get_root(state)
    _check_lock(root, caller, to, "external_deposits_locked")

    tokens.transfer_from(state, root["fisc"], root["address"], caller, root["address"], amount)
    amount = int(amount) + rebase(state)

    if claim and int(root["warmup_period"]) == 0:
        out = _send(state, root, to, amount, rebasing)
        emit(state, root["address"], "Staked", staker=caller, to=to, amount=amount, warmup=False)
        return out

    gons = stoken.gons_for_balance(state, amount)
    info = root["warmup_info"].setdefault(to, {"deposit": 0, "gons": 0, "expiry": 0, "lock": False})
    info["deposit"] = int(info.get("deposit", 0)) + amount
    info["gons"] = int(info.get("gons", 0)) + gons
    info["expiry"] = int(root["epoch"]["number"]) + int(root["warmup_period"])
    root["gons_in_warmup"] = int(root["gons_in_warmup"]) + gons
    emit(state, root["address"], "Staked", staker=caller, to=to, amount=amount, warmup=True, expiry=info["expiry"])
    return amount


def claim(state: Json, caller: str, to: str, rebasing: bool) -> int:
    """Release a matured warmup deposit. Returns 0 when nothing is claimable."""
    root = get_root(state)
    _check_lock(root, caller, to, "external_claims_locked")

    info = _as_dict(root["warmup_info"].get(to))
    gons = int(info.get("gons", 0))
    if gons == 0 or int(root["epoch"]["number"]) < int(info.get("expiry", 0)):
        return 0

    root["warmup_info"][to] = {"deposit": 0, "gons": 0, "expiry": 0, "lock": bool(info.get("lock", False))}
    root["gons_in_warmup"] = int(root["gons_in_warmup"]) - gons
    amount = stoken.balance_for_gons(state, gons)
    out = _send(state, root, to, amount, rebasing)
    emit(state, root["address"], "Claimed", to=to, amount=amount, rebasing=bool(rebasing))
    return out


def forfeit(state: Json, caller: str) -> int:
    """Drop the caller's warmup deposit and refund the FISC principal."""
    root = get_root(state)
    info = _as_dict(root["warmup_info"].get(caller))
    deposit = int(info.get("deposit", 0))
    gons = int(info.get("gons", 0))

    if info:
        root["warmup_info"][caller] = {"deposit": 0, "gons": 0, "expiry": 0, "lock": bool(info.get("lock", False))}
    root["gons_in_warmup"] = int(root["gons_in_warmup"]) - gons

    tokens.transfer(state, root["fisc"], root["address"], caller, deposit)
    emit(state, root["address"], "Forfeited", account=caller, amount=deposit)
    return deposit


def toggle_lock(state: Json, caller: str) -> bool:
    root = get_root(state)
    info = root["warmup_info"].setdefault(caller, {"deposit": 0, "gons": 0, "expiry": 0, "lock": False})
    info["lock"] = not bool(info.get("lock", False))
    emit(state, root["address"], "LockToggled", account=caller, lock=info["lock"])
    return info["lock"]


def unstake(state: Json, caller: str, to: str, amount: int, trigger: bool, rebasing: bool) -> int:
    """Redeem sFISC or gFISC for FISC.

    Pays min(requested + bounty, engine FISC balance); a shortfall is not an error.
    """
    root = get_root(state)
    bounty = rebase(state) if trigger else 0

    if rebasing:
        stoken.transfer_from(state, root["address"], caller, root["address"], amount)
        owed = int(amount) + bounty
    else:
        gtoken.burn(state, root["address"], caller, amount)
        owed = gtoken.balance_from(state, amount) + bounty

    available = tokens.balance_of(state, root["fisc"], root["address"])
    paid = min(owed, available)
    tokens.transfer(state, root["fisc"], root["address"], to, paid)
    emit(state, root["address"], "Unstaked", account=caller, to=to, amount=paid, requested=owed, rebasing=bool(rebasing))
    return paid


def wrap(state: Json, caller: str, to: str, amount: int) -> int:
    root = get_root(state)
    stoken.transfer_from(state, root["address"], caller, root["address"], amount)
    g = gtoken.balance_to(state, amount)
    gtoken.mint(state, root["address"], to, g)
    emit(state, root["address"], "Wrapped", account=caller, to=to, amount=int(amount), wrapped=g)
    return g


def unwrap(state: Json, caller: str, to: str, amount: int) -> int:
    root = get_root(state)
    gtoken.burn(state, root["address"], caller, amount)
    s = gtoken.balance_from(state, amount)
    stoken.transfer(state, root["address"], to, s)
    emit(state, root["address"], "Unwrapped", account=caller, to=to, amount=int(amount), unwrapped=s)
    return s


def rebase(state: Json) -> int:
    """Advance one epoch if due. Returns the bounty paid to the engine."""
    root = get_root(state)
    ep = root["epoch"]
    if int(ep["end"]) > _height(state):
        return 0

    stoken.rebase(state, root["address"], int(ep["distribute"]), int(ep["number"]))
    ep["end"] = int(ep["end"]) + int(ep["length"])
    ep["number"] = int(ep["number"]) + 1

    bounty = 0
    if root.get("distributor"):
        distributor.distribute(state, root["address"])
        bounty = distributor.retrieve_bounty(state, root["address"])

    balance = tokens.balance_of(state, root["fisc"], root["address"])
    staked = stoken.circulating_supply(state)
    ep["distribute"] = max(0, balance - staked - bounty)

    emit(
        state,
        root["address"],
        "Rebased",
        epoch=int(ep["number"]),
        end=int(ep["end"]),
        distribute=int(ep["distribute"]),
        index=stoken.index(state),
        bounty=bounty,
    )
    return bounty


def set_distributor(state: Json, caller: str, addr: str) -> None:
    root = get_root(state)
    authority.require_role(state, caller, "governor")
    root["distributor"] = addr
    emit(state, root["address"], "DistributorSet", distributor=addr)


def set_warmup_length(state: Json, caller: str, period: int) -> None:
    root = get_root(state)
    authority.require_role(state, caller, "governor")
    root["warmup_period"] = int(period)
    emit(state, root["address"], "WarmupSet", warmup=int(period))


# ---------------------------------------------------------------------------
# Tx handlers
# ---------------------------------------------------------------------------


def _recipient(p: Json, env: TxEnvelope) -> str:
    to = _as_str(p.get("to"))
    return to or env.signer


def _apply_stake(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    to = _recipient(p, env)
    amount = tokens.parse_amount(p)
    rebasing = _as_bool(p.get("rebasing"), True)
    do_claim = _as_bool(p.get("claim"), False)
    out = stake(state, env.signer, to, amount, rebasing, do_claim)
    return {"applied": "STAKE", "to": to, "amount": out, "warmup": warmup_info(state, to)}


def _apply_claim(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    to = _recipient(p, env)
    rebasing = _as_bool(p.get("rebasing"), True)
    out = claim(state, env.signer, to, rebasing)
    return {"applied": "CLAIM", "to": to, "amount": out}


def _apply_forfeit(state: Json, env: TxEnvelope) -> Json:
    return {"applied": "FORFEIT", "amount": forfeit(state, env.signer)}


def _apply_toggle_lock(state: Json, env: TxEnvelope) -> Json:
    return {"applied": "TOGGLE_LOCK", "lock": toggle_lock(state, env.signer)}


def _apply_unstake(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    to = _recipient(p, env)
    amount = tokens.parse_amount(p)
    trigger = _as_bool(p.get("trigger"), False)
    rebasing = _as_bool(p.get("rebasing"), True)
    paid = unstake(state, env.signer, to, amount, trigger, rebasing)
    return {"applied": "UNSTAKE", "to": to, "amount": paid}


def _apply_wrap(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    to = _recipient(p, env)
    amount = tokens.parse_amount(p)
    return {"applied": "WRAP", "to": to, "amount": wrap(state, env.signer, to, amount)}


def _apply_unwrap(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    to = _recipient(p, env)
    amount = tokens.parse_amount(p)
    return {"applied": "UNWRAP", "to": to, "amount": unwrap(state, env.signer, to, amount)}


def _apply_rebase(state: Json, env: TxEnvelope) -> Json:
    before = int(get_root(state)["epoch"]["number"])
    bounty = rebase(state)
    ep = epoch(state)
    return {"applied": "REBASE", "advanced": int(ep["number"]) != before, "epoch": ep, "bounty": bounty}


def _apply_staking_set_distributor(state: Json, env: TxEnvelope) -> Json:
    addr = tokens.parse_address(_as_dict(env.payload), "distributor")
    set_distributor(state, env.signer, addr)
    return {"applied": "STAKING_SET_DISTRIBUTOR", "distributor": addr}


def _apply_staking_set_warmup_length(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    if p.get("warmup") is None:
        raise ApplyError("invalid_payload", "missing_warmup", {"tx_type": env.tx_type})
    period = tokens.parse_amount(p, "warmup")
    set_warmup_length(state, env.signer, period)
    return {"applied": "STAKING_SET_WARMUP_LENGTH", "warmup": period}


STAKING_TX_TYPES: Set[str] = {
    "STAKE",
    "CLAIM",
    "FORFEIT",
    "TOGGLE_LOCK",
    "UNSTAKE",
    "WRAP",
    "UNWRAP",
    "REBASE",
    "STAKING_SET_DISTRIBUTOR",
    "STAKING_SET_WARMUP_LENGTH",
}


def apply_staking(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = _as_str(env.tx_type).upper()
    if t not in STAKING_TX_TYPES:
        return None

    if t == "STAKE":
        return _apply_stake(state, env)
    if t == "CLAIM":
        return _apply_claim(state, env)
    if t == "FORFEIT":
        return _apply_forfeit(state, env)
    if t == "TOGGLE_LOCK":
        return _apply_toggle_lock(state, env)
    if t == "UNSTAKE":
        return _apply_unstake(state, env)
    if t == "WRAP":
        return _apply_wrap(state, env)
    if t == "UNWRAP":
        return _apply_unwrap(state, env)

    if t == "REBASE":
        return _apply_rebase(state, env)
    if t == "STAKING_SET_DISTRIBUTOR":
        return _apply_staking_set_distributor(state, env)
    if t == "STAKING_SET_WARMUP_LENGTH":
        return _apply_staking_set_warmup_length(state, env)

    return None


__all__ = [
    "STAKING_TX_TYPES",
    "apply_staking",
    "blocks_to_next_epoch",
    "claim",
    "construct_staking",
    "epoch",
    "forfeit",
    "index",
    "rebase",
    "set_distributor",
    "set_warmup_length",
    "stake",
    "supply_in_warmup",
    "toggle_lock",
    "unstake",
    "unwrap",
    "warmup_info",
    "wrap",
]
