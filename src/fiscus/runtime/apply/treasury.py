# src/fiscus/runtime/apply/treasury.py
from __future__ import annotations

"""Treasury: reserves, reward minting, sFISC-collateralized debt, permissions.

Accounting:
  total_reserves    FISC-denominated value of reserve holdings
  total_debt        outstanding debt across all debtors
  fisc_debt         the part of total_debt that was minted as FISC
  excess_reserves = total_reserves - (FISC supply - total_debt)

Permissions are `(status, address) -> bool` flags keyed by the numeric
categories in ledger.constants. While the timelock is enabled, new
permissions go through a queue (`queue_timelock` -> `execute`).
"""

from typing import Any, Dict, List, Optional, Set

from fiscus.ledger.constants import (
    FISC_DECIMALS,
    FISCDEBTOR,
    LIQUIDITYDEPOSITOR,
    LIQUIDITYMANAGER,
    LIQUIDITYTOKEN,
    MANAGER_STATUSES,
    RESERVEDEBTOR,
    RESERVEDEPOSITOR,
    RESERVEMANAGER,
    RESERVESPENDER,
    RESERVETOKEN,
    REWARDMANAGER,
    SFISC,
    STATUS_NAMES,
    ZERO_ADDRESS,
)
from fiscus.runtime.apply import authority, stoken, tokens
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


def construct_treasury(state: Json, address: str, *, fisc: str, blocks_needed_for_queue: int) -> Json:
    if _is_null(address) or _is_null(fisc):
        raise ConstructionError("null_address", {"component": "treasury"})
    if int(blocks_needed_for_queue) < 0:
        raise ConstructionError("negative_timelock", {"blocks_needed_for_queue": blocks_needed_for_queue})

    root: Json = {
        "address": address,
        "fisc": fisc,
        "sfisc": "",
        "blocks_needed_for_queue": int(blocks_needed_for_queue),
        "timelock_enabled": False,
        "initialized": False,
        "disable_timelock_at": None,
        "total_reserves": 0,
        "total_debt": 0,
        "fisc_debt": 0,
        "permissions": {},
        "registry": {},
        "calculators": {},
        "debt_limit": {},
        "queue": [],
    }
    state["treasury"] = root
    state.setdefault("contracts", {})["treasury"] = address
    return root


def get_root(state: Json) -> Json:
    root = state.get("treasury")
    if not isinstance(root, dict) or not root.get("address"):
        raise StateError("treasury_not_constructed")
    return root


def _status(v: Any) -> int:
    s = _as_int(v, -1)
    if s not in STATUS_NAMES:
        raise ApplyError("invalid_payload", "unknown_status", {"status": v})
    return s


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def permitted(state: Json, status: int, address: str) -> bool:
    perms = _as_dict(get_root(state)["permissions"].get(str(int(status))))
    return bool(perms.get(_as_str(address), False))


def registry(state: Json, status: int) -> List[str]:
    return list(get_root(state)["registry"].get(str(int(status)), []))


def debt_limit(state: Json, account: str) -> int:
    return int(get_root(state)["debt_limit"].get(account, 0))


def token_value(state: Json, token: str, amount: int) -> int:
    """FISC-denominated value of `amount` of `token` (decimal normalization)."""
    return int(amount) * 10**FISC_DECIMALS // 10 ** tokens.decimals(state, token)


def excess_reserves(state: Json) -> int:
    root = get_root(state)
    backed = tokens.total_supply(state, root["fisc"]) - int(root["total_debt"])
    return max(0, int(root["total_reserves"]) - backed)


def base_supply(state: Json) -> int:
    root = get_root(state)
    return tokens.total_supply(state, root["fisc"]) - int(root["fisc_debt"])


def summary(state: Json) -> Json:
    root = get_root(state)
    return {
        "address": root["address"],
        "total_reserves": int(root["total_reserves"]),
        "total_debt": int(root["total_debt"]),
        "fisc_debt": int(root["fisc_debt"]),
        "excess_reserves": excess_reserves(state),
        "base_supply": base_supply(state),
        "timelock_enabled": bool(root["timelock_enabled"]),
        "blocks_needed_for_queue": int(root["blocks_needed_for_queue"]),
        "sfisc": root.get("sfisc") or "",
        "queue_length": len(root["queue"]),
    }


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def _require_permission(state: Json, status: int, address: str, reason: str = "not_approved") -> None:
    if not permitted(state, status, address):
        raise AuthorizationError(reason, {"status": STATUS_NAMES[status], "address": address})


def _sub_reserves(root: Json, value: int) -> None:
    have = int(root["total_reserves"])
    if value > have:
        raise LimitExceededError("insufficient_reserves", {"total_reserves": have, "value": value})
    root["total_reserves"] = have - value


def deposit(state: Json, caller: str, amount: int, token: str, profit: int) -> int:
    """Pull reserve `amount`, mint `value - profit` FISC to the caller."""
    root = get_root(state)
    if permitted(state, RESERVETOKEN, token):
        _require_permission(state, RESERVEDEPOSITOR, caller)
    elif permitted(state, LIQUIDITYTOKEN, token):
        _require_permission(state, LIQUIDITYDEPOSITOR, caller)
    else:
        raise AuthorizationError("token_not_accepted", {"token": token})

    tokens.transfer_from(state, token, root["address"], caller, root["address"], amount)

    value = token_value(state, token, amount)
    if int(profit) > value:
        raise ApplyError("invalid_payload", "profit_exceeds_value", {"value": value, "profit": int(profit)})
    send = value - int(profit)
    tokens.mint_checked(state, root["fisc"], root["address"], caller, send)

    root["total_reserves"] = int(root["total_reserves"]) + value
    emit(state, root["address"], "Deposit", token=token, amount=int(amount), value=value)
    return send


def withdraw(state: Json, caller: str, amount: int, token: str) -> int:
    """Burn the FISC value of `amount` from the caller and release the reserve."""
    root = get_root(state)
    _require_permission(state, RESERVETOKEN, token, reason="token_not_accepted")
    _require_permission(state, RESERVESPENDER, caller)

    value = token_value(state, token, amount)
    tokens.burn_from(state, root["fisc"], root["address"], caller, value)
    _sub_reserves(root, value)
    tokens.transfer(state, token, root["address"], caller, amount)
    emit(state, root["address"], "Withdrawal", token=token, amount=int(amount), value=value)
    return value


def manage(state: Json, caller: str, token: str, amount: int) -> None:
    root = get_root(state)
    if permitted(state, LIQUIDITYTOKEN, token):
        _require_permission(state, LIQUIDITYMANAGER, caller)
    else:
        _require_permission(state, RESERVEMANAGER, caller)

    if permitted(state, RESERVETOKEN, token) or permitted(state, LIQUIDITYTOKEN, token):
        value = token_value(state, token, amount)
        if value > excess_reserves(state):
            raise LimitExceededError("insufficient_reserves", {"value": value, "excess_reserves": excess_reserves(state)})
        _sub_reserves(root, value)

    tokens.transfer(state, token, root["address"], caller, amount)
    emit(state, root["address"], "Managed", token=token, amount=int(amount))


def mint(state: Json, caller: str, recipient: str, amount: int) -> None:
    """Reward mint, bounded by excess reserves."""
    root = get_root(state)
    _require_permission(state, REWARDMANAGER, caller)
    excess = excess_reserves(state)
    if int(amount) > excess:
        raise LimitExceededError("insufficient_reserves", {"amount": int(amount), "excess_reserves": excess})
    tokens.mint_checked(state, root["fisc"], root["address"], recipient, amount)
    emit(state, root["address"], "Minted", caller=caller, recipient=recipient, amount=int(amount))


def _require_collateral_ledger(state: Json, root: Json) -> None:
    if not root.get("sfisc"):
        raise StateError("sfisc_not_set")
    if root["sfisc"] != stoken.address_of(state):
        raise StateError("sfisc_mismatch", {"treasury": root["sfisc"], "ledger": stoken.address_of(state)})


def incur_debt(state: Json, caller: str, amount: int, token: str) -> int:
    """Borrow against sFISC.

    The collateral check runs before the limit check, so "insufficient_balance"
    and "exceeds_limit" are reachable independently.
    """
    root = get_root(state)
    is_fisc = _as_str(token) == _as_str(root["fisc"])
    if is_fisc:
        _require_permission(state, FISCDEBTOR, caller)
        value = int(amount)
    else:
        _require_permission(state, RESERVEDEBTOR, caller)
        _require_permission(state, RESERVETOKEN, token, reason="token_not_accepted")
        value = token_value(state, token, amount)
    if value == 0:
        raise ApplyError("invalid_payload", "zero_debt_value", {"token": token, "amount": int(amount)})

    _require_collateral_ledger(state, root)
    stoken.change_debt(state, root["address"], value, caller, True)

    debt = stoken.debt_balance(state, caller)
    limit = debt_limit(state, caller)
    if debt > limit:
        raise LimitExceededError("exceeds_limit", {"account": caller, "debt": debt, "limit": limit})

    root["total_debt"] = int(root["total_debt"]) + value
    if is_fisc:
        tokens.mint_checked(state, root["fisc"], root["address"], caller, value)
        root["fisc_debt"] = int(root["fisc_debt"]) + value
    else:
        _sub_reserves(root, value)
        tokens.transfer(state, token, root["address"], caller, amount)

    emit(state, root["address"], "CreateDebt", debtor=caller, token=token, amount=int(amount), value=value)
    return value


def repay_debt_with_reserve(state: Json, caller: str, amount: int, token: str) -> int:
    root = get_root(state)
    _require_permission(state, RESERVEDEBTOR, caller)
    _require_permission(state, RESERVETOKEN, token, reason="token_not_accepted")
    _require_collateral_ledger(state, root)

    tokens.transfer_from(state, token, root["address"], caller, root["address"], amount)
    value = token_value(state, token, amount)
    stoken.change_debt(state, root["address"], value, caller, False)
    root["total_debt"] = int(root["total_debt"]) - value
    root["total_reserves"] = int(root["total_reserves"]) + value
    emit(state, root["address"], "RepayDebt", debtor=caller, token=token, amount=int(amount), value=value)
    return value


def repay_debt_with_fisc(state: Json, caller: str, amount: int) -> int:
    root = get_root(state)
    if not (permitted(state, RESERVEDEBTOR, caller) or permitted(state, FISCDEBTOR, caller)):
        raise AuthorizationError("not_approved", {"status": "RESERVEDEBTOR|FISCDEBTOR", "address": caller})
    _require_collateral_ledger(state, root)

    tokens.burn_from(state, root["fisc"], root["address"], caller, amount)
    stoken.change_debt(state, root["address"], amount, caller, False)
    root["total_debt"] = int(root["total_debt"]) - int(amount)
    # fisc_debt floors at zero when reserve-backed debt is repaid in FISC.
    root["fisc_debt"] = max(0, int(root["fisc_debt"]) - int(amount))
    emit(state, root["address"], "RepayDebt", debtor=caller, token=root["fisc"], amount=int(amount), value=int(amount))
    return int(amount)


def audit_reserves(state: Json, caller: str) -> int:
    root = get_root(state)
    authority.require_role(state, caller, "governor")
    reserves = 0
    for status in (RESERVETOKEN, LIQUIDITYTOKEN):
        for token in registry(state, status):
            if permitted(state, status, token):
                reserves += token_value(state, token, tokens.balance_of(state, token, root["address"]))
    root["total_reserves"] = reserves
    emit(state, root["address"], "ReservesAudited", total_reserves=reserves)
    return reserves


def set_debt_limit(state: Json, caller: str, account: str, limit: int) -> None:
    root = get_root(state)
    authority.require_role(state, caller, "governor", "policy")
    root["debt_limit"][account] = int(limit)
    emit(state, root["address"], "DebtLimitSet", account=account, limit=int(limit))


def _grant(state: Json, root: Json, status: int, address: str, calculator: str) -> None:
    if status == SFISC:
        root["sfisc"] = address
    else:
        root["permissions"].setdefault(str(status), {})[address] = True
        if status == LIQUIDITYTOKEN:
            root["calculators"][address] = calculator
        reg = root["registry"].setdefault(str(status), [])
        if address not in reg:
            reg.append(address)
    emit(state, root["address"], "Permissioned", address=address, status=status, result=True)


def enable(state: Json, caller: str, status: int, address: str, calculator: str = "") -> None:
    root = get_root(state)
    authority.require_role(state, caller, "governor", "policy")
    if bool(root["timelock_enabled"]):
        raise StateError("timelock_enabled", {"hint": "use TREASURY_QUEUE_TIMELOCK"})
    if _is_null(address):
        raise ApplyError("invalid_payload", "null_address", {"status": status})
    _grant(state, root, status, address, calculator)


def disable(state: Json, caller: str, status: int, address: str) -> None:
    root = get_root(state)
    authority.require_role(state, caller, "governor", "guardian")
    if status == SFISC:
        if root.get("sfisc") == address:
            root["sfisc"] = ""
    else:
        root["permissions"].setdefault(str(status), {})[address] = False
    emit(state, root["address"], "Permissioned", address=address, status=status, result=False)


def queue_timelock(state: Json, caller: str, status: int, address: str, calculator: str = "") -> int:
    root = get_root(state)
    authority.require_role(state, caller, "governor")
    if _is_null(address):
        raise ApplyError("invalid_payload", "null_address", {"status": status})
    if not bool(root["timelock_enabled"]):
        raise StateError("timelock_disabled", {"hint": "use TREASURY_ENABLE"})

    delay = int(root["blocks_needed_for_queue"])
    if status in MANAGER_STATUSES:
        delay *= 2
    height = int(state.get("height", 0) or 0)
    rec: Json = {
        "index": len(root["queue"]),
        "managing": status,
        "to_permit": address,
        "calculator": calculator,
        "timelock_end": height + delay,
        "nullify": False,
        "executed": False,
    }
    root["queue"].append(rec)
    emit(state, root["address"], "PermissionQueued", status=status, queued=address)
    return rec["index"]


def _queued(root: Json, index: int) -> Json:
    q = root["queue"]
    if index < 0 or index >= len(q):
        raise ApplyError("not_found", "queue_index_not_found", {"index": index, "length": len(q)})
    return q[index]


def execute(state: Json, index: int) -> Json:
    root = get_root(state)
    if not bool(root["timelock_enabled"]):
        raise StateError("timelock_disabled", {"hint": "use TREASURY_ENABLE"})
    rec = _queued(root, index)
    if bool(rec["nullify"]):
        raise StateError("action_nullified", {"index": index})
    if bool(rec["executed"]):
        raise StateError("action_executed", {"index": index})
    height = int(state.get("height", 0) or 0)
    if height < int(rec["timelock_end"]):
        raise StateError("timelock_not_complete", {"index": index, "timelock_end": rec["timelock_end"], "height": height})

    _grant(state, root, int(rec["managing"]), rec["to_permit"], rec.get("calculator") or "")
    rec["executed"] = True
    return rec


def nullify(state: Json, caller: str, index: int) -> None:
    root = get_root(state)
    authority.require_role(state, caller, "governor")
    _queued(root, index)["nullify"] = True


def disable_timelock(state: Json, caller: str) -> bool:
    """Two-step: the first call arms a delay of 7x the queue length, a later call disables.

    Returns True once the timelock is actually disabled.
    """
    root = get_root(state)
    authority.require_role(state, caller, "governor")
    if not bool(root["timelock_enabled"]):
        raise StateError("timelock_already_disabled")
    height = int(state.get("height", 0) or 0)
    pending = root.get("disable_timelock_at")
    if pending is not None and int(pending) <= height:
        root["timelock_enabled"] = False
        root["disable_timelock_at"] = None
        return True
    root["disable_timelock_at"] = height + int(root["blocks_needed_for_queue"]) * 7
    return False


def initialize(state: Json, caller: str) -> None:
    root = get_root(state)
    authority.require_role(state, caller, "governor")
    if bool(root["initialized"]):
        raise StateError("already_initialized")
    root["timelock_enabled"] = True
    root["initialized"] = True


# ---------------------------------------------------------------------------
# Tx handlers
# ---------------------------------------------------------------------------


def _apply_treasury_deposit(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    token = tokens.parse_address(p, "token")
    amount = tokens.parse_amount(p)
    profit = tokens.parse_amount(p, "profit")
    send = deposit(state, env.signer, amount, token, profit)
    return {"applied": "TREASURY_DEPOSIT", "token": token, "amount": amount, "minted": send}


def _apply_treasury_withdraw(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    token = tokens.parse_address(p, "token")
    amount = tokens.parse_amount(p)
    value = withdraw(state, env.signer, amount, token)
    return {"applied": "TREASURY_WITHDRAW", "token": token, "amount": amount, "value": value}


def _apply_treasury_manage(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    token = tokens.parse_address(p, "token")
    amount = tokens.parse_amount(p)
    manage(state, env.signer, token, amount)
    return {"applied": "TREASURY_MANAGE", "token": token, "amount": amount}


def _apply_treasury_mint(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    recipient = tokens.parse_address(p, "recipient")
    amount = tokens.parse_amount(p)
    mint(state, env.signer, recipient, amount)
    return {"applied": "TREASURY_MINT", "recipient": recipient, "amount": amount}


def _apply_treasury_incur_debt(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    token = tokens.parse_address(p, "token")
    amount = tokens.parse_amount(p)
    value = incur_debt(state, env.signer, amount, token)
    return {"applied": "TREASURY_INCUR_DEBT", "token": token, "amount": amount, "value": value}


def _apply_treasury_repay_debt_with_reserve(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    token = tokens.parse_address(p, "token")
    amount = tokens.parse_amount(p)
    value = repay_debt_with_reserve(state, env.signer, amount, token)
    return {"applied": "TREASURY_REPAY_DEBT_WITH_RESERVE", "token": token, "amount": amount, "value": value}


def _apply_treasury_repay_debt_with_fisc(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    amount = tokens.parse_amount(p)
    value = repay_debt_with_fisc(state, env.signer, amount)
    return {"applied": "TREASURY_REPAY_DEBT_WITH_FISC", "amount": amount, "value": value}


def _apply_treasury_audit_reserves(state: Json, env: TxEnvelope) -> Json:
    reserves = audit_reserves(state, env.signer)
    return {"applied": "TREASURY_AUDIT_RESERVES", "total_reserves": reserves}


def _apply_treasury_set_debt_limit(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    account = tokens.parse_address(p, "account")
    limit = tokens.parse_amount(p, "limit")
    set_debt_limit(state, env.signer, account, limit)
    return {"applied": "TREASURY_SET_DEBT_LIMIT", "account": account, "limit": limit}


def _apply_treasury_enable(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    status = _status(p.get("status"))
    address = tokens.parse_address(p, "address")
    enable(state, env.signer, status, address, _as_str(p.get("calculator")))
    return {"applied": "TREASURY_ENABLE", "status": status, "address": address}


def _apply_treasury_disable(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    status = _status(p.get("status"))
    address = tokens.parse_address(p, "address")
    disable(state, env.signer, status, address)
    return {"applied": "TREASURY_DISABLE", "status": status, "address": address}


def _apply_treasury_queue_timelock(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    status = _status(p.get("status"))
    address = tokens.parse_address(p, "address")
    idx = queue_timelock(state, env.signer, status, address, _as_str(p.get("calculator")))
    return {"applied": "TREASURY_QUEUE_TIMELOCK", "index": idx, "status": status, "address": address}


def _apply_treasury_execute(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    idx = tokens.parse_amount(p, "index")
    rec = execute(state, idx)
    return {"applied": "TREASURY_EXECUTE", "index": idx, "status": rec["managing"], "address": rec["to_permit"]}


def _apply_treasury_nullify(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    idx = tokens.parse_amount(p, "index")
    nullify(state, env.signer, idx)
    return {"applied": "TREASURY_NULLIFY", "index": idx}


def _apply_treasury_disable_timelock(state: Json, env: TxEnvelope) -> Json:
    disabled = disable_timelock(state, env.signer)
    return {
        "applied": "TREASURY_DISABLE_TIMELOCK",
        "disabled": disabled,
        "disable_timelock_at": get_root(state).get("disable_timelock_at"),
    }


def _apply_treasury_initialize(state: Json, env: TxEnvelope) -> Json:
    initialize(state, env.signer)
    return {"applied": "TREASURY_INITIALIZE"}


TREASURY_TX_TYPES: Set[str] = {
    "TREASURY_DEPOSIT",
    "TREASURY_WITHDRAW",
    "TREASURY_MANAGE",
    "TREASURY_MINT",
    "TREASURY_INCUR_DEBT",
    "TREASURY_REPAY_DEBT_WITH_RESERVE",
    "TREASURY_REPAY_DEBT_WITH_FISC",
    "TREASURY_AUDIT_RESERVES",
    "TREASURY_SET_DEBT_LIMIT",
    "TREASURY_ENABLE",
    "TREASURY_DISABLE",
    "TREASURY_QUEUE_TIMELOCK",
    "TREASURY_EXECUTE",
    "TREASURY_NULLIFY",
    "TREASURY_DISABLE_TIMELOCK",
    "TREASURY_INITIALIZE",
}


def apply_treasury(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = _as_str(env.tx_type).upper()
    if t not in TREASURY_TX_TYPES:
        return None

    if t == "TREASURY_DEPOSIT":
        return _apply_treasury_deposit(state, env)
    if t == "TREASURY_WITHDRAW":
        return _apply_treasury_withdraw(state, env)
    if t == "TREASURY_MANAGE":
        return _apply_treasury_manage(state, env)
    if t == "TREASURY_MINT":
        return _apply_treasury_mint(state, env)

    if t == "TREASURY_INCUR_DEBT":
        return _apply_treasury_incur_debt(state, env)
    if t == "TREASURY_REPAY_DEBT_WITH_RESERVE":
        return _apply_treasury_repay_debt_with_reserve(state, env)
    if t == "TREASURY_REPAY_DEBT_WITH_FISC":
        return _apply_treasury_repay_debt_with_fisc(state, env)
    if t == "TREASURY_AUDIT_RESERVES":
        return _apply_treasury_audit_reserves(state, env)
    if t == "TREASURY_SET_DEBT_LIMIT":
        return _apply_treasury_set_debt_limit(state, env)

    if t == "TREASURY_ENABLE":
        return _apply_treasury_enable(state, env)
    if t == "TREASURY_DISABLE":
        return _apply_treasury_disable(state, env)
    if t == "TREASURY_QUEUE_TIMELOCK":
        return _apply_treasury_queue_timelock(state, env)
    if t == "TREASURY_EXECUTE":
        return _apply_treasury_execute(state, env)
    if t == "TREASURY_NULLIFY":
        return _apply_treasury_nullify(state, env)
    if t == "TREASURY_DISABLE_TIMELOCK":
        return _apply_treasury_disable_timelock(state, env)
    if t == "TREASURY_INITIALIZE":
        return _apply_treasury_initialize(state, env)

    return None


__all__ = [
    "TREASURY_TX_TYPES",
    "apply_treasury",
    "audit_reserves",
    "base_supply",
    "construct_treasury",
    "debt_limit",
    "deposit",
    "disable",
    "disable_timelock",
    "enable",
    "excess_reserves",
    "execute",
    "incur_debt",
    "initialize",
    "manage",
    "mint",
    "nullify",
    "permitted",
    "queue_timelock",
    "repay_debt_with_fisc",
    "repay_debt_with_reserve",
    "set_debt_limit",
    "summary",
    "token_value",
    "withdraw",
]
