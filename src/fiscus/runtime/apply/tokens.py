# src/fiscus/runtime/apply/tokens.py
from __future__ import annotations

"""Fungible token ledger.

Plain ERC20-style records for the base asset (FISC), reserve assets and the
index-wrapped token. The rebasing ledger keeps its own gon-denominated books
(see stoken.py); TOKEN_* txs addressed to it are forwarded there.

Mint authority per record:
  - mint_role: an authority role (FISC is minted by the vault)
  - minter:    a fixed address (reserve tokens, gFISC's approved minter)
"""

from typing import Any, Dict, Optional, Set

from fiscus.ledger.constants import ZERO_ADDRESS
from fiscus.runtime.apply import authority, stoken
from fiscus.runtime.errors import ApplyError, AuthorizationError, ConstructionError, LimitExceededError
from fiscus.runtime.events import emit
from fiscus.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int, float)) else ""


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def parse_amount(payload: Json, key: str = "amount") -> int:
    """Read a non-negative integer amount; strings of digits are accepted."""
    v = payload.get(key)
    if isinstance(v, bool) or v is None:
        raise ApplyError("invalid_payload", f"missing_{key}", {"field": key})
    try:
        n = int(v)
    except (TypeError, ValueError):
        raise ApplyError("invalid_payload", f"bad_{key}", {"field": key, "value": str(v)[:64]}) from None
    if isinstance(v, float) and float(n) != v:
        raise ApplyError("invalid_payload", f"bad_{key}", {"field": key, "value": v})
    if n < 0:
        raise ApplyError("invalid_payload", f"negative_{key}", {"field": key, "value": n})
    return n


def parse_address(payload: Json, key: str) -> str:
    addr = _as_str(payload.get(key))
    if not addr:
        raise ApplyError("invalid_payload", f"missing_{key}", {"field": key})
    return addr


def is_null(addr: str) -> bool:
    return not addr or addr == ZERO_ADDRESS


def _ensure_tokens_root(state: Json) -> Json:
    root = state.get("tokens")
    if not isinstance(root, dict):
        root = {}
        state["tokens"] = root
    return root


def create_token(
    state: Json,
    address: str,
    *,
    name: str,
    symbol: str,
    decimals: int,
    minter: str = "",
    mint_role: str = "",
    kind: str = "erc20",
) -> Json:
    if is_null(address):
        raise ConstructionError("null_address", {"token": symbol})
    root = _ensure_tokens_root(state)
    if address in root:
        raise ApplyError("conflict", "token_exists", {"token": address})
    rec: Json = {
        "address": address,
        "kind": kind,
        "name": name,
        "symbol": symbol,
        "decimals": int(decimals),
        "total_supply": 0,
        "balances": {},
        "allowances": {},
        "minter": minter,
        "mint_role": mint_role,
    }
    root[address] = rec
    return rec


def get_token(state: Json, token: str) -> Json:
    rec = _as_dict(state.get("tokens")).get(token)
    if not isinstance(rec, dict):
        raise ApplyError("not_found", "token_not_found", {"token": token})
    return rec


def decimals(state: Json, token: str) -> int:
    if stoken.is_stoken(state, token):
        return int(stoken.get_root(state)["decimals"])
    return int(get_token(state, token)["decimals"])


def total_supply(state: Json, token: str) -> int:
    if stoken.is_stoken(state, token):
        return stoken.total_supply(state)
    return int(get_token(state, token)["total_supply"])


def balance_of(state: Json, token: str, who: str) -> int:
    if stoken.is_stoken(state, token):
        return stoken.balance_of(state, who)
    return int(get_token(state, token)["balances"].get(who, 0))


def allowance(state: Json, token: str, owner: str, spender: str) -> int:
    if stoken.is_stoken(state, token):
        return stoken.allowance(state, owner, spender)
    return int(_as_dict(get_token(state, token)["allowances"].get(owner)).get(spender, 0))


def _move(state: Json, rec: Json, sender: str, to: str, amount: int) -> None:
    if is_null(to):
        raise ApplyError("invalid_payload", "transfer_to_zero_address", {"token": rec["address"]})
    balances = rec["balances"]
    have = int(balances.get(sender, 0))
    if have < amount:
        raise LimitExceededError("insufficient_balance", {"token": rec["address"], "account": sender, "balance": have, "amount": amount})
    balances[sender] = have - amount
    balances[to] = int(balances.get(to, 0)) + amount
    emit(state, rec["address"], "Transfer", **{"from": sender, "to": to, "value": amount})


def _set_allowance(state: Json, rec: Json, owner: str, spender: str, amount: int) -> None:
    per_owner = rec["allowances"].setdefault(owner, {})
    per_owner[spender] = int(amount)
    emit(state, rec["address"], "Approval", owner=owner, spender=spender, value=int(amount))


def _spend_allowance(state: Json, rec: Json, owner: str, spender: str, amount: int) -> None:
    have = int(_as_dict(rec["allowances"].get(owner)).get(spender, 0))
    if have < amount:
        raise LimitExceededError(
            "insufficient_allowance",
            {"token": rec["address"], "owner": owner, "spender": spender, "allowance": have, "amount": amount},
        )
    _set_allowance(state, rec, owner, spender, have - amount)


def transfer(state: Json, token: str, sender: str, to: str, amount: int) -> None:
    if stoken.is_stoken(state, token):
        stoken.transfer(state, sender, to, amount)
        return
    _move(state, get_token(state, token), sender, to, int(amount))


def transfer_from(state: Json, token: str, spender: str, owner: str, to: str, amount: int) -> None:
    if stoken.is_stoken(state, token):
        stoken.transfer_from(state, spender, owner, to, amount)
        return
    rec = get_token(state, token)
    _spend_allowance(state, rec, owner, spender, int(amount))
    _move(state, rec, owner, to, int(amount))


def approve(state: Json, token: str, owner: str, spender: str, amount: int) -> None:
    if stoken.is_stoken(state, token):
        stoken.approve(state, owner, spender, amount)
        return
    _set_allowance(state, get_token(state, token), owner, spender, int(amount))


def mint(state: Json, token: str, to: str, amount: int) -> None:
    """Unchecked mint; callers enforce the minter rule (see require_minter)."""
    rec = get_token(state, token)
    if is_null(to):
        raise ApplyError("invalid_payload", "mint_to_zero_address", {"token": token})
    rec["total_supply"] = int(rec["total_supply"]) + int(amount)
    rec["balances"][to] = int(rec["balances"].get(to, 0)) + int(amount)
    emit(state, token, "Transfer", **{"from": ZERO_ADDRESS, "to": to, "value": int(amount)})


def burn(state: Json, token: str, owner: str, amount: int) -> None:
    rec = get_token(state, token)
    have = int(rec["balances"].get(owner, 0))
    if have < int(amount):
        raise LimitExceededError("insufficient_balance", {"token": token, "account": owner, "balance": have, "amount": int(amount)})
    rec["balances"][owner] = have - int(amount)
    rec["total_supply"] = int(rec["total_supply"]) - int(amount)
    emit(state, token, "Transfer", **{"from": owner, "to": ZERO_ADDRESS, "value": int(amount)})


def burn_from(state: Json, token: str, spender: str, owner: str, amount: int) -> None:
    rec = get_token(state, token)
    _spend_allowance(state, rec, owner, spender, int(amount))
    burn(state, token, owner, amount)


def require_minter(state: Json, token: str, caller: str) -> None:
    rec = get_token(state, token)
    role = _as_str(rec.get("mint_role"))
    if role:
        authority.require_role(state, caller, role, reason=f"only_{role}")
        return
    minter = _as_str(rec.get("minter"))
    if not minter or minter != _as_str(caller):
        raise AuthorizationError("not_minter", {"token": token, "caller": caller})


def mint_checked(state: Json, token: str, caller: str, to: str, amount: int) -> None:
    require_minter(state, token, caller)
    mint(state, token, to, amount)


def _apply_token_transfer(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    token = parse_address(p, "token")
    to = parse_address(p, "to")
    amount = parse_amount(p)
    transfer(state, token, env.signer, to, amount)
    return {"applied": "TOKEN_TRANSFER", "token": token, "to": to, "amount": amount}


def _apply_token_transfer_from(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    token = parse_address(p, "token")
    owner = parse_address(p, "from")
    to = parse_address(p, "to")
    amount = parse_amount(p)
    transfer_from(state, token, env.signer, owner, to, amount)
    return {"applied": "TOKEN_TRANSFER_FROM", "token": token, "from": owner, "to": to, "amount": amount}


def _apply_token_approve(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    token = parse_address(p, "token")
    spender = parse_address(p, "spender")
    amount = parse_amount(p)
    approve(state, token, env.signer, spender, amount)
    return {"applied": "TOKEN_APPROVE", "token": token, "spender": spender, "amount": amount}


def _apply_token_allowance_delta(state: Json, env: TxEnvelope, *, increase: bool) -> Json:
    p = _as_dict(env.payload)
    token = parse_address(p, "token")
    spender = parse_address(p, "spender")
    amount = parse_amount(p)
    if stoken.is_stoken(state, token):
        if increase:
            stoken.increase_allowance(state, env.signer, spender, amount)
        else:
            stoken.decrease_allowance(state, env.signer, spender, amount)
    else:
        have = allowance(state, token, env.signer, spender)
        new = have + amount if increase else max(0, have - amount)
        _set_allowance(state, get_token(state, token), env.signer, spender, new)
    t = "TOKEN_INCREASE_ALLOWANCE" if increase else "TOKEN_DECREASE_ALLOWANCE"
    return {"applied": t, "token": token, "spender": spender, "allowance": allowance(state, token, env.signer, spender)}


def _apply_token_mint(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    token = parse_address(p, "token")
    to = parse_address(p, "to")
    amount = parse_amount(p)
    if stoken.is_stoken(state, token):
        raise ApplyError("forbidden", "rebasing_ledger_not_mintable", {"token": token})
    mint_checked(state, token, env.signer, to, amount)
    return {"applied": "TOKEN_MINT", "token": token, "to": to, "amount": amount}


def _apply_token_burn(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    token = parse_address(p, "token")
    amount = parse_amount(p)
    if get_token(state, token).get("kind") != "erc20":
        raise ApplyError("forbidden", "burn_not_supported", {"token": token})
    burn(state, token, env.signer, amount)
    return {"applied": "TOKEN_BURN", "token": token, "amount": amount}


def _apply_token_burn_from(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    token = parse_address(p, "token")
    owner = parse_address(p, "from")
    amount = parse_amount(p)
    if get_token(state, token).get("kind") != "erc20":
        raise ApplyError("forbidden", "burn_not_supported", {"token": token})
    burn_from(state, token, env.signer, owner, amount)
    return {"applied": "TOKEN_BURN_FROM", "token": token, "from": owner, "amount": amount}


TOKEN_TX_TYPES: Set[str] = {
    "TOKEN_TRANSFER",
    "TOKEN_TRANSFER_FROM",
    "TOKEN_APPROVE",
    "TOKEN_INCREASE_ALLOWANCE",
    "TOKEN_DECREASE_ALLOWANCE",
    "TOKEN_MINT",
    "TOKEN_BURN",
    "TOKEN_BURN_FROM",
}


def apply_tokens(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = _as_str(env.tx_type).upper()
    if t not in TOKEN_TX_TYPES:
        return None

    if t == "TOKEN_TRANSFER":
        return _apply_token_transfer(state, env)
    if t == "TOKEN_TRANSFER_FROM":
        return _apply_token_transfer_from(state, env)
    if t == "TOKEN_APPROVE":
        return _apply_token_approve(state, env)
    if t == "TOKEN_INCREASE_ALLOWANCE":
        return _apply_token_allowance_delta(state, env, increase=True)
    if t == "TOKEN_DECREASE_ALLOWANCE":
        return _apply_token_allowance_delta(state, env, increase=False)
    if t == "TOKEN_MINT":
        return _apply_token_mint(state, env)
    if t == "TOKEN_BURN":
        return _apply_token_burn(state, env)
    if t == "TOKEN_BURN_FROM":
        return _apply_token_burn_from(state, env)

    return None


__all__ = [
    "TOKEN_TX_TYPES",
    "allowance",
    "apply_tokens",
    "approve",
    "balance_of",
    "burn",
    "burn_from",
    "create_token",
    "decimals",
    "get_token",
    "is_null",
    "mint",
    "mint_checked",
    "parse_address",
    "parse_amount",
    "require_minter",
    "total_supply",
    "transfer",
    "transfer_from",
]
