# src/fiscus/runtime/apply/gtoken.py
from __future__ import annotations

"""Index-wrapped token (gFISC).

gFISC has a fixed-supply meaning: one gFISC is worth `index / 10**18` sFISC,
where the index is read from the rebasing ledger on every call.

Both conversions truncate toward zero, so a wrap followed by an unwrap never
returns more than was wrapped. The round trip is exact whenever the index
divides `amount * 10**18`; otherwise it comes back short by at most one unit.
"""

from typing import Any, Dict, Optional, Set

from fiscus.ledger.constants import GFISC_DECIMALS, GFISC_NAME, GFISC_SYMBOL, GFISC_UNIT, ZERO_ADDRESS
from fiscus.runtime.apply import stoken, tokens
from fiscus.runtime.errors import AuthorizationError, ConstructionError, StateError
from fiscus.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int, float)) else ""


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _is_null(addr: str) -> bool:
    return not addr or addr == ZERO_ADDRESS


def construct_gtoken(state: Json, address: str, *, migrator: str, sfisc: str) -> Json:
    if _is_null(migrator) or _is_null(sfisc):
        raise ConstructionError("null_address", {"component": "gfisc"})
    rec = tokens.create_token(
        state,
        address,
        name=GFISC_NAME,
        symbol=GFISC_SYMBOL,
        decimals=GFISC_DECIMALS,
        minter=migrator,
        kind="gtoken",
    )
    rec["sfisc"] = sfisc
    rec["migrated"] = False
    state.setdefault("contracts", {})["gfisc"] = address
    return rec


def address_of(state: Json) -> str:
    return _as_str(_as_dict(state.get("contracts")).get("gfisc"))


def _record(state: Json) -> Json:
    addr = address_of(state)
    if not addr:
        raise StateError("gfisc_not_constructed")
    return tokens.get_token(state, addr)


def approved(state: Json) -> str:
    return _as_str(_record(state).get("minter"))


def total_supply(state: Json) -> int:
    return int(_record(state)["total_supply"])


def balance_of(state: Json, who: str) -> int:
    return int(_record(state)["balances"].get(who, 0))


def supply_at(state: Json, address: str) -> int:
    return int(tokens.get_token(state, address)["total_supply"])


def index(state: Json) -> int:
    """The index of the sFISC ledger this token was migrated onto."""
    sfisc = _as_str(_record(state).get("sfisc"))
    if not sfisc or sfisc != stoken.address_of(state):
        raise StateError("sfisc_not_wired", {"sfisc": sfisc})
    return stoken.index(state)


def balance_from(state: Json, amount: int) -> int:
    """gFISC -> sFISC at the current index."""
    return int(amount) * index(state) // GFISC_UNIT


def balance_to(state: Json, amount: int) -> int:
    """sFISC -> gFISC at the current index."""
    idx = index(state)
    if idx <= 0:
        raise StateError("index_not_set")
    return int(amount) * GFISC_UNIT // idx


def _require_approved(state: Json, caller: str) -> Json:
    rec = _record(state)
    if _as_str(caller) != _as_str(rec.get("minter")):
        raise AuthorizationError("not_approved", {"caller": caller})
    return rec


def mint(state: Json, caller: str, to: str, amount: int) -> None:
    rec = _require_approved(state, caller)
    tokens.mint(state, rec["address"], to, amount)


def burn(state: Json, caller: str, owner: str, amount: int) -> None:
    rec = _require_approved(state, caller)
    tokens.burn(state, rec["address"], owner, amount)


def migrate(state: Json, caller: str, staking_addr: str, sfisc: str) -> None:
    """Hand the minter role from the deployer to the staking engine, once."""
    rec = _require_approved(state, caller)
    if bool(rec.get("migrated")):
        raise StateError("already_migrated")
    if _is_null(staking_addr) or _is_null(sfisc):
        raise ConstructionError("null_address", {"staking": staking_addr, "sfisc": sfisc})
    rec["minter"] = staking_addr
    rec["sfisc"] = sfisc
    rec["migrated"] = True


def _apply_gtoken_migrate(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    staking_addr = _as_str(p.get("staking"))
    sfisc = _as_str(p.get("sfisc"))
    migrate(state, env.signer, staking_addr, sfisc)
    return {"applied": "GTOKEN_MIGRATE", "approved": staking_addr}


GTOKEN_TX_TYPES: Set[str] = {"GTOKEN_MIGRATE"}


def apply_gtoken(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = _as_str(env.tx_type).upper()
    if t not in GTOKEN_TX_TYPES:
        return None

    if t == "GTOKEN_MIGRATE":
        return _apply_gtoken_migrate(state, env)

    return None


__all__ = [
    "GTOKEN_TX_TYPES",
    "address_of",
    "apply_gtoken",
    "approved",
    "balance_from",
    "balance_of",
    "balance_to",
    "burn",
    "construct_gtoken",
    "index",
    "migrate",
    "mint",
    "supply_at",
    "total_supply",
]
