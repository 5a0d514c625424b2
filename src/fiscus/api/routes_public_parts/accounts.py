from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Request

from fiscus.api.routes_public_parts.common import _snapshot, _view
from fiscus.runtime.apply import gtoken, staking, stoken, tokens

router = APIRouter()

Json = Dict[str, Any]


def _normalize_keys(acct: Json) -> List[Json]:
    out: List[Json] = []
    for it in acct.get("keys") or []:
        if isinstance(it, dict) and it.get("pubkey"):
            out.append({"pubkey": str(it["pubkey"]), "active": bool(it.get("active", True))})
    out.sort(key=lambda x: x["pubkey"])
    return out


def _balances(st: Json, account: str) -> Json:
    contracts = st.get("contracts") or {}
    out: Json = {}
    for name in ("fisc", "sfisc", "gfisc"):
        addr = contracts.get(name)
        if addr:
            out[name] = tokens.balance_of(st, addr, account)
    return out


@router.get("/accounts/{account}")
def account_get(account: str, request: Request) -> Json:
    st = _snapshot(request)
    acct = (st.get("accounts") or {}).get(account)
    acct = acct if isinstance(acct, dict) else {}

    out: Json = {
        "ok": True,
        "account": account,
        "registered": bool(acct),
        "nonce": int(acct.get("nonce") or 0),
        "keys": _normalize_keys(acct),
        "balances": _view(_balances, st, account),
    }
    if st.get("staking"):
        out["warmup"] = _view(staking.warmup_info, st, account)
    if st.get("stoken"):
        out["sfisc_debt"] = _view(stoken.debt_balance, st, account)
    if gtoken.address_of(st):
        out["gfisc_value"] = _view(gtoken.balance_from, st, out["balances"].get("gfisc", 0))
    return out
