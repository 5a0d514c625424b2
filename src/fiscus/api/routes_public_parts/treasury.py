from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from fiscus.api.routes_public_parts.common import _snapshot, _view
from fiscus.ledger.constants import STATUS_NAMES
from fiscus.runtime.apply import stoken, treasury

router = APIRouter()

Json = Dict[str, Any]


@router.get("/treasury")
def treasury_summary(request: Request) -> Json:
    st = _snapshot(request)
    out = _view(treasury.summary, st)
    out["registry"] = {STATUS_NAMES[s]: _view(treasury.registry, st, s) for s in sorted(STATUS_NAMES)}
    return {"ok": True, "treasury": out}


@router.get("/treasury/debt/{account}")
def treasury_debt(account: str, request: Request) -> Json:
    st = _snapshot(request)
    return {
        "ok": True,
        "account": account,
        "debt_limit": _view(treasury.debt_limit, st, account),
        "debt": _view(stoken.debt_balance, st, account),
    }


@router.get("/treasury/queue")
def treasury_queue(request: Request) -> Json:
    st = _snapshot(request)
    root = _view(treasury.get_root, st)
    return {"ok": True, "timelock_enabled": bool(root["timelock_enabled"]), "queue": list(root["queue"])}
