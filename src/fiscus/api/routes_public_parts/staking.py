from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from fiscus.api.routes_public_parts.common import _int_param, _snapshot, _view
from fiscus.runtime.apply import staking, stoken

router = APIRouter()

Json = Dict[str, Any]


@router.get("/staking/epoch")
def staking_epoch(request: Request) -> Json:
    st = _snapshot(request)
    return {
        "ok": True,
        "height": int(st.get("height") or 0),
        "epoch": _view(staking.epoch, st),
        "index": _view(staking.index, st),
        "blocks_to_next_epoch": _view(staking.blocks_to_next_epoch, st),
        "supply_in_warmup": _view(staking.supply_in_warmup, st),
        "warmup_period": int(_view(staking.get_root, st).get("warmup_period") or 0),
    }


@router.get("/staking/warmup/{account}")
def staking_warmup(account: str, request: Request) -> Json:
    st = _snapshot(request)
    info = _view(staking.warmup_info, st, account)
    info["pending_balance"] = _view(stoken.balance_for_gons, st, int(info["gons"]))
    return {"ok": True, "account": account, "warmup": info}


@router.get("/sfisc")
def sfisc_summary(request: Request) -> Json:
    """Rebasing ledger summary plus the most recent rebase records (?limit=N)."""
    st = _snapshot(request)
    limit = max(0, min(100, _int_param(request.query_params.get("limit"), 10)))
    history = _view(stoken.rebases, st)
    return {
        "ok": True,
        "address": _view(stoken.address_of, st),
        "total_supply": _view(stoken.total_supply, st),
        "circulating_supply": _view(stoken.circulating_supply, st),
        "index": _view(stoken.index, st),
        "rebase_count": len(history),
        "rebases": history[-limit:] if limit else [],
    }
