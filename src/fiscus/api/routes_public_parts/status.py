from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from fiscus.api.routes_public_parts.common import _executor, _mempool, _mode, _snapshot

router = APIRouter()

Json = Dict[str, Any]


@router.get("/status")
def status(request: Request) -> Json:
    """
    Public node status summary.

    Mounted under /v1 by routes_public.py, so the full path is:
      GET /v1/status
    """
    ex = _executor(request)
    st = _snapshot(request)

    return {
        "ok": True,
        "chain_id": str(st.get("chain_id") or ex.chain_id),
        "node_id": str(ex.node_id),
        "mode": _mode(),
        "height": int(st.get("height") or 0),
        "tip": str(st.get("tip") or ""),
        "tip_hash": str(st.get("tip_hash") or ""),
        "tip_ts_ms": int(st.get("tip_ts_ms") or 0),
        "mempool_size": int(_mempool(request).size()),
        "contracts": dict(st.get("contracts") or {}),
        "tx_types": len(ex.tx_index.names()),
    }
