from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from fiscus.api.errors import ApiError
from fiscus.api.routes_public_parts.common import _executor, _mode
from fiscus.api.schemas import ProduceBlockRequest

router = APIRouter()

Json = Dict[str, Any]


@router.get("/blocks/latest")
def block_latest(request: Request) -> Json:
    blk = _executor(request).get_latest_block()
    if blk is None:
        raise ApiError.not_found("no_blocks", "no blocks produced yet", {})
    return {"ok": True, "block": blk}


@router.get("/blocks/{height}")
def block_by_height(height: int, request: Request) -> Json:
    blk = _executor(request).get_block_by_height(int(height))
    if blk is None:
        raise ApiError.not_found("block_not_found", "no block at height", {"height": int(height)})
    return {"ok": True, "block": blk}


@router.post("/blocks/produce")
def block_produce(request: Request, body: Optional[ProduceBlockRequest] = None) -> Json:
    """Produce one block on demand. Refused in prod, where the producer loop owns height."""
    if _mode() == "prod":
        raise ApiError.forbidden("forbidden_in_prod", "manual block production is disabled in prod", {})

    req = body or ProduceBlockRequest()
    meta = _executor(request).produce_block(max_txs=req.max_txs, allow_empty=req.allow_empty)
    if not meta.ok:
        raise ApiError.internal("produce_failed", meta.error or "block production failed", {"height": meta.height})
    return {
        "ok": True,
        "height": meta.height,
        "block_id": meta.block_id,
        "applied_count": meta.applied_count,
        "rejected_count": meta.rejected_count,
    }
