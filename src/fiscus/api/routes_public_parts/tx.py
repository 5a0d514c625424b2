from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request
from pydantic import ValidationError

from fiscus.api.errors import ApiError
from fiscus.api.routes_public_parts.common import _executor, _mempool
from fiscus.api.schemas import TxEnvelopeIn

router = APIRouter()

Json = Dict[str, Any]


@router.post("/tx/submit")
async def tx_submit(request: Request) -> Json:
    """Submit a signed user tx envelope.

    - idempotent: the same envelope twice answers status=already_known
    - system txs are refused over public HTTP

    Returns:
      { ok, tx_id, status: accepted|already_known, mempool_size }
    """
    ex = _executor(request)

    try:
        body = await request.json()
    except ValueError as e:
        raise ApiError.bad_request("bad_json", "Body must be valid JSON", {}) from e
    if not isinstance(body, dict):
        raise ApiError.bad_request("bad_request", "Body must be a tx envelope object", {})

    try:
        env = TxEnvelopeIn.model_validate(body)
    except ValidationError as e:
        errors = [{"loc": [str(p) for p in x["loc"]], "msg": x["msg"]} for x in e.errors()]
        raise ApiError.bad_request("bad_envelope", "tx envelope failed validation", {"errors": errors}) from e

    if env.system:
        raise ApiError.forbidden(
            "system_tx_forbidden",
            "system-only txs cannot be submitted through the public tx endpoint",
            {"tx_type": env.tx_type, "signer": env.signer},
        )

    request.state.tx_type = env.tx_type
    meta = ex.submit_tx(env.model_dump(exclude_none=True))
    if meta.get("tx_id"):
        request.state.tx_id = str(meta["tx_id"])
    if not meta.get("ok"):
        raise ApiError.forbidden(
            str(meta.get("error") or "submit_failed"),
            str(meta.get("reason") or "tx rejected"),
            {"details": meta.get("details")},
        )

    return {
        "ok": True,
        "tx_id": str(meta["tx_id"]),
        "status": "already_known" if meta.get("duplicate") else "accepted",
        "mempool_size": int(_mempool(request).size()),
    }


@router.get("/tx/status/{tx_id}")
def tx_status(request: Request, tx_id: str) -> Json:
    """Return tx status.

    Status values:
      - confirmed: applied in a persisted block
      - failed: included in a block but apply failed (receipt carries the reason)
      - pending: present in mempool
      - unknown: never seen, or expired from the mempool
    """
    t = str(tx_id or "").strip()
    if not t:
        raise ApiError.bad_request("bad_request", "missing tx_id", {})

    out = _executor(request).tx_status(t)
    out["ok"] = True
    return out


@router.get("/tx/receipt/{tx_id}")
def tx_receipt(request: Request, tx_id: str) -> Json:
    rec = _executor(request).get_receipt(str(tx_id))
    if rec is None:
        raise ApiError.not_found("receipt_not_found", "no receipt for tx", {"tx_id": tx_id})
    return {"ok": True, "receipt": rec}
