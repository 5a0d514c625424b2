from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request, Response

from fiscus.runtime.apply import staking, stoken, treasury
from fiscus.runtime.errors import ApplyError
from fiscus.runtime.metrics import format_prometheus, metrics_enabled, set_gauge

router = APIRouter()

Json = Dict[str, Any]


def _protocol_gauges(st: Json) -> None:
    """Refresh ledger-derived gauges. Components not deployed yet are skipped."""
    try:
        set_gauge("sfisc_index", stoken.index(st))
        set_gauge("sfisc_circulating_supply", stoken.circulating_supply(st))
    except ApplyError:
        pass
    try:
        set_gauge("staking_epoch_number", int(staking.epoch(st).get("number") or 0))
        set_gauge("staking_supply_in_warmup", staking.supply_in_warmup(st))
    except ApplyError:
        pass
    try:
        root = treasury.get_root(st)
        set_gauge("treasury_total_reserves", int(root.get("total_reserves") or 0))
        set_gauge("treasury_total_debt", int(root.get("total_debt") or 0))
        set_gauge("treasury_queue_length", len(root.get("queue") or []))
    except ApplyError:
        pass


@router.get("/metrics")
def metrics(request: Request) -> Response:
    """Prometheus text metrics. 404 unless FISCUS_METRICS_ENABLED=1."""
    if not metrics_enabled():
        return Response(status_code=404, content="not_found\n", media_type="text/plain")
    ex = getattr(request.app.state, "executor", None)
    if ex is not None:
        _protocol_gauges(ex.read_state())
    return Response(content=format_prometheus(), media_type="text/plain")
