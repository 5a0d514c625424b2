from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()

Json = Dict[str, Any]


def _loop_status(ex: Any) -> Json:
    return {
        "running": bool(getattr(ex, "block_loop_running", False)),
        "unhealthy": bool(getattr(ex, "block_loop_unhealthy", False)),
        "last_error": str(getattr(ex, "block_loop_last_error", "") or ""),
        "consecutive_failures": int(getattr(ex, "block_loop_consecutive_failures", 0) or 0),
    }


@router.get("/health")
def health(request: Request) -> Json:
    """Liveness: the process answers. Never touches the database."""
    ex = getattr(request.app.state, "executor", None)
    return {"ok": True, "executor": ex is not None}


@router.get("/health/ready")
def ready(request: Request):
    """Readiness: executor attached and the producer loop has not tripped fail-fast."""
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        return JSONResponse(status_code=503, content={"ok": False, "reason": "executor_not_ready"})

    loop = _loop_status(ex)
    if loop["unhealthy"]:
        return JSONResponse(status_code=503, content={"ok": False, "reason": "block_loop_unhealthy", "block_loop": loop})

    st = ex.read_state()
    return {"ok": True, "height": int(st.get("height") or 0), "block_loop": loop}
