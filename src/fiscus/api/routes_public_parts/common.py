from __future__ import annotations

import os
from typing import Any, Callable, Dict, TypeVar

from fastapi import Request

from fiscus.api.errors import ApiError
from fiscus.runtime.errors import ApplyError

Json = Dict[str, Any]

T = TypeVar("T")


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.unavailable("not_ready", "executor not attached to app.state", {})
    return ex


def _snapshot(request: Request) -> Json:
    """Current committed ledger state (read-only by convention)."""
    st = _executor(request).read_state()
    if not isinstance(st, dict):
        raise ApiError.internal("bad_state", "executor state is not a dict", {})
    return st


def _mempool(request: Request):
    mp = getattr(_executor(request), "mempool", None)
    if mp is None:
        raise ApiError.unavailable("not_ready", "mempool not available", {})
    return mp


def _mode() -> str:
    return (os.environ.get("FISCUS_MODE") or "prod").strip().lower()


def _int_param(v: Any, default: int) -> int:
    """Parse an int-ish query param safely."""
    if v is None:
        return int(default)
    s = str(v).strip()
    if s == "":
        return int(default)
    try:
        return int(s)
    except ValueError:
        return int(default)


def _view(fn: Callable[..., T], *args: Any) -> T:
    """Run a ledger view, mapping "not deployed" state errors to 503."""
    try:
        return fn(*args)
    except ApplyError as e:
        details = e.details if isinstance(e.details, dict) else {}
        raise ApiError.unavailable(e.reason, "ledger component unavailable", details) from e
