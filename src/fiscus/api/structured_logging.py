# src/fiscus/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from fiscus.runtime.runtime_logging import log_event

Json = Dict[str, Any]

_OFF = {"0", "false", "no", "n", "off"}


def configure_structured_logging() -> None:
    """Send every `fiscus.*` record to stdout as bare JSON lines.

    Level comes from FISCUS_LOG_LEVEL (default INFO). Calling again only
    updates the level.
    """
    level_name = (os.environ.get("FISCUS_LOG_LEVEL") or "INFO").strip().upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if getattr(root, "_fiscus_configured", False):
        root.setLevel(level)
        return

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root.handlers = [handler]
    root.setLevel(level)
    setattr(root, "_fiscus_configured", True)


def _node_fields(request: Request) -> Json:
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        return {}
    return {"chain_id": ex.chain_id, "node_id": ex.node_id}


def _tx_fields(request: Request) -> Json:
    # Set by the tx submit route once the envelope parsed.
    out: Json = {}
    for k in ("tx_type", "tx_id"):
        v = getattr(request.state, k, None)
        if v:
            out[k] = v
    return out


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` JSON line per request, tagged with the node and, for
    tx submissions, the tx type and id.

    FISCUS_LOG_REQUESTS=0 turns it off.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        self._enabled = (os.environ.get("FISCUS_LOG_REQUESTS") or "1").strip().lower() not in _OFF
        self._logger = logging.getLogger("fiscus.http")

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        status = 500
        err: Optional[str] = None
        try:
            response = await call_next(request)
            status = int(response.status_code)
            response.headers.setdefault("x-request-id", request_id)
            return response
        except Exception as e:
            err = type(e).__name__
            raise
        finally:
            level = logging.WARNING if status >= 500 else logging.INFO
            log_event(
                self._logger,
                "http_request",
                level=level,
                request_id=request_id,
                method=request.method,
                path=str(request.url.path or ""),
                status=status,
                duration_ms=int((time.monotonic() - started) * 1000),
                error=err,
                **_node_fields(request),
                **_tx_fields(request),
            )
