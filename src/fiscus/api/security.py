from __future__ import annotations

import os
from typing import Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

# JSON framing around the envelope itself (whitespace, key order, sig field).
_ENVELOPE_SLACK_BYTES = 1024


def _truthy(v: str | None) -> bool:
    return (v or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return int(default)
    try:
        return int(str(raw).strip())
    except ValueError:
        return int(default)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject oversized bodies with 413 before they reach a route.

    Two ceilings:
      FISCUS_MAX_REQUEST_BYTES       every request (default 256_000)
      FISCUS_MAX_TX_ENVELOPE_BYTES   tx submissions, plus framing slack, so an
                                     envelope admission would refuse anyway
                                     never gets buffered and parsed

    FISCUS_SIZE_LIMIT_DISABLE=1 turns it off (only when enforced at the edge).
    """

    def __init__(
        self,
        app,
        *,
        max_bytes: Optional[int] = None,
        tx_paths: Tuple[str, ...] = ("/v1/tx/submit",),
        exempt_prefixes: Tuple[str, ...] = ("/docs", "/openapi.json", "/v1/health"),
    ):
        super().__init__(app)
        self._enabled = not _truthy(os.environ.get("FISCUS_SIZE_LIMIT_DISABLE"))
        self._max_bytes = int(max_bytes) if max_bytes is not None else _env_int("FISCUS_MAX_REQUEST_BYTES", 256_000)
        envelope = _env_int("FISCUS_MAX_TX_ENVELOPE_BYTES", 32 * 1024) + _ENVELOPE_SLACK_BYTES
        self._max_tx_bytes = min(self._max_bytes, envelope)
        self._tx_paths = tx_paths
        self._exempt_prefixes = exempt_prefixes

    def _limit_for(self, path: str) -> int:
        return self._max_tx_bytes if path in self._tx_paths else self._max_bytes

    def _too_large(self, limit: int) -> JSONResponse:
        return JSONResponse(
            status_code=413,
            content={
                "ok": False,
                "error": {"code": "tx_too_large", "message": "Request body too large", "details": {"max_bytes": limit}},
            },
        )

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        path = request.url.path or ""
        if any(path.startswith(ex) for ex in self._exempt_prefixes):
            return await call_next(request)
        limit = self._limit_for(path)

        cl = request.headers.get("content-length")
        if cl:
            try:
                if int(cl) > limit:
                    return self._too_large(limit)
            except ValueError:
                return JSONResponse(
                    status_code=400,
                    content={"ok": False, "error": {"code": "bad_request", "message": "Invalid Content-Length"}},
                )

        if (request.method or "").upper() in {"POST", "PUT", "PATCH"}:
            body = await request.body()
            if body and len(body) > limit:
                return self._too_large(limit)

        return await call_next(request)
