from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fiscus.api.errors import ApiError
from fiscus.api.routes_public import public_router
from fiscus.api.security import RequestSizeLimitMiddleware
from fiscus.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from fiscus.runtime.block_loop import BlockProducerLoop
from fiscus.runtime.chain_config import load_chain_config
from fiscus.runtime.executor_boot import build_executor as _build_executor

log = logging.getLogger("fiscus.api")


def build_executor():
    """Build a FiscusExecutor for API runtime.

    Tests monkeypatch `fiscus.api.app.build_executor` without reaching into
    runtime modules.
    """
    return _build_executor()


def _parse_cors_origins() -> List[str]:
    """Parse CORS origins.

    - FISCUS_CORS_ORIGINS unset/empty -> CORS disabled
    - Wildcard "*" is rejected in FISCUS_MODE=prod
    """
    raw = os.environ.get("FISCUS_CORS_ORIGINS", "").strip()
    mode = os.environ.get("FISCUS_MODE", "prod").strip().lower()

    if not raw:
        return []

    origins = [o.strip() for o in raw.split(",") if o.strip()]

    if "*" in origins:
        if mode == "prod":
            raise RuntimeError(
                "Unsafe CORS configuration: wildcard '*' not allowed in production. "
                "Set explicit origins in FISCUS_CORS_ORIGINS."
            )
        return ["*"]

    return origins


def _autostart_enabled() -> bool:
    return (os.environ.get("FISCUS_BLOCK_LOOP_AUTOSTART") or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): validate chain config + attach executor
      - False: no executor; routes that need one answer 503
    """
    mode = os.environ.get("FISCUS_MODE", "prod").strip().lower()
    configure_structured_logging()

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        loop = None
        ex = getattr(app.state, "executor", None)
        if _autostart_enabled() and ex is not None:
            loop = BlockProducerLoop(executor=ex)
            if not loop.start():
                log.warning("block loop did not start (disabled or lock held)")
                loop = None

        app.state.block_loop = loop
        yield
        if loop is not None:
            loop.stop()

    if mode == "prod":
        app = FastAPI(
            title="Fiscus Node API",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            lifespan=_lifespan,
        )
    else:
        app = FastAPI(title="Fiscus Node API", lifespan=_lifespan)

    app.state.mode = mode

    if boot_runtime:
        load_chain_config()
        app.state.executor = build_executor()
    else:
        app.state.executor = None

    app.state.block_loop = None

    @app.exception_handler(ApiError)
    async def _api_error_handler(_request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_json())

    # --- Middleware ---
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestLogMiddleware)

    cors_origins = _parse_cors_origins()
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=cors_origins != ["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type"],
        )

    # --- Routers ---
    app.include_router(public_router)

    return app
