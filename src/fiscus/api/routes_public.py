# src/fiscus/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from fiscus.api.routes_public_parts.accounts import router as accounts_router
from fiscus.api.routes_public_parts.blocks import router as blocks_router
from fiscus.api.routes_public_parts.health import router as health_router
from fiscus.api.routes_public_parts.metrics import router as metrics_router
from fiscus.api.routes_public_parts.staking import router as staking_router
from fiscus.api.routes_public_parts.status import router as status_router
from fiscus.api.routes_public_parts.treasury import router as treasury_router
from fiscus.api.routes_public_parts.tx import router as tx_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(status_router, prefix="/v1", tags=["status"])
public_router.include_router(accounts_router, prefix="/v1", tags=["accounts"])
public_router.include_router(staking_router, prefix="/v1", tags=["staking"])
public_router.include_router(treasury_router, prefix="/v1", tags=["treasury"])
public_router.include_router(tx_router, prefix="/v1", tags=["tx"])
public_router.include_router(blocks_router, prefix="/v1", tags=["blocks"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
