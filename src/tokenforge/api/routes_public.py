from __future__ import annotations

from fastapi import APIRouter

from tokenforge.api.routes_public_parts.health import router as health_router
from tokenforge.api.routes_public_parts.issuance import router as issuance_router
from tokenforge.api.routes_public_parts.metrics import router as metrics_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(issuance_router, prefix="/v1", tags=["issuance"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
