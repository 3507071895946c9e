from __future__ import annotations

from fastapi import APIRouter, Request

from tokenforge.api.routes_public_parts.common import _orchestrator
from tokenforge.api.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    orch = _orchestrator(request)
    pk = orch.wallet.public_key
    return HealthResponse(
        ok=True,
        busy=orch.busy,
        wallet_connected=pk is not None,
        wallet=str(pk) if pk is not None else None,
    )
