from __future__ import annotations

from fastapi import Request

from tokenforge.api.errors import ApiError
from tokenforge.runtime.orchestrator import IssuanceOrchestrator


def _orchestrator(request: Request) -> IssuanceOrchestrator:
    orch = getattr(request.app.state, "orchestrator", None)
    if orch is None:
        raise ApiError.not_ready("not_ready", "orchestrator not attached to app.state")
    return orch
