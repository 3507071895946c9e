from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from tokenforge.api.errors import install_error_handlers
from tokenforge.api.routes_public import public_router
from tokenforge.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from tokenforge.config import IssuerConfig, load_config
from tokenforge.runtime.orchestrator import IssuanceOrchestrator
from tokenforge.runtime.orchestrator_boot import build_orchestrator as _build_orchestrator


def build_orchestrator(cfg: IssuerConfig) -> IssuanceOrchestrator:
    """Build the production IssuanceOrchestrator.

    This wrapper exists so tests can monkeypatch `tokenforge.api.app.build_orchestrator`
    without reaching into runtime modules.
    """
    return _build_orchestrator(cfg)


def create_app(
    *,
    cfg: Optional[IssuerConfig] = None,
    orchestrator: Optional[IssuanceOrchestrator] = None,
    boot_runtime: bool = True,
) -> FastAPI:
    """Create the FastAPI application.

    orchestrator:
      - given: attached as-is (tests inject stub collaborators this way)
      - else boot_runtime=True: built from config via build_orchestrator()
      - else: left unset; issuance routes answer 503
    """
    cfg = cfg or load_config()
    configure_structured_logging(cfg.log_level)

    if cfg.mode == "mainnet":
        app = FastAPI(title="tokenforge", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="tokenforge")

    app.state.cfg = cfg
    if orchestrator is not None:
        app.state.orchestrator = orchestrator
    elif boot_runtime:
        app.state.orchestrator = build_orchestrator(cfg)
    else:
        app.state.orchestrator = None

    install_error_handlers(app)
    app.add_middleware(RequestLogMiddleware)
    app.include_router(public_router)

    return app
