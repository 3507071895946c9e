from __future__ import annotations

import json
import re
from typing import Optional

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from tokenforge.api.errors import ApiError
from tokenforge.api.routes_public_parts.common import _orchestrator
from tokenforge.api.schemas import IssuanceForm, IssuanceStatus
from tokenforge.runtime.orchestrator import IssuanceOutcome

router = APIRouter()

# Failure categories that are the caller's problem rather than an upstream's.
_CLIENT_SIDE = {"precondition_failure", "encoding_failure"}


def _sanitize_filename(name: str) -> str:
    name = (name or "").strip()
    if not name:
        return "image"
    name = re.sub(r"[^a-zA-Z0-9._-]+", "_", name)
    return name[:128] or "image"


def _read_image(upload: Optional[UploadFile], *, max_bytes: int) -> Optional[bytes]:
    if upload is None or not (upload.filename or "").strip():
        return None
    data = upload.file.read(max_bytes + 1)
    if not data:
        return None
    if len(data) > max_bytes:
        raise ApiError.invalid("image_too_large", f"image exceeds {max_bytes} bytes")
    return data


def _status_for(outcome: IssuanceOutcome) -> int:
    if outcome.ok:
        return 200
    if outcome.error_code == "issuance_in_progress":
        return 409
    if outcome.category == "confirmation_timeout":
        return 504
    if outcome.category in _CLIENT_SIDE:
        return 400
    return 502


@router.get("/issuance/status", response_model=IssuanceStatus)
def issuance_status(request: Request) -> IssuanceStatus:
    orch = _orchestrator(request)
    return IssuanceStatus(busy=orch.busy, stage=orch.stage.value, history=[s.value for s in orch.history])


@router.post("/issuance/cancel")
def issuance_cancel(request: Request) -> dict:
    orch = _orchestrator(request)
    return {"ok": True, "cancel_requested": orch.cancel()}


@router.post("/issuance")
def issuance_create(
    request: Request,
    name: str = Form(...),
    symbol: str = Form(...),
    decimals: int = Form(...),
    supply: int = Form(...),
    description: str = Form(""),
    freeze_authority: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
) -> JSONResponse:
    """Issue a token: mint, supply, IPFS metadata, on-chain metadata record.

    Blocking; one issuance at a time per server. Returns the IssuanceOutcome,
    including partial results (mint, holding account, URIs) on failure.
    """
    orch = _orchestrator(request)
    if orch.busy:
        raise ApiError.conflict("issuance_in_progress", "An issuance is already in progress.")

    try:
        form = IssuanceForm(
            name=name,
            symbol=symbol,
            decimals=decimals,
            supply=supply,
            description=description,
            freeze_authority=freeze_authority,
        )
    except ValidationError as e:
        raise ApiError.invalid("invalid_payload", "invalid issuance form", {"errors": json.loads(e.json(include_url=False))})

    cfg = request.app.state.cfg
    img = _read_image(image, max_bytes=int(cfg.max_image_bytes))
    spec = form.to_asset_spec(
        image=img,
        image_name=_sanitize_filename(image.filename or "") if img is not None and image is not None else "image",
    )

    outcome = orch.run(spec)
    return JSONResponse(status_code=_status_for(outcome), content=outcome.to_json())
