from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from tokenforge.config import IssuerConfig
from tokenforge.runtime.orchestrator import IssuanceOrchestrator, IssuanceStage
from tokenforge.storage.content_pinner import ContentPinner
from tokenforge.testing.stubs import RecordingLedger, RecordingPinningClient, RecordingWallet

PNG = b"\x89PNG\r\n\x1a\n" + b"\x02" * 16

FORM = {"name": "Foo", "symbol": "FOO", "decimals": "9", "supply": "1000000000", "description": "A test token"}


class _FakeOrchestrator(SimpleNamespace):
    """Minimal orchestrator stub for route tests."""


def _orch(**ledger_kw) -> tuple[IssuanceOrchestrator, RecordingPinningClient]:
    client = RecordingPinningClient()
    orch = IssuanceOrchestrator(
        wallet=RecordingWallet(),
        ledger=RecordingLedger(**ledger_kw),
        pinner=ContentPinner(client),
    )
    return orch, client


def _app(orch, **cfg):
    from tokenforge.api.app import create_app

    return create_app(cfg=IssuerConfig(**cfg), orchestrator=orch)


def test_issue_with_image_returns_outcome() -> None:
    orch, client = _orch()
    with TestClient(_app(orch)) as c:
        r = c.post("/v1/issuance", data=FORM, files={"image": ("my logo.png", PNG, "image/png")})

    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["stage"] == "confirmed"
    assert body["signature"]
    assert body["partial"]["mint"]
    assert body["partial"]["image_url"].startswith("https://gateway.test/ipfs/")
    assert [name for name, _ in client.uploads] == ["my_logo.png", "metadata.json"]


def test_issue_without_image() -> None:
    orch, client = _orch()
    with TestClient(_app(orch)) as c:
        r = c.post("/v1/issuance", data=FORM)

    assert r.status_code == 200
    assert r.json()["partial"]["image_url"] == ""
    assert [name for name, _ in client.uploads] == ["metadata.json"]


def test_status_reflects_last_run() -> None:
    orch, _ = _orch()
    with TestClient(_app(orch)) as c:
        assert c.get("/v1/issuance/status").json()["stage"] == "idle"
        c.post("/v1/issuance", data=FORM)
        st = c.get("/v1/issuance/status").json()

    assert st["busy"] is False
    assert st["stage"] == "confirmed"
    assert st["history"][0] == "idle"
    assert st["history"][-1] == "confirmed"


def test_insufficient_balance_is_400() -> None:
    orch, client = _orch(balance=1)
    with TestClient(_app(orch)) as c:
        r = c.post("/v1/issuance", data=FORM)

    assert r.status_code == 400
    err = r.json()["error"]
    assert err["code"] == "insufficient_balance"
    assert err["step"] == "preflight"
    assert client.calls == []


def test_confirmation_timeout_is_504() -> None:
    orch, _ = _orch(timeout_on_confirm=4)
    with TestClient(_app(orch)) as c:
        r = c.post("/v1/issuance", data=FORM)

    assert r.status_code == 504
    body = r.json()
    assert body["error"]["category"] == "confirmation_timeout"
    assert body["partial"]["signature"]


def test_pinning_failure_is_502_with_partial_mint() -> None:
    client = RecordingPinningClient(fail_names={"metadata.json"})
    orch = IssuanceOrchestrator(wallet=RecordingWallet(), ledger=RecordingLedger(), pinner=ContentPinner(client))
    with TestClient(_app(orch)) as c:
        r = c.post("/v1/issuance", data=FORM)

    assert r.status_code == 502
    body = r.json()
    assert body["error"]["code"] == "metadata_upload_failed"
    assert body["partial"]["mint"]
    assert body["partial"]["holding_account"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"name": "n" * 33},
        {"name": "é" * 17},
        {"symbol": "€" * 4},
        {"symbol": "S" * 11},
        {"name": "   "},
        {"decimals": "300"},
        {"supply": "-1"},
        {"freeze_authority": "not-a-pubkey"},
    ],
)
def test_invalid_form_is_422(overrides: dict) -> None:
    orch, client = _orch()
    with TestClient(_app(orch)) as c:
        r = c.post("/v1/issuance", data={**FORM, **overrides})

    assert r.status_code == 422
    assert r.json()["error"]["code"] == "invalid_payload"
    assert orch.stage == IssuanceStage.IDLE


def test_oversized_image_is_422() -> None:
    orch, client = _orch()
    with TestClient(_app(orch, max_image_bytes=4)) as c:
        r = c.post("/v1/issuance", data=FORM, files={"image": ("logo.png", PNG, "image/png")})

    assert r.status_code == 422
    assert r.json()["error"]["code"] == "image_too_large"
    assert client.calls == []


def test_busy_orchestrator_is_409() -> None:
    fake = _FakeOrchestrator(busy=True, stage=IssuanceStage.SUBMITTED, history=[])
    with TestClient(_app(fake)) as c:
        r = c.post("/v1/issuance", data=FORM)

    assert r.status_code == 409
    assert r.json()["error"]["code"] == "issuance_in_progress"


def test_cancel_when_idle() -> None:
    orch, _ = _orch()
    with TestClient(_app(orch)) as c:
        r = c.post("/v1/issuance/cancel")
    assert r.json() == {"ok": True, "cancel_requested": False}


def test_health_reports_wallet() -> None:
    orch, _ = _orch()
    with TestClient(_app(orch)) as c:
        r = c.get("/v1/health", headers={"x-request-id": "req-123"})

    assert r.status_code == 200
    body = r.json()
    assert body["wallet_connected"] is True
    assert body["wallet"] == str(orch.wallet.public_key)
    assert r.headers["x-request-id"] == "req-123"


def test_create_app_boot_runtime_false_answers_503() -> None:
    from tokenforge.api.app import create_app

    app = create_app(cfg=IssuerConfig(), boot_runtime=False)
    assert app.state.orchestrator is None
    with TestClient(app) as c:
        r = c.get("/v1/health")
    assert r.status_code == 503
    assert r.json()["error"]["code"] == "not_ready"


def test_create_app_boot_runtime_true_builds_orchestrator(monkeypatch: pytest.MonkeyPatch) -> None:
    from tokenforge.api import app as api_app

    orch, _ = _orch()
    monkeypatch.setattr(api_app, "build_orchestrator", lambda cfg: orch)

    app = api_app.create_app(cfg=IssuerConfig(), boot_runtime=True)
    assert app.state.orchestrator is orch


def test_docs_disabled_on_mainnet() -> None:
    orch, _ = _orch()
    with TestClient(_app(orch, mode="mainnet")) as c:
        assert c.get("/docs").status_code == 404
    with TestClient(_app(orch)) as c:
        assert c.get("/docs").status_code == 200


def test_metrics_gated_by_env(monkeypatch: pytest.MonkeyPatch) -> None:
    orch, _ = _orch(balance=0)
    with TestClient(_app(orch)) as c:
        assert c.get("/v1/metrics").status_code == 404

        monkeypatch.setenv("TOKENFORGE_METRICS_ENABLED", "1")
        c.post("/v1/issuance", data=FORM)
        r = c.get("/v1/metrics")

    assert r.status_code == 200
    assert "tokenforge_uptime_ms" in r.text
    assert "tokenforge_issuance_failed_total 1" in r.text
