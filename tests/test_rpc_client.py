from __future__ import annotations

import base64
import http.client

import pytest
from solders.hash import Hash

from tokenforge.ledger import rpc
from tokenforge.ledger.rpc import RpcError, SolanaRpcClient, commitment_reached
from tokenforge.runtime.errors import ConfirmationTimeout
from tokenforge.testing.stubs import deterministic_signer


def _client_with(monkeypatch: pytest.MonkeyPatch, responses: dict) -> tuple[SolanaRpcClient, list]:
    """Client whose JSON-RPC layer answers from `responses[method]` (a value or a list consumed in order)."""
    client = SolanaRpcClient("http://127.0.0.1:8899")
    seen: list = []

    def _fake_call(method, params):
        seen.append((method, params))
        r = responses[method]
        if isinstance(r, list):
            r = r.pop(0)
        if isinstance(r, Exception):
            raise r
        return r

    monkeypatch.setattr(client, "_call", _fake_call)
    monkeypatch.setattr(rpc, "_sleep_ms", lambda ms: None)
    return client, seen


@pytest.mark.parametrize(
    "status, target, expected",
    [
        ("processed", "confirmed", False),
        ("confirmed", "confirmed", True),
        ("finalized", "confirmed", True),
        ("confirmed", "finalized", False),
        (None, "processed", False),
        ("bogus", "processed", False),
    ],
)
def test_commitment_reached(status, target, expected) -> None:
    assert commitment_reached(status, target) is expected


def test_get_balance_reads_value(monkeypatch: pytest.MonkeyPatch) -> None:
    client, seen = _client_with(monkeypatch, {"getBalance": {"context": {"slot": 1}, "value": 42}})
    pk = deterministic_signer("issuer").pubkey

    assert client.get_balance(pk) == 42
    assert seen == [("getBalance", [str(pk), {"commitment": "confirmed"}])]


def test_get_balance_rejects_malformed_result(monkeypatch: pytest.MonkeyPatch) -> None:
    client, _ = _client_with(monkeypatch, {"getBalance": {"nope": 1}})
    with pytest.raises(RpcError) as e:
        client.get_balance(deterministic_signer("issuer").pubkey)
    assert e.value.code == "bad_response"


def test_get_latest_blockhash(monkeypatch: pytest.MonkeyPatch) -> None:
    bh = str(Hash.default())
    client, _ = _client_with(monkeypatch, {"getLatestBlockhash": {"value": {"blockhash": bh, "lastValidBlockHeight": 9}}})
    assert client.get_latest_blockhash() == Hash.default()


def test_send_raw_transaction_base64_encodes(monkeypatch: pytest.MonkeyPatch) -> None:
    client, seen = _client_with(monkeypatch, {"sendTransaction": "5igSig"})

    assert client.send_raw_transaction(b"\x01\x02\x03") == "5igSig"
    method, params = seen[0]
    assert method == "sendTransaction"
    assert base64.b64decode(params[0]) == b"\x01\x02\x03"
    assert params[1]["encoding"] == "base64"


def test_confirm_polls_until_commitment(monkeypatch: pytest.MonkeyPatch) -> None:
    statuses = [
        {"value": [None]},
        {"value": [{"confirmationStatus": "processed", "err": None}]},
        {"value": [{"confirmationStatus": "confirmed", "err": None}]},
    ]
    client, seen = _client_with(monkeypatch, {"getSignatureStatuses": statuses})

    assert client.confirm_transaction("sig", commitment="confirmed", timeout_s=30) == "confirmed"
    assert len(seen) == 3


def test_confirm_surfaces_transaction_error(monkeypatch: pytest.MonkeyPatch) -> None:
    client, _ = _client_with(
        monkeypatch,
        {"getSignatureStatuses": {"value": [{"confirmationStatus": "confirmed", "err": {"InstructionError": [0, "X"]}}]}},
    )
    with pytest.raises(RpcError) as e:
        client.confirm_transaction("sig", commitment="confirmed", timeout_s=30)
    assert e.value.code == "transaction_failed"


def test_confirm_times_out_without_resending(monkeypatch: pytest.MonkeyPatch) -> None:
    client, seen = _client_with(monkeypatch, {"getSignatureStatuses": {"value": [None]}})

    with pytest.raises(ConfirmationTimeout) as e:
        client.confirm_transaction("sig", commitment="finalized", timeout_s=0)

    assert e.value.code == "confirmation_timeout"
    assert e.value.details["signature"] == "sig"
    assert all(method == "getSignatureStatuses" for method, _ in seen)


def test_confirm_keeps_polling_through_status_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    statuses = [
        RpcError("network_error", "getSignatureStatuses: connection reset"),
        RpcError("http_error", "getSignatureStatuses: http_502: bad gateway"),
        {"value": [{"confirmationStatus": "confirmed", "err": None}]},
    ]
    client, seen = _client_with(monkeypatch, {"getSignatureStatuses": statuses})

    assert client.confirm_transaction("sig", commitment="confirmed", timeout_s=30) == "confirmed"
    assert len(seen) == 3


def test_confirm_status_errors_until_deadline_time_out(monkeypatch: pytest.MonkeyPatch) -> None:
    client, _ = _client_with(
        monkeypatch, {"getSignatureStatuses": [RpcError("network_error", "getSignatureStatuses: timed out")]}
    )

    with pytest.raises(ConfirmationTimeout) as e:
        client.confirm_transaction("sig", commitment="confirmed", timeout_s=0)
    assert e.value.details["last_error"] == "network_error"


def test_malformed_http_response_is_network_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def _urlopen(req, timeout):
        raise http.client.BadStatusLine("garbage-not-http")

    monkeypatch.setattr(rpc.urllib.request, "urlopen", _urlopen)
    client = SolanaRpcClient("http://127.0.0.1:8899")
    with pytest.raises(RpcError) as e:
        client.get_balance(deterministic_signer("issuer").pubkey)
    assert e.value.code == "network_error"
