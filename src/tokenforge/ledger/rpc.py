from __future__ import annotations

import base64
import http.client
import itertools
import json
import logging
import time
import urllib.error
import urllib.request
from typing import Any, Dict, List, Optional, Protocol

from solders.hash import Hash
from solders.pubkey import Pubkey

from tokenforge.runtime.errors import ConfirmationTimeout
from tokenforge.util.event_log import log_event

Json = Dict[str, Any]

log = logging.getLogger("tokenforge.rpc")

_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


class RpcError(RuntimeError):
    def __init__(self, code: str, msg: str, *, details: Optional[Json] = None) -> None:
        super().__init__(msg)
        self.code = code
        self.details: Json = dict(details or {})


def commitment_reached(status: Optional[str], target: str) -> bool:
    if not status:
        return False
    have = _COMMITMENT_RANK.get(str(status).strip().lower())
    want = _COMMITMENT_RANK.get(str(target).strip().lower())
    if have is None or want is None:
        return False
    return have >= want


def _sleep_ms(ms: int) -> None:
    if ms <= 0:
        return
    time.sleep(ms / 1000.0)


class LedgerClient(Protocol):
    def get_balance(self, pubkey: Pubkey) -> int: ...

    def get_latest_blockhash(self) -> Hash: ...

    def get_minimum_balance_for_rent_exemption(self, size: int) -> int: ...

    def send_raw_transaction(self, tx_bytes: bytes) -> str: ...

    def get_signature_status(self, signature: str) -> Optional[Json]: ...

    def confirm_transaction(self, signature: str, *, commitment: str, timeout_s: float) -> str: ...


class SolanaRpcClient:
    """Minimal JSON-RPC 2.0 client for the handful of calls issuance needs.

    Transport errors and JSON-RPC error objects both surface as RpcError; callers
    decide which issuance failure category they map to.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout_s: float = 30.0,
        commitment: str = "confirmed",
        poll_interval_ms: int = 500,
    ) -> None:
        self.url = str(url).strip()
        self.timeout_s = float(timeout_s)
        self.commitment = str(commitment)
        self.poll_interval_ms = max(50, int(poll_interval_ms))
        self._ids = itertools.count(1)

    def _call(self, method: str, params: List[Any]) -> Any:
        body = json.dumps(
            {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params},
            separators=(",", ":"),
        ).encode("utf-8")
        req = urllib.request.Request(url=self.url, method="POST", data=body)
        req.add_header("Content-Type", "application/json")
        req.add_header("Accept", "application/json")

        try:
            with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            msg = ""
            try:
                msg = e.read().decode("utf-8", errors="replace")
            except Exception:
                msg = str(e)
            raise RpcError("http_error", f"{method}: http_{e.code}: {msg[:300]}") from e
        except (urllib.error.URLError, OSError, http.client.HTTPException) as e:
            raise RpcError("network_error", f"{method}: {e}") from e

        try:
            obj = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise RpcError("bad_response", f"{method}: invalid json response") from e
        if not isinstance(obj, dict):
            raise RpcError("bad_response", f"{method}: response is not an object")

        err = obj.get("error")
        if err is not None:
            if isinstance(err, dict):
                raise RpcError("rpc_error", f"{method}: {err.get('message') or err}", details=err)
            raise RpcError("rpc_error", f"{method}: {err}")
        return obj.get("result")

    def get_balance(self, pubkey: Pubkey) -> int:
        res = self._call("getBalance", [str(pubkey), {"commitment": self.commitment}])
        try:
            return int(res["value"])
        except (TypeError, KeyError, ValueError) as e:
            raise RpcError("bad_response", f"getBalance: unexpected result {res!r}") from e

    def get_latest_blockhash(self) -> Hash:
        res = self._call("getLatestBlockhash", [{"commitment": self.commitment}])
        try:
            return Hash.from_string(str(res["value"]["blockhash"]))
        except (TypeError, KeyError, ValueError) as e:
            raise RpcError("bad_response", f"getLatestBlockhash: unexpected result {res!r}") from e

    def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        res = self._call("getMinimumBalanceForRentExemption", [int(size)])
        try:
            return int(res)
        except (TypeError, ValueError) as e:
            raise RpcError("bad_response", f"getMinimumBalanceForRentExemption: unexpected result {res!r}") from e

    def send_raw_transaction(self, tx_bytes: bytes) -> str:
        encoded = base64.b64encode(bytes(tx_bytes)).decode("ascii")
        res = self._call(
            "sendTransaction",
            [encoded, {"encoding": "base64", "preflightCommitment": self.commitment}],
        )
        sig = str(res or "").strip()
        if not sig:
            raise RpcError("bad_response", "sendTransaction: empty signature")
        return sig

    def get_signature_status(self, signature: str) -> Optional[Json]:
        res = self._call("getSignatureStatuses", [[str(signature)], {"searchTransactionHistory": False}])
        try:
            value = res["value"]
        except (TypeError, KeyError) as e:
            raise RpcError("bad_response", f"getSignatureStatuses: unexpected result {res!r}") from e
        if not isinstance(value, list) or not value:
            return None
        st = value[0]
        return st if isinstance(st, dict) else None

    def confirm_transaction(self, signature: str, *, commitment: str, timeout_s: float) -> str:
        """Poll until `commitment` is reached. Bounded by timeout_s; never re-sends.

        A failed status query leaves the outcome unknown and polling continues;
        only an `err` reported by the node fails the transaction.
        """
        deadline = time.monotonic() + max(0.0, float(timeout_s))
        polls = 0
        last_error: Optional[RpcError] = None
        while True:
            polls += 1
            try:
                st = self.get_signature_status(signature)
            except RpcError as e:
                last_error = e
                log_event(log, "tx_status_unavailable", signature=signature, polls=polls, code=e.code, error=str(e))
                st = None
            if st is not None:
                if st.get("err") is not None:
                    raise RpcError("transaction_failed", f"transaction {signature} failed: {st.get('err')}", details=st)
                status = st.get("confirmationStatus")
                if commitment_reached(status, commitment):
                    log_event(log, "tx_confirmed", signature=signature, status=status, polls=polls)
                    return str(status)
            if time.monotonic() >= deadline:
                raise ConfirmationTimeout(
                    "confirmation_timeout",
                    f"transaction {signature} not {commitment} after {timeout_s}s; it may still land",
                    details={
                        "signature": signature,
                        "polls": polls,
                        "last_error": last_error.code if last_error is not None else None,
                    },
                )
            _sleep_ms(self.poll_interval_ms)
