from __future__ import annotations

"""Recording stub collaborators. TEST ONLY.

All three stubs can share one `calls` list so tests can assert on the global
order of external calls (balance query, transaction sends, IPFS uploads, ...).
"""

import base64
import hashlib
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature

from tokenforge.crypto.sig import LocalSigner
from tokenforge.ledger.rpc import RpcError
from tokenforge.runtime.errors import ConfirmationTimeout, SigningRejected
from tokenforge.runtime.wallet import TransactionEnvelope
from tokenforge.storage.ipfs import IpfsAddResult, IpfsError

Json = Dict[str, Any]
Call = Tuple[Any, ...]


def deterministic_signer(label: str) -> LocalSigner:
    """Deterministically derive an Ed25519 signer from a stable label."""
    seed = hashlib.sha256(("tokenforge-test-ed25519:" + (label or "")).encode("utf-8")).digest()
    return LocalSigner.from_secret_bytes(seed)


def _fake_signature(*parts: Any) -> str:
    digest = hashlib.sha512("|".join(str(p) for p in parts).encode("utf-8")).digest()
    return str(Signature.from_bytes(digest))


class RecordingLedger:
    def __init__(
        self,
        *,
        balance: int = 1_000_000_000,
        calls: Optional[List[Call]] = None,
        balance_error: Optional[RpcError] = None,
        timeout_on_confirm: Optional[int] = None,
    ) -> None:
        self.balance = int(balance)
        self.calls: List[Call] = calls if calls is not None else []
        self.balance_error = balance_error
        self.timeout_on_confirm = timeout_on_confirm
        self.confirmations = 0
        self.sent: List[bytes] = []
        self.statuses: Dict[str, Json] = {}

    def get_balance(self, pubkey: Pubkey) -> int:
        self.calls.append(("ledger.get_balance", str(pubkey)))
        if self.balance_error is not None:
            raise self.balance_error
        return self.balance

    def get_latest_blockhash(self) -> Hash:
        self.calls.append(("ledger.get_latest_blockhash",))
        return Hash.default()

    def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        self.calls.append(("ledger.get_minimum_balance_for_rent_exemption", int(size)))
        return 1_461_600

    def send_raw_transaction(self, tx_bytes: bytes) -> str:
        self.calls.append(("ledger.send_raw_transaction", len(tx_bytes)))
        self.sent.append(bytes(tx_bytes))
        sig = _fake_signature("raw", len(self.sent))
        self.statuses[sig] = {"confirmationStatus": "confirmed", "err": None}
        return sig

    def get_signature_status(self, signature: str) -> Optional[Json]:
        self.calls.append(("ledger.get_signature_status", signature))
        return self.statuses.get(signature)

    def confirm_transaction(self, signature: str, *, commitment: str, timeout_s: float) -> str:
        self.calls.append(("ledger.confirm_transaction", signature, commitment))
        self.confirmations += 1
        if self.timeout_on_confirm is not None and self.confirmations >= self.timeout_on_confirm:
            raise ConfirmationTimeout("confirmation_timeout", f"transaction {signature} not {commitment}")
        return commitment


class RecordingWallet:
    """Wallet stub; `reject_labels` / `fail_labels` select envelopes to refuse."""

    def __init__(
        self,
        *,
        signer: Optional[LocalSigner] = None,
        connected: bool = True,
        calls: Optional[List[Call]] = None,
        reject_labels: Optional[Set[str]] = None,
        fail_labels: Optional[Set[str]] = None,
    ) -> None:
        self.signer = signer or deterministic_signer("issuer")
        self.connected = connected
        self.calls: List[Call] = calls if calls is not None else []
        self.reject_labels = set(reject_labels or ())
        self.fail_labels = set(fail_labels or ())
        self.envelopes: List[TransactionEnvelope] = []
        self.signatures: Dict[str, TransactionEnvelope] = {}

    @property
    def public_key(self) -> Optional[Pubkey]:
        return self.signer.pubkey if self.connected else None

    def send_transaction(self, envelope: TransactionEnvelope, ledger: Any) -> str:
        self.calls.append(("wallet.send_transaction", envelope.label))
        if envelope.label in self.reject_labels:
            raise SigningRejected("user_rejected", "User rejected the request.")
        if envelope.label in self.fail_labels:
            raise RpcError("network_error", f"sendTransaction: connection reset ({envelope.label})")
        self.envelopes.append(envelope)
        sig = _fake_signature("wallet", envelope.label, len(self.envelopes))
        self.signatures[sig] = envelope
        return sig

    def labels(self) -> List[str]:
        return [e.label for e in self.envelopes]


class RecordingPinningClient:
    def __init__(
        self,
        *,
        calls: Optional[List[Call]] = None,
        fail_names: Optional[Set[str]] = None,
        gateway_base: str = "https://gateway.test",
    ) -> None:
        self.calls: List[Call] = calls if calls is not None else []
        self.fail_names = set(fail_names or ())
        self.gateway_base = gateway_base.rstrip("/")
        self.uploads: List[Tuple[str, bytes]] = []

    def add(self, data: Union[bytes, str], *, name: str) -> IpfsAddResult:
        raw = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        self.calls.append(("ipfs.add", name))
        if name in self.fail_names:
            raise IpfsError("network_error", f"ipfs add: connection refused ({name})")
        self.uploads.append((name, raw))
        digest = hashlib.sha256(raw).digest()
        cid = "b" + base64.b32encode(digest).decode("ascii").lower().rstrip("=")
        return IpfsAddResult(cid=cid, size=len(raw))

    def gateway_url(self, cid: str) -> str:
        return f"{self.gateway_base}/ipfs/{cid}"
