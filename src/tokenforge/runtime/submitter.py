from __future__ import annotations

import logging
from dataclasses import dataclass

from tokenforge.ledger.rpc import LedgerClient, RpcError
from tokenforge.runtime.errors import ConfirmationTimeout, IssuanceError, SubmissionFailure
from tokenforge.runtime.wallet import TransactionEnvelope, Wallet
from tokenforge.util.event_log import log_event

log = logging.getLogger("tokenforge.submitter")


@dataclass
class TransactionSubmitter:
    """Sign via wallet, broadcast, then wait for `commitment`.

    No resubmission on any path: a timed-out transaction may still land and
    the instructions we send are not idempotent.
    """

    wallet: Wallet
    ledger: LedgerClient
    commitment: str = "confirmed"
    timeout_s: float = 60.0

    def send(self, envelope: TransactionEnvelope) -> str:
        if not envelope.instructions:
            raise SubmissionFailure("empty_envelope", "transaction has no instructions")

        try:
            signature = self.wallet.send_transaction(envelope, self.ledger)
        except IssuanceError:
            raise
        except RpcError as e:
            raise SubmissionFailure("broadcast_failed", str(e), details={"rpc_code": e.code}) from e

        signature = str(signature or "").strip()
        if not signature:
            raise SubmissionFailure("broadcast_failed", "wallet returned an empty signature")
        log_event(log, "tx_sent", label=envelope.label, signature=signature)
        return signature

    def confirm(self, signature: str) -> str:
        """Block until confirmed; ConfirmationTimeout propagates untouched.

        Only a failure reported for the transaction itself is a SubmissionFailure.
        Any other ledger error leaves the outcome unknown, like a timeout.
        """
        try:
            return self.ledger.confirm_transaction(signature, commitment=self.commitment, timeout_s=self.timeout_s)
        except RpcError as e:
            details = {"rpc_code": e.code, "signature": signature}
            if e.code == "transaction_failed":
                raise SubmissionFailure("confirmation_failed", str(e), details=details) from e
            raise ConfirmationTimeout(
                "confirmation_unknown", f"status of {signature} unknown: {e}; it may still land", details=details
            ) from e

    def submit(self, envelope: TransactionEnvelope) -> str:
        signature = self.send(envelope)
        self.confirm(signature)
        return signature
