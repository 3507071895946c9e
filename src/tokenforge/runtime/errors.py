from __future__ import annotations

"""Failure taxonomy for the issuance workflow.

Every error carries a stable machine-readable ``code`` plus a human message.
The orchestrator converts these into a single terminal IssuanceOutcome; nothing
below it retries.
"""

from typing import Any, Dict, Optional


class IssuanceError(RuntimeError):
    category = "issuance_error"

    def __init__(self, code: str, msg: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(msg)
        self.code = code
        self.details: Dict[str, Any] = dict(details or {})

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""

    def __str__(self) -> str:
        return f"{self.code}:{self.message}"


class PreconditionFailure(IssuanceError):
    """Wallet not connected, insufficient balance, invalid input, already busy."""

    category = "precondition_failure"


class ProvisioningFailure(IssuanceError):
    """Mint creation, holding account creation or mint-to was rejected."""

    category = "provisioning_failure"


class PinningFailure(IssuanceError):
    category = "pinning_failure"


class DerivationFailure(IssuanceError):
    category = "derivation_failure"


class EncodingFailure(IssuanceError):
    category = "encoding_failure"


class SubmissionFailure(IssuanceError):
    category = "submission_failure"


class SigningRejected(SubmissionFailure):
    """The wallet declined to sign. Never retried."""


class ConfirmationTimeout(IssuanceError):
    """Outcome is indeterminate: the transaction may still land."""

    category = "confirmation_timeout"
