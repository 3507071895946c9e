from __future__ import annotations

"""Issuance workflow: one SPL mint, its supply, IPFS metadata and the on-chain metadata record.

Stages advance strictly forward:

    IDLE -> PREFLIGHT_CHECKED -> ASSET_PROVISIONED -> SUPPLY_ISSUED -> CONTENT_PINNED
         -> ADDRESS_DERIVED -> INSTRUCTION_BUILT -> SUBMITTED -> CONFIRMED

FAILED is absorbing and reachable from every non-terminal stage. Nothing is
compensated: a mint created before a later failure stays on-chain and is
reported in the outcome's partial results.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from solders.pubkey import Pubkey

from tokenforge.ledger.constants import TOKEN_METADATA_PROGRAM_ID, U64_MAX
from tokenforge.ledger.metadata import MetadataArgs, build_create_metadata_instruction, validate_metadata_args
from tokenforge.ledger.pda import derive_metadata_address
from tokenforge.ledger.rpc import LedgerClient
from tokenforge.ledger.token_program import issue_supply, provision_mint
from tokenforge.runtime.errors import IssuanceError, PreconditionFailure
from tokenforge.runtime.metrics import inc_counter, set_gauge
from tokenforge.runtime.preflight import DEFAULT_MIN_BALANCE_LAMPORTS, require_sufficient_balance
from tokenforge.runtime.submitter import TransactionSubmitter
from tokenforge.runtime.wallet import TransactionEnvelope, Wallet
from tokenforge.storage.content_pinner import ContentPinner
from tokenforge.util.event_log import log_event

Json = Dict[str, Any]

log = logging.getLogger("tokenforge.issuance")


class IssuanceStage(str, Enum):
    IDLE = "idle"
    PREFLIGHT_CHECKED = "preflight_checked"
    ASSET_PROVISIONED = "asset_provisioned"
    SUPPLY_ISSUED = "supply_issued"
    CONTENT_PINNED = "content_pinned"
    ADDRESS_DERIVED = "address_derived"
    INSTRUCTION_BUILT = "instruction_built"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


_FORWARD: Tuple[IssuanceStage, ...] = (
    IssuanceStage.IDLE,
    IssuanceStage.PREFLIGHT_CHECKED,
    IssuanceStage.ASSET_PROVISIONED,
    IssuanceStage.SUPPLY_ISSUED,
    IssuanceStage.CONTENT_PINNED,
    IssuanceStage.ADDRESS_DERIVED,
    IssuanceStage.INSTRUCTION_BUILT,
    IssuanceStage.SUBMITTED,
    IssuanceStage.CONFIRMED,
)

_TERMINAL = {IssuanceStage.CONFIRMED, IssuanceStage.FAILED}


def next_stage(stage: IssuanceStage) -> Optional[IssuanceStage]:
    if stage in _TERMINAL:
        return None
    return _FORWARD[_FORWARD.index(stage) + 1]


@dataclass(frozen=True)
class AssetSpec:
    name: str
    symbol: str
    decimals: int
    initial_supply: int
    description: str = ""
    freeze_authority: Optional[Pubkey] = None
    image: Optional[bytes] = None
    image_name: str = "image"
    creators: Optional[Tuple[Pubkey, ...]] = None


@dataclass
class PartialResult:
    mint: Optional[str] = None
    holding_account: Optional[str] = None
    image_url: Optional[str] = None
    metadata_url: Optional[str] = None
    metadata_address: Optional[str] = None
    signature: Optional[str] = None

    def to_json(self) -> Json:
        return {
            "mint": self.mint,
            "holding_account": self.holding_account,
            "image_url": self.image_url,
            "metadata_url": self.metadata_url,
            "metadata_address": self.metadata_address,
            "signature": self.signature,
        }


@dataclass(frozen=True)
class IssuanceOutcome:
    ok: bool
    stage: IssuanceStage
    signature: Optional[str] = None
    failed_step: Optional[str] = None
    category: Optional[str] = None
    error_code: Optional[str] = None
    message: str = ""
    partial: PartialResult = field(default_factory=PartialResult)

    def to_json(self) -> Json:
        out: Json = {
            "ok": self.ok,
            "stage": self.stage.value,
            "signature": self.signature,
            "partial": self.partial.to_json(),
        }
        if not self.ok:
            out["error"] = {
                "step": self.failed_step,
                "category": self.category,
                "code": self.error_code,
                "message": self.message,
            }
        return out


def validate_asset_spec(spec: AssetSpec, *, seller_fee_basis_points: int) -> None:
    if not (spec.name or "").strip():
        raise PreconditionFailure("invalid_asset_spec", "name is required")
    if not (spec.symbol or "").strip():
        raise PreconditionFailure("invalid_asset_spec", "symbol is required")
    if isinstance(spec.decimals, bool) or not isinstance(spec.decimals, int) or not 0 <= spec.decimals <= 255:
        raise PreconditionFailure("invalid_asset_spec", f"decimals must be an integer in 0..255; got {spec.decimals!r}")
    supply = spec.initial_supply
    if isinstance(supply, bool) or not isinstance(supply, int) or not 0 <= supply <= U64_MAX:
        raise PreconditionFailure("invalid_asset_spec", f"initial_supply must be an integer in 0..2^64-1; got {supply!r}")
    # Catch over-long name/symbol/creators before the mint exists; uri is checked at build time.
    validate_metadata_args(
        MetadataArgs(
            name=spec.name,
            symbol=spec.symbol,
            uri="",
            seller_fee_basis_points=seller_fee_basis_points,
            creators=spec.creators,
        )
    )


class IssuanceOrchestrator:
    def __init__(
        self,
        *,
        wallet: Wallet,
        ledger: LedgerClient,
        pinner: ContentPinner,
        min_balance_lamports: int = DEFAULT_MIN_BALANCE_LAMPORTS,
        seller_fee_basis_points: int = 500,
        commitment: str = "confirmed",
        confirm_timeout_s: float = 60.0,
        metadata_program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID,
    ) -> None:
        self.wallet = wallet
        self.ledger = ledger
        self.pinner = pinner
        self.min_balance_lamports = int(min_balance_lamports)
        self.seller_fee_basis_points = int(seller_fee_basis_points)
        self.metadata_program_id = metadata_program_id
        self.submitter = TransactionSubmitter(
            wallet=wallet, ledger=ledger, commitment=commitment, timeout_s=float(confirm_timeout_s)
        )

        self._run_lock = threading.Lock()
        self._cancel = threading.Event()
        self._stage = IssuanceStage.IDLE
        self._history: List[IssuanceStage] = [IssuanceStage.IDLE]
        self._step = "start"
        self._partial = PartialResult()

    @property
    def busy(self) -> bool:
        return self._run_lock.locked()

    @property
    def stage(self) -> IssuanceStage:
        return self._stage

    @property
    def history(self) -> List[IssuanceStage]:
        return list(self._history)

    def cancel(self) -> bool:
        """Request abort between steps. Already-confirmed ledger writes stay."""
        if not self.busy:
            return False
        self._cancel.set()
        return True

    # -- state machine --

    def _advance(self, to: IssuanceStage) -> None:
        expected = next_stage(self._stage)
        if to != expected:
            raise RuntimeError(f"illegal transition {self._stage.value} -> {to.value}")
        log_event(log, "issuance_transition", frm=self._stage.value, to=to.value, mint=self._partial.mint)
        self._stage = to
        self._history.append(to)

    def _begin(self, step: str) -> str:
        if self._cancel.is_set():
            raise IssuanceError("cancelled", f"issuance cancelled before {step}")
        return step

    def _fail(self, step: str, err: IssuanceError) -> IssuanceOutcome:
        self._stage = IssuanceStage.FAILED
        self._history.append(IssuanceStage.FAILED)
        inc_counter("issuance_failed_total")
        inc_counter(f"issuance_failed_{err.category}")
        log_event(
            log,
            "issuance_failed",
            level=logging.WARNING,
            step=step,
            category=err.category,
            code=err.code,
            error=err.message,
            partial=self._partial.to_json(),
        )
        return IssuanceOutcome(
            ok=False,
            stage=IssuanceStage.FAILED,
            signature=None,
            failed_step=step,
            category=err.category,
            error_code=err.code,
            message=err.message,
            partial=self._partial,
        )

    def _require_issuer(self) -> Pubkey:
        issuer = self.wallet.public_key
        if issuer is None:
            raise PreconditionFailure("wallet_not_connected", "Please connect your wallet first.")
        return issuer

    # -- workflow --

    def run(self, spec: AssetSpec) -> IssuanceOutcome:
        if not self._run_lock.acquire(blocking=False):
            # The refused call reports FAILED for itself. The running issuance
            # keeps its own stage, which stays readable through `stage`.
            err = PreconditionFailure("issuance_in_progress", "An issuance is already in progress.")
            return IssuanceOutcome(
                ok=False,
                stage=IssuanceStage.FAILED,
                failed_step="start",
                category=err.category,
                error_code=err.code,
                message=err.message,
            )

        self._cancel.clear()
        self._stage = IssuanceStage.IDLE
        self._history = [IssuanceStage.IDLE]
        self._partial = PartialResult()
        set_gauge("issuance_busy", 1)
        inc_counter("issuance_started_total")

        self._step = "start"
        try:
            return self._run(spec)
        except IssuanceError as e:
            return self._fail(self._step, e)
        except Exception as e:
            log.exception("issuance crashed at step %s", self._step)
            return self._fail(self._step, IssuanceError("internal_error", str(e) or type(e).__name__))
        finally:
            set_gauge("issuance_busy", 0)
            self._run_lock.release()

    def _run(self, spec: AssetSpec) -> IssuanceOutcome:
        self._step = self._begin("preflight")
        issuer = self._require_issuer()
        validate_asset_spec(spec, seller_fee_basis_points=self.seller_fee_basis_points)
        require_sufficient_balance(self.ledger, issuer, self.min_balance_lamports)
        self._advance(IssuanceStage.PREFLIGHT_CHECKED)

        self._step = self._begin("provision_asset")
        mint = provision_mint(
            ledger=self.ledger,
            submitter=self.submitter,
            issuer=issuer,
            decimals=spec.decimals,
            freeze_authority=spec.freeze_authority,
        )
        self._partial.mint = str(mint)
        self._advance(IssuanceStage.ASSET_PROVISIONED)

        self._step = self._begin("issue_supply")
        holding = issue_supply(submitter=self.submitter, issuer=issuer, mint=mint, amount=spec.initial_supply)
        self._partial.holding_account = str(holding)
        self._advance(IssuanceStage.SUPPLY_ISSUED)

        self._step = self._begin("pin_content")
        pinned = self.pinner.pin(
            name=spec.name,
            symbol=spec.symbol,
            description=spec.description,
            image=spec.image,
            image_name=spec.image_name,
        )
        self._partial.image_url = pinned.image.url if pinned.image is not None else ""
        self._partial.metadata_url = pinned.metadata_uri
        self._advance(IssuanceStage.CONTENT_PINNED)

        self._step = self._begin("derive_address")
        metadata_address, _bump = derive_metadata_address(mint, self.metadata_program_id)
        self._partial.metadata_address = str(metadata_address)
        self._advance(IssuanceStage.ADDRESS_DERIVED)

        self._step = self._begin("build_instruction")
        args = MetadataArgs(
            name=spec.name,
            symbol=spec.symbol,
            uri=pinned.metadata_uri,
            seller_fee_basis_points=self.seller_fee_basis_points,
            creators=spec.creators,
        )
        ix = build_create_metadata_instruction(
            metadata=metadata_address,
            mint=mint,
            issuer=issuer,
            args=args,
            program_id=self.metadata_program_id,
        )
        envelope = TransactionEnvelope(instructions=(ix,), fee_payer=issuer, label="create_metadata")
        self._advance(IssuanceStage.INSTRUCTION_BUILT)

        self._step = self._begin("submit")
        signature = self.submitter.send(envelope)
        self._partial.signature = signature
        self._advance(IssuanceStage.SUBMITTED)

        # Past this point the transaction is in flight; cancelling would not stop it.
        self._step = "confirm"
        self.submitter.confirm(signature)
        self._advance(IssuanceStage.CONFIRMED)

        inc_counter("issuance_confirmed_total")
        log_event(log, "issuance_confirmed", signature=signature, partial=self._partial.to_json())
        return IssuanceOutcome(ok=True, stage=IssuanceStage.CONFIRMED, signature=signature, partial=self._partial)
