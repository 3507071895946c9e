from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol, Sequence, Tuple, Union

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from tokenforge.crypto.sig import LocalSigner, load_signer_file
from tokenforge.ledger.rpc import LedgerClient
from tokenforge.runtime.errors import PreconditionFailure, SigningRejected


@dataclass(frozen=True)
class TransactionEnvelope:
    """Instructions bundled for atomic execution.

    `signers` are extra in-process co-signers (e.g. a fresh mint keypair); the
    wallet always adds its own signature as fee payer.
    """

    instructions: Tuple[Instruction, ...]
    fee_payer: Pubkey
    signers: Tuple[LocalSigner, ...] = field(default=())
    label: str = ""

    def compile(self, blockhash: Hash) -> Message:
        return Message.new_with_blockhash(list(self.instructions), self.fee_payer, blockhash)


class Wallet(Protocol):
    @property
    def public_key(self) -> Optional[Pubkey]: ...

    def send_transaction(self, envelope: TransactionEnvelope, ledger: LedgerClient) -> str: ...


def sign_message(message: Message, signers: Sequence[LocalSigner]) -> Transaction:
    """Sign the serialized message with every required signer, in message order."""
    msg_bytes = bytes(message)
    by_key = {bytes(s.pubkey): s for s in signers}
    required = int(message.header.num_required_signatures)

    sigs = []
    for key in list(message.account_keys)[:required]:
        s = by_key.get(bytes(key))
        if s is None:
            raise SigningRejected("missing_signer", f"no signer available for {key}")
        sigs.append(Signature.from_bytes(s.sign(msg_bytes)))
    return Transaction.populate(message, sigs)


class KeypairWallet:
    """Wallet backed by a local keypair. `signer=None` behaves as disconnected."""

    def __init__(self, signer: Optional[LocalSigner]) -> None:
        self._signer = signer

    @property
    def public_key(self) -> Optional[Pubkey]:
        return self._signer.pubkey if self._signer is not None else None

    def send_transaction(self, envelope: TransactionEnvelope, ledger: LedgerClient) -> str:
        if self._signer is None:
            raise PreconditionFailure("wallet_not_connected", "Please connect your wallet first.")
        if envelope.fee_payer != self._signer.pubkey:
            raise SigningRejected("fee_payer_mismatch", f"envelope fee payer {envelope.fee_payer} is not this wallet")

        blockhash = ledger.get_latest_blockhash()
        message = envelope.compile(blockhash)
        tx = sign_message(message, [self._signer, *envelope.signers])
        return ledger.send_raw_transaction(bytes(tx))


def load_keypair_wallet(path: Union[str, Path, None]) -> KeypairWallet:
    p = str(path or "").strip()
    if not p:
        return KeypairWallet(None)
    return KeypairWallet(load_signer_file(p))
