from __future__ import annotations

"""SPL Token primitives used during issuance: mint creation, holding account, mint-to.

Instruction layouts follow spl-token / spl-associated-token-account:

    InitializeMint2: [20, decimals, mint_authority(32), COption<freeze>(1 [+32])]
    MintTo:          [7, amount u64 LE]
    CreateIdempotent (ATA program): [1]
"""

import logging
import struct
from typing import Optional

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, create_account

from tokenforge.crypto.sig import LocalSigner
from tokenforge.ledger.constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    MINT_ACCOUNT_SIZE,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    U64_MAX,
)
from tokenforge.ledger.pda import derive_associated_token_address
from tokenforge.ledger.rpc import LedgerClient, RpcError
from tokenforge.runtime.errors import ProvisioningFailure, SubmissionFailure
from tokenforge.runtime.submitter import TransactionSubmitter
from tokenforge.runtime.wallet import TransactionEnvelope
from tokenforge.util.event_log import log_event

log = logging.getLogger("tokenforge.token_program")

_IX_INITIALIZE_MINT2 = 20
_IX_MINT_TO = 7
_IX_ATA_CREATE_IDEMPOTENT = 1


def initialize_mint2_instruction(
    *, mint: Pubkey, decimals: int, mint_authority: Pubkey, freeze_authority: Optional[Pubkey]
) -> Instruction:
    if not 0 <= int(decimals) <= 255:
        raise ProvisioningFailure("invalid_decimals", f"decimals must fit in u8; got {decimals}")
    data = bytearray([_IX_INITIALIZE_MINT2, int(decimals)])
    data += bytes(mint_authority)
    if freeze_authority is None:
        data += b"\x00"
    else:
        data += b"\x01" + bytes(freeze_authority)
    return Instruction(TOKEN_PROGRAM_ID, bytes(data), [AccountMeta(mint, is_signer=False, is_writable=True)])


def mint_to_instruction(*, mint: Pubkey, destination: Pubkey, authority: Pubkey, amount: int) -> Instruction:
    if isinstance(amount, bool) or not 0 <= int(amount) <= U64_MAX:
        raise ProvisioningFailure("invalid_amount", f"amount must fit in u64; got {amount}")
    data = struct.pack("<BQ", _IX_MINT_TO, int(amount))
    return Instruction(
        TOKEN_PROGRAM_ID,
        data,
        [
            AccountMeta(mint, is_signer=False, is_writable=True),
            AccountMeta(destination, is_signer=False, is_writable=True),
            AccountMeta(authority, is_signer=True, is_writable=False),
        ],
    )


def create_associated_account_instruction(*, payer: Pubkey, owner: Pubkey, mint: Pubkey) -> Instruction:
    ata = derive_associated_token_address(owner, mint)
    return Instruction(
        ASSOCIATED_TOKEN_PROGRAM_ID,
        bytes([_IX_ATA_CREATE_IDEMPOTENT]),
        [
            AccountMeta(payer, is_signer=True, is_writable=True),
            AccountMeta(ata, is_signer=False, is_writable=True),
            AccountMeta(owner, is_signer=False, is_writable=False),
            AccountMeta(mint, is_signer=False, is_writable=False),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        ],
    )


def _submit(submitter: TransactionSubmitter, envelope: TransactionEnvelope) -> str:
    try:
        return submitter.submit(envelope)
    except SubmissionFailure as e:
        raise ProvisioningFailure(e.code, f"{envelope.label}: {e.message}", details=e.details) from e


def provision_mint(
    *,
    ledger: LedgerClient,
    submitter: TransactionSubmitter,
    issuer: Pubkey,
    decimals: int,
    freeze_authority: Optional[Pubkey] = None,
    mint_signer: Optional[LocalSigner] = None,
) -> Pubkey:
    """Create and initialize a new mint; issuer is payer and mint authority."""
    mint_signer = mint_signer or LocalSigner.generate()
    mint = mint_signer.pubkey

    try:
        rent = ledger.get_minimum_balance_for_rent_exemption(MINT_ACCOUNT_SIZE)
    except RpcError as e:
        raise ProvisioningFailure("rent_query_failed", str(e)) from e

    create_ix = create_account(
        CreateAccountParams(
            from_pubkey=issuer,
            to_pubkey=mint,
            lamports=int(rent),
            space=MINT_ACCOUNT_SIZE,
            owner=TOKEN_PROGRAM_ID,
        )
    )
    init_ix = initialize_mint2_instruction(
        mint=mint, decimals=decimals, mint_authority=issuer, freeze_authority=freeze_authority
    )
    envelope = TransactionEnvelope(
        instructions=(create_ix, init_ix),
        fee_payer=issuer,
        signers=(mint_signer,),
        label="create_mint",
    )
    signature = _submit(submitter, envelope)
    log_event(log, "mint_created", mint=str(mint), decimals=int(decimals), signature=signature)
    return mint


def issue_supply(
    *,
    submitter: TransactionSubmitter,
    issuer: Pubkey,
    mint: Pubkey,
    amount: int,
) -> Pubkey:
    """Create the issuer's associated token account (if absent) and mint `amount` base units into it.

    `amount` is not scaled by decimals.
    """
    if isinstance(amount, bool) or not 0 <= int(amount) <= U64_MAX:
        raise ProvisioningFailure("invalid_amount", f"amount must fit in u64; got {amount}")

    holding = derive_associated_token_address(issuer, mint)

    create_env = TransactionEnvelope(
        instructions=(create_associated_account_instruction(payer=issuer, owner=issuer, mint=mint),),
        fee_payer=issuer,
        label="create_holding_account",
    )
    _submit(submitter, create_env)
    log_event(log, "holding_account_created", mint=str(mint), holding_account=str(holding))

    mint_env = TransactionEnvelope(
        instructions=(mint_to_instruction(mint=mint, destination=holding, authority=issuer, amount=int(amount)),),
        fee_payer=issuer,
        label="mint_to",
    )
    signature = _submit(submitter, mint_env)
    log_event(log, "supply_issued", mint=str(mint), amount=int(amount), signature=signature)
    return holding
