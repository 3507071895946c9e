from __future__ import annotations

from typing import Sequence, Tuple

from solders.pubkey import Pubkey

from tokenforge.ledger.constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    MAX_SEED_LEN,
    MAX_SEEDS,
    METADATA_SEED,
    TOKEN_METADATA_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
)
from tokenforge.runtime.errors import DerivationFailure


def _check_seeds(seeds: Sequence[bytes]) -> None:
    # One slot is reserved for the bump seed.
    if len(seeds) >= MAX_SEEDS:
        raise DerivationFailure("too_many_seeds", f"at most {MAX_SEEDS - 1} seeds allowed; got {len(seeds)}")
    for i, s in enumerate(seeds):
        if len(s) > MAX_SEED_LEN:
            raise DerivationFailure("seed_too_long", f"seed {i} is {len(s)} bytes (max {MAX_SEED_LEN})")


def create_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
    """Program address for exact seeds (bump included). Raises if the result lies on the ed25519 curve."""
    try:
        return Pubkey.create_program_address([bytes(s) for s in seeds], program_id)
    except ValueError as e:
        raise DerivationFailure("invalid_program_address", f"seeds give no valid address for {program_id}: {e}") from e


def find_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Tuple[Pubkey, int]:
    """Canonical bump search: first valid address for bump 255 down to 0."""
    seeds = [bytes(s) for s in seeds]
    _check_seeds(seeds)
    for bump in range(255, -1, -1):
        try:
            return create_program_address([*seeds, bytes([bump])], program_id), bump
        except DerivationFailure:
            continue
    raise DerivationFailure("bump_seed_exhausted", f"no off-curve address for program {program_id}")


def derive_metadata_address(mint: Pubkey, program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID) -> Tuple[Pubkey, int]:
    return find_program_address([METADATA_SEED, bytes(program_id), bytes(mint)], program_id)


def derive_associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    addr, _ = find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return addr
