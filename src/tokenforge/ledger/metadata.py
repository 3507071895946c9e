from __future__ import annotations

"""Token metadata instruction: Borsh encoding of CreateMetadataArgs.

Wire layout (little-endian, Borsh):

    name:     u32 len + utf-8 bytes
    symbol:   u32 len + utf-8 bytes
    uri:      u32 len + utf-8 bytes
    seller_fee_basis_points: u16
    creators: Option<Vec<Pubkey>>  (u8 tag, then u32 count + 32 bytes each)

All limits are checked before a single byte is written, so a payload is either
complete or not produced at all.
"""

import struct
from dataclasses import dataclass
from typing import List, Optional, Tuple

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from tokenforge.ledger.constants import (
    MAX_CREATOR_LIMIT,
    MAX_NAME_LENGTH,
    MAX_SELLER_FEE_BASIS_POINTS,
    MAX_SYMBOL_LENGTH,
    MAX_URI_LENGTH,
    SYSTEM_PROGRAM_ID,
    TOKEN_METADATA_PROGRAM_ID,
    U16_MAX,
    U32_MAX,
)
from tokenforge.runtime.errors import EncodingFailure


@dataclass(frozen=True)
class MetadataArgs:
    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int
    creators: Optional[Tuple[Pubkey, ...]] = None

    def __post_init__(self) -> None:
        if self.creators is not None and not isinstance(self.creators, tuple):
            object.__setattr__(self, "creators", tuple(self.creators))


_STRING_LIMITS = (
    ("name", MAX_NAME_LENGTH),
    ("symbol", MAX_SYMBOL_LENGTH),
    ("uri", MAX_URI_LENGTH),
)


def validate_metadata_args(args: MetadataArgs) -> None:
    for field, limit in _STRING_LIMITS:
        raw = getattr(args, field)
        if not isinstance(raw, str):
            raise EncodingFailure("invalid_field", f"{field} must be a string")
        n = len(raw.encode("utf-8"))
        if n > U32_MAX:
            raise EncodingFailure("length_prefix_overflow", f"{field} exceeds u32 length prefix")
        if n > limit:
            raise EncodingFailure("field_too_long", f"{field} is {n} bytes (max {limit})")

    fee = args.seller_fee_basis_points
    if isinstance(fee, bool) or not isinstance(fee, int):
        raise EncodingFailure("invalid_field", "seller_fee_basis_points must be an int")
    if fee < 0 or fee > U16_MAX:
        raise EncodingFailure("u16_overflow", f"seller_fee_basis_points out of u16 range: {fee}")
    if fee > MAX_SELLER_FEE_BASIS_POINTS:
        raise EncodingFailure("invalid_basis_points", f"seller_fee_basis_points must be <= {MAX_SELLER_FEE_BASIS_POINTS}")

    if args.creators is not None:
        if len(args.creators) > MAX_CREATOR_LIMIT:
            raise EncodingFailure(
                "too_many_creators", f"{len(args.creators)} creators (max {MAX_CREATOR_LIMIT})"
            )
        for c in args.creators:
            if not isinstance(c, Pubkey):
                raise EncodingFailure("invalid_creator", f"creator must be a Pubkey, got {type(c).__name__}")


def _pack_string(s: str) -> bytes:
    b = s.encode("utf-8")
    return struct.pack("<I", len(b)) + b


def encode_metadata_args(args: MetadataArgs) -> bytes:
    validate_metadata_args(args)

    out = bytearray()
    out += _pack_string(args.name)
    out += _pack_string(args.symbol)
    out += _pack_string(args.uri)
    out += struct.pack("<H", args.seller_fee_basis_points)
    if args.creators is None:
        out += b"\x00"
    else:
        out += b"\x01"
        out += struct.pack("<I", len(args.creators))
        for c in args.creators:
            out += bytes(c)
    return bytes(out)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def take(self, n: int) -> bytes:
        end = self.pos + n
        if end > len(self.data):
            raise EncodingFailure("truncated_payload", f"need {n} bytes at offset {self.pos}")
        chunk = self.data[self.pos:end]
        self.pos = end
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u16(self) -> int:
        return struct.unpack("<H", self.take(2))[0]

    def u32(self) -> int:
        return struct.unpack("<I", self.take(4))[0]

    def string(self) -> str:
        raw = self.take(self.u32())
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EncodingFailure("invalid_utf8", f"invalid utf-8 at offset {self.pos}") from e


def decode_metadata_args(data: bytes) -> MetadataArgs:
    r = _Reader(bytes(data))
    name = r.string()
    symbol = r.string()
    uri = r.string()
    fee = r.u16()

    tag = r.u8()
    creators: Optional[Tuple[Pubkey, ...]]
    if tag == 0:
        creators = None
    elif tag == 1:
        count = r.u32()
        creators = tuple(Pubkey.from_bytes(r.take(32)) for _ in range(count))
    else:
        raise EncodingFailure("invalid_option_tag", f"bad option tag {tag}")

    if r.pos != len(r.data):
        raise EncodingFailure("trailing_bytes", f"{len(r.data) - r.pos} trailing bytes")

    return MetadataArgs(name=name, symbol=symbol, uri=uri, seller_fee_basis_points=fee, creators=creators)


def metadata_account_metas(metadata: Pubkey, mint: Pubkey, issuer: Pubkey) -> List[AccountMeta]:
    return [
        AccountMeta(pubkey=metadata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=True),
        AccountMeta(pubkey=issuer, is_signer=True, is_writable=False),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]


def build_create_metadata_instruction(
    *,
    metadata: Pubkey,
    mint: Pubkey,
    issuer: Pubkey,
    args: MetadataArgs,
    program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID,
) -> Instruction:
    data = encode_metadata_args(args)
    return Instruction(program_id, data, metadata_account_metas(metadata, mint, issuer))
