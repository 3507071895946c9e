from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from solders.keypair import Keypair
from solders.pubkey import Pubkey


def _decode_bytes(s: str) -> bytes:
    """Decode key material given as a JSON int array, hex, base58 or base64/base64url."""
    s = s.strip()
    if not s:
        raise ValueError("empty string")
    # Solana CLI keypair file contents: [12, 34, ...]
    if s.startswith("["):
        try:
            arr = json.loads(s)
            return bytes(int(x) for x in arr)
        except Exception as e:
            raise ValueError("invalid json byte array") from e
    # hex
    try:
        return bytes.fromhex(s)
    except Exception:
        pass
    # base58 (64-byte secret as exported by most wallets)
    try:
        return bytes(Keypair.from_base58_string(s))
    except Exception:
        pass
    # base64 / base64url
    try:
        padding = "=" * (-len(s) % 4)
        s2 = (s + padding).replace("-", "+").replace("_", "/")
        return base64.b64decode(s2, validate=True)
    except Exception as e:
        raise ValueError("not json, hex, base58 or base64") from e


@dataclass(frozen=True)
class LocalSigner:
    """Ed25519 key held in-process (issuer keypair or a freshly generated mint)."""

    private_key: Ed25519PrivateKey

    @property
    def pubkey(self) -> Pubkey:
        raw = self.private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        return Pubkey.from_bytes(raw)

    def sign(self, message: bytes) -> bytes:
        return self.private_key.sign(message)

    @staticmethod
    def generate() -> "LocalSigner":
        return LocalSigner(Ed25519PrivateKey.generate())

    @staticmethod
    def from_secret_bytes(secret: bytes) -> "LocalSigner":
        """Accept a 32-byte seed or a 64-byte seed||pubkey secret key."""
        b = bytes(secret)
        if len(b) == 64:
            signer = LocalSigner(Ed25519PrivateKey.from_private_bytes(b[:32]))
            if bytes(signer.pubkey) != b[32:]:
                raise ValueError("secret key pubkey half does not match its seed")
            return signer
        if len(b) != 32:
            raise ValueError("ed25519 secret must be 32-byte seed (or 64-byte seed+pubkey)")
        return LocalSigner(Ed25519PrivateKey.from_private_bytes(b))

    @staticmethod
    def from_secret(secret: str) -> "LocalSigner":
        return LocalSigner.from_secret_bytes(_decode_bytes(secret))


def load_signer_file(path: Union[str, Path]) -> LocalSigner:
    p = Path(path).expanduser()
    return LocalSigner.from_secret(p.read_text(encoding="utf-8"))


def verify_ed25519_signature(*, message: bytes, sig: bytes, pubkey: Pubkey) -> bool:
    try:
        key = Ed25519PublicKey.from_public_bytes(bytes(pubkey))
        key.verify(bytes(sig), message)
        return True
    except (InvalidSignature, ValueError):
        return False
