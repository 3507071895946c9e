from __future__ import annotations

"""IPFS CID sanity checks.

Lightweight, not a multiformats parser:
  - CIDv0 (base58btc) starts with "Qm" and is 46 chars.
  - CIDv1 (base32 lowercase) starts with "b" and uses a-z2-7.

A pinning service answering with anything else is treated as broken; we would
rather fail the issuance than embed a bogus URI on-chain.
"""

import re
from dataclasses import dataclass


_CIDV0_RE = re.compile(r"^Qm[1-9A-HJ-NP-Za-km-z]{44}$")
_CIDV1_BASE32_RE = re.compile(r"^b[a-z2-7]{10,}$")


@dataclass(frozen=True)
class CidValidation:
    ok: bool
    reason: str
    cid: str


def validate_ipfs_cid(cid: str, *, max_len: int = 128) -> CidValidation:
    c = (cid or "").strip()
    if not c:
        return CidValidation(False, "missing_cid", "")
    if len(c) > int(max_len):
        return CidValidation(False, "cid_too_long", c)
    if _CIDV0_RE.match(c) or _CIDV1_BASE32_RE.match(c):
        return CidValidation(True, "ok", c)
    return CidValidation(False, "invalid_cid_format", c)
