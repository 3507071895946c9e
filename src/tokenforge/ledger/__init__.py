# src/tokenforge/ledger/__init__.py
"""
Solana ledger primitives used by issuance.

  - constants: program ids and protocol limits
  - pda: program-derived addresses (metadata record, associated token account)
  - metadata: CreateMetadataArgs Borsh codec and instruction builder
  - token_program: SPL mint, holding account and mint-to instructions
  - rpc: JSON-RPC client and the LedgerClient protocol
"""

from __future__ import annotations

__all__ = [
    "constants",
    "pda",
    "metadata",
    "token_program",
    "rpc",
]
