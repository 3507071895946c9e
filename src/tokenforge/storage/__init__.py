# src/tokenforge/storage/__init__.py
"""
Off-chain content for issued tokens.

- ipfs: Kubo-compatible /api/v0/add client and response parsing
- content_pinner: pins the token image, then the JSON document that points at it
"""
