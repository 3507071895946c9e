from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from tokenforge.ledger.constants import MAX_SELLER_FEE_BASIS_POINTS
from tokenforge.runtime.preflight import DEFAULT_MIN_BALANCE_LAMPORTS

Json = Dict[str, Any]

_ENV_PREFIX = "TOKENFORGE_"
_ALLOWED_MODES = {"dev", "devnet", "mainnet"}
_ALLOWED_COMMITMENTS = {"processed", "confirmed", "finalized"}


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_float(v: Any, default: float) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return float(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


@dataclass(frozen=True)
class IssuerConfig:
    mode: str = "devnet"

    rpc_url: str = "https://api.devnet.solana.com"
    rpc_timeout_s: float = 30.0
    commitment: str = "confirmed"
    confirm_timeout_s: float = 60.0
    confirm_poll_ms: int = 500

    min_balance_lamports: int = DEFAULT_MIN_BALANCE_LAMPORTS
    seller_fee_basis_points: int = 500

    ipfs_api_base: str = "https://ipfs.infura.io:5001"
    ipfs_gateway_base: str = "https://ipfs.infura.io"
    ipfs_project_id: str = ""
    ipfs_project_secret: str = ""
    ipfs_timeout_s: float = 30.0

    keypair_path: str = ""
    max_image_bytes: int = 5 * 1024 * 1024

    api_host: str = "127.0.0.1"
    api_port: int = 8080
    log_level: str = "INFO"


def _coerce(raw: Json, base: IssuerConfig) -> IssuerConfig:
    kwargs: Json = {}
    for f in fields(IssuerConfig):
        cur = getattr(base, f.name)
        v = raw.get(f.name)
        if isinstance(cur, int):
            kwargs[f.name] = _as_int(v, cur) if v is not None else cur
        elif isinstance(cur, float):
            kwargs[f.name] = _as_float(v, cur) if v is not None else cur
        else:
            kwargs[f.name] = _as_str(v, cur)
    return IssuerConfig(**kwargs)


def validate_config(cfg: IssuerConfig) -> None:
    """Fail fast on settings that would make issuance unsafe or impossible."""
    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {sorted(_ALLOWED_MODES)}; got: {cfg.mode!r}")

    if not cfg.rpc_url.startswith(("http://", "https://")):
        raise ValueError(f"rpc_url must be http(s); got: {cfg.rpc_url!r}")

    if cfg.commitment not in _ALLOWED_COMMITMENTS:
        raise ValueError(f"commitment must be one of {sorted(_ALLOWED_COMMITMENTS)}; got: {cfg.commitment!r}")

    # Unbounded confirmation waits are not allowed.
    if not 0 < cfg.confirm_timeout_s <= 600:
        raise ValueError(f"confirm_timeout_s must be in (0, 600]; got: {cfg.confirm_timeout_s}")
    if cfg.confirm_poll_ms < 50:
        raise ValueError(f"confirm_poll_ms must be >= 50; got: {cfg.confirm_poll_ms}")

    if cfg.min_balance_lamports < 0:
        raise ValueError("min_balance_lamports must be >= 0")

    if not 0 <= cfg.seller_fee_basis_points <= MAX_SELLER_FEE_BASIS_POINTS:
        raise ValueError(f"seller_fee_basis_points must be 0..{MAX_SELLER_FEE_BASIS_POINTS}; got: {cfg.seller_fee_basis_points}")

    if not cfg.ipfs_api_base.strip() or not cfg.ipfs_gateway_base.strip():
        raise ValueError("ipfs_api_base and ipfs_gateway_base must be set")

    if cfg.max_image_bytes <= 0:
        raise ValueError("max_image_bytes must be > 0")

    if not 0 < int(cfg.api_port) <= 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")


def _env_overrides() -> Json:
    out: Json = {}
    for f in fields(IssuerConfig):
        v = os.environ.get(_ENV_PREFIX + f.name.upper())
        if v is not None and v.strip() != "":
            out[f.name] = v.strip()
    return out


def read_config_file(path: str) -> Json:
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = yaml.safe_load(text)
    else:
        raw = json.loads(text)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError("config file must contain a mapping")
    return raw


def load_config(*, config_path: Optional[str] = None) -> IssuerConfig:
    """Defaults < TOKENFORGE_* env vars < config file."""
    cfg = _coerce(_env_overrides(), IssuerConfig())

    p = config_path or os.environ.get("TOKENFORGE_CONFIG_PATH")
    if p:
        cfg = _coerce(read_config_file(p), cfg)

    validate_config(cfg)
    return cfg
