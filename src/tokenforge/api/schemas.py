from __future__ import annotations

"""Pydantic schemas for the HTTP surface.

Field checks here give fast 422s for obviously bad forms; the issuance core
re-validates byte-level limits before anything touches the ledger.
"""

from typing import Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator
from solders.pubkey import Pubkey

from tokenforge.ledger.constants import MAX_NAME_LENGTH, MAX_SYMBOL_LENGTH, U64_MAX
from tokenforge.runtime.orchestrator import AssetSpec


class IssuanceForm(BaseModel):
    name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH, description="Token name")
    symbol: str = Field(..., min_length=1, max_length=MAX_SYMBOL_LENGTH, description="Ticker symbol")
    decimals: int = Field(..., ge=0, le=255)
    supply: int = Field(..., ge=0, le=U64_MAX, description="Initial supply in base units (not scaled by decimals)")
    description: str = Field(default="", max_length=2_000)
    freeze_authority: Optional[str] = Field(default=None, description="Base58 pubkey; optional")

    @field_validator("name", "symbol")
    @classmethod
    def _strip(cls, v: str, info: ValidationInfo) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        # max_length counts characters; the on-chain limit counts UTF-8 bytes.
        limit = MAX_NAME_LENGTH if info.field_name == "name" else MAX_SYMBOL_LENGTH
        if len(v.encode("utf-8")) > limit:
            raise ValueError(f"must be at most {limit} bytes in UTF-8")
        return v

    @field_validator("freeze_authority")
    @classmethod
    def _pubkey(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip()
        try:
            Pubkey.from_string(v)
        except Exception as e:
            raise ValueError("freeze_authority is not a valid base58 public key") from e
        return v

    def to_asset_spec(self, *, image: Optional[bytes] = None, image_name: str = "image") -> AssetSpec:
        return AssetSpec(
            name=self.name,
            symbol=self.symbol,
            decimals=self.decimals,
            initial_supply=self.supply,
            description=self.description,
            freeze_authority=Pubkey.from_string(self.freeze_authority) if self.freeze_authority else None,
            image=image,
            image_name=image_name,
        )


class IssuanceStatus(BaseModel):
    ok: bool = True
    busy: bool
    stage: str
    history: list[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    ok: bool = True
    busy: bool
    wallet_connected: bool
    wallet: Optional[str] = None

    model_config = {"extra": "forbid"}

