"""Inbound market creation request model."""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_TAGS = 10
PRICE_DECIMALS = 6


class GaslessAuthorization(BaseModel):
    """Off-chain authorization supplied by the requester for a gasless create."""

    model_config = ConfigDict(frozen=True)

    signature: str
    nonce: int
    deadline: int


class CreationRequest(BaseModel):
    """Request to deploy a new market, accepted from HTTP JSON (camelCase) or Python (snake_case)."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")

    symbol: str = ""
    metric_url: str = Field("", alias="metricUrl")
    start_price: str | None = Field(None, alias="startPrice")
    start_price_fixed_point: int | None = Field(None, alias="startPriceFixedPoint")
    settlement_date: int | None = Field(None, alias="settlementDate")
    data_source: str = Field("User Provided", alias="dataSource")
    tags: list[str] = Field(default_factory=list)
    name: str | None = None
    description: str | None = None
    creator_wallet_address: str | None = Field(None, alias="creatorWalletAddress")
    fee_recipient: str | None = Field(None, alias="feeRecipient")
    icon_image_url: str | None = Field(None, alias="iconImageUrl")
    banner_image_url: str | None = Field(None, alias="bannerImageUrl")
    pipeline_id: str | None = Field(None, alias="pipelineId")
    signature: str | None = None
    nonce: int | None = None
    deadline: int | None = None
    cut: list[Any] | None = Field(None, alias="cutArg")

    @field_validator("start_price", mode="before")
    @classmethod
    def _price_as_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, bool):
            return str(int(value))
        if isinstance(value, (int, float)):
            return repr(value) if isinstance(value, float) else str(value)
        return value

    @field_validator("settlement_date", mode="before")
    @classmethod
    def _floor_timestamp(cls, value: Any) -> Any:
        if isinstance(value, float) and math.isfinite(value):
            return math.floor(value)
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _cap_tags(cls, value: Any) -> list[str]:
        if not isinstance(value, (list, tuple)):
            return []
        return [str(tag) for tag in list(value)[:MAX_TAGS]]

    @field_validator("nonce", "deadline", mode="before")
    @classmethod
    def _int_from_text(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        return value

    @property
    def gasless(self) -> GaslessAuthorization | None:
        """Return the meta-transaction authorization when all gasless fields are present."""
        if self.signature is None or self.nonce is None or self.deadline is None:
            return None
        return GaslessAuthorization(signature=self.signature, nonce=self.nonce, deadline=self.deadline)

    @property
    def category(self) -> str:
        return self.tags[0] if self.tags else "CUSTOM"

    def display_name(self) -> str:
        if self.name:
            return self.name
        base = self.symbol.split("-")[0] or self.symbol
        return f"{base.upper()} Futures"


__all__ = ["CreationRequest", "GaslessAuthorization", "MAX_TAGS", "PRICE_DECIMALS"]
