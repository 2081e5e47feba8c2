"""HTTP response models."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from dexrelay.core.models import MarketRecord, MarketStatus


class APIResponse(BaseModel):
    """Envelope used by the health endpoints."""

    success: bool = Field(..., description="Whether the check passed")
    data: Any | None = Field(None, description="Check payload")
    message: str | None = Field(None, description="Human readable summary")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    request_id: str | None = Field(None, description="Request id for tracing")


class MarketView(BaseModel):
    """Persisted market record as returned by ``GET /api/markets/{symbol}``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    market_identifier: str
    symbol: str
    name: str
    description: str | None = None
    category: str
    market_address: str
    market_id: str
    chain_id: int
    network: str = ""
    status: MarketStatus
    status_reason: str | None = None
    settlement_date: datetime
    metric_url: str
    data_source: str
    start_price_fixed_point: int
    tags: list[str] = Field(default_factory=list)
    creator_wallet_address: str | None = None
    fee_recipient: str | None = None
    icon_image_url: str | None = None
    banner_image_url: str | None = None
    wayback_url: str | None = None
    wayback_timestamp: str | None = None
    deployment_transaction_hash: str | None = None
    deployment_block_number: int | None = None
    deployment_gas_used: int | None = None
    deployed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, record: MarketRecord) -> "MarketView":
        return cls(**record.model_dump())

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
