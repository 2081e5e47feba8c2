"""Persisted market record model."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class MarketStatus(str, Enum):
    """Lifecycle status stored with a market record."""

    DEPLOYED = "deployed"
    SETTLEMENT_REQUESTED = "settlement_requested"


class MarketRecord(BaseModel):
    """Off-chain record of a deployed market, unique by ``market_identifier``."""

    market_identifier: str
    symbol: str
    name: str
    description: str | None = None
    category: str = "CUSTOM"
    market_address: str
    market_id: str
    chain_id: int
    network: str = ""
    status: MarketStatus = MarketStatus.DEPLOYED
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

    def recovery_identifiers(self) -> dict[str, Any]:
        return {
            "order_book": self.market_address,
            "market_id": self.market_id,
            "tx_hash": self.deployment_transaction_hash,
        }


__all__ = ["MarketRecord", "MarketStatus"]
