"""Recovery of the new market's identity from the creation receipt."""

from __future__ import annotations

from dataclasses import dataclass

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import event_abi_to_log_topic, to_checksum_address
from loguru import logger

from dexrelay.core.chain.abis import MARKET_CREATED_EVENT
from dexrelay.core.chain.interfaces import LogEntry, TxReceipt
from dexrelay.core.exceptions import FatalError

MARKET_CREATED_TOPIC: bytes = event_abi_to_log_topic(MARKET_CREATED_EVENT)


@dataclass(frozen=True)
class MarketCreated:
    order_book: str
    market_id: str
    symbol: str | None
    creator: str | None


def _topic_address(topic: bytes) -> str:
    return to_checksum_address(topic[-20:])


def decode_market_created(log: LogEntry) -> MarketCreated | None:
    """Decode one log, or return ``None`` when it is not a ``FuturesMarketCreated`` record."""
    if len(log.topics) < 3 or log.topics[0] != MARKET_CREATED_TOPIC:
        return None
    symbol: str | None = None
    if log.data:
        try:
            (symbol,) = abi_decode(["string"], log.data)
        except DecodingError:
            symbol = None
    return MarketCreated(
        order_book=_topic_address(log.topics[1]),
        market_id="0x" + log.topics[2].hex(),
        symbol=symbol,
        creator=_topic_address(log.topics[3]) if len(log.topics) > 3 else None,
    )


def resolve_market_created(receipt: TxReceipt, factory_address: str) -> MarketCreated:
    """Locate the market-created record emitted by the factory in ``receipt``.

    Raises:
        FatalError: The transaction succeeded but emitted no recoverable market identity.
    """
    factory = factory_address.lower()
    for log in receipt.logs:
        if log.address.lower() != factory:
            continue
        created = decode_market_created(log)
        if created is not None:
            logger.info(
                "Market created",
                extra={"order_book": created.order_book, "market_id": created.market_id, "tx_hash": receipt.tx_hash},
            )
            return created

    raise FatalError(
        f"Transaction {receipt.tx_hash} emitted no FuturesMarketCreated event",
        tx_hash=receipt.tx_hash,
        details={"log_count": len(receipt.logs)},
    )


__all__ = ["MARKET_CREATED_TOPIC", "MarketCreated", "decode_market_created", "resolve_market_created"]
