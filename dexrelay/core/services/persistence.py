"""Off-chain market record store and the reconciler that writes final outcomes."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import duckdb
from duckdb import DuckDBPyConnection
from loguru import logger

from dexrelay.core.data.schema import MARKETS_TABLE, ensure_schema
from dexrelay.core.data.storage import DexRelayDuckDBFactory, DuckDBFactoryConfig
from dexrelay.core.exceptions import PersistenceError
from dexrelay.core.models.market import MarketRecord, MarketStatus
from dexrelay.core.models.request import CreationRequest

SETTLEMENT_ELAPSED_REASON = "settlement_elapsed_before_persist"

_IMMUTABLE_COLUMNS = {"market_identifier", "created_at"}
_TIMESTAMP_COLUMNS = {"settlement_date", "deployed_at", "created_at", "updated_at"}


class SettlementElapsedError(PersistenceError):
    """The store rejected a ``deployed`` row whose settlement date is not after deployment."""


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC).replace(tzinfo=None)
        return value
    if isinstance(value, MarketStatus):
        return value.value
    return value


def _from_db(column: str, value: Any) -> Any:
    if column in _TIMESTAMP_COLUMNS and isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class MarketRepository:
    """DuckDB-backed store of :class:`MarketRecord`; upsert is the only write path."""

    def __init__(self, conn: DuckDBPyConnection):
        self.conn = conn
        self._lock = threading.Lock()
        ensure_schema(conn)
        columns = MARKETS_TABLE.column_names
        placeholders = ", ".join("?" for _ in columns)
        updates = ", ".join(f"{column} = EXCLUDED.{column}" for column in columns if column not in _IMMUTABLE_COLUMNS)
        self._columns = columns
        self._upsert_sql = (
            f"INSERT INTO {MARKETS_TABLE.name} ({', '.join(columns)}) VALUES ({placeholders}) "
            f"ON CONFLICT (market_identifier) DO UPDATE SET {updates}"
        )
        self._select_sql = f"SELECT {', '.join(columns)} FROM {MARKETS_TABLE.name} WHERE market_identifier = ?"

    async def upsert(self, record: MarketRecord) -> MarketRecord:
        """Insert or update ``record`` keyed by its market identifier.

        Raises:
            SettlementElapsedError: The settlement CHECK constraint rejected the row.
            PersistenceError: Any other store failure.
        """
        now = datetime.now(UTC)
        data = record.model_dump()
        data["created_at"] = data.get("created_at") or now
        data["updated_at"] = now
        params = [_to_db(data.get(column)) for column in self._columns]
        try:
            with self._lock:
                self.conn.execute(self._upsert_sql, params)
        except duckdb.ConstraintException as exc:
            if "CHECK" in str(exc).upper():
                raise SettlementElapsedError(
                    f"Settlement date of {record.market_identifier} is not after deployment",
                    market_identifier=record.market_identifier,
                    details={"constraint": "check_settlement_after_deploy"},
                ) from exc
            raise PersistenceError(str(exc), market_identifier=record.market_identifier) from exc
        except duckdb.Error as exc:
            raise PersistenceError(str(exc), market_identifier=record.market_identifier) from exc
        stored = await self.get(record.market_identifier)
        return stored or record

    async def get(self, market_identifier: str) -> MarketRecord | None:
        try:
            with self._lock:
                row = self.conn.execute(self._select_sql, [market_identifier]).fetchone()
        except duckdb.Error as exc:
            raise PersistenceError(str(exc), market_identifier=market_identifier) from exc
        if row is None:
            return None
        values = {column: _from_db(column, value) for column, value in zip(self._columns, row, strict=True)}
        values["tags"] = list(values.get("tags") or [])
        return MarketRecord(**values)

    async def count(self, market_identifier: str | None = None) -> int:
        sql = f"SELECT COUNT(*) FROM {MARKETS_TABLE.name}"
        params: list[Any] = []
        if market_identifier is not None:
            sql += " WHERE market_identifier = ?"
            params.append(market_identifier)
        with self._lock:
            row = self.conn.execute(sql, params).fetchone()
        return int(row[0]) if row else 0

    def health_check(self) -> bool:
        try:
            with self._lock:
                self.conn.execute("SELECT 1").fetchone()
        except duckdb.Error:
            return False
        return True

    def close(self) -> None:
        self.conn.close()


def create_repository(database: str = ":memory:") -> MarketRepository:
    """Open the market store at ``database`` (a file path or ``:memory:``)."""
    factory = DexRelayDuckDBFactory(DuckDBFactoryConfig(database=database))
    return MarketRepository(factory.create_connection())


def create_test_repository() -> MarketRepository:
    return create_repository(":memory:")


class PersistenceReconciler:
    """Writes one market record per terminal outcome, with the settlement fallback."""

    def __init__(
        self,
        repository: MarketRepository,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
        network: str = "",
    ):
        self.repository = repository
        self._clock = clock
        self.network = network

    def build_record(
        self,
        request: CreationRequest,
        *,
        order_book: str,
        market_id: str,
        chain_id: int,
        tx_hash: str | None = None,
        block_number: int | None = None,
        gas_used: int | None = None,
        wayback_url: str | None = None,
        wayback_timestamp: str | None = None,
        existing: MarketRecord | None = None,
    ) -> MarketRecord:
        """Assemble the record for a created market; ``existing`` keeps its original timestamps."""
        deployed_at = existing.deployed_at if existing and existing.deployed_at else self._clock()
        return MarketRecord(
            market_identifier=request.symbol,
            symbol=request.symbol,
            name=request.display_name(),
            description=request.description or f"OrderBook market for {request.symbol}",
            category=request.category,
            market_address=order_book,
            market_id=market_id,
            chain_id=chain_id,
            network=self.network,
            status=MarketStatus.DEPLOYED,
            settlement_date=datetime.fromtimestamp(int(request.settlement_date or 0), UTC),
            metric_url=request.metric_url,
            data_source=request.data_source,
            start_price_fixed_point=int(request.start_price_fixed_point or 0),
            tags=list(request.tags),
            creator_wallet_address=request.creator_wallet_address,
            fee_recipient=request.fee_recipient,
            icon_image_url=request.icon_image_url,
            banner_image_url=request.banner_image_url,
            wayback_url=wayback_url or (existing.wayback_url if existing else None),
            wayback_timestamp=wayback_timestamp or (existing.wayback_timestamp if existing else None),
            deployment_transaction_hash=tx_hash or (existing.deployment_transaction_hash if existing else None),
            deployment_block_number=block_number or (existing.deployment_block_number if existing else None),
            deployment_gas_used=gas_used or (existing.deployment_gas_used if existing else None),
            deployed_at=deployed_at,
            created_at=existing.created_at if existing else None,
        )

    async def persist(self, record: MarketRecord) -> MarketRecord:
        """Upsert ``record``; a settlement constraint rejection is retried once as ``settlement_requested``.

        Raises:
            PersistenceError: Any failure other than the settlement constraint, or a failed fallback.
        """
        try:
            stored = await self.repository.upsert(record)
        except SettlementElapsedError:
            logger.warning(
                "Settlement elapsed before persistence, storing as settlement_requested",
                extra={"market_identifier": record.market_identifier},
            )
            fallback = record.model_copy(
                update={
                    "status": MarketStatus.SETTLEMENT_REQUESTED,
                    "status_reason": SETTLEMENT_ELAPSED_REASON,
                }
            )
            stored = await self.repository.upsert(fallback)

        logger.info(
            "Market record saved",
            extra={
                "market_identifier": stored.market_identifier,
                "status": stored.status.value,
                "market_address": stored.market_address,
            },
        )
        return stored


__all__ = [
    "MarketRepository",
    "PersistenceReconciler",
    "SETTLEMENT_ELAPSED_REASON",
    "SettlementElapsedError",
    "create_repository",
    "create_test_repository",
]
