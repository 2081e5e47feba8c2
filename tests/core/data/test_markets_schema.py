"""Tests for the market store table definition."""

from __future__ import annotations

from datetime import datetime

import duckdb
import pytest

from dexrelay.core.data.schema import MARKETS_TABLE, CheckDef, ColumnDef, TableSchema, ensure_schema


def test_table_schema_renders_checks() -> None:
    schema = TableSchema(
        name="example",
        columns=(ColumnDef("id", "INTEGER", ("NOT NULL",)), ColumnDef("value", "INTEGER")),
        primary_key=("id",),
        checks=(CheckDef("positive_value", "value > 0"),),
    )

    ddl = schema.create_ddl()

    assert "CREATE TABLE IF NOT EXISTS example" in ddl
    assert "PRIMARY KEY (id)" in ddl
    assert "CONSTRAINT positive_value CHECK (value > 0)" in ddl


def test_ensure_schema_is_idempotent() -> None:
    conn = duckdb.connect(":memory:")
    ensure_schema(conn)
    ensure_schema(conn)

    columns = [row[0] for row in conn.execute("DESCRIBE markets").fetchall()]

    assert columns == MARKETS_TABLE.column_names
    conn.close()


def _insert(conn, status: str, settlement: datetime, deployed: datetime) -> None:
    conn.execute(
        """
        INSERT INTO markets (market_identifier, symbol, name, category, market_address, market_id, chain_id,
            status, settlement_date, metric_url, start_price_fixed_point, deployed_at, created_at, updated_at)
        VALUES (?, ?, 'n', 'CUSTOM', '0x0', '0x1', 1, ?, ?, 'u', 1, ?, now(), now())
        """,
        [f"{status}-{settlement.isoformat()}", "S", status, settlement, deployed],
    )


def test_deployed_market_must_settle_after_deployment() -> None:
    conn = duckdb.connect(":memory:")
    ensure_schema(conn)
    deployed = datetime(2026, 6, 1)

    _insert(conn, "deployed", datetime(2026, 7, 1), deployed)
    _insert(conn, "settlement_requested", datetime(2026, 5, 1), deployed)
    with pytest.raises(duckdb.ConstraintException):
        _insert(conn, "deployed", datetime(2026, 5, 1), deployed)

    assert conn.execute("SELECT COUNT(*) FROM markets").fetchone()[0] == 2
    conn.close()


def test_ensure_adds_new_nullable_columns_to_an_existing_table() -> None:
    conn = duckdb.connect(":memory:")
    columns = tuple(column for column in MARKETS_TABLE.columns if not column.name.startswith("wayback"))
    legacy = TableSchema(name="markets", columns=columns)
    legacy.ensure(conn)

    ensure_schema(conn)

    columns = [row[0] for row in conn.execute("DESCRIBE markets").fetchall()]
    assert columns[-2:] == ["wayback_url", "wayback_timestamp"]
    assert set(columns) == set(MARKETS_TABLE.column_names)
    conn.close()
