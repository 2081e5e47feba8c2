"""Table definitions for the off-chain market record store."""

from __future__ import annotations

from collections.abc import Sequence  # noqa: TC003
from dataclasses import dataclass

from duckdb import DuckDBPyConnection


@dataclass(frozen=True)
class ColumnDef:
    """Represents a DuckDB table column definition."""

    name: str
    data_type: str
    constraints: Sequence[str] = ()

    def render(self) -> str:
        parts = [self.name, self.data_type, *self.constraints]
        return " ".join(parts)


@dataclass(frozen=True)
class CheckDef:
    """Named table-level CHECK constraint."""

    name: str
    expression: str

    def render(self) -> str:
        return f"CONSTRAINT {self.name} CHECK ({self.expression})"


@dataclass(frozen=True)
class TableSchema:
    """Utility wrapper describing a DuckDB table schema."""

    name: str
    columns: Sequence[ColumnDef]
    primary_key: Sequence[str] = ()
    checks: Sequence[CheckDef] = ()

    def create_ddl(self) -> str:
        column_defs: list[str] = [column.render() for column in self.columns]
        if self.primary_key:
            pk_cols = ", ".join(self.primary_key)
            column_defs.append(f"PRIMARY KEY ({pk_cols})")
        column_defs.extend(check.render() for check in self.checks)
        columns_sql = ",\n                ".join(column_defs)
        return f"""
            CREATE TABLE IF NOT EXISTS {self.name} (
                {columns_sql}
            )
            """.strip()

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    def ensure(self, conn: DuckDBPyConnection) -> None:
        """Create the table on the provided connection if it does not exist.

        Nullable columns added since the table was created are appended in place.
        """

        conn.execute(self.create_ddl())
        present = {
            row[0]
            for row in conn.execute(
                "SELECT column_name FROM information_schema.columns WHERE table_name = ?", [self.name]
            ).fetchall()
        }
        for column in self.columns:
            if column.name not in present and "NOT NULL" not in column.constraints:
                conn.execute(f"ALTER TABLE {self.name} ADD COLUMN {column.render()}")


# A deployed market must settle after it was deployed.
SETTLEMENT_AFTER_DEPLOY = CheckDef(
    "check_settlement_after_deploy",
    "status <> 'deployed' OR deployed_at IS NULL OR settlement_date > deployed_at",
)

MARKETS_TABLE = TableSchema(
    name="markets",
    columns=(
        ColumnDef("market_identifier", "VARCHAR", ("NOT NULL",)),
        ColumnDef("symbol", "VARCHAR", ("NOT NULL",)),
        ColumnDef("name", "VARCHAR", ("NOT NULL",)),
        ColumnDef("description", "VARCHAR"),
        ColumnDef("category", "VARCHAR", ("NOT NULL",)),
        ColumnDef("market_address", "VARCHAR", ("NOT NULL",)),
        ColumnDef("market_id", "VARCHAR", ("NOT NULL",)),
        ColumnDef("chain_id", "BIGINT", ("NOT NULL",)),
        ColumnDef("network", "VARCHAR"),
        ColumnDef("status", "VARCHAR", ("NOT NULL",)),
        ColumnDef("status_reason", "VARCHAR"),
        ColumnDef("settlement_date", "TIMESTAMP", ("NOT NULL",)),
        ColumnDef("metric_url", "VARCHAR", ("NOT NULL",)),
        ColumnDef("data_source", "VARCHAR"),
        ColumnDef("start_price_fixed_point", "HUGEINT", ("NOT NULL",)),
        ColumnDef("tags", "VARCHAR[]"),
        ColumnDef("creator_wallet_address", "VARCHAR"),
        ColumnDef("fee_recipient", "VARCHAR"),
        ColumnDef("icon_image_url", "VARCHAR"),
        ColumnDef("banner_image_url", "VARCHAR"),
        ColumnDef("wayback_url", "VARCHAR"),
        ColumnDef("wayback_timestamp", "VARCHAR"),
        ColumnDef("deployment_transaction_hash", "VARCHAR"),
        ColumnDef("deployment_block_number", "BIGINT"),
        ColumnDef("deployment_gas_used", "BIGINT"),
        ColumnDef("deployed_at", "TIMESTAMP"),
        ColumnDef("created_at", "TIMESTAMP", ("NOT NULL",)),
        ColumnDef("updated_at", "TIMESTAMP", ("NOT NULL",)),
    ),
    primary_key=("market_identifier",),
    checks=(SETTLEMENT_AFTER_DEPLOY,),
)


def ensure_schema(conn: DuckDBPyConnection) -> None:
    """Create every store table on ``conn``."""

    MARKETS_TABLE.ensure(conn)


__all__ = [
    "CheckDef",
    "ColumnDef",
    "MARKETS_TABLE",
    "SETTLEMENT_AFTER_DEPLOY",
    "TableSchema",
    "ensure_schema",
]
