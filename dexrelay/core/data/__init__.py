"""Off-chain market store: table schema and connection factory."""

from dexrelay.core.data.schema import MARKETS_TABLE, CheckDef, ColumnDef, TableSchema, ensure_schema
from dexrelay.core.data.storage import DexRelayDuckDBFactory, DuckDBFactoryConfig

__all__ = [
    "CheckDef",
    "ColumnDef",
    "DexRelayDuckDBFactory",
    "DuckDBFactoryConfig",
    "MARKETS_TABLE",
    "TableSchema",
    "ensure_schema",
]
