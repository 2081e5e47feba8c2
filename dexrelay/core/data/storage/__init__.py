"""DuckDB storage helpers."""

from dexrelay.core.data.storage.duckdb_factory import DexRelayDuckDBFactory, DuckDBFactoryConfig

__all__ = ["DexRelayDuckDBFactory", "DuckDBFactoryConfig"]
