"""Configuration management module."""

from dexrelay.core.config.settings import (
    ArchiveConfig,
    BroadcastConfig,
    ChainConfig,
    ConfigManager,
    FeeConfig,
    GaslessConfig,
    LoggingConfig,
    RelayerConfig,
    StoreConfig,
    UnitAddresses,
    load_config_from_env,
)

__all__ = [
    "ArchiveConfig",
    "BroadcastConfig",
    "ChainConfig",
    "ConfigManager",
    "FeeConfig",
    "GaslessConfig",
    "LoggingConfig",
    "RelayerConfig",
    "StoreConfig",
    "UnitAddresses",
    "load_config_from_env",
]
