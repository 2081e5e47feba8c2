"""Relayer configuration: dataclasses, TOML file loading and environment overrides."""

import os
import tomllib
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from eth_utils import is_address
from loguru import logger

from dexrelay.core.exceptions import ConfigurationError


@dataclass
class ChainConfig:
    """Ledger connection and relayer signing identity."""

    rpc_url: str = ""
    private_key: str = ""
    chain_id: int | None = None
    confirmation_timeout: float = 120.0
    network_name: str = ""


@dataclass
class UnitAddresses:
    """Addresses of the factory, the market units and the shared contracts."""

    factory: str = ""
    initializer: str = ""
    admin: str = ""
    pricing: str = ""
    placement: str = ""
    execution: str = ""
    liquidation: str = ""
    view: str = ""
    settlement: str = ""
    lifecycle: str = ""
    meta_trade: str = ""
    core_vault: str = ""
    session_registry: str = ""


@dataclass
class GaslessConfig:
    """Meta-transaction (gasless create) settings."""

    enabled: bool = False
    domain_name: str = "DexetraFactory"
    domain_version: str = "1"
    diamond_owner: str = ""


@dataclass
class FeeConfig:
    """Fee floors and bump applied to every relayer transaction."""

    min_priority_fee_gwei: float = 2.0
    min_max_fee_gwei: float = 20.0
    bump_percent: int = 20


@dataclass
class BroadcastConfig:
    """Progress broadcast transport (Redis pub/sub)."""

    redis_url: str = ""
    channel_prefix: str = "deploy-"
    timeout: float = 2.0


@dataclass
class ArchiveConfig:
    """Wayback Machine snapshot of each new market's metric URL."""

    enabled: bool = True
    timeout: float = 30.0
    poll_interval: float = 2.0
    access_key: str = ""
    secret_key: str = ""
    user_agent: str = "dexrelay"


@dataclass
class StoreConfig:
    """Off-chain market record store."""

    database: str = str(Path("data") / "dexrelay.duckdb")


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "INFO"
    file: str = ""


@dataclass
class RelayerConfig:
    """Top-level relayer configuration."""

    chain: ChainConfig = field(default_factory=ChainConfig)
    units: UnitAddresses = field(default_factory=UnitAddresses)
    gasless: GaslessConfig = field(default_factory=GaslessConfig)
    fees: FeeConfig = field(default_factory=FeeConfig)
    broadcast: BroadcastConfig = field(default_factory=BroadcastConfig)
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    artifacts_dir: str = ""

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "RelayerConfig":
        """Create a configuration from a nested dictionary."""
        return cls(
            chain=ChainConfig(**config_dict.get("chain", {})),
            units=UnitAddresses(**config_dict.get("units", {})),
            gasless=GaslessConfig(**config_dict.get("gasless", {})),
            fees=FeeConfig(**config_dict.get("fees", {})),
            broadcast=BroadcastConfig(**config_dict.get("broadcast", {})),
            archive=ArchiveConfig(**config_dict.get("archive", {})),
            store=StoreConfig(**config_dict.get("store", {})),
            logging=LoggingConfig(**config_dict.get("logging", {})),
            artifacts_dir=str(config_dict.get("artifacts_dir", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a nested dictionary."""
        return asdict(self)

    def validate(self) -> "RelayerConfig":
        """Check every required key and address, raising one error that lists all problems."""
        missing: list[str] = []
        if not self.chain.rpc_url:
            missing.append("chain.rpc_url")
        if not self.chain.private_key:
            missing.append("chain.private_key")

        optional_units = {"session_registry"}
        for unit_field in fields(self.units):
            value = getattr(self.units, unit_field.name)
            if unit_field.name in optional_units and not value:
                continue
            if not value or not is_address(value):
                missing.append(f"units.{unit_field.name}")

        if self.gasless.diamond_owner and not is_address(self.gasless.diamond_owner):
            missing.append("gasless.diamond_owner")

        if missing:
            raise ConfigurationError(
                f"Relayer configuration is incomplete: {', '.join(missing)}",
                missing=missing,
            )
        return self


# (section, key) -> environment variable names, first match wins.
ENV_VARIABLES: dict[tuple[str, str], tuple[str, ...]] = {
    ("chain", "rpc_url"): ("DEXRELAY_RPC_URL", "RPC_URL", "JSON_RPC_URL"),
    ("chain", "private_key"): ("DEXRELAY_PRIVATE_KEY", "ADMIN_PRIVATE_KEY", "ROLE_ADMIN_PRIVATE_KEY"),
    ("chain", "chain_id"): ("DEXRELAY_CHAIN_ID", "CHAIN_ID"),
    ("chain", "confirmation_timeout"): ("DEXRELAY_CONFIRMATION_TIMEOUT",),
    ("chain", "network_name"): ("DEXRELAY_NETWORK_NAME", "NETWORK_NAME"),
    ("units", "factory"): ("DEXRELAY_FACTORY_ADDRESS", "FUTURES_MARKET_FACTORY_ADDRESS"),
    ("units", "initializer"): ("DEXRELAY_INIT_FACET", "ORDER_BOOK_INIT_FACET"),
    ("units", "admin"): ("DEXRELAY_ADMIN_FACET", "OB_ADMIN_FACET"),
    ("units", "pricing"): ("DEXRELAY_PRICING_FACET", "OB_PRICING_FACET"),
    ("units", "placement"): ("DEXRELAY_PLACEMENT_FACET", "OB_ORDER_PLACEMENT_FACET"),
    ("units", "execution"): ("DEXRELAY_EXECUTION_FACET", "OB_TRADE_EXECUTION_FACET"),
    ("units", "liquidation"): ("DEXRELAY_LIQUIDATION_FACET", "OB_LIQUIDATION_FACET"),
    ("units", "view"): ("DEXRELAY_VIEW_FACET", "OB_VIEW_FACET"),
    ("units", "settlement"): ("DEXRELAY_SETTLEMENT_FACET", "OB_SETTLEMENT_FACET"),
    ("units", "lifecycle"): ("DEXRELAY_LIFECYCLE_FACET", "MARKET_LIFECYCLE_FACET"),
    ("units", "meta_trade"): ("DEXRELAY_META_TRADE_FACET", "META_TRADE_FACET"),
    ("units", "core_vault"): ("DEXRELAY_CORE_VAULT_ADDRESS", "CORE_VAULT_ADDRESS"),
    ("units", "session_registry"): ("DEXRELAY_SESSION_REGISTRY_ADDRESS", "SESSION_REGISTRY_ADDRESS"),
    ("gasless", "enabled"): ("DEXRELAY_GASLESS_ENABLED", "GASLESS_CREATE_ENABLED"),
    ("gasless", "domain_name"): ("DEXRELAY_EIP712_DOMAIN_NAME", "EIP712_FACTORY_DOMAIN_NAME"),
    ("gasless", "domain_version"): ("DEXRELAY_EIP712_DOMAIN_VERSION", "EIP712_FACTORY_DOMAIN_VERSION"),
    ("gasless", "diamond_owner"): ("DEXRELAY_DIAMOND_OWNER", "FACTORY_DIAMOND_OWNER"),
    ("fees", "min_priority_fee_gwei"): ("DEXRELAY_MIN_PRIORITY_FEE_GWEI",),
    ("fees", "min_max_fee_gwei"): ("DEXRELAY_MIN_MAX_FEE_GWEI",),
    ("fees", "bump_percent"): ("DEXRELAY_FEE_BUMP_PERCENT",),
    ("broadcast", "redis_url"): ("DEXRELAY_REDIS_URL", "REDIS_URL"),
    ("broadcast", "channel_prefix"): ("DEXRELAY_BROADCAST_CHANNEL_PREFIX",),
    ("broadcast", "timeout"): ("DEXRELAY_BROADCAST_TIMEOUT",),
    ("archive", "enabled"): ("DEXRELAY_ARCHIVE_ENABLED",),
    ("archive", "timeout"): ("DEXRELAY_ARCHIVE_TIMEOUT",),
    ("archive", "access_key"): ("DEXRELAY_WAYBACK_ACCESS_KEY", "WAYBACK_API_ACCESS_KEY"),
    ("archive", "secret_key"): ("DEXRELAY_WAYBACK_SECRET", "WAYBACK_API_SECRET"),
    ("store", "database"): ("DEXRELAY_DATABASE",),
    ("logging", "level"): ("DEXRELAY_LOGGING_LEVEL",),
    ("logging", "file"): ("DEXRELAY_LOGGING_FILE",),
}

_BOOL_KEYS = {("gasless", "enabled"), ("archive", "enabled")}
_INT_KEYS = {("chain", "chain_id"), ("fees", "bump_percent")}
_FLOAT_KEYS = {
    ("chain", "confirmation_timeout"),
    ("fees", "min_priority_fee_gwei"),
    ("fees", "min_max_fee_gwei"),
    ("broadcast", "timeout"),
    ("archive", "timeout"),
}


def _coerce(key: tuple[str, str], raw: str) -> Any:
    if key in _BOOL_KEYS:
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    try:
        if key in _INT_KEYS:
            return int(raw)
        if key in _FLOAT_KEYS:
            return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value for {'.'.join(key)}: {raw!r}", missing=[".".join(key)]) from exc
    return raw.strip()


def load_config_from_env(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Read configuration overrides from environment variables."""
    env = os.environ if environ is None else environ
    config: dict[str, Any] = {}
    for key, names in ENV_VARIABLES.items():
        for name in names:
            raw = env.get(name)
            if raw is not None and raw != "":
                config.setdefault(key[0], {})[key[1]] = _coerce(key, raw)
                break
    artifacts_dir = env.get("DEXRELAY_ARTIFACTS_DIR")
    if artifacts_dir:
        config["artifacts_dir"] = artifacts_dir
    return config


def _deep_update(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    for k, v in updates.items():
        if isinstance(v, dict):
            base[k] = _deep_update(dict(base.get(k, {})), v)
        else:
            base[k] = v
    return base


class ConfigManager:
    """Loads the relayer configuration once at startup."""

    def __init__(self, config_path: Path | None = None, environ: dict[str, str] | None = None):
        """Initialise the manager.

        Args:
            config_path: Optional TOML file; environment variables take precedence over it.
            environ: Environment mapping, ``os.environ`` by default.
        """
        self.config_path = config_path or Path(os.getenv("DEXRELAY_CONFIG", "dexrelay.toml"))
        self._environ = environ
        self.config = self._load_config()

    def _load_config(self) -> RelayerConfig:
        file_config: dict[str, Any] = {}
        if self.config_path.exists():
            with open(self.config_path, "rb") as f:
                file_config = tomllib.load(f)
            logger.info("Loaded relayer config file", extra={"path": str(self.config_path)})
        merged = _deep_update(file_config, load_config_from_env(self._environ))
        return RelayerConfig.from_dict(merged)

    def get_config(self) -> RelayerConfig:
        """Return the loaded configuration."""
        return self.config


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
