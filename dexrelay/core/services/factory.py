"""Production wiring of the market creation service."""

from __future__ import annotations

from dexrelay.core.chain.web3_ledger import Web3Ledger
from dexrelay.core.config import RelayerConfig
from dexrelay.core.monitoring import MetricsCollector, get_metrics_collector
from dexrelay.core.services.broadcaster import ProgressBroadcaster
from dexrelay.core.services.persistence import create_repository
from dexrelay.core.services.pipeline import MarketCreationService
from dexrelay.core.services.submitter import SignerLocks


def build_service(config: RelayerConfig, metrics: MetricsCollector | None = None) -> MarketCreationService:
    """Validate ``config`` and wire the ledger, store and broadcaster it describes.

    Raises:
        ConfigurationError: A required key or address is missing.
    """
    config.validate()
    metrics = metrics or get_metrics_collector()
    broadcaster = ProgressBroadcaster(
        redis_url=config.broadcast.redis_url or None,
        channel_prefix=config.broadcast.channel_prefix,
        timeout=config.broadcast.timeout,
        metrics=metrics,
    )
    return MarketCreationService(
        config,
        Web3Ledger(config.chain),
        create_repository(config.store.database),
        broadcaster=broadcaster,
        metrics=metrics,
        locks=SignerLocks(),
    )


__all__ = ["build_service"]
