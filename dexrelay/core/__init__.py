"""dexrelay core - market creation relayer building blocks."""

from dexrelay.core.config import ConfigManager, RelayerConfig
from dexrelay.core.models import CreationRequest, MarketRecord, MarketStatus

__all__ = ["ConfigManager", "CreationRequest", "MarketRecord", "MarketStatus", "RelayerConfig"]
