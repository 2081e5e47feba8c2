"""dexrelay - relayer that deploys order book markets and records them off chain."""

__version__ = "0.1.0"

__all__ = ["__version__"]
