"""
HTTP surface of the relayer
"""

from dexrelay.web.app import build_service, create_app
from dexrelay.web.models import APIResponse, MarketView
from dexrelay.web.routes import health_router, markets_router, metrics_router

__all__ = [
    "APIResponse",
    "MarketView",
    "build_service",
    "create_app",
    "health_router",
    "markets_router",
    "metrics_router",
]
