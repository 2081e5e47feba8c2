"""
HTTP routes
"""

from dexrelay.web.metrics import router as metrics_router
from dexrelay.web.routes.health_routes import router as health_router
from dexrelay.web.routes.markets import router as markets_router

__all__ = ["health_router", "markets_router", "metrics_router"]
