"""
Health and readiness routes
"""

import time
from datetime import UTC, datetime

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from loguru import logger

from dexrelay import __version__
from dexrelay.web.models import APIResponse
from dexrelay.web.utils import get_request_id

router = APIRouter()


@router.get("/health", response_model=APIResponse)
async def health_check(request: Request) -> APIResponse:
    """
    Liveness check

    Reports that the process is up, with its uptime and version.
    """
    uptime = time.monotonic() - getattr(request.app.state, "start_time", time.monotonic())
    logger.debug("Health check completed", extra={"endpoint": "/health", "uptime_seconds": uptime})
    return APIResponse(
        success=True,
        data={
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "uptime_seconds": round(uptime, 3),
            "version": __version__,
        },
        message="Service is running",
        request_id=get_request_id(request),
    )


@router.get("/health/ready", response_model=APIResponse)
async def readiness_check(request: Request) -> JSONResponse:
    """
    Readiness check

    Ready once the configuration is loaded and the market store answers.
    """
    service = getattr(request.app.state, "service", None)
    checks = {
        "config": service is not None,
        "store": bool(service is not None and service.repository.health_check()),
    }
    ready = all(checks.values())
    if not ready:
        logger.warning("Readiness check failed", extra={"endpoint": "/health/ready", "checks": checks})
    body = APIResponse(
        success=ready,
        data={"ready": ready, "checks": checks},
        message="Service is ready" if ready else "Service is not ready",
        request_id=get_request_id(request),
    )
    return JSONResponse(status_code=200 if ready else 503, content=body.model_dump(mode="json"))
