"""
FastAPI application factory and wiring
"""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from dexrelay import __version__
from dexrelay.core.config import ConfigManager
from dexrelay.core.exceptions import RelayerError, ValidationError, get_error_handler
from dexrelay.core.logging import configure_logging, log_context
from dexrelay.core.monitoring import MetricsCollector, get_metrics_collector
from dexrelay.core.services.factory import build_service
from dexrelay.core.services.pipeline import MarketCreationService
from dexrelay.web.routes import health_router, markets_router, metrics_router
from dexrelay.web.utils import REQUEST_ID_HEADER, new_request_id


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the service on startup unless one was injected, and release it on shutdown."""
    owned = app.state.service is None
    if owned:
        config = ConfigManager().get_config()
        configure_logging(
            level=config.logging.level,
            file_output=bool(config.logging.file),
            file_path=config.logging.file or None,
        )
        app.state.config = config
        app.state.service = build_service(config, app.state.metrics)
        logger.info("Relayer started", extra={"network": config.chain.network_name, "version": __version__})

    yield

    service: MarketCreationService | None = app.state.service
    if service is not None:
        await service.broadcaster.close()
        if owned:
            service.repository.close()


def create_app(
    service: MarketCreationService | None = None,
    metrics: MetricsCollector | None = None,
) -> FastAPI:
    """Create the FastAPI application; pass ``service`` to skip environment wiring."""
    app = FastAPI(
        title="dexrelay - market creation relayer",
        description="Deploys order book markets on chain and records them off chain",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.config = service.config if service is not None else None
    app.state.metrics = metrics or (service.metrics if service is not None else get_metrics_collector())
    app.state.start_time = time.monotonic()

    _setup_middleware(app)
    _setup_routes(app)
    _setup_exception_handlers(app)

    return app


def _setup_middleware(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
        request.state.request_id = request_id
        with log_context(trace_id=request_id, request_id=request_id, path=request.url.path):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _setup_routes(app: FastAPI) -> None:
    app.include_router(markets_router, prefix="/api/markets", tags=["markets"])
    app.include_router(health_router, tags=["health"])
    app.include_router(metrics_router)


def _error_response(request: Request, error: Exception) -> JSONResponse:
    handler = get_error_handler()
    headers = {}
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        headers[REQUEST_ID_HEADER] = request_id
    return JSONResponse(
        status_code=handler.status_code(error),
        content=handler.create_error_response(error),
        headers=headers,
    )


def _setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RelayerError)
    async def relayer_exception_handler(request: Request, exc: RelayerError) -> JSONResponse:
        return _error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        location = errors[0].get("loc", ()) if errors else ()
        error = ValidationError("Request body is not valid JSON", field=".".join(str(p) for p in location) or "body")
        return _error_response(request, error.at_step("validating"))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        error = get_error_handler().handle_exception(exc, "unhandled_error", path=request.url.path)
        return _error_response(request, error)
