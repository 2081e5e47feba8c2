"""Market creation routes."""

import asyncio
from typing import Any

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse
from loguru import logger

from dexrelay.core.exceptions import ValidationError
from dexrelay.core.services.pipeline import MarketCreationService
from dexrelay.web.models import MarketView
from dexrelay.web.utils import get_request_id

router = APIRouter()

# Seconds between client disconnect checks while a creation is running.
DISCONNECT_POLL_INTERVAL = 0.5


def _service(request: Request) -> MarketCreationService:
    return request.app.state.service


async def _cancel_on_disconnect(request: Request, cancel: asyncio.Event) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)
    logger.info("Client disconnected, cancelling market creation", extra={"request_id": get_request_id(request)})
    cancel.set()


@router.post("/create")
async def create_market(request: Request, payload: Any = Body(...)) -> JSONResponse:
    """
    Deploy a new market and record it.

    Relayer errors are rendered by the application's exception handler, with the
    failing step and, after submission, the on-chain identifiers. A client that
    disconnects before submission cancels the run.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", field="body").at_step("validating")

    cancel = asyncio.Event()
    watcher = asyncio.create_task(_cancel_on_disconnect(request, cancel))
    try:
        result = await _service(request).create(payload, cancel=cancel)
    finally:
        watcher.cancel()
    logger.info(
        "Market creation finished",
        extra={
            "endpoint": "/api/markets/create",
            "symbol": result["symbol"],
            "order_book": result["orderBookAddress"],
            "request_id": get_request_id(request),
        },
    )
    return JSONResponse(content=result)


@router.post("/{symbol}/persist")
async def persist_market(symbol: str, request: Request, payload: Any = Body(...)) -> JSONResponse:
    """Re-run only persistence for a market already created on chain."""
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", field="body").at_step("persisting")

    record = await _service(request).persist_only(symbol, payload)
    return JSONResponse(content={"ok": True, "market": MarketView.from_record(record).to_json()})


@router.get("/{symbol}")
async def get_market(symbol: str, request: Request) -> JSONResponse:
    record = await _service(request).repository.get(symbol.strip().upper())
    if record is None:
        return JSONResponse(
            status_code=404,
            content={"error": f"Market {symbol.upper()} not found", "code": "NOT_FOUND", "step": None},
        )
    return JSONResponse(content=MarketView.from_record(record).to_json())
