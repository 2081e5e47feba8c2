"""Market creation commands."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import typer

from dexrelay.core.config import RelayerConfig
from dexrelay.core.exceptions import RelayerError
from dexrelay.core.services.factory import build_service
from dexrelay.core.services.pipeline import MarketCreationService

from .constants import VALIDATION_EXIT_CODE
from .utils import emit_error, fail, load_config, prepare_output

RESULT_COLUMNS = [
    "symbol",
    "status",
    "orderBookAddress",
    "marketId",
    "transactionHash",
    "feeRecipient",
    "waybackUrl",
]


def register(app: typer.Typer) -> None:
    """Register market commands on the root CLI application."""
    app.command("create")(create_command)


def get_market_service(config: RelayerConfig) -> MarketCreationService:
    """Factory hook returning a wired :class:`MarketCreationService`."""
    return build_service(config)


async def _run_create(service: MarketCreationService, payload: dict[str, Any]) -> dict[str, Any]:
    try:
        return await service.create(payload)
    finally:
        await service.broadcaster.drain(service.broadcaster.timeout)


def create_command(
    ctx: typer.Context,
    request_file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="JSON request body."),
) -> None:
    """Create a market from a JSON request file and print the outcome."""
    formatter, stream, stack, options = prepare_output(ctx)
    try:
        try:
            payload = json.loads(request_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            emit_error(f"{request_file} is not valid JSON: {exc}", "VALIDATION_ERROR")
            raise typer.Exit(code=VALIDATION_EXIT_CODE) from exc

        try:
            service = get_market_service(load_config(ctx))
            result = asyncio.run(_run_create(service, payload))
        except RelayerError as error:
            raise fail(error) from error

        if options.format == "table":
            formatter.render([result], stream=stream, columns=RESULT_COLUMNS)
            steps = [
                {"step": step["step"], "status": step["status"], "timestamp": step["timestamp"]}
                for step in result["steps"]
            ]
            formatter.render(steps, stream=stream)
        else:
            formatter.render([result], stream=stream)
    finally:
        stack.close()


__all__ = ["RESULT_COLUMNS", "create_command", "get_market_service", "register"]
