"""Operator commands: server, facet cut inspection and configuration checks."""

from __future__ import annotations

import os
from dataclasses import fields

import typer
import uvicorn
from eth_account import Account

from dexrelay.core.exceptions import ConfigurationError, RelayerError
from dexrelay.core.services.facet_cut import FacetCutBuilder

from .utils import fail, load_config, prepare_output

FACET_COLUMNS = ["unit", "contract", "facetAddress", "selectorCount", "source"]
CONFIG_COLUMNS = ["key", "value"]


def register(app: typer.Typer) -> None:
    """Register operator commands on the root CLI application."""
    app.command("serve")(serve_command)
    app.command("facet-cut")(facet_cut_command)
    app.command("config-check")(config_check_command)


def serve_command(
    host: str = typer.Option(os.getenv("DEXRELAY_HOST", "0.0.0.0"), "--host", help="Bind address."),
    port: int = typer.Option(int(os.getenv("DEXRELAY_PORT", "8000")), "--port", help="Bind port."),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes."),
) -> None:
    """Run the HTTP service with uvicorn."""
    uvicorn.run("dexrelay.web.app:create_app", factory=True, host=host, port=port, reload=reload, log_level="info")


def facet_cut_command(ctx: typer.Context) -> None:
    """Print the selector count each market unit contributes to the facet cut."""
    formatter, stream, stack, _ = prepare_output(ctx)
    try:
        config = load_config(ctx)
        builder = FacetCutBuilder(config.units, config.artifacts_dir or None)
        formatter.render(builder.describe(), stream=stream, columns=FACET_COLUMNS)
    finally:
        stack.close()


def _relayer_address(private_key: str) -> str:
    try:
        return Account.from_key(private_key).address
    except (ValueError, TypeError) as exc:
        raise ConfigurationError("chain.private_key is not a valid private key", missing=["chain.private_key"]) from exc


def config_check_command(ctx: typer.Context) -> None:
    """Validate the environment configuration and print the resolved values."""
    formatter, stream, stack, _ = prepare_output(ctx)
    try:
        try:
            config = load_config(ctx).validate()
            relayer = _relayer_address(config.chain.private_key)
        except RelayerError as error:
            raise fail(error) from error

        rows = [
            {"key": "chain.rpc_url", "value": config.chain.rpc_url},
            {"key": "chain.chain_id", "value": config.chain.chain_id},
            {"key": "chain.relayer_address", "value": relayer},
        ]
        rows.extend(
            {"key": f"units.{unit.name}", "value": getattr(config.units, unit.name) or None}
            for unit in fields(config.units)
        )
        authenticated = bool(config.archive.access_key and config.archive.secret_key)
        rows.extend(
            [
                {"key": "gasless.enabled", "value": config.gasless.enabled},
                {"key": "broadcast.redis_url", "value": config.broadcast.redis_url or None},
                {"key": "archive.enabled", "value": config.archive.enabled},
                {"key": "archive.authenticated", "value": authenticated},
                {"key": "store.database", "value": config.store.database},
            ]
        )
        formatter.render(rows, stream=stream, columns=CONFIG_COLUMNS)
    finally:
        stack.close()


__all__ = ["config_check_command", "facet_cut_command", "register", "serve_command"]
