"""Helpers shared across CLI commands."""

from __future__ import annotations

import json
import sys
from collections.abc import Mapping, Sequence
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

import typer

from dexrelay.core.config import ConfigManager, RelayerConfig
from dexrelay.core.exceptions import (
    AdminGrantError,
    FatalError,
    NetworkError,
    PipelineCancelledError,
    RelayerError,
    SignatureMismatchError,
    StaleNonceError,
    StaticCallRevertError,
    ValidationError,
)

from .constants import CHAIN_EXIT_CODE, SYSTEM_EXIT_CODE, VALIDATION_EXIT_CODE
from .formatters import OutputFormatter, create_formatter

_VALIDATION_ERRORS = (ValidationError, SignatureMismatchError, StaleNonceError, PipelineCancelledError)
_CHAIN_ERRORS = (StaticCallRevertError, NetworkError, FatalError, AdminGrantError)


@dataclass(slots=True)
class CLIOptions:
    """Resolved options derived from the Typer context."""

    format: str = "table"
    output_path: Path | None = None
    no_color: bool = False
    config_path: Path | None = None


def get_cli_options(ctx: typer.Context) -> CLIOptions:
    ctx.ensure_object(dict)
    data = ctx.obj or {}
    return CLIOptions(
        format=str(data.get("format", "table")),
        output_path=data.get("output_path"),
        no_color=bool(data.get("no_color", False)),
        config_path=data.get("config_path"),
    )


def load_config(ctx: typer.Context) -> RelayerConfig:
    """Load the relayer configuration from ``--config`` (or the default path) and the environment."""
    return ConfigManager(get_cli_options(ctx).config_path).get_config()


def prepare_output(ctx: typer.Context) -> tuple[OutputFormatter, TextIO, ExitStack, CLIOptions]:
    """Resolve the formatter and writable stream for the current command."""
    options = get_cli_options(ctx)
    formatter = create_formatter(options.format, no_color=options.no_color)

    stack = ExitStack()
    stream: TextIO
    if options.output_path is not None:
        try:
            stream = stack.enter_context(open(options.output_path, "w", encoding="utf-8"))
        except OSError as exc:
            stack.close()
            emit_error(f"Unable to open '{options.output_path}': {exc}", "OUTPUT_WRITE_ERROR")
            raise typer.Exit(code=VALIDATION_EXIT_CODE) from exc
    else:
        stream = sys.stdout

    return formatter, stream, stack, options


def exit_code_for(error: Exception) -> int:
    """Map an error to the process exit code."""
    if isinstance(error, _VALIDATION_ERRORS):
        return VALIDATION_EXIT_CODE
    if isinstance(error, _CHAIN_ERRORS):
        return CHAIN_EXIT_CODE
    return SYSTEM_EXIT_CODE


def emit_error(message: str, code: str, *, details: Mapping[str, object] | None = None) -> None:
    """Print a structured error payload to stderr."""
    payload: dict[str, object] = {"code": code, "message": message}
    if details:
        payload["details"] = _sanitize_details(details)
    typer.echo(json.dumps(payload, ensure_ascii=False, default=str), err=True)


def fail(error: RelayerError) -> typer.Exit:
    """Report ``error`` on stderr and return the matching :class:`typer.Exit`."""
    details: dict[str, object] = dict(error.details)
    if error.step:
        details["step"] = error.step
    details.update(error.recovery)
    emit_error(error.message, error.error_code, details=details)
    return typer.Exit(code=exit_code_for(error))


def _sanitize_details(details: Mapping[str, object]) -> Mapping[str, object]:
    sanitized: dict[str, object] = {}
    for key, value in details.items():
        if isinstance(value, (str, int, float, bool)) or value is None:
            sanitized[key] = value
        elif isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
            sanitized[key] = [str(item) for item in value]
        else:
            sanitized[key] = str(value)
    return sanitized


__all__ = ["CLIOptions", "emit_error", "exit_code_for", "fail", "get_cli_options", "load_config", "prepare_output"]
