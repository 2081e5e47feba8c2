"""Main entry point for the dexrelay command line interface."""

from __future__ import annotations

import sys
from pathlib import Path

import typer

from dexrelay.core.logging import configure_logging

from .formatters import create_formatter
from .markets import register as register_market_commands
from .operations import register as register_operation_commands


def create_app() -> typer.Typer:
    """Create a Typer application instance for dexrelay."""
    app = typer.Typer(add_completion=False, help="dexrelay market creation relayer")

    @app.callback()
    def main(
        ctx: typer.Context,
        format: str = typer.Option(
            "table",
            "--format",
            "-f",
            help="Output format (table or json).",
            show_default=True,
        ),
        output: Path | None = typer.Option(
            None,
            "--output",
            "-o",
            help="Write output to a file instead of stdout.",
        ),
        config: Path | None = typer.Option(
            None,
            "--config",
            "-c",
            help="TOML configuration file; environment variables take precedence.",
        ),
        log_level: str = typer.Option(
            "WARNING",
            "--log-level",
            help="Log level for the JSON log stream on stderr.",
            show_default=True,
        ),
        no_color: bool = typer.Option(
            False,
            "--no-color",
            help="Disable colorized output for table format.",
        ),
    ) -> None:
        ctx.ensure_object(dict)
        normalized_format = format.strip().lower()
        try:
            create_formatter(normalized_format, no_color=no_color)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--format") from exc

        ctx.obj.update(
            {
                "format": normalized_format,
                "output_path": output,
                "config_path": config,
                "no_color": no_color,
            }
        )
        configure_logging(level=log_level.upper(), console_stream=sys.stderr)

    register_market_commands(app)
    register_operation_commands(app)
    return app


app = create_app()
