"""Output formatters for CLI commands."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TextIO

from rich.box import SIMPLE
from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Base class for CLI output formatters."""

    name: str

    def render(
        self,
        rows: Sequence[Mapping[str, object]],
        *,
        stream: TextIO,
        columns: Sequence[str] | None = None,
    ) -> None:
        raise NotImplementedError


@dataclass(slots=True)
class TableFormatter(OutputFormatter):
    """Render rows as a Rich table."""

    name: str = "table"
    no_color: bool = False

    def render(
        self,
        rows: Sequence[Mapping[str, object]],
        *,
        stream: TextIO,
        columns: Sequence[str] | None = None,
    ) -> None:
        console = Console(file=stream, color_system=None if self.no_color else "auto", no_color=self.no_color)
        resolved = list(columns) if columns else (list(rows[0].keys()) if rows else [])
        table = Table(box=SIMPLE, show_lines=False)
        for column in resolved:
            table.add_column(column, header_style="" if self.no_color else "bold")
        for row in rows:
            table.add_row(*("-" if row.get(column) is None else str(row.get(column)) for column in resolved))
        console.print(table)
        if not rows:
            console.print("No data available.")


@dataclass(slots=True)
class JSONFormatter(OutputFormatter):
    """Render rows as one JSON document per line."""

    name: str = "json"

    def render(
        self,
        rows: Sequence[Mapping[str, object]],
        *,
        stream: TextIO,
        columns: Sequence[str] | None = None,
    ) -> None:
        for row in rows:
            selected = {column: row.get(column) for column in columns} if columns else dict(row)
            json.dump(selected, stream, ensure_ascii=False, default=str)
            stream.write("\n")
        stream.flush()


def create_formatter(name: str, *, no_color: bool = False) -> OutputFormatter:
    """Instantiate a formatter by name."""
    normalized = name.strip().lower()
    if normalized == "table":
        return TableFormatter(no_color=no_color)
    if normalized in {"json", "jsonl"}:
        return JSONFormatter()
    raise ValueError(f"Unsupported format '{name}'. Available formats: table, json.")


__all__ = ["JSONFormatter", "OutputFormatter", "TableFormatter", "create_formatter"]
