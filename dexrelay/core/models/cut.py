"""Facet cut models describing which unit implements which selectors."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class FacetCutAction(IntEnum):
    """Diamond cut actions as encoded on chain."""

    ADD = 0
    REPLACE = 1
    REMOVE = 2


def selector_bytes(selector: str) -> bytes:
    """Convert a ``0x``-prefixed 4-byte selector into raw bytes."""

    raw = bytes.fromhex(selector[2:] if selector.startswith("0x") else selector)
    if len(raw) != 4:
        raise ValueError(f"selector must be 4 bytes: {selector!r}")
    return raw


@dataclass(frozen=True)
class FacetCutEntry:
    """One unit and the ordered, unique selectors it installs."""

    unit_address: str
    selectors: tuple[str, ...]
    action: FacetCutAction = FacetCutAction.ADD
    unit_name: str = ""

    def as_call_arg(self) -> tuple[str, int, list[bytes]]:
        return (self.unit_address, int(self.action), [selector_bytes(s) for s in self.selectors])


@dataclass(frozen=True)
class FacetCut:
    """Ordered facet cut plus the initializer unit used by the factory."""

    entries: tuple[FacetCutEntry, ...]
    initializer: str
    source: str = "built"
    unit_sources: dict[str, str] = field(default_factory=dict)

    def as_call_arg(self) -> list[tuple[str, int, list[bytes]]]:
        return [entry.as_call_arg() for entry in self.entries]

    def summary(self) -> list[dict[str, Any]]:
        return [
            {
                "unit": entry.unit_name,
                "facetAddress": entry.unit_address,
                "selectorCount": len(entry.selectors),
            }
            for entry in self.entries
        ]

    @property
    def unit_addresses(self) -> tuple[str, ...]:
        return tuple(entry.unit_address for entry in self.entries)


__all__ = ["FacetCut", "FacetCutAction", "FacetCutEntry", "selector_bytes"]
