"""Facet cut construction for new market diamonds."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from eth_utils import is_address, to_checksum_address
from loguru import logger

from dexrelay.core.chain.abis import FACET_FALLBACK_SIGNATURES, UNIT_CONTRACTS
from dexrelay.core.chain.selectors import selectors_from_abi, selectors_from_signatures
from dexrelay.core.config import UnitAddresses
from dexrelay.core.exceptions import BuildError, ConfigurationError
from dexrelay.core.models.cut import FacetCut, FacetCutAction, FacetCutEntry


class FacetCutBuilder:
    """Computes the ordered facet cut installed into every new market.

    For each unit the compiled artifact ABI
    (``<artifacts_dir>/<Contract>.sol/<Contract>.json``) is authoritative; the bundled
    signature list is used only when no artifact can be read.
    """

    def __init__(self, units: UnitAddresses, artifacts_dir: str | Path | None = None):
        self.units = units
        self.artifacts_dir = Path(artifacts_dir) if artifacts_dir else None

    def _artifact_abi(self, contract: str) -> list[dict[str, Any]] | None:
        if self.artifacts_dir is None:
            return None
        path = self.artifacts_dir / f"{contract}.sol" / f"{contract}.json"
        if not path.is_file():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                artifact = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(
                "Unreadable facet artifact, using bundled signatures",
                extra={"contract": contract, "path": str(path), "error": str(exc)},
            )
            return None
        abi = artifact.get("abi") if isinstance(artifact, dict) else artifact
        return abi if isinstance(abi, list) else None

    def unit_selectors(self, unit: str) -> tuple[list[str], str]:
        """Return the selectors of ``unit`` and where they came from (``artifact`` or ``fallback``)."""
        contract = UNIT_CONTRACTS[unit]
        abi = self._artifact_abi(contract)
        if abi is not None:
            return selectors_from_abi(abi), "artifact"
        return selectors_from_signatures(FACET_FALLBACK_SIGNATURES.get(contract, ())), "fallback"

    def _unit_address(self, unit: str) -> str:
        address = getattr(self.units, unit)
        if not address or not is_address(address):
            raise ConfigurationError(f"Address for unit {unit!r} is not configured", missing=[f"units.{unit}"])
        return to_checksum_address(address)

    def build(self) -> FacetCut:
        """Build the cut for all market units.

        Raises:
            ConfigurationError: If a unit or the initializer address is missing.
            BuildError: If any unit resolves to zero selectors.
        """
        entries: list[FacetCutEntry] = []
        sources: dict[str, str] = {}
        empty: list[str] = []

        for unit in UNIT_CONTRACTS:
            address = self._unit_address(unit)
            selectors, source = self.unit_selectors(unit)
            sources[unit] = source
            if not selectors:
                empty.append(unit)
                continue
            entries.append(
                FacetCutEntry(
                    unit_address=address,
                    selectors=tuple(selectors),
                    action=FacetCutAction.ADD,
                    unit_name=unit,
                )
            )

        if empty:
            raise BuildError(f"Facet selectors could not be built for: {', '.join(empty)}", empty_units=empty)

        initializer = self._unit_address("initializer")
        cut = FacetCut(entries=tuple(entries), initializer=initializer, source="built", unit_sources=sources)
        logger.info(
            "Facet cut built",
            extra={
                "units": len(entries),
                "selectors": sum(len(entry.selectors) for entry in entries),
                "sources": sources,
            },
        )
        return cut

    def describe(self) -> list[dict[str, Any]]:
        """Per-unit selector counts; works with unconfigured addresses."""
        rows = []
        for unit, contract in UNIT_CONTRACTS.items():
            selectors, source = self.unit_selectors(unit)
            address = getattr(self.units, unit)
            rows.append(
                {
                    "unit": unit,
                    "contract": contract,
                    "facetAddress": to_checksum_address(address) if address and is_address(address) else None,
                    "selectorCount": len(selectors),
                    "source": source,
                }
            )
        return rows

    def configured_addresses(self) -> set[str]:
        return {
            to_checksum_address(getattr(self.units, unit))
            for unit in UNIT_CONTRACTS
            if getattr(self.units, unit) and is_address(getattr(self.units, unit))
        }


def _entry_fields(raw: Any) -> tuple[Any, Any, Any] | None:
    if isinstance(raw, Mapping):
        return raw.get("facetAddress"), raw.get("action"), raw.get("functionSelectors")
    if isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)) and len(raw) == 3:
        return raw[0], raw[1], raw[2]
    return None


def _normalize_selector(value: Any) -> str | None:
    text = value.hex() if isinstance(value, bytes) else str(value)
    text = text.lower()
    if not text.startswith("0x"):
        text = "0x" + text
    if len(text) != 10:
        return None
    try:
        bytes.fromhex(text[2:])
    except ValueError:
        return None
    return text


def parse_client_cut(raw: Any, allowed_units: set[str], initializer: str) -> FacetCut | None:
    """Parse a client-supplied cut, or return ``None`` when it is unusable.

    A cut is usable only if every entry is structurally valid, only adds selectors
    and targets one of ``allowed_units``.
    """
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)) or not raw:
        return None

    entries: list[FacetCutEntry] = []
    for item in raw:
        fields = _entry_fields(item)
        if fields is None:
            return None
        address, action, selectors = fields
        if not isinstance(address, str) or not is_address(address):
            return None
        address = to_checksum_address(address)
        if address not in allowed_units:
            return None
        try:
            cut_action = FacetCutAction(int(action))
        except (TypeError, ValueError):
            return None
        if cut_action is not FacetCutAction.ADD:
            return None
        if not isinstance(selectors, Sequence) or isinstance(selectors, (str, bytes)) or not selectors:
            return None
        normalized = [_normalize_selector(selector) for selector in selectors]
        if any(selector is None for selector in normalized):
            return None
        unique = tuple(dict.fromkeys(normalized))
        entries.append(FacetCutEntry(unit_address=address, selectors=unique, action=cut_action))

    return FacetCut(entries=tuple(entries), initializer=initializer, source="client")


def choose_cut(builder: FacetCutBuilder, client_cut: Any, gasless: bool) -> FacetCut:
    """Return the cut both hashed for the signature and sent on chain.

    The server-built cut is used unless the request is gasless and carries a usable
    client cut.
    """
    built = builder.build()
    if not gasless or client_cut is None:
        return built
    parsed = parse_client_cut(client_cut, builder.configured_addresses(), built.initializer)
    if parsed is None:
        logger.warning("Ignoring unusable client-supplied facet cut", extra={"cut_type": type(client_cut).__name__})
        return built
    return parsed


__all__ = ["FacetCutBuilder", "choose_cut", "parse_client_cut"]
