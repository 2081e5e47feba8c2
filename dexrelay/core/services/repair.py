"""Verification and repair of critical order entry points on a new market."""

from __future__ import annotations

from dataclasses import dataclass, field

from eth_utils import to_checksum_address
from loguru import logger

from dexrelay.core.chain.abis import PLACEMENT_SIGNATURES
from dexrelay.core.chain.interfaces import CallReverted, ContractCall, Ledger
from dexrelay.core.chain.selectors import selectors_from_signatures
from dexrelay.core.exceptions import NetworkError
from dexrelay.core.models.cut import FacetCut, FacetCutAction, FacetCutEntry, selector_bytes
from dexrelay.core.services.submitter import TransactionSubmitter

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class RepairResult:
    checked: int
    missing: tuple[str, ...] = ()
    tx_hash: str | None = None
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def repaired(self) -> bool:
        return self.tx_hash is not None


class SelectorRepair:
    """Adds any placement selectors the new diamond is missing, in one cut."""

    def __init__(
        self,
        ledger: Ledger,
        submitter: TransactionSubmitter,
        placement_unit: str,
        signatures: tuple[str, ...] = PLACEMENT_SIGNATURES,
    ):
        self.ledger = ledger
        self.submitter = submitter
        self.placement_unit = to_checksum_address(placement_unit)
        self.selectors = selectors_from_signatures(signatures)

    async def missing_selectors(self, order_book: str) -> tuple[list[str], list[str]]:
        """Selectors routed to no unit, plus warnings for reads that failed (counted as missing)."""
        missing: list[str] = []
        warnings: list[str] = []
        for selector in self.selectors:
            call = ContractCall(order_book, "diamond", "facetAddress", (selector_bytes(selector),))
            try:
                unit = await self.ledger.call(call)
            except (CallReverted, NetworkError) as exc:
                warnings.append(f"facetAddress({selector}) failed: {exc}")
                missing.append(selector)
                continue
            if not unit or str(unit).lower() == ZERO_ADDRESS:
                missing.append(selector)
        return missing, warnings

    async def repair(self, order_book: str) -> RepairResult:
        missing, warnings = await self.missing_selectors(order_book)
        if not missing:
            logger.info("All placement selectors present", extra={"order_book": order_book})
            return RepairResult(checked=len(self.selectors), warnings=tuple(warnings))

        logger.warning("Placement selectors missing", extra={"order_book": order_book, "missing": missing})
        cut = FacetCut(
            entries=(
                FacetCutEntry(
                    unit_address=self.placement_unit,
                    selectors=tuple(missing),
                    action=FacetCutAction.ADD,
                    unit_name="placement",
                ),
            ),
            initializer=ZERO_ADDRESS,
            source="repair",
        )
        call = ContractCall(order_book, "diamond", "diamondCut", (cut.as_call_arg(), ZERO_ADDRESS, b""))
        receipt = await self.submitter.submit_and_confirm(call, "repair_selectors")
        return RepairResult(
            checked=len(self.selectors),
            missing=tuple(missing),
            tx_hash=receipt.tx_hash,
            warnings=tuple(warnings),
        )


__all__ = ["RepairResult", "SelectorRepair", "ZERO_ADDRESS"]
