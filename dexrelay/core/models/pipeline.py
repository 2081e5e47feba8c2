"""Pipeline state, stages and the append-only step log."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from dexrelay.core.chain.interfaces import ContractCall, TxReceipt
    from dexrelay.core.models.cut import FacetCut
    from dexrelay.core.models.market import MarketRecord
    from dexrelay.core.models.request import CreationRequest


class StepStatus(str, Enum):
    START = "start"
    SUCCESS = "success"
    ERROR = "error"


class PipelineStage(str, Enum):
    """Named stages of a market creation run, in execution order."""

    VALIDATING = "validating"
    CHECKING_EXISTING = "checking_existing"
    BUILDING_CUT = "building_cut"
    AUTHORIZING = "authorizing"
    SUBMITTING_CREATION = "submitting_creation"
    CONFIRMING = "confirming"
    RESOLVING_EVENT = "resolving_event"
    REPAIRING_SELECTORS = "repairing_selectors"
    ATTACHING_REGISTRY = "attaching_registry"
    GRANTING_ROLES = "granting_roles"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PipelineStep:
    """One immutable entry of the step log."""

    name: str
    status: StepStatus
    timestamp: datetime
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.name,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "data": dict(self.payload),
        }


class PipelineLog:
    """Append-only sequence of :class:`PipelineStep` entries."""

    def __init__(self) -> None:
        self._steps: list[PipelineStep] = []

    def append(self, name: str, status: StepStatus, payload: Mapping[str, Any] | None = None) -> PipelineStep:
        step = PipelineStep(name=name, status=status, timestamp=datetime.now(UTC), payload=payload or {})
        self._steps.append(step)
        return step

    @property
    def steps(self) -> tuple[PipelineStep, ...]:
        return tuple(self._steps)

    def names(self, status: StepStatus | None = None) -> list[str]:
        return [step.name for step in self._steps if status is None or step.status == status]

    def to_list(self) -> list[dict[str, Any]]:
        return [step.to_dict() for step in self._steps]

    def __iter__(self) -> Iterator[PipelineStep]:
        return iter(tuple(self._steps))

    def __len__(self) -> int:
        return len(self._steps)


@dataclass(frozen=True)
class PipelineState:
    """Immutable snapshot handed from one pipeline step to the next."""

    request: CreationRequest
    pipeline_id: str | None = None
    stage: PipelineStage = PipelineStage.VALIDATING
    cut: FacetCut | None = None
    authorized_creator: str | None = None
    diamond_owner: str | None = None
    creation_call: ContractCall | None = None
    tx_hash: str | None = None
    block_number: int | None = None
    gas_used: int | None = None
    receipt: TxReceipt | None = None
    order_book: str | None = None
    market_id: str | None = None
    existing: MarketRecord | None = None
    record: MarketRecord | None = None
    submitted: bool = False
    warnings: tuple[str, ...] = ()
    results: Mapping[str, Any] = field(default_factory=dict)

    def evolve(self, **changes: Any) -> PipelineState:
        """Return a copy with ``changes`` applied."""
        return dataclasses.replace(self, **changes)

    def with_result(self, stage: PipelineStage, payload: Mapping[str, Any], **changes: Any) -> PipelineState:
        """Return a copy recording ``payload`` as the outcome of ``stage``."""
        return self.evolve(results={**self.results, stage.value: dict(payload)}, **changes)

    def warn(self, *messages: str) -> PipelineState:
        return self.evolve(warnings=(*self.warnings, *messages))

    def recovery_identifiers(self) -> dict[str, Any]:
        return {"order_book": self.order_book, "market_id": self.market_id, "tx_hash": self.tx_hash}

    @property
    def has_identifiers(self) -> bool:
        return any(value is not None for value in self.recovery_identifiers().values())


__all__ = ["PipelineLog", "PipelineStage", "PipelineState", "PipelineStep", "StepStatus"]
