"""Domain models for the market creation relayer."""

from dexrelay.core.models.cut import FacetCut, FacetCutAction, FacetCutEntry, selector_bytes
from dexrelay.core.models.market import MarketRecord, MarketStatus
from dexrelay.core.models.pipeline import (
    PipelineLog,
    PipelineStage,
    PipelineState,
    PipelineStep,
    StepStatus,
)
from dexrelay.core.models.request import MAX_TAGS, PRICE_DECIMALS, CreationRequest, GaslessAuthorization

__all__ = [
    "CreationRequest",
    "FacetCut",
    "FacetCutAction",
    "FacetCutEntry",
    "GaslessAuthorization",
    "MAX_TAGS",
    "MarketRecord",
    "MarketStatus",
    "PRICE_DECIMALS",
    "PipelineLog",
    "PipelineStage",
    "PipelineState",
    "PipelineStep",
    "StepStatus",
]
