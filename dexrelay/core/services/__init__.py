"""Services module - market creation steps and the pipeline that runs them."""

from dexrelay.core.services.authorizer import MetaTxAuthorizer
from dexrelay.core.services.broadcaster import BoundBroadcaster, ProgressBroadcaster
from dexrelay.core.services.events import MarketCreated, resolve_market_created
from dexrelay.core.services.facet_cut import FacetCutBuilder, choose_cut, parse_client_cut
from dexrelay.core.services.grants import MARKET_ROLES, RoleGranter
from dexrelay.core.services.persistence import (
    MarketRepository,
    PersistenceReconciler,
    create_repository,
    create_test_repository,
)
from dexrelay.core.services.pipeline import MarketCreationService, PipelineRunner
from dexrelay.core.services.registry import RegistryAttacher
from dexrelay.core.services.repair import RepairResult, SelectorRepair
from dexrelay.core.services.submitter import FeePolicy, NonceSequencer, SignerLocks, TransactionSubmitter

__all__ = [
    "BoundBroadcaster",
    "FacetCutBuilder",
    "FeePolicy",
    "MARKET_ROLES",
    "MarketCreated",
    "MarketCreationService",
    "MarketRepository",
    "MetaTxAuthorizer",
    "NonceSequencer",
    "PersistenceReconciler",
    "PipelineRunner",
    "ProgressBroadcaster",
    "RegistryAttacher",
    "RepairResult",
    "RoleGranter",
    "SelectorRepair",
    "SignerLocks",
    "TransactionSubmitter",
    "choose_cut",
    "create_repository",
    "create_test_repository",
    "parse_client_cut",
    "resolve_market_created",
]
