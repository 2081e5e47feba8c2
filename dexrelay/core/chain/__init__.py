"""Ledger access: port, ABIs, selector and revert helpers, web3 adapter."""

from dexrelay.core.chain.interfaces import (
    CallReverted,
    ContractCall,
    FeeSnapshot,
    Ledger,
    LogEntry,
    TxOverrides,
    TxReceipt,
)
from dexrelay.core.chain.revert import decode_revert, to_static_call_error
from dexrelay.core.chain.selectors import role_id, selector_for, selectors_from_abi, selectors_from_signatures

__all__ = [
    "CallReverted",
    "ContractCall",
    "FeeSnapshot",
    "Ledger",
    "LogEntry",
    "TxOverrides",
    "TxReceipt",
    "decode_revert",
    "role_id",
    "selector_for",
    "selectors_from_abi",
    "selectors_from_signatures",
    "to_static_call_error",
]
