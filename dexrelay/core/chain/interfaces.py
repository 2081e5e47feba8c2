"""
Ledger port consumed by the relayer.

The pipeline never talks to an RPC endpoint directly; it goes through a
:class:`Ledger`, which keeps the steps testable against a scripted in-memory
implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ContractCall:
    """One contract function invocation, named by ABI and function."""

    address: str
    abi_name: str
    function: str
    args: tuple[Any, ...] = ()
    value: int = 0


@dataclass(frozen=True)
class FeeSnapshot:
    """Network fee readings taken just before a send."""

    base_fee: int | None = None
    max_priority_fee: int | None = None
    gas_price: int | None = None

    @property
    def supports_eip1559(self) -> bool:
        return self.base_fee is not None


@dataclass(frozen=True)
class TxOverrides:
    """Sequence number and fee fields attached to one outgoing transaction."""

    nonce: int
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None
    gas_price: int | None = None

    def as_tx_fields(self) -> dict[str, int]:
        fields: dict[str, int] = {"nonce": self.nonce}
        if self.max_fee_per_gas is not None:
            fields["maxFeePerGas"] = self.max_fee_per_gas
            fields["maxPriorityFeePerGas"] = self.max_priority_fee_per_gas or 0
        elif self.gas_price is not None:
            fields["gasPrice"] = self.gas_price
        return fields


@dataclass(frozen=True)
class LogEntry:
    """Raw event log as emitted in a receipt."""

    address: str
    topics: tuple[bytes, ...]
    data: bytes = b""


@dataclass(frozen=True)
class TxReceipt:
    """Confirmed transaction receipt."""

    tx_hash: str
    status: int
    block_number: int | None = None
    gas_used: int | None = None
    logs: tuple[LogEntry, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class CallReverted(Exception):
    """A read or dry-run call reverted on the ledger."""

    def __init__(self, data: bytes = b"", reason: str | None = None):
        super().__init__(reason or "execution reverted")
        self.data = data
        self.reason = reason


class Ledger(ABC):
    """
    Asynchronous access to an EVM ledger on behalf of the relayer's signing identity.

    Implementations classify RPC failures at this boundary: a rejected sequence
    number surfaces as :class:`~dexrelay.core.exceptions.NonceConflictError`, any other
    transport failure as :class:`~dexrelay.core.exceptions.NetworkError`.
    """

    @property
    @abstractmethod
    def relayer_address(self) -> str:
        """Checksummed address of the relayer signing identity."""

    @abstractmethod
    async def chain_id(self) -> int:
        """Chain id of the connected network."""

    @abstractmethod
    async def pending_nonce(self, address: str) -> int:
        """Transaction count of ``address`` including pending transactions."""

    @abstractmethod
    async def fee_snapshot(self) -> FeeSnapshot:
        """Current base fee, suggested priority fee and legacy gas price."""

    @abstractmethod
    async def get_code(self, address: str) -> bytes:
        """Deployed bytecode at ``address`` (empty when none)."""

    @abstractmethod
    async def call(self, call: ContractCall) -> Any:
        """
        Execute a read-only call and return its decoded output.

        Single return values are unwrapped; multiple values come back as a tuple.

        Raises:
            CallReverted: When the call reverts.
        """

    @abstractmethod
    async def static_call(self, call: ContractCall) -> Any:
        """
        Simulate ``call`` from the relayer address without changing state.

        Raises:
            CallReverted: When the simulation reverts, carrying the revert data.
        """

    @abstractmethod
    async def send(self, call: ContractCall, overrides: TxOverrides) -> str:
        """Sign and broadcast ``call`` with ``overrides``; return the transaction hash."""

    @abstractmethod
    async def wait_for_receipt(self, tx_hash: str, timeout: float) -> TxReceipt:
        """
        Wait for ``tx_hash`` to be mined.

        Raises:
            NetworkError: With code ``CONFIRMATION_TIMEOUT`` when ``timeout`` elapses.
        """


__all__ = [
    "CallReverted",
    "ContractCall",
    "FeeSnapshot",
    "Ledger",
    "LogEntry",
    "TxOverrides",
    "TxReceipt",
]
