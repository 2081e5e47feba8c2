"""Nonce-sequenced transaction submission for the relayer signing identity.

Every transaction a pipeline run sends (creation, selector repair, registry
attachment, role grants) takes its sequence number from one
:class:`NonceSequencer`. Concurrent runs sharing a signer serialize through
:class:`SignerLocks`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from loguru import logger

from dexrelay.core.chain.interfaces import ContractCall, FeeSnapshot, Ledger, TxOverrides, TxReceipt
from dexrelay.core.config import FeeConfig
from dexrelay.core.exceptions import ErrorCode, NetworkError, NonceConflictError
from dexrelay.core.monitoring import MetricsCollector, get_metrics_collector
from dexrelay.core.patterns import BoundedRetry, RetryConfig

GWEI = 10**9


@dataclass(frozen=True)
class FeePolicy:
    """Fee floors and bump applied on top of the network's current estimate."""

    min_priority_fee: int = 2 * GWEI
    min_max_fee: int = 20 * GWEI
    bump_percent: int = 20

    @classmethod
    def from_config(cls, config: FeeConfig) -> FeePolicy:
        return cls(
            min_priority_fee=int(config.min_priority_fee_gwei * GWEI),
            min_max_fee=int(config.min_max_fee_gwei * GWEI),
            bump_percent=int(config.bump_percent),
        )

    def _bump(self, value: int) -> int:
        return value * (100 + self.bump_percent) // 100

    def overrides(self, nonce: int, snapshot: FeeSnapshot) -> TxOverrides:
        if snapshot.supports_eip1559:
            priority = max(snapshot.max_priority_fee or 0, self.min_priority_fee)
            estimate = 2 * int(snapshot.base_fee or 0)
            max_fee = max(self._bump(estimate) + priority, self.min_max_fee, priority)
            return TxOverrides(nonce=nonce, max_fee_per_gas=max_fee, max_priority_fee_per_gas=priority)

        gas_price = max(self._bump(snapshot.gas_price or 0), self.min_max_fee)
        return TxOverrides(nonce=nonce, gas_price=gas_price)


class NonceSequencer:
    """Sequence counter for one (signer, chain) pair, owned by a single pipeline run.

    Issued sequence numbers are strictly increasing: :meth:`resync` never moves the
    counter below a number already handed out, and only a number whose transaction
    never reached the node can be handed back with :meth:`release`.
    """

    def __init__(self, ledger: Ledger, address: str, fee_policy: FeePolicy, start_nonce: int, snapshot: FeeSnapshot):
        self.ledger = ledger
        self.address = address
        self.fee_policy = fee_policy
        self._next = start_nonce
        self._snapshot = snapshot
        self.issued: list[int] = []

    @classmethod
    async def create(cls, ledger: Ledger, address: str, fee_policy: FeePolicy | None = None) -> NonceSequencer:
        """Seed a sequencer from the ledger's pending transaction count."""
        start = await ledger.pending_nonce(address)
        snapshot = await ledger.fee_snapshot()
        logger.debug("Nonce sequencer seeded", extra={"address": address, "nonce": start})
        return cls(ledger, address, fee_policy or FeePolicy(), start, snapshot)

    @property
    def next_nonce(self) -> int:
        return self._next

    def next_overrides(self) -> TxOverrides:
        """Return overrides for the next transaction and advance the counter by one."""
        overrides = self.fee_policy.overrides(self._next, self._snapshot)
        self.issued.append(self._next)
        self._next += 1
        return overrides

    def release(self, nonce: int) -> bool:
        """Return ``nonce`` to the sequence when its transaction was never broadcast.

        Only the most recently issued number can be released, so no gap is left behind.
        """
        if not self.issued or self.issued[-1] != nonce or self._next != nonce + 1:
            return False
        self.issued.pop()
        self._next = nonce
        logger.info("Nonce released", extra={"address": self.address, "nonce": nonce})
        return True

    async def refresh_fees(self) -> FeeSnapshot:
        self._snapshot = await self.ledger.fee_snapshot()
        return self._snapshot

    async def resync(self) -> int:
        """Re-read the pending count; the counter only ever moves forward."""
        pending = await self.ledger.pending_nonce(self.address)
        previous = self._next
        self._next = max(pending, self._next)
        logger.info(
            "Nonce resynchronised",
            extra={"address": self.address, "pending": pending, "previous": previous, "next": self._next},
        )
        return self._next


class SignerLocks:
    """One ``asyncio.Lock`` per (signer address, chain id)."""

    def __init__(self) -> None:
        self._locks: dict[tuple[str, int], asyncio.Lock] = {}

    def lock_for(self, address: str, chain_id: int) -> asyncio.Lock:
        key = (address.lower(), int(chain_id))
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock


class TransactionSubmitter:
    """Sends and confirms transactions through a shared :class:`NonceSequencer`."""

    def __init__(
        self,
        ledger: Ledger,
        sequencer: NonceSequencer,
        confirmation_timeout: float = 120.0,
        metrics: MetricsCollector | None = None,
        retry_config: RetryConfig | None = None,
    ):
        self.ledger = ledger
        self.sequencer = sequencer
        self.confirmation_timeout = confirmation_timeout
        self.metrics = metrics or get_metrics_collector()
        self.retry_config = retry_config or RetryConfig(max_attempts=2, retry_on_exceptions=[NonceConflictError])
        self.submissions: list[tuple[str, int, str]] = []

    async def _send_once(self, call: ContractCall, label: str) -> str:
        await self.sequencer.refresh_fees()
        overrides = self.sequencer.next_overrides()
        logger.info(
            "Submitting transaction",
            extra={"label": label, "function": call.function, **overrides.as_tx_fields()},
        )
        try:
            tx_hash = await self.ledger.send(call, overrides)
        except NetworkError as error:
            if not error.broadcast and not isinstance(error, NonceConflictError):
                self.sequencer.release(overrides.nonce)
            raise
        self.submissions.append((label, overrides.nonce, tx_hash))
        self.metrics.record_transaction(label)
        logger.info("Transaction sent", extra={"label": label, "tx_hash": tx_hash, "nonce": overrides.nonce})
        return tx_hash

    async def _resync(self, error: Exception) -> None:
        self.metrics.record_resync()
        await self.sequencer.resync()

    async def submit(self, call: ContractCall, label: str) -> str:
        """Send ``call``; a nonce conflict triggers exactly one resync and retry.

        Raises:
            NetworkError: On a transport failure, or when the retry conflicts again.
        """
        retry = BoundedRetry(self.retry_config)
        return await retry.execute(self._send_once, call, label, before_retry=self._resync)

    async def confirm(self, tx_hash: str, label: str = "") -> TxReceipt:
        """Wait for ``tx_hash``; a timeout or a reverted receipt raises :class:`NetworkError`."""
        receipt = await self.ledger.wait_for_receipt(tx_hash, self.confirmation_timeout)
        if not receipt.succeeded:
            raise NetworkError(
                f"Transaction {tx_hash} reverted",
                error_code=ErrorCode.TRANSACTION_REVERTED.value,
                tx_hash=tx_hash,
                details={"label": label, "block_number": receipt.block_number},
            )
        logger.info(
            "Transaction confirmed",
            extra={"label": label, "tx_hash": tx_hash, "block_number": receipt.block_number},
        )
        return receipt

    async def submit_and_confirm(self, call: ContractCall, label: str) -> TxReceipt:
        tx_hash = await self.submit(call, label)
        return await self.confirm(tx_hash, label)


__all__ = ["FeePolicy", "GWEI", "NonceSequencer", "SignerLocks", "TransactionSubmitter"]
