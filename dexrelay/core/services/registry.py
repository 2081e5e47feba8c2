"""Session registry attachment for gasless trading on a new market."""

from __future__ import annotations

from eth_utils import to_checksum_address
from loguru import logger

from dexrelay.core.chain.interfaces import CallReverted, ContractCall, Ledger
from dexrelay.core.exceptions import ErrorCode, NetworkError, RelayerError
from dexrelay.core.services.submitter import TransactionSubmitter


class RegistryAttacher:
    """Allows the market on the session registry and points the market at the registry.

    Both actions are attempted even when the first one fails; failures are collected
    and raised together.
    """

    def __init__(self, ledger: Ledger, submitter: TransactionSubmitter, registry: str):
        self.ledger = ledger
        self.submitter = submitter
        self.registry = to_checksum_address(registry)

    async def _allow(self, order_book: str) -> str:
        allowed = await self.ledger.call(
            ContractCall(self.registry, "session_registry", "allowedOrderbook", (order_book,))
        )
        if allowed:
            return "already_allowed"
        call = ContractCall(self.registry, "session_registry", "setAllowedOrderbook", (order_book, True))
        receipt = await self.submitter.submit_and_confirm(call, "allow_orderbook")
        return receipt.tx_hash

    async def _attach(self, order_book: str) -> str:
        current = await self.ledger.call(ContractCall(order_book, "diamond", "sessionRegistry"))
        if current and str(current).lower() == self.registry.lower():
            return "already_set"
        call = ContractCall(order_book, "diamond", "setSessionRegistry", (self.registry,))
        receipt = await self.submitter.submit_and_confirm(call, "set_session_registry")
        return receipt.tx_hash

    async def attach(self, order_book: str) -> dict[str, str]:
        """Run both actions and return ``{action: tx hash or status}``.

        Raises:
            RelayerError: If either action failed; ``details`` carries the per-action outcome.
        """
        results: dict[str, str] = {}
        errors: dict[str, str] = {}
        for action, runner in (("allow_orderbook", self._allow), ("set_session_registry", self._attach)):
            try:
                results[action] = await runner(order_book)
            except (RelayerError, CallReverted) as exc:
                errors[action] = str(exc)
                logger.warning(
                    "Session registry action failed",
                    extra={"action": action, "order_book": order_book, "error": str(exc)},
                )

        if errors:
            raise NetworkError(
                f"Session registry attachment incomplete: {', '.join(errors)}",
                error_code=ErrorCode.NETWORK_ERROR.value,
                details={"results": results, "errors": errors},
            )
        return results


__all__ = ["RegistryAttacher"]
