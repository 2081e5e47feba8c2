"""Vault role grants for a newly created market."""

from __future__ import annotations

from eth_utils import to_checksum_address
from loguru import logger

from dexrelay.core.chain.abis import ORDERBOOK_ROLE, SETTLEMENT_ROLE
from dexrelay.core.chain.interfaces import CallReverted, ContractCall, Ledger
from dexrelay.core.chain.selectors import role_id
from dexrelay.core.exceptions import AdminGrantError, NetworkError, RelayerError
from dexrelay.core.services.submitter import TransactionSubmitter

MARKET_ROLES: tuple[str, ...] = (ORDERBOOK_ROLE, SETTLEMENT_ROLE)


class RoleGranter:
    """Grants the vault roles a market needs, skipping roles it already holds."""

    def __init__(self, ledger: Ledger, submitter: TransactionSubmitter, vault: str, roles: tuple[str, ...] = MARKET_ROLES):
        self.ledger = ledger
        self.submitter = submitter
        self.vault = to_checksum_address(vault)
        self.roles = roles

    async def has_role(self, role: str, account: str) -> bool | None:
        try:
            return bool(await self.ledger.call(ContractCall(self.vault, "vault", "hasRole", (role_id(role), account))))
        except (CallReverted, NetworkError) as exc:
            logger.warning("hasRole read failed, granting anyway", extra={"role": role, "error": str(exc)})
            return None

    async def grant_all(self, market: str) -> dict[str, str]:
        """Return ``{role: tx hash or "already_held"}``.

        Raises:
            AdminGrantError: On the first grant that fails.
        """
        outcome: dict[str, str] = {}
        for role in self.roles:
            if await self.has_role(role, market):
                outcome[role] = "already_held"
                continue
            call = ContractCall(self.vault, "vault", "grantRole", (role_id(role), market))
            try:
                receipt = await self.submitter.submit_and_confirm(call, f"grant_{role}")
            except RelayerError as exc:
                raise AdminGrantError(
                    f"Granting {role} to {market} failed: {exc.message}",
                    role=role,
                    details={"granted": outcome, "cause": exc.error_code},
                ) from exc
            outcome[role] = receipt.tx_hash
        logger.info("Vault roles ensured", extra={"market": market, "roles": outcome})
        return outcome


__all__ = ["MARKET_ROLES", "RoleGranter"]
