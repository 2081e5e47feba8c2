"""Verification of gasless (meta-transaction) market creation requests."""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from typing import Any

from eth_abi import encode as abi_encode
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import keccak, to_checksum_address
from loguru import logger

from dexrelay.core.chain.interfaces import CallReverted, ContractCall, Ledger
from dexrelay.core.config import GaslessConfig
from dexrelay.core.exceptions import (
    NetworkError,
    SignatureMismatchError,
    StaleNonceError,
    ValidationError,
)
from dexrelay.core.models.cut import FacetCut
from dexrelay.core.models.request import CreationRequest, GaslessAuthorization

META_CREATE_TYPES: dict[str, list[dict[str, str]]] = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "MetaCreate": [
        {"name": "marketSymbol", "type": "string"},
        {"name": "metricUrl", "type": "string"},
        {"name": "settlementDate", "type": "uint256"},
        {"name": "startPrice", "type": "uint256"},
        {"name": "dataSource", "type": "string"},
        {"name": "tagsHash", "type": "bytes32"},
        {"name": "diamondOwner", "type": "address"},
        {"name": "cutHash", "type": "bytes32"},
        {"name": "initFacet", "type": "address"},
        {"name": "creator", "type": "address"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
    ],
}


def tags_hash(tags: Sequence[str]) -> bytes:
    """``keccak256`` of the tightly packed tag strings."""
    return keccak(b"".join(tag.encode("utf-8") for tag in tags))


def cut_hash(cut: FacetCut) -> bytes:
    """Hash of the facet cut as the factory computes it.

    Each entry hashes to ``keccak(abi.encode(address, uint8, keccak(packed selectors)))``;
    the cut hash is ``keccak`` of the packed entry hashes.
    """
    entry_hashes = []
    for facet_address, action, selectors in cut.as_call_arg():
        selectors_hash = keccak(b"".join(selectors))
        entry_hashes.append(keccak(abi_encode(["address", "uint8", "bytes32"], [facet_address, action, selectors_hash])))
    return keccak(b"".join(entry_hashes))


def build_typed_data(
    domain: dict[str, Any],
    request: CreationRequest,
    cut: FacetCut,
    diamond_owner: str,
    authorization: GaslessAuthorization,
) -> dict[str, Any]:
    """Full EIP-712 payload the requester is expected to have signed."""
    return {
        "types": META_CREATE_TYPES,
        "primaryType": "MetaCreate",
        "domain": domain,
        "message": {
            "marketSymbol": request.symbol,
            "metricUrl": request.metric_url,
            "settlementDate": int(request.settlement_date or 0),
            "startPrice": int(request.start_price_fixed_point or 0),
            "dataSource": request.data_source,
            "tagsHash": tags_hash(request.tags),
            "diamondOwner": to_checksum_address(diamond_owner),
            "cutHash": cut_hash(cut),
            "initFacet": to_checksum_address(cut.initializer),
            "creator": to_checksum_address(request.creator_wallet_address or ""),
            "nonce": authorization.nonce,
            "deadline": authorization.deadline,
        },
    }


class MetaTxAuthorizer:
    """Verifies the requester's signature and replay counter before any gas is spent."""

    def __init__(
        self,
        ledger: Ledger,
        factory_address: str,
        config: GaslessConfig,
        clock: Callable[[], float] = time.time,
    ):
        self.ledger = ledger
        self.factory_address = to_checksum_address(factory_address)
        self.config = config
        self._clock = clock

    async def domain(self) -> dict[str, Any]:
        """EIP-712 domain, read from the factory when it exposes ``eip712DomainInfo``."""
        try:
            info = await self.ledger.call(ContractCall(self.factory_address, "factory", "eip712DomainInfo"))
            name, version, chain_id, verifying_contract = info[0], info[1], info[2], info[3]
            return {
                "name": str(name),
                "version": str(version),
                "chainId": int(chain_id),
                "verifyingContract": to_checksum_address(verifying_contract),
            }
        except (CallReverted, NetworkError, TypeError, IndexError, ValueError) as exc:
            logger.info(
                "eip712DomainInfo unavailable, using configured domain",
                extra={"error": str(exc)},
            )
        return {
            "name": self.config.domain_name,
            "version": self.config.domain_version,
            "chainId": await self.ledger.chain_id(),
            "verifyingContract": self.factory_address,
        }

    def recover_signer(self, typed_data: dict[str, Any], signature: str) -> str:
        try:
            signable = encode_typed_data(full_message=typed_data)
            return Account.recover_message(signable, signature=signature)
        except (ValueError, TypeError, BadSignature, KeyValidationError) as exc:
            raise SignatureMismatchError(
                f"Signature could not be verified: {exc}",
                expected=typed_data["message"]["creator"],
            ) from exc

    async def authorize(self, request: CreationRequest, cut: FacetCut, diamond_owner: str) -> str:
        """Verify ``request``'s gasless authorization and return the verified creator.

        Raises:
            ValidationError: The deadline has passed or no creator was named.
            SignatureMismatchError: The recovered signer is not the claimed creator.
            StaleNonceError: The claimed nonce is not the creator's on-chain counter.
        """
        authorization = request.gasless
        if authorization is None:
            raise ValidationError("Gasless signature, nonce and deadline are required", field="signature")
        if not request.creator_wallet_address:
            raise ValidationError("creatorWalletAddress is required for gasless creation", field="creatorWalletAddress")
        if authorization.deadline <= int(self._clock()):
            raise ValidationError("Signature deadline has already passed", field="deadline")

        creator = to_checksum_address(request.creator_wallet_address)
        domain = await self.domain()
        typed_data = build_typed_data(domain, request, cut, diamond_owner, authorization)
        recovered = self.recover_signer(typed_data, authorization.signature)
        if recovered.lower() != creator.lower():
            raise SignatureMismatchError(
                f"Signature was produced by {recovered}, expected {creator}",
                recovered=recovered,
                expected=creator,
            )

        onchain_nonce = int(
            await self.ledger.call(ContractCall(self.factory_address, "factory", "metaCreateNonce", (creator,)))
        )
        if onchain_nonce != authorization.nonce:
            raise StaleNonceError(
                f"Meta-create nonce mismatch: expected {onchain_nonce}, got {authorization.nonce}",
                expected=onchain_nonce,
                got=authorization.nonce,
            )

        logger.info(
            "Gasless authorization verified",
            extra={"creator": creator, "nonce": authorization.nonce, "chain_id": domain["chainId"]},
        )
        return creator


__all__ = ["META_CREATE_TYPES", "MetaTxAuthorizer", "build_typed_data", "cut_hash", "tags_hash"]
