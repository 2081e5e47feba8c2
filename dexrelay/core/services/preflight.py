"""Checks run before the creation transaction: bytecode presence and the dry run."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping

from loguru import logger

from dexrelay.core.chain.interfaces import CallReverted, ContractCall, Ledger
from dexrelay.core.chain.revert import to_static_call_error
from dexrelay.core.exceptions import ConfigurationError
from dexrelay.core.models.cut import FacetCut
from dexrelay.core.models.request import CreationRequest, GaslessAuthorization


def build_creation_call(
    factory: str,
    request: CreationRequest,
    cut: FacetCut,
    diamond_owner: str,
    authorization: GaslessAuthorization | None = None,
) -> ContractCall:
    """Arguments for the factory creation call, shared by the dry run and the real send."""
    common = (
        request.symbol,
        request.metric_url,
        int(request.settlement_date or 0),
        int(request.start_price_fixed_point or 0),
        request.data_source,
        list(request.tags),
        diamond_owner,
        cut.as_call_arg(),
        cut.initializer,
    )
    if authorization is None:
        return ContractCall(factory, "factory", "createFuturesMarketDiamond", (*common, b""))

    signature = bytes.fromhex(authorization.signature.removeprefix("0x"))
    return ContractCall(
        factory,
        "factory",
        "metaCreateFuturesMarketDiamond",
        (
            *common,
            request.creator_wallet_address,
            authorization.nonce,
            authorization.deadline,
            signature,
        ),
    )


async def ensure_deployed(ledger: Ledger, addresses: Mapping[str, str]) -> None:
    """Require deployed bytecode at every address in ``addresses`` (label -> address)."""
    labels = list(addresses)
    codes = await asyncio.gather(*(ledger.get_code(addresses[label]) for label in labels))
    empty = [label for label, code in zip(labels, codes, strict=True) if not code or code in (b"\x00",)]
    if empty:
        raise ConfigurationError(
            f"No contract bytecode at: {', '.join(empty)}",
            missing=empty,
            details={"addresses": {label: addresses[label] for label in empty}},
        )


async def dry_run(ledger: Ledger, call: ContractCall) -> None:
    """Simulate ``call``; a revert becomes a terminal :class:`StaticCallRevertError`."""
    meta = call.function.startswith("meta")
    try:
        await ledger.static_call(call)
    except CallReverted as exc:
        error = to_static_call_error(exc, meta=meta)
        logger.warning(
            "Factory dry run reverted",
            extra={"function": call.function, "decoded_error_name": error.decoded_error_name},
        )
        raise error from exc


__all__ = ["build_creation_call", "dry_run", "ensure_deployed"]
