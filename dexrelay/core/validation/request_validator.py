"""Normalization and rejection of market creation requests.

Runs before any network or ledger access; every rejection names the offending field
using the inbound (camelCase) name so callers can map it back to their form.
"""

from __future__ import annotations

import time
from decimal import Decimal, InvalidOperation
from typing import Any

from eth_utils import is_address, to_checksum_address
from pydantic import ValidationError as PydanticValidationError

from dexrelay.core.exceptions import ValidationError
from dexrelay.core.models.request import PRICE_DECIMALS, CreationRequest

MAX_SYMBOL_LENGTH = 100

_SCALE = Decimal(10) ** PRICE_DECIMALS


def to_fixed_point(price: str, decimals: int = PRICE_DECIMALS) -> int:
    """Convert a decimal price string to an integer with ``decimals`` implied decimals.

    Raises:
        ValidationError: If the value is not a finite decimal or carries more precision
            than ``decimals`` allows.
    """
    try:
        value = Decimal(str(price).strip())
    except InvalidOperation as exc:
        raise ValidationError(f"Start price {price!r} is not a number", field="startPrice") from exc
    if not value.is_finite():
        raise ValidationError(f"Start price {price!r} is not a number", field="startPrice")

    scaled = value * (Decimal(10) ** decimals)
    if scaled != scaled.to_integral_value():
        raise ValidationError(
            f"Start price {price!r} has more than {decimals} decimal places",
            field="startPrice",
        )
    return int(scaled)


def parse_request(payload: Any) -> CreationRequest:
    """Build a :class:`CreationRequest` from inbound JSON, mapping schema errors to :class:`ValidationError`."""
    if isinstance(payload, CreationRequest):
        return payload
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", field="body")
    try:
        return CreationRequest.model_validate(payload)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "body"
        raise ValidationError(f"Invalid value for {field}: {first.get('msg')}", field=field) from exc


def _checksum_optional(value: str | None, field: str) -> str | None:
    if value is None or value == "":
        return None
    if not is_address(value):
        raise ValidationError(f"{field} is not a valid address: {value!r}", field=field)
    return to_checksum_address(value)


def _resolve_price(request: CreationRequest) -> int:
    if request.start_price_fixed_point is not None:
        fixed = request.start_price_fixed_point
        field = "startPriceFixedPoint"
    elif request.start_price is not None and request.start_price != "":
        fixed = to_fixed_point(request.start_price)
        field = "startPrice"
    else:
        raise ValidationError("Start price is required", field="startPrice")

    if fixed <= 0:
        raise ValidationError("Start price must be greater than zero", field=field)
    return fixed


def _check_gasless(request: CreationRequest, now: int) -> None:
    supplied = {
        "signature": request.signature,
        "nonce": request.nonce,
        "deadline": request.deadline,
    }
    present = [name for name, value in supplied.items() if value not in (None, "")]
    if not present or len(present) == len(supplied):
        if present and request.deadline is not None and request.deadline <= now:
            raise ValidationError("Signature deadline has already passed", field="deadline")
        if present and not request.creator_wallet_address:
            raise ValidationError(
                "creatorWalletAddress is required with a gasless signature",
                field="creatorWalletAddress",
            )
        return
    missing = sorted(set(supplied) - set(present))
    raise ValidationError(
        f"Gasless fields must be supplied together; missing {', '.join(missing)}",
        field=missing[0],
    )


def validate_request(
    request: CreationRequest,
    now: int | None = None,
    require_future_settlement: bool = True,
) -> CreationRequest:
    """Return a normalized copy of ``request`` or raise :class:`ValidationError`.

    Args:
        request: The inbound request.
        now: Current unix time in seconds; wall-clock time when omitted.
        require_future_settlement: Reject settlement dates that are not after ``now``.
            Disabled when re-persisting a market that already exists on chain.

    Returns:
        The request with an uppercased symbol, a fixed-point start price and
        checksummed addresses.
    """
    current = int(time.time()) if now is None else int(now)

    symbol = request.symbol.strip().upper()
    if not symbol:
        raise ValidationError("Symbol is required", field="symbol")
    if len(symbol) > MAX_SYMBOL_LENGTH:
        raise ValidationError(
            f"Symbol must be at most {MAX_SYMBOL_LENGTH} characters",
            field="symbol",
        )

    if not request.metric_url:
        raise ValidationError("Metric URL is required", field="metricUrl")

    settlement = request.settlement_date
    if settlement is None or isinstance(settlement, bool) or settlement <= 0:
        raise ValidationError("Settlement date must be a positive unix timestamp", field="settlementDate")
    if require_future_settlement and settlement <= current:
        raise ValidationError("Settlement date must be in the future", field="settlementDate")

    fixed_price = _resolve_price(request)

    creator = _checksum_optional(request.creator_wallet_address, "creatorWalletAddress")
    fee_recipient = _checksum_optional(request.fee_recipient, "feeRecipient")

    if require_future_settlement:
        _check_gasless(request, current)

    return request.model_copy(
        update={
            "symbol": symbol,
            "start_price_fixed_point": fixed_price,
            "start_price": str(Decimal(fixed_price) / _SCALE),
            "data_source": request.data_source or "User Provided",
            "creator_wallet_address": creator,
            "fee_recipient": fee_recipient,
        }
    )


__all__ = ["MAX_SYMBOL_LENGTH", "parse_request", "to_fixed_point", "validate_request"]
