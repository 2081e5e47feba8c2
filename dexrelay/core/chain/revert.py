"""Decoding of revert data returned by dry-run calls."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector
from loguru import logger

from dexrelay.core.chain.interfaces import CallReverted
from dexrelay.core.exceptions import StaticCallRevertError
from dexrelay.core.exceptions.messages import DEFAULT_DIRECT_HINT, DEFAULT_META_HINT, REVERT_HINTS

# Error signatures the factory and the solidity runtime can revert with.
KNOWN_ERROR_SIGNATURES: tuple[str, ...] = (
    "Error(string)",
    "Panic(uint256)",
    "MarketAlreadyExists()",
    "PublicCreationDisabled()",
    "InsufficientCreationFee(uint256,uint256)",
    "MetaCreateExpired()",
    "MetaCreateBadSignature()",
    "MetaCreateBadNonce(uint256,uint256)",
    "InvalidFacet(address)",
    "InvalidSettlementDate()",
    "InvalidStartPrice()",
)


def _split(signature: str) -> tuple[str, list[str]]:
    name, _, rest = signature.partition("(")
    types = rest[:-1]
    return name, [t for t in types.split(",") if t]


_ERRORS_BY_SELECTOR: dict[bytes, tuple[str, list[str]]] = {
    function_signature_to_4byte_selector(signature): _split(signature) for signature in KNOWN_ERROR_SIGNATURES
}


@dataclass(frozen=True)
class DecodedRevert:
    selector: str | None
    name: str | None
    args: tuple[Any, ...] = ()

    @property
    def reason(self) -> str | None:
        if self.name == "Error" and self.args:
            return str(self.args[0])
        if self.name == "Panic" and self.args:
            return f"panic code {hex(self.args[0])}"
        return None


def _as_bytes(data: bytes | str | None) -> bytes:
    if data is None:
        return b""
    if isinstance(data, bytes):
        return data
    text = data[2:] if data.startswith("0x") else data
    try:
        return bytes.fromhex(text)
    except ValueError:
        return b""


def decode_revert(data: bytes | str | None) -> DecodedRevert:
    """Map revert data to a known error name via its leading 4 bytes."""
    raw = _as_bytes(data)
    if len(raw) < 4:
        return DecodedRevert(selector=None, name=None)

    selector = "0x" + raw[:4].hex()
    known = _ERRORS_BY_SELECTOR.get(raw[:4])
    if known is None:
        return DecodedRevert(selector=selector, name=None)

    name, types = known
    args: tuple[Any, ...] = ()
    if types:
        try:
            args = tuple(abi_decode(types, raw[4:]))
        except (DecodingError, ValueError) as exc:
            logger.debug(
                "Revert payload did not match its selector",
                extra={"selector": selector, "error": str(exc)},
            )
    return DecodedRevert(selector=selector, name=name, args=args)


def to_static_call_error(error: CallReverted, meta: bool = False) -> StaticCallRevertError:
    """Turn a reverted dry run into a terminal, caller-facing error with a remediation hint."""
    decoded = decode_revert(error.data)
    reason = decoded.reason or error.reason
    name = decoded.name
    default_hint = DEFAULT_META_HINT if meta else DEFAULT_DIRECT_HINT
    hint = REVERT_HINTS.get(name, default_hint) if name else default_hint

    label = "metaCreate" if meta else "create"
    detail = name if name and name != "Error" else (reason or "execution reverted")
    return StaticCallRevertError(
        f"Static call {label} reverted: {detail}",
        decoded_error_name=name,
        hint=hint,
        details={"selector": decoded.selector, "reason": reason},
    )


__all__ = ["DecodedRevert", "KNOWN_ERROR_SIGNATURES", "decode_revert", "to_static_call_error"]
