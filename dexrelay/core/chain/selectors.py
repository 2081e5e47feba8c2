"""4-byte selector and role id helpers."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from eth_utils import function_abi_to_4byte_selector, function_signature_to_4byte_selector, keccak


def selector_for(signature: str) -> str:
    """Return the ``0x``-prefixed selector of a canonical signature like ``cancelOrder(uint256)``."""
    return "0x" + function_signature_to_4byte_selector(signature).hex()


def _unique(selectors: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for selector in selectors:
        key = selector.lower()
        if key not in seen:
            seen.add(key)
            ordered.append(key)
    return ordered


def selectors_from_abi(abi: Iterable[dict[str, Any]]) -> list[str]:
    """Selectors of every function entry in ``abi``, de-duplicated in declaration order.

    Tuple parameters are collapsed to their canonical ``(t1,t2)`` form before hashing.
    """
    return _unique(
        "0x" + function_abi_to_4byte_selector(entry).hex()
        for entry in abi
        if isinstance(entry, dict) and entry.get("type") == "function"
    )


def selectors_from_signatures(signatures: Iterable[str]) -> list[str]:
    return _unique(selector_for(signature) for signature in signatures)


def role_id(role_name: str) -> bytes:
    """Access-control role id, ``keccak256(role_name)``."""
    return keccak(text=role_name)


__all__ = ["role_id", "selector_for", "selectors_from_abi", "selectors_from_signatures"]
