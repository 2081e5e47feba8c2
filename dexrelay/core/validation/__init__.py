"""Request validation module."""

from dexrelay.core.validation.request_validator import (
    MAX_SYMBOL_LENGTH,
    parse_request,
    to_fixed_point,
    validate_request,
)

__all__ = ["MAX_SYMBOL_LENGTH", "parse_request", "to_fixed_point", "validate_request"]
