"""Standardized error codes for relayer failures."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Stable identifiers surfaced in error responses and structured logs."""

    GENERAL_ERROR = "GENERAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    BUILD_ERROR = "BUILD_ERROR"
    STATIC_CALL_REVERT = "STATIC_CALL_REVERT"
    SIGNATURE_MISMATCH = "SIGNATURE_MISMATCH"
    STALE_NONCE = "STALE_NONCE"
    NETWORK_ERROR = "NETWORK_ERROR"
    NONCE_CONFLICT = "NONCE_CONFLICT"
    CONFIRMATION_TIMEOUT = "CONFIRMATION_TIMEOUT"
    TRANSACTION_REVERTED = "TRANSACTION_REVERTED"
    FATAL_ERROR = "FATAL_ERROR"
    ADMIN_GRANT_ERROR = "ADMIN_GRANT_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    PIPELINE_CANCELLED = "PIPELINE_CANCELLED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


__all__ = ["ErrorCode"]
