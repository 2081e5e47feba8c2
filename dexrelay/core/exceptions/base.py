"""Core relayer exception hierarchy."""

from __future__ import annotations

from typing import Any


class RelayerError(Exception):
    """Base class for every failure raised by the market-creation relayer."""

    http_status: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str = "GENERAL_ERROR",
        details: dict[str, Any] | None = None,
        step: str | None = None,
    ):
        """Initialise the error.

        Args:
            message: Human readable message.
            error_code: Stable error code (see :class:`ErrorCode`).
            details: Extra structured context.
            step: Pipeline step that failed, when known.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.step = step
        self.recovery: dict[str, Any] = {}

    def at_step(self, step: str) -> RelayerError:
        """Record the failing step unless one was already attached."""
        if self.step is None:
            self.step = step
        return self

    def with_recovery(self, **identifiers: Any) -> RelayerError:
        """Attach on-chain identifiers the caller can use for manual repair."""
        self.recovery.update({key: value for key, value in identifiers.items() if value is not None})
        return self


class ValidationError(RelayerError):
    """Caller input was rejected before any network access."""

    http_status = 400

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None):
        super_details = details or {}
        if field:
            super_details["field"] = field
        super().__init__(message, "VALIDATION_ERROR", super_details)
        self.field = field


class ConfigurationError(RelayerError):
    """Required configuration is missing or invalid; an operator must fix it."""

    def __init__(self, message: str, missing: list[str] | None = None, details: dict[str, Any] | None = None):
        super_details = details or {}
        if missing:
            super_details["missing"] = list(missing)
        super().__init__(message, "CONFIGURATION_ERROR", super_details)
        self.missing = list(missing or [])


class BuildError(RelayerError):
    """The facet cut for a new market could not be computed."""

    def __init__(self, message: str, empty_units: list[str] | None = None, details: dict[str, Any] | None = None):
        super_details = details or {}
        if empty_units:
            super_details["empty_units"] = list(empty_units)
        super().__init__(message, "BUILD_ERROR", super_details)
        self.empty_units = list(empty_units or [])


class StaticCallRevertError(RelayerError):
    """The dry-run call reverted; the real transaction would fail the same way."""

    http_status = 400

    def __init__(
        self,
        message: str,
        decoded_error_name: str | None = None,
        hint: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if decoded_error_name:
            super_details["decoded_error_name"] = decoded_error_name
        if hint:
            super_details["hint"] = hint
        super().__init__(message, "STATIC_CALL_REVERT", super_details)
        self.decoded_error_name = decoded_error_name
        self.hint = hint


class SignatureMismatchError(RelayerError):
    """The recovered meta-transaction signer is not the claimed requester."""

    http_status = 400

    def __init__(
        self,
        message: str,
        recovered: str | None = None,
        expected: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        super_details.update({"recovered": recovered, "expected": expected})
        super().__init__(message, "SIGNATURE_MISMATCH", super_details)
        self.recovered = recovered
        self.expected = expected


class StaleNonceError(RelayerError):
    """The claimed replay counter does not match the requester's on-chain counter."""

    http_status = 400

    def __init__(self, message: str, expected: int | None = None, got: int | None = None):
        super().__init__(message, "STALE_NONCE", {"expected": expected, "got": got})
        self.expected = expected
        self.got = got


class NetworkError(RelayerError):
    """Transient RPC or confirmation failure.

    ``broadcast`` is ``False`` only when the failed transaction provably never reached
    the node, so its sequence number is still free.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        error_code: str = "NETWORK_ERROR",
        tx_hash: str | None = None,
        details: dict[str, Any] | None = None,
        broadcast: bool = True,
    ):
        super_details = details or {}
        if tx_hash:
            super_details["tx_hash"] = tx_hash
        super().__init__(message, error_code, super_details)
        self.tx_hash = tx_hash
        self.broadcast = broadcast


class NonceConflictError(NetworkError):
    """The ledger rejected a transaction because its sequence number was already used."""

    def __init__(self, message: str, nonce: int | None = None, details: dict[str, Any] | None = None):
        super_details = details or {}
        if nonce is not None:
            super_details["nonce"] = nonce
        super().__init__(message, "NONCE_CONFLICT", details=super_details)
        self.nonce = nonce


class FatalError(RelayerError):
    """A confirmed transaction produced no recoverable market identity."""

    def __init__(self, message: str, tx_hash: str | None = None, details: dict[str, Any] | None = None):
        super_details = details or {}
        if tx_hash:
            super_details["tx_hash"] = tx_hash
        super().__init__(message, "FATAL_ERROR", super_details)
        self.tx_hash = tx_hash


class AdminGrantError(RelayerError):
    """A vault role grant failed after the market was created."""

    def __init__(self, message: str, role: str | None = None, details: dict[str, Any] | None = None):
        super_details = details or {}
        if role:
            super_details["role"] = role
        super().__init__(message, "ADMIN_GRANT_ERROR", super_details)
        self.role = role


class PersistenceError(RelayerError):
    """Writing the market record to the off-chain store failed."""

    def __init__(self, message: str, market_identifier: str | None = None, details: dict[str, Any] | None = None):
        super_details = details or {}
        if market_identifier:
            super_details["market_identifier"] = market_identifier
        super().__init__(message, "PERSISTENCE_ERROR", super_details)
        self.market_identifier = market_identifier


class PipelineCancelledError(RelayerError):
    """The caller aborted the pipeline before any transaction was submitted."""

    http_status = 400

    def __init__(self, message: str = "Pipeline cancelled before submission"):
        super().__init__(message, "PIPELINE_CANCELLED")
