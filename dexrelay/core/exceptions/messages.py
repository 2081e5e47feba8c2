"""Standardized error message templates and response formatting."""

from typing import Any

from dexrelay.core.exceptions.codes import ErrorCode


class ErrorMessageTemplate:
    """Default messages used when an error carries no message of its own."""

    _templates: dict[ErrorCode, str] = {
        ErrorCode.GENERAL_ERROR: "An unknown error occurred",
        ErrorCode.VALIDATION_ERROR: "Invalid request field: {field}",
        ErrorCode.CONFIGURATION_ERROR: "Relayer is not configured: {missing}",
        ErrorCode.BUILD_ERROR: "Facet selectors could not be built for: {empty_units}",
        ErrorCode.STATIC_CALL_REVERT: "Dry-run call reverted: {decoded_error_name}",
        ErrorCode.SIGNATURE_MISMATCH: "Signature was produced by {recovered}, expected {expected}",
        ErrorCode.STALE_NONCE: "Meta-create nonce mismatch: expected {expected}, got {got}",
        ErrorCode.NETWORK_ERROR: "Ledger request failed",
        ErrorCode.NONCE_CONFLICT: "Transaction sequence number {nonce} already used",
        ErrorCode.CONFIRMATION_TIMEOUT: "Transaction {tx_hash} was not confirmed in time",
        ErrorCode.TRANSACTION_REVERTED: "Transaction {tx_hash} reverted",
        ErrorCode.FATAL_ERROR: "Transaction {tx_hash} produced no market",
        ErrorCode.ADMIN_GRANT_ERROR: "Vault role grant failed: {role}",
        ErrorCode.PERSISTENCE_ERROR: "Market {market_identifier} could not be saved",
        ErrorCode.PIPELINE_CANCELLED: "Pipeline cancelled before submission",
        ErrorCode.INTERNAL_ERROR: "Internal error",
    }

    @classmethod
    def get_message(cls, error_code: ErrorCode, **kwargs: Any) -> str:
        """Render the template for ``error_code`` with ``kwargs``."""
        template = cls._templates.get(error_code, cls._templates[ErrorCode.GENERAL_ERROR])
        try:
            return template.format(**kwargs)
        except KeyError:
            return f"{cls._templates[ErrorCode.GENERAL_ERROR]} (code: {error_code.value})"


# Remediation hints for reverts raised by the factory during the dry run.
REVERT_HINTS: dict[str, str] = {
    "MarketAlreadyExists": "A market with this symbol already exists on chain; pick another symbol.",
    "PublicCreationDisabled": "Public market creation is disabled on the factory; ask an operator to enable it.",
    "InsufficientCreationFee": "The creator's vault balance does not cover the creation fee; deposit collateral first.",
    "MetaCreateExpired": "The signed deadline has passed; sign the request again.",
    "MetaCreateBadSignature": "The factory rejected the signature; re-sign with the connected wallet.",
    "MetaCreateBadNonce": "The signed nonce is stale; fetch a fresh nonce and sign again.",
    "InvalidFacet": "A configured facet address is invalid; check the unit address configuration.",
    "InvalidSettlementDate": "Settlement date must be in the future.",
    "InvalidStartPrice": "Start price must be greater than zero.",
    "Panic": "The factory hit an internal assertion; check arguments and network.",
}

DEFAULT_DIRECT_HINT = (
    "Possible causes: public creation disabled; creation fee required without sufficient vault "
    "balance for the relayer; invalid facet addresses; or network mismatch."
)
DEFAULT_META_HINT = (
    "Possible causes: restricted creation for creator; insufficient vault balance for the creator; "
    "invalid facets/addresses; or network mismatch."
)


def format_error_response(
    error_code: ErrorCode,
    message: str | None = None,
    step: str | None = None,
    **kwargs: Any,
) -> dict[str, Any]:
    """Build the JSON body returned for a failed request.

    Args:
        error_code: Error code.
        message: Optional message; the template is used when omitted.
        step: Pipeline step that failed.
        **kwargs: Extra fields merged into the body (hint, recovery identifiers, ...).

    Returns:
        A JSON-serializable response body.
    """
    if message is None:
        message = ErrorMessageTemplate.get_message(error_code, **kwargs)

    body: dict[str, Any] = {"error": message, "code": error_code.value, "step": step}
    body.update({key: value for key, value in kwargs.items() if value is not None})
    return body
