"""Error logging and response rendering."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from loguru import logger

from .base import NetworkError, RelayerError, StaticCallRevertError
from .codes import ErrorCode
from .messages import format_error_response

# Keys of RelayerError.recovery mapped to their camelCase response names.
_RECOVERY_FIELDS = {
    "order_book": "orderBookAddress",
    "market_id": "marketId",
    "tx_hash": "transactionHash",
}


class ErrorHandler:
    """Uniform logging and HTTP rendering for relayer errors."""

    def log_error(
        self,
        error: Exception,
        context: dict[str, Any] | None = None,
        level: str = "ERROR",
    ) -> None:
        """Log an error with its structured context.

        Args:
            error: The exception.
            context: Extra context fields.
            level: Log level name.
        """
        error_context: dict[str, Any] = {
            "error_type": type(error).__name__,
            "timestamp": datetime.now(UTC).isoformat(),
            **(context or {}),
        }
        if isinstance(error, RelayerError):
            error_context.update(
                {
                    "error_code": error.error_code,
                    "step": error.step,
                    "details": error.details,
                    "recovery": error.recovery,
                }
            )

        logger.opt(depth=1).bind(**error_context).log(level, str(error))

    def status_code(self, error: Exception) -> int:
        """Return the HTTP status code for ``error``."""
        if isinstance(error, RelayerError):
            return error.http_status
        return 500

    def create_error_response(self, error: Exception) -> dict[str, Any]:
        """Render an error as the JSON body returned to the caller.

        Every body names the failing step; errors raised after on-chain submission
        also carry the identifiers needed for manual recovery.
        """
        if not isinstance(error, RelayerError):
            return format_error_response(ErrorCode.INTERNAL_ERROR, message=str(error) or None, step="unhandled_error")

        extra: dict[str, Any] = {}
        if isinstance(error, StaticCallRevertError):
            extra["hint"] = error.hint
            extra["decodedErrorName"] = error.decoded_error_name
        if isinstance(error, NetworkError):
            extra["retryable"] = True
        for key, field_name in _RECOVERY_FIELDS.items():
            if key in error.recovery:
                extra[field_name] = error.recovery[key]
        if "field" in error.details:
            extra["field"] = error.details["field"]

        return format_error_response(
            ErrorCode(error.error_code),
            message=error.message,
            step=error.step,
            **extra,
        )

    def handle_exception(self, error: Exception, step: str, **context: Any) -> RelayerError:
        """Log ``error`` and convert it into a :class:`RelayerError` attributed to ``step``."""
        if isinstance(error, RelayerError):
            error.at_step(step)
            self.log_error(error, {"step": step, **context})
            return error

        wrapped = RelayerError(str(error) or type(error).__name__, ErrorCode.INTERNAL_ERROR.value, step=step)
        self.log_error(error, {"step": step, **context})
        return wrapped


error_handler = ErrorHandler()


def get_error_handler() -> ErrorHandler:
    """Return the process-wide error handler."""
    return error_handler
