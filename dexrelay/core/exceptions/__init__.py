"""Exception handling module."""

from dexrelay.core.exceptions.base import (
    AdminGrantError,
    BuildError,
    ConfigurationError,
    FatalError,
    NetworkError,
    NonceConflictError,
    PersistenceError,
    PipelineCancelledError,
    RelayerError,
    SignatureMismatchError,
    StaleNonceError,
    StaticCallRevertError,
    ValidationError,
)
from dexrelay.core.exceptions.codes import ErrorCode
from dexrelay.core.exceptions.handler import ErrorHandler, error_handler, get_error_handler
from dexrelay.core.exceptions.messages import ErrorMessageTemplate, format_error_response

__all__ = [
    "RelayerError",
    "ValidationError",
    "ConfigurationError",
    "BuildError",
    "StaticCallRevertError",
    "SignatureMismatchError",
    "StaleNonceError",
    "NetworkError",
    "NonceConflictError",
    "FatalError",
    "AdminGrantError",
    "PersistenceError",
    "PipelineCancelledError",
    "ErrorCode",
    "ErrorMessageTemplate",
    "format_error_response",
    "ErrorHandler",
    "error_handler",
    "get_error_handler",
]
