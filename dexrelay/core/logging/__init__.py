"""Logging utilities for monitoring and debugging."""

from dexrelay.core.logging.config import LogConfig
from dexrelay.core.logging.logger import (
    StructuredLogger,
    configure_logging,
    log_context,
    logger,
)

__all__ = [
    "LogConfig",
    "StructuredLogger",
    "configure_logging",
    "log_context",
    "logger",
]
