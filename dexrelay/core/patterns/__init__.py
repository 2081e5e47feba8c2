"""Resilience patterns module."""

from dexrelay.core.patterns.retry import BoundedRetry, RetryConfig, RetryState

__all__ = ["BoundedRetry", "RetryConfig", "RetryState"]
