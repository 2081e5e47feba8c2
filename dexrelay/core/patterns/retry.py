"""Bounded retry policy keyed on typed error kinds."""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from loguru import logger

from dexrelay.core.exceptions import NetworkError, NonceConflictError, RelayerError

T = TypeVar("T")


class RetryState(Enum):
    """Retry lifecycle state."""

    READY = "ready"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RetryConfig:
    """Retry configuration."""

    max_attempts: int = 2  # total attempts, first one included
    base_delay: float = 0.0  # seconds before the first retry
    max_delay: float = 5.0
    exponential_base: float = 2.0
    jitter: bool = False
    retry_on_exceptions: list[type] = field(default_factory=lambda: [NonceConflictError])
    skip_on_exceptions: list[type] = field(default_factory=list)


class BoundedRetry:
    """Runs a coroutine at most ``max_attempts`` times, retrying only listed error kinds."""

    def __init__(self, config: RetryConfig | None = None):
        self.config = config or RetryConfig()
        self.attempt_count = 0
        self.total_delay = 0.0
        self.state = RetryState.READY
        self.last_exception: Exception | None = None

    async def execute(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        before_retry: Callable[[Exception], Awaitable[None]] | None = None,
        **kwargs: Any,
    ) -> T:
        """Execute ``func`` with the retry policy applied.

        Args:
            func: Coroutine function to run.
            *args: Positional arguments for ``func``.
            before_retry: Awaited with the failure before every retry (e.g. a nonce resync).
            **kwargs: Keyword arguments for ``func``.

        Returns:
            The result of the first successful attempt.

        Raises:
            Exception: The failure itself when it is not retryable, or a :class:`NetworkError`
                when a retryable failure repeats on the final attempt.
        """
        self.state = RetryState.RUNNING
        self.attempt_count = 0
        self.total_delay = 0.0

        while True:
            self.attempt_count += 1
            try:
                result = await func(*args, **kwargs)
                self.state = RetryState.COMPLETED
                return result
            except Exception as e:
                self.last_exception = e

                if any(isinstance(e, exc_type) for exc_type in self.config.skip_on_exceptions):
                    self.state = RetryState.FAILED
                    raise

                should_retry = any(isinstance(e, exc_type) for exc_type in self.config.retry_on_exceptions)
                if not should_retry:
                    self.state = RetryState.FAILED
                    raise

                if self.attempt_count >= self.config.max_attempts:
                    self.state = RetryState.FAILED
                    raise self._exhausted(e) from e

                logger.warning(
                    "Retrying after retryable failure",
                    extra={
                        "attempt": self.attempt_count,
                        "max_attempts": self.config.max_attempts,
                        "error_type": type(e).__name__,
                    },
                )
                if before_retry is not None:
                    await before_retry(e)

                delay = self._calculate_delay(self.attempt_count - 1)
                if delay > 0:
                    await asyncio.sleep(delay)
                    self.total_delay += delay

    def _exhausted(self, error: Exception) -> Exception:
        message = f"Giving up after {self.attempt_count} attempts: {error}"
        if isinstance(error, RelayerError):
            exhausted = NetworkError(message, details={**error.details, "attempts": self.attempt_count})
            exhausted.step = error.step
            return exhausted
        return NetworkError(message, details={"attempts": self.attempt_count})

    def _calculate_delay(self, attempt_number: int) -> float:
        if attempt_number < 0 or self.config.base_delay <= 0:
            return 0.0

        delay = self.config.base_delay * (self.config.exponential_base**attempt_number)
        if self.config.jitter:
            jitter_range = min(delay * 0.1, 1.0)
            delay += random.uniform(-jitter_range, jitter_range)
        return min(delay, self.config.max_delay)

    def get_stats(self) -> dict[str, Any]:
        """Return retry statistics."""
        return {
            "attempts": self.attempt_count,
            "max_attempts": self.config.max_attempts,
            "total_delay": self.total_delay,
            "state": self.state.value,
            "last_exception": str(self.last_exception) if self.last_exception else None,
        }

    def reset(self) -> None:
        """Reset retry state."""
        self.attempt_count = 0
        self.total_delay = 0.0
        self.state = RetryState.READY
        self.last_exception = None


__all__ = ["BoundedRetry", "RetryConfig", "RetryState"]
