"""
Retry utilities with exception-aware handling.

Uses the exception hierarchy to make retry decisions:
- Transient / unknown errors: retry with exponential backoff
- Permanent errors: fail immediately (no retry)
"""

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from core.errors.classifiers import classify
from core.errors.exceptions import ClassifiedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_retry_failure(
    operation: str,
    error: ClassifiedError,
    config: "RetryConfig",
) -> None:
    """Log permanent-error or max-retries-exhausted."""
    if error.is_permanent:
        logger.warning(
            "Permanent error for %s, not retrying: %s",
            operation,
            str(error)[:200],
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_category": error.category.value,
                "error_message": str(error)[:200],
            },
        )
        return

    logger.error(
        "Max retries exhausted for %s: %s",
        operation,
        str(error)[:200],
        extra={
            "operation": operation,
            "error_type": type(error).__name__,
            "error_category": error.category.value,
            "max_attempts": config.max_attempts,
            "error_message": str(error)[:200],
        },
    )


def _log_retry_attempt(
    operation: str,
    attempt: int,
    config: "RetryConfig",
    delay: float,
    error: ClassifiedError,
) -> None:
    logger.warning(
        "Retryable error for %s, will retry",
        operation,
        extra={
            "operation": operation,
            "attempt": attempt + 1,
            "max_attempts": config.max_attempts,
            "error_category": error.category.value,
            "delay_seconds": round(delay, 2),
            "error_message": str(error)[:200],
        },
    )


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0

    # If True, don't retry permanent errors even if attempts remain
    respect_permanent: bool = True

    # Optional set of exception types to never retry (overrides classification)
    never_retry: set[type[Exception]] = field(default_factory=set)

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.max_attempts = int(self.max_attempts)
        self.base_delay = float(self.base_delay)
        self.max_delay = float(self.max_delay)
        self.exponential_base = float(self.exponential_base)
        # bool('false') would be True, so only coerce non-bools
        self.respect_permanent = (
            self.respect_permanent
            if isinstance(self.respect_permanent, bool)
            else str(self.respect_permanent).lower() == "true"
        )

    def get_delay(self, attempt: int) -> float:
        """
        Calculate delay with equal jitter to prevent thundering herd.

        Args:
            attempt: 0-indexed attempt number

        Returns:
            Delay in seconds
        """
        base_delay = self.base_delay * (self.exponential_base**attempt)

        # Equal jitter: half fixed, half random
        jitter = random.uniform(0, base_delay / 2)
        delay = (base_delay / 2) + jitter

        return min(delay, self.max_delay)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """
        Determine if error should be retried.

        Args:
            error: The exception that occurred
            attempt: 0-indexed current attempt

        Returns:
            True if should retry
        """
        if attempt >= self.max_attempts - 1:
            return False

        if self.never_retry and isinstance(error, tuple(self.never_retry)):
            return False

        classified = classify(error)
        if self.respect_permanent and classified.is_permanent:
            return False
        return classified.is_retryable


# Default configurations
DEFAULT_RETRY = RetryConfig(max_attempts=3, base_delay=1.0)
TOKEN_RETRY = RetryConfig(max_attempts=3, base_delay=1.0, max_delay=30.0)


@dataclass
class RetryStats:
    """Statistics from a retry operation."""

    attempts: int = 0
    total_delay: float = 0.0
    final_error: Exception | None = None
    success: bool = False

    @property
    def retried(self) -> bool:
        """Whether any retries occurred."""
        return self.attempts > 1


def retry_call(
    func: Callable[[], T],
    config: RetryConfig | None = None,
    operation: str | None = None,
    stats: RetryStats | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call func, retrying classified-transient failures with backoff.

    The last error is re-raised in classified form; permanent errors are
    raised after the first attempt.

    Args:
        func: Zero-argument callable to invoke
        config: Retry configuration (defaults to DEFAULT_RETRY)
        operation: Name used in log records (defaults to func.__name__)
        stats: Optional RetryStats populated as attempts are made
        sleep: Sleep function, injectable for tests

    Usage:
        token = retry_call(provider.fetch_token, TOKEN_RETRY, "fetch_token")
    """
    config = config or DEFAULT_RETRY
    operation = operation or getattr(func, "__name__", "operation")
    stats = stats if stats is not None else RetryStats()

    for attempt in range(config.max_attempts):
        stats.attempts = attempt + 1
        try:
            result = func()
        except Exception as e:
            classified = classify(e)
            stats.final_error = classified

            if not config.should_retry(classified, attempt):
                _log_retry_failure(operation, classified, config)
                if classified is e:
                    raise
                raise classified from e

            delay = config.get_delay(attempt)
            _log_retry_attempt(operation, attempt, config, delay, classified)
            stats.total_delay += delay
            sleep(delay)
            continue

        if attempt > 0:
            logger.info(
                "Retry succeeded for %s after %d attempts",
                operation,
                attempt + 1,
                extra={
                    "operation": operation,
                    "attempt": attempt + 1,
                    "total_attempts": config.max_attempts,
                },
            )
        stats.success = True
        return result

    # max_attempts < 1
    raise ValueError(f"Invalid max_attempts for {operation}: {config.max_attempts}")


__all__ = [
    "RetryConfig",
    "RetryStats",
    "retry_call",
    "DEFAULT_RETRY",
    "TOKEN_RETRY",
]
