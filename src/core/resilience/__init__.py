"""
Resilience patterns module.

Components:
    - RetryConfig: Exponential backoff configuration with equal jitter
    - retry_call: Retry a callable on classified-transient failures
    - Standard configs: DEFAULT_RETRY, TOKEN_RETRY
"""

from .retry import (
    DEFAULT_RETRY,
    TOKEN_RETRY,
    RetryConfig,
    RetryStats,
    retry_call,
)

__all__ = [
    "RetryConfig",
    "RetryStats",
    "retry_call",
    "DEFAULT_RETRY",
    "TOKEN_RETRY",
]
