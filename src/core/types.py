"""
Core types and protocols used across modules.

This module provides base types, enums, and protocol definitions that are
shared across the core library to ensure consistency and type safety.
"""

from enum import Enum
from typing import Protocol


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures the host should retry
                   (e.g., throttling, timeouts, 5xx responses)
        PERMANENT: Failures that won't succeed on retry; the batch is dropped
                   (e.g., bad credentials, malformed request, 403/404)
        UNKNOWN: Unparseable failures, retried like TRANSIENT but logged
                 separately for operator visibility
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class TokenProvider(Protocol):
    """
    Protocol for bearer token providers.

    Implementations cache the token and refresh it before expiry.
    """

    def get_token(self) -> str:
        """
        Get a valid access token.

        Raises:
            AuthenticationError: If token acquisition fails permanently
                or all retries are exhausted
        """
        ...

    def close(self) -> None:
        """Release the underlying credential."""
        ...


__all__ = [
    "ErrorCategory",
    "TokenProvider",
]
