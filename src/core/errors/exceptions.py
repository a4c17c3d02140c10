"""
Unified exception hierarchy for Kusto ingestion.

Every failure that crosses a component boundary is a ClassifiedError carrying
its category (permanent, transient, unknown) plus the backend error code when
one could be parsed. The host decides retry vs. drop from the category alone.
"""

# Import ErrorCategory from canonical source to avoid duplicate enum issues
# (comparing enums from different classes always returns False)
from core.types import ErrorCategory


class ClassifiedError(Exception):
    """
    Base exception for all ingestion errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry/drop decisions
        code: Backend error code (e.g. "BadRequest_EmptyBlob"), if parsed
        sub_code: Backend sub-code / reason, if parsed
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
        category: ErrorCategory | None = None,
        code: str | None = None,
        sub_code: str | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        self.code = code
        self.sub_code = sub_code
        if category is not None:
            self.category = category
        super().__init__(message)

    @property
    def kind(self) -> ErrorCategory:
        return self.category

    @property
    def is_permanent(self) -> bool:
        return self.category == ErrorCategory.PERMANENT

    @property
    def is_retryable(self) -> bool:
        return self.category in (ErrorCategory.TRANSIENT, ErrorCategory.UNKNOWN)

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.append(f"Code: {self.code}")
        if self.sub_code:
            parts.append(f"Reason: {self.sub_code}")
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


class TransientError(ClassifiedError):
    """Failure expected to succeed on retry."""

    category = ErrorCategory.TRANSIENT


class PermanentError(ClassifiedError):
    """Failure that will not succeed on retry."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Component Errors
# =============================================================================


class AuthenticationError(ClassifiedError):
    """Token acquisition failed (retries exhausted or permanent credential error)."""

    pass


class ResourceFetchError(ClassifiedError):
    """Ingestion resources (blob/queue SAS, identity token) could not be fetched."""

    pass


class UploadError(ClassifiedError):
    """Blob PUT or queue POST returned a non-success response."""

    pass


class QueryError(ClassifiedError):
    """Management or query command against Kusto failed."""

    pass


__all__ = [
    "ErrorCategory",
    "ClassifiedError",
    "TransientError",
    "PermanentError",
    "AuthenticationError",
    "ResourceFetchError",
    "UploadError",
    "QueryError",
]
