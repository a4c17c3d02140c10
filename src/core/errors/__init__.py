"""
Error classification and exception hierarchy.

Provides:
- ClassifiedError hierarchy for typed exceptions
- classify() as the single boundary for turning raw failures into
  permanent / transient / unknown errors
- Keyword classification for token endpoint failures
"""

from core.errors.classifiers import (
    # Constants
    AZURE_ERROR_CODES,
    # Functions
    classify,
    classify_auth_error,
    classify_azure_error_code,
    classify_http_status,
    find_classified_cause,
)
from core.errors.exceptions import (
    AuthenticationError,
    # Base classes
    ClassifiedError,
    # Enums
    ErrorCategory,
    PermanentError,
    QueryError,
    ResourceFetchError,
    TransientError,
    UploadError,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "ClassifiedError",
    "TransientError",
    "PermanentError",
    # Component errors
    "AuthenticationError",
    "ResourceFetchError",
    "UploadError",
    "QueryError",
    # Classification
    "AZURE_ERROR_CODES",
    "classify",
    "find_classified_cause",
    "classify_auth_error",
    "classify_azure_error_code",
    "classify_http_status",
]
