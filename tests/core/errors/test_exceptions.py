"""
Tests for the classified exception hierarchy.
"""

from core.errors.exceptions import (
    AuthenticationError,
    ClassifiedError,
    ErrorCategory,
    PermanentError,
    QueryError,
    ResourceFetchError,
    TransientError,
    UploadError,
)


class TestClassifiedError:
    """Test ClassifiedError base behavior."""

    def test_defaults_to_unknown(self):
        error = ClassifiedError("boom")
        assert error.category == ErrorCategory.UNKNOWN
        assert error.kind == ErrorCategory.UNKNOWN
        assert error.is_retryable is True
        assert error.is_permanent is False
        assert error.context == {}

    def test_explicit_category_overrides_class_default(self):
        error = UploadError("bad blob", category=ErrorCategory.PERMANENT)
        assert error.is_permanent is True
        assert error.is_retryable is False
        # Class attribute untouched
        assert UploadError("other").category == ErrorCategory.UNKNOWN

    def test_str_includes_code_reason_and_cause(self):
        cause = ValueError("inner")
        error = ClassifiedError(
            "Ingestion failed",
            cause=cause,
            code="BadRequest_EmptyBlob",
            sub_code="General_BadRequest",
        )
        assert str(error) == (
            "Ingestion failed | Code: BadRequest_EmptyBlob | "
            "Reason: General_BadRequest | Caused by: inner"
        )

    def test_str_message_only(self):
        assert str(ClassifiedError("just a message")) == "just a message"


class TestSubclasses:
    """Test category defaults of the component errors."""

    def test_transient_and_permanent_defaults(self):
        assert TransientError("x").category == ErrorCategory.TRANSIENT
        assert PermanentError("x").category == ErrorCategory.PERMANENT

    def test_component_errors_are_classified(self):
        for cls in (AuthenticationError, ResourceFetchError, UploadError, QueryError):
            error = cls("x", context={"k": "v"})
            assert isinstance(error, ClassifiedError)
            assert error.context == {"k": "v"}
