"""
Centralized error classification for ingestion operations.

classify() is the single parsing boundary: it turns a raw failure from the
Azure SDKs, the Kusto client or the network stack into a ClassifiedError.
Callers downstream only ever see the classified form.
"""

import json
import logging
from typing import Any, Optional

import requests
from azure.core.exceptions import (
    HttpResponseError,
    ServiceRequestError,
    ServiceResponseError,
)

from core.errors.exceptions import AuthenticationError, ClassifiedError
from core.types import ErrorCategory

logger = logging.getLogger(__name__)


# Backend error code classifications
AZURE_ERROR_CODES = {
    # Azure Storage error codes (x-ms-error-code)
    "storage_errors": {
        "InternalError": "transient",
        "OperationTimedOut": "transient",
        "ServerBusy": "transient",
        "ServiceUnavailable": "transient",
        "AuthenticationFailed": "permanent",
        "AuthorizationFailure": "permanent",
        "AuthorizationPermissionMismatch": "permanent",
        "AccountIsDisabled": "permanent",
        "InsufficientAccountPermissions": "permanent",
        "ContainerNotFound": "permanent",
        "QueueNotFound": "permanent",
        "InvalidQueryParameterValue": "permanent",
        "RequestBodyTooLarge": "permanent",
        "MessageTooLarge": "permanent",
    },
    # Kusto OneApi error codes (error.code)
    "kusto_errors": {
        "BadRequest_EmptyBlob": "permanent",
        "BadRequest_InvalidBlob": "permanent",
        "BadRequest_DatabaseNotExist": "permanent",
        "BadRequest_TableNotExist": "permanent",
        "BadRequest_InvalidMappingReference": "permanent",
        "BadRequest_FormatNotSupported": "permanent",
        "BadRequest_SyntaxError": "permanent",
        "General_BadRequest": "permanent",
        "Forbidden": "permanent",
        "Unauthorized": "permanent",
        "LimitsExceeded": "transient",
        "TooManyRequests": "transient",
        "ServiceUnavailable": "transient",
        "InternalServiceError": "transient",
        "General_RetryableError": "transient",
    },
}

# Token endpoints answer with OAuth-shaped errors rather than Kusto OneApi
# payloads, so authentication failures use a keyword match instead.
AUTH_PERMANENT_MARKERS = frozenset(
    {
        "unauthorized",
        "forbidden",
        "invalid_client",
        "invalid_grant",
        "access_denied",
        "aadsts7000215",  # Invalid client secret provided
        "aadsts700016",  # Application not found in directory
        "az login",
    }
)

TRANSIENT_EXCEPTION_TYPES = (
    TimeoutError,
    ConnectionError,
    requests.Timeout,
    requests.ConnectionError,
    ServiceRequestError,
    ServiceResponseError,
)

_CATEGORY_BY_NAME = {
    "permanent": ErrorCategory.PERMANENT,
    "transient": ErrorCategory.TRANSIENT,
}


def classify_azure_error_code(error_code: Optional[str]) -> Optional[ErrorCategory]:
    """
    Classify a storage or Kusto error code.

    Returns:
        ErrorCategory, or None when the code is not recognized
    """
    if not error_code:
        return None
    error_code = str(error_code).strip()

    for table in ("storage_errors", "kusto_errors"):
        name = AZURE_ERROR_CODES[table].get(error_code)
        if name:
            return _CATEGORY_BY_NAME[name]
    return None


def classify_http_status(status_code: Optional[int]) -> Optional[ErrorCategory]:
    """Map an HTTP status code to an error category (None if not decisive)."""
    if status_code is None:
        return None
    if status_code in (408, 429) or 500 <= status_code < 600:
        return ErrorCategory.TRANSIENT
    if status_code in (400, 401, 403, 404, 413):
        return ErrorCategory.PERMANENT
    return None


def parse_error_json(text: Optional[str]) -> Optional[dict]:
    """
    Extract a JSON error document from a message or response body.

    Kusto embeds the OneApi payload inside longer exception messages, so the
    outermost {...} span is tried when the whole text is not JSON.
    """
    if not text or not isinstance(text, str):
        return None
    candidates = [text]
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except (TypeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def _error_response(error: Exception) -> Any:
    # KustoServiceError keeps the requests.Response on http_response
    response = getattr(error, "response", None)
    if response is None:
        response = getattr(error, "http_response", None)
    return response


def _response_body(error: Exception) -> Optional[str]:
    response = _error_response(error)
    if response is None:
        return None
    text = getattr(response, "text", None)
    try:
        # azure.core HttpResponse.text is a method, requests.Response.text a property
        return text() if callable(text) else text
    except Exception:
        return None


def _extract_structured(error: Exception) -> dict[str, Any]:
    """Pull code / sub_code / permanent flag / message out of a raw error."""
    found: dict[str, Any] = {}

    if isinstance(error, HttpResponseError):
        found["code"] = error.error_code
        found["status_code"] = error.status_code

    for text in (_response_body(error), str(error)):
        payload = parse_error_json(text)
        if not payload:
            continue
        body = payload.get("error", payload)
        if not isinstance(body, dict):
            continue
        found["code"] = body.get("code") or found.get("code")
        inner = body.get("innererror")
        found["sub_code"] = body.get("@errorCode") or (
            inner.get("code") if isinstance(inner, dict) else None
        )
        found["message"] = body.get("@message") or body.get("message") or body.get("Message")
        if "@permanent" in body:
            found["permanent"] = body["@permanent"] in (True, "true", "True")
        break

    if "status_code" not in found:
        response = _error_response(error)
        status = getattr(response, "status_code", None)
        if isinstance(status, int):
            found["status_code"] = status

    return found


def find_classified_cause(error: BaseException) -> Optional[ClassifiedError]:
    """
    First ClassifiedError wrapped by error, searching its cause chain.

    SDKs wrap callback failures (KustoAuthenticationError keeps the original
    on .exception, or it is only chained implicitly), so a category decided
    below the SDK would otherwise be lost.
    """
    seen = {id(error)}
    pending = [error]
    while pending:
        current = pending.pop(0)
        for linked in (
            current.__cause__,
            current.__context__,
            getattr(current, "exception", None),
        ):
            if not isinstance(linked, BaseException) or id(linked) in seen:
                continue
            if isinstance(linked, ClassifiedError):
                return linked
            seen.add(id(linked))
            pending.append(linked)
    return None


def classify(raw_error: Exception, context: Optional[dict] = None) -> ClassifiedError:
    """
    Classify a raw failure into a ClassifiedError.

    Already-classified errors are returned unchanged so a failure is never
    re-classified on its way up. A classified error wrapped by an SDK
    exception keeps its category.

    Args:
        raw_error: Exception raised by an SDK or network call
        context: Additional context merged into the classified error

    Returns:
        ClassifiedError with category PERMANENT, TRANSIENT or UNKNOWN
    """
    if isinstance(raw_error, ClassifiedError):
        return raw_error

    wrapped = find_classified_cause(raw_error)
    if wrapped is not None and wrapped.category != ErrorCategory.UNKNOWN:
        return ClassifiedError(
            wrapped.message,
            cause=raw_error,
            context={**wrapped.context, **(context or {})},
            category=wrapped.category,
            code=wrapped.code,
            sub_code=wrapped.sub_code,
        )

    found = _extract_structured(raw_error)
    code = found.get("code")
    category: Optional[ErrorCategory] = None

    if found.get("permanent") is True:
        category = ErrorCategory.PERMANENT
    if category is None:
        category = classify_azure_error_code(code)
    if category is None:
        category = classify_http_status(found.get("status_code"))
    if category is None and isinstance(raw_error, TRANSIENT_EXCEPTION_TYPES):
        category = ErrorCategory.TRANSIENT
    if category is None and found.get("permanent") is False:
        category = ErrorCategory.TRANSIENT
    if category is None:
        category = ErrorCategory.UNKNOWN

    ctx = dict(context or {})
    if found.get("status_code") is not None:
        ctx["status_code"] = found["status_code"]

    return ClassifiedError(
        found.get("message") or str(raw_error) or type(raw_error).__name__,
        cause=raw_error,
        context=ctx,
        category=category,
        code=code,
        sub_code=found.get("sub_code"),
    )


def is_permanent_auth_failure(error: Exception) -> bool:
    """Keyword match for permanent token-endpoint failures."""
    error_str = str(error).lower()
    return any(marker in error_str for marker in AUTH_PERMANENT_MARKERS)


def classify_auth_error(error: Exception, provider: str) -> AuthenticationError:
    """
    Classify a token fetch failure.

    Keyword matches are permanent; everything else is treated as transient so
    the provider's retry loop gets another attempt.
    """
    if isinstance(error, AuthenticationError):
        return error

    category = (
        ErrorCategory.PERMANENT
        if is_permanent_auth_failure(error)
        else ErrorCategory.TRANSIENT
    )
    return AuthenticationError(
        f"Token fetch failed for {provider}",
        cause=error,
        context={"provider": provider},
        category=category,
    )


__all__ = [
    "AZURE_ERROR_CODES",
    "AUTH_PERMANENT_MARKERS",
    "classify",
    "classify_auth_error",
    "classify_azure_error_code",
    "classify_http_status",
    "is_permanent_auth_failure",
    "parse_error_json",
]
