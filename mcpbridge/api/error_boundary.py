"""Common error-boundary helpers for the HTTP layer."""

from __future__ import annotations

from typing import Any

from mcpbridge.utils.exceptions import (
    BridgeError,
    ErrorCategory,
    classify_exception,
    rpc_code_for,
    sanitize_error_message,
)

_CATEGORY_TO_STATUS = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.TIMEOUT: 504,
    ErrorCategory.RECOVERABLE: 500,
    ErrorCategory.RETRYABLE: 503,
    ErrorCategory.FATAL: 500,
}


def classify_http_status(exc: Exception) -> int:
    """Map exception to appropriate HTTP status code."""
    if isinstance(exc, BridgeError):
        return _CATEGORY_TO_STATUS.get(exc.category, 500)
    _, category, _ = classify_exception(exc)
    if category is ErrorCategory.FATAL:
        return 500
    return _CATEGORY_TO_STATUS.get(category, 500)


def error_body(exc: Exception, request_id: Any = None) -> dict[str, Any]:
    """JSON-RPC error body for an exception; internals are never echoed."""
    if isinstance(exc, BridgeError):
        code, message = exc.rpc_code, exc.message
    else:
        code, message = rpc_code_for(exc), "Internal server error"
    return {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": request_id}


def describe_exception(exc: Exception) -> tuple[str, str]:
    """(error code, sanitized message) for logging."""
    code, _, _ = classify_exception(exc)
    return code, sanitize_error_message(str(exc))
