"""
Exception hierarchy and error handling utilities for mcpbridge.

Provides:
- Bridge exception classes with error codes and JSON-RPC error codes
- Error categorization (retryable, fatal, timeout, ...)
- Safe error message formatting (no sensitive data leak)
"""

from __future__ import annotations

import asyncio
import json
import re
from enum import Enum
from typing import Any

# JSON-RPC 2.0 reserved codes plus the bridge's server-error range.
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
INTERNAL_ERROR = -32603
CALL_TIMEOUT = -32001
PEER_EXITED = -32002
PEER_SPAWN_FAILED = -32003
SESSION_NOT_FOUND = -32004


class ErrorCategory(Enum):
    """Error categories for classification."""
    RECOVERABLE = "recoverable"
    RETRYABLE = "retryable"
    FATAL = "fatal"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"


class BridgeError(Exception):
    """Base exception for all mcpbridge errors."""

    rpc_code: int = INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class InvalidRequestError(BridgeError):
    """Request body is not a usable JSON-RPC message."""

    rpc_code = INVALID_REQUEST

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="INVALID_REQUEST", category=ErrorCategory.VALIDATION, details=details)


class DuplicateCallError(BridgeError):
    """A call id was reused while the previous call with that id is in flight."""

    rpc_code = INVALID_REQUEST

    def __init__(self, call_id: Any):
        super().__init__(
            f"Request id already in flight: {call_id!r}",
            code="DUPLICATE_ID",
            category=ErrorCategory.VALIDATION,
            details={"id": call_id},
        )


class CallTimeoutError(BridgeError):
    """No reply arrived for a call within its budget."""

    rpc_code = CALL_TIMEOUT

    def __init__(self, call_id: Any, timeout_seconds: float):
        super().__init__(
            f"Request {call_id!r} timed out after {timeout_seconds}s",
            code="TIMEOUT",
            category=ErrorCategory.TIMEOUT,
            details={"id": call_id, "timeout_seconds": timeout_seconds},
        )


class SessionUnavailableError(BridgeError):
    """No session could be found for a call."""

    rpc_code = SESSION_NOT_FOUND

    def __init__(self, session_id: str | None = None, message: str = "Session not found"):
        super().__init__(
            message,
            code="SESSION_NOT_FOUND",
            category=ErrorCategory.NOT_FOUND,
            details={"session_id": session_id} if session_id else {},
        )


class PeerSpawnError(BridgeError):
    """The peer subprocess could not be started."""

    rpc_code = PEER_SPAWN_FAILED

    def __init__(self, command: list[str], reason: str):
        super().__init__(
            f"Failed to start peer '{command[0] if command else ''}': {reason}",
            code="PEER_SPAWN_FAILED",
            category=ErrorCategory.FATAL,
            details={"command": command},
        )


class PeerExitError(BridgeError):
    """The peer subprocess went away while calls were pending."""

    rpc_code = PEER_EXITED

    def __init__(self, session_id: str, returncode: int | None = None, message: str = "peer process exited"):
        super().__init__(
            message,
            code="PEER_EXITED",
            category=ErrorCategory.RETRYABLE,
            details={"session_id": session_id, "returncode": returncode},
        )


class MalformedFrameError(BridgeError):
    """A line on the peer's stdout did not decode as JSON."""

    def __init__(self, line: bytes, reason: str):
        preview = line[:200].decode("utf-8", errors="replace")
        super().__init__(
            f"Malformed frame: {reason}",
            code="MALFORMED_FRAME",
            category=ErrorCategory.RECOVERABLE,
            details={"line": preview},
        )
        self.line = line


_SENSITIVE_PATTERNS = [
    re.compile(r"(api[_-]?key|token|secret|password|auth)[=:]\s*['\"]?([^\s'\"]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"sk-[a-zA-Z0-9]{20,}"),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove sensitive information from error messages."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def classify_exception(exc: Exception) -> tuple[str, ErrorCategory, bool]:
    """
    Classify an exception and return (error_code, category, should_retry).

    Returns:
        Tuple of (error_code, category, should_retry)
    """
    if isinstance(exc, BridgeError):
        return exc.code, exc.category, exc.category == ErrorCategory.RETRYABLE

    if isinstance(exc, FileNotFoundError):
        return "FILE_NOT_FOUND", ErrorCategory.NOT_FOUND, False

    if isinstance(exc, asyncio.TimeoutError):
        return "TIMEOUT", ErrorCategory.TIMEOUT, True

    if isinstance(exc, (BrokenPipeError, ConnectionResetError)):
        return "PEER_EXITED", ErrorCategory.RETRYABLE, True

    if isinstance(exc, ConnectionError):
        return "CONNECTION_ERROR", ErrorCategory.RETRYABLE, True

    if isinstance(exc, json.JSONDecodeError):
        return "JSON_PARSE_ERROR", ErrorCategory.VALIDATION, False

    if isinstance(exc, (ValueError, TypeError, KeyError)):
        return "INVALID_VALUE", ErrorCategory.VALIDATION, False

    return "INTERNAL_ERROR", ErrorCategory.FATAL, False


def rpc_code_for(exc: Exception) -> int:
    """JSON-RPC error code reported to HTTP callers for an exception."""
    if isinstance(exc, BridgeError):
        return exc.rpc_code
    return INTERNAL_ERROR
