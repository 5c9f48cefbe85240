"""Tests for mcpbridge.utils.exceptions module."""

from __future__ import annotations

import asyncio
import json

from mcpbridge.utils.exceptions import (
    CALL_TIMEOUT,
    INTERNAL_ERROR,
    PEER_EXITED,
    BridgeError,
    CallTimeoutError,
    DuplicateCallError,
    ErrorCategory,
    InvalidRequestError,
    PeerExitError,
    PeerSpawnError,
    SessionUnavailableError,
    classify_exception,
    rpc_code_for,
    sanitize_error_message,
)


class TestExceptionClasses:
    """Test bridge exception classes."""

    def test_bridge_error_to_dict(self) -> None:
        exc = BridgeError("test message", code="TEST_CODE")
        assert exc.to_dict() == {
            "error": "TEST_CODE",
            "message": "test message",
            "category": ErrorCategory.FATAL.value,
            "details": {},
        }
        assert str(exc) == "[TEST_CODE] test message"

    def test_invalid_request_with_field(self) -> None:
        exc = InvalidRequestError("Missing method", field="method")
        assert exc.code == "INVALID_REQUEST"
        assert exc.category == ErrorCategory.VALIDATION
        assert exc.details == {"field": "method"}

    def test_duplicate_call(self) -> None:
        exc = DuplicateCallError(7)
        assert exc.code == "DUPLICATE_ID"
        assert exc.details == {"id": 7}

    def test_call_timeout(self) -> None:
        exc = CallTimeoutError("abc", 10.0)
        assert exc.category == ErrorCategory.TIMEOUT
        assert "10.0s" in exc.message
        assert exc.rpc_code == CALL_TIMEOUT

    def test_session_unavailable(self) -> None:
        assert SessionUnavailableError().details == {}
        assert SessionUnavailableError("s1").details == {"session_id": "s1"}
        assert SessionUnavailableError().message == "Session not found"

    def test_peer_errors(self) -> None:
        spawn = PeerSpawnError(["npx", "-y", "server"], "No such file")
        assert "npx" in spawn.message
        assert spawn.category == ErrorCategory.FATAL

        exited = PeerExitError("s1", 137)
        assert exited.details == {"session_id": "s1", "returncode": 137}
        assert exited.category == ErrorCategory.RETRYABLE
        assert exited.rpc_code == PEER_EXITED


class TestSanitizeErrorMessage:
    """Test sanitize_error_message function."""

    def test_no_sensitive_info(self) -> None:
        assert sanitize_error_message("Operation failed") == "Operation failed"

    def test_sanitize_api_key(self) -> None:
        result = sanitize_error_message("API key: sk-1234567890abcdefghijklmnop")
        assert "sk-1234567890" not in result
        assert "[REDACTED]" in result

    def test_sanitize_password(self) -> None:
        result = sanitize_error_message("Password: mySecret123")
        assert "mySecret123" not in result

    def test_sanitize_bearer(self) -> None:
        result = sanitize_error_message("header was Bearer abc.def-ghi", replacement="[HIDDEN]")
        assert "abc.def" not in result
        assert "[HIDDEN]" in result


class TestClassifyException:
    """Test classify_exception function."""

    def test_classify_bridge_error(self) -> None:
        code, category, should_retry = classify_exception(PeerExitError("s1"))
        assert code == "PEER_EXITED"
        assert category == ErrorCategory.RETRYABLE
        assert should_retry is True

    def test_classify_asyncio_timeout(self) -> None:
        code, category, should_retry = classify_exception(asyncio.TimeoutError())
        assert code == "TIMEOUT"
        assert category == ErrorCategory.TIMEOUT
        assert should_retry is True

    def test_classify_connection_error(self) -> None:
        code, category, _ = classify_exception(ConnectionError("Connection refused"))
        assert code == "CONNECTION_ERROR"
        assert category == ErrorCategory.RETRYABLE

    def test_classify_json_decode_error(self) -> None:
        code, category, should_retry = classify_exception(json.JSONDecodeError("Invalid JSON", "", 0))
        assert code == "JSON_PARSE_ERROR"
        assert category == ErrorCategory.VALIDATION
        assert should_retry is False

    def test_classify_generic_exception(self) -> None:
        code, category, should_retry = classify_exception(RuntimeError("Unknown error"))
        assert code == "INTERNAL_ERROR"
        assert category == ErrorCategory.FATAL
        assert should_retry is False

    def test_rpc_code_for(self) -> None:
        assert rpc_code_for(CallTimeoutError(1, 1.0)) == CALL_TIMEOUT
        assert rpc_code_for(RuntimeError("x")) == INTERNAL_ERROR
