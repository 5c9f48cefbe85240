"""JSON-RPC message helpers shared by the session, enricher and endpoint."""

from __future__ import annotations

from typing import Any

JSONRPC_VERSION = "2.0"
NOTIFICATION_PREFIX = "notifications/"
INITIALIZE = "initialize"
INITIALIZED = "notifications/initialized"
TOOLS_LIST = "tools/list"


def safe_dict(value: Any) -> dict[str, Any]:
    """Return the value when dict-like, otherwise an empty dict."""
    return value if isinstance(value, dict) else {}


def has_id(message: dict[str, Any]) -> bool:
    return message.get("id") is not None


def is_notification(message: dict[str, Any]) -> bool:
    """Fire-and-forget messages: notifications/* methods or requests without an id."""
    method = message.get("method")
    if isinstance(method, str) and method.startswith(NOTIFICATION_PREFIX):
        return True
    return isinstance(method, str) and not has_id(message)


def is_reply(message: dict[str, Any]) -> bool:
    """A reply carries an id and a result or error, and no method."""
    return has_id(message) and "method" not in message and ("result" in message or "error" in message)


def make_request(request_id: Any, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method, "params": params or {}}


def make_error(request_id: Any, code: int, message: str, data: Any = None) -> dict[str, Any]:
    """Build a JSON-RPC error response echoing the request id (null when unknown)."""
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "error": error, "id": request_id}


def acknowledgement() -> dict[str, Any]:
    """Body returned for messages that expect no reply from the peer."""
    return {"jsonrpc": JSONRPC_VERSION}
