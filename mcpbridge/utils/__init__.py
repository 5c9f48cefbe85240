"""Utility functions for mcpbridge."""

from mcpbridge.utils.helpers import ensure_dir, get_data_path, utc_now_iso
from mcpbridge.utils.exceptions import (
    BridgeError,
    CallTimeoutError,
    DuplicateCallError,
    ErrorCategory,
    InvalidRequestError,
    MalformedFrameError,
    PeerExitError,
    PeerSpawnError,
    SessionUnavailableError,
    classify_exception,
    rpc_code_for,
    sanitize_error_message,
)

__all__ = [
    "ensure_dir",
    "get_data_path",
    "utc_now_iso",
    "BridgeError",
    "CallTimeoutError",
    "DuplicateCallError",
    "ErrorCategory",
    "InvalidRequestError",
    "MalformedFrameError",
    "PeerExitError",
    "PeerSpawnError",
    "SessionUnavailableError",
    "classify_exception",
    "rpc_code_for",
    "sanitize_error_message",
]
