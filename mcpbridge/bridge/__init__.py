"""Stdio peer bridge: framing, call correlation, sessions and enrichment."""

from mcpbridge.bridge.endpoint import BridgeEndpoint, BridgeReply
from mcpbridge.bridge.enrichment import ToolListingEnricher, tools_by_name
from mcpbridge.bridge.framing import FrameDecoder, encode_frame
from mcpbridge.bridge.pending import PendingCallTable
from mcpbridge.bridge.registry import SessionRegistry
from mcpbridge.bridge.session import BridgeSession, PeerCommand, SessionState

__all__ = [
    "BridgeEndpoint",
    "BridgeReply",
    "BridgeSession",
    "FrameDecoder",
    "PeerCommand",
    "PendingCallTable",
    "SessionRegistry",
    "SessionState",
    "ToolListingEnricher",
    "encode_frame",
    "tools_by_name",
]
