"""Inject the peer's tool listing into capability-announcement replies.

Some HTTP clients read the tool catalogue from ``result.capabilities.tools`` of
the ``initialize`` reply instead of calling ``tools/list`` themselves. Before
such a reply is released, the bridge asks the same peer for ``tools/list`` and
merges the answer in as a ``{name: metadata}`` mapping.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from loguru import logger

from mcpbridge.bridge.protocol import TOOLS_LIST, make_request, safe_dict
from mcpbridge.utils.exceptions import BridgeError

if TYPE_CHECKING:
    from mcpbridge.bridge.session import BridgeSession

DEFAULT_ENRICHMENT_TIMEOUT = 2.0


def tools_by_name(listing: Any) -> dict[str, dict[str, Any]]:
    """Convert ``[{"name": ..., **meta}]`` into ``{name: meta}``."""
    tools: dict[str, dict[str, Any]] = {}
    if not isinstance(listing, list):
        return tools
    for item in listing:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        if not isinstance(name, str) or not name:
            continue
        tools[name] = {k: v for k, v in item.items() if k != "name"}
    return tools


def _is_tool_mapping(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and all(isinstance(v, dict) for v in value.values())


class ToolListingEnricher:
    """Secondary ``tools/list`` exchange run before a reply reaches its caller."""

    def __init__(self, timeout: float = DEFAULT_ENRICHMENT_TIMEOUT, method: str = TOOLS_LIST):
        self.timeout = timeout
        self.method = method

    def wants(self, reply: dict[str, Any]) -> bool:
        if "error" in reply:
            return False
        result = reply.get("result")
        if not isinstance(result, dict):
            return False
        capabilities = result.get("capabilities")
        if not isinstance(capabilities, dict):
            return False
        return not _is_tool_mapping(capabilities.get("tools"))

    async def enrich(self, session: "BridgeSession", reply: dict[str, Any]) -> dict[str, Any]:
        """Return ``reply`` with tools merged in, or unchanged if the listing is unavailable."""
        request_id = f"tools-{uuid.uuid4()}"
        try:
            listing_reply = await session.request(make_request(request_id, self.method), timeout=self.timeout)
        except BridgeError as exc:
            logger.warning("Session {}: tool enrichment skipped: {}", session.session_id, exc)
            return reply
        if "error" in listing_reply:
            logger.warning(
                "Session {}: peer rejected {}: {}",
                session.session_id,
                self.method,
                safe_dict(listing_reply.get("error")).get("message"),
            )
            return reply
        tools = tools_by_name(safe_dict(listing_reply.get("result")).get("tools"))
        if not tools:
            return reply
        result = dict(reply["result"])
        result["capabilities"] = {**result["capabilities"], "tools": tools}
        logger.info("Session {}: injected {} tools into capabilities", session.session_id, len(tools))
        return {**reply, "result": result}
