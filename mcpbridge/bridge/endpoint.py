"""The single request/response operation behind ``POST /mcp``."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Literal

from loguru import logger

from mcpbridge.api.error_boundary import classify_http_status, describe_exception, error_body
from mcpbridge.bridge.pending import DEFAULT_CALL_TIMEOUT
from mcpbridge.bridge.protocol import (
    INITIALIZE,
    INITIALIZED,
    TOOLS_LIST,
    acknowledgement,
    is_notification,
    is_reply,
    make_request,
)
from mcpbridge.bridge.registry import SessionRegistry
from mcpbridge.bridge.session import BridgeSession
from mcpbridge.utils.exceptions import BridgeError, InvalidRequestError
from mcpbridge.utils.helpers import utc_now_iso

PRIME_TOOLS_ID = "auto-tools-list"
PRIME_TOOLS_DELAY = 0.1

SessionPolicy = Literal["initialize", "lazy"]


@dataclass(slots=True)
class BridgeReply:
    """What the HTTP layer sends back: status, JSON body and the session used."""

    status_code: int
    body: dict[str, Any]
    session_id: str | None = None


class BridgeEndpoint:
    """Routes one JSON-RPC message to a session and waits for its reply."""

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        session_policy: SessionPolicy = "initialize",
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
        prime_tools_after_initialized: bool = False,
    ):
        self.registry = registry
        self.session_policy = session_policy
        self.call_timeout = call_timeout
        self.prime_tools_after_initialized = prime_tools_after_initialized
        self._background: set[asyncio.Task[None]] = set()

    def health(self) -> dict[str, Any]:
        return {"status": "ok", "activeSessions": len(self.registry), "timestamp": utc_now_iso()}

    async def handle(self, body: Any, session_header: str | None = None) -> BridgeReply:
        request_id = body.get("id") if isinstance(body, dict) else None
        session: BridgeSession | None = None
        try:
            message = self._validate(body)
            session = await self._resolve_session(message, session_header)
            if is_notification(message) or "method" not in message:
                await self._forward(session, message)
                return BridgeReply(200, acknowledgement(), session.session_id)
            logger.debug("Session {}: -> {} id={!r}", session.session_id, message["method"], request_id)
            reply = await session.request(message, timeout=self.call_timeout)
            return BridgeReply(200, reply, session.session_id)
        except BridgeError as exc:
            logger.warning("MCP call {!r} failed: {}", request_id, exc.to_dict())
            return self._error_reply(exc, request_id, session)
        except Exception as exc:
            code, sanitized = describe_exception(exc)
            logger.exception("Unhandled error for MCP call {!r} [{}]: {}", request_id, code, sanitized)
            return self._error_reply(exc, request_id, session)

    @staticmethod
    def _error_reply(exc: Exception, request_id: Any, session: BridgeSession | None) -> BridgeReply:
        return BridgeReply(
            classify_http_status(exc),
            error_body(exc, request_id),
            session.session_id if session else None,
        )

    def _validate(self, body: Any) -> dict[str, Any]:
        if not isinstance(body, dict):
            raise InvalidRequestError("Request body must be a JSON object")
        method = body.get("method")
        if method is None:
            # A client answering a peer-initiated request.
            if is_reply(body):
                return body
            raise InvalidRequestError("Missing method", field="method")
        if not isinstance(method, str) or not method:
            raise InvalidRequestError("Method must be a non-empty string", field="method")
        return body

    async def _resolve_session(self, message: dict[str, Any], session_header: str | None) -> BridgeSession:
        if self.session_policy == "initialize":
            if message.get("method") == INITIALIZE:
                return await self.registry.create()
            return self.registry.lookup(session_header)
        return await self.registry.get_or_create(session_header, create=True)

    async def _forward(self, session: BridgeSession, message: dict[str, Any]) -> None:
        logger.debug("Session {}: -> notification {}", session.session_id, message.get("method"))
        await session.notify(message)
        if self.prime_tools_after_initialized and message.get("method") == INITIALIZED:
            task = asyncio.create_task(self._prime_tools(session))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    async def _prime_tools(self, session: BridgeSession) -> None:
        await asyncio.sleep(PRIME_TOOLS_DELAY)
        try:
            await session.notify(make_request(PRIME_TOOLS_ID, TOOLS_LIST))
        except BridgeError as exc:
            logger.debug("Session {}: tools/list priming skipped: {}", session.session_id, exc)
