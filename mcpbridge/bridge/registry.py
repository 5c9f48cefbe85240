"""Process-wide map of session id to live bridge session."""

from __future__ import annotations

import asyncio
import uuid
from typing import Any

from loguru import logger

from mcpbridge.bridge.enrichment import ToolListingEnricher
from mcpbridge.bridge.pending import DEFAULT_CALL_TIMEOUT
from mcpbridge.bridge.session import DEFAULT_SHUTDOWN_GRACE, BridgeSession, PeerCommand
from mcpbridge.utils.exceptions import SessionUnavailableError


class SessionRegistry:
    """Creates, finds and evicts sessions.

    Creation happens under one lock so that concurrent callers resolving the
    same missing session end up sharing a single peer process. Sessions are
    kept in creation order; the last entry is the "most recent" fallback.
    """

    def __init__(
        self,
        peer: PeerCommand,
        *,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
        enricher: ToolListingEnricher | None = None,
        allow_recent_fallback: bool = True,
        shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE,
    ):
        self.peer = peer
        self.call_timeout = call_timeout
        self.enricher = enricher
        self.allow_recent_fallback = allow_recent_fallback
        self.shutdown_grace = shutdown_grace
        self._sessions: dict[str, BridgeSession] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def ids(self) -> list[str]:
        return list(self._sessions)

    def get(self, session_id: str) -> BridgeSession | None:
        return self._sessions.get(session_id)

    def most_recent(self) -> BridgeSession | None:
        if not self._sessions:
            return None
        return next(reversed(self._sessions.values()))

    def snapshot(self) -> list[dict[str, Any]]:
        return [session.snapshot() for session in self._sessions.values()]

    def lookup(self, session_id: str | None = None) -> BridgeSession:
        """Find a session by id, falling back to the most recent one when allowed."""
        if session_id:
            session = self._sessions.get(session_id)
            if session is not None:
                return session
        if self.allow_recent_fallback:
            session = self.most_recent()
            if session is not None:
                if session_id != session.session_id:
                    logger.info(
                        "Using most recent session {} (requested: {})",
                        session.session_id,
                        session_id or "none",
                    )
                return session
        raise SessionUnavailableError(session_id)

    async def create(self) -> BridgeSession:
        async with self._lock:
            return await self._spawn()

    async def get_or_create(self, session_id: str | None = None, *, create: bool = False) -> BridgeSession:
        try:
            return self.lookup(session_id)
        except SessionUnavailableError:
            if not create:
                raise
        async with self._lock:
            # Another caller may have created it while we waited for the lock.
            try:
                return self.lookup(session_id)
            except SessionUnavailableError:
                return await self._spawn()

    async def _spawn(self) -> BridgeSession:
        session_id = uuid.uuid4().hex
        session = await BridgeSession.spawn(
            session_id,
            self.peer,
            call_timeout=self.call_timeout,
            enricher=self.enricher,
            on_closed=self._on_session_closed,
        )
        self._sessions[session_id] = session
        return session

    def _on_session_closed(self, session: BridgeSession) -> None:
        self.remove(session.session_id)

    def remove(self, session_id: str) -> BridgeSession | None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.debug("Session {} removed from registry", session_id)
        return session

    async def close_all(self) -> None:
        sessions = list(self._sessions.values())
        if sessions:
            logger.info("Shutting down {} sessions", len(sessions))
        await asyncio.gather(
            *(session.close(grace=self.shutdown_grace) for session in sessions),
            return_exceptions=True,
        )
        self._sessions.clear()
