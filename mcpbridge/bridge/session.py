"""One peer subprocess and the call-correlation state around it."""

from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Coroutine

from loguru import logger

from mcpbridge.bridge.enrichment import ToolListingEnricher
from mcpbridge.bridge.framing import FrameDecoder, encode_frame
from mcpbridge.bridge.pending import DEFAULT_CALL_TIMEOUT, PendingCall, PendingCallTable
from mcpbridge.bridge.protocol import has_id
from mcpbridge.utils.exceptions import BridgeError, MalformedFrameError, PeerExitError, PeerSpawnError

READ_CHUNK_SIZE = 64 * 1024
DEFAULT_SHUTDOWN_GRACE = 2.0


class SessionState(str, Enum):
    RUNNING = "running"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(slots=True)
class PeerCommand:
    """What to spawn for each session."""

    argv: list[str]
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, peer: Any) -> "PeerCommand":
        return cls(argv=list(peer.argv), cwd=(peer.cwd or None), env=dict(peer.env or {}))


class BridgeSession:
    """Owns one peer process, its frame decoder and its pending-call table.

    Writes to the peer are serialized per session; replies are matched to
    waiters by id, in whatever order the peer emits them.
    """

    def __init__(
        self,
        session_id: str,
        process: asyncio.subprocess.Process,
        *,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
        enricher: ToolListingEnricher | None = None,
        on_closed: Callable[["BridgeSession"], None] | None = None,
    ):
        self.session_id = session_id
        self.created_at = time.time()
        self.state = SessionState.RUNNING
        self._process = process
        self._enricher = enricher
        self._on_closed = on_closed
        self._pending = PendingCallTable(default_timeout=call_timeout)
        self._decoder = FrameDecoder(on_malformed=self._log_malformed)
        self._write_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._reader: asyncio.Task[None] | None = None
        self._stderr_reader: asyncio.Task[None] | None = None
        self.closed = asyncio.Event()

    @classmethod
    async def spawn(
        cls,
        session_id: str,
        peer: PeerCommand,
        *,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
        enricher: ToolListingEnricher | None = None,
        on_closed: Callable[["BridgeSession"], None] | None = None,
    ) -> "BridgeSession":
        if not peer.argv or not peer.argv[0]:
            raise PeerSpawnError(peer.argv, "empty command")
        env = {**os.environ, **peer.env} if peer.env else None
        try:
            process = await asyncio.create_subprocess_exec(
                *peer.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=peer.cwd,
                env=env,
            )
        except (OSError, ValueError) as exc:
            logger.error("Failed to start peer {}: {}", peer.argv, exc)
            raise PeerSpawnError(peer.argv, str(exc)) from exc
        session = cls(session_id, process, call_timeout=call_timeout, enricher=enricher, on_closed=on_closed)
        session._start()
        logger.info("Created session {} (pid {})", session_id, process.pid)
        return session

    @property
    def pid(self) -> int | None:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def snapshot(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "pid": self.pid,
            "state": self.state.value,
            "createdAt": datetime.fromtimestamp(self.created_at, timezone.utc).isoformat(),
            "pendingCalls": self.pending_count,
            "returncode": self.returncode,
        }

    # ---------- outbound ----------

    async def send(self, message: dict[str, Any]) -> None:
        """Write one framed message to the peer's stdin."""
        if self.state is not SessionState.RUNNING:
            raise PeerExitError(self.session_id, self.returncode, "session closed")
        frame = encode_frame(message)
        async with self._write_lock:
            stdin = self._process.stdin
            if stdin is None or stdin.is_closing():
                raise PeerExitError(self.session_id, self.returncode, "peer stdin closed")
            try:
                stdin.write(frame)
                await stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as exc:
                raise PeerExitError(self.session_id, self.returncode, f"peer stdin closed: {exc}") from exc

    async def notify(self, message: dict[str, Any]) -> None:
        await self.send(message)

    def expect_reply(self, call_id: Any, timeout: float | None = None) -> asyncio.Future[dict[str, Any]]:
        if self.state is not SessionState.RUNNING:
            raise PeerExitError(self.session_id, self.returncode, "session closed")
        return self._pending.register(call_id, timeout)

    async def request(self, message: dict[str, Any], timeout: float | None = None) -> dict[str, Any]:
        """Send a request and wait for the reply carrying the same id."""
        call_id = message.get("id")
        future = self.expect_reply(call_id, timeout)
        try:
            await self.send(message)
        except BridgeError:
            future.cancel()
            raise
        return await future

    # ---------- inbound ----------

    def _start(self) -> None:
        self._reader = asyncio.create_task(self._read_stdout(), name=f"session-{self.session_id}-stdout")
        self._stderr_reader = asyncio.create_task(self._read_stderr(), name=f"session-{self.session_id}-stderr")

    async def _read_stdout(self) -> None:
        stdout = self._process.stdout
        assert stdout is not None
        crashed = False
        try:
            while True:
                chunk = await stdout.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                for message in self._decoder.feed(chunk):
                    self._dispatch(message)
        except (ConnectionError, OSError) as exc:
            logger.warning("Session {}: stdout read failed: {}", self.session_id, exc)
        except Exception:
            logger.exception("Session {}: stdout reader crashed", self.session_id)
            crashed = True
        if self.state is SessionState.RUNNING:
            await self._peer_exited(terminate=crashed)

    async def _read_stderr(self) -> None:
        stderr = self._process.stderr
        assert stderr is not None
        while True:
            try:
                line = await stderr.readline()
            except ValueError:
                # Line longer than the stream limit; the oversized chunk is discarded.
                continue
            if not line:
                return
            text = line.decode("utf-8", errors="replace").strip()
            if text:
                logger.debug("[peer {}] {}", self.session_id, text)

    def _dispatch(self, message: Any) -> None:
        if not isinstance(message, dict):
            logger.debug("Session {}: ignoring non-object frame", self.session_id)
            return
        if "method" in message:
            kind = "request" if has_id(message) else "notification"
            logger.debug("Session {}: peer {} {}", self.session_id, kind, message.get("method"))
            return
        if not has_id(message):
            logger.debug("Session {}: dropping reply without id", self.session_id)
            return
        call_id = message["id"]
        if call_id not in self._pending:
            logger.debug("Session {}: no pending call for reply id {!r}", self.session_id, call_id)
            return
        if self._enricher is not None and self._enricher.wants(message):
            # The reply is in hand: the call leaves the table so that neither
            # its timeout nor a peer exit can fail it while enrichment runs.
            call = self._pending.claim(call_id)
            if call is not None:
                self._track(self._enrich_and_resolve(call, message))
            return
        self._pending.resolve(call_id, message)

    async def _enrich_and_resolve(self, call: PendingCall, reply: dict[str, Any]) -> None:
        assert self._enricher is not None
        enriched = reply
        try:
            enriched = await self._enricher.enrich(self, reply)
        finally:
            if not call.future.done():
                call.future.set_result(enriched)

    def _track(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _log_malformed(self, exc: MalformedFrameError) -> None:
        logger.warning("Session {}: {} ({})", self.session_id, exc.message, exc.details.get("line"))

    # ---------- lifecycle ----------

    async def _peer_exited(self, terminate: bool = False) -> None:
        if terminate and self._process.returncode is None:
            # nobody reads the peer's stdout any more
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass
        try:
            returncode = await asyncio.wait_for(self._process.wait(), timeout=DEFAULT_SHUTDOWN_GRACE)
        except asyncio.TimeoutError:
            # stdout closed but the process lingers
            self._process.kill()
            returncode = await self._process.wait()
        logger.info("Session {} closed: peer exited with {}", self.session_id, returncode)
        self._finish(PeerExitError(self.session_id, returncode))

    async def close(self, grace: float = DEFAULT_SHUTDOWN_GRACE) -> None:
        """Terminate the peer and fail whatever is still pending."""
        if self.state is not SessionState.RUNNING:
            await self.closed.wait()
            return
        self.state = SessionState.CLOSING
        for task in (self._reader, self._stderr_reader):
            if task is not None:
                task.cancel()
        if self._process.returncode is None:
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(self._process.wait(), timeout=grace)
            except asyncio.TimeoutError:
                logger.warning("Session {}: peer ignored SIGTERM, killing", self.session_id)
                self._process.kill()
                await self._process.wait()
        logger.info("Session {} shut down", self.session_id)
        self._finish(PeerExitError(self.session_id, self.returncode, "session closed"))

    def _finish(self, exc: PeerExitError) -> None:
        self.state = SessionState.CLOSED
        dropped = self._pending.expire_all(exc)
        if dropped:
            logger.warning("Session {}: failed {} pending calls", self.session_id, dropped)
        for task in list(self._tasks):
            task.cancel()
        self._decoder.reset()
        self.closed.set()
        if self._on_closed is not None:
            self._on_closed(self)
