import asyncio

import pytest
from loguru import logger

from mcpbridge.bridge import endpoint as endpoint_module
from mcpbridge.bridge.endpoint import PRIME_TOOLS_ID, BridgeEndpoint
from mcpbridge.bridge.enrichment import ToolListingEnricher
from mcpbridge.bridge.registry import SessionRegistry
from mcpbridge.bridge.session import PeerCommand


def _endpoint(peer, *, fallback=True, call_timeout=5.0, **kwargs) -> BridgeEndpoint:
    registry = SessionRegistry(
        peer,
        call_timeout=call_timeout,
        enricher=ToolListingEnricher(timeout=2.0),
        allow_recent_fallback=fallback,
    )
    return BridgeEndpoint(registry, call_timeout=call_timeout, **kwargs)


class _RecordingSession:
    session_id = "s-rec"

    def __init__(self):
        self.sent = []

    async def notify(self, message):
        self.sent.append(message)


class _OneSessionRegistry:
    def __init__(self, session):
        self.session = session

    def __len__(self):
        return 1

    def lookup(self, session_id=None):
        return self.session


@pytest.mark.asyncio
async def test_invalid_bodies_are_rejected_without_a_session():
    endpoint = BridgeEndpoint(_OneSessionRegistry(_RecordingSession()))

    for body, request_id in (
        ([1, 2, 3], None),
        ({"jsonrpc": "2.0", "id": 4}, 4),
        ({"jsonrpc": "2.0", "id": 5, "method": 12}, 5),
        ({"jsonrpc": "2.0", "id": 6, "method": ""}, 6),
    ):
        reply = await endpoint.handle(body)
        assert reply.status_code == 400
        assert reply.body["error"]["code"] == -32600
        assert reply.body["id"] == request_id
        assert reply.session_id is None


@pytest.mark.asyncio
async def test_client_reply_is_forwarded_and_acknowledged():
    session = _RecordingSession()
    endpoint = BridgeEndpoint(_OneSessionRegistry(session))
    message = {"jsonrpc": "2.0", "id": "peer-1", "result": {"ok": True}}

    reply = await endpoint.handle(message, "s-rec")

    assert reply.status_code == 200
    assert reply.body == {"jsonrpc": "2.0"}
    assert session.sent == [message]


@pytest.mark.asyncio
async def test_initialized_notification_primes_tool_listing(monkeypatch):
    monkeypatch.setattr(endpoint_module, "PRIME_TOOLS_DELAY", 0)
    session = _RecordingSession()
    endpoint = BridgeEndpoint(_OneSessionRegistry(session), prime_tools_after_initialized=True)

    reply = await endpoint.handle({"jsonrpc": "2.0", "method": "notifications/initialized"}, "s-rec")
    await asyncio.sleep(0.05)

    assert reply.status_code == 200
    assert [m.get("method") for m in session.sent] == ["notifications/initialized", "tools/list"]
    assert session.sent[1]["id"] == PRIME_TOOLS_ID


@pytest.mark.asyncio
async def test_health_reports_active_sessions():
    health = BridgeEndpoint(_OneSessionRegistry(_RecordingSession())).health()
    assert health["status"] == "ok"
    assert health["activeSessions"] == 1
    assert health["timestamp"].endswith("Z")


@pytest.mark.subprocess
@pytest.mark.asyncio
async def test_initialize_then_calls_share_the_session(fake_peer):
    endpoint = _endpoint(fake_peer())
    try:
        init = await endpoint.handle({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}})
        assert init.status_code == 200
        assert init.session_id
        assert set(init.body["result"]["capabilities"]["tools"]) == {"read_file", "write_file"}

        ack = await endpoint.handle({"jsonrpc": "2.0", "method": "notifications/initialized"}, init.session_id)
        assert ack.status_code == 200
        assert ack.body == {"jsonrpc": "2.0"}
        session = endpoint.registry.get(init.session_id)
        assert session.pending_count == 0

        echo = await endpoint.handle({"jsonrpc": "2.0", "id": 2, "method": "echo", "params": {"a": 1}}, init.session_id)
        assert echo.body["result"] == {"echo": {"a": 1}}
        assert echo.session_id == init.session_id

        unknown = await endpoint.handle({"jsonrpc": "2.0", "id": 3, "method": "nope"}, init.session_id)
        assert unknown.status_code == 200
        assert unknown.body["error"]["code"] == -32601
    finally:
        await endpoint.registry.close_all()


@pytest.mark.subprocess
@pytest.mark.asyncio
async def test_each_initialize_spawns_a_new_session(fake_peer):
    endpoint = _endpoint(fake_peer())
    try:
        first = await endpoint.handle({"jsonrpc": "2.0", "id": 1, "method": "initialize"})
        second = await endpoint.handle({"jsonrpc": "2.0", "id": 1, "method": "initialize"})
        assert first.session_id != second.session_id
        assert len(endpoint.registry) == 2

        # unknown header falls back to the most recent session
        echo = await endpoint.handle({"jsonrpc": "2.0", "id": 2, "method": "echo"}, "stale-id")
        assert echo.session_id == second.session_id
    finally:
        await endpoint.registry.close_all()


@pytest.mark.subprocess
@pytest.mark.asyncio
async def test_missing_session_is_404(fake_peer):
    endpoint = _endpoint(fake_peer(), fallback=False)
    reply = await endpoint.handle({"jsonrpc": "2.0", "id": 7, "method": "tools/list"}, "missing")
    assert reply.status_code == 404
    assert reply.body == {"jsonrpc": "2.0", "error": {"code": -32004, "message": "Session not found"}, "id": 7}


@pytest.mark.subprocess
@pytest.mark.asyncio
async def test_unanswered_call_times_out_with_504(fake_peer):
    endpoint = _endpoint(fake_peer("--hold", "slow"), call_timeout=0.3)
    try:
        session = await endpoint.registry.create()
        reply = await endpoint.handle({"jsonrpc": "2.0", "id": 9, "method": "slow"}, session.session_id)
        assert reply.status_code == 504
        assert reply.body["error"]["code"] == -32001
        assert reply.body["id"] == 9
        assert reply.session_id == session.session_id
        assert session.pending_count == 0
    finally:
        await endpoint.registry.close_all()


@pytest.mark.subprocess
@pytest.mark.asyncio
async def test_lazy_policy_creates_session_on_first_call(fake_peer):
    endpoint = _endpoint(fake_peer(), session_policy="lazy")
    try:
        reply = await endpoint.handle({"jsonrpc": "2.0", "id": 1, "method": "echo"})
        assert reply.status_code == 200
        assert reply.session_id in endpoint.registry.ids()

        again = await endpoint.handle({"jsonrpc": "2.0", "id": 2, "method": "echo"}, reply.session_id)
        assert again.session_id == reply.session_id
        assert len(endpoint.registry) == 1
    finally:
        await endpoint.registry.close_all()


@pytest.mark.asyncio
async def test_bridge_failures_are_logged_with_their_details():
    records = []
    sink_id = logger.add(lambda message: records.append(message.record["message"]), level="WARNING")
    try:
        registry = SessionRegistry(PeerCommand(argv=["peer"]), allow_recent_fallback=False)
        reply = await BridgeEndpoint(registry).handle({"jsonrpc": "2.0", "id": 8, "method": "ping"}, "gone")
    finally:
        logger.remove(sink_id)

    assert reply.status_code == 404
    assert any("SESSION_NOT_FOUND" in text and "'session_id': 'gone'" in text for text in records)
