"""BroadcastHub fan-out against fake WebSocket objects."""

import pytest
from starlette.websockets import WebSocketState

from models.hq import ChatMessage
from services.broadcast_hub import BroadcastHub

pytestmark = pytest.mark.asyncio


class FakeWebSocket:
    def __init__(self, fail: bool = False):
        self.client_state = WebSocketState.CONNECTING
        self.application_state = WebSocketState.CONNECTING
        self.sent = []
        self.closed_with = None
        self.fail = fail

    async def accept(self):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(data)

    async def close(self, code=1000, reason=None):
        self.closed_with = code
        self.application_state = WebSocketState.DISCONNECTED


async def test_broadcast_reaches_every_open_socket(hub: BroadcastHub):
    a, b = FakeWebSocket(), FakeWebSocket()
    await hub.connect(a)
    await hub.connect(b)
    message = ChatMessage(user_id="u1", text="hello")

    sent = await hub.broadcast("chat", message)

    assert sent == 2
    for ws in (a, b):
        assert ws.sent[0]["type"] == "chat"
        assert ws.sent[0]["data"]["text"] == "hello"
        assert ws.sent[0]["data"]["userId"] == "u1"


async def test_broadcast_with_no_sockets_is_a_noop(hub: BroadcastHub):
    assert await hub.broadcast("evidence_cleared", {}) == 0


async def test_closed_socket_is_skipped_and_dropped(hub: BroadcastHub):
    open_ws, closed_ws = FakeWebSocket(), FakeWebSocket()
    await hub.connect(open_ws)
    await hub.connect(closed_ws)
    closed_ws.client_state = WebSocketState.DISCONNECTED

    sent = await hub.broadcast("evidence_cleared", {})

    assert sent == 1
    assert closed_ws.sent == []
    assert hub.count == 1


async def test_failing_socket_does_not_block_the_others(hub: BroadcastHub):
    bad, good = FakeWebSocket(fail=True), FakeWebSocket()
    await hub.connect(bad)
    await hub.connect(good)

    sent = await hub.broadcast("evidence_cleared", {})

    assert sent == 1
    assert good.sent == [{"type": "evidence_cleared", "data": {}}]
    assert hub.count == 1


async def test_messages_arrive_in_broadcast_order(hub: BroadcastHub):
    ws = FakeWebSocket()
    await hub.connect(ws)

    for i in range(3):
        await hub.broadcast("chat", ChatMessage(user_id="u1", text=str(i)))

    assert [m["data"]["text"] for m in ws.sent] == ["0", "1", "2"]


async def test_disconnect_and_close_all(hub: BroadcastHub):
    a, b = FakeWebSocket(), FakeWebSocket()
    await hub.connect(a)
    await hub.connect(b)

    hub.disconnect(a)
    hub.disconnect(a)
    assert hub.count == 1

    await hub.close_all()
    assert hub.count == 0
    assert b.closed_with == 1001
