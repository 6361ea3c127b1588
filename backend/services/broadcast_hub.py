"""
Broadcast Hub: fans every authoritative write out to all open WebSockets.

Constructed once per app (see main.create_app) and reached through
``app.state.hub``; tests build their own instances.

Delivery is fire-and-forget: one send per open socket, no acknowledgement,
no retry. A socket that is no longer open, or whose send raises, is dropped
from the set. Order per socket follows the order broadcast() was called.
"""
import logging
from typing import Any, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from models.hq import EnvelopeType, make_envelope

logger = logging.getLogger(__name__)


def _is_open(ws: WebSocket) -> bool:
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


class BroadcastHub:
    """
    Tracks the open WebSocket connections.
    Safe for asyncio single-threaded event loop (no extra locking needed).
    """

    def __init__(self):
        self._connections: Set[WebSocket] = set()

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        self._connections.add(ws)
        logger.info(f"WebSocket client connected. Total: {self.count}")

    def disconnect(self, ws: WebSocket) -> None:
        if ws in self._connections:
            self._connections.discard(ws)
            logger.info(f"WebSocket client disconnected. Total: {self.count}")

    @property
    def count(self) -> int:
        return len(self._connections)

    async def close_all(self) -> None:
        for ws in list(self._connections):
            self._connections.discard(ws)
            if _is_open(ws):
                try:
                    await ws.close(code=1001, reason="Server shutting down")
                except Exception as exc:
                    logger.debug(f"close during shutdown failed: {exc}")

    # ── Sending ────────────────────────────────────────────────────────────────

    async def broadcast(self, kind: EnvelopeType, data: Any) -> int:
        """Send ``{type: kind, data}`` to every open socket. Returns the number of sends."""
        message = make_envelope(kind, data).to_wire()
        sent = 0
        for ws in list(self._connections):
            if not _is_open(ws):
                self.disconnect(ws)
                continue
            try:
                await ws.send_json(message)
                sent += 1
            except Exception as exc:
                logger.warning(f"broadcast of '{kind}' failed: {exc}")
                self.disconnect(ws)
        return sent
