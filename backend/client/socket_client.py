"""
Reconnecting client socket for the HQ push channel (/ws).

One SocketClient is built at client start-up and handed to whatever needs
it. The first subscribe() starts the connection loop; after that the socket
lives on its own:

    DISCONNECTED → CONNECTING → OPEN → (closed | errored) → DISCONNECTED
                      ↑                                        │
                      └──────── wait reconnect_delay ──────────┘

Retries forever with a fixed delay. Handlers are never touched by the
reconnect path, so subscribers keep receiving envelopes across drops
without re-subscribing. Frames that fail to decode are logged and dropped.

Open hooks (on_open) are awaited every time the socket reaches OPEN, before
any frame of that connection is dispatched. Envelopes sent while the socket
was down are never replayed, so this is where listeners re-read state.
"""
import asyncio
import json
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from pydantic import ValidationError
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import WebSocketException

from models.hq import HQModel, parse_envelope

logger = logging.getLogger(__name__)

EnvelopeHandler = Callable[[HQModel], None]
OpenHook = Callable[[], Awaitable[None]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"


def ws_url_for(server_url: str) -> str:
    """http://host:port → ws://host:port/ws (https → wss)."""
    base = server_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return base + "/ws"


class SocketClient:
    def __init__(
        self,
        url: str,
        reconnect_delay: float = 3.0,
        connect: Callable = ws_connect,
    ):
        self.url = url
        self.reconnect_delay = reconnect_delay
        self._connect = connect
        self._handlers: List[EnvelopeHandler] = []
        self._open_hooks: List[OpenHook] = []
        self._ws = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self.state = ConnectionState.DISCONNECTED
        self.connect_count = 0

    # ── Handlers ──────────────────────────────────────────────────────────────

    def subscribe(self, handler: EnvelopeHandler) -> Callable[[], None]:
        """Register ``handler`` for every envelope. Returns an unsubscribe callable."""
        self._handlers.append(handler)
        self.ensure_started()

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def on_open(self, hook: OpenHook) -> Callable[[], None]:
        """Await ``hook()`` on every transition to OPEN. Returns a removal callable."""
        self._open_hooks.append(hook)

        def remove() -> None:
            if hook in self._open_hooks:
                self._open_hooks.remove(hook)

        return remove

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def ensure_started(self) -> None:
        """Start the connection loop if it is not already running. Idempotent."""
        if self._closed:
            return
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def close(self) -> None:
        self._closed = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._ws = None
        self.state = ConnectionState.DISCONNECTED

    async def _run(self) -> None:
        while not self._closed:
            self.state = ConnectionState.CONNECTING
            try:
                async with self._connect(self.url) as ws:
                    self._ws = ws
                    self.state = ConnectionState.OPEN
                    self.connect_count += 1
                    logger.info(f"[WebSocket] Connected to {self.url}")
                    await self._run_open_hooks()
                    async for raw in ws:
                        self._dispatch(raw)
                logger.info(
                    f"[WebSocket] Disconnected, reconnecting in {self.reconnect_delay:g}s..."
                )
            except (OSError, WebSocketException) as exc:
                logger.warning(
                    f"[WebSocket] Error: {exc!r}, reconnecting in {self.reconnect_delay:g}s..."
                )
            finally:
                self._ws = None
                self.state = ConnectionState.DISCONNECTED
            if self._closed:
                break
            await asyncio.sleep(self.reconnect_delay)

    async def _run_open_hooks(self) -> None:
        for hook in list(self._open_hooks):
            try:
                await hook()
            except Exception:
                logger.exception("[WebSocket] Open hook failed")

    # ── Messages ──────────────────────────────────────────────────────────────

    def _dispatch(self, raw) -> None:
        try:
            envelope = parse_envelope(raw)
        except ValidationError as exc:
            logger.error(f"[WebSocket] Failed to parse message: {exc.error_count()} error(s)")
            return
        for handler in list(self._handlers):
            try:
                handler(envelope)
            except Exception:
                logger.exception(f"[WebSocket] Handler failed for '{envelope.type}' envelope")

    async def send(self, envelope: HQModel) -> bool:
        """Send if open; otherwise drop silently. Returns whether it was sent."""
        if self.state != ConnectionState.OPEN or self._ws is None:
            return False
        try:
            await self._ws.send(json.dumps(envelope.to_wire()))
        except WebSocketException as exc:
            logger.debug(f"[WebSocket] Send dropped: {exc!r}")
            return False
        return True
