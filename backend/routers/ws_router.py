"""
WebSocket push channel.

URL: /ws

Server → client only. Every HTTP write in hq_router is followed by a
``{type, data}`` envelope sent to all open sockets via the BroadcastHub.
Inbound frames, text or binary, are read (so close frames are noticed) and
discarded.
"""
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from services.broadcast_hub import BroadcastHub

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    hub: BroadcastHub = ws.app.state.hub
    await hub.connect(ws)
    try:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                break
            logger.debug("Ignoring inbound frame")
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.warning("WebSocket error", exc_info=True)
    finally:
        hub.disconnect(ws)
