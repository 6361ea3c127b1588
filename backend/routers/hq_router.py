"""
Command-center HTTP endpoints (mounted under /api).

Routes:
  GET    /api/chat           — Last 100 chat messages, oldest first
  POST   /api/chat           — Post a chat line            → broadcast "chat"
  GET    /api/events         — Last 50 ghost events
  POST   /api/events         — Trigger a ghost event       → broadcast "event"
  GET    /api/evidence       — Evidence board
  POST   /api/evidence       — Log evidence                → broadcast "evidence"
  DELETE /api/evidence       — Wipe the board for everyone → broadcast "evidence_cleared"
  GET    /api/squad          — One status row per player
  POST   /api/squad/status   — Merge into a player's row   → broadcast "squad"
  GET    /api/users/{id}     — Profile lookup (404 if unknown)
  POST   /api/users          — Create (201) or update (200) a profile

Every write hits the store first, then the hub. Store failures surface
as a 500 with a fixed message; the traceback goes to the log.
"""
import logging
import random
from contextlib import contextmanager
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from config import settings
from models.hq import (
    ChatMessage, ChatMessageCreate,
    GhostEvent, GhostEventCreate, event_message,
    Evidence, EvidenceCreate,
    SquadStatus, SquadStatusUpdate,
    User, UserUpsert,
)
from services.broadcast_hub import BroadcastHub
from services.event_store import EventStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["hq"])


def get_store(request: Request) -> EventStore:
    return request.app.state.store


def get_hub(request: Request) -> BroadcastHub:
    return request.app.state.hub


@contextmanager
def _store_errors(message: str):
    """Turn unexpected store failures into a 500 carrying ``message``."""
    try:
        yield
    except HTTPException:
        raise
    except Exception:
        logger.exception(message)
        raise HTTPException(status_code=500, detail=message)


# ── Chat ──────────────────────────────────────────────────────────────────────

@router.get("/chat", response_model=List[ChatMessage])
async def list_chat(store: EventStore = Depends(get_store)):
    with _store_errors("Failed to fetch chat messages"):
        return await store.get_chat_messages(settings.chat_history_limit)


@router.post("/chat", response_model=ChatMessage, status_code=201)
async def post_chat(
    body: ChatMessageCreate,
    store: EventStore = Depends(get_store),
    hub: BroadcastHub = Depends(get_hub),
):
    with _store_errors("Failed to create chat message"):
        message = await store.create_chat_message(ChatMessage(**body.model_dump()))
        await hub.broadcast("chat", message)
    return message


# ── Ghost events ──────────────────────────────────────────────────────────────

@router.get("/events", response_model=List[GhostEvent])
async def list_events(store: EventStore = Depends(get_store)):
    with _store_errors("Failed to fetch ghost events"):
        return await store.get_ghost_events(settings.event_history_limit)


@router.post("/events", response_model=GhostEvent, status_code=201)
async def post_event(
    body: GhostEventCreate,
    store: EventStore = Depends(get_store),
    hub: BroadcastHub = Depends(get_hub),
):
    with _store_errors("Failed to create ghost event"):
        event = await store.create_ghost_event(GhostEvent(
            type=body.type,
            intensity=body.intensity or random.randint(1, 5),
            message=event_message(body.type.value),
            triggered_by=body.triggered_by,
        ))
        await hub.broadcast("event", event)
    logger.info(f"Ghost event '{event.type.value}' (intensity {event.intensity}) by {event.triggered_by}")
    return event


# ── Evidence ──────────────────────────────────────────────────────────────────

@router.get("/evidence", response_model=List[Evidence])
async def list_evidence(store: EventStore = Depends(get_store)):
    with _store_errors("Failed to fetch evidence"):
        return await store.get_evidence()


@router.post("/evidence", response_model=Evidence, status_code=201)
async def post_evidence(
    body: EvidenceCreate,
    store: EventStore = Depends(get_store),
    hub: BroadcastHub = Depends(get_hub),
):
    with _store_errors("Failed to create evidence"):
        item = await store.create_evidence(Evidence(**body.model_dump()))
        await hub.broadcast("evidence", item)
    return item


@router.delete("/evidence", status_code=204)
async def clear_evidence(
    store: EventStore = Depends(get_store),
    hub: BroadcastHub = Depends(get_hub),
):
    with _store_errors("Failed to clear evidence"):
        await store.clear_evidence()
        await hub.broadcast("evidence_cleared", {})
    return Response(status_code=204)


# ── Squad ─────────────────────────────────────────────────────────────────────

@router.get("/squad", response_model=List[SquadStatus])
async def list_squad(store: EventStore = Depends(get_store)):
    with _store_errors("Failed to fetch squad status"):
        return await store.get_squad_status()


@router.post("/squad/status", response_model=SquadStatus, status_code=200)
async def post_squad_status(
    body: SquadStatusUpdate,
    store: EventStore = Depends(get_store),
    hub: BroadcastHub = Depends(get_hub),
):
    with _store_errors("Failed to update squad status"):
        status = await store.update_squad_status(body)
        await hub.broadcast("squad", status)
    return status


# ── Users ─────────────────────────────────────────────────────────────────────

@router.get("/users/{user_id}", response_model=User)
async def get_user(user_id: str, store: EventStore = Depends(get_store)):
    with _store_errors("Failed to fetch user"):
        user = await store.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.post("/users", response_model=User, status_code=201)
async def upsert_user(body: UserUpsert, store: EventStore = Depends(get_store)):
    """Create the profile, or update it in place (200) if the id is already known."""
    with _store_errors("Failed to create user"):
        existing = await store.get_user(body.id)
        if existing is not None:
            updated = await store.update_user(
                body.id, display_name=body.display_name, photo_url=body.photo_url
            )
            return JSONResponse(status_code=200, content=updated.to_wire())
        user = await store.create_user(User(
            id=body.id,
            display_name=body.display_name,
            photo_url=body.photo_url or settings.default_photo_url,
        ))
    return user
