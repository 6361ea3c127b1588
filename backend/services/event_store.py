"""
In-memory Event Store, the authoritative state for the local HTTP + WebSocket mode.

One dict per entity kind, keyed by entity id (squad rows by user id).
Everything runs on the single asyncio loop, so no locking is needed: each
coroutine completes its read-modify-write before yielding.

Reads never raise for "nothing there": collections come back empty.
Single-user lookups return None so the router can tell "missing" apart
from "empty".
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from models.hq import (
    ChatMessage, GhostEvent, Evidence, SquadStatus, SquadStatusUpdate, User, new_id,
)

logger = logging.getLogger(__name__)


class EventStore:
    def __init__(self):
        self._users: Dict[str, User] = {}
        self._chat: Dict[str, ChatMessage] = {}
        self._events: Dict[str, GhostEvent] = {}
        self._evidence: Dict[str, Evidence] = {}
        # {user_id: SquadStatus}
        self._squad: Dict[str, SquadStatus] = {}
        self._last_stamp: Dict[str, datetime] = {}

    def _stamp(self, kind: str) -> datetime:
        """Current UTC time, never earlier than the previous stamp for this kind."""
        now = datetime.now(timezone.utc)
        last = self._last_stamp.get(kind)
        if last is not None and now < last:
            now = last
        self._last_stamp[kind] = now
        return now

    @staticmethod
    def _latest(items, limit: Optional[int]) -> list:
        # sorted() is stable: equal timestamps keep insertion order
        ordered = sorted(items, key=lambda item: item.timestamp)
        if limit is None:
            return ordered
        if limit <= 0:
            return []
        return ordered[-limit:]

    # ── Users ─────────────────────────────────────────────────────────────────

    async def get_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    async def get_user_by_display_name(self, display_name: str) -> Optional[User]:
        for user in self._users.values():
            if user.display_name == display_name:
                return user
        return None

    async def create_user(self, user: User) -> User:
        stored = user.model_copy(update={"last_seen": self._stamp("users")})
        self._users[stored.id] = stored
        return stored

    async def update_user(self, user_id: str, **fields) -> Optional[User]:
        """Merge non-None fields into an existing user. None if the user is unknown."""
        user = self._users.get(user_id)
        if user is None:
            return None
        changes = {k: v for k, v in fields.items() if v is not None}
        changes["last_seen"] = self._stamp("users")
        updated = user.model_copy(update=changes)
        self._users[user_id] = updated
        return updated

    # ── Chat ──────────────────────────────────────────────────────────────────

    async def get_chat_messages(self, limit: int = 50) -> List[ChatMessage]:
        return self._latest(self._chat.values(), limit)

    async def create_chat_message(self, message: ChatMessage) -> ChatMessage:
        stored = message.model_copy(update={"timestamp": self._stamp("chat")})
        self._chat[stored.id] = stored
        return stored

    # ── Ghost events ──────────────────────────────────────────────────────────

    async def get_ghost_events(self, limit: int = 20) -> List[GhostEvent]:
        return self._latest(self._events.values(), limit)

    async def create_ghost_event(self, event: GhostEvent) -> GhostEvent:
        stored = event.model_copy(update={"timestamp": self._stamp("events")})
        self._events[stored.id] = stored
        return stored

    # ── Evidence ──────────────────────────────────────────────────────────────

    async def get_evidence(self) -> List[Evidence]:
        return self._latest(self._evidence.values(), None)

    async def create_evidence(self, evidence: Evidence) -> Evidence:
        stored = evidence.model_copy(update={"timestamp": self._stamp("evidence")})
        self._evidence[stored.id] = stored
        return stored

    async def clear_evidence(self) -> None:
        count = len(self._evidence)
        self._evidence.clear()
        logger.info(f"Evidence board cleared ({count} entries removed)")

    # ── Squad ─────────────────────────────────────────────────────────────────

    async def get_squad_status(self) -> List[SquadStatus]:
        return list(self._squad.values())

    async def update_squad_status(self, update: SquadStatusUpdate) -> SquadStatus:
        """
        Merge ``update`` into the row for ``update.user_id``.
        Fields left as None inherit the stored value; a brand new row gets
        the model defaults (alive, no map, no location).
        """
        existing = self._squad.get(update.user_id)
        if existing is not None:
            base = existing.model_dump()
        else:
            base = {"id": new_id(), "user_id": update.user_id}
        base.update(update.changes())
        base["timestamp"] = self._stamp("squad")
        status = SquadStatus(**base)
        self._squad[update.user_id] = status
        return status
