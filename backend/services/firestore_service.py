import asyncio
import os
from typing import Optional, List, Dict, Any, Callable

from pydantic.alias_generators import to_camel

from models.hq import (
    HQModel, ChatMessage, GhostEvent, Evidence, SquadStatus, SquadStatusUpdate,
)
from config import settings

# Firestore caps a write batch at 500 operations
_BATCH_LIMIT = 500

Unsubscribe = Callable[[], None]


def _server_timestamp():
    from google.cloud import firestore
    return firestore.SERVER_TIMESTAMP


def _to_doc(model: HQModel) -> Dict[str, Any]:
    """camelCase document body; id lives in the document path, timestamp is server-side."""
    data = model.model_dump(mode="json", by_alias=True, exclude={"id", "timestamp"})
    data["timestamp"] = _server_timestamp()
    return data


def _from_doc(model_cls, doc):
    data = {k: v for k, v in (doc.to_dict() or {}).items() if v is not None}
    data["id"] = doc.id
    return model_cls.model_validate(data)


class FirestoreService:
    """
    Async-friendly Firestore wrapper using run_in_executor to avoid
    blocking the event loop. Live queries use on_snapshot; their callbacks
    fire on the Firestore watch thread, not on the event loop.
    """

    def __init__(
        self,
        project: Optional[str] = None,
        emulator_host: Optional[str] = None,
        client=None,
    ):
        if client is not None:
            self.db = client
            return
        host = emulator_host or settings.firestore_emulator_host
        if host:
            os.environ["FIRESTORE_EMULATOR_HOST"] = host
        # Lazy import so the service can be instantiated before GCP creds exist
        from google.cloud import firestore
        self.db = firestore.Client(project=(project or settings.firebase_project_id) or None)

    def _run(self, fn):
        """Run a sync Firestore call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(None, fn)

    # ── Collection helpers ────────────────────────────────────────────────────

    def _chat_ref(self):
        return self.db.collection("chat")

    def _events_ref(self):
        return self.db.collection("events")

    def _evidence_ref(self):
        return self.db.collection("evidence")

    def _status_ref(self):
        return self.db.collection("status")

    # ── Chat (append-only) ────────────────────────────────────────────────────

    async def add_chat_message(self, message: ChatMessage) -> ChatMessage:
        data = _to_doc(message)
        await self._run(lambda: self._chat_ref().document(message.id).set(data))
        return message

    async def get_chat_messages(self, limit: int = 100) -> List[ChatMessage]:
        docs = await self._run(
            lambda: list(self._chat_ref().order_by("timestamp").limit_to_last(limit).get())
        )
        return [_from_doc(ChatMessage, d) for d in docs]

    def watch_chat(
        self, callback: Callable[[List[ChatMessage]], None], limit: int = 100
    ) -> Unsubscribe:
        """Live snapshot of the newest ``limit`` messages, oldest first."""
        from google.cloud import firestore

        query = self._chat_ref().order_by(
            "timestamp", direction=firestore.Query.DESCENDING
        ).limit(limit)

        def on_snapshot(docs, changes, read_time):
            messages = [_from_doc(ChatMessage, d) for d in docs]
            messages.reverse()
            callback(messages)

        return query.on_snapshot(on_snapshot).unsubscribe

    # ── Ghost events (append-only) ────────────────────────────────────────────

    async def add_ghost_event(self, event: GhostEvent) -> GhostEvent:
        data = _to_doc(event)
        await self._run(lambda: self._events_ref().document(event.id).set(data))
        return event

    async def get_ghost_events(self, limit: int = 50) -> List[GhostEvent]:
        docs = await self._run(
            lambda: list(self._events_ref().order_by("timestamp").limit_to_last(limit).get())
        )
        return [_from_doc(GhostEvent, d) for d in docs]

    def watch_events(self, callback: Callable[[GhostEvent], None]) -> Unsubscribe:
        """Fires once per newly added event, starting with the latest existing one."""
        from google.cloud import firestore

        query = self._events_ref().order_by(
            "timestamp", direction=firestore.Query.DESCENDING
        ).limit(1)

        def on_snapshot(docs, changes, read_time):
            for change in changes:
                if change.type.name == "ADDED":
                    callback(_from_doc(GhostEvent, change.document))

        return query.on_snapshot(on_snapshot).unsubscribe

    # ── Evidence ──────────────────────────────────────────────────────────────

    async def add_evidence(self, evidence: Evidence) -> Evidence:
        data = _to_doc(evidence)
        await self._run(lambda: self._evidence_ref().document(evidence.id).set(data))
        return evidence

    async def get_evidence(self) -> List[Evidence]:
        docs = await self._run(lambda: list(self._evidence_ref().order_by("timestamp").stream()))
        return [_from_doc(Evidence, d) for d in docs]

    async def clear_evidence(self) -> int:
        """Delete every evidence document. Returns how many were removed."""

        def _clear() -> int:
            docs = list(self._evidence_ref().stream())
            for start in range(0, len(docs), _BATCH_LIMIT):
                batch = self.db.batch()
                for doc in docs[start:start + _BATCH_LIMIT]:
                    batch.delete(doc.reference)
                batch.commit()
            return len(docs)

        return await self._run(_clear)

    async def delete_evidence(self, evidence_id: str) -> None:
        await self._run(lambda: self._evidence_ref().document(evidence_id).delete())

    def watch_evidence(self, callback: Callable[[List[Evidence]], None]) -> Unsubscribe:
        query = self._evidence_ref().order_by("timestamp")

        def on_snapshot(docs, changes, read_time):
            callback([_from_doc(Evidence, d) for d in docs])

        return query.on_snapshot(on_snapshot).unsubscribe

    # ── Squad status (one document per user, merged) ──────────────────────────

    async def merge_status(self, update: SquadStatusUpdate) -> None:
        data: Dict[str, Any] = {"userId": update.user_id}
        for key, value in update.changes().items():
            data[to_camel(key)] = value
        data["timestamp"] = _server_timestamp()
        await self._run(
            lambda: self._status_ref().document(update.user_id).set(data, merge=True)
        )

    async def get_squad_status(self) -> List[SquadStatus]:
        docs = await self._run(lambda: list(self._status_ref().stream()))
        return [_from_doc(SquadStatus, d) for d in docs]

    def watch_status(self, callback: Callable[[List[SquadStatus]], None]) -> Unsubscribe:
        def on_snapshot(docs, changes, read_time):
            callback([_from_doc(SquadStatus, d) for d in docs])

        return self._status_ref().on_snapshot(on_snapshot).unsubscribe

