"""
Dual-channel sync façade.

Two interchangeable backends behind one interface:

  LocalBackend      — writes over the HQ HTTP API (httpx), live updates from
                      the /ws push channel (SocketClient). Chat, squad and
                      evidence are re-read each time that channel (re)opens.
                      Identity is a locally generated anonymous "offline-…" id.
  FirestoreBackend  — writes and live queries straight against Firestore.

create_backend() picks one at start-up from config; call sites never check
"is Firestore configured" themselves.

Writes are silent no-ops until sign_in() has resolved an identity (avoids
start-up races). Transport failures on a write raise SyncError; the caller
decides how to show it. Nothing is retried.

Subscription shapes (same for both backends):
  on_chat      → List[ChatMessage]   newest 100, oldest first, on every change
  on_event     → GhostEvent          once per new event, latest existing first
  on_status    → List[SquadStatus]   every squad row, on every change
  on_evidence  → List[Evidence]      whole board, on every change
"""
import asyncio
import functools
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

import httpx

from config import Settings, settings as default_settings
from models.hq import (
    ChatMessage, GhostEvent, GhostEventType, Evidence, SquadStatus, SquadStatusUpdate,
    ChatEnvelope, EventEnvelope, EvidenceEnvelope, EvidenceClearedEnvelope, SquadEnvelope,
    HQModel, Identity, event_message,
)
from client.socket_client import SocketClient, ws_url_for

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class SyncError(Exception):
    """A write could not reach the backend."""


def requires_identity(fn):
    """Skip the write (return None) while no identity has been resolved."""

    @functools.wraps(fn)
    async def wrapper(self, *args, **kwargs):
        if self.identity is None:
            logger.debug(f"{fn.__name__} skipped: no identity yet")
            return None
        return await fn(self, *args, **kwargs)

    return wrapper


class SyncBackend(ABC):
    name: str = "abstract"

    def __init__(self):
        self.identity: Optional[Identity] = None

    @property
    def online(self) -> bool:
        return bool(self.identity and self.identity.online)

    @abstractmethod
    async def sign_in(self) -> Identity: ...

    @abstractmethod
    async def send_message(
        self, text: str, display_name: str, photo_url: str, is_command: bool = False
    ) -> None: ...

    @abstractmethod
    async def trigger_event(self, event_type: str, intensity: int = 3) -> None: ...

    @abstractmethod
    async def update_status(
        self,
        display_name: str,
        photo_url: str,
        is_dead: Optional[bool] = None,
        map: Optional[str] = None,
        location: Optional[str] = None,
    ) -> None: ...

    @abstractmethod
    async def save_evidence(self, evidence: str, display_name: str) -> None: ...

    @abstractmethod
    async def on_chat(self, callback: Callable[[List[ChatMessage]], None]) -> Unsubscribe: ...

    @abstractmethod
    async def on_event(self, callback: Callable[[GhostEvent], None]) -> Unsubscribe: ...

    @abstractmethod
    async def on_status(self, callback: Callable[[List[SquadStatus]], None]) -> Unsubscribe: ...

    @abstractmethod
    async def on_evidence(self, callback: Callable[[List[Evidence]], None]) -> Unsubscribe: ...

    async def close(self) -> None:
        pass


def _remove(listeners: list, callback) -> Unsubscribe:
    def unsubscribe() -> None:
        if callback in listeners:
            listeners.remove(callback)
    return unsubscribe


# ── Local HTTP + WebSocket backend ────────────────────────────────────────────

class LocalBackend(SyncBackend):
    name = "local"

    def __init__(
        self,
        base_url: str,
        socket: SocketClient,
        http: Optional[httpx.AsyncClient] = None,
        chat_limit: int = 100,
    ):
        super().__init__()
        self.socket = socket
        self.http = http or httpx.AsyncClient(base_url=base_url, timeout=10.0)
        self.chat_limit = chat_limit
        # Local mirrors of server state, kept current from the push channel
        self._chat: List[ChatMessage] = []
        self._squad: Dict[str, SquadStatus] = {}
        self._evidence: List[Evidence] = []
        self._chat_listeners: List[Callable] = []
        self._event_listeners: List[Callable] = []
        self._status_listeners: List[Callable] = []
        self._evidence_listeners: List[Callable] = []
        self._socket_unsubscribe: Optional[Unsubscribe] = None
        self._open_unsubscribe: Optional[Unsubscribe] = None

    async def sign_in(self) -> Identity:
        self.identity = Identity(user_id=f"offline-{uuid.uuid4()}", online=False)
        logger.info(f"Using offline mode. ID: {self.identity.user_id}")
        return self.identity

    def _listen(self) -> None:
        if self._socket_unsubscribe is None:
            # hook first, so the very first open also re-reads state
            self._open_unsubscribe = self.socket.on_open(self._resync)
            self._socket_unsubscribe = self.socket.subscribe(self._on_envelope)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self.http.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SyncError(f"{method} {path} failed: {exc}") from exc
        return response

    # ── Writes ────────────────────────────────────────────────────────────────

    @requires_identity
    async def send_message(self, text, display_name, photo_url, is_command=False):
        await self._request("POST", "/api/chat", json={
            "userId": self.identity.user_id,
            "text": text,
            "isCommand": is_command,
            "displayName": display_name,
            "photoUrl": photo_url,
        })

    @requires_identity
    async def trigger_event(self, event_type, intensity=3):
        await self._request("POST", "/api/events", json={
            "type": event_type,
            "intensity": intensity,
            "triggeredBy": self.identity.user_id,
        })

    @requires_identity
    async def update_status(self, display_name, photo_url, is_dead=None, map=None, location=None):
        update = SquadStatusUpdate(
            user_id=self.identity.user_id,
            display_name=display_name,
            photo_url=photo_url,
            is_dead=is_dead,
            map=map,
            location=location,
        )
        await self._request(
            "POST", "/api/squad/status", json=update.model_dump(by_alias=True, exclude_none=True)
        )

    @requires_identity
    async def save_evidence(self, evidence, display_name):
        await self._request("POST", "/api/evidence", json={
            "userId": self.identity.user_id,
            "evidence": evidence,
            "displayName": display_name,
        })

    # ── Subscriptions ─────────────────────────────────────────────────────────

    async def _fetch(self, path: str, model_cls) -> Optional[list]:
        """GET a collection. None (logged) when the server cannot be reached."""
        try:
            response = await self.http.get(path)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(f"Fetch of {path} failed: {exc}")
            return None
        return [model_cls.model_validate(item) for item in response.json()]

    async def on_chat(self, callback):
        self._chat = ((await self._fetch("/api/chat", ChatMessage)) or [])[-self.chat_limit:]
        self._chat_listeners.append(callback)
        self._listen()
        callback(list(self._chat))
        return _remove(self._chat_listeners, callback)

    async def on_event(self, callback):
        events = (await self._fetch("/api/events", GhostEvent)) or []
        self._event_listeners.append(callback)
        self._listen()
        if events:
            callback(events[-1])
        return _remove(self._event_listeners, callback)

    async def on_status(self, callback):
        rows = (await self._fetch("/api/squad", SquadStatus)) or []
        self._squad = {row.user_id: row for row in rows}
        self._status_listeners.append(callback)
        self._listen()
        callback(list(self._squad.values()))
        return _remove(self._status_listeners, callback)

    async def on_evidence(self, callback):
        self._evidence = (await self._fetch("/api/evidence", Evidence)) or []
        self._evidence_listeners.append(callback)
        self._listen()
        callback(list(self._evidence))
        return _remove(self._evidence_listeners, callback)

    async def _resync(self) -> None:
        """
        Re-read the mirrored collections whenever the push channel (re)opens,
        so writes made while it was down still reach the listeners.
        A failed fetch keeps the current mirror.
        """
        if self._chat_listeners:
            messages = await self._fetch("/api/chat", ChatMessage)
            if messages is not None:
                self._chat = messages[-self.chat_limit:]
                for cb in list(self._chat_listeners):
                    cb(list(self._chat))
        if self._status_listeners:
            rows = await self._fetch("/api/squad", SquadStatus)
            if rows is not None:
                self._squad = {row.user_id: row for row in rows}
                for cb in list(self._status_listeners):
                    cb(list(self._squad.values()))
        if self._evidence_listeners:
            items = await self._fetch("/api/evidence", Evidence)
            if items is not None:
                self._evidence = items
                for cb in list(self._evidence_listeners):
                    cb(list(self._evidence))

    def _on_envelope(self, envelope: HQModel) -> None:
        if isinstance(envelope, ChatEnvelope):
            if any(m.id == envelope.data.id for m in self._chat):
                return
            self._chat.append(envelope.data)
            self._chat = self._chat[-self.chat_limit:]
            for cb in list(self._chat_listeners):
                cb(list(self._chat))
        elif isinstance(envelope, EventEnvelope):
            for cb in list(self._event_listeners):
                cb(envelope.data)
        elif isinstance(envelope, SquadEnvelope):
            self._squad[envelope.data.user_id] = envelope.data
            for cb in list(self._status_listeners):
                cb(list(self._squad.values()))
        elif isinstance(envelope, EvidenceEnvelope):
            if any(e.id == envelope.data.id for e in self._evidence):
                return
            self._evidence.append(envelope.data)
            for cb in list(self._evidence_listeners):
                cb(list(self._evidence))
        elif isinstance(envelope, EvidenceClearedEnvelope):
            self._evidence = []
            for cb in list(self._evidence_listeners):
                cb([])
        else:
            raise TypeError(f"Unhandled envelope: {type(envelope).__name__}")

    async def close(self) -> None:
        if self._socket_unsubscribe is not None:
            self._socket_unsubscribe()
            self._socket_unsubscribe = None
        if self._open_unsubscribe is not None:
            self._open_unsubscribe()
            self._open_unsubscribe = None
        await self.http.aclose()


# ── Firestore backend ─────────────────────────────────────────────────────────

class FirestoreBackend(SyncBackend):
    """
    Talks to Firestore directly. Snapshot callbacks arrive on the Firestore
    watch thread; they are re-scheduled onto the loop that subscribed.
    """

    name = "firestore"

    def __init__(self, service):
        super().__init__()
        self.service = service
        self._unsubscribers: List[Unsubscribe] = []

    async def sign_in(self) -> Identity:
        self.identity = Identity(user_id=uuid.uuid4().hex, online=True)
        logger.info(f"Firestore connected. UID: {self.identity.user_id}")
        return self.identity

    async def _guard(self, coro, what: str):
        try:
            return await coro
        except Exception as exc:
            raise SyncError(f"{what} failed: {exc}") from exc

    @requires_identity
    async def send_message(self, text, display_name, photo_url, is_command=False):
        await self._guard(self.service.add_chat_message(ChatMessage(
            user_id=self.identity.user_id,
            text=text,
            is_command=is_command,
            display_name=display_name,
            photo_url=photo_url,
        )), "send_message")

    @requires_identity
    async def trigger_event(self, event_type, intensity=3):
        try:
            kind = GhostEventType(event_type)
        except ValueError as exc:
            raise SyncError(f"trigger_event failed: unknown event type '{event_type}'") from exc
        await self._guard(self.service.add_ghost_event(GhostEvent(
            type=kind,
            intensity=intensity,
            message=event_message(event_type),
            triggered_by=self.identity.user_id,
        )), "trigger_event")

    @requires_identity
    async def update_status(self, display_name, photo_url, is_dead=None, map=None, location=None):
        await self._guard(self.service.merge_status(SquadStatusUpdate(
            user_id=self.identity.user_id,
            display_name=display_name,
            photo_url=photo_url,
            is_dead=is_dead,
            map=map,
            location=location,
        )), "update_status")

    @requires_identity
    async def save_evidence(self, evidence, display_name):
        await self._guard(self.service.add_evidence(Evidence(
            user_id=self.identity.user_id,
            evidence=evidence,
            display_name=display_name,
        )), "save_evidence")

    def _on_loop(self, callback):
        loop = asyncio.get_running_loop()

        def deliver(value) -> None:
            loop.call_soon_threadsafe(callback, value)

        return deliver

    def _track(self, unsubscribe: Unsubscribe) -> Unsubscribe:
        self._unsubscribers.append(unsubscribe)

        def wrapped() -> None:
            if unsubscribe in self._unsubscribers:
                self._unsubscribers.remove(unsubscribe)
                unsubscribe()

        return wrapped

    async def on_chat(self, callback):
        return self._track(self.service.watch_chat(self._on_loop(callback)))

    async def on_event(self, callback):
        return self._track(self.service.watch_events(self._on_loop(callback)))

    async def on_status(self, callback):
        return self._track(self.service.watch_status(self._on_loop(callback)))

    async def on_evidence(self, callback):
        return self._track(self.service.watch_evidence(self._on_loop(callback)))

    async def close(self) -> None:
        for unsubscribe in list(self._unsubscribers):
            unsubscribe()
        self._unsubscribers.clear()


# ── Selection ─────────────────────────────────────────────────────────────────

def create_backend(
    config: Optional[Settings] = None,
    socket: Optional[SocketClient] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> SyncBackend:
    """
    Pick the backend once, at start-up.
    Firestore when forced or configured and the client initialises;
    otherwise the local HTTP/WebSocket pair.
    """
    config = config or default_settings

    def local() -> LocalBackend:
        sock = socket or SocketClient(
            ws_url_for(config.server_url), reconnect_delay=config.ws_reconnect_delay
        )
        return LocalBackend(
            config.server_url, sock, http=http, chat_limit=config.chat_history_limit
        )

    mode = config.sync_backend.lower()
    if mode == "local":
        return local()
    if mode not in ("auto", "firestore"):
        logger.warning(f"Unknown SYNC_BACKEND '{config.sync_backend}', falling back to auto")
    if not config.firestore_configured:
        if mode == "firestore":
            logger.warning("SYNC_BACKEND=firestore but no project or emulator configured")
        logger.info("Firebase not configured. Using local HTTP/WebSocket backend.")
        return local()

    from services.firestore_service import FirestoreService

    try:
        service = FirestoreService(
            project=config.firebase_project_id,
            emulator_host=config.firestore_emulator_host,
        )
    except Exception as exc:
        logger.warning(f"Firestore unavailable ({exc}); falling back to local backend")
        return local()
    logger.info("Using Firestore sync backend")
    return FirestoreBackend(service)
