"""
Command Center session: the client-side controller.

Owns the player's profile, the activity log and the live views (chat,
squad, evidence). start() signs in through whichever SyncBackend was
selected, wires the four subscriptions, and announces itself on the squad
board when online. Chat input goes through the CommandInterpreter.

Backend write failures never escape: they become an activity-log line
(the terminal's equivalent of a toast) and are not retried.
"""
import logging
from typing import Callable, List, Optional

from models.hq import ChatMessage, Evidence, GhostEvent, LogEntry, SquadStatus
from client.commands import CommandInterpreter
from client.sync import SyncBackend, SyncError

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "Ghost Hunter"
DEFAULT_PHOTO_URL = "https://api.dicebear.com/7.x/bottts/svg?seed=ghost1&backgroundColor=b71cff"


class CommandCenter:
    def __init__(
        self,
        backend: SyncBackend,
        display_name: str = DEFAULT_DISPLAY_NAME,
        photo_url: str = DEFAULT_PHOTO_URL,
        on_log: Optional[Callable[[LogEntry], None]] = None,
    ):
        self.backend = backend
        self.display_name = display_name
        self.photo_url = photo_url
        self.logs: List[LogEntry] = [LogEntry(type="system", message="Command center initializing...")]
        self.chat: List[ChatMessage] = []
        self.squad: List[SquadStatus] = []
        self.evidence: List[Evidence] = []
        self.emf_level = 0
        self._on_log = on_log
        self._seen_events: set = set()
        self._unsubscribers: List[Callable[[], None]] = []
        self.interpreter = CommandInterpreter(backend, self.log)
        self.ready = False

    def log(self, entry: LogEntry) -> None:
        self.logs.append(entry)
        if self._on_log is not None:
            self._on_log(entry)

    def _notify(self, kind: str, message: str) -> None:
        self.log(LogEntry(type=kind, message=message))

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def start(self) -> None:
        identity = await self.backend.sign_in()
        short_id = identity.user_id[:8]
        if identity.online:
            self._notify("system", f"Firebase connected. Agent {short_id} authenticated.")
        else:
            self._notify("system", f"Using offline mode. Agent {short_id} initialized.")

        self._unsubscribers = [
            await self.backend.on_chat(self._on_chat),
            await self.backend.on_event(self._on_event),
            await self.backend.on_status(self._on_status),
            await self.backend.on_evidence(self._on_evidence),
        ]
        self.ready = True

        if identity.online:
            await self._safely(
                self.backend.update_status(self.display_name, self.photo_url),
                "Squad check-in failed",
            )

    async def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self.ready = False
        await self.backend.close()

    # ── Subscriptions ─────────────────────────────────────────────────────────

    def _on_chat(self, messages: List[ChatMessage]) -> None:
        self.chat = messages

    def _on_event(self, event: GhostEvent) -> None:
        self.emf_level = max(0, min(5, event.intensity or 3))
        if event.id in self._seen_events:
            return
        self._seen_events.add(event.id)
        kind = "hunt" if event.type.value == "hunt" else "event"
        self._notify(kind, event.message)

    def _on_status(self, statuses: List[SquadStatus]) -> None:
        self.squad = statuses

    def _on_evidence(self, evidence: List[Evidence]) -> None:
        self.evidence = evidence

    # ── Actions ───────────────────────────────────────────────────────────────

    async def _safely(self, coro, failure: str) -> None:
        try:
            await coro
        except SyncError as exc:
            logger.warning(f"{failure}: {exc}")
            self._notify("event", f"{failure}. Try again.")

    async def send(self, text: str) -> None:
        if not self.ready:
            return
        await self._safely(
            self.interpreter.submit(text, self.display_name, self.photo_url),
            "Transmission failed",
        )

    async def trigger_hunt(self) -> None:
        if not self.ready:
            return
        await self._safely(self.backend.trigger_event("hunt", 5), "Hunt trigger failed")

    async def save_profile(self, display_name: str, photo_url: str) -> None:
        self.display_name = display_name
        self.photo_url = photo_url
        self._notify("system", f"Profile updated: {display_name}")
        await self._safely(
            self.backend.update_status(display_name, photo_url), "Profile save failed"
        )

    async def set_map(self, map_name: str) -> None:
        await self._safely(
            self.backend.update_status(self.display_name, self.photo_url, map=map_name),
            "Map update failed",
        )
        self._notify("system", f"Investigation location set: {map_name}")
