from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel
from typing import Annotated, Optional, Dict, Any, Literal, Union
from enum import Enum
from datetime import datetime, timezone
import uuid


def _utcnow() -> datetime:
    """Timezone-aware UTC datetime (replaces deprecated datetime.utcnow)."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class HQModel(BaseModel):
    """Base for everything that crosses the wire: camelCase JSON, snake_case Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class GhostEventType(str, Enum):
    HUNT = "hunt"
    FLICKER = "flicker"
    MANIFEST = "manifest"
    SLAM = "slam"
    CURSE = "curse"
    # Scare family: sound cues on the client, no dedicated message
    SCARE = "scare"
    JUMPSCARE = "jumpscare"
    WHISPER = "whisper"
    CREAK = "creak"
    HAUNT = "haunt"
    EVENT = "event"


EVENT_MESSAGES: Dict[str, str] = {
    "hunt": "HUNT INITIATED! All agents take cover immediately!",
    "flicker": "Lights flickering detected. Paranormal activity rising.",
    "manifest": "Ghost manifestation in progress...",
    "slam": "Door SLAM! Ghost activity confirmed.",
    "curse": "Cursed object interaction detected!",
    "event": "Paranormal event registered.",
}


def event_message(event_type: str) -> str:
    return EVENT_MESSAGES.get(event_type, EVENT_MESSAGES["event"])


# ── Entities ──────────────────────────────────────────────────────────────────

class ChatMessage(HQModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    text: str
    is_command: bool = False
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class GhostEvent(HQModel):
    id: str = Field(default_factory=new_id)
    type: GhostEventType
    intensity: int = 3  # callers clamp to 1..5
    message: str = ""
    triggered_by: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class Evidence(HQModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    evidence: str
    display_name: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class SquadStatus(HQModel):
    id: str = Field(default_factory=new_id)
    user_id: str  # unique: one row per user
    is_dead: bool = False
    map: Optional[str] = None
    location: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class User(HQModel):
    id: str
    display_name: str
    photo_url: str = "/avatars/default.png"
    last_seen: datetime = Field(default_factory=_utcnow)


# ── HTTP request models ───────────────────────────────────────────────────────

class ChatMessageCreate(HQModel):
    user_id: str = Field(min_length=1)
    text: str = Field(min_length=1)
    is_command: bool = False
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


class GhostEventCreate(HQModel):
    type: GhostEventType
    intensity: Optional[int] = Field(default=None, ge=1, le=5)
    triggered_by: Optional[str] = None


class EvidenceCreate(HQModel):
    user_id: str = Field(min_length=1)
    evidence: str = Field(min_length=1)
    display_name: Optional[str] = None


class SquadStatusUpdate(HQModel):
    """Partial squad row. ``None`` means "keep whatever is stored"."""

    user_id: str = Field(min_length=1)
    is_dead: Optional[bool] = None
    map: Optional[str] = None
    location: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        return {
            k: v
            for k, v in self.model_dump(exclude={"user_id"}).items()
            if v is not None
        }


class UserUpsert(HQModel):
    id: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    photo_url: Optional[str] = None


# ── WebSocket envelopes ───────────────────────────────────────────────────────

class ChatEnvelope(HQModel):
    type: Literal["chat"] = "chat"
    data: ChatMessage


class EventEnvelope(HQModel):
    type: Literal["event"] = "event"
    data: GhostEvent


class EvidenceEnvelope(HQModel):
    type: Literal["evidence"] = "evidence"
    data: Evidence


class EvidenceClearedEnvelope(HQModel):
    type: Literal["evidence_cleared"] = "evidence_cleared"
    data: Dict[str, Any] = Field(default_factory=dict)


class SquadEnvelope(HQModel):
    type: Literal["squad"] = "squad"
    data: SquadStatus


Envelope = Annotated[
    Union[ChatEnvelope, EventEnvelope, EvidenceEnvelope, EvidenceClearedEnvelope, SquadEnvelope],
    Field(discriminator="type"),
]

EnvelopeType = Literal["chat", "event", "evidence", "evidence_cleared", "squad"]

_ENVELOPES: Dict[str, type] = {
    "chat": ChatEnvelope,
    "event": EventEnvelope,
    "evidence": EvidenceEnvelope,
    "evidence_cleared": EvidenceClearedEnvelope,
    "squad": SquadEnvelope,
}

_envelope_adapter: TypeAdapter = TypeAdapter(Envelope)


def make_envelope(kind: str, data: Any) -> HQModel:
    """Wrap a payload in the envelope for ``kind``. Raises KeyError for unknown kinds."""
    return _ENVELOPES[kind](data=data if data is not None else {})


def parse_envelope(raw: Union[str, bytes]) -> HQModel:
    """Decode one wire frame. Raises pydantic.ValidationError on bad JSON or shape."""
    return _envelope_adapter.validate_json(raw)


# ── Client-side activity log ──────────────────────────────────────────────────

class LogEntry(HQModel):
    id: str = Field(default_factory=new_id)
    type: Literal["system", "event", "command", "hunt"] = "system"
    message: str
    timestamp: datetime = Field(default_factory=_utcnow)


class Identity(HQModel):
    user_id: str
    online: bool = False

