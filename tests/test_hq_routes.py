"""HTTP API and /ws push channel, end to end through the FastAPI app."""

import time

import pytest

from models.hq import GhostEvent, GhostEventType


def _wait_for_sockets(hub, n: int) -> None:
    deadline = time.monotonic() + 2
    while hub.count < n:
        assert time.monotonic() < deadline, "socket never registered"
        time.sleep(0.01)


# ── Health ────────────────────────────────────────────────────────────────────

def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["service"] == "ghost-hunter-hq"
    assert body["connections"] == 0


# ── Chat ──────────────────────────────────────────────────────────────────────

def test_post_and_list_chat(client):
    resp = client.post("/api/chat", json={"userId": "u1", "text": "anyone here?", "displayName": "Ana"})
    assert resp.status_code == 201
    created = resp.json()
    assert created["text"] == "anyone here?"
    assert created["isCommand"] is False
    assert created["id"]
    assert created["timestamp"]

    listed = client.get("/api/chat").json()
    assert [m["id"] for m in listed] == [created["id"]]


def test_chat_requires_user_and_text(client):
    resp = client.post("/api/chat", json={"userId": "u1"})
    assert resp.status_code == 400
    assert "text" in resp.json()["error"]

    resp = client.post("/api/chat", json={"userId": "u1", "text": ""})
    assert resp.status_code == 400


def test_chat_history_is_capped_at_100(client):
    for i in range(105):
        client.post("/api/chat", json={"userId": "u1", "text": f"line {i}"})

    listed = client.get("/api/chat").json()
    assert len(listed) == 100
    assert listed[0]["text"] == "line 5"
    assert listed[-1]["text"] == "line 104"


# ── Ghost events ──────────────────────────────────────────────────────────────

def test_post_event_fills_message(client):
    resp = client.post("/api/events", json={"type": "hunt", "intensity": 5, "triggeredBy": "u1"})
    assert resp.status_code == 201
    event = resp.json()
    assert event["type"] == "hunt"
    assert event["intensity"] == 5
    assert event["message"] == "HUNT INITIATED! All agents take cover immediately!"
    assert event["triggeredBy"] == "u1"


def test_post_event_without_intensity_picks_one_to_five(client):
    for _ in range(10):
        event = client.post("/api/events", json={"type": "flicker"}).json()
        assert 1 <= event["intensity"] <= 5


def test_scare_event_gets_generic_message(client):
    event = client.post("/api/events", json={"type": "whisper", "intensity": 3}).json()
    assert event["message"] == "Paranormal event registered."


@pytest.mark.parametrize("body", [
    {},
    {"type": "poltergeist"},
    {"type": "hunt", "intensity": 9},
    {"type": "hunt", "intensity": 0},
])
def test_invalid_events_are_rejected(client, body):
    resp = client.post("/api/events", json=body)
    assert resp.status_code == 400
    assert "error" in resp.json()


def test_list_events_returns_latest(client):
    for kind in ("flicker", "slam", "hunt"):
        client.post("/api/events", json={"type": kind, "intensity": 3})

    listed = client.get("/api/events").json()
    assert [e["type"] for e in listed] == ["flicker", "slam", "hunt"]


# ── Evidence ──────────────────────────────────────────────────────────────────

def test_evidence_lifecycle(client):
    assert client.post("/api/evidence", json={"userId": "u1", "evidence": "EMF 5"}).status_code == 201
    assert client.post("/api/evidence", json={"userId": "u2", "evidence": "ORBS"}).status_code == 201
    assert [e["evidence"] for e in client.get("/api/evidence").json()] == ["EMF 5", "ORBS"]

    resp = client.delete("/api/evidence")
    assert resp.status_code == 204
    assert resp.content == b""
    assert client.get("/api/evidence").json() == []


def test_evidence_requires_text(client):
    resp = client.post("/api/evidence", json={"userId": "u1"})
    assert resp.status_code == 400


# ── Squad ─────────────────────────────────────────────────────────────────────

def test_squad_status_merges(client):
    first = client.post("/api/squad/status", json={"userId": "u1", "displayName": "Ana", "map": "Tanglewood"})
    assert first.status_code == 200
    second = client.post("/api/squad/status", json={"userId": "u1", "isDead": True}).json()

    assert second["id"] == first.json()["id"]
    assert second["isDead"] is True
    assert second["map"] == "Tanglewood"

    rows = client.get("/api/squad").json()
    assert len(rows) == 1


def test_squad_status_requires_user(client):
    assert client.post("/api/squad/status", json={"isDead": True}).status_code == 400


# ── Users ─────────────────────────────────────────────────────────────────────

def test_unknown_user_is_404(client):
    resp = client.get("/api/users/nobody")
    assert resp.status_code == 404
    assert resp.json() == {"error": "User not found"}


def test_user_create_then_update(client):
    created = client.post("/api/users", json={"id": "u1", "displayName": "Ana"})
    assert created.status_code == 201
    assert created.json()["photoUrl"] == "/avatars/default.png"

    updated = client.post("/api/users", json={"id": "u1", "displayName": "Ana B"})
    assert updated.status_code == 200
    assert updated.json()["displayName"] == "Ana B"
    assert updated.json()["photoUrl"] == "/avatars/default.png"

    fetched = client.get("/api/users/u1").json()
    assert fetched["displayName"] == "Ana B"


# ── Failures ──────────────────────────────────────────────────────────────────

def test_store_failure_becomes_500(client, store, monkeypatch):
    async def boom(*args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(store, "get_chat_messages", boom)

    resp = client.get("/api/chat")
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to fetch chat messages"}


# ── Push channel ──────────────────────────────────────────────────────────────

def test_writes_are_pushed_to_websocket_clients(client, hub):
    with client.websocket_connect("/ws") as ws:
        _wait_for_sockets(hub, 1)
        client.post("/api/chat", json={"userId": "u1", "text": "boo"})
        client.post("/api/events", json={"type": "slam", "intensity": 4})
        client.post("/api/squad/status", json={"userId": "u1", "location": "Attic"})
        client.post("/api/evidence", json={"userId": "u1", "evidence": "ORBS"})
        client.delete("/api/evidence")

        received = [ws.receive_json() for _ in range(5)]

    assert [m["type"] for m in received] == ["chat", "event", "squad", "evidence", "evidence_cleared"]
    assert received[0]["data"]["text"] == "boo"
    assert received[1]["data"]["intensity"] == 4
    assert received[2]["data"]["location"] == "Attic"
    assert received[4]["data"] == {}


def test_every_client_gets_the_broadcast(client, hub):
    with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
        _wait_for_sockets(hub, 2)
        assert client.get("/health").json()["connections"] == 2
        client.post("/api/evidence", json={"userId": "u1", "evidence": "FREEZING"})

        for ws in (a, b):
            assert ws.receive_json()["data"]["evidence"] == "FREEZING"


def test_inbound_frames_are_ignored(client, hub):
    with client.websocket_connect("/ws") as ws:
        _wait_for_sockets(hub, 1)
        ws.send_text("hello?")
        client.post("/api/chat", json={"userId": "u1", "text": "still here"})
        assert ws.receive_json()["type"] == "chat"


def test_binary_frames_do_not_drop_the_client(client, hub):
    with client.websocket_connect("/ws") as ws:
        _wait_for_sockets(hub, 1)
        ws.send_bytes(b"\x00ping")
        client.post("/api/evidence", json={"userId": "u1", "evidence": "ORBS"})

        assert ws.receive_json()["data"]["evidence"] == "ORBS"
        client.post("/api/evidence", json={"userId": "u1", "evidence": "EMF 5"})
        assert ws.receive_json()["data"]["evidence"] == "EMF 5"
        assert hub.count == 1


# ── Async client ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_event_round_trip_with_async_client(http, store):
    resp = await http.post("/api/events", json={"type": "curse", "intensity": 5})
    assert resp.status_code == 201

    stored = await store.get_ghost_events()
    assert len(stored) == 1
    assert isinstance(stored[0], GhostEvent)
    assert stored[0].type is GhostEventType.CURSE
