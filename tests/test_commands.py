"""Chat command parsing and execution."""

import pytest

from client.commands import CommandInterpreter, ParsedCommand, parse_command
from fakes import RecordingBackend


@pytest.mark.parametrize("text, expected", [
    ("!hunt", ParsedCommand("hunt")),
    ("  !HUNT  ", ParsedCommand("hunt")),
    ("!evidence:ghost orbs", ParsedCommand("evidence", "ghost orbs")),
    ("!location: Main Hall ", ParsedCommand("location", "Main Hall")),
    ("!location:Room 3:Closet", ParsedCommand("location", "Room 3:Closet")),
    ("!dead:", ParsedCommand("dead", "")),
])
def test_parse_command(text, expected):
    assert parse_command(text) == expected


@pytest.mark.parametrize("text", ["hello", "", "   ", "hunt!"])
def test_plain_text_is_not_a_command(text):
    assert parse_command(text) is None


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def logs():
    return []


@pytest.fixture
def interpreter(backend, logs):
    return CommandInterpreter(backend, logs.append)


@pytest.mark.asyncio
@pytest.mark.parametrize("command, intensity", [
    ("hunt", 5), ("flicker", 3), ("manifest", 4), ("slam", 4), ("curse", 5),
    ("scare", 3), ("jumpscare", 3), ("whisper", 3), ("creak", 3), ("haunt", 3),
])
async def test_event_commands(interpreter, backend, command, intensity):
    await interpreter.submit(f"!{command}", "Ana", "/a.png")

    assert backend.calls == [
        ("trigger_event", command, intensity),
        ("send_message", f"!{command}", "Ana", True),
    ]


@pytest.mark.asyncio
async def test_plain_text_is_only_chat(interpreter, backend, logs):
    await interpreter.submit("  anyone hear that?  ", "Ana", "/a.png")

    assert backend.calls == [("send_message", "anyone hear that?", "Ana", False)]
    assert logs == []


@pytest.mark.asyncio
async def test_blank_line_does_nothing(interpreter, backend):
    await interpreter.submit("   ", "Ana", "/a.png")
    assert backend.calls == []


@pytest.mark.asyncio
async def test_dead_marks_the_issuer(interpreter, backend, logs):
    await interpreter.submit("!dead:Bob", "Ana", "/a.png")

    assert backend.mutations() == [("update_status", "Ana", True, None, None)]
    assert logs[0].type == "event"
    assert logs[0].message == "Bob has been killed by the ghost!"


@pytest.mark.asyncio
async def test_revive(interpreter, backend, logs):
    await interpreter.submit("!revive:Bob", "Ana", "/a.png")

    assert backend.mutations() == [("update_status", "Ana", False, None, None)]
    assert logs[0].type == "system"
    assert logs[0].message == "Bob has been revived."


@pytest.mark.asyncio
async def test_location(interpreter, backend, logs):
    await interpreter.submit("!location:Basement", "Ana", "/a.png")

    assert backend.mutations() == [("update_status", "Ana", None, None, "Basement")]
    assert logs[0].message == "Ana moved to: Basement"


@pytest.mark.asyncio
async def test_evidence_is_uppercased(interpreter, backend, logs):
    await interpreter.submit("!evidence:ghost orbs", "Ana", "/a.png")

    assert backend.mutations() == [("save_evidence", "GHOST ORBS", "Ana")]
    assert logs[0].type == "command"
    assert logs[0].message == "Evidence logged: GHOST ORBS"


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["!dead", "!dead:", "!revive", "!location:", "!evidence"])
async def test_value_commands_without_value_only_chat(interpreter, backend, logs, text):
    await interpreter.submit(text, "Ana", "/a.png")

    assert backend.mutations() == []
    assert backend.calls == [("send_message", text, "Ana", True)]
    assert logs == []


@pytest.mark.asyncio
async def test_unknown_command_is_logged(interpreter, backend, logs):
    await interpreter.submit("!dance", "Ana", "/a.png")

    assert backend.mutations() == []
    assert logs[0].type == "command"
    assert logs[0].message == "Unknown command: dance"
    assert backend.calls == [("send_message", "!dance", "Ana", True)]
