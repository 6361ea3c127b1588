"""
Chat command interpreter.

A chat line starting with "!" is a command:  !COMMAND[:VALUE]
COMMAND is case-insensitive; VALUE is everything after the first colon,
case preserved.

  !hunt !flicker !manifest !slam !curse   trigger a ghost event (fixed intensity)
  !scare !jumpscare !whisper !creak !haunt trigger a scare event (intensity 3)
  !dead:NAME / !revive:NAME                mark the *issuing* player dead / alive
  !location:VALUE                          set the issuing player's location
  !evidence:VALUE                          log VALUE (uppercased) as evidence

NAME in dead/revive only shows up in the log; the status change always lands
on the player who typed the command.

Whatever the outcome, the raw line is also sent as a chat message so
commands stay visible in the chat history.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from models.hq import LogEntry

logger = logging.getLogger(__name__)

COMMAND_INTENSITY: Dict[str, int] = {
    "hunt": 5,
    "flicker": 3,
    "manifest": 4,
    "slam": 4,
    "curse": 5,
}

SCARE_COMMANDS = ("scare", "jumpscare", "whisper", "creak", "haunt")
SCARE_INTENSITY = 3


@dataclass
class ParsedCommand:
    name: str
    value: Optional[str] = None


def parse_command(text: str) -> Optional[ParsedCommand]:
    """Split "!name:value". None when the line is not a command."""
    text = text.strip()
    if not text.startswith("!"):
        return None
    name, sep, value = text[1:].partition(":")
    return ParsedCommand(name=name.strip().lower(), value=value.strip() if sep else None)


class CommandInterpreter:
    def __init__(self, backend, log: Callable[[LogEntry], None]):
        self.backend = backend
        self._log = log

    def _emit(self, kind: str, message: str) -> None:
        self._log(LogEntry(type=kind, message=message))

    async def submit(self, text: str, display_name: str, photo_url: str) -> None:
        """Run one chat line: execute it if it is a command, then post it to chat."""
        text = text.strip()
        if not text:
            return
        command = parse_command(text)
        if command is not None:
            await self.execute(command, display_name, photo_url)
        await self.backend.send_message(text, display_name, photo_url, command is not None)

    async def execute(self, command: ParsedCommand, display_name: str, photo_url: str) -> None:
        name, value = command.name, command.value

        if name in COMMAND_INTENSITY:
            await self.backend.trigger_event(name, COMMAND_INTENSITY[name])

        elif name in SCARE_COMMANDS:
            await self.backend.trigger_event(name, SCARE_INTENSITY)

        elif name == "dead":
            if value:
                await self.backend.update_status(display_name, photo_url, is_dead=True)
                self._emit("event", f"{value} has been killed by the ghost!")

        elif name == "revive":
            if value:
                await self.backend.update_status(display_name, photo_url, is_dead=False)
                self._emit("system", f"{value} has been revived.")

        elif name == "location":
            if value:
                await self.backend.update_status(display_name, photo_url, location=value)
                self._emit("system", f"{display_name} moved to: {value}")

        elif name == "evidence":
            if value:
                await self.backend.save_evidence(value.upper(), display_name)
                self._emit("command", f"Evidence logged: {value.upper()}")

        else:
            logger.debug(f"Unknown command '{name}'")
            self._emit("command", f"Unknown command: {name}")
