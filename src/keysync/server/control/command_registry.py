"""Registry mapping command names to server callbacks.

A command string is split on whitespace; the first word selects the
handler and the rest are passed as arguments. Execution is
fire-and-forget: handler failures are logged, never raised to the caller.
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Sequence

from keysync.server.control.principals import Principal

logger = logging.getLogger(__name__)

CommandHandler = Callable[[Principal, Sequence[str]], Any]


@dataclass(frozen=True)
class CommandRegistration:
    name: str
    handler: CommandHandler
    description: str = ""


def split_command(command: str) -> list[str]:
    text = command.strip().lstrip("/")
    try:
        return shlex.split(text)
    except ValueError:
        return text.split()


class CommandRegistry:
    def __init__(self) -> None:
        self._commands: dict[str, CommandRegistration] = {}

    def register(self, registration: CommandRegistration) -> None:
        name = registration.name.lower()
        if name in self._commands:
            raise ValueError(f"command '{name}' already registered")
        self._commands[name] = registration

    def register_command(self, name: str, handler: CommandHandler, *, description: str = "") -> None:
        self.register(CommandRegistration(name=name, handler=handler, description=description))

    def get_handler(self, name: str) -> CommandHandler | None:
        entry = self._commands.get(name.lower())
        if entry is None:
            return None
        return entry.handler

    def command_names(self) -> tuple[str, ...]:
        return tuple(self._commands.keys())

    def clear(self) -> None:
        self._commands.clear()

    def run_as_principal(self, principal: Principal, command: str) -> bool:
        """Run ``command`` on behalf of ``principal``; True if a handler ran."""

        words = split_command(command)
        if not words:
            logger.warning("Empty command for %s ignored", principal.name)
            return False
        handler = self.get_handler(words[0])
        if handler is None:
            logger.warning("Unknown command '/%s' requested for %s", words[0], principal.name)
            return False
        logger.info("Running '/%s' as %s", " ".join(words), principal.name)
        try:
            handler(principal, tuple(words[1:]))
        except Exception:
            logger.exception("Command '/%s' failed for %s", words[0], principal.name)
            return False
        return True


def say_command(principal: Principal, args: Sequence[str]) -> None:
    logger.info("[%s] %s", principal.name, " ".join(args))


__all__ = [
    "CommandHandler",
    "CommandRegistration",
    "CommandRegistry",
    "say_command",
    "split_command",
]
