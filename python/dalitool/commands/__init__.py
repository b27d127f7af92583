"""Command registry for dalitool."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .base import Command
from .connect import ConnectCommand
from .exit import ExitCommand
from .filters import MatchCommand, RejectCommand
from .help import HelpCommand
from .ident import IdCommand
from .info import build_info_commands
from .position import PositionAfterCommand, PositionSetCommand
from .read import ReadCommand
from .stream import StreamCommand


class CommandRegistry:
    """Stores the known commands and resolves case-insensitive prefixes."""

    def __init__(self) -> None:
        self._commands: Dict[str, Command] = {}
        self._ordered: List[Command] = []

    def register(self, command: Command) -> None:
        self._ordered.append(command)
        for name in command.names:
            self._commands[name.lower()] = command

    def get(self, name: str) -> Optional[Command]:
        """Exact name or alias first, then a prefix shared by exactly one command."""
        key = name.lower()
        if not key:
            return None
        command = self._commands.get(key)
        if command is not None:
            return command
        matches = self.candidates(key)
        if len(matches) == 1:
            return matches[0]
        return None

    def candidates(self, prefix: str) -> List[Command]:
        key = prefix.lower()
        found: List[Command] = []
        for name, command in self._commands.items():
            if name.startswith(key) and all(entry is not command for entry in found):
                found.append(command)
        return found

    def names(self) -> List[str]:
        return sorted(self._commands)

    def list_commands(self) -> Iterable[Command]:
        return self._ordered


def build_registry() -> CommandRegistry:
    registry = CommandRegistry()
    commands = [
        ExitCommand(),
        HelpCommand(),
        IdCommand(),
        PositionSetCommand(),
        PositionAfterCommand(),
        MatchCommand(),
        RejectCommand(),
        *build_info_commands(),
        ReadCommand(),
        StreamCommand(),
        ConnectCommand(),
    ]
    for command in commands:
        registry.register(command)
        bind = getattr(command, "bind", None)
        if callable(bind):
            bind(registry)
    return registry


__all__ = ["Command", "CommandRegistry", "build_registry"]
