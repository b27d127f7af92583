"""Help command."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import Command
from ..context import ConsoleContext
from ..parser import ParsedCommand

if TYPE_CHECKING:  # pragma: no cover
    from . import CommandRegistry


class HelpCommand(Command):
    def __init__(self) -> None:
        super().__init__("help", "Show available commands", requires_connection=False)
        self._registry: CommandRegistry | None = None

    def bind(self, registry: "CommandRegistry") -> None:
        self._registry = registry

    def run(self, ctx: ConsoleContext, command: ParsedCommand) -> int:
        registry = self._registry
        if not registry:
            return 1
        print("The following commands are supported:")
        for entry in registry.list_commands():
            print(entry.format_help())
        print("An empty line repeats the previous command; -v, -vv... raise INFO detail")
        print()
        return 0
