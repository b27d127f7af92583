"""Exit command."""

from __future__ import annotations

from .base import Command
from ..context import ConsoleContext
from ..output import emit_result
from ..parser import ParsedCommand


class ExitCommand(Command):
    def __init__(self) -> None:
        super().__init__("exit", "Exit console mode", aliases=("quit", "bye"), requires_connection=False)

    def run(self, ctx: ConsoleContext, command: ParsedCommand) -> int:
        emit_result("Goodbye")
        raise SystemExit(0)
