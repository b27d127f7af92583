"""Command base classes for dalitool."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from ..context import ConsoleContext
from ..parser import ParsedCommand


@dataclass
class Command:
    """Abstract console command."""

    name: str
    description: str
    aliases: Sequence[str] = field(default_factory=tuple)
    usage: str = ""
    requires_connection: bool = True

    def run(self, ctx: ConsoleContext, command: ParsedCommand) -> int:
        raise NotImplementedError("Command must implement run()")

    def format_help(self) -> str:
        names = ",".join(name.upper() for name in (self.name, *self.aliases))
        label = f"{names} {self.usage}".strip()
        return f"{label:<26} {self.description}"

    @property
    def names(self) -> Sequence[str]:
        return (self.name, *self.aliases)
