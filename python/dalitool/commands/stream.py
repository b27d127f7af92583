"""STREAM command."""

from __future__ import annotations

from .base import Command
from ..context import ConsoleContext
from ..parser import ParsedCommand
from ..streaming import StreamMultiplexer


class StreamCommand(Command):
    def __init__(self) -> None:
        super().__init__("stream", "Stream packets until Enter is pressed")

    def run(self, ctx: ConsoleContext, command: ParsedCommand) -> int:
        return StreamMultiplexer(ctx).run()
