"""INFO STATUS / STREAMS / CONNECTIONS commands."""

from __future__ import annotations

import logging

from dalilink.protocol import DataLinkError

from .base import Command
from ..context import ConsoleContext
from ..infofmt import InfoDocumentError, render_info
from ..output import emit_block, emit_error
from ..parser import ParsedCommand

LOGGER = logging.getLogger("dalitool.commands.info")


class InfoCommand(Command):
    """Request an INFO document and print it formatted."""

    def __init__(self, info_type: str, description: str, *, accepts_pattern: bool = False) -> None:
        usage = "[pattern] [-v...]" if accepts_pattern else "[-v...]"
        super().__init__(info_type.lower(), description, usage=usage)
        self.info_type = info_type.upper()
        self.accepts_pattern = accepts_pattern

    def run(self, ctx: ConsoleContext, command: ParsedCommand) -> int:
        pattern = command.args[0] if self.accepts_pattern and command.args else None
        client = ctx.client
        if client is None:
            emit_error("Not connected")
            return 2
        try:
            raw = client.info(self.info_type, pattern)
        except DataLinkError as exc:
            emit_error(f"Error requesting INFO {self.info_type}: {exc}")
            return 2
        try:
            text = render_info(self.info_type, raw, command.verbosity)
        except InfoDocumentError as exc:
            LOGGER.warning("INFO %s not rendered: %s", self.info_type, exc)
            emit_error(f"Cannot format INFO {self.info_type} response: {exc}")
            return 2
        emit_block(text)
        return 0


def build_info_commands():
    return [
        InfoCommand("STATUS", "Print server ID and status"),
        InfoCommand("STREAMS", "Print the stream list"),
        InfoCommand("CONNECTIONS", "Print the connection list, optionally matching clients", accepts_pattern=True),
    ]
