"""Identification exchange."""

from __future__ import annotations

from dalilink.protocol import DataLinkError

from .base import Command
from ..context import ConsoleContext
from ..output import emit_error, emit_result
from ..parser import ParsedCommand

ID_PREFIX_LEN = 3
MIN_ID_LEN = 12


class IdCommand(Command):
    def __init__(self) -> None:
        super().__init__("id", "Send ID command and print the server identification")

    def run(self, ctx: ConsoleContext, command: ParsedCommand) -> int:
        client = ctx.client
        if client is None:
            emit_error("Not connected")
            return 2
        try:
            reply = client.identify(ctx.client_id)
        except DataLinkError as exc:
            emit_error(f"Error requesting ID: {exc}")
            return 2
        if len(reply) < MIN_ID_LEN:
            emit_error(f"Malformed ID response: {reply!r}")
            return 2
        emit_result(f"Server ID: {reply[ID_PREFIX_LEN:]}")
        return 0
