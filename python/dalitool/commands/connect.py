"""Connect command implementation."""

from __future__ import annotations

import logging

from dalilink.protocol import DataLinkError
from dalilink.transport import parse_address

from .base import Command
from ..context import ConsoleContext
from ..output import emit_error, emit_result
from ..parser import ParsedCommand

LOGGER = logging.getLogger("dalitool.commands.connect")


class ConnectCommand(Command):
    def __init__(self) -> None:
        super().__init__(
            "connect",
            "Reconnect, optionally to a new [host][:][port]",
            usage="[address]",
            requires_connection=False,
        )

    def run(self, ctx: ConsoleContext, command: ParsedCommand) -> int:
        if command.args:
            address = command.args[0]
            try:
                host, port = parse_address(address)
            except ValueError as exc:
                emit_error(f"Invalid address: {exc}")
                return 1
            ctx.address = f"{host}:{port}"
        try:
            client = ctx.connect()
        except DataLinkError as exc:
            LOGGER.debug("connect failed", exc_info=True)
            emit_error(f"Cannot connect to {ctx.address}: {exc}")
            return 2
        peer = client.peer or ctx.address
        emit_result(f"Connected to {ctx.address} [{peer}] ({client.server_id or '-'})")
        return 0
