"""POSITION SET / POSITION AFTER commands."""

from __future__ import annotations

from typing import Optional, Union

from dalilink.protocol import POSITION_EARLIEST, POSITION_LATEST, DataLinkError
from dalilink.timeutil import dltime_to_seedstr, timestr_to_dltime

from .base import Command
from ..context import ConsoleContext
from ..output import emit_error, emit_result
from ..parser import ParsedCommand, parse_decimal

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def parse_position(value: str) -> Optional[Union[int, str]]:
    """Return a sentinel name, a packet id, or ``None`` when *value* is neither."""
    upper = value.upper()
    if upper in (POSITION_EARLIEST, POSITION_LATEST):
        return upper
    number = parse_decimal(value)
    if number is None or not INT64_MIN <= number <= INT64_MAX:
        return None
    return number


class PositionSetCommand(Command):
    def __init__(self) -> None:
        super().__init__(
            "pset",
            "Issue POSITION SET with a packet ID, EARLIEST or LATEST",
            usage="<packetID>",
        )

    def run(self, ctx: ConsoleContext, command: ParsedCommand) -> int:
        if not command.args:
            emit_error("Unrecognized usage, try PSET <value>")
            return 1
        value = command.args[0]
        position = parse_position(value)
        if position is None:
            emit_error(f"Unrecognized position value: {value}")
            return 1
        client = ctx.client
        if client is None:
            emit_error("Not connected")
            return 2
        try:
            pktid = client.position_set(position)
        except DataLinkError as exc:
            emit_error(f"Error requesting position {value}: {exc}")
            return 2
        if pktid > 0:
            ctx.update_position(pktid)
            emit_result(f"Positioned to packet ID {pktid}")
            return 0
        emit_result(f"Packet {value} not found")
        return 1


class PositionAfterCommand(Command):
    def __init__(self) -> None:
        super().__init__(
            "pafter",
            "Issue POSITION AFTER with a time (YYYY-MM-DDTHH:MM:SS.ffffff)",
            usage="<time>",
        )

    def run(self, ctx: ConsoleContext, command: ParsedCommand) -> int:
        if not command.args:
            emit_error("Unrecognized usage, try PAFTER <time>")
            return 1
        # "YYYY-MM-DD HH:MM:SS" arrives as two tokens
        text = " ".join(command.args)
        try:
            dltime = timestr_to_dltime(text)
        except ValueError:
            try:
                text = command.args[0]
                dltime = timestr_to_dltime(text)
            except ValueError:
                emit_error(f"Unrecognized time value: {' '.join(command.args)}")
                return 1
        client = ctx.client
        if client is None:
            emit_error("Not connected")
            return 2
        try:
            pktid = client.position_after(dltime)
        except DataLinkError as exc:
            emit_error(f"Error requesting position after {text}: {exc}")
            return 2
        if pktid > 0:
            ctx.update_position(pktid)
            emit_result(f"Positioned to packet ID {pktid}")
            return 0
        emit_result(f"No packet found after {dltime_to_seedstr(dltime)}")
        return 1
