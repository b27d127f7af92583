"""READ command."""

from __future__ import annotations

from dalilink.protocol import DataLinkError, PacketTooLargeError

from .base import Command
from ..context import ConsoleContext
from ..output import emit_error, emit_result
from ..parser import ParsedCommand, parse_decimal
from ..summary import summarize_packet


class ReadCommand(Command):
    def __init__(self) -> None:
        super().__init__("read", "Read and summarise the packet with the given ID", usage="<packetID>")

    def run(self, ctx: ConsoleContext, command: ParsedCommand) -> int:
        if not command.args:
            emit_error("Unrecognized usage, try READ <packetID>")
            return 1
        value = command.args[0]
        pktid = parse_decimal(value)
        if pktid is None:
            emit_error(f"Unrecognized packet ID: {value}")
            return 1
        client = ctx.client
        if client is None:
            emit_error("Not connected")
            return 2
        try:
            packet = client.read(pktid)
        except PacketTooLargeError as exc:
            emit_error(f"Packet {pktid} too large for receive buffer ({exc.size} > {exc.limit} bytes)")
            return 2
        except DataLinkError as exc:
            emit_error(f"Error reading packet {pktid}: {exc}")
            return 2
        if packet is None:
            emit_result(f"Packet {pktid} not found")
            return 1
        summarize_packet(packet, details=0, samples=0)
        return 0
