"""DataLink message framing, reply parsing and packet types.

Every DataLink message starts with a three byte preheader: the ASCII
characters ``DL`` followed by a single unsigned byte holding the length of the
header that follows.  The header is plain ASCII; when a payload follows it, the
last space separated header field is the payload size in bytes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

PREHEADER = b"DL"
MAX_HEADER_SIZE = 255
MAX_PACKET_SIZE = 16384

# Cursor sentinels understood by POSITION SET
POSITION_EARLIEST = "EARLIEST"
POSITION_LATEST = "LATEST"

INFO_TYPES = ("STATUS", "STREAMS", "CONNECTIONS")


class DataLinkError(RuntimeError):
    """Raised when a DataLink exchange cannot be completed."""


class ConnectionLostError(DataLinkError):
    """Raised when the server closes the connection or the socket fails."""


class PacketTooLargeError(DataLinkError):
    """Raised when a packet does not fit the receive buffer."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"packet of {size} bytes exceeds receive buffer of {limit} bytes")
        self.size = size
        self.limit = limit


@dataclass
class DataLinkResponse:
    """Parsed ``OK``/``ERROR`` reply."""

    status: str
    value: int
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "OK"


@dataclass
class DataLinkPacket:
    """A single ``PACKET`` message.

    Times are DataLink time values (integer microseconds since the epoch).
    """

    streamid: str
    pktid: int
    pkttime: int
    datastart: int
    dataend: int
    data: bytes = b""

    @property
    def datasize(self) -> int:
        return len(self.data)

    @property
    def payload_type(self) -> str:
        """Return the type suffix of the stream id (``MSEED`` for ``NET_STA_LOC_CHA/MSEED``)."""
        _, sep, suffix = self.streamid.rpartition("/")
        return suffix.upper() if sep else ""


def encode_header(header: str) -> bytes:
    raw = header.encode("ascii")
    if len(raw) > MAX_HEADER_SIZE:
        raise DataLinkError(f"header too long ({len(raw)} bytes): {header[:40]}...")
    return PREHEADER + bytes([len(raw)]) + raw


def decode_preheader(preheader: bytes) -> int:
    """Validate a preheader and return the header length."""
    if len(preheader) != 3 or preheader[:2] != PREHEADER:
        raise DataLinkError(f"invalid DataLink preheader: {preheader!r}")
    length = preheader[2]
    if length == 0:
        raise DataLinkError("empty DataLink header")
    return length


def payload_size(header: str) -> int:
    """Return the payload size announced by *header* (0 when none)."""
    fields = header.split()
    if not fields:
        return 0
    kind = fields[0]
    if kind in ("OK", "ERROR") and len(fields) >= 3:
        return _to_int(fields[2], "reply size")
    if kind == "INFO" and len(fields) >= 3:
        return _to_int(fields[-1], "info size")
    if kind == "PACKET" and len(fields) >= 7:
        return _to_int(fields[6], "packet size")
    return 0


def parse_reply(header: str, payload: bytes) -> DataLinkResponse:
    fields = header.split()
    if len(fields) < 2 or fields[0] not in ("OK", "ERROR"):
        raise DataLinkError(f"unexpected reply: {header}")
    value = _to_int(fields[1], "reply value")
    message = payload.decode("utf-8", errors="replace").strip()
    return DataLinkResponse(status=fields[0], value=value, message=message)


def parse_packet(header: str, payload: bytes) -> DataLinkPacket:
    fields = header.split()
    if len(fields) < 7 or fields[0] != "PACKET":
        raise DataLinkError(f"malformed PACKET header: {header}")
    return DataLinkPacket(
        streamid=fields[1],
        pktid=_to_int(fields[2], "packet id"),
        pkttime=_to_int(fields[3], "packet time"),
        datastart=_to_int(fields[4], "data start"),
        dataend=_to_int(fields[5], "data end"),
        data=payload,
    )


def parse_capabilities(server_id: str) -> Tuple[Optional[float], Optional[int], bool]:
    """Extract ``DLPROTO``, ``PACKETSIZE`` and ``WRITE`` flags from an ID reply.

    A reply looks like ``ID DataLink 2023.335 :: DLPROTO:1.0 PACKETSIZE:512 WRITE``.
    """
    _, sep, caps = server_id.partition("::")
    if not sep:
        return None, None, False
    proto: Optional[float] = None
    packet_size: Optional[int] = None
    write = False
    for token in caps.split():
        key, _, value = token.partition(":")
        key = key.upper()
        if key == "DLPROTO":
            try:
                proto = float(value)
            except ValueError:
                proto = None
        elif key == "PACKETSIZE":
            try:
                packet_size = int(value)
            except ValueError:
                packet_size = None
        elif key == "WRITE":
            write = True
    return proto, packet_size, write


def _to_int(text: str, what: str) -> int:
    try:
        return int(text, 10)
    except ValueError as exc:
        raise DataLinkError(f"invalid {what}: {text!r}") from exc


__all__ = [
    "ConnectionLostError",
    "DataLinkError",
    "DataLinkPacket",
    "DataLinkResponse",
    "INFO_TYPES",
    "MAX_PACKET_SIZE",
    "PacketTooLargeError",
    "POSITION_EARLIEST",
    "POSITION_LATEST",
    "decode_preheader",
    "encode_header",
    "parse_capabilities",
    "parse_packet",
    "parse_reply",
    "payload_size",
]
