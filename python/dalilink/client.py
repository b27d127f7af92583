"""DataLink client connection handle.

``DataLinkClient`` owns one :class:`~dalilink.transport.DataLinkTransport` and
exposes the DataLink commands as plain method calls.  The protocol is strictly
request/response except while streaming, where the server pushes ``PACKET``
messages until the client sends ``ENDSTREAM``.

Position, match and reject results follow the DataLink reply convention:
an ``OK`` reply yields its value (a packet id or a stream count), an
``ERROR`` reply yields ``0``, and transport failures raise
:class:`~dalilink.protocol.DataLinkError`.
"""

from __future__ import annotations

import enum
import getpass
import logging
import os
import platform
import time
from typing import Optional, Tuple, Union

from .protocol import (
    INFO_TYPES,
    MAX_PACKET_SIZE,
    POSITION_EARLIEST,
    POSITION_LATEST,
    ConnectionLostError,
    DataLinkError,
    DataLinkPacket,
    DataLinkResponse,
    PacketTooLargeError,
    parse_capabilities,
    parse_packet,
    parse_reply,
    payload_size,
)
from .timeutil import DLTERROR
from .transport import DataLinkTransport, PeekState, TransportConfig

LOGGER = logging.getLogger("dalilink.client")

Position = Union[int, str]

ENDSTREAM_TIMEOUT = 2.0


class CollectStatus(enum.Enum):
    PACKET = "packet"
    NOPACKET = "nopacket"
    ENDED = "ended"


def default_client_id(progname: str = "dalitool") -> str:
    """Build the ``program:user:pid:arch`` client id sent with ``ID``."""
    try:
        user = getpass.getuser()
    except Exception:
        user = "unknown"
    arch = f"{platform.system()}-{platform.machine()}".strip("-") or "unknown"
    return f"{progname}:{user}:{os.getpid()}:{arch}"


class DataLinkClient:
    """Connection handle for a single DataLink server."""

    def __init__(
        self,
        address: Optional[str] = None,
        *,
        client_id: Optional[str] = None,
        keepalive: float = 0.0,
        max_packet_size: int = MAX_PACKET_SIZE,
        transport: Optional[DataLinkTransport] = None,
        config: Optional[TransportConfig] = None,
    ) -> None:
        self.config = config or TransportConfig.from_address(address)
        self.transport = transport or DataLinkTransport(self.config)
        self.client_id = client_id or default_client_id()
        self.keepalive = keepalive
        self.max_packet_size = max_packet_size
        self.server_id: Optional[str] = None
        self.server_proto: Optional[float] = None
        self.server_packet_size: Optional[int] = None
        self.write_permission = False
        self.streaming = False
        self._end_sent = False
        self._last_traffic = 0.0

    # ------------------------------------------------------------------ state

    @property
    def address(self) -> str:
        return self.config.address

    @property
    def connected(self) -> bool:
        return self.transport.connected

    @property
    def peer(self) -> Optional[str]:
        return self.transport.peer

    def fileno(self) -> int:
        return self.transport.fileno()

    def connect(self) -> str:
        """Connect and exchange IDs; return the server identification."""
        self.transport.connect()
        self.streaming = False
        self._end_sent = False
        try:
            reply = self.identify(self.client_id)
        except DataLinkError:
            self.transport.close()
            raise
        self.server_id = reply[3:] if reply.startswith("ID ") else reply
        proto, packet_size, write = parse_capabilities(reply)
        self.server_proto = proto
        self.server_packet_size = packet_size
        self.write_permission = write
        if packet_size and packet_size > self.max_packet_size:
            LOGGER.warning(
                "server packet size %d exceeds receive buffer of %d bytes", packet_size, self.max_packet_size
            )
        LOGGER.info("connected to %s: %s", self.address, self.server_id)
        return self.server_id

    def disconnect(self) -> None:
        self.streaming = False
        self._end_sent = False
        self.transport.close()

    def peek(self) -> PeekState:
        return self.transport.peek()

    # ---------------------------------------------------------------- requests

    def send_raw(self, header: str, payload: bytes = b"") -> str:
        """Send *header* and return the header of the reply message."""
        self._require_idle()
        self.transport.send(header, payload)
        reply, _ = self.transport.recv_message()
        self._touch()
        return reply

    def identify(self, client_id: Optional[str] = None) -> str:
        """Send ``ID`` and return the raw reply header (``ID <server>...``)."""
        return self.send_raw(f"ID {client_id or self.client_id}")

    def position_set(self, position: Position, pkttime: int = DLTERROR) -> int:
        """Position the read cursor at a packet id or sentinel."""
        if isinstance(position, str):
            token = position.upper()
            if token not in (POSITION_EARLIEST, POSITION_LATEST):
                raise ValueError(f"invalid position sentinel: {position}")
        else:
            token = str(int(position))
        response = self._request(f"POSITION SET {token} {pkttime}")
        return self._three_way(response, f"POSITION SET {token}")

    def position_after(self, dltime: int) -> int:
        """Position the cursor after the first packet with data after *dltime*."""
        response = self._request(f"POSITION AFTER {int(dltime)}")
        return self._three_way(response, "POSITION AFTER")

    def match(self, pattern: Optional[str]) -> int:
        return self._pattern("MATCH", pattern)

    def reject(self, pattern: Optional[str]) -> int:
        return self._pattern("REJECT", pattern)

    def info(self, info_type: str, match: Optional[str] = None) -> bytes:
        """Request an INFO document and return the raw XML bytes."""
        kind = info_type.upper()
        if kind not in INFO_TYPES:
            raise ValueError(f"unknown INFO type: {info_type}")
        header = f"INFO {kind}"
        if match:
            header += f" {match}"
        self._require_idle()
        self.transport.send(header)
        reply, payload = self.transport.recv_message()
        self._touch()
        if reply.startswith("ERROR"):
            response = parse_reply(reply, payload)
            raise DataLinkError(f"INFO {kind} refused: {response.message or response.value}")
        if not reply.startswith("INFO"):
            raise DataLinkError(f"unexpected reply to INFO: {reply}")
        return payload

    def read(self, pktid: int) -> Optional[DataLinkPacket]:
        """Read one packet by id; ``None`` when the server reports an error."""
        self._require_idle()
        self.transport.send(f"READ {int(pktid)}")
        reply, payload = self.transport.recv_message(max_payload=self.max_packet_size)
        self._touch()
        if reply.startswith("PACKET"):
            size = payload_size(reply)
            if size > self.max_packet_size:
                raise PacketTooLargeError(size, self.max_packet_size)
            return parse_packet(reply, payload)
        if reply.startswith("ERROR") or reply.startswith("OK"):
            response = parse_reply(reply, payload)
            LOGGER.info("READ %d: %s", pktid, response.message or response.status)
            return None
        raise DataLinkError(f"unexpected reply to READ: {reply}")

    # --------------------------------------------------------------- streaming

    def stream(self) -> None:
        """Switch the connection into streaming mode."""
        self._require_idle()
        self.transport.send("STREAM")
        self.streaming = True
        self._end_sent = False
        self._touch()

    def collect(
        self,
        *,
        block: bool = True,
        end_requested: bool = False,
    ) -> Tuple[CollectStatus, Optional[DataLinkPacket]]:
        """Collect the next streamed packet.

        With ``block=False`` the call returns ``NOPACKET`` when nothing is
        waiting.  ``end_requested`` sends ``ENDSTREAM`` once; packets already
        in flight are still returned until the server acknowledges with its
        own ``ENDSTREAM``, at which point ``ENDED`` is returned.
        """
        if not self.streaming:
            self.stream()
        if end_requested and not self._end_sent:
            self.transport.send("ENDSTREAM")
            self._end_sent = True
        while True:
            if not block and not self.transport.readable(0.0):
                self._maybe_keepalive()
                return CollectStatus.NOPACKET, None
            if block and not self.transport.readable(self._keepalive_wait()):
                self._maybe_keepalive()
                continue
            reply, payload = self.transport.recv_message(max_payload=self.max_packet_size)
            self._touch()
            if reply.startswith("PACKET"):
                size = payload_size(reply)
                if size > self.max_packet_size:
                    LOGGER.error("skipping packet of %d bytes, receive buffer is %d", size, self.max_packet_size)
                    continue
                return CollectStatus.PACKET, parse_packet(reply, payload)
            if reply.startswith("ENDSTREAM"):
                self.streaming = False
                self._end_sent = False
                return CollectStatus.ENDED, None
            if reply.startswith("ID"):
                LOGGER.debug("keepalive acknowledged")
                if not block:
                    return CollectStatus.NOPACKET, None
                continue
            if reply.startswith("ERROR"):
                response = parse_reply(reply, payload)
                LOGGER.error("server error while streaming: %s", response.message or response.value)
                self.streaming = False
                return CollectStatus.ENDED, None
            LOGGER.warning("unexpected message while streaming: %s", reply)

    def finish_stream(self, timeout: float = ENDSTREAM_TIMEOUT) -> int:
        """Return the connection to request/response mode.

        ``ENDSTREAM`` is sent if it has not been already, and any frames still
        in flight are read and discarded until the server acknowledges.  When
        no acknowledgement arrives within *timeout* seconds the connection is
        closed.  Returns the number of discarded packets.
        """
        if not self.streaming or not self.transport.connected:
            return 0
        if not self._end_sent:
            self.transport.send("ENDSTREAM")
            self._end_sent = True
        discarded = 0
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0 or not self.transport.readable(remaining):
                LOGGER.warning("no ENDSTREAM acknowledgement after %.1f seconds, closing connection", timeout)
                self.disconnect()
                return discarded
            reply, _ = self.transport.recv_message(max_payload=self.max_packet_size)
            self._touch()
            if reply.startswith("PACKET"):
                discarded += 1
                continue
            if reply.startswith("ENDSTREAM") or reply.startswith("ERROR"):
                self.streaming = False
                self._end_sent = False
                if discarded:
                    LOGGER.info("discarded %d packets in flight after ENDSTREAM", discarded)
                return discarded

    def _request(self, header: str, payload: bytes = b"") -> DataLinkResponse:
        self._require_idle()
        self.transport.send(header, payload)
        reply, body = self.transport.recv_message()
        self._touch()
        return parse_reply(reply, body)

    def _pattern(self, command: str, pattern: Optional[str]) -> int:
        data = (pattern or "").encode("utf-8")
        response = self._request(f"{command} {len(data)}", data)
        if not response.ok:
            raise DataLinkError(f"{command} refused: {response.message or response.value}")
        return response.value

    @staticmethod
    def _three_way(response: DataLinkResponse, what: str) -> int:
        if response.ok:
            return max(response.value, 0)
        LOGGER.info("%s: %s", what, response.message or "ERROR")
        return 0

    def _require_idle(self) -> None:
        if not self.transport.connected:
            raise ConnectionLostError("not connected")
        if self.streaming:
            raise DataLinkError("request not allowed while streaming")

    def _touch(self) -> None:
        self._last_traffic = time.monotonic()

    def _keepalive_wait(self) -> float:
        if self.keepalive > 0:
            return max(0.05, self.keepalive - (time.monotonic() - self._last_traffic))
        return 1.0

    def _maybe_keepalive(self) -> None:
        if self.keepalive <= 0:
            return
        if time.monotonic() - self._last_traffic < self.keepalive:
            return
        LOGGER.debug("sending keepalive")
        self.transport.send(f"ID {self.client_id}")
        self._touch()

    def __enter__(self) -> "DataLinkClient":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.disconnect()


__all__ = ["CollectStatus", "DataLinkClient", "default_client_id"]
