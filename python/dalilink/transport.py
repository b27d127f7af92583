"""
Transport layer for dalilink.

Responsibilities:
    * Manage the TCP connection to a DataLink server.
    * Frame and unframe DataLink messages (preheader, header, payload).
    * Report connection liveness without consuming protocol bytes.

The transport is synchronous and single threaded; only one request is ever
outstanding on the socket.
"""

from __future__ import annotations

import enum
import logging
import select
import socket
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .protocol import ConnectionLostError, DataLinkError, decode_preheader, encode_header, payload_size

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 16000


class PeekState(enum.Enum):
    READY = "ready"
    EOF = "eof"
    WOULDBLOCK = "wouldblock"


def parse_address(address: Optional[str]) -> Tuple[str, int]:
    """Split ``[host][:][port]`` into a (host, port) pair."""
    text = (address or "").strip()
    if not text:
        return DEFAULT_HOST, DEFAULT_PORT
    if text.startswith("["):
        # [v6addr]:port
        host, _, rest = text[1:].partition("]")
        port_text = rest.lstrip(":")
    elif text.count(":") == 1:
        host, port_text = text.split(":", 1)
    elif text.isdigit():
        host, port_text = "", text
    else:
        host, port_text = text, ""
    host = host or DEFAULT_HOST
    if not port_text:
        return host, DEFAULT_PORT
    try:
        port = int(port_text, 10)
    except ValueError as exc:
        raise ValueError(f"invalid port in address: {address}") from exc
    if not 0 < port < 65536:
        raise ValueError(f"port out of range in address: {address}")
    return host, port


@dataclass
class TransportConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    connect_timeout: float = 10.0
    read_timeout: float = 60.0

    @classmethod
    def from_address(cls, address: Optional[str], **kwargs) -> "TransportConfig":
        host, port = parse_address(address)
        return cls(host=host, port=port, **kwargs)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class DataLinkTransport:
    """Thin synchronous wrapper around the DataLink TCP socket."""

    config: TransportConfig = field(default_factory=TransportConfig)

    _sock: Optional[socket.socket] = field(init=False, default=None)
    _peer: Optional[str] = field(init=False, default=None)

    #
    # Connection lifecycle helpers
    #
    @property
    def connected(self) -> bool:
        return self._sock is not None

    @property
    def peer(self) -> Optional[str]:
        """Resolved ``ip:port`` of the server, when connected."""
        return self._peer

    def connect(self) -> None:
        """Open TCP connection to the server."""
        if self._sock:
            return
        try:
            sock = socket.create_connection(
                (self.config.host, self.config.port),
                timeout=self.config.connect_timeout,
            )
        except OSError as exc:
            raise DataLinkError(f"connect to {self.config.address} failed: {exc}") from exc
        sock.settimeout(self.config.read_timeout)
        try:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            logger.debug("TCP_NODELAY not supported")
        self._sock = sock
        try:
            peer = sock.getpeername()
            self._peer = f"{peer[0]}:{peer[1]}"
        except OSError:
            self._peer = self.config.address
        logger.debug("connected to %s", self._peer)

    def close(self) -> None:
        sock = self._sock
        self._sock = None
        self._peer = None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            sock.close()
        except OSError as exc:
            logger.debug("socket close failed: %s", exc)

    def fileno(self) -> int:
        if not self._sock:
            raise ConnectionLostError("not connected")
        return self._sock.fileno()

    #
    # Liveness
    #
    def peek(self) -> PeekState:
        """Non-destructive, non-blocking check of the socket.

        ``EOF`` means the peer closed the connection (or the socket failed);
        ``READY`` means unread bytes are waiting; ``WOULDBLOCK`` means the
        connection is idle and alive.  No bytes are consumed.
        """
        sock = self._sock
        if sock is None:
            return PeekState.EOF
        timeout = sock.gettimeout()
        sock.setblocking(False)
        try:
            data = sock.recv(1, socket.MSG_PEEK)
        except (BlockingIOError, InterruptedError):
            return PeekState.WOULDBLOCK
        except OSError as exc:
            logger.debug("peek failed: %s", exc)
            return PeekState.EOF
        finally:
            try:
                sock.settimeout(timeout)
            except OSError:
                pass
        return PeekState.READY if data else PeekState.EOF

    def readable(self, timeout: float = 0.0) -> bool:
        sock = self._sock
        if sock is None:
            raise ConnectionLostError("not connected")
        try:
            ready, _, _ = select.select([sock], [], [], max(0.0, timeout))
        except (OSError, ValueError) as exc:
            self._handle_disconnect(exc)
            raise ConnectionLostError(f"select failed: {exc}") from exc
        return bool(ready)

    #
    # Message I/O
    #
    def send(self, header: str, payload: bytes = b"") -> None:
        sock = self._sock
        if sock is None:
            raise ConnectionLostError("not connected")
        message = encode_header(header) + payload
        logger.debug("send: %s (%d payload bytes)", header, len(payload))
        try:
            sock.sendall(message)
        except OSError as exc:
            self._handle_disconnect(exc)
            raise ConnectionLostError(f"send failed: {exc}") from exc

    def recv_message(self, *, max_payload: Optional[int] = None) -> Tuple[str, bytes]:
        """Receive one message and return ``(header, payload)``.

        When *max_payload* is given and the announced payload is larger, the
        payload is read and discarded and an empty payload is returned with the
        header; callers compare :func:`payload_size` against their limit.
        """
        length = decode_preheader(self._recv_exact(3))
        header = self._recv_exact(length).decode("ascii", errors="replace").strip()
        size = payload_size(header)
        if size and max_payload is not None and size > max_payload:
            self._discard(size)
            logger.debug("recv: %s (payload discarded)", header)
            return header, b""
        payload = self._recv_exact(size) if size else b""
        logger.debug("recv: %s (%d payload bytes)", header, len(payload))
        return header, payload

    #
    # Internal helpers
    #
    def _recv_exact(self, size: int) -> bytes:
        sock = self._sock
        if sock is None:
            raise ConnectionLostError("not connected")
        chunks = []
        remaining = size
        while remaining > 0:
            try:
                chunk = sock.recv(min(remaining, 65536))
            except socket.timeout as exc:
                self._handle_disconnect(exc)
                raise ConnectionLostError("timed out waiting for server") from exc
            except OSError as exc:
                self._handle_disconnect(exc)
                raise ConnectionLostError(f"receive failed: {exc}") from exc
            if not chunk:
                self._handle_disconnect()
                raise ConnectionLostError("connection closed by server")
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def _discard(self, size: int) -> None:
        remaining = size
        while remaining > 0:
            chunk = self._recv_exact(min(remaining, 65536))
            remaining -= len(chunk)

    def _handle_disconnect(self, exc: Optional[BaseException] = None) -> None:
        if exc is not None:
            logger.debug("transport disconnect: %s", exc)
        self.close()


__all__ = ["DataLinkTransport", "PeekState", "TransportConfig", "parse_address"]
