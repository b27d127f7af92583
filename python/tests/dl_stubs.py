"""Stub DataLink peers for dalitool tests."""

from __future__ import annotations

import socket
import struct
import threading
from typing import Dict, List, Optional, Tuple

from dalilink.client import CollectStatus
from dalilink.protocol import DataLinkError, DataLinkPacket
from dalilink.timeutil import DLTERROR
from dalilink.transport import PeekState

SERVER_ID = "DataLink 2024.001 :: DLPROTO:1.0 PACKETSIZE:512 WRITE"


def make_packet(pktid: int, *, streamid: str = "IU_ANMO_00_BHZ/MSEED", data: bytes = b"", start: int = 0) -> DataLinkPacket:
    start = start or 1_706_790_615_000_000 + pktid * 1_000_000
    return DataLinkPacket(
        streamid=streamid,
        pktid=pktid,
        pkttime=start + 2_000_000,
        datastart=start,
        dataend=start + 600_000,
        data=data,
    )


def build_mseed2(samples: List[int], *, encoding: int = 3, reclen_exp: int = 9) -> bytes:
    """Big-endian miniSEED 2 record for IU.ANMO.00.BHZ at 2024-02-01T12:30:15, 20 Hz."""
    header = struct.pack(
        ">6sc1x5s2s3s2sHHBBBxHHhhBBBBiHH",
        b"000001",
        b"D",
        b"ANMO ",
        b"00",
        b"BHZ",
        b"IU",
        2024,
        32,
        12,
        30,
        15,
        0,
        len(samples),
        20,
        1,
        0,
        0,
        0,
        1,
        0,
        64,
        48,
    )
    b1000 = struct.pack(">HHBBBx", 1000, 0, encoding, 1, reclen_exp)
    data = struct.pack(f">{len(samples)}i", *samples)
    record = header + b1000 + bytes(8) + data
    return record.ljust(1 << reclen_exp, b"\0")


def build_mseed3(samples: List[float], *, sid: str = "FDSN:XX_TEST__H_H_Z") -> bytes:
    """Little-endian miniSEED 3 record of float32 samples at 100 Hz."""
    data = struct.pack(f"<{len(samples)}f", *samples)
    sid_bytes = sid.encode("ascii")
    header = struct.pack(
        "<2sBBIHHBBBBdIIBBHI",
        b"MS",
        3,
        0,
        500_000_000,
        2024,
        32,
        12,
        30,
        15,
        4,
        100.0,
        len(samples),
        0x1234ABCD,
        1,
        len(sid_bytes),
        0,
        len(data),
    )
    return header + sid_bytes + data


class DummyDataLinkServer:
    """Threaded DataLink server answering from in-memory packets and INFO documents."""

    def __init__(
        self,
        packets: Optional[List[DataLinkPacket]] = None,
        info: Optional[Dict[str, bytes]] = None,
        *,
        end_after_stream: bool = False,
        ack_endstream: bool = True,
    ) -> None:
        self.packets: Dict[int, DataLinkPacket] = {pkt.pktid: pkt for pkt in (packets or [])}
        self.info = dict(info or {})
        self.end_after_stream = end_after_stream
        self.ack_endstream = ack_endstream
        self.stream_count = 3
        self.received: List[Tuple[int, str, bytes]] = []
        self.connections = 0
        self._conns: List[socket.socket] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", 0))
        self.port = self._sock.getsockname()[1]
        self._sock.listen(5)
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    @property
    def address(self) -> str:
        return f"127.0.0.1:{self.port}"

    def headers(self, connection: Optional[int] = None) -> List[str]:
        with self._lock:
            return [header for conn_no, header, _ in self.received if connection in (None, conn_no)]

    def close_clients(self) -> None:
        """Drop every open client connection, leaving the listener up."""
        with self._lock:
            conns, self._conns = self._conns, []
        for conn in conns:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            conn.close()

    def stop(self) -> None:
        self._stop.set()
        self.close_clients()
        try:
            self._sock.close()
        except OSError:
            pass

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except OSError:
                break
            with self._lock:
                self.connections += 1
                conn_no = self.connections
                self._conns.append(conn)
            thread = threading.Thread(target=self._handle_client, args=(conn, conn_no), daemon=True)
            thread.start()

    def _recv_exact(self, conn: socket.socket, size: int) -> bytes:
        data = b""
        while len(data) < size:
            chunk = conn.recv(size - len(data))
            if not chunk:
                raise ConnectionError("client closed")
            data += chunk
        return data

    def _handle_client(self, conn: socket.socket, conn_no: int) -> None:
        try:
            while not self._stop.is_set():
                pre = self._recv_exact(conn, 3)
                header = self._recv_exact(conn, pre[2]).decode("ascii")
                payload = b""
                if header.startswith(("MATCH", "REJECT")):
                    payload = self._recv_exact(conn, int(header.split()[-1]))
                with self._lock:
                    self.received.append((conn_no, header, payload))
                self._respond(conn, header, payload)
        except (ConnectionError, OSError):
            pass

    def _send(self, conn: socket.socket, header: str, payload: bytes = b"") -> None:
        raw = header.encode("ascii")
        conn.sendall(b"DL" + bytes([len(raw)]) + raw + payload)

    def _send_error(self, conn: socket.socket, message: str) -> None:
        body = message.encode("ascii")
        self._send(conn, f"ERROR 0 {len(body)}", body)

    def _send_packet(self, conn: socket.socket, pkt: DataLinkPacket) -> None:
        self._send(
            conn,
            f"PACKET {pkt.streamid} {pkt.pktid} {pkt.pkttime} {pkt.datastart} {pkt.dataend} {len(pkt.data)}",
            pkt.data,
        )

    def _respond(self, conn: socket.socket, header: str, payload: bytes) -> None:
        fields = header.split()
        verb = fields[0]
        if verb == "ID":
            self._send(conn, f"ID {SERVER_ID}")
        elif verb == "POSITION" and fields[1] == "SET":
            target = fields[2]
            ids = sorted(self.packets)
            if target == "EARLIEST" and ids:
                self._send(conn, f"OK {ids[0]} 0")
            elif target == "LATEST" and ids:
                self._send(conn, f"OK {ids[-1]} 0")
            elif target.lstrip("-").isdigit() and int(target) in self.packets:
                self._send(conn, f"OK {target} 0")
            else:
                self._send_error(conn, "Packet not found")
        elif verb == "POSITION" and fields[1] == "AFTER":
            after = int(fields[2])
            found = [pkt.pktid for pkt in self.packets.values() if pkt.dataend > after]
            if found:
                self._send(conn, f"OK {min(found)} 0")
            else:
                self._send_error(conn, "No packet found")
        elif verb in ("MATCH", "REJECT"):
            self._send(conn, f"OK {self.stream_count} 0")
        elif verb == "INFO":
            doc = self.info.get(fields[1])
            if doc is None:
                self._send_error(conn, f"INFO {fields[1]} not available")
            else:
                self._send(conn, f"INFO {fields[1]} {len(doc)}", doc)
        elif verb == "READ":
            pkt = self.packets.get(int(fields[1]))
            if pkt is None:
                self._send_error(conn, "Packet not found")
            else:
                self._send_packet(conn, pkt)
        elif verb == "STREAM":
            for pktid in sorted(self.packets):
                self._send_packet(conn, self.packets[pktid])
            if self.end_after_stream:
                self._send(conn, "ENDSTREAM")
        elif verb == "ENDSTREAM":
            if self.ack_endstream:
                self._send(conn, "ENDSTREAM")
        else:
            self._send_error(conn, f"Unrecognized command: {verb}")


class FakeClient:
    """In-memory stand-in for :class:`dalilink.client.DataLinkClient`."""

    def __init__(
        self,
        address: str = "localhost:16000",
        *,
        client_id: Optional[str] = None,
        keepalive: float = 0.0,
        max_packet_size: int = 16384,
        fail_connect: bool = False,
    ) -> None:
        self.address = address
        self.client_id = client_id
        self.keepalive = keepalive
        self.max_packet_size = max_packet_size
        self.fail_connect = fail_connect
        self.connected = False
        self.peer = "127.0.0.1:16000"
        self.server_id = "DataLink 2024.001"
        self.id_reply = f"ID {SERVER_ID}"
        self.peek_state = PeekState.WOULDBLOCK
        self.position_results: Dict[object, int] = {}
        self.after_result = 0
        self.match_count = 3
        self.info_results: Dict[str, bytes] = {}
        self.read_results: Dict[int, object] = {}
        self.script: List[object] = []
        self.after_end: List[object] = []
        self.end_acknowledged = True
        self.end_sent = 0
        self.calls: List[tuple] = []

    def connect(self) -> str:
        self.calls.append(("connect",))
        if self.fail_connect:
            raise DataLinkError("connection refused")
        self.connected = True
        return self.server_id

    def disconnect(self) -> None:
        self.calls.append(("disconnect",))
        self.connected = False

    def peek(self) -> PeekState:
        return self.peek_state

    def identify(self, client_id: Optional[str] = None) -> str:
        self.calls.append(("identify", client_id))
        return self.id_reply

    def position_set(self, position, pkttime: int = DLTERROR) -> int:
        self.calls.append(("position_set", position, pkttime))
        result = self.position_results.get(position)
        if isinstance(result, Exception):
            raise result
        if result is not None:
            return result
        return position if isinstance(position, int) else 100

    def position_after(self, dltime: int) -> int:
        self.calls.append(("position_after", dltime))
        return self.after_result

    def match(self, pattern: Optional[str]) -> int:
        self.calls.append(("match", pattern))
        return self.match_count

    def reject(self, pattern: Optional[str]) -> int:
        self.calls.append(("reject", pattern))
        return self.match_count

    def info(self, info_type: str, match: Optional[str] = None) -> bytes:
        self.calls.append(("info", info_type, match))
        if info_type not in self.info_results:
            raise DataLinkError(f"INFO {info_type} refused")
        return self.info_results[info_type]

    def read(self, pktid: int):
        self.calls.append(("read", pktid))
        result = self.read_results.get(pktid)
        if isinstance(result, Exception):
            raise result
        return result

    def stream(self) -> None:
        self.calls.append(("stream",))

    def collect(self, *, block: bool = True, end_requested: bool = False):
        if end_requested and not self.end_sent:
            self.end_sent += 1
            self.calls.append(("endstream",))
            self.script.extend(self.after_end)
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, Exception):
                raise item
            if item == "nopacket":
                return CollectStatus.NOPACKET, None
            return CollectStatus.PACKET, item
        if self.end_sent:
            return CollectStatus.ENDED, None
        return CollectStatus.NOPACKET, None

    def finish_stream(self, timeout: float = 2.0) -> int:
        self.calls.append(("finish_stream", timeout))
        discarded = [item for item in self.script if isinstance(item, DataLinkPacket)]
        self.script = []
        if not self.end_acknowledged:
            self.disconnect()
        return len(discarded)


class ClientFactory:
    """Creates :class:`FakeClient` instances for a console context."""

    def __init__(self) -> None:
        self.created: List[FakeClient] = []
        self.fail = False

    def __call__(self, address: str, **kwargs) -> FakeClient:
        client = FakeClient(address, fail_connect=self.fail, **kwargs)
        self.created.append(client)
        return client
