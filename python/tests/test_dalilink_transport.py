import time

import pytest

from dalilink.protocol import (
    DataLinkError,
    decode_preheader,
    encode_header,
    parse_capabilities,
    parse_packet,
    parse_reply,
    payload_size,
)
from dalilink.transport import DataLinkTransport, PeekState, TransportConfig, parse_address

from dl_stubs import SERVER_ID, DummyDataLinkServer


@pytest.fixture
def server():
    srv = DummyDataLinkServer()
    yield srv
    srv.stop()


def _transport(server: DummyDataLinkServer) -> DataLinkTransport:
    transport = DataLinkTransport(TransportConfig(host="127.0.0.1", port=server.port, read_timeout=5.0))
    transport.connect()
    return transport


@pytest.mark.parametrize(
    "text,expected",
    [
        ("", ("localhost", 16000)),
        ("ringserver", ("ringserver", 16000)),
        ("ringserver:18000", ("ringserver", 18000)),
        (":18000", ("localhost", 18000)),
        ("18000", ("localhost", 18000)),
        ("[::1]:16001", ("::1", 16001)),
    ],
)
def test_parse_address_variants(text, expected):
    assert parse_address(text) == expected


def test_parse_address_rejects_bad_port():
    with pytest.raises(ValueError):
        parse_address("ringserver:abc")
    with pytest.raises(ValueError):
        parse_address("ringserver:70000")


def test_header_framing_helpers():
    assert encode_header("ID test") == b"DL\x07ID test"
    assert decode_preheader(b"DL\x07") == 7
    with pytest.raises(DataLinkError):
        decode_preheader(b"XX\x07")
    with pytest.raises(DataLinkError):
        encode_header("MATCH " + "x" * 300)


def test_reply_and_packet_parsing():
    assert payload_size("OK 42 0") == 0
    assert payload_size("ERROR 0 16") == 16
    assert payload_size("INFO STATUS 900") == 900
    assert payload_size("PACKET IU_ANMO_00_BHZ/MSEED 5 10 20 30 512") == 512
    response = parse_reply("ERROR 0 16", b"Packet not found")
    assert not response.ok
    assert response.message == "Packet not found"
    packet = parse_packet("PACKET IU_ANMO_00_BHZ/MSEED 5 10 20 30 4", b"abcd")
    assert (packet.pktid, packet.pkttime, packet.datastart, packet.dataend) == (5, 10, 20, 30)
    assert packet.payload_type == "MSEED"
    assert packet.datasize == 4


def test_parse_capabilities():
    assert parse_capabilities(f"ID {SERVER_ID}") == (1.0, 512, True)
    assert parse_capabilities("ID DataLink 2008.001") == (None, None, False)


def test_transport_round_trip(server):
    transport = _transport(server)
    try:
        transport.send("ID tester")
        header, payload = transport.recv_message()
        assert header == f"ID {SERVER_ID}"
        assert payload == b""
        transport.send("MATCH 5", b"IU_.*")
        header, _ = transport.recv_message()
        assert header == "OK 3 0"
        assert server.received[-1][2] == b"IU_.*"
    finally:
        transport.close()
    assert not transport.connected


def test_transport_discards_oversize_payload(server):
    server.info["STATUS"] = b"<DataLink/>" * 10
    transport = _transport(server)
    try:
        transport.send("INFO STATUS")
        header, payload = transport.recv_message(max_payload=8)
        assert header.startswith("INFO STATUS")
        assert payload == b""
        transport.send("ID tester")
        header, _ = transport.recv_message()
        assert header.startswith("ID ")
    finally:
        transport.close()


def test_peek_reports_idle_then_eof(server):
    transport = _transport(server)
    try:
        # round-trip so the server has registered the connection
        transport.send("ID tester")
        transport.recv_message()
        assert transport.peek() is PeekState.WOULDBLOCK
        assert server.connections == 1
        server.close_clients()
        deadline = time.time() + 2.0
        state = transport.peek()
        while state is not PeekState.EOF and time.time() < deadline:
            time.sleep(0.02)
            state = transport.peek()
        assert state is PeekState.EOF
        # peek never consumes or closes
        assert transport.connected
    finally:
        transport.close()


def test_connect_failure_raises():
    transport = DataLinkTransport(TransportConfig(host="127.0.0.1", port=1, connect_timeout=1.0))
    with pytest.raises(DataLinkError):
        transport.connect()
    assert not transport.connected
