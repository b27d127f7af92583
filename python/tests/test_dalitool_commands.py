"""Unit tests for dalitool console commands."""

from __future__ import annotations

import pytest

from dalilink.protocol import DataLinkError, PacketTooLargeError
from dalilink.timeutil import DLTERROR, timestr_to_dltime

from dalitool.commands import build_registry
from dalitool.commands.filters import MatchCommand, RejectCommand
from dalitool.commands.ident import IdCommand
from dalitool.commands.info import InfoCommand
from dalitool.commands.position import PositionAfterCommand, PositionSetCommand, parse_position
from dalitool.commands.read import ReadCommand
from dalitool.context import ConsoleContext
from dalitool.parser import split_command

from dl_stubs import ClientFactory, make_packet

STATUS_XML = (
    b'<DataLink ServerID="Test Ring" Version="2024.001" Capabilities="DLPROTO:1.0">'
    b'<Status StartTime="2024-02-01 00:00:00" TotalConnections="2" TotalStreams="3"/></DataLink>'
)


@pytest.fixture
def ctx():
    factory = ClientFactory()
    context = ConsoleContext(address="localhost:16000", client_factory=factory)
    context.connect()
    context.factory = factory  # type: ignore[attr-defined]
    return context


def _run(command, ctx, line):
    return command.run(ctx, split_command(line))


def test_registry_resolves_case_and_unique_prefixes():
    registry = build_registry()
    assert registry.get("PSET").name == "pset"
    assert registry.get("pa").name == "pafter"
    assert registry.get("quit").name == "exit"
    assert registry.get("BYE").name == "exit"
    assert registry.get("stream").name == "stream"
    assert registry.get("streams").name == "streams"
    assert registry.get("conn") is None  # connect / connections
    assert registry.get("p") is None
    assert registry.get("frobnicate") is None


def _alternating_case(name):
    return "".join(ch.upper() if i % 2 else ch for i, ch in enumerate(name))


@pytest.mark.parametrize("name", build_registry().names())
def test_every_verb_resolves_in_any_case(name):
    registry = build_registry()
    command = registry.get(name)
    assert command is not None
    for spelling in (name.upper(), name.title(), _alternating_case(name)):
        assert registry.get(spelling) is command


def test_parse_position_values():
    assert parse_position("42") == 42
    assert parse_position("earliest") == "EARLIEST"
    assert parse_position("Latest") == "LATEST"
    assert parse_position("abc") is None
    assert parse_position(str(2**63)) is None
    assert parse_position("1_000") is None
    assert parse_position("+5") is None


def test_pset_positions_cursor(ctx, capsys):
    rc = _run(PositionSetCommand(), ctx, "pset 42")
    assert rc == 0
    assert capsys.readouterr().out.strip() == "Positioned to packet ID 42"
    assert ctx.position == 42
    assert ctx.client.calls[-1] == ("position_set", 42, DLTERROR)


def test_pset_sentinel_is_uppercased(ctx, capsys):
    _run(PositionSetCommand(), ctx, "pset earliest")
    assert ctx.client.calls[-1][1] == "EARLIEST"
    assert "Positioned to packet ID 100" in capsys.readouterr().out


def test_pset_rejects_non_numeric_without_request(ctx, capsys):
    calls_before = list(ctx.client.calls)
    rc = _run(PositionSetCommand(), ctx, "pset abc")
    assert rc == 1
    assert capsys.readouterr().out.strip() == "Unrecognized position value: abc"
    assert ctx.client.calls == calls_before


def test_pset_usage_and_not_found(ctx, capsys):
    assert _run(PositionSetCommand(), ctx, "pset") == 1
    assert "Unrecognized usage, try PSET <value>" in capsys.readouterr().out
    ctx.client.position_results[99] = 0
    assert _run(PositionSetCommand(), ctx, "pset 99") == 1
    assert capsys.readouterr().out.strip() == "Packet 99 not found"
    assert ctx.position is None


def test_pset_transport_error(ctx, capsys):
    ctx.client.position_results[5] = DataLinkError("connection reset")
    assert _run(PositionSetCommand(), ctx, "pset 5") == 2
    assert capsys.readouterr().out.startswith("Error requesting position 5")


def test_pafter_joins_date_and_time_tokens(ctx, capsys):
    rc = _run(PositionAfterCommand(), ctx, "pafter 2024-02-01 12:00:00")
    assert rc == 1
    assert capsys.readouterr().out.strip() == "No packet found after 2024,032,12:00:00.000000"
    assert ctx.client.calls[-1] == ("position_after", timestr_to_dltime("2024-02-01T12:00:00"))


def test_pafter_positions_cursor(ctx, capsys):
    ctx.client.after_result = 7
    assert _run(PositionAfterCommand(), ctx, "pafter 2024-02-01T12:00:00") == 0
    assert capsys.readouterr().out.strip() == "Positioned to packet ID 7"
    assert ctx.position == 7


def test_pafter_rejects_bad_time(ctx, capsys):
    assert _run(PositionAfterCommand(), ctx, "pafter noon") == 1
    assert "Unrecognized time value: noon" in capsys.readouterr().out


def test_match_and_reject_store_patterns(ctx, capsys):
    assert _run(MatchCommand(), ctx, "match IU_ANMO_.*") == 0
    assert ctx.match_pattern == "IU_ANMO_.*"
    assert "3 streams selected by IU_ANMO_.*" in capsys.readouterr().out
    assert _run(RejectCommand(), ctx, "reject") == 0
    assert ctx.reject_pattern is None
    assert ctx.client.calls[-1] == ("reject", None)


def test_id_prints_server_identification(ctx, capsys):
    assert _run(IdCommand(), ctx, "id") == 0
    assert capsys.readouterr().out.startswith("Server ID: DataLink 2024.001")
    ctx.client.id_reply = "ID short"
    assert _run(IdCommand(), ctx, "id") == 2
    assert "Malformed ID response" in capsys.readouterr().out


def test_read_summarises_packet(ctx, capsys):
    ctx.client.read_results[5] = make_packet(5, data=b"abcd")
    assert _run(ReadCommand(), ctx, "read 5") == 0
    out = capsys.readouterr().out
    assert out.startswith("IU_ANMO_00_BHZ/MSEED (5), ")
    assert _run(ReadCommand(), ctx, "read 6") == 1
    assert capsys.readouterr().out.strip() == "Packet 6 not found"


def test_read_reports_oversize_packet(ctx, capsys):
    ctx.client.read_results[9] = PacketTooLargeError(20000, 16384)
    assert _run(ReadCommand(), ctx, "read 9") == 2
    assert "too large for receive buffer (20000 > 16384 bytes)" in capsys.readouterr().out


@pytest.mark.parametrize("value", ["1_000", "+5", "5x"])
def test_read_rejects_non_decimal_ids(ctx, capsys, value):
    assert _run(ReadCommand(), ctx, f"read {value}") == 1
    assert capsys.readouterr().out.strip() == f"Unrecognized packet ID: {value}"
    assert not [call for call in ctx.client.calls if call[0] == "read"]


def test_info_passes_verbosity_to_renderer(ctx, capsys):
    ctx.client.info_results["STATUS"] = STATUS_XML
    cmd = InfoCommand("STATUS", "status")
    assert _run(cmd, ctx, "status") == 0
    assert "Capabilities" not in capsys.readouterr().out
    assert _run(cmd, ctx, "status -v") == 0
    assert "Capabilities: DLPROTO:1.0" in capsys.readouterr().out


def test_info_connections_forwards_pattern(ctx):
    ctx.client.info_results["CONNECTIONS"] = b"<DataLink><ConnectionList/></DataLink>"
    cmd = InfoCommand("CONNECTIONS", "connections", accepts_pattern=True)
    assert _run(cmd, ctx, "connections slink.* -vv") == 0
    assert ctx.client.calls[-1] == ("info", "CONNECTIONS", "slink.*")


def test_info_refusal_and_bad_document(ctx, capsys):
    cmd = InfoCommand("STREAMS", "streams")
    assert _run(cmd, ctx, "streams") == 2
    assert "Error requesting INFO STREAMS" in capsys.readouterr().out
    ctx.client.info_results["STREAMS"] = b"<NotDataLink/>"
    assert _run(cmd, ctx, "streams") == 2
    assert "Cannot format INFO STREAMS response" in capsys.readouterr().out
