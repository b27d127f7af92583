"""Formatted rendering of DataLink INFO documents.

The server answers ``INFO STATUS``, ``INFO STREAMS`` and ``INFO CONNECTIONS``
with an XML document whose root element is ``<DataLink>``.  The renderers
here turn a parsed document into text at a given level:

* level 0: summary
* level 1: adds operational counters (capabilities, packet ids, TX/RX rates)
* level 2: adds the match/reject patterns of each connection (60 characters)

Attribute values are printed as the server formatted them; a missing value is
shown as ``-``.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import List, Optional

from dalilink.timeutil import dltime_now, dltime_to_mdstr, seconds_between, timestr_to_dltime

LOGGER = logging.getLogger("dalitool.infofmt")

ROOT_TAG = "DataLink"
PLACEHOLDER = "-"
PATTERN_WIDTH = 60


class InfoDocumentError(ValueError):
    """Raised when an INFO document cannot be rendered."""


def parse_info(raw: bytes) -> ET.Element:
    try:
        return ET.fromstring(raw)
    except ET.ParseError as exc:
        raise InfoDocumentError(f"XML parse error: {exc}") from exc


def _attr(element: Optional[ET.Element], name: str) -> str:
    if element is None:
        return PLACEHOLDER
    value = element.get(name)
    if value is None or value == "":
        return PLACEHOLDER
    return value


def _check_root(doc: ET.Element) -> None:
    if doc.tag != ROOT_TAG:
        LOGGER.error("XML INFO root tag is not <%s>, invalid data", ROOT_TAG)
        raise InfoDocumentError(f"XML INFO root tag is <{doc.tag}>, expected <{ROOT_TAG}>")


def _preamble(doc: ET.Element, now: int) -> List[str]:
    return [
        f"Current time: {dltime_to_mdstr(now, subseconds=False)} UTC",
        f"Server ID: {_attr(doc, 'ServerID')} ({_attr(doc, 'Version')})",
    ]


def _status_counters(status: ET.Element) -> List[str]:
    return [
        f"  Started: {_attr(status, 'StartTime')}, {_attr(status, 'TotalConnections')} connections, "
        f"{_attr(status, 'TotalStreams')} streams",
        f"  Input: {_attr(status, 'RXPacketRate')} packets/sec, {_attr(status, 'RXByteRate')} bytes/sec",
        f"  Output: {_attr(status, 'TXPacketRate')} packets/sec, {_attr(status, 'TXByteRate')} bytes/sec",
    ]


def render_status(doc: ET.Element, level: int = 0, *, now: Optional[int] = None) -> str:
    """Server identification and status summary."""
    _check_root(doc)
    lines = _preamble(doc, dltime_now() if now is None else now)
    if level >= 1:
        lines.append(f"Capabilities: {_attr(doc, 'Capabilities')}")
    status = doc.find("Status")
    if status is not None:
        lines.append("")
        lines.extend(_status_counters(status))
        lines.append(
            f"  Earliest Packet: {_attr(status, 'EarliestPacketDataTime')} ({_attr(status, 'EarliestPacketID')})"
        )
        lines.append(
            f"  Latest Packet: {_attr(status, 'LatestPacketDataTime')} ({_attr(status, 'LatestPacketID')})"
        )
    return "\n".join(lines) + "\n"


def stream_latency(stream: ET.Element, now: int) -> str:
    """Seconds between *now* and the stream's latest data, one decimal."""
    precomputed = stream.get("DataLatency")
    if precomputed:
        return precomputed
    latest = stream.get("LatestPacketDataTime")
    if not latest:
        return PLACEHOLDER
    try:
        datatime = timestr_to_dltime(latest)
    except ValueError:
        LOGGER.debug("cannot parse stream time %r", latest)
        return PLACEHOLDER
    return f"{seconds_between(now, datatime):.1f}"


def render_streams(doc: ET.Element, level: int = 0, *, now: Optional[int] = None) -> str:
    """Stream inventory with earliest/latest packets and latency."""
    _check_root(doc)
    now = dltime_now() if now is None else now
    lines = _preamble(doc, now)
    streamlist = doc.find("StreamList")
    if streamlist is None:
        LOGGER.error("Cannot find StreamList element in XML response")
        raise InfoDocumentError("Cannot find StreamList element in XML response")
    if level >= 1:
        lines.append(
            "    Stream ID                     Earliest Packet                       Latest Packet               Latency"
        )
    else:
        lines.append("    Stream ID                Earliest Packet             Latest Packet           Latency")
    for stream in streamlist.findall("Stream"):
        name = _attr(stream, "Name")
        earliest = _attr(stream, "EarliestPacketDataTime")
        latest = _attr(stream, "LatestPacketDataTime")
        latency = stream_latency(stream, now)
        if level >= 1:
            lines.append(
                f"{name:<22} {earliest:<26} ({_attr(stream, 'EarliestPacketID')})  "
                f"{latest:<26} ({_attr(stream, 'LatestPacketID')})  {latency} seconds"
            )
        else:
            lines.append(f"{name:<22} {earliest:<26}  {latest:<26}  {latency} seconds")
    lines.append(f"{_attr(streamlist, 'SelectedStreams')} of {_attr(streamlist, 'TotalStreams')} streams")
    return "\n".join(lines) + "\n"


def render_connections(doc: ET.Element, level: int = 0, *, now: Optional[int] = None) -> str:
    """Connection inventory; level 1 adds counters, level 2 adds patterns."""
    _check_root(doc)
    lines = _preamble(doc, dltime_now() if now is None else now)
    if level >= 1:
        status = doc.find("Status")
        if status is not None:
            lines.extend(_status_counters(status))
    lines.append("")
    connectionlist = doc.find("ConnectionList")
    if connectionlist is None:
        LOGGER.error("Cannot find ConnectionList element in XML response")
        raise InfoDocumentError("Cannot find ConnectionList element in XML response")
    for conn in connectionlist.findall("Connection"):
        lines.append(
            f"{_attr(conn, 'Host')}:{_attr(conn, 'Port')} ({_attr(conn, 'Type')})  "
            f"{_attr(conn, 'ClientID')}  {_attr(conn, 'ConnectionTime')}"
        )
        lag = _attr(conn, "PercentLag")
        lag_unit = "%" if lag != PLACEHOLDER else ""
        lines.append(
            f"  Packet {_attr(conn, 'PacketID')} ({_attr(conn, 'PacketDataTime')})  "
            f"Lag {lag}{lag_unit}, {_attr(conn, 'Latency')} seconds"
        )
        if level >= 1:
            lines.append(
                f"  TX {_attr(conn, 'TXPacketCount')} packets {_attr(conn, 'TXPacketRate')} packets/sec  "
                f"{_attr(conn, 'TXByteCount')} bytes {_attr(conn, 'TXByteRate')} bytes/sec"
            )
            lines.append(
                f"  RX {_attr(conn, 'RXPacketCount')} packets {_attr(conn, 'RXPacketRate')} packets/sec  "
                f"{_attr(conn, 'RXByteCount')} bytes {_attr(conn, 'RXByteRate')} bytes/sec"
            )
        if level >= 2:
            lines.append(f"  Match:  {_attr(conn, 'Match')[:PATTERN_WIDTH]}")
            lines.append(f"  Reject: {_attr(conn, 'Reject')[:PATTERN_WIDTH]}")
        lines.append("")
    lines.append(
        f"{_attr(connectionlist, 'SelectedConnections')} of {_attr(connectionlist, 'TotalConnections')} connections"
    )
    return "\n".join(lines) + "\n"


_RENDERERS = {
    "STATUS": render_status,
    "STREAMS": render_streams,
    "CONNECTIONS": render_connections,
}


def render_info(info_type: str, raw: bytes, level: int = 0, *, now: Optional[int] = None) -> str:
    """Parse raw INFO XML and render it for *info_type*."""
    renderer = _RENDERERS.get(info_type.upper())
    if renderer is None:
        raise InfoDocumentError(f"unrecognized INFO type: {info_type}")
    return renderer(parse_info(raw), level, now=now)


__all__ = [
    "InfoDocumentError",
    "parse_info",
    "render_connections",
    "render_info",
    "render_status",
    "render_streams",
    "stream_latency",
]
