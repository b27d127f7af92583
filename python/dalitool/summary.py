"""Packet synopsis and sample dumps."""

from __future__ import annotations

import logging
import sys
from typing import BinaryIO, Optional, TextIO

from dalilink.mseed import MSeedError, MSRecord, describe_record, parse_record
from dalilink.protocol import DataLinkPacket
from dalilink.timeutil import dltime_now, dltime_to_seedstr, seconds_between

LOGGER = logging.getLogger("dalitool.summary")

SAMPLES_PER_LINE = 6
MSEED_TYPES = ("MSEED", "MSEED2", "MSEED3")

_SAMPLE_FORMATS = {
    "i": "{:10d}  ",
    "f": "{:10.8g}  ",
    "d": "{:10.10g}  ",
}


class SampleFormatError(ValueError):
    """Raised when samples of an unknown type are asked to be printed."""


def packet_synopsis(packet: DataLinkPacket, *, now: Optional[int] = None) -> str:
    """``<streamid> (<pktid>), <start>, <size> (data: <age> sec, feed: <age> sec)``"""
    now = dltime_now() if now is None else now
    return (
        f"{packet.streamid} ({packet.pktid}), {dltime_to_seedstr(packet.datastart)}, {packet.datasize} "
        f"(data: {seconds_between(now, packet.dataend):.1f} sec, feed: {seconds_between(now, packet.pkttime):.1f} sec)"
    )


def print_samples(record: MSRecord, tier: int, *, sink: Optional[TextIO] = None) -> None:
    """Print samples: tier 1 prints the first line of 6 values, tier 2 all of them."""
    out = sink or sys.stdout
    if tier <= 0:
        return
    sampletype = record.sampletype
    if sampletype == "a":
        out.write(f"ASCII Data:\n{record.text}\n")
        return
    fmt = _SAMPLE_FORMATS.get(sampletype or "")
    if fmt is None:
        raise SampleFormatError(f"Unrecognized sample type for encoding {record.encoding}")
    samples = record.samples
    for start in range(0, len(samples), SAMPLES_PER_LINE):
        chunk = samples[start : start + SAMPLES_PER_LINE]
        out.write("".join(fmt.format(value) for value in chunk) + "\n")
        if tier == 1:
            break


def summarize_packet(
    packet: DataLinkPacket,
    *,
    details: int = 0,
    samples: int = 0,
    sink: Optional[TextIO] = None,
    dump: Optional[BinaryIO] = None,
    now: Optional[int] = None,
) -> int:
    """Print the synopsis of *packet* and optionally record details and samples.

    *details* > 0 decodes miniSEED payloads and prints the record description
    at ``details - 1``; *samples* selects the sample tier.  When *dump* is
    given the raw payload is written to it.  Returns 0 on success and -1 when
    the payload could not be decoded or formatted; the synopsis line is always
    printed first.
    """
    out = sink or sys.stdout
    out.write(packet_synopsis(packet, now=now) + "\n")
    rc = 0
    if details > 0 or samples > 0:
        rc = _print_payload(packet, max(details, 1), samples, out)
    if dump is not None:
        try:
            dump.write(packet.data)
        except OSError as exc:
            LOGGER.error("error writing packet data to output file: %s", exc)
            rc = -1
    out.flush()
    return rc


def _print_payload(packet: DataLinkPacket, details: int, samples: int, out: TextIO) -> int:
    payload_type = packet.payload_type
    if payload_type not in MSEED_TYPES:
        LOGGER.error("Unrecognized packet type: %s", payload_type or packet.streamid)
        return -1
    try:
        record = parse_record(packet.data, unpack=False)
    except MSeedError as exc:
        LOGGER.error("Cannot parse miniSEED record: %s", exc)
        return -1
    out.write(describe_record(record, details - 1) + "\n")
    if samples <= 0:
        return 0
    try:
        record = parse_record(packet.data, unpack=True)
        print_samples(record, samples, sink=out)
    except (MSeedError, SampleFormatError) as exc:
        LOGGER.error("%s", exc)
        return -1
    return 0


__all__ = ["SampleFormatError", "packet_synopsis", "print_samples", "summarize_packet"]
