#!/usr/bin/env python3
"""miniSEED record decoding for DataLink payloads.

Supports miniSEED 2 (48 byte fixed header with blockette 1000/1001) and
miniSEED 3 records.  Sample payloads are unpacked for the encodings commonly
carried over DataLink: text, 16/32 bit integers, 32/64 bit floats and the
Steim-1/Steim-2 difference compressions.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from .timeutil import DLTMODULUS, dltime_to_seedstr

LOGGER = logging.getLogger("dalilink.mseed")

Sample = Union[int, float]

ENC_TEXT = 0
ENC_INT16 = 1
ENC_INT32 = 3
ENC_FLOAT32 = 4
ENC_FLOAT64 = 5
ENC_STEIM1 = 10
ENC_STEIM2 = 11

ENCODING_NAMES = {
    ENC_TEXT: "Text, UTF-8 allowed, use ASCII for maximum portability",
    ENC_INT16: "16-bit integer",
    2: "24-bit integer",
    ENC_INT32: "32-bit integer",
    ENC_FLOAT32: "32-bit float (IEEE single)",
    ENC_FLOAT64: "64-bit float (IEEE double)",
    ENC_STEIM1: "STEIM-1 integer compression",
    ENC_STEIM2: "STEIM-2 integer compression",
}

_SAMPLE_TYPES = {
    ENC_TEXT: "a",
    ENC_INT16: "i",
    ENC_INT32: "i",
    ENC_FLOAT32: "f",
    ENC_FLOAT64: "d",
    ENC_STEIM1: "i",
    ENC_STEIM2: "i",
}

_V2_HEADER_FORMAT = "6sc1x5s2s3s2sHHBBBxHHhhBBBBiHH"
_V3_HEADER = struct.Struct("<2sBBIHHBBBBdIIBBHI")

STEIM_FRAME_SIZE = 64


class MSeedError(ValueError):
    """Raised when a record cannot be parsed or its samples cannot be unpacked."""


@dataclass
class MSRecord:
    sid: str
    formatversion: int
    reclen: int
    starttime: int
    samprate: float
    numsamples: int
    encoding: int
    pubversion: int = 0
    crc: int = 0
    extralength: int = 0
    datalength: int = 0
    samples: List[Sample] = field(default_factory=list)
    text: str = ""
    unpacked: bool = False

    @property
    def sampletype(self) -> Optional[str]:
        """``a`` (text), ``i`` (integer), ``f`` (float) or ``d`` (double)."""
        return _SAMPLE_TYPES.get(self.encoding)

    @property
    def samplecnt(self) -> int:
        if self.sampletype == "a":
            return len(self.text)
        return len(self.samples)

    @property
    def endtime(self) -> int:
        if self.samprate <= 0 or self.numsamples <= 1:
            return self.starttime
        return self.starttime + int(round((self.numsamples - 1) / self.samprate * DLTMODULUS))


def is_mseed3(data: bytes) -> bool:
    return len(data) >= 40 and data[:2] == b"MS" and data[2] == 3


def parse_record(data: bytes, *, unpack: bool = True) -> MSRecord:
    """Parse a single miniSEED record from *data*."""
    if is_mseed3(data):
        record, payload, big_endian = _parse_v3(data)
    else:
        record, payload, big_endian = _parse_v2(data)
    if unpack:
        _unpack(record, payload, big_endian)
    return record


# ---------------------------------------------------------------- miniSEED 2


def _v2_byte_order(data: bytes) -> str:
    for order in (">", "<"):
        year, day = struct.unpack_from(order + "HH", data, 20)
        if 1900 <= year <= 2100 and 1 <= day <= 366:
            return order
    raise MSeedError("cannot determine byte order of miniSEED 2 header")


def _parse_v2(data: bytes) -> Tuple[MSRecord, bytes, bool]:
    if len(data) < 48:
        raise MSeedError(f"record too short for miniSEED 2 header ({len(data)} bytes)")
    if data[6:7] not in (b"D", b"R", b"Q", b"M"):
        raise MSeedError(f"not a miniSEED record (quality indicator {data[6:7]!r})")
    order = _v2_byte_order(data)
    header = struct.Struct(order + _V2_HEADER_FORMAT)
    (
        _seq,
        quality,
        station,
        location,
        channel,
        network,
        year,
        yday,
        hour,
        minute,
        second,
        fract,
        numsamples,
        rate_factor,
        rate_mult,
        activity,
        _io_flags,
        _dq_flags,
        num_blockettes,
        correction,
        data_offset,
        blockette_offset,
    ) = header.unpack_from(data, 0)

    encoding: Optional[int] = None
    word_big_endian = order == ">"
    reclen = len(data)
    microsec = 0
    offset = blockette_offset
    seen = 0
    while offset and seen < max(num_blockettes, 1) and offset + 4 <= len(data):
        btype, next_offset = struct.unpack_from(order + "HH", data, offset)
        if btype == 1000 and offset + 8 <= len(data):
            encoding, word_order, reclen_exp = struct.unpack_from("BBB", data, offset + 4)
            word_big_endian = word_order == 1
            reclen = 1 << reclen_exp
        elif btype == 1001 and offset + 8 <= len(data):
            microsec = struct.unpack_from("b", data, offset + 5)[0]
        seen += 1
        if next_offset <= offset:
            break
        offset = next_offset
    if encoding is None:
        raise MSeedError("miniSEED 2 record without blockette 1000")

    starttime = _btime_to_dltime(year, yday, hour, minute, second, fract) + microsec
    if correction and not activity & 0x02:
        starttime += correction * 100

    net = network.decode("ascii", "replace").strip()
    sta = station.decode("ascii", "replace").strip()
    loc = location.decode("ascii", "replace").strip()
    cha = channel.decode("ascii", "replace").strip()
    sid = f"FDSN:{net}_{sta}_{loc}_{'_'.join(cha) if len(cha) == 3 else cha}"

    record = MSRecord(
        sid=sid,
        formatversion=2,
        reclen=reclen,
        starttime=starttime,
        samprate=_v2_samprate(rate_factor, rate_mult),
        numsamples=numsamples,
        encoding=encoding,
        pubversion=_quality_to_pubversion(quality),
        datalength=max(0, min(reclen, len(data)) - data_offset) if data_offset else 0,
    )
    end = min(reclen, len(data))
    payload = data[data_offset:end] if data_offset else b""
    return record, payload, word_big_endian


def _btime_to_dltime(year: int, yday: int, hour: int, minute: int, second: int, fract: int) -> int:
    days = _days_from_epoch(year) + yday - 1
    seconds = days * 86400 + hour * 3600 + minute * 60 + second
    return seconds * DLTMODULUS + fract * 100


def _days_from_epoch(year: int) -> int:
    days = 0
    if year >= 1970:
        for y in range(1970, year):
            days += 366 if _is_leap(y) else 365
    else:
        for y in range(year, 1970):
            days -= 366 if _is_leap(y) else 365
    return days


def _is_leap(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def _v2_samprate(factor: int, mult: int) -> float:
    if factor > 0 and mult > 0:
        return float(factor * mult)
    if factor > 0 and mult < 0:
        return -float(factor) / mult
    if factor < 0 and mult > 0:
        return -float(mult) / factor
    if factor < 0 and mult < 0:
        return 1.0 / (factor * mult)
    return 0.0


def _quality_to_pubversion(quality: bytes) -> int:
    return {b"R": 1, b"D": 2, b"Q": 3, b"M": 4}.get(quality, 0)


# ---------------------------------------------------------------- miniSEED 3


def _parse_v3(data: bytes) -> Tuple[MSRecord, bytes, bool]:
    (
        _indicator,
        _version,
        _flags,
        nanosecond,
        year,
        yday,
        hour,
        minute,
        second,
        encoding,
        rate,
        numsamples,
        crc,
        pubversion,
        sid_length,
        extra_length,
        data_length,
    ) = _V3_HEADER.unpack_from(data, 0)
    reclen = _V3_HEADER.size + sid_length + extra_length + data_length
    if reclen > len(data):
        raise MSeedError(f"miniSEED 3 record truncated ({len(data)} of {reclen} bytes)")
    sid_start = _V3_HEADER.size
    sid = data[sid_start : sid_start + sid_length].decode("ascii", "replace")
    payload_start = sid_start + sid_length + extra_length
    samprate = -1.0 / rate if rate < 0 else rate
    starttime = _btime_to_dltime(year, yday, hour, minute, second, 0) + nanosecond // 1000
    record = MSRecord(
        sid=sid,
        formatversion=3,
        reclen=reclen,
        starttime=starttime,
        samprate=samprate,
        numsamples=numsamples,
        encoding=encoding,
        pubversion=pubversion,
        crc=crc,
        extralength=extra_length,
        datalength=data_length,
    )
    payload = data[payload_start : payload_start + data_length]
    # Steim frames are big endian, everything else in miniSEED 3 is little endian
    return record, payload, encoding in (ENC_STEIM1, ENC_STEIM2)


# ---------------------------------------------------------------- samples


def _unpack(record: MSRecord, payload: bytes, big_endian: bool) -> None:
    count = record.numsamples
    order = ">" if big_endian else "<"
    encoding = record.encoding
    if encoding == ENC_TEXT:
        record.text = payload[:count].decode("utf-8", errors="replace")
    elif encoding in (ENC_INT16, ENC_INT32, ENC_FLOAT32, ENC_FLOAT64):
        code, size = {
            ENC_INT16: ("h", 2),
            ENC_INT32: ("i", 4),
            ENC_FLOAT32: ("f", 4),
            ENC_FLOAT64: ("d", 8),
        }[encoding]
        if len(payload) < count * size:
            raise MSeedError(f"payload holds {len(payload) // size} samples, header claims {count}")
        record.samples = list(struct.unpack_from(f"{order}{count}{code}", payload, 0))
    elif encoding == ENC_STEIM1:
        record.samples = decode_steim(payload, count, version=1, big_endian=big_endian)
    elif encoding == ENC_STEIM2:
        record.samples = decode_steim(payload, count, version=2, big_endian=big_endian)
    else:
        raise MSeedError(f"unsupported encoding {encoding} for {record.sid}")
    record.unpacked = True


def _signed(value: int, bits: int) -> int:
    if value & (1 << (bits - 1)):
        return value - (1 << bits)
    return value


def _split_word(word: int, bits: int, count: int) -> List[int]:
    mask = (1 << bits) - 1
    return [_signed((word >> (bits * (count - 1 - idx))) & mask, bits) for idx in range(count)]


def _steim1_diffs(nibble: int, word: int) -> List[int]:
    if nibble == 1:
        return _split_word(word, 8, 4)
    if nibble == 2:
        return _split_word(word, 16, 2)
    if nibble == 3:
        return [_signed(word, 32)]
    return []


def _steim2_diffs(nibble: int, word: int) -> List[int]:
    if nibble == 1:
        return _split_word(word, 8, 4)
    dnib = word >> 30
    body = word & 0x3FFFFFFF
    if nibble == 2:
        if dnib == 1:
            return [_signed(body, 30)]
        if dnib == 2:
            return _split_word(body, 15, 2)
        if dnib == 3:
            return _split_word(body, 10, 3)
    elif nibble == 3:
        if dnib == 0:
            return _split_word(body, 6, 5)
        if dnib == 1:
            return _split_word(body, 5, 6)
        if dnib == 2:
            return _split_word(body, 4, 7)
    raise MSeedError(f"invalid Steim-2 decode nibble {nibble}/{dnib}")


def decode_steim(payload: bytes, count: int, *, version: int, big_endian: bool = True) -> List[int]:
    """Decode *count* samples from Steim-1 or Steim-2 frames."""
    if count == 0:
        return []
    order = ">" if big_endian else "<"
    frames = len(payload) // STEIM_FRAME_SIZE
    if frames == 0:
        raise MSeedError("Steim payload shorter than one frame")
    extract = _steim1_diffs if version == 1 else _steim2_diffs
    diffs: List[int] = []
    first = last = 0
    for frame_idx in range(frames):
        words = struct.unpack_from(f"{order}16I", payload, frame_idx * STEIM_FRAME_SIZE)
        control = words[0]
        for word_idx in range(1, 16):
            nibble = (control >> (30 - 2 * word_idx)) & 0x3
            if frame_idx == 0 and word_idx == 1:
                first = _signed(words[1], 32)
                continue
            if frame_idx == 0 and word_idx == 2:
                last = _signed(words[2], 32)
                continue
            if nibble == 0:
                continue
            diffs.extend(extract(nibble, words[word_idx]))
        if len(diffs) >= count:
            break
    if len(diffs) < count:
        raise MSeedError(f"Steim frames hold {len(diffs)} differences, header claims {count}")
    samples = [first]
    for diff in diffs[1:count]:
        samples.append(samples[-1] + diff)
    if samples[-1] != last:
        LOGGER.warning("Steim reverse integration constant mismatch: %d != %d", samples[-1], last)
    return samples


# ---------------------------------------------------------------- details


def describe_record(record: MSRecord, level: int = 0) -> str:
    """Render record details; *level* 0 is a single summary line."""
    start = dltime_to_seedstr(record.starttime)
    if level <= 0:
        return (
            f"{record.sid}, {record.pubversion}, {record.reclen}, {record.numsamples} samples, "
            f"{record.samprate:g} Hz, {start}"
        )
    encoding_name = ENCODING_NAMES.get(record.encoding, "Unknown encoding")
    lines = [
        f"{record.sid}, version {record.pubversion}, {record.reclen} bytes (format: {record.formatversion})",
        f"             start time: {start}",
        f"      number of samples: {record.numsamples}",
        f"       sample rate (Hz): {record.samprate:g}",
    ]
    if level >= 2:
        if record.formatversion >= 3:
            lines.append(f"                    CRC: 0x{record.crc:08X}")
            lines.append(f"    extra header length: {record.extralength} bytes")
        lines.append(f"    data payload length: {record.datalength} bytes")
        lines.append(f"       payload encoding: {encoding_name} (val: {record.encoding})")
    return "\n".join(lines)


__all__ = [
    "ENCODING_NAMES",
    "MSRecord",
    "MSeedError",
    "decode_steim",
    "describe_record",
    "is_mseed3",
    "parse_record",
]
