"""DataLink time helpers.

DataLink exchanges times as integer microseconds since 1970-01-01T00:00:00Z.
"""

from __future__ import annotations

import re
import time
from datetime import datetime, timedelta, timezone

DLTMODULUS = 1_000_000

# POSITION SET carries a packet time; this value means "unknown"
DLTERROR = -2145916800000000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_CALENDAR_RE = re.compile(
    r"^(?P<year>\d{4})[-/,](?P<month>\d{1,2})[-/,](?P<day>\d{1,2})"
    r"(?:[T ,](?P<hour>\d{1,2})(?::(?P<minute>\d{1,2})(?::(?P<second>\d{1,2})(?:\.(?P<frac>\d{1,9}))?)?)?)?Z?$"
)
_ORDINAL_RE = re.compile(
    r"^(?P<year>\d{4}),(?P<yday>\d{3})"
    r"(?:,(?P<hour>\d{1,2})(?::(?P<minute>\d{1,2})(?::(?P<second>\d{1,2})(?:\.(?P<frac>\d{1,9}))?)?)?)?Z?$"
)


def dltime_now() -> int:
    return time.time_ns() // 1000


def timestr_to_dltime(text: str) -> int:
    """Parse a DataLink/SEED time string into DataLink time.

    Accepted forms (trailing components optional)::

        YYYY-MM-DD[T| ]HH:MM:SS[.ffffff][Z]
        YYYY/MM/DD HH:MM:SS.ffffff
        YYYY,DDD,HH:MM:SS[.ffffff]

    Raises :class:`ValueError` for anything else.
    """
    value = (text or "").strip()
    match = _ORDINAL_RE.match(value)
    if match:
        year = int(match.group("year"))
        yday = int(match.group("yday"))
        if not 1 <= yday <= 366:
            raise ValueError(f"day of year out of range: {text}")
        base = datetime(year, 1, 1, tzinfo=timezone.utc) + timedelta(days=yday - 1)
        if base.year != year:
            raise ValueError(f"day of year out of range: {text}")
    else:
        match = _CALENDAR_RE.match(value)
        if not match:
            raise ValueError(f"unrecognized time string: {text}")
        try:
            base = datetime(
                int(match.group("year")),
                int(match.group("month")),
                int(match.group("day")),
                tzinfo=timezone.utc,
            )
        except ValueError as exc:
            raise ValueError(f"invalid date: {text}") from exc
    hour = int(match.group("hour") or 0)
    minute = int(match.group("minute") or 0)
    second = int(match.group("second") or 0)
    if hour > 23 or minute > 59 or second > 60:
        raise ValueError(f"invalid time of day: {text}")
    frac = match.group("frac") or ""
    micros = int((frac + "000000")[:6])
    delta = base - _EPOCH
    seconds = delta.days * 86400 + hour * 3600 + minute * 60 + second
    return seconds * DLTMODULUS + micros


def _split(dltime: int):
    seconds, micros = divmod(int(dltime), DLTMODULUS)
    return _EPOCH + timedelta(seconds=seconds), micros


def dltime_to_seedstr(dltime: int, *, subseconds: bool = True) -> str:
    """Format as ``YYYY,DDD,HH:MM:SS.ffffff``."""
    moment, micros = _split(dltime)
    text = f"{moment.year:04d},{moment.timetuple().tm_yday:03d},{moment:%H:%M:%S}"
    if subseconds:
        text += f".{micros:06d}"
    return text


def dltime_to_mdstr(dltime: int, *, subseconds: bool = True) -> str:
    """Format as ``YYYY-MM-DD HH:MM:SS.ffffff``."""
    moment, micros = _split(dltime)
    text = f"{moment:%Y-%m-%d %H:%M:%S}"
    if subseconds:
        text += f".{micros:06d}"
    return text


def dltime_to_isostr(dltime: int) -> str:
    moment, micros = _split(dltime)
    return f"{moment:%Y-%m-%dT%H:%M:%S}.{micros:06d}Z"


def seconds_between(later: int, earlier: int) -> float:
    return (int(later) - int(earlier)) / DLTMODULUS


__all__ = [
    "DLTERROR",
    "DLTMODULUS",
    "dltime_now",
    "dltime_to_isostr",
    "dltime_to_mdstr",
    "dltime_to_seedstr",
    "seconds_between",
    "timestr_to_dltime",
]
