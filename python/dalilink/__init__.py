"""
dalilink - DataLink protocol toolkit used by dalitool.

Each module keeps one responsibility:

    transport.py  → TCP connection, message framing, liveness peek
    protocol.py   → headers, replies, packet types, errors
    client.py     → DataLink commands on a single connection handle
    timeutil.py   → DataLink time values and text formats
    mseed.py      → miniSEED 2/3 record and sample decoding
"""

from .client import CollectStatus, DataLinkClient, default_client_id  # noqa: F401
from .mseed import MSRecord, MSeedError, describe_record, parse_record  # noqa: F401
from .protocol import (  # noqa: F401
    MAX_PACKET_SIZE,
    POSITION_EARLIEST,
    POSITION_LATEST,
    ConnectionLostError,
    DataLinkError,
    DataLinkPacket,
    DataLinkResponse,
    PacketTooLargeError,
)
from .timeutil import DLTMODULUS, dltime_now, timestr_to_dltime  # noqa: F401
from .transport import DataLinkTransport, PeekState, TransportConfig, parse_address  # noqa: F401

__all__ = [
    "CollectStatus",
    "ConnectionLostError",
    "DLTMODULUS",
    "DataLinkClient",
    "DataLinkError",
    "DataLinkPacket",
    "DataLinkResponse",
    "DataLinkTransport",
    "MAX_PACKET_SIZE",
    "MSRecord",
    "MSeedError",
    "POSITION_EARLIEST",
    "POSITION_LATEST",
    "PacketTooLargeError",
    "PeekState",
    "TransportConfig",
    "default_client_id",
    "describe_record",
    "dltime_now",
    "parse_address",
    "parse_record",
    "timestr_to_dltime",
]

__version__ = "0.1.0"
