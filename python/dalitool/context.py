"""Console context: session state and connection guard."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from dalilink.client import DataLinkClient, default_client_id
from dalilink.protocol import MAX_PACKET_SIZE, DataLinkError
from dalilink.timeutil import DLTERROR
from dalilink.transport import PeekState

LOGGER = logging.getLogger("dalitool.context")

ClientFactory = Callable[..., DataLinkClient]


@dataclass
class ConsoleContext:
    """Holds the state of one console session.

    The connection handle is owned here; commands reach the server only via
    :meth:`ensure_connection` / :attr:`client`.
    """

    address: str = "localhost:16000"
    client_id: str = field(default_factory=default_client_id)
    verbose: int = 0
    keepalive: float = 0.0
    max_packet_size: int = MAX_PACKET_SIZE
    position: Optional[int] = None
    position_time: int = DLTERROR
    match_pattern: Optional[str] = None
    reject_pattern: Optional[str] = None
    last_command: Optional[str] = None
    client_factory: Optional[ClientFactory] = None
    _client: Optional[DataLinkClient] = field(default=None, init=False, repr=False)

    @property
    def client(self) -> Optional[DataLinkClient]:
        return self._client

    @property
    def connected(self) -> bool:
        return bool(self._client and self._client.connected)

    def _new_client(self) -> DataLinkClient:
        factory = self.client_factory or DataLinkClient
        return factory(
            self.address,
            client_id=self.client_id,
            keepalive=self.keepalive,
            max_packet_size=self.max_packet_size,
        )

    def connect(self) -> DataLinkClient:
        """Drop any existing connection and open a fresh one."""
        self.disconnect()
        client = self._new_client()
        client.connect()
        self._client = client
        return client

    def disconnect(self) -> None:
        client = self._client
        self._client = None
        if not client:
            return
        try:
            client.disconnect()
        except Exception as exc:
            LOGGER.debug("disconnect failed: %s", exc)

    def ensure_connection(self) -> DataLinkClient:
        """Return a usable client, reconnecting once if the link is dead.

        A half-open socket is detected with a non-blocking peek; end of stream
        or a handle already marked disconnected triggers one reconnect, after
        which the stored position and filters are applied to the new link.
        Raises :class:`DataLinkError` when the reconnect fails.
        """
        client = self._client
        if client is not None and client.connected:
            state = client.peek()
            if state is not PeekState.EOF:
                return client
            LOGGER.info("connection to %s closed by peer", self.address)
        else:
            LOGGER.debug("not connected to %s", self.address)
        try:
            client = self.connect()
        except DataLinkError:
            self.disconnect()
            raise
        self.apply_state(client)
        return client

    def apply_state(self, client: DataLinkClient, *, strict: bool = False) -> None:
        """Send the stored position and filters to *client*.

        Failures are logged; with ``strict`` the first one is re-raised.
        """
        steps = []
        if self.position is not None and self.position > 0:
            steps.append(("position", lambda: client.position_set(self.position, self.position_time)))
        if self.match_pattern:
            steps.append(("match pattern", lambda: client.match(self.match_pattern)))
        if self.reject_pattern:
            steps.append(("reject pattern", lambda: client.reject(self.reject_pattern)))
        for label, step in steps:
            try:
                step()
            except DataLinkError as exc:
                LOGGER.warning("cannot apply %s: %s", label, exc)
                if strict:
                    raise

    def update_position(self, pktid: int, pkttime: Optional[int] = None) -> None:
        self.position = pktid
        self.position_time = DLTERROR if pkttime is None else pkttime
