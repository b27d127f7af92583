"""Interruptible streaming for the console.

The multiplexer alternates non-blocking collects on the DataLink connection
with a bounded ``select()`` over the socket and standard input.  A line typed
by the operator ends the stream gracefully: ``ENDSTREAM`` is sent, one final
non-blocking collect flushes a packet that already arrived, and the
connection is returned to request/response mode.
"""

from __future__ import annotations

import logging
import select
import sys
from typing import Callable, List, Optional, Sequence, TextIO, Tuple

from dalilink.client import ENDSTREAM_TIMEOUT, CollectStatus
from dalilink.protocol import DataLinkError

from .context import ConsoleContext
from .output import emit_error, emit_result
from .summary import summarize_packet

LOGGER = logging.getLogger("dalitool.streaming")

WAIT_CEILING = 0.1

Waiter = Callable[[Sequence[object], float], List[object]]


def select_readable(sources: Sequence[object], timeout: float) -> List[object]:
    ready, _, _ = select.select(list(sources), [], [], timeout)
    return list(ready)


class StreamMultiplexer:
    """Runs the streaming loop until cancellation or connection failure."""

    def __init__(
        self,
        ctx: ConsoleContext,
        *,
        stdin: Optional[TextIO] = None,
        sink: Optional[TextIO] = None,
        waiter: Optional[Waiter] = None,
        wait_ceiling: float = WAIT_CEILING,
        end_timeout: float = ENDSTREAM_TIMEOUT,
    ) -> None:
        self.ctx = ctx
        self.stdin = stdin or sys.stdin
        self.sink = sink
        self.waiter = waiter or select_readable
        self.wait_ceiling = wait_ceiling
        self.end_timeout = end_timeout
        self.packets = 0

    def run(self) -> int:
        client = self.ctx.client
        if client is None:
            emit_error("Not connected")
            return 2
        try:
            client.stream()
            emit_result("Streaming, press Enter to stop", stream=self.sink)
            while True:
                status, packet = client.collect(block=False)
                if status is CollectStatus.PACKET and packet is not None:
                    self._summarize(packet)
                    continue
                if status is CollectStatus.ENDED:
                    break
                if self._wait(client):
                    self._consume_keystroke()
                    self._drain(client)
                    break
        except DataLinkError as exc:
            LOGGER.info("streaming stopped: %s", exc)
            emit_error(f"Streaming ended: {exc}", stream=self.sink)
            self.ctx.disconnect()
            return 2
        emit_result(f"Streaming ended, {self.packets} packets received", stream=self.sink)
        return 0

    def _drain(self, client) -> None:
        """Send ENDSTREAM, flush one already-arrived packet, leave streaming mode."""
        status, packet = client.collect(block=False, end_requested=True)
        if status is CollectStatus.PACKET and packet is not None:
            self._summarize(packet)
        elif status is CollectStatus.ENDED:
            return
        client.finish_stream(self.end_timeout)
        if not client.connected:
            self.ctx.disconnect()

    def _summarize(self, packet) -> None:
        self.packets += 1
        summarize_packet(packet, sink=self.sink)
        self.ctx.update_position(packet.pktid, packet.pkttime)

    def _wait(self, client) -> bool:
        """Wait up to the ceiling; return True when stdin became readable."""
        sources: Tuple[object, ...] = (client, self.stdin)
        try:
            ready = self.waiter(sources, self.wait_ceiling)
        except (OSError, ValueError) as exc:
            raise DataLinkError(f"wait failed: {exc}") from exc
        return any(source is self.stdin for source in ready)

    def _consume_keystroke(self) -> None:
        line = self.stdin.readline()
        LOGGER.debug("stream cancel requested (%d bytes of input discarded)", len(line))


__all__ = ["StreamMultiplexer", "select_readable"]
