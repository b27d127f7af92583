"""MATCH / REJECT commands."""

from __future__ import annotations

from dalilink.protocol import DataLinkError

from .base import Command
from ..context import ConsoleContext
from ..output import emit_error, emit_result
from ..parser import ParsedCommand


class _PatternCommand(Command):
    verb = ""
    outcome = ""

    def run(self, ctx: ConsoleContext, command: ParsedCommand) -> int:
        pattern = command.args[0] if command.args else None
        client = ctx.client
        if client is None:
            emit_error("Not connected")
            return 2
        try:
            count = self._submit(client, pattern)
        except DataLinkError as exc:
            emit_error(f"Error sending {self.verb} pattern: {exc}")
            return 2
        self._store(ctx, pattern)
        if pattern:
            emit_result(f"{count} streams {self.outcome} by {pattern}")
        else:
            emit_result(f"{self.verb} pattern cleared, {count} streams {self.outcome}")
        return 0

    def _submit(self, client, pattern):
        raise NotImplementedError

    def _store(self, ctx: ConsoleContext, pattern):
        raise NotImplementedError


class MatchCommand(_PatternCommand):
    verb = "MATCH"
    outcome = "selected"

    def __init__(self) -> None:
        super().__init__("match", "Set stream ID match pattern, clear when omitted", usage="[pattern]")

    def _submit(self, client, pattern):
        return client.match(pattern)

    def _store(self, ctx: ConsoleContext, pattern):
        ctx.match_pattern = pattern


class RejectCommand(_PatternCommand):
    verb = "REJECT"
    outcome = "rejected"

    def __init__(self) -> None:
        super().__init__("reject", "Set stream ID reject pattern, clear when omitted", usage="[pattern]")

    def _submit(self, client, pattern):
        return client.reject(pattern)

    def _store(self, ctx: ConsoleContext, pattern):
        ctx.reject_pattern = pattern
