"""Interactive console for dalitool."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from dalilink.protocol import DataLinkError

from .commands import CommandRegistry
from .context import ConsoleContext
from .history import HistoryStore
from .output import echo_timestamp, emit_error
from .parser import split_command

try:
    from .completion import ConsoleCompleter
except Exception:  # pragma: no cover - prompt_toolkit missing
    ConsoleCompleter = None  # type: ignore

LOGGER = logging.getLogger("dalitool.repl")

try:
    from prompt_toolkit import PromptSession
    from prompt_toolkit.history import InMemoryHistory
    from prompt_toolkit.patch_stdout import patch_stdout
except ImportError:  # pragma: no cover - fallback path
    PromptSession = None  # type: ignore
    InMemoryHistory = None  # type: ignore
    patch_stdout = None

try:  # pragma: no cover - optional dependency
    import readline
except ImportError:  # pragma: no cover
    readline = None

PROMPT = "> "

LineReader = Callable[[str], str]


class ConsoleREPL:
    """Prompt loop: read a line, guard the connection, dispatch, record."""

    def __init__(
        self,
        ctx: ConsoleContext,
        registry: CommandRegistry,
        *,
        history_store: Optional[HistoryStore] = None,
        read_line: Optional[LineReader] = None,
    ) -> None:
        self.ctx = ctx
        self.registry = registry
        self.history_store = history_store
        self._read_line = read_line

    def run(self) -> int:
        reader = self._read_line or self._build_reader()
        while True:
            try:
                line = reader(PROMPT)
            except (EOFError, KeyboardInterrupt):
                print()
                return 0
            try:
                self.handle_line(line)
            except SystemExit as exc:
                return int(exc.code or 0)

    def _build_reader(self) -> LineReader:
        if PromptSession is None:
            return self._fallback_reader()
        history = InMemoryHistory()
        if self.history_store:
            for entry in self.history_store.snapshot():
                history.append_string(entry)
        completer = None
        if ConsoleCompleter is not None:
            try:
                completer = ConsoleCompleter(self.ctx, self.registry)
            except RuntimeError:
                completer = None
        session = PromptSession(history=history, completer=completer, complete_while_typing=True)

        def read(prompt: str) -> str:
            with patch_stdout():
                return session.prompt(prompt)

        return read

    def _fallback_reader(self) -> LineReader:
        if readline and self.history_store:
            for entry in self.history_store.snapshot():
                readline.add_history(entry)
        return input

    def handle_line(self, line: str) -> Optional[int]:
        """Dispatch one input line; returns the command status or ``None``.

        An empty line repeats the last recognised command.  ``SystemExit``
        from the exit command propagates to :meth:`run`.
        """
        text = line.strip()
        if not text:
            if not self.ctx.last_command:
                return None
            text = self.ctx.last_command
        parsed = split_command(text)
        command = self.registry.get(parsed.verb)
        if command is None:
            emit_error(f"Unrecognized command: {text}")
            return None
        LOGGER.debug("processing command: %s", text)
        if command.requires_connection:
            try:
                self.ctx.ensure_connection()
            except DataLinkError as exc:
                emit_error(f"Cannot reconnect to {self.ctx.address}: {exc}")
                return 2
        try:
            rc = command.run(self.ctx, parsed)
        except SystemExit:
            raise
        except Exception as exc:
            LOGGER.exception("command failed")
            emit_error(f"Command '{command.name}' failed: {exc}")
            rc = 1
        self._record(text)
        return rc

    def _record(self, text: str) -> None:
        self.ctx.last_command = text
        if self.history_store:
            self.history_store.append(text)
        if self.ctx.verbose:
            echo_timestamp()
