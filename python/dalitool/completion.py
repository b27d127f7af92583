"""prompt_toolkit completer for the dalitool console."""

from __future__ import annotations

from typing import Iterable, List

from dalilink.protocol import POSITION_EARLIEST, POSITION_LATEST

from .commands import CommandRegistry
from .context import ConsoleContext

try:
    from prompt_toolkit.completion import Completer, Completion
    from prompt_toolkit.document import Document
except ImportError:  # pragma: no cover - prompt_toolkit not installed
    Completer = None  # type: ignore[assignment,misc]
    Completion = object  # type: ignore[assignment,misc]
    Document = object  # type: ignore[assignment,misc]

VERBOSITY_FLAGS = ("-v", "-vv", "-vvv")
_ARGUMENT_WORDS = {
    "pset": (POSITION_EARLIEST, POSITION_LATEST),
    "status": VERBOSITY_FLAGS,
    "streams": VERBOSITY_FLAGS,
    "connections": VERBOSITY_FLAGS,
}


def complete_words(ctx: ConsoleContext, registry: CommandRegistry, text: str) -> List[str]:
    """Candidate words for the token under the cursor in *text*."""
    tokens = text.split()
    if text[-1:].isspace() or not tokens:
        tokens.append("")
    prefix = tokens[-1]
    if len(tokens) == 1:
        return [name for name in registry.names() if name.startswith(prefix.lower())]
    command = registry.get(tokens[0])
    if command is None:
        return []
    words: Iterable[str] = _ARGUMENT_WORDS.get(command.name, ())
    if command.name in ("match", "reject"):
        current = ctx.match_pattern if command.name == "match" else ctx.reject_pattern
        words = [current] if current else []
    elif command.name == "connect":
        words = [ctx.address]
    return [word for word in words if word.lower().startswith(prefix.lower())]


if Completer is not None:

    class ConsoleCompleter(Completer):  # type: ignore[misc]
        """Completes verbs, sentinels, verbosity flags and current patterns."""

        def __init__(self, ctx: ConsoleContext, registry: CommandRegistry) -> None:
            self.ctx = ctx
            self.registry = registry

        def get_completions(self, document: Document, complete_event) -> Iterable[Completion]:
            text = document.text_before_cursor
            words = complete_words(self.ctx, self.registry, text)
            prefix = "" if text[-1:].isspace() or not text.split() else text.split()[-1]
            for word in words:
                yield Completion(word, start_position=-len(prefix))

else:  # pragma: no cover - prompt_toolkit unavailable

    class ConsoleCompleter:  # type: ignore[no-redef]
        def __init__(self, *args, **kwargs) -> None:
            raise RuntimeError("prompt_toolkit is required for completion support")
