"""Lightweight command parsing helpers for dalitool."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional

MAX_ARGS = 2

DECIMAL_RE = re.compile(r"-?[0-9]+")


@dataclass
class ParsedCommand:
    """A verb, at most two positional arguments and a verbosity level."""

    verb: str
    args: List[str] = field(default_factory=list)
    verbosity: int = 0
    extra: List[str] = field(default_factory=list)


def parse_decimal(token: str) -> Optional[int]:
    """Plain base-10 integer with an optional minus sign, else ``None``."""
    if not DECIMAL_RE.fullmatch(token):
        return None
    return int(token)


def is_verbosity_flag(token: str) -> bool:
    return len(token) >= 2 and token[0] == "-" and token[1] in "vV"


def verbosity_level(token: str) -> int:
    """Count the ``v`` characters following the leading ``-`` (``-vvv`` → 3)."""
    count = 0
    for char in token[1:]:
        if char not in "vV":
            break
        count += 1
    return count


def split_command(line: str) -> ParsedCommand:
    """Split a console line into verb, arguments and verbosity.

    Tokens are whitespace delimited so that match patterns reach the server
    untouched.  Verbosity flags may appear anywhere after the verb and add up;
    positional tokens beyond the second are kept in ``extra`` and otherwise
    ignored.
    """
    tokens = line.split()
    if not tokens:
        return ParsedCommand(verb="")
    parsed = ParsedCommand(verb=tokens[0])
    for token in tokens[1:]:
        if is_verbosity_flag(token):
            parsed.verbosity += verbosity_level(token)
        elif len(parsed.args) < MAX_ARGS:
            parsed.args.append(token)
        else:
            parsed.extra.append(token)
    return parsed
