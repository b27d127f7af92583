"""Output helpers for dalitool."""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from typing import Optional, TextIO

LOGGER = logging.getLogger("dalitool.output")


def emit_result(message: str, *, stream: Optional[TextIO] = None) -> None:
    """Print a command result."""
    print(message, file=stream or sys.stdout)


def emit_error(message: str, *, stream: Optional[TextIO] = None) -> None:
    """Print a command failure; the console keeps running."""
    LOGGER.debug("command error: %s", message)
    print(message, file=stream or sys.stdout)


def emit_block(text: str, *, stream: Optional[TextIO] = None) -> None:
    """Print a multi-line block without adding a trailing blank line."""
    out = stream or sys.stdout
    out.write(text if text.endswith("\n") else text + "\n")
    out.flush()


def echo_timestamp(*, stream: Optional[TextIO] = None, now: Optional[datetime] = None) -> None:
    moment = now or datetime.now()
    print(f"[{moment:%Y-%m-%d %H:%M:%S}]", file=stream or sys.stdout)


__all__ = ["echo_timestamp", "emit_block", "emit_error", "emit_result"]
