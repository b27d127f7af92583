"""
dalitool CLI package.

Interactive and one-shot DataLink client: server INFO reports, packet
streaming with summaries, and a console with positioning, filtering and
on-demand packet reads.  Use ``python -m dalitool`` or the ``dalitool``
console script to launch it.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .cli import main  # noqa: E402

__all__ = ["main"]
