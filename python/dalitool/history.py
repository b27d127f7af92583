"""Console command history kept in a plain text file."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

LOGGER = logging.getLogger("dalitool.history")


class HistoryStore:
    """Bounded command history, one command per line.

    Lines are appended to the file as they are recorded; the file is rewritten
    with only the newest ``limit`` entries once it grows past twice that.
    """

    def __init__(self, path: Optional[str], *, limit: int = 500) -> None:
        self.limit = max(1, int(limit or 1))
        self.path = Path(path).expanduser() if path else None
        self.entries: List[str] = []
        self._file_lines = 0
        if self.path:
            self._load()

    def _load(self) -> None:
        if not self.path:
            return
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return
        except OSError as exc:
            LOGGER.debug("cannot read history %s: %s", self.path, exc)
            return
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        self._file_lines = len(lines)
        self.entries = lines[-self.limit :]

    def append(self, line: str) -> None:
        text = line.strip()
        if not text or (self.entries and self.entries[-1] == text):
            return
        self.entries.append(text)
        del self.entries[: -self.limit]
        self._write(text)

    def _write(self, text: str) -> None:
        if not self.path:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if self._file_lines + 1 > 2 * self.limit:
                self.path.write_text("\n".join(self.entries) + "\n", encoding="utf-8")
                self._file_lines = len(self.entries)
                return
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(text + "\n")
            self._file_lines += 1
        except OSError as exc:
            # History is a convenience; the console keeps running without it.
            LOGGER.debug("cannot write history %s: %s", self.path, exc)

    def snapshot(self) -> List[str]:
        return list(self.entries)
