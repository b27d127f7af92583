"""Save and restore the stream position between runs.

The state file holds one line per server: ``<address> <pktid> <pkttime>``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

LOGGER = logging.getLogger("dalitool.statefile")


class StateFileError(RuntimeError):
    """Raised when a state file exists but cannot be read."""


def _read_entries(path: Path) -> Dict[str, Tuple[int, int]]:
    entries: Dict[str, Tuple[int, int]] = {}
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return entries
    except OSError as exc:
        raise StateFileError(f"cannot read state file {path}: {exc}") from exc
    for lineno, line in enumerate(text.splitlines(), start=1):
        fields = line.split()
        if not fields or fields[0].startswith("#"):
            continue
        if len(fields) != 3:
            raise StateFileError(f"{path}:{lineno}: expected '<address> <pktid> <pkttime>'")
        try:
            entries[fields[0]] = (int(fields[1]), int(fields[2]))
        except ValueError as exc:
            raise StateFileError(f"{path}:{lineno}: {exc}") from exc
    return entries


def recover_state(path: str, address: str) -> Optional[Tuple[int, int]]:
    """Return ``(pktid, pkttime)`` saved for *address*, if any."""
    entries = _read_entries(Path(path).expanduser())
    state = entries.get(address)
    if state is None:
        LOGGER.info("no saved position for %s in %s", address, path)
        return None
    LOGGER.info("recovered position %d for %s", state[0], address)
    return state


def save_state(path: str, address: str, pktid: int, pkttime: int) -> None:
    """Record the position for *address*, keeping entries of other servers."""
    target = Path(path).expanduser()
    try:
        entries = _read_entries(target)
    except StateFileError as exc:
        LOGGER.warning("%s; overwriting", exc)
        entries = {}
    entries[address] = (int(pktid), int(pkttime))
    lines = [f"{addr} {pid} {ptime}" for addr, (pid, ptime) in sorted(entries.items())]
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text("\n".join(lines) + "\n", encoding="utf-8")
    LOGGER.info("saved position %d for %s to %s", pktid, address, target)


__all__ = ["StateFileError", "recover_state", "save_state"]
