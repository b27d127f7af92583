"""
Pytest configuration for dalitool tests.
"""
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]
for entry in (REPO_ROOT / "python", Path(__file__).resolve().parent):
    if str(entry) not in sys.path:
        sys.path.append(str(entry))
