"""
Single source of truth for the HedgeWatch version.

Reads from pyproject.toml at import time and caches.
"""

from __future__ import annotations

from pathlib import Path

__all__ = ["VERSION", "APP_NAME"]

APP_NAME = "HedgeWatch"


def _read_version() -> str:
    """Read version directly from pyproject.toml (avoids stale pip metadata)."""
    toml_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
    try:
        lines = toml_path.read_text().splitlines()
    except OSError:
        return "1.0.0"
    for line in lines:
        if line.strip().startswith("version"):
            # version = "1.0.0"
            return line.split("=", 1)[1].strip().strip('"').strip("'")
    return "1.0.0"


VERSION = _read_version()
