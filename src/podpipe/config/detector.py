"""Configuration file detection for podpipe."""

from __future__ import annotations

from pathlib import Path


def detect_config(workspace: Path) -> Path | None:
    """Detect configuration file in the workspace.

    Priority order:
    1. .podpipe/config.json
    2. .podpipe.json
    3. podpipe.json

    Args:
        workspace: Path to the workspace directory.

    Returns:
        Path to the config file if found, None otherwise.
    """
    candidates = [
        workspace / ".podpipe" / "config.json",
        workspace / ".podpipe.json",
        workspace / "podpipe.json",
    ]

    for candidate in candidates:
        if candidate.exists():
            return candidate

    return None
