"""Identify the runner revision recorded in banners and log headers."""

from __future__ import annotations

import subprocess
from pathlib import Path

from ticket_runner import __version__

_PACKAGE_ROOT = Path(__file__).resolve().parent


def runner_version(package_root: Path = _PACKAGE_ROOT) -> str:
    """Return ``<version>+<short git hash>``, or the bare version outside a git checkout."""

    try:
        completed = subprocess.run(
            ["git", "log", "-1", "--format=%h"],  # noqa: S607
            cwd=package_root,
            capture_output=True,
            text=True,
            timeout=5,
            check=True,
        )
    except (OSError, subprocess.SubprocessError):
        return __version__
    commit = completed.stdout.strip()
    return f"{__version__}+{commit}" if commit else __version__
