"""Shell and console utilities.

Thin wrappers around subprocess for running git and package-manager
commands, plus the console helpers used for user-facing output.
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path


def git(*args: str, cwd: str | Path | None = None, check: bool = True) -> str:
    """Run a git command and return stripped stdout.

    Args:
        *args: Arguments to pass to git (e.g., "tag", "--list").
        cwd: Directory to run in; defaults to the current directory.
        check: If True (default), raise CalledProcessError on non-zero exit.
               Set to False for lookups that may legitimately fail.
    """
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=check
    )
    return result.stdout.strip()


def run(
    *args: str, cwd: str | Path | None = None, check: bool = True
) -> subprocess.CompletedProcess[bytes]:
    """Run a command with output streamed straight to the terminal.

    Used for package-manager installs where users want to see progress.
    """
    return subprocess.run(args, cwd=cwd, check=check)


def step(msg: str) -> None:
    """Print a visually distinct step header."""
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def warn(msg: str) -> None:
    """Print a warning to stderr without stopping."""
    print(f"WARNING: {msg}", file=sys.stderr)


def fatal(msg: str) -> None:
    """Print an error message and exit with code 1."""
    print(f"ERROR: {msg}", file=sys.stderr)
    sys.exit(1)
