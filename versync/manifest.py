"""package.json reading and writing utilities.

Manifests are written back with the indentation the user's file already
had, so version bumps produce minimal, diff-friendly changes.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from .errors import ManifestError

MANIFEST_NAME = "package.json"
PNPM_WORKSPACE_FILE = "pnpm-workspace.yaml"
DEFAULT_INDENT = "  "

_INDENT_RE = re.compile(r"^([ \t]+)\S", re.MULTILINE)


def load_manifest(path: Path) -> dict[str, Any]:
    """Load and parse a package.json file.

    Raises:
        ManifestError: If the file is missing, isn't JSON, or isn't an object.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ManifestError(f"{path} does not exist") from exc
    except json.JSONDecodeError as exc:
        raise ManifestError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestError(f"{path} is not a JSON object")
    return data


def detect_indent(text: str) -> str:
    """Return the indentation unit used by a JSON document."""
    match = _INDENT_RE.search(text)
    return match.group(1) if match else DEFAULT_INDENT


def dump_manifest(data: dict[str, Any], indent: str = DEFAULT_INDENT) -> str:
    return json.dumps(data, indent=indent, ensure_ascii=False) + "\n"


def save_manifest(path: Path, data: dict[str, Any]) -> None:
    """Write a manifest back to disk, keeping the file's original indentation."""
    indent = detect_indent(path.read_text(encoding="utf-8")) if path.exists() else DEFAULT_INDENT
    path.write_text(dump_manifest(data, indent), encoding="utf-8")


def get_workspace_member_globs(manifest: dict[str, Any]) -> list[str]:
    """Extract workspace globs from a root package.json.

    npm and yarn accept either a list or {"packages": [...]}.
    """
    workspaces = manifest.get("workspaces")
    if isinstance(workspaces, dict):
        workspaces = workspaces.get("packages")
    if isinstance(workspaces, list):
        return [str(w) for w in workspaces]
    return []


def parse_pnpm_workspace(text: str) -> list[str]:
    """Read the packages list out of a pnpm-workspace.yaml.

    The file is always a flat mapping of lists, e.g.::

        packages:
          - 'packages/*'
          - '!packages/scratch'

    so it's parsed directly rather than through a YAML library.
    """
    result: dict[str, list[str]] = {}
    current_key: str | None = None

    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        if stripped.endswith(":") and not stripped.startswith("-"):
            current_key = stripped[:-1].strip()
            result[current_key] = []
            continue

        if stripped.startswith("-") and current_key is not None:
            value = stripped[1:].strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
                value = value[1:-1]
            result[current_key].append(value)

    return result.get("packages", [])


def get_pnpm_member_globs(root: Path) -> list[str]:
    path = root / PNPM_WORKSPACE_FILE
    if not path.is_file():
        return []
    return parse_pnpm_workspace(path.read_text(encoding="utf-8"))
