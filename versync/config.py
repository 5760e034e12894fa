"""versync.toml loading.

The nearest versync.toml between the working directory and the filesystem
root is used; without one, every setting has its default. CLI flags
override whatever the file says.

Example versync.toml::

    [changelog]
    rollup = true
    line_format = "- {subject} ({short_sha})"

    [bump]
    save_exact = true
    update_peer = true

    [git]
    fetch = false
"""

from __future__ import annotations

from pathlib import Path

import tomlkit
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tomlkit.exceptions import TOMLKitError

from .errors import ConfigError
from .git import DEFAULT_DATE_FORMAT

CONFIG_NAME = "versync.toml"


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ChangelogConfig(_Section):
    enabled: bool = True
    rollup: bool = False
    line_format: str | None = None


class BumpConfig(_Section):
    save_exact: bool = False
    update_peer: bool = False
    update_optional: bool = False
    release_as: str = "auto"
    prerelease_id: str | None = None


class GitConfig(_Section):
    commit_date_format: str = DEFAULT_DATE_FORMAT
    fetch: bool = True


class VersyncConfig(_Section):
    changelog: ChangelogConfig = Field(default_factory=ChangelogConfig)
    bump: BumpConfig = Field(default_factory=BumpConfig)
    git: GitConfig = Field(default_factory=GitConfig)


def find_config(cwd: Path) -> Path | None:
    """Return the closest versync.toml at or above cwd."""
    start = Path(cwd).resolve()
    for directory in [start, *start.parents]:
        candidate = directory / CONFIG_NAME
        if candidate.is_file():
            return candidate
    return None


def load_config(cwd: Path | None = None) -> VersyncConfig:
    """Load settings from the nearest versync.toml, or defaults.

    Raises:
        ConfigError: If the file isn't valid TOML or has unknown / mistyped keys.
    """
    path = find_config(cwd or Path.cwd())
    if path is None:
        return VersyncConfig()

    try:
        doc = tomlkit.parse(path.read_text(encoding="utf-8"))
    except TOMLKitError as exc:
        raise ConfigError(f"{path} is not valid TOML: {exc}") from exc

    try:
        return VersyncConfig.model_validate(doc.unwrap())
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings in {path}:\n{exc}") from exc
