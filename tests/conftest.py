"""Shared test fixtures."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from versync.models import PackageInfo


def write_manifest(directory: Path, data: dict[str, Any]) -> Path:
    """Write a package.json into directory, creating it if needed."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "package.json"
    path.write_text(json.dumps(data, indent=2) + "\n")
    return path


def make_package(
    name: str,
    version: str = "1.0.0",
    dependencies: dict[str, str] | None = None,
    **fields: dict[str, str],
) -> PackageInfo:
    """Build an in-memory package; extra kwargs become manifest fields."""
    manifest: dict[str, Any] = {"name": name, "version": version}
    if dependencies:
        manifest["dependencies"] = dependencies
    manifest.update(fields)
    return PackageInfo(
        name=name,
        version=version,
        manifest=manifest,
        path=f"/repo/packages/{name}",
        manifest_path=f"/repo/packages/{name}/package.json",
    )


@pytest.fixture
def package_factory() -> Callable[..., PackageInfo]:
    return make_package


@pytest.fixture
def diamond() -> list[PackageInfo]:
    """a → d, b → d, c → {a, b}, all at 1.0.0 with ^ ranges."""
    return [
        make_package("a", dependencies={"d": "^1.0.0"}),
        make_package("b", dependencies={"d": "^1.0.0"}),
        make_package("c", dependencies={"a": "^1.0.0", "b": "^1.0.0"}),
        make_package("d"),
    ]


@pytest.fixture
def monorepo(tmp_path: Path) -> Path:
    """A workspace on disk shaped like the diamond fixture."""
    write_manifest(
        tmp_path,
        {"name": "root", "version": "0.0.0", "private": True, "workspaces": ["packages/*"]},
    )
    packages = tmp_path / "packages"
    write_manifest(
        packages / "a", {"name": "a", "version": "1.0.0", "dependencies": {"d": "^1.0.0"}}
    )
    write_manifest(
        packages / "b", {"name": "b", "version": "1.0.0", "dependencies": {"d": "^1.0.0"}}
    )
    write_manifest(
        packages / "c",
        {"name": "c", "version": "1.0.0", "dependencies": {"a": "^1.0.0", "b": "^1.0.0"}},
    )
    write_manifest(
        packages / "d",
        {"name": "d", "version": "1.0.0", "devDependencies": {"left-pad": "^1.3.0"}},
    )
    return tmp_path


@pytest.fixture
def write_package() -> Callable[[Path, dict[str, Any]], Path]:
    return write_manifest
