"""Package discovery.

Finds every package in the repository (a single package, or an npm / yarn /
pnpm workspace monorepo) and materializes each one as a PackageInfo. The
returned list is the arena every other component shares.
"""

from __future__ import annotations

from pathlib import Path

from .manifest import (
    MANIFEST_NAME,
    get_pnpm_member_globs,
    get_workspace_member_globs,
    load_manifest,
)
from .models import PackageInfo


def _package_from_dir(directory: Path, is_root: bool) -> PackageInfo:
    manifest_path = directory / MANIFEST_NAME
    manifest = load_manifest(manifest_path)
    return PackageInfo(
        name=str(manifest.get("name") or directory.name),
        version=str(manifest.get("version") or ""),
        manifest=manifest,
        path=str(directory),
        manifest_path=str(manifest_path),
        is_root=is_root,
        is_private=bool(manifest.get("private", False)),
    )


def _expand_globs(root: Path, patterns: list[str]) -> list[Path]:
    """Expand workspace globs into package directories.

    "!pattern" entries exclude, "." is the root itself, and only
    directories holding a package.json count.
    """
    include = [p for p in patterns if not p.startswith("!")]
    exclude = [p[1:] for p in patterns if p.startswith("!")]

    def _glob(pattern: str) -> list[Path]:
        pattern = pattern[2:] if pattern.startswith("./") else pattern
        pattern = pattern.rstrip("/")
        if pattern in ("", "."):
            return [root]
        return sorted(root.glob(pattern))

    found: set[Path] = set()
    for pattern in include:
        for candidate in _glob(pattern):
            if candidate.is_dir() and (candidate / MANIFEST_NAME).is_file():
                found.add(candidate.resolve())

    excluded = {c.resolve() for pattern in exclude for c in _glob(pattern)}
    return sorted(found - excluded)


def workspace_member_globs(root: Path) -> list[str]:
    """Workspace globs from package.json, falling back to pnpm-workspace.yaml."""
    root_manifest = load_manifest(root / MANIFEST_NAME)
    return get_workspace_member_globs(root_manifest) or get_pnpm_member_globs(root)


def is_monorepo(root: Path) -> bool:
    return bool(workspace_member_globs(Path(root).resolve()))


def discover_packages(root: Path) -> list[PackageInfo]:
    """Scan the repository and discover all packages.

    The root package.json is always included (flagged is_root); workspace
    members are added when the repository is a monorepo.

    Returns:
        Packages sorted by name.
    """
    root = Path(root).resolve()
    packages = [_package_from_dir(root, is_root=True)]

    for directory in _expand_globs(root, workspace_member_globs(root)):
        if directory == root:
            continue
        packages.append(_package_from_dir(directory, is_root=False))

    return sorted(packages, key=lambda p: p.name)


def filter_packages_by_names(
    packages: list[PackageInfo], names: list[str] | None, root: Path
) -> list[PackageInfo]:
    """Keep packages whose names are listed (all if names is empty).

    The root pseudo-package is dropped in a monorepo: bumping it is left
    to the user.
    """
    wanted = set(names or [])
    out = [p for p in packages if p.name in wanted] if wanted else list(packages)
    if is_monorepo(root):
        out = [p for p in out if not p.is_root]
    return out


def packages_changed_by_files(
    files: list[str], packages: list[PackageInfo]
) -> list[PackageInfo]:
    """Return the packages owning any of the given absolute file paths.

    Each returned package has files_changed set. A file is attributed to
    the package with the deepest directory containing it, so files in a
    workspace member aren't also charged to the root.
    """
    by_depth = sorted(packages, key=lambda p: len(Path(p.path).parts), reverse=True)
    changed: dict[str, PackageInfo] = {}

    for file_path in files:
        resolved = Path(file_path)
        owner = next(
            (p for p in by_depth if resolved.is_relative_to(Path(p.path))), None
        )
        if owner is None:
            continue
        if owner.name not in changed:
            owner.files_changed = []
            changed[owner.name] = owner
        changed[owner.name].files_changed.append(file_path)

    return list(changed.values())
