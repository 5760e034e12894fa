"""Data models for versync.

These Pydantic models represent the core data structures shared by the
catalog, the dependency graph, the bump engines and the changelog writer.

PackageInfo instances are shared by reference everywhere: the catalog list
is the single owner, and graph nodes and bump recommendations only point at
it. Mutating a package's version is therefore visible to every holder.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, Field


class DependencyField(str, Enum):
    """package.json fields that can hold local dependencies."""

    DEPENDENCIES = "dependencies"
    DEV_DEPENDENCIES = "devDependencies"
    PEER_DEPENDENCIES = "peerDependencies"
    OPTIONAL_DEPENDENCIES = "optionalDependencies"


def supported_dependency_fields(
    update_peer: bool = False, update_optional: bool = False
) -> list[DependencyField]:
    """Return the dependency fields versync is allowed to manage.

    dependencies and devDependencies are always managed; peer and optional
    dependencies only when asked for.
    """
    fields = [DependencyField.DEPENDENCIES, DependencyField.DEV_DEPENDENCIES]
    if update_peer:
        fields.append(DependencyField.PEER_DEPENDENCIES)
    if update_optional:
        fields.append(DependencyField.OPTIONAL_DEPENDENCIES)
    return fields


class DepType(str, Enum):
    """How a graph node was reached: itself, or through a dependency field."""

    SELF = "self"
    DEPENDENCIES = "dependencies"
    DEV_DEPENDENCIES = "devDependencies"
    PEER_DEPENDENCIES = "peerDependencies"
    OPTIONAL_DEPENDENCIES = "optionalDependencies"


class BumpType(IntEnum):
    """Semver bump category.

    Only PATCH < MINOR < MAJOR form a severity order. FIRST, PRERELEASE and
    EXACT are special categories driven by override rules, not by numeric
    comparison.
    """

    PATCH = 0
    MINOR = 1
    MAJOR = 2
    FIRST = 3
    PRERELEASE = 4
    EXACT = 5

    @property
    def label(self) -> str:
        return self.name.lower()

    @property
    def is_ordinary(self) -> bool:
        return self <= BumpType.MAJOR


class ReleaseAsPreset(str, Enum):
    """Named values accepted for --release-as (anything else must be a version)."""

    AUTO = "auto"
    ALPHA = "alpha"
    BETA = "beta"
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"


PRERELEASE_PRESETS = frozenset({ReleaseAsPreset.ALPHA.value, ReleaseAsPreset.BETA.value})


class PackageInfo(BaseModel):
    """A single package discovered in the repository.

    Attributes:
        name: Unique package.json name.
        version: Current version string.
        manifest: Parsed package.json contents (mutated in place by bumps).
        path: Absolute path to the package directory.
        manifest_path: Absolute path to the package.json file.
        is_root: True for the monorepo root pseudo-package.
        is_private: True when package.json sets "private": true.
        files_changed: Files touched since the last publish, attached after
                       discovery by changed-package detection.
    """

    name: str
    version: str
    manifest: dict[str, Any] = Field(default_factory=dict)
    path: str
    manifest_path: str
    is_root: bool = False
    is_private: bool = False
    files_changed: list[str] | None = None

    def set_version(self, version: str) -> None:
        """Update both the in-memory version and the manifest's version."""
        self.version = version
        self.manifest["version"] = version

    def dependency_map(self, field: DependencyField) -> dict[str, str]:
        deps = self.manifest.get(field.value)
        return deps if isinstance(deps, dict) else {}

    def dependency_range(self, field: DependencyField, name: str) -> str | None:
        return self.dependency_map(field).get(name)

    def local_dependency_names(
        self, local_names: set[str], fields: list[DependencyField]
    ) -> list[str]:
        """Names of in-repo packages this package depends on, in manifest order."""
        out: list[str] = []
        for field in fields:
            for dep_name in self.dependency_map(field):
                if dep_name in local_names and dep_name not in out:
                    out.append(dep_name)
        return out


class DependencyGraphNode(BaseModel):
    """A package in the local dependency graph plus its local dependencies.

    Expanded subtrees are shared between parents rather than rebuilt, so the
    same node instance may appear in several deps lists.
    """

    package: PackageInfo
    dep_type: DepType = DepType.SELF
    deps: list[DependencyGraphNode] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return self.package.name


class PublishTagInfo(BaseModel):
    """The last git tag that corresponds to a publish of a package."""

    package_name: str
    tag: str | None = None
    sha: str | None = None


class BumpRecommendation(BaseModel):
    """A proposed version change for one package.

    Attributes:
        package: The affected package (shared reference).
        from_version: Prior version, or None for a first-ever release.
        to_version: Target version.
        type: Bump category.
        parent_bumps: Bumps that caused this one through propagation. Empty
                      for seed bumps.
    """

    package: PackageInfo
    from_version: str | None
    to_version: str
    type: BumpType
    parent_bumps: list[BumpRecommendation] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """An invalid bump (from == to) should be warned about, not published."""
        return self.from_version != self.to_version

    @property
    def bump_type_name(self) -> str:
        return self.type.label

    @property
    def is_seed(self) -> bool:
        return not self.parent_bumps

    def add_parent(self, parent: BumpRecommendation) -> None:
        if parent is self or any(p is parent for p in self.parent_bumps):
            return
        self.parent_bumps.append(parent)

    def root_causes(self) -> list[BumpRecommendation]:
        """Seed bumps that transitively caused this bump, in discovery order."""
        out: list[BumpRecommendation] = []
        seen: set[int] = {id(self)}
        stack = list(reversed(self.parent_bumps))
        while stack:
            bump = stack.pop()
            if id(bump) in seen:
                continue
            seen.add(id(bump))
            if bump.is_seed:
                out.append(bump)
            else:
                stack.extend(reversed(bump.parent_bumps))
        return out


class GitCommit(BaseModel):
    """A raw commit as returned by git log."""

    sha: str
    author: str = ""
    email: str = ""
    date: str = ""
    message: str = ""


class CommitNote(BaseModel):
    title: str
    text: str


class ConventionalCommit(BaseModel):
    """Structured Conventional Commits data for one commit."""

    sha: str
    author: str | None = None
    email: str | None = None
    type: str | None = None
    scope: str | None = None
    subject: str | None = None
    header: str | None = None
    body: str | None = None
    footer: str | None = None
    breaking: bool = False
    notes: list[CommitNote] = Field(default_factory=list)
    mentions: list[str] = Field(default_factory=list)
    merge: str | None = None


class ClassifiedCommit(GitCommit):
    """A commit with its conventional data and the package it belongs to."""

    conventional: ConventionalCommit
    package: PackageInfo
