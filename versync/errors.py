"""Exceptions raised by versync.

All of them derive from RuntimeError so callers that only care about
"the release can't proceed" can catch one thing. None of them are retried:
they point at structural problems in the repository's manifests.
"""

from __future__ import annotations


class VersyncError(RuntimeError):
    """Base class for all versync errors."""


class CycleError(VersyncError):
    """A package transitively depends on itself through local packages.

    Attributes:
        cycle: Package names forming the cycle in traversal order, closed
               with the repeated name (e.g. ["a", "b", "a"]).
    """

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {' → '.join(cycle)}")


class MissingPackageError(VersyncError):
    """A bump or commit references a package that isn't in the catalog."""

    def __init__(self, package_name: str, context: str = "") -> None:
        self.package_name = package_name
        msg = f"No package info for {package_name} was loaded in memory"
        if context:
            msg += f". {context}"
        super().__init__(msg)


class RangeParseError(VersyncError):
    """A dependent's manifest holds a range we can't rewrite."""

    def __init__(self, package: str, field: str, dependency: str, range_str: str) -> None:
        self.package = package
        self.field = field
        self.dependency = dependency
        self.range = range_str
        super().__init__(
            f'Unable to parse range "{range_str}" for {dependency} in '
            f"{package} ({field}). Fix it by hand and try again."
        )


class ManifestError(VersyncError):
    """A package.json couldn't be read or isn't a JSON object."""


class ConfigError(VersyncError):
    """versync.toml couldn't be parsed or holds invalid settings."""
