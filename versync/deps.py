"""Dependency range handling.

Provides functions for reading npm semver ranges out of package.json
dependency fields and rewriting them to point at a newly bumped local
package, keeping the range operator the user chose where we can.
"""

from __future__ import annotations

import re
from typing import NamedTuple

from .errors import RangeParseError
from .models import DependencyField, PackageInfo

# Operators we carry over when rewriting. Anything else becomes "^".
PRESERVED_OPERATORS = ("^", "~", ">=")
DEFAULT_OPERATOR = "^"
WORKSPACE_PROTOCOL = "workspace:"
# pnpm/yarn shorthand that resolves to the local version at publish time
WORKSPACE_SHORTHANDS = frozenset({"*", "^", "~"})

_COMPARATOR_RE = re.compile(
    r"^\s*(?P<operator>\^|~>|~|>=|<=|>|<|=)?\s*v?"
    r"(?P<version>\d+(?:\.(?:\d+|[xX*]))*(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?)"
)


class RangeSpec(NamedTuple):
    """The first comparator of a semver range.

    Examples:
        "^1.2.3" → RangeSpec("^", "1.2.3")
        ">=1.0.0 <2.0.0" → RangeSpec(">=", "1.0.0")
        "1.2.3" → RangeSpec("", "1.2.3")
    """

    operator: str
    version: str


def parse_range(range_str: str) -> RangeSpec | None:
    """Parse the first comparator of a range, or None if there isn't one.

    Only the first alternative of an "a || b" range is considered; users
    with complicated ranges get them simplified on rewrite.
    """
    first = range_str.split("||")[0]
    match = _COMPARATOR_RE.match(first)
    if not match:
        return None
    return RangeSpec(match.group("operator") or "", match.group("version"))


def rewrite_range(range_str: str, new_version: str, exact: bool = False) -> str | None:
    """Point a dependency range at a new version.

    The existing operator is kept when it is ^, ~ or >=; any other
    operator (or none) becomes ^. With exact=True the version is pinned
    with no operator at all.

    Examples:
        rewrite_range("~1.2.3", "1.3.0") → "~1.3.0"
        rewrite_range("<1.0.0", "1.3.0") → "^1.3.0"
        rewrite_range("^1.2.3", "1.3.0", exact=True) → "1.3.0"
        rewrite_range("workspace:^1.2.3", "1.3.0") → "workspace:^1.3.0"
        rewrite_range("workspace:*", "1.3.0") → "workspace:*"

    Returns:
        The new range, or None when the range can't be parsed.
    """
    if range_str.startswith(WORKSPACE_PROTOCOL):
        inner = range_str[len(WORKSPACE_PROTOCOL) :]
        if inner in WORKSPACE_SHORTHANDS:
            return range_str
        rewritten = rewrite_range(inner, new_version, exact)
        return None if rewritten is None else f"{WORKSPACE_PROTOCOL}{rewritten}"

    spec = parse_range(range_str)
    if spec is None:
        return None
    if exact:
        return new_version
    operator = spec.operator if spec.operator in PRESERVED_OPERATORS else DEFAULT_OPERATOR
    return f"{operator}{new_version}"


def rewrite_dependency(
    package: PackageInfo,
    field: DependencyField,
    dep_name: str,
    new_version: str,
    exact: bool = False,
) -> str | None:
    """Rewrite one dependency range in a package's manifest, in place.

    Returns:
        The new range string, or None if the package doesn't list dep_name
        under field (or lists it with an empty range).

    Raises:
        RangeParseError: If the existing range can't be parsed.
    """
    deps = package.dependency_map(field)
    existing = deps.get(dep_name)
    if not existing:
        return None

    updated = rewrite_range(str(existing), new_version, exact)
    if updated is None:
        raise RangeParseError(package.name, field.value, dep_name, str(existing))
    deps[dep_name] = updated
    return updated


def find_dependents(
    dep_name: str,
    packages: list[PackageInfo],
    fields: list[DependencyField],
) -> list[tuple[PackageInfo, DependencyField]]:
    """Find every (package, field) pair whose manifest lists dep_name.

    A package listing the dependency under two fields appears twice.
    """
    out: list[tuple[PackageInfo, DependencyField]] = []
    for pkg in packages:
        if pkg.name == dep_name:
            continue
        for field in fields:
            if dep_name in pkg.dependency_map(field):
                out.append((pkg, field))
    return out
