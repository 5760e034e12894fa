"""Version parsing, incrementing and comparison.

Increments follow npm's semver.inc() rules rather than python-semver's
bump_* methods, because the manifests we rewrite are consumed by npm:

- "1.2.3-beta.1" patch → "1.2.3" (a prerelease of a patch is released as-is)
- "1.2.3" prerelease "beta" → "1.2.4-beta.0"
- "1.2.4-beta.0" prerelease "beta" → "1.2.4-beta.1"
- "1.2.4-alpha.3" prerelease "beta" → "1.2.4-beta.0"
"""

from __future__ import annotations

import semver

from .models import BumpType


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version.

    Incomplete versions are padded with zeros ("1.2" → "1.2.0") and a
    leading "v" is ignored. Prerelease and build segments are kept.
    """
    text = version_str.strip().lstrip("vV=")
    core, sep, rest = text.partition("-")
    if not sep:
        core, sep, rest = text.partition("+")
    parts = core.split(".")
    while len(parts) < 3:
        parts.append("0")
    return semver.Version.parse(".".join(parts[:3]) + (sep + rest if sep else ""))


def is_exact_version(value: str | None) -> bool:
    """True when value is a literal semantic version (an exact release)."""
    if not value:
        return False
    return semver.Version.is_valid(value)


def release_stream(version_str: str) -> str | None:
    """Return the prerelease label a version belongs to.

    The label is the first dot-separated identifier of the prerelease
    segment: "2.0.0-beta.3" → "beta", "2.0.0-rc1.2" → "rc1". Stable
    versions return None. A purely numeric prerelease ("1.0.0-0") has no
    label and returns "".
    """
    version = parse_version(version_str)
    if not version.prerelease:
        return None
    first = version.prerelease.split(".")[0]
    return "" if first.isdigit() else first


def compare_versions(a: str, b: str) -> int:
    """Compare two versions by semver precedence (-1, 0, 1)."""
    return parse_version(a).compare(parse_version(b))


def increment(version_str: str, part: str, prerelease_id: str | None = None) -> str:
    """Increment a version the way npm's semver.inc() does.

    Args:
        version_str: Current version.
        part: One of "major", "minor", "patch", "prerelease".
        prerelease_id: Label for prerelease increments (e.g. "beta").

    Raises:
        ValueError: For an unknown part or an unparseable version.
    """
    v = parse_version(version_str)
    if part == "major":
        if v.prerelease and v.minor == 0 and v.patch == 0:
            return str(v.replace(prerelease=None, build=None))
        return str(v.bump_major())
    if part == "minor":
        if v.prerelease and v.patch == 0:
            return str(v.replace(prerelease=None, build=None))
        return str(v.bump_minor())
    if part == "patch":
        if v.prerelease:
            return str(v.replace(prerelease=None, build=None))
        return str(v.bump_patch())
    if part == "prerelease":
        return _increment_prerelease(v, prerelease_id)
    raise ValueError(f"Unknown version part: {part}")


def _increment_prerelease(v: semver.Version, prerelease_id: str | None) -> str:
    if not v.prerelease:
        base = v.bump_patch()
        label = f"{prerelease_id}.0" if prerelease_id else "0"
        return str(base.replace(prerelease=label))

    ids = v.prerelease.split(".")
    if prerelease_id and ids[0] != prerelease_id:
        return str(v.replace(prerelease=f"{prerelease_id}.0", build=None))

    # Bump the right-most numeric identifier, or append one
    for i in range(len(ids) - 1, -1, -1):
        if ids[i].isdigit():
            ids[i] = str(int(ids[i]) + 1)
            break
    else:
        ids.append("0")
    return str(v.replace(prerelease=".".join(ids), build=None))


def bump_part(bump_type: BumpType, is_prerelease: bool = False) -> str:
    """Map a bump category to the version part to increment."""
    if is_prerelease or bump_type == BumpType.PRERELEASE:
        return "prerelease"
    if bump_type == BumpType.PATCH:
        return "patch"
    if bump_type == BumpType.MINOR:
        return "minor"
    return "major"
