"""Bump recommendation engine.

Turns a package plus a requested bump category into a concrete
BumpRecommendation, applying --release-as presets, exact versions and
prerelease identifiers on top of what commit classification asked for.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .models import (
    PRERELEASE_PRESETS,
    BumpRecommendation,
    BumpType,
    PackageInfo,
    ReleaseAsPreset,
)
from .versions import bump_part, increment, is_exact_version

if TYPE_CHECKING:
    from .git import GitProvider

_FORCED_TYPES = {
    ReleaseAsPreset.MAJOR.value: BumpType.MAJOR,
    ReleaseAsPreset.MINOR.value: BumpType.MINOR,
    ReleaseAsPreset.PATCH.value: BumpType.PATCH,
}


def is_explicit_release(release_as: str | None) -> bool:
    """True for any release_as other than unset / "auto"."""
    return bool(release_as) and release_as != ReleaseAsPreset.AUTO.value


def resolve_bump_type(
    bump_type: BumpType,
    release_as: str | None = None,
    prerelease_id: str | None = None,
) -> tuple[BumpType, str | None]:
    """Apply release_as / prerelease_id overrides to a commit-derived type.

    Resolution order, first match wins:
    1. release_as is a literal version → EXACT
    2. alpha / beta → PRERELEASE, prerelease_id defaults to the preset
    3. major / minor / patch → that category
    4. auto / unset → bump_type unchanged
    A non-empty prerelease_id then forces PRERELEASE (unless EXACT).

    Returns:
        (resolved type, prerelease id to use)
    """
    if is_exact_version(release_as):
        return BumpType.EXACT, prerelease_id or None

    resolved = bump_type
    if release_as in PRERELEASE_PRESETS:
        resolved = BumpType.PRERELEASE
        prerelease_id = prerelease_id or release_as
    elif release_as in _FORCED_TYPES:
        resolved = _FORCED_TYPES[release_as]

    if prerelease_id:
        resolved = BumpType.PRERELEASE
    return resolved, prerelease_id or None


def recommend_bump(
    package: PackageInfo,
    from_version: str | None,
    bump_type: BumpType,
    parent_bump: BumpRecommendation | None = None,
    release_as: str | None = None,
    prerelease_id: str | None = None,
    uniqify: bool = False,
    git: GitProvider | None = None,
) -> BumpRecommendation:
    """Recommend a version bump for a package.

    The target is computed from the package's *current* version. When
    there's no meaningful prior reference (from_version is None and this
    isn't a prerelease or explicit release) the package is released as-is
    at the version already declared in its manifest.

    Args:
        package: Package to bump (shared reference, not copied).
        from_version: Version of the last publish, or None for a first release.
        bump_type: Category derived from commit classification.
        parent_bump: Bump that caused this one through propagation.
        release_as: "auto", "alpha", "beta", "major", "minor", "patch", or
                    a literal version for an exact release.
        prerelease_id: Prerelease label (e.g. "rc"); forces a prerelease.
        uniqify: Append ".<short sha>" to the target version.
        git: Git provider; required when uniqify is set.

    Examples:
        1.0.37, PATCH, from None → 1.0.37 (first release, as-is)
        1.0.37, PATCH, from "1.0.37" → 1.0.38
        release_as="100.1.2" → EXACT, 100.1.2
    """
    resolved, preid = resolve_bump_type(bump_type, release_as, prerelease_id)
    is_prerelease = resolved == BumpType.PRERELEASE

    from_to_use = (
        package.version
        if is_prerelease or is_explicit_release(release_as)
        else from_version
    )

    # Versionless manifests (e.g. a private workspace root) are released as-is
    if not from_to_use:
        to_version = package.version
    elif resolved == BumpType.EXACT:
        to_version = str(release_as)
    else:
        to_version = increment(package.version, bump_part(resolved, is_prerelease), preid)

    if uniqify:
        if git is None:
            raise ValueError("uniqify requires a git provider to read the current SHA")
        to_version = f"{to_version}.{git.current_short_sha()}"

    return BumpRecommendation(
        package=package,
        from_version=from_to_use,
        to_version=to_version,
        type=resolved,
        parent_bumps=[parent_bump] if parent_bump is not None else [],
    )
