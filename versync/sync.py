"""Bump synchronization engine.

Applies seed bumps to their packages and ripples them out to every
dependent in the repository:

1. apply the bump's target version to the package (in memory)
2. find every package whose manifest depends on it
3. rewrite the dependent's range to the new version
4. give the dependent a bump of its own, or merge into the one it has
5. queue the dependent so its own dependents are reached in turn

Propagation uses an explicit FIFO worklist of package names whose version
just changed, processed until empty. Each ripple is handled to completion
before the next one starts, so no two updates race on the same package.
The graph is checked for cycles before anything is mutated, which together
with the bounded number of type upgrades per package guarantees a fixed
point is reached.
"""

from __future__ import annotations

from collections import deque

from pydantic import BaseModel, ConfigDict

from .deps import find_dependents, rewrite_dependency
from .errors import MissingPackageError
from .git import GitProvider
from .graph import build_local_dependency_graph, topo_sort
from .models import (
    PRERELEASE_PRESETS,
    BumpRecommendation,
    BumpType,
    PackageInfo,
    supported_dependency_fields,
)
from .recommend import recommend_bump
from .versions import bump_part, compare_versions, increment, release_stream


class SyncPolicy(BaseModel):
    """Knobs that control how bumps propagate.

    Attributes:
        update_peer: Also rewrite and propagate through peerDependencies.
        update_optional: Also rewrite and propagate through optionalDependencies.
        save_exact: Pin rewritten ranges exactly (no ^ / ~ / >=).
        release_as: Preset or exact version applied to propagated bumps.
        prerelease_id: Prerelease label applied to propagated bumps.
        uniqify: Append the short git SHA to propagated targets.
        git: Git provider used when uniqify is set.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    update_peer: bool = False
    update_optional: bool = False
    save_exact: bool = False
    release_as: str | None = None
    prerelease_id: str | None = None
    uniqify: bool = False
    git: GitProvider | None = None

    @property
    def exact_ranges(self) -> bool:
        """Rewritten ranges are pinned for save_exact and alpha/beta releases."""
        return self.save_exact or self.release_as in PRERELEASE_PRESETS


class SyncResult(BaseModel):
    """Output of synchronize_bumps.

    Attributes:
        bumps: Every bump (seed and propagated) in dependency order.
        bumps_by_package_name: The same bumps keyed by package name.
        packages: Every package whose version or manifest changed, in
                  dependency order. Persist their manifests to disk.
    """

    bumps: list[BumpRecommendation]
    bumps_by_package_name: dict[str, BumpRecommendation]
    packages: list[PackageInfo]


def propagated_type(parent_type: BumpType) -> BumpType:
    """Bump category a dependent inherits from a parent.

    A parent's first release is published as-is, so its dependents only
    need a patch to pick it up.
    """
    return BumpType.PATCH if parent_type == BumpType.FIRST else parent_type


def resolve_version(bump: BumpRecommendation) -> str:
    """Pick the version to apply for a bump given the package's current one.

    Exact releases always win. Otherwise, when the current version is on
    the same release stream as the target (both stable, or both carrying
    the same prerelease label) the greater of the two wins; switching
    streams (e.g. 2.0.0-beta.3 → 1.5.0) always takes the target.
    """
    current = bump.package.version
    target = bump.to_version
    if bump.type == BumpType.EXACT or not current or current == target:
        return target
    try:
        same_stream = release_stream(current) == release_stream(target)
        if same_stream and compare_versions(current, target) > 0:
            return current
    except ValueError:
        # uniqified or hand-edited versions aren't comparable
        return target
    return target


def merge_type(bump: BumpRecommendation, incoming: BumpType, policy: SyncPolicy) -> None:
    """Raise a bump to the more disruptive of its own type and incoming.

    When that upgrades an ordinary bump (PATCH < MINOR < MAJOR) the target
    is recomputed from the bump's base version; FIRST, PRERELEASE and EXACT
    bumps keep their target.
    """
    merged = max(bump.type, incoming)
    if merged == bump.type:
        return
    bump.type = merged
    if merged.is_ordinary and bump.from_version:
        to_version = increment(bump.from_version, bump_part(merged))
        if policy.uniqify and policy.git is not None:
            to_version = f"{to_version}.{policy.git.current_short_sha()}"
        bump.to_version = to_version


def merge_parent(
    child: BumpRecommendation, parent: BumpRecommendation, policy: SyncPolicy
) -> None:
    """Fold a parent's bump into a dependent's existing bump."""
    child.add_parent(parent)
    merge_type(child, propagated_type(parent.type), policy)


def synchronize_bumps(
    seed_bumps: list[BumpRecommendation],
    all_packages: list[PackageInfo],
    policy: SyncPolicy | None = None,
    existing: dict[str, BumpRecommendation] | None = None,
) -> SyncResult:
    """Apply seed bumps and propagate them to every local dependent.

    Args:
        seed_bumps: Bumps from commit classification or forced/exact releases.
        all_packages: The full package catalog. Packages are mutated in place.
        policy: Propagation settings; defaults to SyncPolicy().
        existing: Bumps already applied by an earlier run. They're carried
                  into the result and merged with, but not re-applied.

    Returns:
        SyncResult with every bump and every changed package.

    Raises:
        CycleError: If the local dependency graph has a cycle.
        MissingPackageError: If a seed bump's package isn't in the catalog.
        RangeParseError: If a dependent's range can't be rewritten.

    Example:
        a → d, b → d, c → {a, b}, all at 1.0.0; PATCH on d gives
        d, a, b and c 1.0.1, and every range on them becomes ^1.0.1.
    """
    policy = policy or SyncPolicy()
    by_name = {p.name: p for p in all_packages}
    fields = supported_dependency_fields(policy.update_peer, policy.update_optional)

    # Fails on cycles before any package is touched
    build_local_dependency_graph(all_packages, policy.update_peer, policy.update_optional)

    bumps_by_name: dict[str, BumpRecommendation] = dict(existing or {})
    touched: dict[str, PackageInfo] = {}
    queue: deque[str] = deque()

    def enqueue(name: str) -> None:
        if name not in queue:
            queue.append(name)

    for seed in seed_bumps:
        name = seed.package.name
        if name not in by_name:
            raise MissingPackageError(name, "Unable to synchronize bumps.")
        # Always work on the catalog's instance so mutations are shared
        seed.package = by_name[name]
        if name in bumps_by_name and bumps_by_name[name] is not seed:
            merge_type(bumps_by_name[name], seed.type, policy)
        else:
            bumps_by_name[name] = seed
        enqueue(name)

    while queue:
        name = queue.popleft()
        bump = bumps_by_name[name]

        version = resolve_version(bump)
        bump.to_version = version
        bump.package.set_version(version)
        touched[name] = bump.package

        for dependent, field in find_dependents(name, all_packages, fields):
            if rewrite_dependency(dependent, field, name, version, exact=policy.exact_ranges) is None:
                # Listed with an empty range
                continue
            touched[dependent.name] = dependent
            # A versionless manifest (usually the workspace root) keeps its
            # rewritten range but has no version to bump
            if not dependent.version:
                continue

            child = bumps_by_name.get(dependent.name)
            if child is None:
                child = recommend_bump(
                    dependent,
                    dependent.version,
                    propagated_type(bump.type),
                    parent_bump=bump,
                    release_as=policy.release_as,
                    prerelease_id=policy.prerelease_id,
                    uniqify=policy.uniqify,
                    git=policy.git,
                )
                bumps_by_name[dependent.name] = child
                enqueue(dependent.name)
                continue

            before = child.to_version
            merge_parent(child, bump, policy)
            if child.to_version != before or dependent.version != child.to_version:
                enqueue(dependent.name)

    order = topo_sort(all_packages, policy.update_peer, policy.update_optional)
    return SyncResult(
        bumps=[bumps_by_name[n] for n in order if n in bumps_by_name],
        bumps_by_package_name=bumps_by_name,
        packages=[touched[n] for n in order if n in touched],
    )
