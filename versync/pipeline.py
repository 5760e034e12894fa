"""Release pipeline: discover → classify → recommend → synchronize → write → tag.

This module orchestrates the versync release process:
1. Discover all packages in the repository
2. Classify commits since each package's last publish tag
3. Seed one bump per package that changed (or every package when forced)
4. Propagate the bumps through the local dependency graph
5. Write package.json files and run the package manager install
6. Prepend changelogs
7. Commit, tag name@version and push

Every write step honours dry_run by printing what it would do instead.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from pydantic import BaseModel, Field

from .catalog import discover_packages, filter_packages_by_names, packages_changed_by_files
from .changelog import (
    ChangelogAggregateUpdate,
    build_changelog_updates,
    default_line_formatter,
    formatted_date,
    prepend_to_file,
    template_line_formatter,
)
from .commits import bump_types_by_package, forced_bump_type, seed_from_version
from .errors import MissingPackageError
from .git import DEFAULT_DATE_FORMAT, GitProvider, format_version_tag
from .graph import build_local_dependency_graph
from .manifest import MANIFEST_NAME, load_manifest, save_manifest
from .models import (
    BumpRecommendation,
    BumpType,
    ClassifiedCommit,
    DependencyGraphNode,
    PackageInfo,
    PublishTagInfo,
    ReleaseAsPreset,
)
from .recommend import is_explicit_release, recommend_bump
from .shell import fatal, run, step, warn
from .sync import SyncPolicy, synchronize_bumps
from .versions import is_exact_version

COMMIT_HEADER = "Version Bump"

# Lockfile → package manager, checked in order
LOCKFILES = (
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("bun.lockb", "bun"),
    ("bun.lock", "bun"),
    ("package-lock.json", "npm"),
    ("npm-shrinkwrap.json", "npm"),
)


class ReleaseOptions(BaseModel):
    """Settings for recommending and applying bumps.

    Attributes:
        cwd: Repository root.
        names: Only release these packages (all when empty).
        release_as: "auto", a preset, or an exact version.
        prerelease_id: Prerelease label; makes every bump a prerelease.
        uniqify: Append the short git SHA to every new version.
        save_exact: Pin rewritten dependency ranges exactly.
        force: Bump packages even when they have no commits.
        update_peer: Manage peerDependencies too.
        update_optional: Manage optionalDependencies too.
        fetch_all: Fetch from origin before reading history.
        fetch_tags: Fetch tags from origin before looking up publish tags.
        commit_date_format: git --date format for commit dates.
        commit: Create the version bump commit and tags.
        push: Push the commit and tags.
        install: Run the package manager install after writing manifests.
        changelog: Write CHANGELOG.md files.
        rollup_changelog: Also write a rollup CHANGELOG.md at the root.
        changelog_line_format: str.format template for changelog lines.
        dry_run: Print what would happen without writing anything.
        allow_uncommitted: Proceed even when the work tree is dirty.
        yes: Skip the confirmation prompt.
    """

    cwd: str = "."
    names: list[str] = Field(default_factory=list)
    release_as: str = ReleaseAsPreset.AUTO.value
    prerelease_id: str | None = None
    uniqify: bool = False
    save_exact: bool = False
    force: bool = False
    update_peer: bool = False
    update_optional: bool = False
    fetch_all: bool = True
    fetch_tags: bool = True
    commit_date_format: str = DEFAULT_DATE_FORMAT
    commit: bool = True
    push: bool = True
    install: bool = True
    changelog: bool = True
    rollup_changelog: bool = False
    changelog_line_format: str | None = None
    dry_run: bool = False
    allow_uncommitted: bool = False
    yes: bool = False

    @property
    def root(self) -> Path:
        return Path(self.cwd).resolve()


class RecommendedBumps(BaseModel):
    """Synchronized bumps plus the commits that produced them."""

    bumps: list[BumpRecommendation] = Field(default_factory=list)
    bumps_by_package_name: dict[str, BumpRecommendation] = Field(default_factory=dict)
    packages: list[PackageInfo] = Field(default_factory=list)
    commits: list[ClassifiedCommit] = Field(default_factory=list)


# ── Queries ─────────────────────────────────────────────────────────────


def list_packages(cwd: str | Path, names: list[str] | None = None) -> list[PackageInfo]:
    """Packages in the repository, optionally filtered by name."""
    root = Path(cwd).resolve()
    return filter_packages_by_names(discover_packages(root), names, root)


def last_version_tags(
    cwd: str | Path, git: GitProvider, names: list[str] | None = None, fetch: bool = True
) -> list[PublishTagInfo]:
    """Last publish tag for each package."""
    return git.publish_tags(list_packages(cwd, names), fetch=fetch)


def changed_files_since_bump(
    cwd: str | Path, git: GitProvider, names: list[str] | None = None, fetch: bool = True
) -> list[str]:
    """Files changed in each package since its last publish."""
    packages = list_packages(cwd, names)
    return git.files_changed_since_tags(packages, git.publish_tags(packages, fetch=fetch))


def changed_packages_since_bump(
    cwd: str | Path, git: GitProvider, names: list[str] | None = None, fetch: bool = True
) -> list[PackageInfo]:
    """Packages with file changes since their last publish."""
    packages = list_packages(cwd, names)
    files = git.files_changed_since_tags(packages, git.publish_tags(packages, fetch=fetch))
    return packages_changed_by_files(files, packages)


def changed_files_since_branch(
    cwd: str | Path, git: GitProvider, branch: str, names: list[str] | None = None
) -> list[str]:
    return git.files_changed_since_branch(list_packages(cwd, names), branch)


def changed_packages_since_branch(
    cwd: str | Path, git: GitProvider, branch: str, names: list[str] | None = None
) -> list[PackageInfo]:
    """Packages with file changes since the current branch left branch."""
    packages = list_packages(cwd, names)
    files = git.files_changed_since_branch(packages, branch)
    return packages_changed_by_files(files, packages)


def conventional_commits_by_package(
    cwd: str | Path,
    git: GitProvider,
    names: list[str] | None = None,
    date_format: str = DEFAULT_DATE_FORMAT,
    fetch: bool = True,
) -> list[ClassifiedCommit]:
    """Parsed commits since each package's last publish."""
    return git.classified_commits(list_packages(cwd, names), date_format, fetch=fetch)


def local_dependency_graph(cwd: str | Path) -> list[DependencyGraphNode]:
    return build_local_dependency_graph(discover_packages(Path(cwd).resolve()))


def detect_package_manager(root: Path) -> str:
    """Detect the package manager from lockfiles, then package.json's packageManager.

    Falls back to npm.
    """
    for lockfile, manager in LOCKFILES:
        if (root / lockfile).is_file():
            return manager
    manifest_path = root / MANIFEST_NAME
    if manifest_path.is_file():
        declared = str(load_manifest(manifest_path).get("packageManager") or "")
        if declared:
            return declared.split("@")[0]
    return "npm"


# ── Recommending ────────────────────────────────────────────────────────


def get_recommended_bumps(options: ReleaseOptions, git: GitProvider) -> RecommendedBumps:
    """Classify commits and compute synchronized bumps for every package.

    Nothing is written to disk; package.json contents are only updated in
    memory on the returned packages.
    """
    root = options.root
    all_packages = discover_packages(root)
    filtered = filter_packages_by_names(all_packages, options.names, root)
    if not filtered:
        return RecommendedBumps()

    commits = git.classified_commits(
        filtered, options.commit_date_format, fetch=options.fetch_all
    )
    tag_infos = {
        t.package_name: t for t in git.publish_tags(filtered, fetch=options.fetch_tags)
    }

    bump_types = bump_types_by_package(
        commits, options.release_as, options.prerelease_id, filtered
    )
    if options.force:
        for pkg in filtered:
            bump_types.setdefault(pkg.name, forced_bump_type(options.release_as))

    exact_release = is_exact_version(options.release_as)
    by_name = {p.name: p for p in filtered}
    seeds: list[BumpRecommendation] = []
    for name, bump_type in bump_types.items():
        pkg = by_name.get(name)
        if pkg is None:
            raise MissingPackageError(name, "Unable to get recommended bump.")
        from_version = seed_from_version(
            pkg, tag_infos.get(name), options.force, options.prerelease_id, exact_release
        )
        # Never tagged: published as-is unless a preset says otherwise
        if from_version is None and not is_explicit_release(options.release_as):
            bump_type = BumpType.FIRST
        seeds.append(
            recommend_bump(
                pkg,
                from_version,
                bump_type,
                release_as=options.release_as,
                prerelease_id=options.prerelease_id,
                uniqify=options.uniqify,
                git=git,
            )
        )

    policy = SyncPolicy(
        update_peer=options.update_peer,
        update_optional=options.update_optional,
        save_exact=options.save_exact,
        release_as=options.release_as,
        prerelease_id=options.prerelease_id,
        uniqify=options.uniqify,
        git=git,
    )
    result = synchronize_bumps(seeds, all_packages, policy)
    return RecommendedBumps(
        bumps=result.bumps,
        bumps_by_package_name=result.bumps_by_package_name,
        packages=result.packages,
        commits=commits,
    )


def format_plan(bumps: list[BumpRecommendation]) -> str:
    """Human-readable summary of the bumps about to be applied."""
    blocks = []
    for b in bumps:
        change = f"{b.from_version} -> {b.to_version}" if b.from_version else f"First time -> {b.to_version}"
        blocks.append(
            f"package: {b.package.name}\n"
            f"  bump: {change}\n"
            f"  type: {b.bump_type_name}\n"
            f"  valid: {str(b.is_valid).lower()}\n"
            f"  private: {str(b.package.is_private).lower()}"
        )
    return "\n\n".join(blocks)


# ── Applying ────────────────────────────────────────────────────────────


def write_manifests(packages: list[PackageInfo], dry_run: bool = False) -> None:
    """Flush in-memory package.json changes to disk."""
    step("Writing package.json files")
    for pkg in packages:
        if dry_run:
            print(f"  Will write {pkg.name} to {pkg.manifest_path}")
            continue
        save_manifest(Path(pkg.manifest_path), pkg.manifest)
        print(f"  {pkg.name}: {pkg.version}")


def install_dependencies(root: Path, dry_run: bool = False) -> None:
    """Run the package manager install so lockfiles pick up new versions."""
    manager = detect_package_manager(root)
    step(f"Synchronizing lockfiles with {manager} install")
    if dry_run:
        print(f"  Will run {manager} install")
        return
    # npm sometimes needs a second install before the lockfile settles
    for _ in range(2):
        if run(manager, "install", cwd=root, check=False).returncode == 0:
            return
    fatal("Failed to synchronize lock files. Aborting remaining operations")


def write_changelogs(
    result: RecommendedBumps, options: ReleaseOptions, date: str | None = None
) -> None:
    """Prepend changelog updates to every bumped package (and the rollup)."""
    step("Writing changelogs")
    date = date or formatted_date()
    formatter = (
        template_line_formatter(options.changelog_line_format)
        if options.changelog_line_format
        else default_line_formatter
    )
    updates = build_changelog_updates(result.bumps, result.commits, formatter, date)

    for update in updates:
        text = f"{update.render()}\n---\n\n"
        if options.dry_run:
            print(f"  Will write to {update.changelog_path}:\n\n{text}")
        else:
            prepend_to_file(update.changelog_path, text)
            print(f"  {update.changelog_path}")

    if not options.rollup_changelog:
        return
    # A lone root package already has its CHANGELOG.md at the root
    packages = result.packages
    if len(packages) == 1 and packages[0].is_root:
        return

    rollup = ChangelogAggregateUpdate(root=str(options.root), date=date, updates=updates)
    if options.dry_run:
        print(f"  Will write rollup to {rollup.changelog_path}:\n\n{rollup.render()}")
    else:
        prepend_to_file(rollup.changelog_path, rollup.render())
        print(f"  {rollup.changelog_path}")


def commit_and_tag(
    bumps: list[BumpRecommendation], git: GitProvider, dry_run: bool = False
) -> list[str]:
    """Create the version bump commit and a name@version tag per valid bump."""
    step("Committing and tagging")
    body = "\n".join(format_version_tag(b.package.name, b.to_version) for b in bumps)
    # An invalid bump's version was already published, so its tag exists
    tags = [format_version_tag(b.package.name, b.to_version) for b in bumps if b.is_valid]

    if dry_run:
        print(f"  Will commit:\n\n{COMMIT_HEADER}\n\n{body}\n")
        for tag in tags:
            print(f"  Will tag {tag}")
        return tags

    git.commit(COMMIT_HEADER, body)
    for tag in tags:
        git.tag(tag)
        print(f"  {tag}")
    return tags


def push_changes(git: GitProvider, tags: list[str], dry_run: bool = False) -> None:
    step("Pushing")
    if dry_run:
        print("  Will git push --no-verify")
        print(f"  Will push tags: {' '.join(tags)}")
        return
    git.push()
    git.push_tags(tags)


def apply_recommended_bumps(
    options: ReleaseOptions,
    git: GitProvider,
    confirm: Callable[[str], bool] | None = None,
) -> RecommendedBumps | None:
    """Recommend bumps and apply them to the repository.

    Args:
        options: Release settings.
        git: Git provider rooted at the repository.
        confirm: Called with the plan text when options.yes is False;
                 the release is aborted unless it returns True.

    Returns:
        The applied bumps, or None when nothing was applied.
    """
    if options.dry_run:
        warn("Dry run enabled: nothing will be written, committed or pushed")

    push = options.push
    if not options.commit and push:
        warn("Not committing, so not pushing either")
        push = False

    if not options.allow_uncommitted and git.workdir_unclean():
        warn(f"Unable to apply version bumps because {options.root} has uncommitted changes")
        return None

    step("Computing version bumps")
    result = get_recommended_bumps(options, git)
    if not result.bumps:
        warn("Unable to apply version bumps because no packages need bumping")
        return None

    plan = format_plan(result.bumps)
    for bump in result.bumps:
        if not bump.is_valid:
            warn(f"{bump.package.name} would stay at {bump.to_version}; it won't be tagged")

    if not options.yes:
        if confirm is None or not confirm(f"The following bumps will be applied:\n\n{plan}\n\nContinue?"):
            warn("Changes were not confirmed. Aborting now.")
            return None
    else:
        print(f"Will perform the following updates:\n\n{plan}")

    write_manifests(result.packages, options.dry_run)
    if options.install:
        install_dependencies(options.root, options.dry_run)
    if options.changelog:
        write_changelogs(result, options)

    tags: list[str] = []
    if options.commit:
        tags = commit_and_tag(result.bumps, git, options.dry_run)
    if push:
        push_changes(git, tags, options.dry_run)

    print(f"\n{'=' * 60}\nDone!\n{'=' * 60}")
    return result
