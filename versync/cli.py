"""CLI entry point for versync."""

from __future__ import annotations

import functools
import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from . import pipeline
from .config import VersyncConfig, load_config
from .errors import VersyncError
from .git import GitProvider
from .graph import render_graph
from .models import BumpRecommendation, ClassifiedCommit, PackageInfo, PublishTagInfo


def _handle_errors(fn: Callable[..., None]) -> Callable[..., None]:
    """Report versync errors as clean CLI failures instead of tracebacks."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> None:
        try:
            fn(*args, **kwargs)
        except (VersyncError, ValueError) as exc:
            raise click.ClickException(str(exc)) from exc

    return wrapper


def _common(fn: Callable[..., None]) -> Callable[..., None]:
    fn = click.option(
        "--json", "as_json", is_flag=True, help="Print machine-readable JSON."
    )(fn)
    fn = click.option(
        "--cwd",
        type=click.Path(exists=True, file_okay=False),
        default=".",
        show_default=True,
        help="Repository root.",
    )(fn)
    return fn


def _names(fn: Callable[..., None]) -> Callable[..., None]:
    return click.option(
        "--package",
        "-p",
        "names",
        multiple=True,
        help="Only consider this package (repeatable).",
    )(fn)


def _fetch(fn: Callable[..., None]) -> Callable[..., None]:
    fn = click.option(
        "--no-fetch-tags", is_flag=True, help="Don't fetch tags from origin first."
    )(fn)
    fn = click.option(
        "--no-fetch-all", is_flag=True, help="Don't fetch from origin first."
    )(fn)
    return fn


def _bump_options(fn: Callable[..., None]) -> Callable[..., None]:
    options = [
        click.option(
            "--release-as",
            default=None,
            help="auto, alpha, beta, major, minor, patch, or an exact version.",
        ),
        click.option("--preid", default=None, help="Prerelease identifier, e.g. rc."),
        click.option(
            "--uniqify", is_flag=True, help="Append the short git SHA to new versions."
        ),
        click.option(
            "--force", is_flag=True, help="Bump packages even without new commits."
        ),
        click.option(
            "--update-peer", is_flag=True, help="Also manage peerDependencies."
        ),
        click.option(
            "--update-optional", is_flag=True, help="Also manage optionalDependencies."
        ),
        click.option(
            "--save-exact", is_flag=True, help="Pin rewritten ranges exactly."
        ),
        click.option("--commit-date-format", default=None, help="git --date format."),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2))


def _relative(path: str, root: Path) -> str:
    return os.path.relpath(path, root)


def _package_dict(pkg: PackageInfo, root: Path) -> dict[str, Any]:
    return {
        "name": pkg.name,
        "version": pkg.version,
        "path": _relative(pkg.path, root),
        "root": pkg.is_root,
        "private": pkg.is_private,
    }


def _bump_dict(bump: BumpRecommendation) -> dict[str, Any]:
    return {
        "name": bump.package.name,
        "from": bump.from_version,
        "to": bump.to_version,
        "type": bump.bump_type_name,
        "valid": bump.is_valid,
        "private": bump.package.is_private,
        "causes": [b.package.name for b in bump.root_causes()],
    }


def _commit_dict(commit: ClassifiedCommit) -> dict[str, Any]:
    return {
        "package": commit.package.name,
        "sha": commit.sha,
        "date": commit.date,
        "author": commit.author,
        "conventional": commit.conventional.model_dump(exclude={"sha"}),
    }


def _tag_dict(info: PublishTagInfo) -> dict[str, Any]:
    return {"package": info.package_name, "tag": info.tag, "sha": info.sha}


def _options(
    config: VersyncConfig,
    cwd: str,
    names: tuple[str, ...],
    release_as: str | None,
    preid: str | None,
    uniqify: bool,
    force: bool,
    update_peer: bool,
    update_optional: bool,
    save_exact: bool,
    commit_date_format: str | None,
    no_fetch_all: bool,
    no_fetch_tags: bool,
    **extra: Any,
) -> pipeline.ReleaseOptions:
    """Merge CLI flags over versync.toml settings."""
    return pipeline.ReleaseOptions(
        cwd=cwd,
        names=list(names),
        release_as=release_as or config.bump.release_as,
        prerelease_id=preid or config.bump.prerelease_id,
        uniqify=uniqify,
        force=force,
        update_peer=update_peer or config.bump.update_peer,
        update_optional=update_optional or config.bump.update_optional,
        save_exact=save_exact or config.bump.save_exact,
        commit_date_format=commit_date_format or config.git.commit_date_format,
        fetch_all=config.git.fetch and not no_fetch_all,
        fetch_tags=config.git.fetch and not no_fetch_tags,
        changelog_line_format=config.changelog.line_format,
        **extra,
    )


@click.group()
@click.version_option()
def cli() -> None:
    """Version bumps for JavaScript monorepos, kept in sync across local dependencies."""


@cli.command("ls")
@_common
@_names
@_handle_errors
def ls(cwd: str, as_json: bool, names: tuple[str, ...]) -> None:
    """List the packages in the repository."""
    root = Path(cwd).resolve()
    packages = pipeline.list_packages(root, list(names))
    if as_json:
        _echo_json([_package_dict(p, root) for p in packages])
        return
    for pkg in packages:
        click.echo(f"{pkg.name} {pkg.version} ({_relative(pkg.path, root)})")


@cli.command("last-version-tags")
@_common
@_names
@_fetch
@_handle_errors
def last_version_tags(
    cwd: str, as_json: bool, names: tuple[str, ...], no_fetch_all: bool, no_fetch_tags: bool
) -> None:
    """Show the tag of each package's last publish."""
    config = load_config(Path(cwd))
    infos = pipeline.last_version_tags(
        cwd, GitProvider(cwd), list(names), fetch=config.git.fetch and not no_fetch_tags
    )
    if as_json:
        _echo_json([_tag_dict(i) for i in infos])
        return
    for info in infos:
        click.echo(f"{info.package_name}: {info.tag or '<never published>'}")


@cli.command("changed-files-since-bump")
@_common
@_names
@_fetch
@_handle_errors
def changed_files_since_bump(
    cwd: str, as_json: bool, names: tuple[str, ...], no_fetch_all: bool, no_fetch_tags: bool
) -> None:
    """List files changed in each package since its last publish."""
    root = Path(cwd).resolve()
    config = load_config(root)
    files = pipeline.changed_files_since_bump(
        root, GitProvider(root), list(names), fetch=config.git.fetch and not no_fetch_tags
    )
    if as_json:
        _echo_json(files)
        return
    for path in files:
        click.echo(_relative(path, root))


@cli.command("changed-packages-since-bump")
@_common
@_names
@_fetch
@_handle_errors
def changed_packages_since_bump(
    cwd: str, as_json: bool, names: tuple[str, ...], no_fetch_all: bool, no_fetch_tags: bool
) -> None:
    """List packages with changes since their last publish."""
    root = Path(cwd).resolve()
    config = load_config(root)
    packages = pipeline.changed_packages_since_bump(
        root, GitProvider(root), list(names), fetch=config.git.fetch and not no_fetch_tags
    )
    if as_json:
        _echo_json([_package_dict(p, root) for p in packages])
        return
    for pkg in packages:
        click.echo(pkg.name)


@cli.command("changed-files-since-branch")
@_common
@_names
@click.option("--branch", default="main", show_default=True, help="Branch to diff against.")
@_handle_errors
def changed_files_since_branch(
    cwd: str, as_json: bool, names: tuple[str, ...], branch: str
) -> None:
    """List package files changed since the current branch left --branch."""
    root = Path(cwd).resolve()
    files = pipeline.changed_files_since_branch(root, GitProvider(root), branch, list(names))
    if as_json:
        _echo_json(files)
        return
    for path in files:
        click.echo(_relative(path, root))


@cli.command("changed-packages-since-branch")
@_common
@_names
@click.option("--branch", default="main", show_default=True, help="Branch to diff against.")
@_handle_errors
def changed_packages_since_branch(
    cwd: str, as_json: bool, names: tuple[str, ...], branch: str
) -> None:
    """List packages changed since the current branch left --branch."""
    root = Path(cwd).resolve()
    packages = pipeline.changed_packages_since_branch(root, GitProvider(root), branch, list(names))
    if as_json:
        _echo_json([_package_dict(p, root) for p in packages])
        return
    for pkg in packages:
        click.echo(pkg.name)


@cli.command("get-conventional-since-bump")
@_common
@_names
@_fetch
@click.option("--commit-date-format", default=None, help="git --date format.")
@_handle_errors
def get_conventional_since_bump(
    cwd: str,
    as_json: bool,
    names: tuple[str, ...],
    no_fetch_all: bool,
    no_fetch_tags: bool,
    commit_date_format: str | None,
) -> None:
    """Show conventional commits for each package since its last publish."""
    root = Path(cwd).resolve()
    config = load_config(root)
    commits = pipeline.conventional_commits_by_package(
        root,
        GitProvider(root),
        list(names),
        date_format=commit_date_format or config.git.commit_date_format,
        fetch=config.git.fetch and not no_fetch_all,
    )
    if as_json:
        _echo_json([_commit_dict(c) for c in commits])
        return
    for commit in commits:
        click.echo(f"{commit.package.name} {commit.sha[:7]} {commit.conventional.header or ''}")


@cli.command("get-bumps")
@_common
@_names
@_fetch
@_bump_options
@_handle_errors
def get_bumps(cwd: str, as_json: bool, **flags: Any) -> None:
    """Show the version bumps that apply-bumps would make."""
    root = Path(cwd).resolve()
    options = _options(load_config(root), str(root), **flags)
    result = pipeline.get_recommended_bumps(options, GitProvider(root))
    if as_json:
        _echo_json([_bump_dict(b) for b in result.bumps])
        return
    if not result.bumps:
        click.echo("No packages need bumping.")
        return
    click.echo(pipeline.format_plan(result.bumps))


@cli.command("apply-bumps")
@_common
@_names
@_fetch
@_bump_options
@click.option("--allow-uncommitted", is_flag=True, help="Run even with a dirty work tree.")
@click.option("--dry-run", is_flag=True, help="Print what would happen without changing anything.")
@click.option("--rollup-changelog", is_flag=True, help="Also write a root CHANGELOG.md rollup.")
@click.option("--no-changelog", is_flag=True, help="Don't write changelogs.")
@click.option("--no-commit", is_flag=True, help="Don't commit or tag.")
@click.option("--no-install", is_flag=True, help="Don't run the package manager install.")
@click.option("--no-push", is_flag=True, help="Don't push commits or tags.")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
@_handle_errors
def apply_bumps(
    cwd: str,
    as_json: bool,
    allow_uncommitted: bool,
    dry_run: bool,
    rollup_changelog: bool,
    no_changelog: bool,
    no_commit: bool,
    no_install: bool,
    no_push: bool,
    yes: bool,
    **flags: Any,
) -> None:
    """Apply version bumps, write changelogs, commit, tag and push."""
    root = Path(cwd).resolve()
    config = load_config(root)
    options = _options(
        config,
        str(root),
        allow_uncommitted=allow_uncommitted,
        dry_run=dry_run,
        rollup_changelog=rollup_changelog or config.changelog.rollup,
        changelog=config.changelog.enabled and not no_changelog,
        commit=not no_commit,
        install=not no_install,
        push=not no_push,
        yes=yes,
        **flags,
    )
    result = pipeline.apply_recommended_bumps(
        options, GitProvider(root), confirm=lambda plan: click.confirm(plan, default=False)
    )
    if as_json and result is not None:
        _echo_json([_bump_dict(b) for b in result.bumps])


@cli.command("local-dep-graph")
@_common
@_handle_errors
def local_dep_graph(cwd: str, as_json: bool) -> None:
    """Show how the repository's packages depend on each other."""
    nodes = pipeline.local_dependency_graph(cwd)
    if as_json:

        def to_dict(node: Any) -> dict[str, Any]:
            return {
                "name": node.name,
                "version": node.package.version,
                "depType": node.dep_type.value,
                "deps": [to_dict(d) for d in node.deps],
            }

        _echo_json([to_dict(n) for n in nodes])
        return
    click.echo(render_graph(nodes))
