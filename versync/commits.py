"""Conventional Commits parsing and bump classification.

Parses messages in the format ``type(scope)!: subject`` followed by an
optional body and footer, and turns the parsed commits into a per-package
bump category:

- a breaking change (``!`` or a ``BREAKING CHANGE:`` footer) → MAJOR
- ``feat`` → MINOR
- anything else → PATCH
"""

from __future__ import annotations

import re

from .models import (
    PRERELEASE_PRESETS,
    BumpType,
    ClassifiedCommit,
    CommitNote,
    ConventionalCommit,
    GitCommit,
    PackageInfo,
    PublishTagInfo,
    ReleaseAsPreset,
)
from .versions import is_exact_version

HEADER_PATTERN = re.compile(
    r"^(?P<type>[\w-]+)"  # type (e.g. feat, fix, chore)
    r"(?:\((?P<scope>[^)]*)\))?"  # optional scope in parens
    r"(?P<breaking>!)?"  # optional breaking change indicator
    r":\s*"
    r"(?P<subject>.+)$"
)

MERGE_PATTERN = re.compile(
    r"^merge\s+(branch|tag|commit|pull\s+request|remote-tracking\s+branch)"
    r"\s+'([^']+)'(?:\s+of\s+(.*))?$",
    re.IGNORECASE,
)

# "Token: value" or "Token #value" lines that open the footer
FOOTER_PATTERN = re.compile(r"^(BREAKING[ -]CHANGE|[\w-]+)(?::\s|\s#)")
BREAKING_PATTERN = re.compile(r"^BREAKING[ -]CHANGE:\s*(?P<text>.*)", re.DOTALL)
MENTION_PATTERN = re.compile(r"(?<![\w.])@([\w-]+)")

_FORCED_TYPES = {
    ReleaseAsPreset.MAJOR.value: BumpType.MAJOR,
    ReleaseAsPreset.MINOR.value: BumpType.MINOR,
    ReleaseAsPreset.PATCH.value: BumpType.PATCH,
}


def _split_footer(paragraphs: list[str]) -> tuple[list[str], list[str]]:
    for i, paragraph in enumerate(paragraphs):
        if FOOTER_PATTERN.match(paragraph):
            return paragraphs[:i], paragraphs[i:]
    return paragraphs, []


def parse_conventional(commit: GitCommit) -> ConventionalCommit:
    """Parse a commit message into its Conventional Commits parts.

    Messages that don't follow the convention still get a header (the
    first line) but no type, scope or subject.

    Examples:
        "feat(ui)!: drop IE" → type="feat", scope="ui", breaking=True
        "fix: typo\\n\\nBREAKING CHANGE: renamed" → breaking=True, one note
        "Merge branch 'main'\\nfix: x" → merge="Merge branch 'main'", type="fix"
    """
    lines = commit.message.strip().splitlines()
    merge: str | None = None
    if lines and MERGE_PATTERN.match(lines[0].strip()):
        merge = lines[0].strip()
        lines = "\n".join(lines[1:]).strip().splitlines() or lines

    header = lines[0].strip() if lines else ""
    rest = "\n".join(lines[1:]).strip()
    paragraphs = [p.strip() for p in re.split(r"\n\s*\n", rest) if p.strip()]
    body_parts, footer_parts = _split_footer(paragraphs)

    notes: list[CommitNote] = []
    for paragraph in footer_parts:
        match = BREAKING_PATTERN.match(paragraph)
        if match:
            title = paragraph.split(":", 1)[0]
            notes.append(CommitNote(title=title, text=match.group("text").strip()))

    match = HEADER_PATTERN.match(header)
    breaking = bool(notes) or bool(match and match.group("breaking"))

    return ConventionalCommit(
        sha=commit.sha,
        author=commit.author or None,
        email=commit.email or None,
        type=match.group("type") if match else None,
        scope=(match.group("scope") or None) if match else None,
        subject=match.group("subject").strip() if match else None,
        header=header or None,
        body="\n\n".join(body_parts) or None,
        footer="\n\n".join(footer_parts) or None,
        breaking=breaking,
        notes=notes,
        mentions=MENTION_PATTERN.findall(commit.message),
        merge=merge,
    )


def classify_commit(commit: GitCommit, package: PackageInfo) -> ClassifiedCommit:
    return ClassifiedCommit(
        **commit.model_dump(),
        conventional=parse_conventional(commit),
        package=package,
    )


def commit_to_bump_type(commit: ClassifiedCommit | ConventionalCommit) -> BumpType:
    """Breaking → MAJOR, feat → MINOR, everything else → PATCH."""
    conventional = commit.conventional if isinstance(commit, ClassifiedCommit) else commit
    if conventional.breaking:
        return BumpType.MAJOR
    if conventional.type == "feat":
        return BumpType.MINOR
    return BumpType.PATCH


def validate_release_as(release_as: str | None) -> None:
    """Raise ValueError unless release_as is a preset or a literal version."""
    if not release_as or is_exact_version(release_as):
        return
    if release_as not in {p.value for p in ReleaseAsPreset}:
        raise ValueError(
            f'Invalid release-as value "{release_as}". Use one of '
            f"{', '.join(p.value for p in ReleaseAsPreset)} or an exact version."
        )


def forced_bump_type(release_as: str | None) -> BumpType:
    """Bump category for a package forced into a release without commits."""
    if release_as in PRERELEASE_PRESETS:
        return BumpType.PRERELEASE
    return _FORCED_TYPES.get(release_as or "", BumpType.PATCH)


def bump_types_by_package(
    commits: list[ClassifiedCommit],
    release_as: str | None = ReleaseAsPreset.AUTO.value,
    prerelease_id: str | None = None,
    packages: list[PackageInfo] | None = None,
) -> dict[str, BumpType]:
    """Pick the most disruptive bump category per package.

    Args:
        commits: Classified commits for the packages being released.
        release_as: Preset or literal version. Presets override what the
                    commits say; a literal version makes every package in
                    packages an EXACT release.
        prerelease_id: Makes every bump a PRERELEASE. Takes precedence over
                       release_as presets.
        packages: Packages being released (used for exact releases).

    Raises:
        ValueError: If release_as is neither a preset nor a version.
    """
    validate_release_as(release_as)

    if is_exact_version(release_as):
        return {p.name: BumpType.EXACT for p in packages or []}

    out: dict[str, BumpType] = {}
    for commit in commits:
        name = commit.package.name
        bump_type = BumpType.PRERELEASE if prerelease_id else commit_to_bump_type(commit)
        bump_type = max(out.get(name, BumpType.PATCH), bump_type)
        if not prerelease_id:
            if release_as in PRERELEASE_PRESETS:
                bump_type = BumpType.PRERELEASE
            elif release_as in _FORCED_TYPES:
                bump_type = _FORCED_TYPES[release_as]
        out[name] = bump_type
    return out


def seed_from_version(
    package: PackageInfo,
    tag_info: PublishTagInfo | None,
    force: bool = False,
    prerelease_id: str | None = None,
    exact_release: bool = False,
) -> str | None:
    """The from version for a seed bump.

    None (a first release, published as-is) unless the package has been
    published before, or the release is forced, a prerelease or exact.
    """
    known = tag_info is not None and bool(tag_info.sha)
    if force or prerelease_id or exact_release or known:
        return package.version
    return None
