"""Changelog generation.

Groups classified commits per bumped package and renders Markdown that gets
prepended to each package's CHANGELOG.md (and optionally to a rollup
CHANGELOG.md at the repository root).

Rendered layout for one package:

    ## 1.1.0 (2024-05-01)

    ### ✨ Features ✨

    - feat: add thing (abc1234)
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from .commits import commit_to_bump_type
from .errors import MissingPackageError
from .models import BumpRecommendation, BumpType, ClassifiedCommit, ConventionalCommit

CHANGELOG_NAME = "CHANGELOG.md"

LineFormatter = Callable[[ConventionalCommit], str]


class ChangelogEntryType(str, Enum):
    """Changelog sections, in the order they're rendered."""

    BREAKING = "breaking"
    FEATURES = "features"
    FIXES = "fixes"
    DOCS = "docs"
    MISC = "misc"

    @property
    def heading(self) -> str:
        return _HEADINGS[self]


_HEADINGS = {
    ChangelogEntryType.BREAKING: "🚨 Breaking Changes 🚨",
    ChangelogEntryType.FEATURES: "✨ Features ✨",
    ChangelogEntryType.FIXES: "🛠️ Fixes 🛠️",
    ChangelogEntryType.DOCS: "📖 Docs 📖",
    ChangelogEntryType.MISC: "🔀 Miscellaneous 🔀",
}


def formatted_date(now: datetime | None = None) -> str:
    """Today's date as YYYY-MM-DD (UTC)."""
    return (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")


def default_line_formatter(line: ConventionalCommit) -> str:
    text = line.header or line.subject or ""
    if line.sha:
        text = f"{text} ({line.sha})"
    return f"- {text.strip()}"


def template_line_formatter(template: str) -> LineFormatter:
    """Build a formatter from a str.format template.

    Available fields: header, subject, sha, short_sha, type, scope, author.

    Example:
        template_line_formatter("- {subject} by {author}")
    """

    def _format(line: ConventionalCommit) -> str:
        return template.format(
            header=line.header or "",
            subject=line.subject or line.header or "",
            sha=line.sha,
            short_sha=line.sha[:7],
            type=line.type or "",
            scope=line.scope or "",
            author=line.author or "",
        )

    return _format


def entry_type_for(commit: ClassifiedCommit) -> ChangelogEntryType:
    bump_type = commit_to_bump_type(commit)
    if bump_type == BumpType.MAJOR:
        return ChangelogEntryType.BREAKING
    if bump_type == BumpType.MINOR:
        return ChangelogEntryType.FEATURES
    if commit.conventional.type == "fix":
        return ChangelogEntryType.FIXES
    if commit.conventional.type == "docs":
        return ChangelogEntryType.DOCS
    return ChangelogEntryType.MISC


class ChangelogUpdateEntry(BaseModel):
    """One section ("### heading" plus bullet lines) of a changelog update."""

    type: ChangelogEntryType
    lines: list[ConventionalCommit] = Field(default_factory=list)
    formatter: LineFormatter = default_line_formatter

    def render(self) -> str:
        rendered = [self.formatter(line) for line in self.lines]
        return f"### {self.type.heading}\n\n" + "\n".join(r for r in rendered if r)

    def __str__(self) -> str:
        return self.render()


class ChangelogUpdate(BaseModel):
    """A block of changelog text for one bumped package."""

    date: str
    bump: BumpRecommendation
    entries: dict[ChangelogEntryType, ChangelogUpdateEntry] = Field(default_factory=dict)

    @property
    def changelog_path(self) -> Path:
        return Path(self.bump.package.path) / CHANGELOG_NAME

    def add(self, entry_type: ChangelogEntryType, line: ConventionalCommit, formatter: LineFormatter) -> None:
        if entry_type not in self.entries:
            self.entries[entry_type] = ChangelogUpdateEntry(type=entry_type, formatter=formatter)
        self.entries[entry_type].lines.append(line)

    def render(self) -> str:
        header = f"## {self.bump.to_version} ({self.date})"
        ordered = [self.entries[t] for t in ChangelogEntryType if t in self.entries]
        body = "\n\n\n\n".join(e.render() for e in ordered)
        return f"{header}\n\n{body}\n"

    def __str__(self) -> str:
        return self.render()


class ChangelogAggregateUpdate(BaseModel):
    """Rollup of every package's update for the repository root CHANGELOG.md."""

    root: str
    date: str
    updates: list[ChangelogUpdate]

    @property
    def changelog_path(self) -> Path:
        return Path(self.root) / CHANGELOG_NAME

    def render(self) -> str:
        header = f"# __All updates from {self.date} are below:__"
        sections = "".join(
            f"# {u.bump.package.name} Updates\n\n{u.render()}\n\n" for u in self.updates
        )
        return f"{header}\n\n{sections}---\n"

    def __str__(self) -> str:
        return self.render()


def _no_commit_line(bump: BumpRecommendation) -> ConventionalCommit:
    if not bump.is_seed:
        causes = ", ".join(b.package.name for b in bump.root_causes())
        header = f"Version bumped because of changes in {causes}"
    elif bump.type == BumpType.EXACT:
        header = f"Version bumped exactly to {bump.to_version}"
    else:
        header = "Version bump forced for all"
    return ConventionalCommit(
        sha="",
        header=header,
        breaking=bump.type in (BumpType.MAJOR, BumpType.EXACT),
    )


def build_changelog_updates(
    bumps: list[BumpRecommendation],
    commits: list[ClassifiedCommit],
    formatter: LineFormatter = default_line_formatter,
    date: str | None = None,
) -> list[ChangelogUpdate]:
    """Build one ChangelogUpdate per bumped package.

    Packages with commits get their commits sorted into sections; packages
    bumped without any commits get a single Miscellaneous line explaining
    why (propagation from another package, an exact release, or a forced
    release).

    Raises:
        MissingPackageError: If a commit belongs to a package with no bump.
    """
    date = date or formatted_date()
    bumps_by_name = {b.package.name: b for b in bumps}

    commits_by_name: dict[str, list[ClassifiedCommit]] = {}
    for commit in commits:
        commits_by_name.setdefault(commit.package.name, []).append(commit)

    out: list[ChangelogUpdate] = []
    covered: set[str] = set()
    for name, package_commits in commits_by_name.items():
        bump = bumps_by_name.get(name)
        if bump is None:
            raise MissingPackageError(name, "Unable to build its changelog without a bump.")
        update = ChangelogUpdate(date=date, bump=bump)
        for commit in package_commits:
            if not commit.conventional.header:
                continue
            update.add(entry_type_for(commit), commit.conventional, formatter)
            covered.add(name)
        out.append(update)

    for bump in bumps:
        if bump.package.name in covered:
            continue
        # Packages whose commits were all headerless already have an empty update
        out = [u for u in out if u.bump.package.name != bump.package.name]
        update = ChangelogUpdate(date=date, bump=bump)
        update.add(ChangelogEntryType.MISC, _no_commit_line(bump), formatter)
        out.append(update)

    return out


def prepend_to_file(path: Path, text: str) -> None:
    """Write text ahead of whatever the file already holds."""
    existing = path.read_text(encoding="utf-8") if path.exists() else ""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text + existing, encoding="utf-8")
