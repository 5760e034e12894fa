"""Git access for versync.

GitProvider wraps every git call the release flow needs. Fetch flags and
tag lists are cached per instance, so one provider gives a consistent view
of the repository for the whole run while separate providers (e.g. in
tests) never share state.
"""

from __future__ import annotations

import os
from pathlib import Path

from .commits import classify_commit
from .models import ClassifiedCommit, GitCommit, PackageInfo, PublishTagInfo
from .shell import git, warn
from .versions import parse_version

FIELD_DELIMITER = "~~~***~~~"
RECORD_DELIMITER = "====----====++++===="
DEFAULT_DATE_FORMAT = "iso-strict"
# Tags pushed per git push invocation
TAG_PUSH_CHUNK = 5


def format_version_tag(name: str, version: str) -> str:
    """Tag used to mark a publish, e.g. "@scope/pkg@1.2.3"."""
    return f"{name}@{version}"


def _tag_version(tag: str, package_name: str) -> str | None:
    prefix = f"{package_name}@"
    return tag[len(prefix) :] if tag.startswith(prefix) else None


def parse_log(output: str) -> list[GitCommit]:
    """Parse `git log` output produced with the versync record format."""
    commits: list[GitCommit] = []
    for record in output.split(RECORD_DELIMITER):
        parts = record.strip().split(FIELD_DELIMITER)[1:]
        if not parts or not parts[0].strip():
            continue
        sha, author, email, date, message = (parts + [""] * 5)[:5]
        commits.append(
            GitCommit(
                sha=sha.strip(),
                author=author,
                email=email,
                date=date,
                message=message.strip(),
            )
        )
    return commits


def _parse_ref_lines(output: str) -> list[tuple[str, str]]:
    """Turn "<sha> refs/tags/<tag>" lines into (tag, sha) pairs."""
    out: list[tuple[str, str]] = []
    for line in output.splitlines():
        fields = line.split()
        if len(fields) < 2:
            continue
        sha, ref = fields[0], fields[1]
        tag = ref.removeprefix("refs/tags/")
        # Annotated tags are listed twice; the peeled entry points at the commit
        out.append((tag.removesuffix("^{}"), sha))
    return out


class GitProvider:
    """Git operations rooted at one working directory."""

    def __init__(self, cwd: str | Path | None = None) -> None:
        self.cwd = Path(cwd or Path.cwd()).resolve()
        self._fetched_all = False
        self._fetched_tags = False
        self._remote_tags: list[tuple[str, str]] | None = None
        self._local_tags: list[tuple[str, str]] | None = None

    def _git(self, *args: str, check: bool = True) -> str:
        return git(*args, cwd=self.cwd, check=check)

    # ── Fetching ────────────────────────────────────────────────────────

    def is_shallow(self) -> bool:
        return self._git("rev-parse", "--is-shallow-repository", check=False) == "true"

    def fetch_all(self) -> None:
        """Fetch from origin once per provider, warning on shallow clones."""
        if self._fetched_all:
            return
        if self.is_shallow():
            warn(
                "Current git repository is a SHALLOW CLONE. Limited git history "
                "may be available, which may result in missing or wrong version bumps."
            )
        self._git("fetch", "origin", check=False)
        self._fetched_all = True

    def fetch_tags(self) -> None:
        """Force-update local tags from origin, once per provider."""
        if self._fetched_tags:
            return
        self._git("fetch", "origin", "--tags", "--force", check=False)
        self._fetched_tags = True

    # ── History ─────────────────────────────────────────────────────────

    def commits_since(
        self,
        since: str | None = None,
        rel_path: str = "",
        date_format: str | None = DEFAULT_DATE_FORMAT,
    ) -> list[GitCommit]:
        """Commits after since (a SHA or tag), or all commits when unset.

        Args:
            since: Exclusive lower bound of the range.
            rel_path: Only commits touching this path (relative to cwd).
            date_format: Value for git's --date option.
        """
        fmt = FIELD_DELIMITER.join(["", "%H", "%an", "%ae", "%ad", "%B"])
        args = ["--no-pager", "log", f"--format={fmt}{RECORD_DELIMITER}"]
        if date_format:
            args.append(f"--date={date_format}")
        if since:
            args.append(f"{since}..")
        if rel_path:
            args.extend(["--", rel_path])
        return parse_log(self._git(*args))

    def files_changed_since(self, ref: str) -> list[str]:
        """Absolute paths of files modified since a SHA, tag or branch."""
        output = self._git("--no-pager", "diff", "--name-only", f"{ref}..")
        return [str((self.cwd / line).resolve()) for line in output.splitlines() if line]

    def files_changed_since_tags(
        self, packages: list[PackageInfo], tag_infos: list[PublishTagInfo]
    ) -> list[str]:
        """Files changed inside each package since that package's last publish."""
        by_name = {p.name: p for p in packages}
        out: list[str] = []
        for info in tag_infos:
            pkg = by_name.get(info.package_name)
            if not info.sha or pkg is None:
                continue
            for path in self.files_changed_since(info.sha):
                if Path(path).is_relative_to(pkg.path) and path not in out:
                    out.append(path)
        return out

    def files_changed_since_branch(
        self, packages: list[PackageInfo], branch: str
    ) -> list[str]:
        """Files changed inside any of the packages since branching off branch."""
        changed = self.files_changed_since(branch)
        return [
            path
            for path in changed
            if any(Path(path).is_relative_to(p.path) for p in packages)
        ]

    def classified_commits(
        self,
        packages: list[PackageInfo],
        date_format: str | None = DEFAULT_DATE_FORMAT,
        fetch: bool = True,
    ) -> list[ClassifiedCommit]:
        """Commits since each package's last publish, parsed and attributed.

        Packages that were never published get their full history.
        """
        if fetch:
            self.fetch_all()
        out: list[ClassifiedCommit] = []
        for pkg in packages:
            tag_info = self.last_publish_tag(pkg)
            rel_path = os.path.relpath(pkg.path, self.cwd)
            commits = self.commits_since(
                since=tag_info.sha if tag_info else None,
                rel_path="" if rel_path == "." else rel_path,
                date_format=date_format,
            )
            out.extend(classify_commit(c, pkg) for c in commits)
        return out

    # ── Tags ────────────────────────────────────────────────────────────

    def remote_tags(self) -> list[tuple[str, str]]:
        """(tag, sha) pairs on origin, cached for the provider's lifetime."""
        if self._remote_tags is None:
            output = self._git("ls-remote", "--tags", "origin", check=False)
            self._remote_tags = _parse_ref_lines(output)
        return self._remote_tags

    def local_tags(self) -> list[tuple[str, str]]:
        """(tag, sha) pairs in the local repository, cached."""
        if self._local_tags is None:
            output = self._git("show-ref", "--tags", check=False)
            self._local_tags = _parse_ref_lines(output)
        return self._local_tags

    def last_publish_tag(self, package: PackageInfo) -> PublishTagInfo | None:
        """Find the tag of a package's most recent publish.

        Looks for the tag of the package's current version first (remote or
        local), then falls back to the package's highest-versioned tag.
        """
        tags = dict(self.remote_tags() + self.local_tags())

        tag = format_version_tag(package.name, package.version)
        if tag in tags:
            return PublishTagInfo(package_name=package.name, tag=tag, sha=tags[tag])

        best: tuple[str, str] | None = None
        for candidate in tags:
            version = _tag_version(candidate, package.name)
            if version is None:
                continue
            try:
                parsed = parse_version(version)
            except ValueError:
                continue
            if best is None or parsed.compare(parse_version(best[1])) > 0:
                best = (candidate, version)

        if best is None:
            return None
        return PublishTagInfo(package_name=package.name, tag=best[0], sha=tags[best[0]])

    def publish_tags(
        self, packages: list[PackageInfo], fetch: bool = True
    ) -> list[PublishTagInfo]:
        """Last publish tag for each package (tag and sha None when unpublished)."""
        if fetch:
            self.fetch_tags()
        out: list[PublishTagInfo] = []
        for pkg in packages:
            info = self.last_publish_tag(pkg)
            out.append(info or PublishTagInfo(package_name=pkg.name))
        return out

    # ── Writing ─────────────────────────────────────────────────────────

    def current_short_sha(self) -> str:
        return self._git("rev-parse", "--short", "HEAD")

    def current_branch(self) -> str:
        return self._git("rev-parse", "--abbrev-ref", "HEAD")

    def workdir_unclean(self) -> bool:
        return bool(self._git("status", "-s"))

    def commit(self, header: str, body: str = "") -> None:
        """Stage everything and commit, skipping hooks."""
        self._git("add", ".")
        args = ["commit", "-m", header]
        if body:
            args.extend(["-m", body])
        self._git(*args, "--no-verify")

    def tag(self, tag: str) -> None:
        self._git("tag", tag)

    def ensure_branch_on_origin(self) -> str:
        """Push the current branch with upstream tracking if origin lacks it."""
        branch = self.current_branch()
        if not branch:
            raise RuntimeError("Unable to determine the current branch name")
        if not self._git("ls-remote", "--heads", "origin", branch):
            self._git("push", "--set-upstream", "origin", branch)
        return branch

    def push(self) -> None:
        self.ensure_branch_on_origin()
        self._git("push", "--no-verify")

    def push_tags(self, tags: list[str]) -> None:
        """Push tags to origin a few at a time."""
        if not tags:
            return
        self.ensure_branch_on_origin()
        for i in range(0, len(tags), TAG_PUSH_CHUNK):
            self._git("push", "origin", *tags[i : i + TAG_PUSH_CHUNK], "--no-verify")
