"""Tests for versync.git."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock, call, patch

from versync.git import (
    FIELD_DELIMITER,
    RECORD_DELIMITER,
    GitProvider,
    format_version_tag,
    parse_log,
)
from versync.models import PackageInfo, PublishTagInfo


def _record(sha: str, message: str, date: str = "2024-05-01T10:00:00+00:00") -> str:
    fields = ["", sha, "Ada", "ada@example.com", date, message]
    return FIELD_DELIMITER.join(fields) + RECORD_DELIMITER


class TestFormatVersionTag:
    def test_scoped_name(self) -> None:
        assert format_version_tag("@scope/pkg", "1.2.3") == "@scope/pkg@1.2.3"


class TestParseLog:
    def test_parses_records(self) -> None:
        output = _record("aaa", "feat: one\n\nbody") + "\n" + _record("bbb", "fix: two")
        commits = parse_log(output)
        assert [(c.sha, c.message) for c in commits] == [
            ("aaa", "feat: one\n\nbody"),
            ("bbb", "fix: two"),
        ]
        assert commits[0].author == "Ada"
        assert commits[0].date == "2024-05-01T10:00:00+00:00"

    def test_empty_output(self) -> None:
        assert parse_log("") == []


class TestCommitsSince:
    @patch("versync.git.git")
    def test_builds_log_command(self, mock_git: MagicMock, tmp_path: Path) -> None:
        mock_git.return_value = _record("aaa", "fix: x")
        provider = GitProvider(tmp_path)

        commits = provider.commits_since(since="deadbeef", rel_path="packages/a")

        args = mock_git.call_args.args
        assert args[:2] == ("--no-pager", "log")
        assert "--date=iso-strict" in args
        assert "deadbeef.." in args
        assert args[-2:] == ("--", "packages/a")
        assert mock_git.call_args.kwargs["cwd"] == tmp_path.resolve()
        assert [c.sha for c in commits] == ["aaa"]

    @patch("versync.git.git")
    def test_all_history(self, mock_git: MagicMock, tmp_path: Path) -> None:
        mock_git.return_value = ""
        GitProvider(tmp_path).commits_since()
        args = mock_git.call_args.args
        assert not any(a.endswith("..") for a in args)
        assert "--" not in args


class TestTags:
    @patch("versync.git.git")
    def test_remote_tags_cached_per_provider(
        self, mock_git: MagicMock, tmp_path: Path
    ) -> None:
        mock_git.return_value = "111\trefs/tags/a@1.0.0\n222\trefs/tags/b@2.0.0"
        provider = GitProvider(tmp_path)

        assert provider.remote_tags() == [("a@1.0.0", "111"), ("b@2.0.0", "222")]
        provider.remote_tags()
        assert mock_git.call_count == 1

        GitProvider(tmp_path).remote_tags()
        assert mock_git.call_count == 2

    @patch("versync.git.git")
    def test_annotated_tags_use_peeled_sha(
        self, mock_git: MagicMock, tmp_path: Path
    ) -> None:
        mock_git.return_value = "tagobj\trefs/tags/a@1.0.0\ncommit\trefs/tags/a@1.0.0^{}"
        tags = dict(GitProvider(tmp_path).remote_tags())
        assert tags == {"a@1.0.0": "commit"}


class TestLastPublishTag:
    def _provider(self, tmp_path: Path, remote: list[tuple[str, str]], local: list[tuple[str, str]]) -> GitProvider:
        provider = GitProvider(tmp_path)
        provider._remote_tags = remote
        provider._local_tags = local
        return provider

    def test_exact_version_tag(
        self, tmp_path: Path, package_factory: Callable[..., PackageInfo]
    ) -> None:
        provider = self._provider(tmp_path, [("a@1.0.0", "111")], [("a@1.1.0", "222")])
        info = provider.last_publish_tag(package_factory("a", version="1.0.0"))
        assert info == PublishTagInfo(package_name="a", tag="a@1.0.0", sha="111")

    def test_falls_back_to_largest(
        self, tmp_path: Path, package_factory: Callable[..., PackageInfo]
    ) -> None:
        provider = self._provider(
            tmp_path,
            [("a@1.2.0", "120"), ("a@1.10.0", "1100"), ("ab@9.0.0", "999")],
            [("a@1.9.0", "190"), ("a@garbage", "000")],
        )
        info = provider.last_publish_tag(package_factory("a", version="2.0.0"))
        assert info is not None
        assert (info.tag, info.sha) == ("a@1.10.0", "1100")

    def test_never_published(
        self, tmp_path: Path, package_factory: Callable[..., PackageInfo]
    ) -> None:
        provider = self._provider(tmp_path, [("b@1.0.0", "111")], [])
        assert provider.last_publish_tag(package_factory("a")) is None

    def test_publish_tags_fills_unpublished(
        self, tmp_path: Path, package_factory: Callable[..., PackageInfo]
    ) -> None:
        provider = self._provider(tmp_path, [("a@1.0.0", "111")], [])
        infos = provider.publish_tags([package_factory("a"), package_factory("b")], fetch=False)
        assert infos == [
            PublishTagInfo(package_name="a", tag="a@1.0.0", sha="111"),
            PublishTagInfo(package_name="b"),
        ]


class TestFetch:
    @patch("versync.git.warn")
    @patch("versync.git.git")
    def test_fetch_all_once_and_warns_on_shallow(
        self, mock_git: MagicMock, mock_warn: MagicMock, tmp_path: Path
    ) -> None:
        mock_git.side_effect = lambda *args, **kwargs: "true" if "--is-shallow-repository" in args else ""
        provider = GitProvider(tmp_path)

        provider.fetch_all()
        provider.fetch_all()

        fetches = [c for c in mock_git.call_args_list if c.args[0] == "fetch"]
        assert len(fetches) == 1
        mock_warn.assert_called_once()
        assert "SHALLOW" in mock_warn.call_args.args[0]

    @patch("versync.git.git")
    def test_fetch_tags_forces(self, mock_git: MagicMock, tmp_path: Path) -> None:
        mock_git.return_value = ""
        provider = GitProvider(tmp_path)
        provider.fetch_tags()
        provider.fetch_tags()
        mock_git.assert_called_once_with(
            "fetch", "origin", "--tags", "--force", cwd=tmp_path.resolve(), check=False
        )


class TestChangedFiles:
    @patch("versync.git.git")
    def test_files_changed_since_tags(
        self, mock_git: MagicMock, tmp_path: Path, package_factory: Callable[..., PackageInfo]
    ) -> None:
        mock_git.return_value = "packages/a/index.js\npackages/b/index.js\nREADME.md"
        a = package_factory("a").model_copy(update={"path": str(tmp_path.resolve() / "packages" / "a")})
        provider = GitProvider(tmp_path)

        files = provider.files_changed_since_tags(
            [a], [PublishTagInfo(package_name="a", tag="a@1.0.0", sha="111")]
        )

        assert files == [str(tmp_path.resolve() / "packages" / "a" / "index.js")]
        mock_git.assert_called_once_with(
            "--no-pager", "diff", "--name-only", "111..", cwd=tmp_path.resolve(), check=True
        )

    @patch("versync.git.git")
    def test_unpublished_packages_skipped(
        self, mock_git: MagicMock, tmp_path: Path, package_factory: Callable[..., PackageInfo]
    ) -> None:
        provider = GitProvider(tmp_path)
        assert provider.files_changed_since_tags(
            [package_factory("a")], [PublishTagInfo(package_name="a")]
        ) == []
        mock_git.assert_not_called()


class TestClassifiedCommits:
    @patch("versync.git.git")
    def test_attributes_commits_to_packages(
        self, mock_git: MagicMock, tmp_path: Path, package_factory: Callable[..., PackageInfo]
    ) -> None:
        mock_git.return_value = _record("aaa", "feat: add")
        root = tmp_path.resolve()
        pkg = package_factory("a").model_copy(update={"path": str(root / "packages" / "a")})
        provider = GitProvider(root)
        provider._remote_tags = [("a@1.0.0", "111")]
        provider._local_tags = []

        commits = provider.classified_commits([pkg], fetch=False)

        assert len(commits) == 1
        assert commits[0].package is pkg
        assert commits[0].conventional.type == "feat"
        args = mock_git.call_args.args
        assert "111.." in args
        assert args[-2:] == ("--", str(Path("packages") / "a"))


class TestWriting:
    @patch("versync.git.git")
    def test_commit(self, mock_git: MagicMock, tmp_path: Path) -> None:
        GitProvider(tmp_path).commit("Version Bump", "a@1.0.1\nb@2.0.0")
        cwd = tmp_path.resolve()
        assert mock_git.call_args_list == [
            call("add", ".", cwd=cwd, check=True),
            call("commit", "-m", "Version Bump", "-m", "a@1.0.1\nb@2.0.0", "--no-verify", cwd=cwd, check=True),
        ]

    @patch("versync.git.git")
    def test_push_tags_in_chunks(self, mock_git: MagicMock, tmp_path: Path) -> None:
        def fake_git(*args: str, **kwargs: object) -> str:
            if args[:2] == ("rev-parse", "--abbrev-ref"):
                return "main"
            if args[0] == "ls-remote":
                return "sha\trefs/heads/main"
            return ""

        mock_git.side_effect = fake_git
        tags = [f"p{i}@1.0.0" for i in range(7)]

        GitProvider(tmp_path).push_tags(tags)

        pushes = [c.args for c in mock_git.call_args_list if c.args[0] == "push"]
        assert pushes == [
            ("push", "origin", *tags[:5], "--no-verify"),
            ("push", "origin", *tags[5:], "--no-verify"),
        ]

    @patch("versync.git.git")
    def test_push_sets_upstream_for_new_branch(
        self, mock_git: MagicMock, tmp_path: Path
    ) -> None:
        def fake_git(*args: str, **kwargs: object) -> str:
            if args[:2] == ("rev-parse", "--abbrev-ref"):
                return "release"
            return ""

        mock_git.side_effect = fake_git

        GitProvider(tmp_path).push()

        pushes = [c.args for c in mock_git.call_args_list if c.args[0] == "push"]
        assert pushes == [
            ("push", "--set-upstream", "origin", "release"),
            ("push", "--no-verify"),
        ]

    @patch("versync.git.git")
    def test_workdir_unclean(self, mock_git: MagicMock, tmp_path: Path) -> None:
        mock_git.return_value = " M package.json"
        assert GitProvider(tmp_path).workdir_unclean()
        mock_git.return_value = ""
        assert not GitProvider(tmp_path).workdir_unclean()
