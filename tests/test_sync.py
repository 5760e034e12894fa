"""Tests for versync.sync."""

from __future__ import annotations

import copy
from collections.abc import Callable
from unittest.mock import MagicMock

import pytest

from versync.git import GitProvider
from versync.errors import CycleError, MissingPackageError, RangeParseError
from versync.models import BumpRecommendation, BumpType, PackageInfo
from versync.recommend import recommend_bump
from versync.sync import (
    SyncPolicy,
    merge_parent,
    propagated_type,
    resolve_version,
    synchronize_bumps,
)


def _seed(pkg: PackageInfo, bump_type: BumpType = BumpType.PATCH, **kwargs: object) -> BumpRecommendation:
    return recommend_bump(pkg, pkg.version, bump_type, **kwargs)  # type: ignore[arg-type]


def _by_name(packages: list[PackageInfo]) -> dict[str, PackageInfo]:
    return {p.name: p for p in packages}


class TestSynchronizeBumps:
    """Tests for synchronize_bumps()."""

    def test_diamond_patch_on_leaf(self, diamond: list[PackageInfo]) -> None:
        """PATCH on d bumps every package to 1.0.1 and rewrites every range."""
        pkgs = _by_name(diamond)

        result = synchronize_bumps([_seed(pkgs["d"])], diamond)

        assert [b.package.name for b in result.bumps] == ["d", "a", "b", "c"]
        assert {b.package.name: b.to_version for b in result.bumps} == {
            "a": "1.0.1",
            "b": "1.0.1",
            "c": "1.0.1",
            "d": "1.0.1",
        }
        assert all(p.version == "1.0.1" for p in diamond)
        assert pkgs["a"].manifest["dependencies"] == {"d": "^1.0.1"}
        assert pkgs["b"].manifest["dependencies"] == {"d": "^1.0.1"}
        assert pkgs["c"].manifest["dependencies"] == {"a": "^1.0.1", "b": "^1.0.1"}
        assert [p.name for p in result.packages] == ["d", "a", "b", "c"]

    def test_provenance(self, diamond: list[PackageInfo]) -> None:
        pkgs = _by_name(diamond)
        seed = _seed(pkgs["d"])

        result = synchronize_bumps([seed], diamond)

        c = result.bumps_by_package_name["c"]
        assert [p.package.name for p in c.parent_bumps] == ["a", "b"]
        assert c.root_causes() == [seed]
        assert seed.is_seed

    def test_results_share_catalog_instances(self, diamond: list[PackageInfo]) -> None:
        pkgs = _by_name(diamond)
        result = synchronize_bumps([_seed(pkgs["d"])], diamond)
        for bump in result.bumps:
            assert bump.package is pkgs[bump.package.name]

    def test_idempotent_without_seeds(self, diamond: list[PackageInfo]) -> None:
        pkgs = _by_name(diamond)
        first = synchronize_bumps([_seed(pkgs["d"])], diamond)
        snapshot = copy.deepcopy([p.manifest for p in diamond])

        again = synchronize_bumps([], diamond)
        with_existing = synchronize_bumps([], diamond, existing=first.bumps_by_package_name)

        assert again.bumps == []
        assert again.packages == []
        assert [p.manifest for p in diamond] == snapshot
        assert [b.to_version for b in with_existing.bumps] == ["1.0.1"] * 4

    def test_major_wins_over_minor(self, package_factory: Callable[..., PackageInfo]) -> None:
        x = package_factory("x")
        y = package_factory("y")
        z = package_factory("z", dependencies={"x": "^1.0.0", "y": "^1.0.0"})

        result = synchronize_bumps(
            [_seed(x, BumpType.MINOR), _seed(y, BumpType.MAJOR)], [x, y, z]
        )

        bump = result.bumps_by_package_name["z"]
        assert bump.type == BumpType.MAJOR
        assert bump.to_version == "2.0.0"
        assert z.version == "2.0.0"
        assert z.manifest["dependencies"] == {"x": "^1.1.0", "y": "^2.0.0"}

    def test_upgrade_after_apply(self, package_factory: Callable[..., PackageInfo]) -> None:
        """A MAJOR arriving after a MINOR was applied still raises the target."""
        x = package_factory("x")
        y = package_factory("y")
        w = package_factory("w", dependencies={"y": "^1.0.0"})
        z = package_factory("z", dependencies={"x": "^1.0.0", "w": "^1.0.0"})

        result = synchronize_bumps(
            [_seed(x, BumpType.MINOR), _seed(y, BumpType.MAJOR)], [w, x, y, z]
        )

        assert result.bumps_by_package_name["z"].to_version == "2.0.0"
        assert z.version == "2.0.0"
        assert z.manifest["dependencies"]["w"] == "^2.0.0"
        assert [p.package.name for p in result.bumps_by_package_name["z"].parent_bumps] == [
            "x",
            "w",
        ]

    def test_operator_preservation(self, package_factory: Callable[..., PackageInfo]) -> None:
        d = package_factory("d", version="1.2.3")
        a = package_factory("a", dependencies={"d": "~1.2.3"})
        b = package_factory("b", dependencies={"d": ">=1.2.3"})
        c = package_factory("c", dependencies={"d": "<2.0.0"})

        synchronize_bumps([_seed(d, BumpType.MINOR)], [a, b, c, d])

        assert a.manifest["dependencies"]["d"] == "~1.3.0"
        assert b.manifest["dependencies"]["d"] == ">=1.3.0"
        assert c.manifest["dependencies"]["d"] == "^1.3.0"

    def test_save_exact(self, diamond: list[PackageInfo]) -> None:
        pkgs = _by_name(diamond)
        synchronize_bumps([_seed(pkgs["d"])], diamond, SyncPolicy(save_exact=True))
        assert pkgs["a"].manifest["dependencies"] == {"d": "1.0.1"}

    def test_beta_preset_pins_and_propagates(self, diamond: list[PackageInfo]) -> None:
        pkgs = _by_name(diamond)
        seed = _seed(pkgs["d"], release_as="beta")

        result = synchronize_bumps([seed], diamond, SyncPolicy(release_as="beta"))

        assert pkgs["d"].version == "1.0.1-beta.0"
        assert pkgs["a"].manifest["dependencies"] == {"d": "1.0.1-beta.0"}
        assert result.bumps_by_package_name["a"].type == BumpType.PRERELEASE
        assert pkgs["a"].version == "1.0.1-beta.0"

    def test_dev_dependencies_propagate(self, package_factory: Callable[..., PackageInfo]) -> None:
        d = package_factory("d")
        tests = package_factory("tests", devDependencies={"d": "^1.0.0"})
        result = synchronize_bumps([_seed(d)], [d, tests])
        assert tests.manifest["devDependencies"] == {"d": "^1.0.1"}
        assert "tests" in result.bumps_by_package_name

    def test_peer_dependencies_follow_policy(
        self, package_factory: Callable[..., PackageInfo]
    ) -> None:
        d = package_factory("d")
        plugin = package_factory("plugin", peerDependencies={"d": "^1.0.0"})

        result = synchronize_bumps([_seed(d)], [d, plugin])
        assert plugin.manifest["peerDependencies"] == {"d": "^1.0.0"}
        assert "plugin" not in result.bumps_by_package_name

    def test_peer_dependencies_when_enabled(
        self, package_factory: Callable[..., PackageInfo]
    ) -> None:
        d = package_factory("d")
        plugin = package_factory("plugin", peerDependencies={"d": "^1.0.0"})

        synchronize_bumps([_seed(d)], [d, plugin], SyncPolicy(update_peer=True))
        assert plugin.manifest["peerDependencies"] == {"d": "^1.0.1"}
        assert plugin.version == "1.0.1"

    def test_workspace_shorthand_left_alone(
        self, package_factory: Callable[..., PackageInfo]
    ) -> None:
        d = package_factory("d")
        a = package_factory("a", dependencies={"d": "workspace:*"})

        result = synchronize_bumps([_seed(d)], [a, d])

        assert a.manifest["dependencies"] == {"d": "workspace:*"}
        assert result.bumps_by_package_name["a"].to_version == "1.0.1"

    def test_versionless_dependent_rewritten_not_bumped(
        self, package_factory: Callable[..., PackageInfo]
    ) -> None:
        d = package_factory("d")
        root = package_factory("root", version="", devDependencies={"d": "^1.0.0"})
        root.manifest.pop("version")

        result = synchronize_bumps([_seed(d)], [d, root])

        assert "root" not in result.bumps_by_package_name
        assert root.manifest == {"name": "root", "devDependencies": {"d": "^1.0.1"}}
        assert [p.name for p in result.packages] == ["d", "root"]

    def test_empty_range_dependent_skipped(
        self, package_factory: Callable[..., PackageInfo]
    ) -> None:
        d = package_factory("d")
        a = package_factory("a", dependencies={"d": ""})

        result = synchronize_bumps([_seed(d)], [a, d])

        assert list(result.bumps_by_package_name) == ["d"]
        assert [p.name for p in result.packages] == ["d"]
        assert a.version == "1.0.0"
        assert a.manifest["dependencies"] == {"d": ""}

    def test_first_release_parent_patches_dependents(
        self, package_factory: Callable[..., PackageInfo]
    ) -> None:
        d = package_factory("d")
        a = package_factory("a", dependencies={"d": "^1.0.0"})
        seed = BumpRecommendation(
            package=d, from_version=None, to_version="1.0.0", type=BumpType.FIRST
        )

        result = synchronize_bumps([seed], [a, d])

        assert d.version == "1.0.0"
        assert result.bumps_by_package_name["a"].type == BumpType.PATCH
        assert a.version == "1.0.1"

    def test_cycle_fails_before_mutation(
        self, package_factory: Callable[..., PackageInfo]
    ) -> None:
        a = package_factory("a", dependencies={"b": "^1.0.0"})
        b = package_factory("b", dependencies={"a": "^1.0.0"})

        with pytest.raises(CycleError) as excinfo:
            synchronize_bumps([_seed(a)], [a, b])

        assert excinfo.value.cycle == ["a", "b", "a"]
        assert a.version == "1.0.0"
        assert b.manifest["dependencies"] == {"a": "^1.0.0"}

    def test_unparseable_range(self, package_factory: Callable[..., PackageInfo]) -> None:
        d = package_factory("d")
        a = package_factory("a", dependencies={"d": "latest"})

        with pytest.raises(RangeParseError) as excinfo:
            synchronize_bumps([_seed(d)], [a, d])

        assert (excinfo.value.package, excinfo.value.dependency) == ("a", "d")

    def test_seed_outside_catalog(self, package_factory: Callable[..., PackageInfo]) -> None:
        d = package_factory("d")
        stranger = package_factory("stranger")
        with pytest.raises(MissingPackageError, match="stranger"):
            synchronize_bumps([_seed(stranger)], [d])

    def test_detached_seed_rebinds_to_catalog(
        self, package_factory: Callable[..., PackageInfo]
    ) -> None:
        d = package_factory("d")
        copy_of_d = d.model_copy(deep=True)
        seed = _seed(copy_of_d)

        synchronize_bumps([seed], [d])

        assert seed.package is d
        assert d.version == "1.0.1"

    def test_duplicate_seeds_merge(self, package_factory: Callable[..., PackageInfo]) -> None:
        d = package_factory("d")
        result = synchronize_bumps(
            [_seed(d, BumpType.PATCH), _seed(d, BumpType.MINOR)], [d]
        )
        assert result.bumps_by_package_name["d"].to_version == "1.1.0"
        assert result.bumps_by_package_name["d"].is_seed

    def test_uniqify_on_upgrade(self, package_factory: Callable[..., PackageInfo]) -> None:
        git = MagicMock(spec=GitProvider)
        git.current_short_sha.return_value = "abc1234"
        x = package_factory("x")
        y = package_factory("y")
        z = package_factory("z", dependencies={"x": "^1.0.0", "y": "^1.0.0"})
        policy = SyncPolicy(uniqify=True, git=git)

        synchronize_bumps(
            [
                _seed(x, BumpType.PATCH, uniqify=True, git=git),
                _seed(y, BumpType.MAJOR, uniqify=True, git=git),
            ],
            [x, y, z],
            policy,
        )

        assert z.version == "2.0.0.abc1234"


class TestResolveVersion:
    """Tests for resolve_version()."""

    def _bump(
        self,
        pkg: PackageInfo,
        to_version: str,
        bump_type: BumpType = BumpType.PATCH,
    ) -> BumpRecommendation:
        return BumpRecommendation(
            package=pkg, from_version=pkg.version, to_version=to_version, type=bump_type
        )

    def test_same_prerelease_stream_keeps_greater(
        self, package_factory: Callable[..., PackageInfo]
    ) -> None:
        pkg = package_factory("a", version="2.0.0-beta.3")
        assert resolve_version(self._bump(pkg, "2.0.0-beta.1")) == "2.0.0-beta.3"

    def test_same_stream_takes_newer_target(
        self, package_factory: Callable[..., PackageInfo]
    ) -> None:
        pkg = package_factory("a", version="2.0.0-beta.3")
        assert resolve_version(self._bump(pkg, "2.0.0-beta.4")) == "2.0.0-beta.4"

    def test_switching_streams_takes_target(
        self, package_factory: Callable[..., PackageInfo]
    ) -> None:
        pkg = package_factory("a", version="2.0.0-beta.3")
        assert resolve_version(self._bump(pkg, "1.5.0")) == "1.5.0"

    def test_similar_labels_are_different_streams(
        self, package_factory: Callable[..., PackageInfo]
    ) -> None:
        pkg = package_factory("a", version="1.0.0-betamax.5")
        assert resolve_version(self._bump(pkg, "1.0.0-beta.0")) == "1.0.0-beta.0"

    def test_stable_keeps_greater(self, package_factory: Callable[..., PackageInfo]) -> None:
        pkg = package_factory("a", version="1.2.0")
        assert resolve_version(self._bump(pkg, "1.1.0")) == "1.2.0"

    def test_exact_always_wins(self, package_factory: Callable[..., PackageInfo]) -> None:
        pkg = package_factory("a", version="3.0.0")
        assert resolve_version(self._bump(pkg, "1.0.0", BumpType.EXACT)) == "1.0.0"

    def test_uncomparable_takes_target(
        self, package_factory: Callable[..., PackageInfo]
    ) -> None:
        pkg = package_factory("a", version="1.0.1.abc1234")
        assert resolve_version(self._bump(pkg, "1.0.2")) == "1.0.2"


class TestMergeParent:
    """Tests for merge_parent() and propagated_type()."""

    def test_first_propagates_as_patch(self) -> None:
        assert propagated_type(BumpType.FIRST) == BumpType.PATCH
        assert propagated_type(BumpType.MINOR) == BumpType.MINOR

    def test_special_type_kept(self, package_factory: Callable[..., PackageInfo]) -> None:
        child = BumpRecommendation(
            package=package_factory("a"),
            from_version="1.0.0",
            to_version="1.0.1-rc.0",
            type=BumpType.PRERELEASE,
        )
        parent = BumpRecommendation(
            package=package_factory("d"), from_version="1.0.0", to_version="2.0.0", type=BumpType.MAJOR
        )

        merge_parent(child, parent, SyncPolicy())

        assert child.type == BumpType.PRERELEASE
        assert child.to_version == "1.0.1-rc.0"
        assert child.parent_bumps == [parent]

    def test_first_release_child_not_recomputed(
        self, package_factory: Callable[..., PackageInfo]
    ) -> None:
        child = BumpRecommendation(
            package=package_factory("a"), from_version=None, to_version="1.0.0", type=BumpType.PATCH
        )
        parent = BumpRecommendation(
            package=package_factory("d"), from_version="1.0.0", to_version="2.0.0", type=BumpType.MAJOR
        )

        merge_parent(child, parent, SyncPolicy())

        assert child.type == BumpType.MAJOR
        assert child.to_version == "1.0.0"
