from __future__ import annotations

import itertools
import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from trains.core.config import GithubConfig, ReleaseConfig
from trains.core.result import Err, Ok
from trains.output.console import MockConsole
from trains.services.release.actions import (
    ACTION_CATALOG,
    active_actions,
    compute_version,
    describe_action,
    is_action_active,
    perform_action,
)
from trains.services.release.context import ReleaseContext
from trains.services.release.fakes import FakeHost, FakeRegistry
from trains.services.release.model import (
    ActionKind,
    ActionPlan,
    ActiveReleaseTrains,
    LtsBranch,
    LtsBranches,
    RegistryPackageInfo,
    ReleaseTrain,
    RepoRef,
)
from trains.services.release.semver import SemVer, parse_version

UPSTREAM = RepoRef("angular", "dev-infra-test")


def _v(text: str) -> SemVer:
    parsed = parse_version(text)
    assert isinstance(parsed, Ok)
    return parsed.value


def _trains(*, nxt: str, rc: str | None, latest: str) -> ActiveReleaseTrains:
    rc_train = None
    if rc is not None:
        rc_version = _v(rc)
        rc_train = ReleaseTrain(f"{rc_version.major}.{rc_version.minor}.x", rc_version)
    latest_version = _v(latest)
    return ActiveReleaseTrains(
        next=ReleaseTrain("main", _v(nxt)),
        release_candidate=rc_train,
        latest=ReleaseTrain(f"{latest_version.major}.{latest_version.minor}.x", latest_version),
    )


def _registry(
    *,
    versions: tuple[str, ...] = (),
    dist_tags: dict[str, str] | None = None,
    times: dict[str, str] | None = None,
) -> FakeRegistry:
    registry = FakeRegistry()
    registry.set_package_info(
        RegistryPackageInfo(
            name="pkg1",
            dist_tags=dist_tags or {},
            versions=versions,
            times=times or {},
        )
    )
    return registry


def _context(
    tmp_path: Path,
    *,
    registry: FakeRegistry | None = None,
    publish_registry: str | None = None,
    built: tuple[str, ...] = ("pkg1", "pkg2"),
) -> tuple[ReleaseContext, FakeHost, FakeRegistry, MockConsole]:
    (tmp_path / "package.json").write_text(
        json.dumps({"name": "dev-infra-test", "version": "0.0.0"}), encoding="utf-8"
    )
    for pkg in built:
        (tmp_path / "dist" / pkg).mkdir(parents=True)

    host = FakeHost(upstream=UPSTREAM)
    registry = registry or _registry()
    console = MockConsole()
    config = ReleaseConfig(
        npm_packages=("pkg1", "pkg2"),
        github=GithubConfig(UPSTREAM.owner, UPSTREAM.name),
        publish_registry=publish_registry,
    )
    ctx = ReleaseContext(
        project_dir=tmp_path,
        config=config,
        host=host,
        registry=registry,
        console=console,
    )
    return ctx, host, registry, console


def _changelog(host: FakeHost, *, branch: str, version: str) -> None:
    host.set_file(branch=branch, path="CHANGELOG.md", text=f'<a name="{version}"></a>\nNotes\n')


def _plan(kind: ActionKind, trains: ActiveReleaseTrains, ctx: ReleaseContext) -> ActionPlan | None:
    plan = compute_version(kind, trains, registry=ctx.registry, config=ctx.config)
    assert isinstance(plan, Ok)
    return plan.value


def _no_lts_selection(branches: LtsBranches) -> LtsBranch | None:
    del branches
    return None


def _descriptions(trains: ActiveReleaseTrains, registry: FakeRegistry) -> list[str]:
    config = ReleaseConfig(npm_packages=("pkg1",), github=GithubConfig("a", "b"))
    out: list[str] = []
    for kind in active_actions(trains):
        plan = compute_version(kind, trains, registry=registry, config=config)
        assert isinstance(plan, Ok)
        out.append(describe_action(kind, plan.value))
    return out


def test_descriptions_for_feature_freeze_train() -> None:
    trains = _trains(nxt="10.2.0-next.0", rc="10.1.0-next.3", latest="10.0.1")

    assert _descriptions(trains, _registry()) == [
        "Cut a first release-candidate for the feature-freeze branch (v10.1.0-rc.0).",
        'Cut a new patch release for the "10.0.x" branch (v10.0.2).',
        'Cut a new next pre-release for the "10.1.x" branch (v10.1.0-next.4).',
        "Cut a new release for an active LTS branch.",
    ]


def test_descriptions_for_release_candidate_train() -> None:
    trains = _trains(nxt="10.2.0-next.0", rc="10.1.0-rc.0", latest="10.0.1")

    assert _descriptions(trains, _registry()) == [
        "Cut a stable release for the release-candidate branch (v10.1.0).",
        'Cut a new patch release for the "10.0.x" branch (v10.0.2).',
        'Cut a new next pre-release for the "10.1.x" branch (v10.1.0-rc.1).',
        "Cut a new release for an active LTS branch.",
    ]


def test_descriptions_without_release_candidate() -> None:
    trains = _trains(nxt="10.1.0-next.2", rc=None, latest="10.0.1")
    registry = _registry(versions=("10.1.0-next.2",))

    assert _descriptions(trains, registry) == [
        'Cut a new patch release for the "10.0.x" branch (v10.0.2).',
        'Cut a new next pre-release for the "main" branch (v10.1.0-next.3).',
        'Move the "main" branch into feature-freeze phase (v10.1.0-next.3).',
        "Cut a new release for an active LTS branch.",
    ]


def test_next_prerelease_keeps_unpublished_next_version() -> None:
    trains = _trains(nxt="10.2.0-next.0", rc=None, latest="10.1.0")
    config = ReleaseConfig(npm_packages=("pkg1",), github=GithubConfig("a", "b"))

    plan = compute_version("cut-next-prerelease", trains, registry=_registry(), config=config)

    assert isinstance(plan, Ok)
    assert plan.value is not None
    assert plan.value.version == _v("10.2.0-next.0")
    assert plan.value.dist_tag == "next"


def test_next_prerelease_bumps_published_next_version() -> None:
    trains = _trains(nxt="10.2.0-next.0", rc=None, latest="10.1.0")
    config = ReleaseConfig(npm_packages=("pkg1",), github=GithubConfig("a", "b"))
    registry = _registry(versions=("10.1.0", "10.2.0-next.0"))

    plan = compute_version("cut-next-prerelease", trains, registry=registry, config=config)

    assert isinstance(plan, Ok)
    assert plan.value is not None
    assert plan.value.version == _v("10.2.0-next.1")


def test_next_prerelease_registry_failure_propagates() -> None:
    trains = _trains(nxt="10.2.0-next.0", rc=None, latest="10.1.0")
    config = ReleaseConfig(npm_packages=("pkg1",), github=GithubConfig("a", "b"))
    registry = FakeRegistry(failing_lookups={"pkg1"})

    plan = compute_version("cut-next-prerelease", trains, registry=registry, config=config)

    assert isinstance(plan, Err)
    assert plan.error.kind == "registry_failed"


def test_next_prerelease_keeps_version_of_never_published_package() -> None:
    trains = _trains(nxt="10.2.0-next.0", rc=None, latest="10.1.0")
    config = ReleaseConfig(npm_packages=("pkg1",), github=GithubConfig("a", "b"))

    plan = compute_version("cut-next-prerelease", trains, registry=FakeRegistry(), config=config)

    assert isinstance(plan, Ok)
    assert plan.value is not None
    assert plan.value.version == _v("10.2.0-next.0")


def test_next_prerelease_on_release_candidate_keeps_rc_label() -> None:
    trains = _trains(nxt="10.2.0-next.0", rc="10.1.0-rc.2", latest="10.0.3")
    config = ReleaseConfig(npm_packages=("pkg1",), github=GithubConfig("a", "b"))

    plan = compute_version("cut-next-prerelease", trains, registry=_registry(), config=config)

    assert isinstance(plan, Ok)
    assert plan.value is not None
    assert plan.value.train.branch_name == "10.1.x"
    assert plan.value.version == _v("10.1.0-rc.3")


def test_cut_stable_conditions_never_hold_together() -> None:
    latest = "10.0.1"
    next_versions = ["10.2.0-next.0", "10.2.0-next.5", "10.2.0", "11.0.0-next.1"]
    rc_versions: list[str | None] = [
        None,
        "10.1.0-next.0",
        "10.1.0-next.3",
        "10.1.0-rc.0",
        "10.1.0-rc.2",
    ]

    for nxt, rc in itertools.product(next_versions, rc_versions):
        trains = _trains(nxt=nxt, rc=rc, latest=latest)
        rc_reached = trains.release_candidate is not None and (
            trains.release_candidate.version.prerelease_label == "rc"
        )
        next_ready = trains.release_candidate is None and not trains.next.version.is_prerelease

        assert not (rc_reached and next_ready), (nxt, rc)
        assert is_action_active("cut-stable", trains) == (rc_reached or next_ready), (nxt, rc)


def test_catalog_order_is_fixed() -> None:
    trains = _trains(nxt="10.2.0", rc=None, latest="10.1.0")

    assert ACTION_CATALOG[0] == "cut-stable"
    assert active_actions(trains) == [
        "cut-stable",
        "cut-new-patch",
        "cut-next-prerelease",
        "cut-lts-patch",
    ]


def test_cut_new_patch_stages_publishes_and_cherry_picks(tmp_path: Path) -> None:
    ctx, host, registry, console = _context(tmp_path)
    trains = _trains(nxt="10.1.0-next.0", rc=None, latest="10.0.1")
    host.set_file(
        branch="10.0.x",
        path="CHANGELOG.md",
        text='<a name="10.0.2"></a>\n# 10.0.2\n\nFixes\n<a name="10.0.1"></a>\nOlder',
    )
    (tmp_path / "CHANGELOG.md").write_text("Existing changelog", encoding="utf-8")

    plan = _plan("cut-new-patch", trains, ctx)
    result = perform_action(
        "cut-new-patch", plan, trains, ctx, select_lts_branch=_no_lts_selection
    )

    assert isinstance(result, Ok), console.text
    package_json = json.loads((tmp_path / "package.json").read_text(encoding="utf-8"))
    assert package_json["version"] == "10.0.2"

    staging_commit = host.commits[0]
    assert staging_commit.message == "release: cut the v10.0.2 release"
    assert staging_commit.files == ("package.json",)

    staging_pr = host.pull_requests[0]
    assert staging_pr.head_repo == host.fork
    assert staging_pr.head_branch == "release-stage-10.0.2"
    assert staging_pr.base_branch == "10.0.x"

    assert host.tags == [("10.0.2", staging_commit.sha)]
    assert host.releases[0].name == "v10.0.2"
    assert host.releases[0].prerelease is False

    assert [(p.package_dir, p.dist_tag) for p in registry.publishes] == [
        (tmp_path / "dist" / "pkg1", "latest"),
        (tmp_path / "dist" / "pkg2", "latest"),
    ]

    cherry_pr = host.pull_requests[1]
    assert cherry_pr.head_branch == "changelog-cherry-pick-10.0.2"
    assert cherry_pr.base_branch == "main"
    assert (tmp_path / "CHANGELOG.md").read_text(encoding="utf-8") == (
        '<a name="10.0.2"></a>\n# 10.0.2\n\nFixes\nExisting changelog'
    )
    assert registry.dist_tag_calls == []


def test_publish_aborts_when_build_output_missing(tmp_path: Path) -> None:
    ctx, host, registry, console = _context(tmp_path, built=("pkg1",))
    trains = _trains(nxt="10.1.0-next.0", rc=None, latest="10.0.1")

    plan = _plan("cut-new-patch", trains, ctx)
    result = perform_action(
        "cut-new-patch", plan, trains, ctx, select_lts_branch=_no_lts_selection
    )

    assert isinstance(result, Err)
    assert result.error.kind == "missing_build_output"
    assert console.errors == [
        "Release output has not been built for the following packages:",
        "- pkg2",
    ]
    assert registry.publishes == []
    assert host.tags == []


def test_publish_uses_custom_registry_for_every_package(tmp_path: Path) -> None:
    custom = "https://custom-npm-registry.google.com"
    ctx, host, registry, _ = _context(tmp_path, publish_registry=custom)
    trains = _trains(nxt="10.1.0-next.0", rc=None, latest="10.0.1")
    _changelog(host, branch="10.0.x", version="10.0.2")

    plan = _plan("cut-new-patch", trains, ctx)
    result = perform_action(
        "cut-new-patch", plan, trains, ctx, select_lts_branch=_no_lts_selection
    )

    assert isinstance(result, Ok)
    assert len(registry.publishes) == 2
    assert {p.registry_url for p in registry.publishes} == {custom}


def test_publish_attempts_every_package_before_failing(tmp_path: Path) -> None:
    registry = _registry()
    registry.failing_packages.add("pkg1")
    ctx, host, _, console = _context(tmp_path, registry=registry)
    trains = _trains(nxt="10.1.0-next.0", rc=None, latest="10.0.1")

    plan = _plan("cut-new-patch", trains, ctx)
    result = perform_action(
        "cut-new-patch", plan, trains, ctx, select_lts_branch=_no_lts_selection
    )

    assert isinstance(result, Err)
    assert result.error.kind == "publish_failed"
    assert "pkg1" in result.error.message
    assert [p.package_dir.name for p in registry.publishes] == ["pkg1", "pkg2"]
    # No cherry-pick after a failed publish.
    assert len(host.pull_requests) == 1
    assert console.find("Published pkg2")


def test_cut_stable_for_new_major_retags_previous_latest(tmp_path: Path) -> None:
    ctx, host, registry, _ = _context(tmp_path)
    trains = _trains(nxt="11.1.0-next.0", rc="11.0.0-rc.0", latest="10.0.3")
    _changelog(host, branch="11.0.x", version="11.0.0")

    plan = _plan("cut-stable", trains, ctx)
    assert plan is not None
    assert plan.version == _v("11.0.0")
    result = perform_action("cut-stable", plan, trains, ctx, select_lts_branch=_no_lts_selection)

    assert isinstance(result, Ok)
    assert len(registry.dist_tag_calls) == 1
    call = registry.dist_tag_calls[0]
    assert call.tag == "v10-lts"
    assert call.version == _v("10.0.3")
    assert call.packages == ("pkg1", "pkg2")


def test_cut_stable_for_new_minor_does_not_retag(tmp_path: Path) -> None:
    ctx, host, registry, _ = _context(tmp_path)
    trains = _trains(nxt="10.2.0-next.0", rc="10.1.0-rc.0", latest="10.0.3")
    _changelog(host, branch="10.1.x", version="10.1.0")

    plan = _plan("cut-stable", trains, ctx)
    result = perform_action("cut-stable", plan, trains, ctx, select_lts_branch=_no_lts_selection)

    assert isinstance(result, Ok)
    assert registry.dist_tag_calls == []
    assert {p.dist_tag for p in registry.publishes} == {"latest"}


def test_next_prerelease_on_next_branch_skips_cherry_pick(tmp_path: Path) -> None:
    ctx, host, registry, _ = _context(tmp_path, registry=_registry(versions=("10.1.0-next.0",)))
    trains = _trains(nxt="10.1.0-next.0", rc=None, latest="10.0.1")

    plan = _plan("cut-next-prerelease", trains, ctx)
    result = perform_action(
        "cut-next-prerelease", plan, trains, ctx, select_lts_branch=_no_lts_selection
    )

    assert isinstance(result, Ok)
    assert [pr.base_branch for pr in host.pull_requests] == ["main"]
    assert {p.dist_tag for p in registry.publishes} == {"next"}
    assert host.releases[0].prerelease is True


def test_move_next_into_feature_freeze(tmp_path: Path) -> None:
    ctx, host, registry, _ = _context(tmp_path, registry=_registry(versions=("10.1.0-next.0",)))
    trains = _trains(nxt="10.1.0-next.0", rc=None, latest="10.0.1")
    _changelog(host, branch="10.1.x", version="10.1.0-next.1")

    plan = _plan("move-next-into-feature-freeze", trains, ctx)
    result = perform_action(
        "move-next-into-feature-freeze", plan, trains, ctx, select_lts_branch=_no_lts_selection
    )

    assert isinstance(result, Ok)
    assert host.pushes[0].repo == UPSTREAM
    assert host.pushes[0].branch == "10.1.x"
    assert host.pushes[0].force is False

    assert [(pr.head_branch, pr.base_branch) for pr in host.pull_requests] == [
        ("release-stage-10.1.0-next.1", "10.1.x"),
        ("next-release-train-10.2.0-next.0", "main"),
        ("changelog-cherry-pick-10.1.0-next.1", "main"),
    ]
    assert host.commits[1].message == "release: bump the next branch to v10.2.0-next.0"
    assert {p.dist_tag for p in registry.publishes} == {"next"}


def test_cut_lts_patch_releases_selected_branch(tmp_path: Path) -> None:
    recent = (datetime.now(UTC) - timedelta(days=300)).isoformat()
    registry = _registry(
        dist_tags={"latest": "10.0.1", "v9-lts": "9.2.4"},
        times={"9.0.0": recent},
    )
    ctx, host, registry, _ = _context(tmp_path, registry=registry)
    trains = _trains(nxt="10.1.0-next.0", rc=None, latest="10.0.1")
    _changelog(host, branch="9.2.x", version="9.2.5")
    offered: list[LtsBranches] = []

    def select(branches: LtsBranches) -> LtsBranch | None:
        offered.append(branches)
        return branches.active[0]

    result = perform_action("cut-lts-patch", None, trains, ctx, select_lts_branch=select)

    assert isinstance(result, Ok)
    assert offered[0].active == (LtsBranch("9.2.x", _v("9.2.4"), "v9-lts"),)
    assert host.pull_requests[0].base_branch == "9.2.x"
    assert host.commits[0].message == "release: cut the v9.2.5 release"
    assert {p.dist_tag for p in registry.publishes} == {"v9-lts"}


def test_cut_lts_patch_without_lts_branches(tmp_path: Path) -> None:
    ctx, host, _, _ = _context(tmp_path, registry=_registry(dist_tags={"latest": "10.0.1"}))
    trains = _trains(nxt="10.1.0-next.0", rc=None, latest="10.0.1")

    result = perform_action("cut-lts-patch", None, trains, ctx, select_lts_branch=_no_lts_selection)

    assert isinstance(result, Err)
    assert result.error.kind == "no_lts_branches"
    assert host.commits == []


def test_cut_lts_patch_cancelled_selection(tmp_path: Path) -> None:
    ctx, host, _, _ = _context(tmp_path, registry=_registry(dist_tags={"v9-lts": "9.2.4"}))
    trains = _trains(nxt="10.1.0-next.0", rc=None, latest="10.0.1")

    result = perform_action("cut-lts-patch", None, trains, ctx, select_lts_branch=_no_lts_selection)

    assert isinstance(result, Err)
    assert result.error.kind == "invalid_input"
    assert host.pull_requests == []


def test_closed_staging_pull_request_stops_the_action(tmp_path: Path) -> None:
    ctx, host, registry, _ = _context(tmp_path)
    trains = _trains(nxt="10.1.0-next.0", rc=None, latest="10.0.1")
    host.queue_pr_statuses(1, ["closed"])

    plan = _plan("cut-new-patch", trains, ctx)
    result = perform_action("cut-new-patch", plan, trains, ctx, select_lts_branch=_no_lts_selection)

    assert isinstance(result, Err)
    assert result.error.kind == "pull_request_closed"
    assert registry.publishes == []


@pytest.mark.parametrize("kind", ["cut-stable", "cut-release-candidate"])
def test_compute_version_rejects_inactive_actions(kind: ActionKind) -> None:
    trains = _trains(nxt="10.1.0-next.0", rc=None, latest="10.0.1")
    config = ReleaseConfig(npm_packages=("pkg1",), github=GithubConfig("a", "b"))

    plan = compute_version(kind, trains, registry=_registry(), config=config)

    assert isinstance(plan, Err)
    assert plan.error.kind == "invalid_trains"
