from __future__ import annotations

from pathlib import Path

from trains.core.config import GithubConfig, ReleaseConfig, release_notes_pattern_from_template
from trains.core.result import Ok
from trains.output.console import MockConsole
from trains.services.release.changelog import (
    cherry_pick_changelog_into_next,
    extract_release_notes,
)
from trains.services.release.context import ReleaseContext
from trains.services.release.fakes import FakeHost, FakeRegistry
from trains.services.release.model import RepoRef
from trains.services.release.semver import SemVer

VERSION = SemVer(10, 0, 1)


def _context(
    tmp_path: Path, *, config: ReleaseConfig | None = None
) -> tuple[ReleaseContext, FakeHost, MockConsole]:
    (tmp_path / "CHANGELOG.md").write_text("Existing changelog", encoding="utf-8")
    host = FakeHost(upstream=RepoRef("angular", "dev-infra-test"))
    console = MockConsole()
    ctx = ReleaseContext(
        project_dir=tmp_path,
        config=config
        or ReleaseConfig(npm_packages=("pkg1",), github=GithubConfig("angular", "dev-infra-test")),
        host=host,
        registry=FakeRegistry(),
        console=console,
    )
    return ctx, host, console


def _changelog(tmp_path: Path) -> str:
    return (tmp_path / "CHANGELOG.md").read_text(encoding="utf-8")


def test_default_pattern_stops_at_next_anchor() -> None:
    config = ReleaseConfig(npm_packages=("pkg1",), github=GithubConfig("a", "b"))
    content = '<a name="10.0.1"></a>\n# 10.0.1\n* fix\n<a name="10.0.0"></a>\n# 10.0.0\n'

    notes = extract_release_notes(content=content, version=VERSION, config=config)

    assert notes == '<a name="10.0.1"></a>\n# 10.0.1\n* fix\n'


def test_default_pattern_escapes_version() -> None:
    config = ReleaseConfig(npm_packages=("pkg1",), github=GithubConfig("a", "b"))
    content = '<a name="10x0x1"></a>\nNotes'

    assert extract_release_notes(content=content, version=VERSION, config=config) is None


def test_cherry_pick_with_default_pattern(tmp_path: Path) -> None:
    ctx, host, _ = _context(tmp_path)
    block = '<a name="10.0.1"></a>\n# 10.0.1 (2020-09-23)\n\n* Fixes\n'
    host.set_file(branch="10.0.x", path="CHANGELOG.md", text=block)

    result = cherry_pick_changelog_into_next(
        ctx, version=VERSION, staging_branch="10.0.x", next_branch="main"
    )

    assert result == Ok(True)
    assert _changelog(tmp_path) == f"{block}Existing changelog"
    assert host.checkouts == ["main"]


def test_cherry_pick_with_custom_pattern(tmp_path: Path) -> None:
    config = ReleaseConfig(
        npm_packages=("pkg1",),
        github=GithubConfig("angular", "dev-infra-test"),
        extract_release_notes_pattern=release_notes_pattern_from_template(
            r'(# v{version} \("[^"]+"\).*?)(?:# v|\Z)'
        ),
    )
    ctx, host, _ = _context(tmp_path, config=config)
    (tmp_path / "CHANGELOG.md").write_text("\n\nExisting changelog", encoding="utf-8")
    block = '# v10.0.1 ("newton-kepler")\n\nNew Content!'
    host.set_file(branch="10.0.x", path="CHANGELOG.md", text=block)

    result = cherry_pick_changelog_into_next(
        ctx, version=VERSION, staging_branch="10.0.x", next_branch="main"
    )

    assert result == Ok(True)
    assert _changelog(tmp_path) == f"{block}\n\nExisting changelog"


def test_cherry_pick_failure_leaves_changelog_untouched(tmp_path: Path) -> None:
    ctx, host, console = _context(tmp_path)
    host.set_file(branch="10.0.x", path="CHANGELOG.md", text="non analyzable changelog")

    result = cherry_pick_changelog_into_next(
        ctx, version=VERSION, staging_branch="10.0.x", next_branch="main"
    )

    assert result == Ok(False)
    assert _changelog(tmp_path) == "Existing changelog"
    assert console.errors == [
        "Could not cherry-pick release notes for v10.0.1.",
        'Please copy the release notes manually into the "main" branch.',
    ]
    assert host.commits == []
    assert host.pull_requests == []


def test_cherry_pick_pushes_one_commit_to_fork(tmp_path: Path) -> None:
    ctx, host, _ = _context(tmp_path)
    host.set_file(branch="10.0.x", path="CHANGELOG.md", text='<a name="10.0.1"></a>\nNotes')

    cherry_pick_changelog_into_next(
        ctx, version=VERSION, staging_branch="10.0.x", next_branch="main"
    )

    assert len(host.pushes) == 1
    push = host.pushes[0]
    assert push.repo == host.fork
    assert push.branch == "changelog-cherry-pick-10.0.1"
    assert push.force is True
    assert [(c.message, c.files) for c in push.commits] == [
        ("docs: release notes for the v10.0.1 release", ("CHANGELOG.md",)),
    ]

    pr = host.pull_requests[0]
    assert pr.base_branch == "main"
    assert pr.title == "docs: release notes for the v10.0.1 release"
    assert '"10.0.x"' in pr.body


def test_cherry_pick_creates_missing_local_changelog(tmp_path: Path) -> None:
    ctx, host, _ = _context(tmp_path)
    (tmp_path / "CHANGELOG.md").unlink()
    host.set_file(branch="10.0.x", path="CHANGELOG.md", text='<a name="10.0.1"></a>\nNotes')

    result = cherry_pick_changelog_into_next(
        ctx, version=VERSION, staging_branch="10.0.x", next_branch="main"
    )

    assert result == Ok(True)
    assert _changelog(tmp_path) == '<a name="10.0.1"></a>\nNotes'
