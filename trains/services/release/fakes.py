"""In-memory host and registry for exercising release actions without network.

Usage:
    host = FakeHost(upstream=RepoRef("angular", "dev-infra-test"))
    host.set_file(branch="main", path="package.json", text='{"version": "10.2.0-next.0"}')
    registry = FakeRegistry()
    registry.set_package_info(RegistryPackageInfo(...))

Pull requests merge on the first status poll unless statuses are queued with
``queue_pr_statuses``. A merge moves the base branch head onto the pushed
head commit, the way a fast-forward merge would.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from trains.core.result import Err, Ok, Result
from trains.services.release.errors import ReleaseError
from trains.services.release.model import (
    PullRequest,
    PullRequestStatus,
    RegistryPackageInfo,
    RepoRef,
)
from trains.services.release.semver import SemVer


@dataclass(frozen=True, slots=True)
class CommitCall:
    message: str
    files: tuple[str, ...]
    sha: str


@dataclass(frozen=True, slots=True)
class PushCall:
    repo: RepoRef
    branch: str
    force: bool
    commits: tuple[CommitCall, ...]


@dataclass(frozen=True, slots=True)
class PullRequestCall:
    id: int
    head_repo: RepoRef
    head_branch: str
    base_branch: str
    title: str
    body: str


@dataclass(frozen=True, slots=True)
class ReleaseCall:
    tag: str
    name: str
    body: str
    prerelease: bool


@dataclass(frozen=True, slots=True)
class PublishCall:
    package_dir: Path
    dist_tag: str
    registry_url: str | None


@dataclass(frozen=True, slots=True)
class DistTagCall:
    packages: tuple[str, ...]
    tag: str
    version: SemVer
    registry_url: str | None


@dataclass
class FakeHost:
    upstream: RepoRef
    fork: RepoRef = field(default_factory=lambda: RepoRef("operator", "fork"))

    files: dict[tuple[str, str], str] = field(default_factory=dict)
    heads: dict[tuple[str, str], str] = field(default_factory=dict)
    messages: dict[str, str] = field(default_factory=dict)

    checkouts: list[str] = field(default_factory=list)
    commits: list[CommitCall] = field(default_factory=list)
    pushes: list[PushCall] = field(default_factory=list)
    pull_requests: list[PullRequestCall] = field(default_factory=list)
    status_polls: list[int] = field(default_factory=list)
    tags: list[tuple[str, str]] = field(default_factory=list)
    releases: list[ReleaseCall] = field(default_factory=list)

    _pending: list[CommitCall] = field(default_factory=list)
    _statuses: dict[int, list[PullRequestStatus]] = field(default_factory=dict)

    def set_file(self, *, branch: str, path: str, text: str) -> None:
        self.files[(branch, path)] = text

    def set_head(self, *, branch: str, sha: str, message: str, repo: RepoRef | None = None) -> None:
        self.heads[((repo or self.upstream).slug, branch)] = sha
        self.messages[sha] = message

    def queue_pr_statuses(self, pr_id: int, statuses: list[PullRequestStatus]) -> None:
        """Statuses returned by successive polls; the last one repeats."""
        self._statuses[pr_id] = list(statuses)

    def get_file_text(self, *, branch: str, path: str) -> Result[str, ReleaseError]:
        text = self.files.get((branch, path))
        if text is None:
            return Err(
                ReleaseError(kind="host_failed", message=f"{path} not found on branch {branch}")
            )
        return Ok(text)

    def list_branches(self) -> Result[list[str], ReleaseError]:
        names = {branch for branch, _ in self.files}
        names.update(branch for slug, branch in self.heads if slug == self.upstream.slug)
        return Ok(sorted(names))

    def branch_head_sha(self, *, repo: RepoRef, branch: str) -> Result[str | None, ReleaseError]:
        return Ok(self.heads.get((repo.slug, branch)))

    def commit_message(self, *, sha: str) -> Result[str, ReleaseError]:
        message = self.messages.get(sha)
        if message is None:
            return Err(ReleaseError(kind="host_failed", message=f"unknown commit: {sha}"))
        return Ok(message)

    def checkout_upstream_branch(self, *, branch: str) -> Result[None, ReleaseError]:
        self.checkouts.append(branch)
        self._pending = []
        return Ok(None)

    def create_commit(self, *, message: str, files: tuple[str, ...]) -> Result[None, ReleaseError]:
        sha = f"sha{len(self.commits) + 1}"
        commit = CommitCall(message=message, files=files, sha=sha)
        self.commits.append(commit)
        self._pending.append(commit)
        self.messages[sha] = message
        return Ok(None)

    def find_or_create_fork(self) -> Result[RepoRef, ReleaseError]:
        return Ok(self.fork)

    def push_head(self, *, repo: RepoRef, branch: str, force: bool) -> Result[None, ReleaseError]:
        self.pushes.append(
            PushCall(repo=repo, branch=branch, force=force, commits=tuple(self._pending))
        )
        if self._pending:
            self.heads[(repo.slug, branch)] = self._pending[-1].sha
        return Ok(None)

    def create_pull_request(
        self,
        *,
        head_repo: RepoRef,
        head_branch: str,
        base_branch: str,
        title: str,
        body: str,
    ) -> Result[PullRequest, ReleaseError]:
        pr_id = len(self.pull_requests) + 1
        self.pull_requests.append(
            PullRequestCall(
                id=pr_id,
                head_repo=head_repo,
                head_branch=head_branch,
                base_branch=base_branch,
                title=title,
                body=body,
            )
        )
        url = f"https://github.com/{self.upstream.slug}/pull/{pr_id}"
        return Ok(PullRequest(id=pr_id, url=url))

    def pull_request_status(self, *, pr_id: int) -> Result[PullRequestStatus, ReleaseError]:
        self.status_polls.append(pr_id)
        queued = self._statuses.get(pr_id)
        status: PullRequestStatus = "merged"
        if queued:
            status = queued.pop(0) if len(queued) > 1 else queued[0]

        if status == "merged":
            self._merge(pr_id)
        return Ok(status)

    def _merge(self, pr_id: int) -> None:
        pr = next((p for p in self.pull_requests if p.id == pr_id), None)
        if pr is None:
            return
        head = self.heads.get((pr.head_repo.slug, pr.head_branch))
        if head is not None:
            self.heads[(self.upstream.slug, pr.base_branch)] = head

    def create_tag(self, *, tag: str, sha: str) -> Result[None, ReleaseError]:
        self.tags.append((tag, sha))
        return Ok(None)

    def create_release(
        self,
        *,
        tag: str,
        name: str,
        body: str,
        prerelease: bool,
    ) -> Result[None, ReleaseError]:
        self.releases.append(ReleaseCall(tag=tag, name=name, body=body, prerelease=prerelease))
        return Ok(None)


@dataclass
class FakeRegistry:
    packages: dict[str, RegistryPackageInfo] = field(default_factory=dict)
    failing_packages: set[str] = field(default_factory=set)
    failing_lookups: set[str] = field(default_factory=set)

    publishes: list[PublishCall] = field(default_factory=list)
    dist_tag_calls: list[DistTagCall] = field(default_factory=list)

    def set_package_info(self, info: RegistryPackageInfo) -> None:
        self.packages[info.name] = info

    def publish(
        self,
        *,
        package_dir: Path,
        dist_tag: str,
        registry_url: str | None,
    ) -> Result[None, ReleaseError]:
        self.publishes.append(
            PublishCall(package_dir=package_dir, dist_tag=dist_tag, registry_url=registry_url)
        )
        if package_dir.name in self.failing_packages:
            return Err(
                ReleaseError(kind="publish_failed", message=f"npm publish failed: {package_dir}")
            )
        return Ok(None)

    def set_dist_tag(
        self,
        *,
        packages: tuple[str, ...],
        tag: str,
        version: SemVer,
        registry_url: str | None,
    ) -> Result[None, ReleaseError]:
        self.dist_tag_calls.append(
            DistTagCall(packages=packages, tag=tag, version=version, registry_url=registry_url)
        )
        return Ok(None)

    def package_info(
        self,
        *,
        name: str,
        registry_url: str | None,
    ) -> Result[RegistryPackageInfo, ReleaseError]:
        if name in self.failing_lookups:
            return Err(ReleaseError(kind="registry_failed", message=f"npm view failed: {name}"))
        info = self.packages.get(name)
        if info is None:
            return Err(
                ReleaseError(kind="package_not_found", message=f"{name} is not in the registry")
            )
        return Ok(info)
