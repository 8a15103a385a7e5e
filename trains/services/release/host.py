"""Version-control host contract.

The release flow only talks to the host through ``VersionControlHost`` so the
orchestration can run against the real GitHub-backed implementation
(``trains.services.release.gh.GhHost``) or an in-memory fake in tests
(``trains.services.release.fakes.FakeHost``).
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from trains.core.result import Result
from trains.services.release.errors import ReleaseError
from trains.services.release.model import PullRequest, PullRequestStatus, RepoRef


@runtime_checkable
class VersionControlHost(Protocol):
    """Remote repository operations plus the local checkout they act on.

    Local operations (checkout, commit, push) act on the project working tree;
    remote operations act on ``upstream`` unless a repo is passed.
    """

    @property
    def upstream(self) -> RepoRef: ...

    def get_file_text(self, *, branch: str, path: str) -> Result[str, ReleaseError]:
        """Content of ``path`` at the head of an upstream branch."""
        ...

    def list_branches(self) -> Result[list[str], ReleaseError]: ...

    def branch_head_sha(self, *, repo: RepoRef, branch: str) -> Result[str | None, ReleaseError]:
        """Head commit of ``branch``, or None if the branch does not exist."""
        ...

    def commit_message(self, *, sha: str) -> Result[str, ReleaseError]: ...

    def checkout_upstream_branch(self, *, branch: str) -> Result[None, ReleaseError]:
        """Fetch an upstream branch and check out its head (detached)."""
        ...

    def create_commit(self, *, message: str, files: tuple[str, ...]) -> Result[None, ReleaseError]:
        """Commit the given project-relative files on top of the current checkout."""
        ...

    def find_or_create_fork(self) -> Result[RepoRef, ReleaseError]:
        """Fork of upstream owned by the authenticated user."""
        ...

    def push_head(self, *, repo: RepoRef, branch: str, force: bool) -> Result[None, ReleaseError]:
        """Push the current checkout to ``branch`` of ``repo``."""
        ...

    def create_pull_request(
        self,
        *,
        head_repo: RepoRef,
        head_branch: str,
        base_branch: str,
        title: str,
        body: str,
    ) -> Result[PullRequest, ReleaseError]: ...

    def pull_request_status(self, *, pr_id: int) -> Result[PullRequestStatus, ReleaseError]: ...

    def create_tag(self, *, tag: str, sha: str) -> Result[None, ReleaseError]: ...

    def create_release(
        self,
        *,
        tag: str,
        name: str,
        body: str,
        prerelease: bool,
    ) -> Result[None, ReleaseError]: ...
