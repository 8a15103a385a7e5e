from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from trains.services.release.semver import SemVer

ActionKind = Literal[
    "cut-stable",
    "cut-release-candidate",
    "cut-new-patch",
    "cut-next-prerelease",
    "move-next-into-feature-freeze",
    "cut-lts-patch",
]

# `latest`, `next`, or an LTS tag such as `v10-lts`.
DistTag = str

PullRequestStatus = Literal["open", "merged", "closed"]


@dataclass(frozen=True, slots=True)
class ReleaseTrain:
    """One line of development pinned to one branch."""

    branch_name: str
    version: SemVer

    @property
    def is_major(self) -> bool:
        return self.version.minor == 0 and self.version.patch == 0


@dataclass(frozen=True, slots=True)
class ActiveReleaseTrains:
    next: ReleaseTrain
    release_candidate: ReleaseTrain | None
    latest: ReleaseTrain


@dataclass(frozen=True, slots=True)
class LtsBranch:
    """A patch-maintenance branch outside the active trains."""

    name: str
    version: SemVer
    npm_dist_tag: str


@dataclass(frozen=True, slots=True)
class LtsBranches:
    active: tuple[LtsBranch, ...]
    inactive: tuple[LtsBranch, ...]


@dataclass(frozen=True, slots=True)
class ActionPlan:
    """Resolved target of a release action.

    Computed once per invocation and shared by the description and the
    perform step.
    """

    kind: ActionKind
    train: ReleaseTrain
    version: SemVer
    dist_tag: DistTag


@dataclass(frozen=True, slots=True)
class RepoRef:
    """A repository on the version-control host (``owner/name``)."""

    owner: str
    name: str

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True, slots=True)
class PullRequest:
    id: int
    url: str


@dataclass(frozen=True, slots=True)
class StagedRelease:
    pull_request: PullRequest
    fork_branch: str


@dataclass(frozen=True, slots=True)
class RegistryPackageInfo:
    """Registry metadata of one package.

    ``times`` maps versions to ISO-8601 publish timestamps.
    """

    name: str
    dist_tags: dict[str, str]
    versions: tuple[str, ...]
    times: dict[str, str]
