from __future__ import annotations

import re
from dataclasses import dataclass, replace
from functools import total_ordering
from typing import Literal

from trains.core.result import Err, Ok, Result
from trains.services.release.errors import ReleaseError

VersionIncrement = Literal["patch", "minor", "major", "prerelease"]

DEFAULT_PRERELEASE_LABEL = "next"
RELEASE_CANDIDATE_LABEL = "rc"

_VERSION_RE = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([A-Za-z][0-9A-Za-z-]*)\.(0|[1-9]\d*))?$"
)
_VERSION_BRANCH_RE = re.compile(r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.x$")


@dataclass(frozen=True, slots=True)
class PreRelease:
    label: str
    number: int

    def __str__(self) -> str:
        return f"{self.label}.{self.number}"


@total_ordering
@dataclass(frozen=True, slots=True)
class SemVer:
    """Immutable semantic version with an optional ``-<label>.<n>`` suffix.

    A pre-release sorts before the release it leads up to
    (``10.1.0-next.3 < 10.1.0-rc.0 < 10.1.0``).
    """

    major: int
    minor: int
    patch: int
    prerelease: PreRelease | None = None

    def __str__(self) -> str:
        core = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease is None:
            return core
        return f"{core}-{self.prerelease}"

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def _sort_key(self) -> tuple[int, int, int, int, str, int]:
        if self.prerelease is None:
            return (self.major, self.minor, self.patch, 1, "", 0)
        pre = self.prerelease
        return (self.major, self.minor, self.patch, 0, pre.label, pre.number)

    @property
    def is_prerelease(self) -> bool:
        return self.prerelease is not None

    @property
    def prerelease_label(self) -> str | None:
        return self.prerelease.label if self.prerelease is not None else None

    def without_prerelease(self) -> SemVer:
        return replace(self, prerelease=None)


def parse_version(text: str) -> Result[SemVer, ReleaseError]:
    """Parse ``1.2.3``, ``v1.2.3`` or ``1.2.3-next.4``."""
    m = _VERSION_RE.match(text.strip())
    if m is None:
        return Err(
            ReleaseError(
                kind="invalid_version",
                message=f"invalid version: {text!r}",
                hint="expected <major>.<minor>.<patch>[-<label>.<n>]",
            )
        )

    prerelease: PreRelease | None = None
    if m.group(4) is not None:
        prerelease = PreRelease(label=m.group(4), number=int(m.group(5)))
    return Ok(SemVer(int(m.group(1)), int(m.group(2)), int(m.group(3)), prerelease))


def increment(
    version: SemVer,
    kind: VersionIncrement,
    *,
    label: str | None = None,
) -> SemVer:
    """Compute the next version for a release-train transition.

    ``patch``/``minor``/``major`` follow semver, so finalizing a pre-release
    only drops its suffix (``10.1.0-rc.0`` -> ``10.1.0``).

    ``prerelease`` starts ``<label>.0`` on a stable version (``next`` when no
    label is given). On a pre-release it bumps the counter and keeps the
    existing label, unless a different ``label`` is passed, which switches to
    ``<label>.0`` (``10.1.0-next.3`` with label ``rc`` -> ``10.1.0-rc.0``).
    """
    pre = version.prerelease
    match kind:
        case "patch":
            if pre is not None:
                return version.without_prerelease()
            return SemVer(version.major, version.minor, version.patch + 1)
        case "minor":
            if pre is not None and version.patch == 0:
                return version.without_prerelease()
            return SemVer(version.major, version.minor + 1, 0)
        case "major":
            if pre is not None and version.minor == 0 and version.patch == 0:
                return version.without_prerelease()
            return SemVer(version.major + 1, 0, 0)
        case "prerelease":
            if pre is None:
                start = label or DEFAULT_PRERELEASE_LABEL
                return replace(version, prerelease=PreRelease(label=start, number=0))
            if label is None or pre.label == label:
                bumped = PreRelease(label=pre.label, number=pre.number + 1)
                return replace(version, prerelease=bumped)
            return replace(version, prerelease=PreRelease(label=label, number=0))
        case _:
            raise AssertionError(f"unexpected increment kind: {kind}")


def version_branch_name(version: SemVer) -> str:
    """Name of the branch a version is released from (``10.1.x``)."""
    return f"{version.major}.{version.minor}.x"


def parse_version_branch(name: str) -> tuple[int, int] | None:
    m = _VERSION_BRANCH_RE.match(name)
    if m is None:
        return None
    return (int(m.group(1)), int(m.group(2)))
