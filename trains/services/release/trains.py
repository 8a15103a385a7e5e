from __future__ import annotations

import json

from trains.core.config import ReleaseConfig
from trains.core.result import Err, Ok, Result
from trains.core.structured import as_str_dict, get_str
from trains.services.release.errors import ReleaseError
from trains.services.release.host import VersionControlHost
from trains.services.release.model import ActiveReleaseTrains, ReleaseTrain
from trains.services.release.semver import SemVer, parse_version, parse_version_branch


def validate_active_trains(
    trains: ActiveReleaseTrains,
) -> Result[ActiveReleaseTrains, ReleaseError]:
    """Check the ordering invariants between next, release-candidate and latest."""
    nxt = trains.next.version
    latest = trains.latest.version

    if latest.is_prerelease:
        return Err(
            ReleaseError(
                kind="invalid_trains",
                message=f'latest train "{trains.latest.branch_name}" is not stable: v{latest}',
            )
        )
    if not latest < nxt:
        return Err(
            ReleaseError(
                kind="invalid_trains",
                message=f"next train (v{nxt}) must be ahead of latest (v{latest})",
            )
        )

    rc = trains.release_candidate
    if rc is not None and not (latest < rc.version < nxt):
        return Err(
            ReleaseError(
                kind="invalid_trains",
                message=(
                    f'release-candidate train "{rc.branch_name}" (v{rc.version}) must be '
                    f"between latest (v{latest}) and next (v{nxt})"
                ),
            )
        )

    return Ok(trains)


def read_branch_version(
    *,
    host: VersionControlHost,
    config: ReleaseConfig,
    branch: str,
) -> Result[SemVer, ReleaseError]:
    text = host.get_file_text(branch=branch, path=config.version_file)
    if isinstance(text, Err):
        return text

    try:
        obj: object = json.loads(text.value)
    except json.JSONDecodeError as e:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"invalid JSON in {config.version_file}@{branch}: {e}",
            )
        )

    data = as_str_dict(obj)
    raw = get_str(data, "version") if data is not None else None
    if raw is None:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"missing version in {config.version_file}@{branch}",
            )
        )
    return parse_version(raw)


def fetch_active_release_trains(
    *,
    host: VersionControlHost,
    config: ReleaseConfig,
) -> Result[ActiveReleaseTrains, ReleaseError]:
    """Read the current release trains from the upstream repository.

    Version branches (``<major>.<minor>.x``) are scanned newest first. The
    newest one still on a pre-release below ``next`` is the release-candidate
    train; the newest stable one is ``latest``.
    """
    next_version = read_branch_version(host=host, config=config, branch=config.next_branch)
    if isinstance(next_version, Err):
        return next_version
    next_train = ReleaseTrain(config.next_branch, next_version.value)

    branches = host.list_branches()
    if isinstance(branches, Err):
        return branches

    version_branches: list[tuple[tuple[int, int], str]] = []
    for name in branches.value:
        parsed = parse_version_branch(name)
        if parsed is not None:
            version_branches.append((parsed, name))
    version_branches.sort(reverse=True)

    release_candidate: ReleaseTrain | None = None
    latest: ReleaseTrain | None = None
    for _, name in version_branches:
        version = read_branch_version(host=host, config=config, branch=name)
        if isinstance(version, Err):
            return version
        if not version.value < next_train.version:
            continue
        if version.value.is_prerelease:
            if release_candidate is None:
                release_candidate = ReleaseTrain(name, version.value)
            continue
        latest = ReleaseTrain(name, version.value)
        break

    if latest is None:
        return Err(
            ReleaseError(
                kind="invalid_trains",
                message="no version branch with a stable version found",
                hint="expected at least one <major>.<minor>.x branch",
            )
        )

    return validate_active_trains(
        ActiveReleaseTrains(next=next_train, release_candidate=release_candidate, latest=latest)
    )
