from __future__ import annotations

import calendar
import re
from datetime import UTC, datetime

from trains.core.config import ReleaseConfig
from trains.core.result import Err, Ok, Result
from trains.services.release.config import MAJOR_ACTIVE_SUPPORT_MONTHS, MAJOR_LTS_MONTHS
from trains.services.release.errors import ReleaseError
from trains.services.release.model import LtsBranch, LtsBranches, RegistryPackageInfo
from trains.services.release.npm import PackageRegistry
from trains.services.release.semver import parse_version, version_branch_name

_LTS_DIST_TAG_RE = re.compile(r"^v(\d+)-lts$")


def _add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _parse_timestamp(raw: str) -> datetime | None:
    try:
        moment = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment


def lts_end_date(major_release_date: datetime) -> datetime:
    return _add_months(major_release_date, MAJOR_ACTIVE_SUPPORT_MONTHS + MAJOR_LTS_MONTHS)


def classify_lts_branches(info: RegistryPackageInfo, *, now: datetime) -> LtsBranches:
    """Split the ``v<major>-lts`` dist-tags into active and inactive LTS branches.

    A major is in LTS until 18 months after its ``<major>.0.0`` release. Tags
    without a known release date are treated as inactive. Both lists are
    ordered newest first.
    """
    active: list[LtsBranch] = []
    inactive: list[LtsBranch] = []

    for tag, raw_version in info.dist_tags.items():
        m = _LTS_DIST_TAG_RE.match(tag)
        if m is None:
            continue
        parsed = parse_version(raw_version)
        if isinstance(parsed, Err):
            continue
        version = parsed.value

        branch = LtsBranch(name=version_branch_name(version), version=version, npm_dist_tag=tag)
        released = info.times.get(f"{m.group(1)}.0.0")
        released_at = _parse_timestamp(released) if released is not None else None
        if released_at is not None and now < lts_end_date(released_at):
            active.append(branch)
        else:
            inactive.append(branch)

    def newest_first(branches: list[LtsBranch]) -> tuple[LtsBranch, ...]:
        return tuple(sorted(branches, key=lambda b: b.version, reverse=True))

    return LtsBranches(active=newest_first(active), inactive=newest_first(inactive))


def fetch_lts_branches(
    *,
    registry: PackageRegistry,
    config: ReleaseConfig,
    now: datetime | None = None,
) -> Result[LtsBranches, ReleaseError]:
    info = registry.package_info(name=config.npm_packages[0], registry_url=config.publish_registry)
    if isinstance(info, Err):
        if info.error.kind == "package_not_found":
            return Ok(LtsBranches(active=(), inactive=()))
        return info
    return Ok(classify_lts_branches(info.value, now=now or datetime.now(UTC)))
