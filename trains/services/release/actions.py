"""Catalog of release actions.

The catalog is a closed set of tagged actions (``ActionKind``). Each kind
has three capabilities:

- ``is_action_active(kind, trains)`` decides whether it applies to the current trains.
- ``compute_version(kind, trains, ...)`` resolves its target into an ``ActionPlan``.
  It runs once per invocation.
- ``perform_action(kind, plan, ...)`` runs staging, approval, publish and
  changelog cherry-pick for that plan.

Several kinds can be active at the same time (for example a release-candidate
cut next to an LTS patch).
"""

from __future__ import annotations

from collections.abc import Callable

from trains.core.config import ReleaseConfig
from trains.core.result import Err, Ok, Result
from trains.services.release.changelog import cherry_pick_changelog_into_next
from trains.services.release.config import (
    LATEST_DIST_TAG,
    NEXT_DIST_TAG,
    next_bump_commit_message,
)
from trains.services.release.context import ReleaseContext
from trains.services.release.errors import ReleaseError
from trains.services.release.lts import fetch_lts_branches
from trains.services.release.model import (
    ActionKind,
    ActionPlan,
    ActiveReleaseTrains,
    LtsBranch,
    LtsBranches,
    ReleaseTrain,
)
from trains.services.release.npm import PackageRegistry, is_version_published
from trains.services.release.publish import build_and_publish, retag_previous_latest_as_lts
from trains.services.release.semver import (
    DEFAULT_PRERELEASE_LABEL,
    RELEASE_CANDIDATE_LABEL,
    PreRelease,
    SemVer,
    increment,
    version_branch_name,
)
from trains.services.release.staging import (
    push_to_fork_and_create_pull_request,
    stage_version,
    update_version_file,
    wait_for_pull_request_merged,
)

SelectLtsBranch = Callable[[LtsBranches], LtsBranch | None]

ACTION_CATALOG: tuple[ActionKind, ...] = (
    "cut-stable",
    "cut-release-candidate",
    "cut-new-patch",
    "cut-next-prerelease",
    "move-next-into-feature-freeze",
    "cut-lts-patch",
)


def _is_release_candidate(train: ReleaseTrain) -> bool:
    return train.version.prerelease_label == RELEASE_CANDIDATE_LABEL


def _stable_target(trains: ActiveReleaseTrains) -> ReleaseTrain | None:
    rc = trains.release_candidate
    if rc is not None:
        return rc if _is_release_candidate(rc) else None
    if not trains.next.version.is_prerelease:
        return trains.next
    return None


def _prerelease_target(trains: ActiveReleaseTrains) -> ReleaseTrain:
    return trains.release_candidate or trains.next


def is_action_active(kind: ActionKind, trains: ActiveReleaseTrains) -> bool:
    match kind:
        case "cut-stable":
            return _stable_target(trains) is not None
        case "cut-release-candidate":
            rc = trains.release_candidate
            return rc is not None and not _is_release_candidate(rc)
        case "cut-new-patch":
            return True
        case "cut-next-prerelease":
            return True
        case "move-next-into-feature-freeze":
            return trains.release_candidate is None and trains.next.version.is_prerelease
        case "cut-lts-patch":
            # LTS branches need a registry query, so they are resolved on perform.
            return True


def active_actions(trains: ActiveReleaseTrains) -> list[ActionKind]:
    return [kind for kind in ACTION_CATALOG if is_action_active(kind, trains)]


def _next_prerelease_version(
    train: ReleaseTrain,
    trains: ActiveReleaseTrains,
    *,
    registry: PackageRegistry,
    config: ReleaseConfig,
) -> Result[SemVer, ReleaseError]:
    # Right after a feature-freeze branch cut, `next` is bumped but not published
    # and has no changes of its own yet; it is staged as-is instead of bumped again.
    if train == trains.next and trains.release_candidate is None:
        published = is_version_published(registry=registry, config=config, version=train.version)
        if isinstance(published, Err):
            return published
        if not published.value:
            return Ok(train.version)
    return Ok(increment(train.version, "prerelease"))


def compute_version(
    kind: ActionKind,
    trains: ActiveReleaseTrains,
    *,
    registry: PackageRegistry,
    config: ReleaseConfig,
) -> Result[ActionPlan | None, ReleaseError]:
    """Resolve the target train, version and dist-tag of an action.

    Returns Ok(None) for ``cut-lts-patch``, whose branch is only known once an
    LTS branch has been selected.
    """
    match kind:
        case "cut-stable":
            target = _stable_target(trains)
            if target is None:
                return Err(
                    ReleaseError(
                        kind="invalid_trains",
                        message="no release-candidate train is ready for a stable release",
                    )
                )
            stable = target.version.without_prerelease()
            return Ok(ActionPlan(kind, target, stable, LATEST_DIST_TAG))
        case "cut-release-candidate":
            rc = trains.release_candidate
            if rc is None:
                return Err(
                    ReleaseError(kind="invalid_trains", message="no feature-freeze train is active")
                )
            version = increment(rc.version, "prerelease", label=RELEASE_CANDIDATE_LABEL)
            return Ok(ActionPlan(kind, rc, version, NEXT_DIST_TAG))
        case "cut-new-patch":
            latest = trains.latest
            return Ok(ActionPlan(kind, latest, increment(latest.version, "patch"), LATEST_DIST_TAG))
        case "cut-next-prerelease" | "move-next-into-feature-freeze":
            train = _prerelease_target(trains) if kind == "cut-next-prerelease" else trains.next
            version = _next_prerelease_version(train, trains, registry=registry, config=config)
            if isinstance(version, Err):
                return version
            return Ok(ActionPlan(kind, train, version.value, NEXT_DIST_TAG))
        case "cut-lts-patch":
            return Ok(None)


def describe_action(kind: ActionKind, plan: ActionPlan | None) -> str:
    """Human-readable description; deterministic for a given plan."""
    if kind == "cut-lts-patch" or plan is None:
        return "Cut a new release for an active LTS branch."

    branch = plan.train.branch_name
    version = plan.version
    match kind:
        case "cut-stable":
            if plan.train.version.is_prerelease:
                return f"Cut a stable release for the release-candidate branch (v{version})."
            return f'Cut a stable release for the "{branch}" branch (v{version}).'
        case "cut-release-candidate":
            return f"Cut a first release-candidate for the feature-freeze branch (v{version})."
        case "cut-new-patch":
            return f'Cut a new patch release for the "{branch}" branch (v{version}).'
        case "cut-next-prerelease":
            return f'Cut a new next pre-release for the "{branch}" branch (v{version}).'
        case "move-next-into-feature-freeze":
            return f'Move the "{branch}" branch into feature-freeze phase (v{version}).'


def _release_from_branch(
    ctx: ReleaseContext,
    *,
    version: SemVer,
    branch: str,
    dist_tag: str,
) -> Result[None, ReleaseError]:
    staged = stage_version(ctx, version=version, target_branch=branch)
    if isinstance(staged, Err):
        return staged

    merged = wait_for_pull_request_merged(ctx, staged.value.pull_request)
    if isinstance(merged, Err):
        return merged

    return build_and_publish(ctx, version=version, publish_branch=branch, dist_tag=dist_tag)


def _cherry_pick(
    ctx: ReleaseContext,
    trains: ActiveReleaseTrains,
    *,
    version: SemVer,
    branch: str,
) -> Result[None, ReleaseError]:
    picked = cherry_pick_changelog_into_next(
        ctx,
        version=version,
        staging_branch=branch,
        next_branch=trains.next.branch_name,
    )
    if isinstance(picked, Err):
        return picked
    return Ok(None)


def _bump_next_branch(
    ctx: ReleaseContext,
    trains: ActiveReleaseTrains,
    *,
    feature_freeze_version: SemVer,
) -> Result[None, ReleaseError]:
    """Propose the next minor pre-release on the development branch."""
    next_branch = trains.next.branch_name
    version = SemVer(
        feature_freeze_version.major,
        feature_freeze_version.minor + 1,
        0,
        PreRelease(label=DEFAULT_PRERELEASE_LABEL, number=0),
    )

    checked_out = ctx.host.checkout_upstream_branch(branch=next_branch)
    if isinstance(checked_out, Err):
        return checked_out
    updated = update_version_file(ctx, version)
    if isinstance(updated, Err):
        return updated

    message = next_bump_commit_message(version)
    committed = ctx.host.create_commit(message=message, files=(ctx.config.version_file,))
    if isinstance(committed, Err):
        return committed

    staged = push_to_fork_and_create_pull_request(
        ctx,
        target_branch=next_branch,
        proposed_branch=f"next-release-train-{version}",
        title=message,
        body=f'The "{next_branch}" branch moves on to v{version}.',
    )
    if isinstance(staged, Err):
        return staged
    return Ok(None)


def _move_next_into_feature_freeze(
    ctx: ReleaseContext,
    trains: ActiveReleaseTrains,
    plan: ActionPlan,
) -> Result[None, ReleaseError]:
    new_branch = version_branch_name(plan.version)
    ctx.console.header(f'Creating feature-freeze branch "{new_branch}"')

    checked_out = ctx.host.checkout_upstream_branch(branch=trains.next.branch_name)
    if isinstance(checked_out, Err):
        return checked_out
    pushed = ctx.host.push_head(repo=ctx.host.upstream, branch=new_branch, force=False)
    if isinstance(pushed, Err):
        return pushed

    released = _release_from_branch(
        ctx, version=plan.version, branch=new_branch, dist_tag=plan.dist_tag
    )
    if isinstance(released, Err):
        return released

    bumped = _bump_next_branch(ctx, trains, feature_freeze_version=plan.version)
    if isinstance(bumped, Err):
        return bumped

    return _cherry_pick(ctx, trains, version=plan.version, branch=new_branch)


def _cut_lts_patch(
    ctx: ReleaseContext,
    trains: ActiveReleaseTrains,
    *,
    select_lts_branch: SelectLtsBranch,
) -> Result[None, ReleaseError]:
    branches = fetch_lts_branches(registry=ctx.registry, config=ctx.config)
    if isinstance(branches, Err):
        return branches
    if not branches.value.active and not branches.value.inactive:
        return Err(
            ReleaseError(
                kind="no_lts_branches",
                message="no LTS branches found",
                hint='LTS majors are discovered from "v<major>-lts" dist-tags',
            )
        )

    selected = select_lts_branch(branches.value)
    if selected is None:
        return Err(ReleaseError(kind="invalid_input", message="no LTS branch selected"))

    version = increment(selected.version, "patch")
    released = _release_from_branch(
        ctx, version=version, branch=selected.name, dist_tag=selected.npm_dist_tag
    )
    if isinstance(released, Err):
        return released
    return _cherry_pick(ctx, trains, version=version, branch=selected.name)


def perform_action(
    kind: ActionKind,
    plan: ActionPlan | None,
    trains: ActiveReleaseTrains,
    ctx: ReleaseContext,
    *,
    select_lts_branch: SelectLtsBranch,
) -> Result[None, ReleaseError]:
    """Run the release workflow for ``kind`` using the plan from ``compute_version``."""
    if kind == "cut-lts-patch":
        return _cut_lts_patch(ctx, trains, select_lts_branch=select_lts_branch)
    if plan is None or plan.kind != kind:
        return Err(ReleaseError(kind="invalid_input", message=f"no version computed for {kind}"))

    if kind == "move-next-into-feature-freeze":
        return _move_next_into_feature_freeze(ctx, trains, plan)

    branch = plan.train.branch_name
    released = _release_from_branch(
        ctx, version=plan.version, branch=branch, dist_tag=plan.dist_tag
    )
    if isinstance(released, Err):
        return released

    if kind == "cut-stable":
        retagged = retag_previous_latest_as_lts(
            ctx, previous_latest=trains.latest, new_version=plan.version
        )
        if isinstance(retagged, Err):
            return retagged

    if plan.train == trains.next:
        return Ok(None)
    return _cherry_pick(ctx, trains, version=plan.version, branch=branch)
