from __future__ import annotations

import json
from time import sleep

from trains.core.result import Err, Ok, Result
from trains.core.structured import as_str_dict
from trains.output.console import Style
from trains.services.release.config import STAGING_BRANCH_PREFIX, staging_commit_message
from trains.services.release.context import ReleaseContext
from trains.services.release.errors import ReleaseError
from trains.services.release.model import PullRequest, StagedRelease
from trains.services.release.semver import SemVer
from trains.services.release.timeouts import PR_MERGE_POLL_SECONDS


def update_version_file(ctx: ReleaseContext, version: SemVer) -> Result[None, ReleaseError]:
    """Write ``version`` into the ``version`` field of the project version file."""
    path = ctx.project_dir / ctx.config.version_file
    try:
        obj: object = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        return Err(
            ReleaseError(
                kind="io_failed",
                message=f"failed to read {ctx.config.version_file}: {e}",
                hint=str(path),
            )
        )

    data = as_str_dict(obj)
    if data is None:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"{ctx.config.version_file} must contain a JSON object",
                hint=str(path),
            )
        )

    data["version"] = str(version)
    try:
        path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        return Err(
            ReleaseError(
                kind="io_failed",
                message=f"failed to write {ctx.config.version_file}: {e}",
                hint=str(path),
            )
        )
    return Ok(None)


def push_to_fork_and_create_pull_request(
    ctx: ReleaseContext,
    *,
    target_branch: str,
    proposed_branch: str,
    title: str,
    body: str,
) -> Result[StagedRelease, ReleaseError]:
    """Push the current checkout to the operator's fork and open a PR upstream.

    An existing fork branch of the same name is overwritten, so re-running an
    interrupted action reuses it.
    """
    fork = ctx.host.find_or_create_fork()
    if isinstance(fork, Err):
        return fork

    pushed = ctx.host.push_head(repo=fork.value, branch=proposed_branch, force=True)
    if isinstance(pushed, Err):
        return pushed

    pr = ctx.host.create_pull_request(
        head_repo=fork.value,
        head_branch=proposed_branch,
        base_branch=target_branch,
        title=title,
        body=body,
    )
    if isinstance(pr, Err):
        return pr

    ctx.console.success(f"Created pull request #{pr.value.id} in {ctx.host.upstream.slug}.")
    ctx.console.print(pr.value.url, Style.DIM)
    return Ok(StagedRelease(pull_request=pr.value, fork_branch=proposed_branch))


def stage_version(
    ctx: ReleaseContext,
    *,
    version: SemVer,
    target_branch: str,
) -> Result[StagedRelease, ReleaseError]:
    """Stage ``version`` on ``target_branch`` through a pull request.

    Checks out the upstream branch, bumps the version file, commits
    ``release: cut the v<version> release`` and proposes it from the fork.
    """
    ctx.console.header(f"Staging v{version} on {target_branch}")

    checked_out = ctx.host.checkout_upstream_branch(branch=target_branch)
    if isinstance(checked_out, Err):
        return checked_out

    updated = update_version_file(ctx, version)
    if isinstance(updated, Err):
        return updated

    message = staging_commit_message(version)
    committed = ctx.host.create_commit(message=message, files=(ctx.config.version_file,))
    if isinstance(committed, Err):
        return committed

    return push_to_fork_and_create_pull_request(
        ctx,
        target_branch=target_branch,
        proposed_branch=f"{STAGING_BRANCH_PREFIX}{version}",
        title=f'Bump version to "v{version}".',
        body=f'The version in `{ctx.config.version_file}` has been bumped to v{version}.',
    )


def wait_for_pull_request_merged(
    ctx: ReleaseContext,
    pr: PullRequest,
    *,
    poll_seconds: float = PR_MERGE_POLL_SECONDS,
) -> Result[None, ReleaseError]:
    """Block until ``pr`` is merged.

    Merging is a human decision, so there is no deadline; an open pull request
    is reported as pending and polled again. A closed, unmerged pull request
    ends the action.
    """
    ctx.console.info(f"Waiting for pull request #{pr.id} to be merged: {pr.url}")
    while True:
        status = ctx.host.pull_request_status(pr_id=pr.id)
        if isinstance(status, Err):
            return status

        match status.value:
            case "merged":
                ctx.console.success(f"Pull request #{pr.id} has been merged.")
                return Ok(None)
            case "closed":
                return Err(
                    ReleaseError(
                        kind="pull_request_closed",
                        message=f"pull request #{pr.id} has been closed without merge",
                        hint=pr.url,
                    )
                )
            case "open":
                ctx.console.print(f"pull request #{pr.id}: pending approval", Style.DIM)
                sleep(poll_seconds)
