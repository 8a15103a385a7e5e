from __future__ import annotations

from trains.core.config import ReleaseConfig
from trains.core.result import Err, Ok, Result
from trains.services.release.config import (
    CHANGELOG_CHERRY_PICK_BRANCH_PREFIX,
    release_notes_cherry_pick_commit_message,
)
from trains.services.release.context import ReleaseContext
from trains.services.release.errors import ReleaseError
from trains.services.release.semver import SemVer
from trains.services.release.staging import push_to_fork_and_create_pull_request


def extract_release_notes(*, content: str, version: SemVer, config: ReleaseConfig) -> str | None:
    """Section of ``content`` that holds the notes for ``version``, verbatim."""
    match = config.extract_release_notes_pattern(version).search(content)
    if match is None:
        return None
    return match.group(1)


def fetch_release_notes(
    ctx: ReleaseContext,
    *,
    version: SemVer,
    branch: str,
) -> Result[str | None, ReleaseError]:
    """Fetch the rendered changelog of ``branch`` and extract the notes of ``version``."""
    content = ctx.host.get_file_text(branch=branch, path=ctx.config.changelog_path)
    if isinstance(content, Err):
        return content
    return Ok(extract_release_notes(content=content.value, version=version, config=ctx.config))


def _read_local_changelog(ctx: ReleaseContext) -> Result[str, ReleaseError]:
    path = ctx.project_dir / ctx.config.changelog_path
    if not path.exists():
        return Ok("")
    try:
        return Ok(path.read_text(encoding="utf-8"))
    except OSError as e:
        return Err(
            ReleaseError(kind="io_failed", message=f"failed to read changelog: {e}", hint=str(path))
        )


def prepend_release_notes(ctx: ReleaseContext, notes: str) -> Result[None, ReleaseError]:
    existing = _read_local_changelog(ctx)
    if isinstance(existing, Err):
        return existing

    path = ctx.project_dir / ctx.config.changelog_path
    try:
        # Exact concatenation: the extracted block carries its own separators.
        path.write_text(f"{notes}{existing.value}", encoding="utf-8")
    except OSError as e:
        return Err(
            ReleaseError(
                kind="io_failed",
                message=f"failed to write changelog: {e}",
                hint=str(path),
            )
        )
    return Ok(None)


def cherry_pick_changelog_into_next(
    ctx: ReleaseContext,
    *,
    version: SemVer,
    staging_branch: str,
    next_branch: str,
) -> Result[bool, ReleaseError]:
    """Propose the release notes of ``version`` for the development branch.

    Changelog generation on ``next_branch`` never sees commits made on
    ``staging_branch``, so the notes are copied over through a pull request.

    Returns:
        Ok(True) once the pull request is open, Ok(False) when the notes could
        not be extracted (the operator is told to copy them by hand).
    """
    ctx.console.header(f"Cherry-picking release notes for v{version} into {next_branch}")

    notes = fetch_release_notes(ctx, version=version, branch=staging_branch)
    if isinstance(notes, Err):
        return notes
    if notes.value is None:
        ctx.console.error(f"Could not cherry-pick release notes for v{version}.")
        ctx.console.error(
            f'Please copy the release notes manually into the "{next_branch}" branch.'
        )
        return Ok(False)

    checked_out = ctx.host.checkout_upstream_branch(branch=next_branch)
    if isinstance(checked_out, Err):
        return checked_out

    written = prepend_release_notes(ctx, notes.value)
    if isinstance(written, Err):
        return written

    commit_message = release_notes_cherry_pick_commit_message(version)
    committed = ctx.host.create_commit(message=commit_message, files=(ctx.config.changelog_path,))
    if isinstance(committed, Err):
        return committed

    staged = push_to_fork_and_create_pull_request(
        ctx,
        target_branch=next_branch,
        proposed_branch=f"{CHANGELOG_CHERRY_PICK_BRANCH_PREFIX}{version}",
        title=commit_message,
        body=(
            f'Cherry-picks the changelog from the "{staging_branch}" branch to the next '
            f"branch ({next_branch})."
        ),
    )
    if isinstance(staged, Err):
        return staged
    return Ok(True)
