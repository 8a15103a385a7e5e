from __future__ import annotations

from trains.core.result import Err, Ok, Result
from trains.output.console import Style
from trains.platform.process import run_streaming
from trains.services.release.changelog import extract_release_notes
from trains.services.release.config import DIST_DIR, lts_dist_tag, staging_commit_message
from trains.services.release.context import ReleaseContext
from trains.services.release.errors import ReleaseError
from trains.services.release.model import DistTag, ReleaseTrain
from trains.services.release.semver import SemVer


def verify_staging_commit(
    ctx: ReleaseContext,
    *,
    version: SemVer,
    branch: str,
) -> Result[str, ReleaseError]:
    """Return the head SHA of ``branch`` if it is the staging commit of ``version``."""
    sha = ctx.host.branch_head_sha(repo=ctx.host.upstream, branch=branch)
    if isinstance(sha, Err):
        return sha
    if sha.value is None:
        return Err(
            ReleaseError(kind="host_failed", message=f'branch "{branch}" does not exist upstream')
        )

    message = ctx.host.commit_message(sha=sha.value)
    if isinstance(message, Err):
        return message

    expected = staging_commit_message(version)
    if not message.value.startswith(expected):
        return Err(
            ReleaseError(
                kind="invalid_staging_commit",
                message=f'Latest commit in "{branch}" branch is not a staging commit.',
                hint=f'expected "{expected}"',
            )
        )
    return Ok(sha.value)


def build_release_output(ctx: ReleaseContext) -> Result[None, ReleaseError]:
    cmd = list(ctx.config.build_command)
    if not cmd:
        return Ok(None)

    ctx.console.print(" ".join(cmd), Style.DIM)
    result = run_streaming(cmd, cwd=ctx.project_dir)
    if isinstance(result, Err):
        return Err(
            ReleaseError(
                kind="build_failed",
                message=f"release build failed (exit {result.error.returncode})",
                hint=" ".join(cmd),
            )
        )
    return Ok(None)


def verify_build_output(ctx: ReleaseContext) -> Result[None, ReleaseError]:
    """Check that every configured package has been built into ``dist/<package>``."""
    dist = ctx.project_dir / DIST_DIR
    missing = [pkg for pkg in ctx.config.npm_packages if not (dist / pkg).is_dir()]
    if not missing:
        return Ok(None)

    ctx.console.error("Release output has not been built for the following packages:")
    for pkg in missing:
        ctx.console.error(f"- {pkg}")
    return Err(
        ReleaseError(
            kind="missing_build_output",
            message=f"release output missing for: {', '.join(missing)}",
            hint=str(dist),
        )
    )


def create_release_for_version(
    ctx: ReleaseContext,
    *,
    version: SemVer,
    sha: str,
) -> Result[None, ReleaseError]:
    """Tag the staging commit and create the host release ``v<version>``.

    The release body is the version's section of the local changelog on the
    publish branch. The release flow does not generate notes, so the section
    must have been written before staging; otherwise the body is empty.
    """
    tag = str(version)
    tagged = ctx.host.create_tag(tag=tag, sha=sha)
    if isinstance(tagged, Err):
        return tagged

    body = ""
    changelog = ctx.project_dir / ctx.config.changelog_path
    if changelog.exists():
        try:
            content = changelog.read_text(encoding="utf-8")
        except OSError as e:
            return Err(
                ReleaseError(kind="io_failed", message=f"failed to read changelog: {e}")
            )
        body = extract_release_notes(content=content, version=version, config=ctx.config) or ""

    return ctx.host.create_release(
        tag=tag,
        name=f"v{version}",
        body=body,
        prerelease=version.is_prerelease,
    )


def publish_packages(ctx: ReleaseContext, *, dist_tag: DistTag) -> Result[None, ReleaseError]:
    """Publish every configured package; nothing already published is rolled back."""
    failed: list[str] = []
    for pkg in ctx.config.npm_packages:
        result = ctx.registry.publish(
            package_dir=ctx.project_dir / DIST_DIR / pkg,
            dist_tag=dist_tag,
            registry_url=ctx.config.publish_registry,
        )
        if isinstance(result, Err):
            ctx.console.error(f"{pkg}: {result.error.pretty()}")
            failed.append(pkg)
        else:
            ctx.console.success(f'Published {pkg} with "{dist_tag}" tag.')

    if failed:
        return Err(
            ReleaseError(
                kind="publish_failed",
                message=f"failed to publish: {', '.join(failed)}",
                hint="packages published before the failure stay published",
            )
        )
    return Ok(None)


def build_and_publish(
    ctx: ReleaseContext,
    *,
    version: SemVer,
    publish_branch: str,
    dist_tag: DistTag,
) -> Result[None, ReleaseError]:
    """Build the merged staging commit, verify the output, release and publish it."""
    ctx.console.header(f"Publishing v{version} from {publish_branch} ({dist_tag})")

    sha = verify_staging_commit(ctx, version=version, branch=publish_branch)
    if isinstance(sha, Err):
        return sha

    checked_out = ctx.host.checkout_upstream_branch(branch=publish_branch)
    if isinstance(checked_out, Err):
        return checked_out

    built = build_release_output(ctx)
    if isinstance(built, Err):
        return built

    verified = verify_build_output(ctx)
    if isinstance(verified, Err):
        return verified

    released = create_release_for_version(ctx, version=version, sha=sha.value)
    if isinstance(released, Err):
        return released

    published = publish_packages(ctx, dist_tag=dist_tag)
    if isinstance(published, Err):
        return published

    ctx.console.success("Published all packages successfully.")
    return Ok(None)


def retag_previous_latest_as_lts(
    ctx: ReleaseContext,
    *,
    previous_latest: ReleaseTrain,
    new_version: SemVer,
) -> Result[bool, ReleaseError]:
    """Move the previous major onto its ``v<major>-lts`` dist-tag.

    Only a stable cut that changes the major version starts an LTS line;
    returns whether a retag happened.
    """
    old = previous_latest.version
    if old.major == new_version.major:
        return Ok(False)

    tag = lts_dist_tag(old.major)
    result = ctx.registry.set_dist_tag(
        packages=ctx.config.npm_packages,
        tag=tag,
        version=old,
        registry_url=ctx.config.publish_registry,
    )
    if isinstance(result, Err):
        return result
    ctx.console.success(f'Tagged v{old} as "{tag}".')
    return Ok(True)
