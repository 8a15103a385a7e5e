from __future__ import annotations

import base64
import binascii
import json
import shutil
from pathlib import Path
from time import sleep

from trains.core.result import Err, Ok, Result
from trains.core.structured import as_str_dict, get_str
from trains.output.console import ConsoleProtocol, Style
from trains.platform.process import ProcessError
from trains.platform.process import run as run_process
from trains.services.release.errors import ReleaseError, ReleaseErrorKind
from trains.services.release.model import PullRequest, PullRequestStatus, RepoRef
from trains.services.release.timeouts import (
    GH_READ_RETRY_ATTEMPTS,
    GH_READ_RETRY_DELAY_SECONDS,
    GH_TIMEOUT_SECONDS,
    GIT_NETWORK_TIMEOUT_SECONDS,
    GIT_TIMEOUT_SECONDS,
)


def _is_transient_gh_error(error: ProcessError) -> bool:
    text = f"{error.stderr}\n{error.stdout}".lower()
    markers = (
        "timed out",
        "timeout",
        "connection reset",
        "connection refused",
        "temporarily unavailable",
        "service unavailable",
        "bad gateway",
        "gateway timeout",
        "network is unreachable",
        "http 429",
        "http 500",
        "http 502",
        "http 503",
        "http 504",
    )
    if error.returncode == -1 and "timed out" in text:
        return True
    return any(marker in text for marker in markers)


def _is_not_found(error: ProcessError) -> bool:
    return "http 404" in f"{error.stderr}\n{error.stdout}".lower()


def run_gh_read(
    *,
    project_dir: Path,
    cmd: list[str],
    kind: ReleaseErrorKind,
    message: str,
    hint: str | None = None,
    timeout: float = GH_TIMEOUT_SECONDS,
    retry_attempts: int = GH_READ_RETRY_ATTEMPTS,
) -> Result[str, ReleaseError]:
    """Run an idempotent gh read, retrying transient API failures."""
    attempts = max(1, retry_attempts)
    for attempt in range(attempts):
        result = run_process(cmd, cwd=project_dir, timeout=timeout)
        if isinstance(result, Ok):
            return result

        error = result.error
        if attempt < attempts - 1 and _is_transient_gh_error(error):
            sleep(GH_READ_RETRY_DELAY_SECONDS * (attempt + 1))
            continue

        return Err(
            ReleaseError(
                kind=kind,
                message=message,
                hint=error.stderr.strip() or hint,
            )
        )

    return Err(ReleaseError(kind=kind, message=message, hint=hint))


def ensure_gh_available() -> Result[None, ReleaseError]:
    if shutil.which("gh") is None:
        return Err(
            ReleaseError(
                kind="gh_missing",
                message="gh: missing",
                hint="Install GitHub CLI: https://cli.github.com/",
            )
        )
    return Ok(None)


def ensure_gh_auth(*, project_dir: Path) -> Result[None, ReleaseError]:
    result = run_process(["gh", "auth", "status"], cwd=project_dir, timeout=GH_TIMEOUT_SECONDS)
    if isinstance(result, Err):
        return Err(
            ReleaseError(
                kind="gh_auth_required",
                message="gh auth required",
                hint="Run: gh auth login",
            )
        )
    return Ok(None)


def _parse_json(payload: str, *, what: str) -> Result[object, ReleaseError]:
    try:
        obj: object = json.loads(payload)
    except json.JSONDecodeError as e:
        return Err(ReleaseError(kind="host_failed", message=f"invalid JSON from {what}: {e}"))
    return Ok(obj)


def _pr_number_from_url(url: str) -> int | None:
    tail = url.rstrip("/").rsplit("/", 1)[-1]
    return int(tail) if tail.isdigit() else None


class GhHost:
    """GitHub host backed by the ``gh`` CLI and a local git checkout."""

    def __init__(self, *, project_dir: Path, upstream: RepoRef, console: ConsoleProtocol) -> None:
        self._project_dir = project_dir
        self._upstream = upstream
        self._console = console

    @property
    def upstream(self) -> RepoRef:
        return self._upstream

    def _git(self, cmd: list[str], *, network: bool = False) -> Result[str, ReleaseError]:
        timeout = GIT_NETWORK_TIMEOUT_SECONDS if network else GIT_TIMEOUT_SECONDS
        self._console.print(" ".join(cmd[:4]), Style.DIM)
        result = run_process(cmd, cwd=self._project_dir, timeout=timeout)
        if isinstance(result, Err):
            e = result.error
            return Err(
                ReleaseError(
                    kind="host_failed",
                    message=f"git failed: {' '.join(cmd[:3])}",
                    hint=e.stderr.strip() or None,
                )
            )
        return result

    def _api_json(self, endpoint: str) -> Result[object, ReleaseError]:
        result = run_gh_read(
            project_dir=self._project_dir,
            cmd=["gh", "api", endpoint],
            kind="host_failed",
            message=f"gh api failed: {endpoint}",
            hint=endpoint,
        )
        if isinstance(result, Err):
            return result
        return _parse_json(result.value, what=endpoint)

    def get_file_text(self, *, branch: str, path: str) -> Result[str, ReleaseError]:
        # Contents API avoids touching the local checkout.
        endpoint = f"repos/{self._upstream.slug}/contents/{path}?ref={branch}"
        obj = self._api_json(endpoint)
        if isinstance(obj, Err):
            return obj

        data = as_str_dict(obj.value)
        enc = get_str(data, "encoding") if data is not None else None
        content = get_str(data, "content") if data is not None else None
        if enc != "base64" or content is None:
            return Err(
                ReleaseError(
                    kind="host_failed",
                    message=f"unexpected contents payload for {path}@{branch}",
                    hint=endpoint,
                )
            )

        try:
            return Ok(base64.b64decode(content, validate=False).decode("utf-8"))
        except (binascii.Error, ValueError) as e:
            return Err(
                ReleaseError(
                    kind="host_failed",
                    message=f"failed to decode {path}@{branch}: {e}",
                    hint=endpoint,
                )
            )

    def list_branches(self) -> Result[list[str], ReleaseError]:
        result = run_gh_read(
            project_dir=self._project_dir,
            cmd=[
                "gh",
                "api",
                "--paginate",
                f"repos/{self._upstream.slug}/branches?per_page=100",
                "--jq",
                ".[].name",
            ],
            kind="host_failed",
            message=f"failed to list branches of {self._upstream.slug}",
        )
        if isinstance(result, Err):
            return result
        return Ok([line.strip() for line in result.value.splitlines() if line.strip()])

    def branch_head_sha(self, *, repo: RepoRef, branch: str) -> Result[str | None, ReleaseError]:
        cmd = ["gh", "api", f"repos/{repo.slug}/branches/{branch}", "--jq", ".commit.sha"]
        result = run_process(cmd, cwd=self._project_dir, timeout=GH_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            if _is_not_found(result.error):
                return Ok(None)
            return Err(
                ReleaseError(
                    kind="host_failed",
                    message=f"failed to query branch {repo.slug}@{branch}",
                    hint=result.error.stderr.strip() or None,
                )
            )
        sha = result.value.strip()
        return Ok(sha or None)

    def commit_message(self, *, sha: str) -> Result[str, ReleaseError]:
        return run_gh_read(
            project_dir=self._project_dir,
            cmd=[
                "gh",
                "api",
                f"repos/{self._upstream.slug}/commits/{sha}",
                "--jq",
                ".commit.message",
            ],
            kind="host_failed",
            message=f"failed to read commit {sha[:8]}",
        )

    def checkout_upstream_branch(self, *, branch: str) -> Result[None, ReleaseError]:
        url = f"https://github.com/{self._upstream.slug}.git"
        fetched = self._git(["git", "fetch", "-q", url, branch], network=True)
        if isinstance(fetched, Err):
            return fetched
        checked_out = self._git(["git", "checkout", "-q", "--detach", "FETCH_HEAD"])
        if isinstance(checked_out, Err):
            return checked_out
        return Ok(None)

    def create_commit(self, *, message: str, files: tuple[str, ...]) -> Result[None, ReleaseError]:
        added = self._git(["git", "add", "--", *files])
        if isinstance(added, Err):
            return added
        # A preserved version leaves the version file unchanged.
        cmd = ["git", "commit", "-q", "--no-verify", "--allow-empty", "-m", message]
        committed = self._git(cmd)
        if isinstance(committed, Err):
            return committed
        return Ok(None)

    def find_or_create_fork(self) -> Result[RepoRef, ReleaseError]:
        user = self._api_json("user")
        if isinstance(user, Err):
            return user
        data = as_str_dict(user.value)
        login = get_str(data, "login") if data is not None else None
        if login is None:
            return Err(ReleaseError(kind="host_failed", message="missing user.login"))

        fork = RepoRef(owner=login, name=self._upstream.name)
        exists = run_process(
            ["gh", "api", f"repos/{fork.slug}", "--jq", ".fork"],
            cwd=self._project_dir,
            timeout=GH_TIMEOUT_SECONDS,
        )
        if isinstance(exists, Ok) and exists.value.strip() == "true":
            return Ok(fork)

        self._console.print(f"gh repo fork {self._upstream.slug}", Style.DIM)
        created = run_process(
            ["gh", "repo", "fork", self._upstream.slug, "--clone=false"],
            cwd=self._project_dir,
            timeout=GH_TIMEOUT_SECONDS,
        )
        if isinstance(created, Err):
            return Err(
                ReleaseError(
                    kind="host_failed",
                    message=f"failed to fork {self._upstream.slug}",
                    hint=created.error.stderr.strip() or None,
                )
            )
        return Ok(fork)

    def push_head(self, *, repo: RepoRef, branch: str, force: bool) -> Result[None, ReleaseError]:
        remote = f"https://github.com/{repo.slug}.git"
        cmd = ["git", "push", "-q", remote, f"HEAD:refs/heads/{branch}"]
        if force:
            cmd.append("--force")
        pushed = self._git(cmd, network=True)
        if isinstance(pushed, Err):
            return pushed
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
        head = head_branch if head_repo == self._upstream else f"{head_repo.owner}:{head_branch}"
        cmd = [
            "gh",
            "pr",
            "create",
            "--repo",
            self._upstream.slug,
            "--base",
            base_branch,
            "--head",
            head,
            "--title",
            title,
            "--body",
            body,
        ]
        self._console.print(" ".join(cmd[:3]) + " ...", Style.DIM)
        result = run_process(cmd, cwd=self._project_dir, timeout=GH_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(
                ReleaseError(
                    kind="host_failed",
                    message=f"failed to create pull request into {base_branch}",
                    hint=result.error.stderr.strip() or None,
                )
            )

        url = result.value.strip().splitlines()[-1] if result.value.strip() else ""
        number = _pr_number_from_url(url)
        if not url.startswith("https://") or number is None:
            return Err(
                ReleaseError(kind="host_failed", message="unexpected gh pr create output", hint=url)
            )
        return Ok(PullRequest(id=number, url=url))

    def pull_request_status(self, *, pr_id: int) -> Result[PullRequestStatus, ReleaseError]:
        result = run_gh_read(
            project_dir=self._project_dir,
            cmd=[
                "gh",
                "pr",
                "view",
                str(pr_id),
                "--repo",
                self._upstream.slug,
                "--json",
                "state,mergedAt",
            ],
            kind="host_failed",
            message=f"failed to query pull request #{pr_id}",
        )
        if isinstance(result, Err):
            return result

        parsed = _parse_json(result.value, what="gh pr view")
        if isinstance(parsed, Err):
            return parsed
        data = as_str_dict(parsed.value) or {}

        state = get_str(data, "state")
        merged_at = get_str(data, "mergedAt")
        if state == "MERGED" or merged_at is not None:
            return Ok("merged")
        if state == "OPEN":
            return Ok("open")
        return Ok("closed")

    def create_tag(self, *, tag: str, sha: str) -> Result[None, ReleaseError]:
        cmd = [
            "gh",
            "api",
            f"repos/{self._upstream.slug}/git/refs",
            "-f",
            f"ref=refs/tags/{tag}",
            "-f",
            f"sha={sha}",
        ]
        self._console.print(f"create tag {tag} at {sha[:8]}", Style.DIM)
        result = run_process(cmd, cwd=self._project_dir, timeout=GH_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(
                ReleaseError(
                    kind="host_failed",
                    message=f"failed to create tag {tag}",
                    hint=result.error.stderr.strip() or None,
                )
            )
        return Ok(None)

    def create_release(
        self,
        *,
        tag: str,
        name: str,
        body: str,
        prerelease: bool,
    ) -> Result[None, ReleaseError]:
        cmd = [
            "gh",
            "release",
            "create",
            tag,
            "--repo",
            self._upstream.slug,
            "--verify-tag",
            "--title",
            name,
            "--notes",
            body,
        ]
        if prerelease:
            cmd.append("--prerelease")
        self._console.print(" ".join(cmd[:4]) + " ...", Style.DIM)
        result = run_process(cmd, cwd=self._project_dir, timeout=GH_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(
                ReleaseError(
                    kind="host_failed",
                    message=f"failed to create release {name}",
                    hint=result.error.stderr.strip() or None,
                )
            )
        return Ok(None)
