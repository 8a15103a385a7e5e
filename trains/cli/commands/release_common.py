from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import typer

from trains.cli.selector import SelectorOption, select_one
from trains.core.config import CONFIG_FILE_NAME, ReleaseConfig, load_config
from trains.core.errors import ErrorCode
from trains.core.result import Err
from trains.output.console import ConsoleProtocol, Style
from trains.output.errors import print_release_error, release_error_code
from trains.services.release.errors import ReleaseError
from trains.services.release.model import ActiveReleaseTrains, LtsBranch, LtsBranches

_SHOW_INACTIVE = "show-inactive"


def exit_release(err: str, *, code: ErrorCode) -> NoReturn:
    typer.echo(f"error: {err}", err=True)
    raise typer.Exit(code=int(code))


def exit_release_error(error: ReleaseError, *, console: ConsoleProtocol) -> NoReturn:
    print_release_error(error, console)
    raise typer.Exit(code=int(release_error_code(error)))


def resolve_project_dir(project: Path | None) -> Path:
    try:
        root = (project or Path.cwd()).expanduser().resolve()
    except OSError as e:
        exit_release(f"invalid --project: {e}", code=ErrorCode.USER_ERROR)
    if not root.is_dir():
        exit_release(f"--project '{root}' is not a directory", code=ErrorCode.USER_ERROR)
    return root


def load_release_config(project_dir: Path, *, config: Path | None) -> ReleaseConfig:
    path = config or project_dir / CONFIG_FILE_NAME
    loaded = load_config(path)
    if isinstance(loaded, Err):
        exit_release(f"{loaded.error.message} ({loaded.error.path})", code=ErrorCode.USER_ERROR)
    return loaded.value


def print_active_trains(trains: ActiveReleaseTrains, *, console: ConsoleProtocol) -> None:
    console.header("Active release trains")
    console.print(f"next:    {trains.next.branch_name} (v{trains.next.version})")
    rc = trains.release_candidate
    if rc is not None:
        console.print(f"rc:      {rc.branch_name} (v{rc.version})")
    else:
        console.print("rc:      -", Style.DIM)
    console.print(f"latest:  {trains.latest.branch_name} (v{trains.latest.version})")


def _lts_options(branches: tuple[LtsBranch, ...]) -> list[SelectorOption[LtsBranch | str]]:
    return [
        SelectorOption(value=b, label=f"v{b.version}", detail=f'{b.name} (npm: "{b.npm_dist_tag}")')
        for b in branches
    ]


def prompt_lts_branch(branches: LtsBranches, *, console: ConsoleProtocol) -> LtsBranch | None:
    """Let the operator pick an LTS branch; inactive ones sit behind an extra choice."""
    options = _lts_options(branches.active)
    if branches.inactive:
        options.append(
            SelectorOption(
                value=_SHOW_INACTIVE,
                label="Show inactive LTS branches (not recommended)",
            )
        )

    picked = select_one(console=console, title="Select an LTS branch", options=options)
    if picked.action == "cancel":
        return None
    if isinstance(picked.value, LtsBranch):
        return picked.value

    inactive = select_one(
        console=console,
        title="Select an inactive LTS branch",
        subtitle="These majors are past their LTS end date.",
        options=_lts_options(branches.inactive),
    )
    if isinstance(inactive.value, LtsBranch):
        return inactive.value
    return None
