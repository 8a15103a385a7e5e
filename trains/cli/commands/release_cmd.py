from __future__ import annotations

from pathlib import Path

import typer

from trains.cli.commands.release_common import (
    exit_release,
    exit_release_error,
    load_release_config,
    print_active_trains,
    prompt_lts_branch,
    resolve_project_dir,
)
from trains.cli.selector import SelectorOption, is_interactive_terminal, select_one
from trains.core.config import ReleaseConfig
from trains.core.errors import ErrorCode
from trains.core.result import Err
from trains.output.console import ConsoleProtocol, RichConsole, Style
from trains.services.release.actions import (
    ACTION_CATALOG,
    active_actions,
    compute_version,
    describe_action,
    perform_action,
)
from trains.services.release.context import ReleaseContext
from trains.services.release.gh import GhHost, ensure_gh_auth, ensure_gh_available
from trains.services.release.model import ActionKind, ActionPlan, ActiveReleaseTrains, RepoRef
from trains.services.release.npm import NpmRegistry, ensure_npm_available
from trains.services.release.trains import fetch_active_release_trains


def _build_release_context(
    *,
    project_dir: Path,
    config: ReleaseConfig,
    console: ConsoleProtocol,
) -> ReleaseContext:
    for check in (ensure_gh_available(), ensure_npm_available()):
        if isinstance(check, Err):
            exit_release_error(check.error, console=console)
    auth = ensure_gh_auth(project_dir=project_dir)
    if isinstance(auth, Err):
        exit_release_error(auth.error, console=console)

    upstream = RepoRef(owner=config.github.owner, name=config.github.name)
    return ReleaseContext(
        project_dir=project_dir,
        config=config,
        host=GhHost(project_dir=project_dir, upstream=upstream, console=console),
        registry=NpmRegistry(project_dir=project_dir, console=console),
        console=console,
    )


def _plan_active_actions(
    ctx: ReleaseContext,
    trains: ActiveReleaseTrains,
) -> list[tuple[ActionKind, ActionPlan | None]]:
    planned: list[tuple[ActionKind, ActionPlan | None]] = []
    for kind in active_actions(trains):
        plan = compute_version(kind, trains, registry=ctx.registry, config=ctx.config)
        if isinstance(plan, Err):
            exit_release_error(plan.error, console=ctx.console)
        planned.append((kind, plan.value))
    return planned


def _load_trains(ctx: ReleaseContext) -> ActiveReleaseTrains:
    trains = fetch_active_release_trains(host=ctx.host, config=ctx.config)
    if isinstance(trains, Err):
        exit_release_error(trains.error, console=ctx.console)
    print_active_trains(trains.value, console=ctx.console)
    return trains.value


def actions(
    project: Path | None = typer.Option(None, "--project", help="Project root (default: cwd)"),
    config: Path | None = typer.Option(None, "--config", help="Path to release.toml"),
) -> None:
    """List the release actions available for the current trains."""
    console = RichConsole()
    project_dir = resolve_project_dir(project)
    cfg = load_release_config(project_dir, config=config)
    ctx = _build_release_context(project_dir=project_dir, config=cfg, console=console)

    trains = _load_trains(ctx)
    console.header("Available release actions")
    for kind, plan in _plan_active_actions(ctx, trains):
        console.print(f"{kind:32} {describe_action(kind, plan)}")


def release(
    project: Path | None = typer.Option(None, "--project", help="Project root (default: cwd)"),
    config: Path | None = typer.Option(None, "--config", help="Path to release.toml"),
    action: str | None = typer.Option(
        None,
        "--action",
        help=f"Action to perform ({', '.join(ACTION_CATALOG)})",
    ),
) -> None:
    """Select and perform a release action."""
    console = RichConsole()
    project_dir = resolve_project_dir(project)
    cfg = load_release_config(project_dir, config=config)

    if action is not None and action not in ACTION_CATALOG:
        exit_release(f"unknown --action: {action}", code=ErrorCode.USER_ERROR)
    if action is None and not is_interactive_terminal():
        exit_release("missing --action (no interactive terminal)", code=ErrorCode.USER_ERROR)

    ctx = _build_release_context(project_dir=project_dir, config=cfg, console=console)
    trains = _load_trains(ctx)
    planned = _plan_active_actions(ctx, trains)

    if action is not None:
        matches = [(kind, plan) for kind, plan in planned if kind == action]
        if not matches:
            exit_release(
                f"action is not active for the current trains: {action}",
                code=ErrorCode.USER_ERROR,
            )
        kind, plan = matches[0]
    else:
        picked = select_one(
            console=console,
            title="Select a release action",
            options=[
                SelectorOption(value=(k, p), label=describe_action(k, p), detail=k)
                for k, p in planned
            ],
        )
        if picked.action == "cancel" or picked.value is None:
            console.print("cancelled", Style.DIM)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))
        kind, plan = picked.value

    console.info(describe_action(kind, plan))
    result = perform_action(
        kind,
        plan,
        trains,
        ctx,
        select_lts_branch=lambda branches: prompt_lts_branch(branches, console=console),
    )
    if isinstance(result, Err):
        exit_release_error(result.error, console=console)
    console.success("Release action completed.")
