from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

import typer

from trains.output.console import ConsoleProtocol, Style

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class SelectorOption(Generic[T]):
    value: T
    label: str
    detail: str | None = None


@dataclass(frozen=True, slots=True)
class SelectorResult(Generic[T]):
    action: Literal["select", "cancel"]
    value: T | None
    index: int


def is_interactive_terminal() -> bool:
    return bool(sys.stdin.isatty() and sys.stdout.isatty())


def _render(
    *,
    console: ConsoleProtocol,
    title: str,
    subtitle: str | None,
    options: list[SelectorOption[object]],
) -> None:
    console.header(title)
    if subtitle is not None:
        console.print(subtitle, Style.DIM)
    for i, opt in enumerate(options, start=1):
        console.print(f"{i:2}. {opt.label}")
        if opt.detail:
            console.print(f"    {opt.detail}", Style.DIM)
    console.print(" 0. cancel", Style.DIM)


def select_one(
    *,
    console: ConsoleProtocol,
    title: str,
    options: list[SelectorOption[T]],
    subtitle: str | None = None,
    initial_index: int = 0,
) -> SelectorResult[T]:
    """Numbered prompt; ``0`` cancels."""
    if not options:
        raise ValueError("selector requires at least one option")

    idx = max(0, min(initial_index, len(options) - 1))
    casted: list[SelectorOption[object]] = [
        SelectorOption(value=o.value, label=o.label, detail=o.detail) for o in options
    ]
    _render(console=console, title=title, subtitle=subtitle, options=casted)

    while True:
        raw = typer.prompt("Pick a number", default=str(idx + 1))
        try:
            picked = int(raw)
        except ValueError:
            console.error("invalid number")
            continue
        if picked == 0:
            return SelectorResult(action="cancel", value=None, index=idx)
        if picked < 1 or picked > len(options):
            console.error("out of range")
            continue
        return SelectorResult(action="select", value=options[picked - 1].value, index=picked - 1)

