"""
Shared helpers for the talefam command modules.
"""

from __future__ import annotations

import math
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from talefam.core.exceptions import TalefamError
from talefam.core.families.builder import FamilyBuilder


@contextmanager
def spinner_progress(description: str, console: Console | None = None, quiet: bool = False) -> Iterator[Progress]:
    """Show an indeterminate spinner while clustering or scoring runs.

    With ``quiet`` the spinner renders to a silenced console, so callers can
    use the same ``with`` block regardless of verbosity.
    """
    target = Console(quiet=True) if quiet else console
    columns = (SpinnerColumn(), TextColumn("{task.description}"), TimeElapsedColumn())
    with Progress(*columns, console=target, transient=True) as progress:
        progress.add_task(description, total=None)
        yield progress


class QuietConsole:
    """Drops ``print`` calls under ``--quiet``; everything else passes through."""

    def __init__(self, console: Console, quiet: bool = False):
        self._console = console
        self._quiet = quiet

    def print(self, *args: Any, **kwargs: Any) -> None:
        if self._quiet:
            return
        self._console.print(*args, **kwargs)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._console, name)


def load_builder(path: Path, console: Console) -> FamilyBuilder:
    """Load a saved family builder, exiting with a message on failure."""
    try:
        return FamilyBuilder.load_json(path)
    except (OSError, ValueError, TalefamError) as e:
        console.print(f"[red]Error loading families from {path}: {e}[/red]")
        raise typer.Exit(code=1) from None


def format_log10(value: float) -> str:
    """Format a log10 p-value, keeping the infinite boundary cases readable."""
    if value == -math.inf:
        return "-inf"
    return f"{value:.3f}"
