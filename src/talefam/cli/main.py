"""
Main CLI entry point for talefam.

Provides subcommands:
- families: Build, classify into, and maintain families
- report: Inspect families, related families and configuration
"""

from __future__ import annotations

import logging

import typer
from rich import print as rprint

from talefam import __version__

app = typer.Typer(
    name="talefam",
    help="Hierarchical families of RVD-encoded effector sequences",
    add_completion=False,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        rprint(f"talefam version {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Log library messages to the terminal",
    ),
) -> None:
    """
    Talefam: families of TAL effectors from their RVD sequences.

    Items are aligned pairwise with an affine-gap aligner, clustered
    hierarchically, and cut into families that can be grown, pruned,
    split and scored for significance.
    """
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(name)-8s - %(levelname)-8s - %(message)s",
            datefmt="%d-%b-%y %H:%M:%S",
        )


from talefam.cli import families, report  # noqa: E402

app.add_typer(families.app, name="families")
app.add_typer(report.app, name="report")


if __name__ == "__main__":
    app()
