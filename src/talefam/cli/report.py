"""
Report command for inspecting families.

Provides subcommands:
- family: Text report of one or all families
- related: Significant matches between a family and other families
- config: Write the default configuration as YAML
"""
from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from talefam.cli.utils import QuietConsole, format_log10, load_builder, spinner_progress
from talefam.core.exceptions import TalefamError
from talefam.models.config import FamilyConfig

app = typer.Typer(
    name="report",
    help="Report families, their alignments and related families",
    no_args_is_help=True,
)

console = Console()


@app.command(name="family")
def family_report(
    families: Path = typer.Option(
        ..., "--families", "-f", help="Families JSON", exists=True, dir_okay=False
    ),
    family_id: str | None = typer.Option(
        None, "--family", help="Report only this family (default: all)"
    ),
    significance: bool = typer.Option(
        False, "--significance", "-s", help="Include each family's significance"
    ),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write the report to this file instead of the terminal"
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress progress output"),
) -> None:
    """Write members, induced alignment and tree of families."""
    out = QuietConsole(console, quiet=quiet)
    builder = load_builder(families, console)

    try:
        selected = [builder.family(family_id)] if family_id else list(builder.families)
        with spinner_progress("Computing induced alignments...", console, quiet or output is None):
            pvalues = builder.significance_engine() if significance else None
            text = "\n\n".join(f.to_text(pvalues) for f in selected)
    except TalefamError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None

    if output is None:
        console.print(text, markup=False, highlight=False)
    else:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text + "\n")
        out.print(f"[bold]Report:[/bold] {output}")


@app.command(name="related")
def related(
    families: Path = typer.Option(
        ..., "--families", "-f", help="Families JSON", exists=True, dir_okay=False
    ),
    family_id: str = typer.Option(..., "--family", help="Family to compare against the others"),
    pvalue: float | None = typer.Option(
        None, "--pvalue", "-p", help="Significance threshold (default: from configuration)"
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress progress output"),
) -> None:
    """List members of other families that align significantly to a family."""
    builder = load_builder(families, console)
    try:
        with spinner_progress("Computing p-values...", console, quiet):
            matches = builder.related_families(family_id, pvalue=pvalue)
    except TalefamError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None

    if not matches:
        console.print(f"No significant matches for family {family_id}")
        return

    table = Table(title=f"Matches of family {family_id}")
    table.add_column("Member", style="cyan")
    table.add_column("Other family")
    table.add_column("Other member")
    table.add_column("Cost", justify="right")
    table.add_column("log10 p", justify="right")
    for m in matches:
        table.add_row(
            m.member_id, m.other_family_id, m.other_member_id, f"{m.cost:.3f}", format_log10(m.log10_pvalue)
        )
    console.print(table)


@app.command(name="config")
def write_config(
    output: Path = typer.Option(..., "--output", "-o", help="Output YAML file"),
) -> None:
    """Write the default configuration as YAML."""
    output.parent.mkdir(parents=True, exist_ok=True)
    FamilyConfig().to_yaml(output)
    console.print(f"[bold]Configuration:[/bold] {output}")
