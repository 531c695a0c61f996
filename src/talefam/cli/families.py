"""
Families command for building and maintaining families.

Provides subcommands:
- build: Build families from an item table
- classify: Find the closest or most significant family for new items
- add: Add new items to a family or to new families
- remove: Remove items from their families
- split: Split a family below its merge distance
- cluster: Cluster the families themselves and write a Newick tree
"""
from __future__ import annotations

from pathlib import Path

import polars as pl
import typer
from rich.console import Console
from rich.table import Table

from talefam.cli.utils import QuietConsole, format_log10, load_builder, spinner_progress
from talefam.core.clustering.hclust import Linkage
from talefam.core.exceptions import TalefamError
from talefam.core.families.builder import FamilyBuilder
from talefam.core.families.family import FamilyDistance
from talefam.core.parsers import ItemTableParser
from talefam.models.config import FamilyConfig

app = typer.Typer(
    name="families",
    help="Build, query and maintain families of RVD sequences",
    no_args_is_help=True,
)

console = Console()


def _read_items(path: Path, out: QuietConsole) -> list:
    try:
        items = ItemTableParser(path).items()
    except (OSError, ValueError, TalefamError) as e:
        console.print(f"[red]Error reading items from {path}: {e}[/red]")
        raise typer.Exit(code=1) from None
    out.print(f"[bold]Items:[/bold] {len(items)} from {path}")
    return items


def _save(builder: FamilyBuilder, output: Path, out: QuietConsole) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    builder.save_json(output)
    out.print(f"[bold]Output:[/bold] {output}")


def _family_table(builder: FamilyBuilder, title: str) -> Table:
    table = Table(title=title)
    table.add_column("Family", style="cyan")
    table.add_column("Members", justify="right")
    table.add_column("Distance", justify="right")
    table.add_column("Items")
    for family in builder.families:
        ids = ", ".join(family.member_ids[:6])
        if family.size > 6:
            ids += ", ..."
        table.add_row(family.family_id, str(family.size), f"{family.distance:.3f}", ids)
    return table


@app.command(name="build")
def build(
    input_file: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="Item table (TSV/CSV with id, rvds and optional strain columns)",
        exists=True,
        dir_okay=False,
    ),
    output: Path = typer.Option(
        ...,
        "--output",
        "-o",
        help="Output JSON file with the families",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML configuration file",
        exists=True,
        dir_okay=False,
    ),
    cut: float | None = typer.Option(
        None,
        "--cut",
        help="Dendrogram cut threshold (overrides the configuration)",
    ),
    linkage: Linkage | None = typer.Option(
        None,
        "--linkage",
        "-l",
        help="Clustering linkage: single, complete or average",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress progress output",
    ),
) -> None:
    """
    Build families from an item table.

    Examples:

        # Default configuration
        talefam families build --input tales.tsv --output families.json

        # Single linkage with a tighter cut
        talefam families build -i tales.tsv -o families.json --linkage single --cut 2.5
    """
    out = QuietConsole(console, quiet=quiet)
    out.print("\n[bold blue]Talefam Family Builder[/bold blue]\n")

    try:
        config = FamilyConfig.from_yaml(config_file) if config_file else FamilyConfig()
        if linkage is not None:
            config = config.model_copy(update={"linkage": linkage})
    except (OSError, ValueError) as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        raise typer.Exit(code=1) from None

    items = _read_items(input_file, out)

    try:
        with spinner_progress(f"Clustering {len(items)} items...", console, quiet):
            builder = FamilyBuilder.build(items, config, cut=cut)
    except TalefamError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None

    out.print(f"[bold]Families:[/bold] {len(builder)}")
    if not quiet:
        console.print(_family_table(builder, "Families"))
    _save(builder, output, out)


@app.command(name="classify")
def classify(
    families: Path = typer.Option(
        ...,
        "--families",
        "-f",
        help="Families JSON written by 'talefam families build'",
        exists=True,
        dir_okay=False,
    ),
    input_file: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="Item table with the items to classify",
        exists=True,
        dir_okay=False,
    ),
    significance: bool = typer.Option(
        False,
        "--significance",
        "-s",
        help="Rank families by p-value instead of alignment distance",
    ),
    style: FamilyDistance | None = typer.Option(
        None,
        "--style",
        help="Reduction over family members: min, max or mean (default: from linkage)",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the assignments as TSV",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress progress output",
    ),
) -> None:
    """Assign each item to its closest (or most significant) family."""
    out = QuietConsole(console, quiet=quiet)
    builder = load_builder(families, console)
    items = _read_items(input_file, out)

    rows = []
    try:
        with spinner_progress(f"Classifying {len(items)} items...", console, quiet):
            pvalues = builder.significance_engine() if significance else None
            for item in items:
                if significance:
                    family, value = builder.get_most_significant_family(item, pvalues, style)
                    rows.append((item.id, family.family_id, format_log10(value)))
                else:
                    family, value = builder.get_closest_family(item, style)
                    rows.append((item.id, family.family_id, f"{value:.4f}"))
    except TalefamError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None

    score_name = "log10_pvalue" if significance else "distance"
    table = Table(title="Family assignments")
    table.add_column("Item", style="cyan")
    table.add_column("Family")
    table.add_column(score_name, justify="right")
    for row in rows:
        table.add_row(*row)
    console.print(table)

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        pl.DataFrame(
            {
                "id": [r[0] for r in rows],
                "family": [r[1] for r in rows],
                score_name: [r[2] for r in rows],
            }
        ).write_csv(output, separator="\t")
        out.print(f"[bold]Output:[/bold] {output}")


@app.command(name="add")
def add(
    families: Path = typer.Option(
        ..., "--families", "-f", help="Families JSON", exists=True, dir_okay=False
    ),
    input_file: Path = typer.Option(
        ..., "--input", "-i", help="Item table with the new items", exists=True, dir_okay=False
    ),
    family_id: str | None = typer.Option(
        None,
        "--family",
        help="Add all items to this family (default: cluster them into new families)",
    ),
    output: Path = typer.Option(..., "--output", "-o", help="Output families JSON"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress progress output"),
) -> None:
    """Add items to an existing family or cluster them into new families."""
    out = QuietConsole(console, quiet=quiet)
    builder = load_builder(families, console)
    items = _read_items(input_file, out)

    try:
        with spinner_progress(f"Adding {len(items)} items...", console, quiet):
            if family_id is None:
                created = builder.add_items_to_families([], items)
            else:
                created = builder.add_items_to_families([(family_id, items)])
    except TalefamError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None

    if created:
        out.print(f"[bold]New families:[/bold] {', '.join(f.family_id for f in created)}")
    _save(builder, output, out)


@app.command(name="remove")
def remove(
    families: Path = typer.Option(
        ..., "--families", "-f", help="Families JSON", exists=True, dir_okay=False
    ),
    item_ids: list[str] = typer.Option(..., "--item", help="Id of an item to remove (repeatable)"),
    output: Path = typer.Option(..., "--output", "-o", help="Output families JSON"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress progress output"),
) -> None:
    """Remove items from their families; emptied families are dropped."""
    out = QuietConsole(console, quiet=quiet)
    builder = load_builder(families, console)
    try:
        builder.remove_items_from_families(item_ids)
    except TalefamError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None
    out.print(f"[bold]Removed:[/bold] {len(set(item_ids))} items, {len(builder)} families remain")
    _save(builder, output, out)


@app.command(name="split")
def split(
    families: Path = typer.Option(
        ..., "--families", "-f", help="Families JSON", exists=True, dir_okay=False
    ),
    family_id: str = typer.Option(..., "--family", help="Id of the family to split"),
    output: Path = typer.Option(..., "--output", "-o", help="Output families JSON"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress progress output"),
) -> None:
    """Split a family just below its merge distance."""
    out = QuietConsole(console, quiet=quiet)
    builder = load_builder(families, console)
    try:
        parts = builder.split_family(family_id)
    except TalefamError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None
    out.print(
        f"[bold]Split {family_id} into:[/bold] "
        + ", ".join(f"{p.family_id} ({p.size})" for p in parts)
    )
    _save(builder, output, out)


@app.command(name="cluster")
def cluster(
    families: Path = typer.Option(
        ..., "--families", "-f", help="Families JSON", exists=True, dir_okay=False
    ),
    output: Path = typer.Option(..., "--output", "-o", help="Output Newick tree of families"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress progress output"),
) -> None:
    """Cluster the families and write the family tree in Newick format."""
    out = QuietConsole(console, quiet=quiet)
    builder = load_builder(families, console)
    try:
        tree = builder.cluster_families()
    except TalefamError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(tree.to_newick(lambda family: family.family_id) + "\n")
    out.print(f"[bold]Family tree:[/bold] {output}")
