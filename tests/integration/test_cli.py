"""
Integration tests for talefam CLI.

Tests the command-line interface using Typer's CliRunner for:
- Main entry point and version display
- families build/classify/add/remove/split/cluster
- report family/related/config
- Error handling for invalid inputs
"""

from __future__ import annotations

from io import StringIO
from pathlib import Path

import polars as pl
import pytest
from Bio import Phylo
from typer.testing import CliRunner

from talefam import __version__
from talefam.cli.main import app
from talefam.core.families.builder import FamilyBuilder
from talefam.core.parsers import write_item_table
from talefam.models.config import FamilyConfig
from talefam.models.items import Item

runner = CliRunner()


# =============================================================================
# CLI Test Fixtures
# =============================================================================


@pytest.fixture
def families_json(tmp_path: Path, tale_builder: FamilyBuilder) -> Path:
    path = tmp_path / "families.json"
    tale_builder.save_json(path)
    return path


@pytest.fixture
def one_family_json(tmp_path: Path, tale_items: list[Item]) -> Path:
    path = tmp_path / "one_family.json"
    FamilyBuilder.build(tale_items, FamilyConfig(cut=1000.0)).save_json(path)
    return path


@pytest.fixture
def queries_tsv(tmp_path: Path) -> Path:
    path = tmp_path / "queries.tsv"
    write_item_table(
        [
            Item.from_string("q1", "NI-HD-NG-NN-NI-HD"),
            Item.from_string("q2", "HD-HD-NG-NG-HD-NI"),
        ],
        path,
    )
    return path


# =============================================================================
# Main Entry Point
# =============================================================================


class TestMainApp:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "families" in result.stdout
        assert "report" in result.stdout

    @pytest.mark.parametrize(
        ("group", "commands"),
        [
            ("families", ["build", "classify", "add", "remove", "split", "cluster"]),
            ("report", ["family", "related", "config"]),
        ],
    )
    def test_command_groups(self, group: str, commands: list[str]):
        result = runner.invoke(app, [group, "--help"])
        assert result.exit_code == 0
        for command in commands:
            assert command in result.stdout


# =============================================================================
# families commands
# =============================================================================


class TestFamiliesBuild:
    """Tests for 'talefam families build'."""

    def test_build(self, tmp_path: Path, items_tsv: Path):
        output = tmp_path / "out" / "families.json"
        result = runner.invoke(
            app,
            ["families", "build", "--input", str(items_tsv), "--output", str(output), "--cut", "3.0"],
        )
        assert result.exit_code == 0, result.stdout
        assert output.exists()
        builder = FamilyBuilder.load_json(output)
        assert len(builder.items) == 6
        assert builder.config.cut == 3.0

    def test_build_with_config_and_linkage(self, tmp_path: Path, items_tsv: Path):
        config_path = tmp_path / "config.yaml"
        FamilyConfig(cut=1000.0).to_yaml(config_path)
        output = tmp_path / "families.json"
        result = runner.invoke(
            app,
            [
                "families", "build",
                "-i", str(items_tsv),
                "-o", str(output),
                "--config", str(config_path),
                "--linkage", "single",
                "--quiet",
            ],
        )
        assert result.exit_code == 0, result.stdout
        builder = FamilyBuilder.load_json(output)
        assert len(builder) == 1
        assert builder.config.linkage.value == "single"

    def test_negative_cut(self, tmp_path: Path, items_tsv: Path):
        result = runner.invoke(
            app,
            ["families", "build", "-i", str(items_tsv), "-o", str(tmp_path / "f.json"), "--cut", "-1"],
        )
        assert result.exit_code == 1

    def test_missing_input(self, tmp_path: Path):
        result = runner.invoke(
            app,
            ["families", "build", "-i", str(tmp_path / "nope.tsv"), "-o", str(tmp_path / "f.json")],
        )
        assert result.exit_code != 0

    def test_bad_table(self, tmp_path: Path):
        path = tmp_path / "bad.tsv"
        path.write_text("name\tsequence\nx\tNI\n")
        result = runner.invoke(
            app, ["families", "build", "-i", str(path), "-o", str(tmp_path / "f.json")]
        )
        assert result.exit_code == 1


class TestFamiliesClassify:
    """Tests for 'talefam families classify'."""

    def test_classify_by_distance(self, tmp_path: Path, families_json: Path, queries_tsv: Path):
        output = tmp_path / "assignments.tsv"
        result = runner.invoke(
            app,
            [
                "families", "classify",
                "-f", str(families_json),
                "-i", str(queries_tsv),
                "-o", str(output),
            ],
        )
        assert result.exit_code == 0, result.stdout
        df = pl.read_csv(output, separator="\t")
        assert df.columns == ["id", "family", "distance"]
        assert df["id"].to_list() == ["q1", "q2"]

    def test_classify_by_significance(self, families_json: Path, queries_tsv: Path):
        result = runner.invoke(
            app,
            ["families", "classify", "-f", str(families_json), "-i", str(queries_tsv), "--significance"],
        )
        assert result.exit_code == 0, result.stdout
        assert "log10_pvalue" in result.stdout

    def test_corrupt_families_file(self, tmp_path: Path, queries_tsv: Path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        result = runner.invoke(
            app, ["families", "classify", "-f", str(path), "-i", str(queries_tsv)]
        )
        assert result.exit_code == 1
        assert "Error loading families" in result.stdout


class TestFamiliesMaintenance:
    """Tests for add, remove, split and cluster."""

    def test_add_to_family(self, tmp_path: Path, families_json: Path, queries_tsv: Path):
        output = tmp_path / "grown.json"
        family_id = FamilyBuilder.load_json(families_json).family_ids[0]
        result = runner.invoke(
            app,
            [
                "families", "add",
                "-f", str(families_json),
                "-i", str(queries_tsv),
                "--family", family_id,
                "-o", str(output),
            ],
        )
        assert result.exit_code == 0, result.stdout
        builder = FamilyBuilder.load_json(output)
        assert {"q1", "q2"} <= set(builder.family(family_id).member_ids)

    def test_add_as_new_families(self, tmp_path: Path, families_json: Path, queries_tsv: Path):
        output = tmp_path / "grown.json"
        before = len(FamilyBuilder.load_json(families_json))
        result = runner.invoke(
            app,
            ["families", "add", "-f", str(families_json), "-i", str(queries_tsv), "-o", str(output)],
        )
        assert result.exit_code == 0, result.stdout
        assert len(FamilyBuilder.load_json(output)) > before

    def test_add_duplicate_ids(self, tmp_path: Path, families_json: Path, items_tsv: Path):
        result = runner.invoke(
            app,
            ["families", "add", "-f", str(families_json), "-i", str(items_tsv), "-o", str(tmp_path / "x.json")],
        )
        assert result.exit_code == 1

    def test_remove(self, tmp_path: Path, families_json: Path):
        output = tmp_path / "pruned.json"
        result = runner.invoke(
            app,
            [
                "families", "remove",
                "-f", str(families_json),
                "--item", "TalA1",
                "--item", "TalB2",
                "-o", str(output),
            ],
        )
        assert result.exit_code == 0, result.stdout
        ids = {item.id for item in FamilyBuilder.load_json(output).items}
        assert "TalA1" not in ids
        assert "TalB2" not in ids
        assert len(ids) == 4

    def test_remove_unknown(self, tmp_path: Path, families_json: Path):
        result = runner.invoke(
            app,
            ["families", "remove", "-f", str(families_json), "--item", "ghost", "-o", str(tmp_path / "x.json")],
        )
        assert result.exit_code == 1

    def test_split(self, tmp_path: Path, one_family_json: Path):
        output = tmp_path / "split.json"
        result = runner.invoke(
            app,
            ["families", "split", "-f", str(one_family_json), "--family", "1", "-o", str(output)],
        )
        assert result.exit_code == 0, result.stdout
        assert len(FamilyBuilder.load_json(output)) == 2

    def test_split_unknown_family(self, tmp_path: Path, one_family_json: Path):
        result = runner.invoke(
            app,
            ["families", "split", "-f", str(one_family_json), "--family", "42", "-o", str(tmp_path / "x.json")],
        )
        assert result.exit_code == 1
        assert "Unknown family" in result.stdout

    def test_cluster(self, tmp_path: Path, families_json: Path):
        output = tmp_path / "families.nwk"
        result = runner.invoke(
            app, ["families", "cluster", "-f", str(families_json), "-o", str(output)]
        )
        assert result.exit_code == 0, result.stdout
        newick = output.read_text().strip()
        assert newick.endswith(";")
        tree = Phylo.read(StringIO(newick), "newick")
        names = {clade.name for clade in tree.get_terminals()}
        assert names == set(FamilyBuilder.load_json(families_json).family_ids)


# =============================================================================
# report commands
# =============================================================================


class TestReport:
    """Tests for 'talefam report'."""

    def test_family_report_to_file(self, tmp_path: Path, families_json: Path):
        output = tmp_path / "report.txt"
        result = runner.invoke(
            app,
            ["report", "family", "-f", str(families_json), "--significance", "-o", str(output)],
        )
        assert result.exit_code == 0, result.stdout
        text = output.read_text()
        assert "Induced alignment:" in text
        assert "Significance (log10 p)" in text

    def test_single_family_to_terminal(self, one_family_json: Path):
        result = runner.invoke(app, ["report", "family", "-f", str(one_family_json), "--family", "1"])
        assert result.exit_code == 0, result.stdout
        assert "Family 1" in result.stdout
        assert "TalC1" in result.stdout

    def test_related(self, families_json: Path):
        family_id = FamilyBuilder.load_json(families_json).family_ids[0]
        result = runner.invoke(
            app, ["report", "related", "-f", str(families_json), "--family", family_id, "-p", "1.0"]
        )
        assert result.exit_code == 0, result.stdout

    def test_related_invalid_pvalue(self, families_json: Path):
        result = runner.invoke(
            app, ["report", "related", "-f", str(families_json), "--family", "1", "-p", "0"]
        )
        assert result.exit_code == 1

    def test_write_config(self, tmp_path: Path):
        output = tmp_path / "talefam.yaml"
        result = runner.invoke(app, ["report", "config", "-o", str(output)])
        assert result.exit_code == 0
        assert FamilyConfig.from_yaml(output) == FamilyConfig()
