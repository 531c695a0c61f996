"""Unit tests for configuration models."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from talefam.core.alignment import AffineAligner, AlignmentType, RVDCosts
from talefam.core.clustering import Linkage
from talefam.models.config import AlignmentConfig, CostConfig, FamilyConfig


class TestFamilyConfigDefaults:
    def test_defaults(self):
        config = FamilyConfig()
        assert config.linkage == Linkage.AVERAGE
        assert config.cut == 5.0
        assert config.pvalue == 0.01
        assert config.leaf_ordering == "boundary"
        assert config.family_ids == "sequential"

    def test_frozen(self):
        config = FamilyConfig()
        with pytest.raises(ValidationError):
            config.cut = 1.0


class TestFamilyConfigValidation:
    """Tests for rejected values."""

    def test_negative_cut(self):
        with pytest.raises(ValidationError):
            FamilyConfig(cut=-1.0)

    @pytest.mark.parametrize("pvalue", [0.0, 1.5, -0.1])
    def test_pvalue_range(self, pvalue):
        with pytest.raises(ValidationError):
            FamilyConfig(pvalue=pvalue)

    def test_unknown_linkage(self):
        with pytest.raises(ValidationError):
            FamilyConfig(linkage="ward")

    def test_unknown_leaf_ordering(self):
        with pytest.raises(ValidationError):
            FamilyConfig(leaf_ordering="alphabetical")

    def test_empty_reserved_id(self):
        with pytest.raises(ValidationError):
            FamilyConfig(reserved_ids=("TalAA", ""))

    def test_negative_cost(self):
        with pytest.raises(ValidationError):
            CostConfig(gap=-1.0)


class TestNewFamilyIds:
    def test_sequential_skips_used_and_reserved(self):
        ids = FamilyConfig(reserved_ids=("2",)).new_family_ids(["1", "3"])
        assert [next(ids) for _ in range(2)] == ["4", "5"]

    def test_schema(self):
        ids = FamilyConfig(family_ids="schema").new_family_ids(["TalAA"])
        assert next(ids) == "TalAB"


class TestAlignmentConfig:
    def test_make_aligner(self):
        config = AlignmentConfig(
            alignment_type="global",
            gap_open=3.0,
            costs=CostConfig(position12=0.5),
        )
        aligner = config.make_aligner()
        assert isinstance(aligner, AffineAligner)
        assert aligner.alignment_type == AlignmentType.GLOBAL
        assert aligner.gap_open == 3.0
        assert isinstance(aligner.costs, RVDCosts)
        assert aligner.costs.position12 == 0.5


class TestYamlConfig:
    """Tests for YAML loading and saving."""

    def test_round_trip(self, tmp_path: Path):
        config = FamilyConfig(
            linkage=Linkage.COMPLETE,
            cut=2.5,
            pvalue=0.05,
            leaf_ordering="optimal",
            family_ids="schema",
            reserved_ids=("TalAA",),
            symmetry_tolerance=None,
            alignment=AlignmentConfig(gap_open=4.0, costs=CostConfig(gap=0.5)),
        )
        path = tmp_path / "config.yaml"
        config.to_yaml(path)
        assert FamilyConfig.from_yaml(path) == config

    def test_nested_sections(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "clustering:\n"
            "  linkage: single\n"
            "  cut: 1.5\n"
            "significance:\n"
            "  pvalue: 0.001\n"
            "families:\n"
            "  id_scheme: schema\n"
            "alignment:\n"
            "  type: global\n"
            "  costs:\n"
            "    position13: 0.6\n"
        )
        config = FamilyConfig.from_yaml(path)
        assert config.linkage == Linkage.SINGLE
        assert config.cut == 1.5
        assert config.pvalue == 0.001
        assert config.family_ids == "schema"
        assert config.alignment.alignment_type == AlignmentType.GLOBAL
        assert config.alignment.costs.position13 == 0.6
        assert config.alignment.costs.position12 == 0.2

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert FamilyConfig.from_yaml(path) == FamilyConfig()

    def test_invalid_value(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("clustering:\n  cut: -3\n")
        with pytest.raises(ValueError):
            FamilyConfig.from_yaml(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="mapping"):
            FamilyConfig.from_yaml(path)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            FamilyConfig.from_yaml(tmp_path / "missing.yaml")

    def test_yaml_string_has_sections(self):
        text = FamilyConfig().to_yaml_str()
        for section in ("clustering:", "significance:", "families:", "matrix:", "alignment:"):
            assert section in text
