"""
Shared pytest fixtures for talefam tests.

Provides reusable items, aligners, builders and temporary files
for unit and integration testing.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from talefam.core.alignment import AffineAligner, MatchMismatchCosts
from talefam.core.clustering.hclust import Linkage
from talefam.core.distance_matrix import DistanceMatrix
from talefam.core.families.builder import FamilyBuilder
from talefam.core.parsers import write_item_table
from talefam.models.config import FamilyConfig
from talefam.models.items import Item


# =============================================================================
# Item Fixtures
# =============================================================================


@pytest.fixture
def abc_items() -> list[Item]:
    """Two identical items and one differing in its first RVD."""
    return [
        Item.from_string("A", "NI-NG-NN"),
        Item.from_string("B", "NI-NG-NN"),
        Item.from_string("C", "HD-NG-NN"),
    ]


@pytest.fixture
def tale_items() -> list[Item]:
    """Items of varying length forming two loose groups."""
    return [
        Item.from_string("TalA1", "NI-HD-NG-NN-NI-HD", strain="X1"),
        Item.from_string("TalA2", "NI-HD-NG-NN-NI-HD-NG", strain="X2"),
        Item.from_string("TalA3", "NI-HD-NS-NN-NI-HD", strain="X3"),
        Item.from_string("TalB1", "HD-HD-NG-NG-HD-NI", strain="X1"),
        Item.from_string("TalB2", "HD-HD-NG-NG-HD-NI-NG-NN", strain="X2"),
        Item.from_string("TalC1", "NN-NG-NI-NI-NN-NG-HD-HD", strain="X3"),
    ]


# =============================================================================
# Aligner and Config Fixtures
# =============================================================================


@pytest.fixture
def unit_aligner() -> AffineAligner:
    """Aligner with cost 0 for identical and 1 for differing symbols."""
    return AffineAligner(costs=MatchMismatchCosts())


@pytest.fixture
def single_linkage_config() -> FamilyConfig:
    return FamilyConfig(linkage=Linkage.SINGLE, cut=0.5)


# =============================================================================
# Builder Fixtures
# =============================================================================


@pytest.fixture
def abc_builder(
    abc_items: list[Item],
    single_linkage_config: FamilyConfig,
    unit_aligner: AffineAligner,
) -> FamilyBuilder:
    """Builder with families {A, B} and {C}."""
    return FamilyBuilder.build(abc_items, single_linkage_config, unit_aligner)


@pytest.fixture
def tale_builder(tale_items: list[Item]) -> FamilyBuilder:
    """Builder over ``tale_items`` with the default RVD cost model."""
    return FamilyBuilder.build(tale_items, FamilyConfig(cut=3.0))


# =============================================================================
# Matrix Fixtures
# =============================================================================


@pytest.fixture
def line_matrix() -> DistanceMatrix:
    """Distances between points 0, 1, 10 and 11 on a line."""
    positions = np.array([0.0, 1.0, 10.0, 11.0])
    return DistanceMatrix(np.abs(positions[:, None] - positions[None, :]))


@pytest.fixture
def random_matrix() -> DistanceMatrix:
    """Symmetric random distance matrix over 8 points in the plane."""
    rng = np.random.default_rng(42)
    points = rng.random((8, 2))
    diff = points[:, None, :] - points[None, :, :]
    return DistanceMatrix(np.sqrt((diff**2).sum(axis=-1)))


# =============================================================================
# File Fixtures
# =============================================================================


@pytest.fixture
def items_tsv(tmp_path: Path, tale_items: list[Item]) -> Path:
    path = tmp_path / "items.tsv"
    write_item_table(tale_items, path)
    return path
