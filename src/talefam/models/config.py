"""
Pydantic configuration models for talefam.

These models define the alignment costs, clustering linkage, cut threshold
and significance threshold used to build and maintain families.
Configuration can be loaded from YAML files or set from CLI arguments.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterator
from pathlib import Path
from typing import Any, Literal, Self

from pydantic import BaseModel, Field, model_validator

from talefam.core.alignment import AffineAligner, AlignmentType, RVDCosts
from talefam.core.clustering.hclust import Linkage
from talefam.core.constants import (
    DEFAULT_CUT,
    DEFAULT_EXTRA_GAP_EXTENSION,
    DEFAULT_EXTRA_GAP_OPENING,
    DEFAULT_GAP_COST,
    DEFAULT_GAP_OPEN,
    DEFAULT_MATCH_COST,
    DEFAULT_POSITION12_COST,
    DEFAULT_POSITION13_COST,
    DEFAULT_PVALUE,
    SPLIT_EPSILON,
    SYMMETRY_TOLERANCE,
)
from talefam.core.families.ids import schema_family_ids, sequential_family_ids

logger = logging.getLogger(__name__)


class CostConfig(BaseModel):
    """RVD substitution costs and the gap extension cost."""

    gap: float = Field(default=DEFAULT_GAP_COST, ge=0, description="Cost per gap position")
    position12: float = Field(
        default=DEFAULT_POSITION12_COST,
        ge=0,
        description="Cost of differing residues at repeat position 12",
    )
    position13: float = Field(
        default=DEFAULT_POSITION13_COST,
        ge=0,
        description="Cost of differing residues at repeat position 13",
    )
    match: float = Field(default=DEFAULT_MATCH_COST, ge=0, description="Cost of identical RVDs")

    def make_costs(self) -> RVDCosts:
        return RVDCosts(
            gap=self.gap, position12=self.position12, position13=self.position13, match=self.match
        )

    model_config = {"frozen": True}


class AlignmentConfig(BaseModel):
    """Settings of the affine-gap aligner."""

    alignment_type: AlignmentType = Field(
        default=AlignmentType.SEMI_GLOBAL,
        description="'global' or 'semi_global' (terminal gaps use the extra gap costs)",
    )
    gap_open: float = Field(default=DEFAULT_GAP_OPEN, ge=0, description="Gap opening cost")
    extra_gap_opening: float = Field(
        default=DEFAULT_EXTRA_GAP_OPENING,
        ge=0,
        description="Opening cost of terminal gaps in semi-global alignments",
    )
    extra_gap_extension: float = Field(
        default=DEFAULT_EXTRA_GAP_EXTENSION,
        ge=0,
        description="Per-position cost of terminal gaps in semi-global alignments",
    )
    costs: CostConfig = Field(default_factory=CostConfig)

    def make_aligner(self) -> AffineAligner:
        return AffineAligner(
            costs=self.costs.make_costs(),
            gap_open=self.gap_open,
            alignment_type=self.alignment_type,
            extra_gap_opening=self.extra_gap_opening,
            extra_gap_extension=self.extra_gap_extension,
        )

    model_config = {"frozen": True}


class FamilyConfig(BaseModel):
    """
    Configuration for building and maintaining families.

    Families are the subtrees obtained by cutting the item dendrogram at
    ``cut``. The default cost model charges 5.0 for opening a gap, so the
    default cut of 5.0 groups items whose alignments need at most about one
    interior gap or a handful of RVD substitutions.
    """

    linkage: Linkage = Field(default=Linkage.AVERAGE, description="Clustering linkage")
    cut: float = Field(default=DEFAULT_CUT, ge=0, description="Dendrogram cut threshold")
    pvalue: float = Field(
        default=DEFAULT_PVALUE,
        gt=0,
        le=1,
        description="Significance threshold for related-family reports",
    )
    leaf_ordering: Literal["boundary", "optimal"] = Field(
        default="boundary",
        description="Leaf ordering applied to every family tree",
    )
    symmetry_tolerance: float | None = Field(
        default=SYMMETRY_TOLERANCE,
        ge=0,
        description="Maximum |d(i,j) - d(j,i)|; None disables the symmetry check",
    )
    split_epsilon: float = Field(
        default=SPLIT_EPSILON,
        gt=0,
        description="Offset below a family's merge height used when splitting it",
    )
    family_ids: Literal["sequential", "schema"] = Field(
        default="sequential",
        description="Id scheme for new families: '1', '2', ... or 'TalAA'..'TalZZ'",
    )
    reserved_ids: tuple[str, ...] = Field(
        default=(),
        description="Family ids never handed out to new families",
    )
    alignment: AlignmentConfig = Field(default_factory=AlignmentConfig)

    @model_validator(mode="after")
    def validate_reserved_ids(self) -> Self:
        """Reserved ids must be non-empty strings."""
        if any(not rid for rid in self.reserved_ids):
            msg = "Reserved family ids must be non-empty"
            raise ValueError(msg)
        return self

    def new_family_ids(self, used: Collection[str]) -> Iterator[str]:
        """Fresh family ids, skipping ``used`` and the reserved ids."""
        taken = set(used) | set(self.reserved_ids)
        if self.family_ids == "schema":
            return schema_family_ids(taken)
        return sequential_family_ids(taken)

    @classmethod
    def from_yaml(cls, path: Path) -> FamilyConfig:
        """
        Load configuration from a YAML file.

        The YAML file uses nested sections (``clustering``, ``significance``,
        ``families``, ``matrix``, ``alignment``) that are flattened to match
        model fields. Unknown keys are ignored.

        Raises:
            FileNotFoundError: If the YAML file does not exist.
            ValueError: If YAML contains invalid values.
        """
        import yaml

        raw = yaml.safe_load(path.read_text())
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            msg = f"YAML config must be a mapping, got {type(raw).__name__}"
            raise ValueError(msg)
        return cls(**_flatten_yaml_config(raw))

    def to_yaml(self, path: Path) -> None:
        path.write_text(self.to_yaml_str())

    def to_yaml_str(self) -> str:
        """Serialize the configuration to a nested YAML string."""
        import yaml

        data = _build_yaml_structure(self)
        return yaml.dump(data, default_flow_style=False, sort_keys=False)

    model_config = {"frozen": True}


def _map_if_present(src: dict[str, Any], src_key: str, dst: dict[str, Any], dst_key: str) -> None:
    if src_key in src:
        dst[dst_key] = src[src_key]


def _flatten_yaml_config(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Flatten nested YAML config structure into FamilyConfig keyword arguments.

    Maps:
        clustering.linkage -> linkage
        clustering.cut -> cut
        significance.pvalue -> pvalue
        alignment.costs.gap -> alignment.costs.gap
    """
    flat: dict[str, Any] = {}

    clustering = raw.get("clustering", {}) or {}
    _map_if_present(clustering, "linkage", flat, "linkage")
    _map_if_present(clustering, "cut", flat, "cut")
    _map_if_present(clustering, "leaf_ordering", flat, "leaf_ordering")
    _map_if_present(clustering, "split_epsilon", flat, "split_epsilon")

    significance = raw.get("significance", {}) or {}
    _map_if_present(significance, "pvalue", flat, "pvalue")

    families = raw.get("families", {}) or {}
    _map_if_present(families, "id_scheme", flat, "family_ids")
    if "reserved_ids" in families:
        flat["reserved_ids"] = tuple(families["reserved_ids"] or ())

    matrix = raw.get("matrix", {}) or {}
    _map_if_present(matrix, "symmetry_tolerance", flat, "symmetry_tolerance")

    alignment_raw = raw.get("alignment", {}) or {}
    if alignment_raw:
        align_kwargs: dict[str, Any] = {}
        _map_if_present(alignment_raw, "type", align_kwargs, "alignment_type")
        _map_if_present(alignment_raw, "gap_open", align_kwargs, "gap_open")
        _map_if_present(alignment_raw, "extra_gap_opening", align_kwargs, "extra_gap_opening")
        _map_if_present(alignment_raw, "extra_gap_extension", align_kwargs, "extra_gap_extension")
        costs_raw = alignment_raw.get("costs", {}) or {}
        if costs_raw:
            align_kwargs["costs"] = CostConfig(**costs_raw)
        flat["alignment"] = AlignmentConfig(**align_kwargs)

    return flat


def _build_yaml_structure(config: FamilyConfig) -> dict[str, Any]:
    """Build the nested YAML structure from a FamilyConfig."""
    alignment = config.alignment
    return {
        "clustering": {
            "linkage": config.linkage.value,
            "cut": config.cut,
            "leaf_ordering": config.leaf_ordering,
            "split_epsilon": config.split_epsilon,
        },
        "significance": {
            "pvalue": config.pvalue,
        },
        "families": {
            "id_scheme": config.family_ids,
            "reserved_ids": list(config.reserved_ids),
        },
        "matrix": {
            "symmetry_tolerance": config.symmetry_tolerance,
        },
        "alignment": {
            "type": alignment.alignment_type.value,
            "gap_open": alignment.gap_open,
            "extra_gap_opening": alignment.extra_gap_opening,
            "extra_gap_extension": alignment.extra_gap_extension,
            "costs": {
                "gap": alignment.costs.gap,
                "position12": alignment.costs.position12,
                "position13": alignment.costs.position13,
                "match": alignment.costs.match,
            },
        },
    }
