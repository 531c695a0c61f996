"""
Serializable records of a family builder.

The records hold everything needed to restore a builder without
realigning: configuration, items, the dense distance matrix, and each
family's tree and member alignments.
"""

from __future__ import annotations

from collections.abc import Mapping

from pydantic import BaseModel, Field

from talefam.core.alignment import PairwiseAlignment
from talefam.core.clustering.hclust import Linkage
from talefam.core.clustering.tree import ClusterTree, Internal, Leaf
from talefam.core.exceptions import ItemNotFoundError
from talefam.models.config import FamilyConfig
from talefam.models.items import Item

FORMAT_VERSION = 1


class AlignmentRecord(BaseModel):
    """Pairwise alignment of member ``a`` against member ``b``."""

    a: str
    b: str
    cost: float
    aligned_a: tuple[str, ...]
    aligned_b: tuple[str, ...]

    model_config = {"frozen": True}


class TreeRecord(BaseModel):
    """A cluster tree node; leaves carry ``item_id`` and no children."""

    original_index: int
    distance: float = 0.0
    item_id: str | None = None
    children: tuple[TreeRecord, ...] = ()

    model_config = {"frozen": True}


class FamilyRecord(BaseModel):
    family_id: str
    linkage: Linkage
    leaf_ordering: str = "boundary"
    tree: TreeRecord
    alignments: tuple[AlignmentRecord, ...] = ()

    model_config = {"frozen": True}


class BuilderRecord(BaseModel):
    """Complete persisted state of a family builder."""

    format_version: int = Field(default=FORMAT_VERSION, description="Record format version")
    config: FamilyConfig = Field(default_factory=FamilyConfig)
    aligner: str | None = Field(
        default=None,
        description="repr of the aligner the distances were computed with",
    )
    items: tuple[Item, ...]
    distances: tuple[tuple[float, ...], ...]
    families: tuple[FamilyRecord, ...]

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> BuilderRecord:
        return cls.model_validate_json(json_str)

    model_config = {"frozen": True}


TreeRecord.model_rebuild()


def tree_to_record(tree: ClusterTree[Item]) -> TreeRecord:
    if isinstance(tree, Leaf):
        return TreeRecord(original_index=tree.original_index, item_id=tree.element.id)
    return TreeRecord(
        original_index=tree.original_index,
        distance=tree.distance,
        children=tuple(tree_to_record(sub) for sub in tree.subtrees),
    )


def tree_from_record(record: TreeRecord, items: Mapping[str, Item]) -> ClusterTree[Item]:
    if record.item_id is not None:
        if record.item_id not in items:
            raise ItemNotFoundError([record.item_id])
        return Leaf(items[record.item_id], record.original_index)
    return Internal(
        record.distance,
        record.original_index,
        tuple(tree_from_record(child, items) for child in record.children),
    )


def alignment_to_record(a: str, b: str, alignment: PairwiseAlignment) -> AlignmentRecord:
    return AlignmentRecord(
        a=a,
        b=b,
        cost=alignment.cost,
        aligned_a=alignment.aligned_a,
        aligned_b=alignment.aligned_b,
    )


def alignment_from_record(record: AlignmentRecord) -> PairwiseAlignment:
    return PairwiseAlignment(record.cost, record.aligned_a, record.aligned_b)
