"""
Families of related items.

A family is a cut-off subtree of the item dendrogram together with the
pairwise alignments of all its members. Families are immutable: adding or
removing members returns a new family.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from enum import Enum

import numpy as np

from talefam.core.alignment import Aligner, PairwiseAlignment, format_row
from talefam.core.clustering.hclust import Hclust, Linkage
from talefam.core.clustering.ordering import LeafOrderMethod, leaf_order
from talefam.core.clustering.tree import ClusterTree, Leaf
from talefam.core.distance_matrix import DistanceMatrix
from talefam.core.exceptions import AlignmentLookupError
from talefam.core.families.induced_alignment import alignment_text, induced_multiple_alignment
from talefam.core.significance import AlignmentPValues, combine_independent
from talefam.models.items import Item

logger = logging.getLogger(__name__)

AlignmentTable = Mapping[tuple[str, str], PairwiseAlignment]


class FamilyDistance(str, Enum):
    """Reduction of per-member values to one family-level value."""

    MIN = "min"
    MAX = "max"
    MEAN = "mean"

    @classmethod
    def for_linkage(cls, linkage: Linkage) -> FamilyDistance:
        """The reduction matching a clustering linkage."""
        return {
            Linkage.SINGLE: cls.MIN,
            Linkage.COMPLETE: cls.MAX,
            Linkage.AVERAGE: cls.MEAN,
        }[Linkage(linkage)]


class Family:
    """
    An immutable family of items.

    Attributes:
        family_id: Family identifier.
        tree: Cluster tree of the members; its leaf order is the member order.
        aligner: Aligner used for member alignments and queries.
        linkage: Linkage the tree was built with; selects the default
            reduction of ``distance_to`` and ``significance_to``.
        leaf_ordering: Leaf ordering method applied after re-clustering.
    """

    __slots__ = ("_alignments", "aligner", "family_id", "leaf_ordering", "linkage", "tree")

    def __init__(
        self,
        family_id: str,
        tree: ClusterTree[Item],
        alignments: AlignmentTable,
        aligner: Aligner,
        linkage: Linkage = Linkage.AVERAGE,
        leaf_ordering: LeafOrderMethod = "boundary",
    ) -> None:
        self.family_id = family_id
        self.tree = tree
        self.aligner = aligner
        self.linkage = Linkage(linkage)
        self.leaf_ordering = leaf_ordering

        ids = [item.id for item in tree.elements]
        self._alignments: dict[tuple[str, str], PairwiseAlignment] = {}
        for a in ids:
            for b in ids:
                if a == b:
                    continue
                if (a, b) not in alignments:
                    raise AlignmentLookupError(family_id, a, b)
                self._alignments[(a, b)] = alignments[(a, b)]

    @classmethod
    def create(
        cls,
        family_id: str,
        tree: ClusterTree[Item],
        aligner: Aligner,
        linkage: Linkage = Linkage.AVERAGE,
        leaf_ordering: LeafOrderMethod = "boundary",
        known: AlignmentTable | None = None,
    ) -> Family:
        """
        Create a family, aligning every ordered pair of distinct members.

        Alignments already present in ``known`` are reused.
        """
        known = known or {}
        members = tree.elements
        alignments: dict[tuple[str, str], PairwiseAlignment] = {}
        for a in members:
            for b in members:
                if a.id == b.id:
                    continue
                key = (a.id, b.id)
                alignments[key] = known[key] if key in known else aligner.align(a, b)
        return cls(family_id, tree, alignments, aligner, linkage, leaf_ordering)

    @property
    def members(self) -> tuple[Item, ...]:
        return self.tree.elements

    @property
    def member_ids(self) -> tuple[str, ...]:
        return tuple(item.id for item in self.members)

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def distance(self) -> float:
        """Merge height of the family's root (0 for singletons)."""
        return self.tree.distance

    @property
    def alignments(self) -> Mapping[tuple[str, str], PairwiseAlignment]:
        return dict(self._alignments)

    def contains(self, item_id: str) -> bool:
        return item_id in self.member_ids

    def alignment_for(self, id_a: str, id_b: str) -> PairwiseAlignment:
        """Stored pairwise alignment of two distinct members."""
        try:
            return self._alignments[(id_a, id_b)]
        except KeyError:
            raise AlignmentLookupError(self.family_id, id_a, id_b) from None

    def _reduction(self, style: FamilyDistance | None) -> FamilyDistance:
        return FamilyDistance(style) if style is not None else FamilyDistance.for_linkage(self.linkage)

    def distance_to(self, item: Item, style: FamilyDistance | None = None) -> float:
        """
        Distance of ``item`` to this family.

        Aligns the item against every member and reduces the costs with
        ``style`` (defaults to the reduction matching the family's linkage).
        """
        costs = np.array([self.aligner.align(item, member).cost for member in self.members])
        style = self._reduction(style)
        if style == FamilyDistance.MIN:
            return float(costs.min())
        if style == FamilyDistance.MAX:
            return float(costs.max())
        return float(costs.mean())

    def significance_to(
        self,
        item: Item,
        pvalues: AlignmentPValues,
        style: FamilyDistance | None = None,
    ) -> float:
        """
        log10 p-value of ``item`` matching this family.

        MIN and MAX pick the smallest or largest per-member p-value; MEAN
        combines them as independent events.
        """
        log_ps = [
            pvalues.log10_pvalue_pair(
                item,
                member,
                self.aligner.align(item, member).cost,
                self.aligner.extra_gap_opening,
                self.aligner.extra_gap_extension,
            )
            for member in self.members
        ]
        style = self._reduction(style)
        if style == FamilyDistance.MIN:
            return min(log_ps)
        if style == FamilyDistance.MAX:
            return max(log_ps)
        return combine_independent(log_ps)

    def family_significance(self, pvalues: AlignmentPValues) -> float:
        """
        Combined log10 p-value of all member pairs.

        Singletons have no pairs and yield ``-inf`` (the empty union of
        events has probability zero).
        """
        members = self.members
        log_ps = []
        for i in range(len(members)):
            for j in range(i):
                alignment = self._alignments[(members[i].id, members[j].id)]
                log_ps.append(
                    pvalues.log10_pvalue_pair(
                        members[i],
                        members[j],
                        alignment.cost,
                        self.aligner.extra_gap_opening,
                        self.aligner.extra_gap_extension,
                    )
                )
        return combine_independent(log_ps)

    def _recluster(
        self,
        matrix: DistanceMatrix,
        leaves: Sequence[Leaf[Item]],
        index_offset: int,
    ) -> Family:
        tree = Hclust(self.linkage).cluster_forest(matrix, leaves, index_offset)
        tree = leaf_order(tree, matrix, self.leaf_ordering)
        return Family.create(
            self.family_id,
            tree,
            self.aligner,
            self.linkage,
            self.leaf_ordering,
            known=self._alignments,
        )

    def add_item(
        self,
        matrix: DistanceMatrix,
        item: Item,
        new_index: int,
        index_offset: int,
    ) -> Family:
        """
        Return a new family that also contains ``item``.

        The current leaves plus a leaf for ``item`` at row ``new_index`` are
        re-clustered as a forest over ``matrix`` (the global matrix). New
        internal nodes are numbered from ``-index_offset - 1`` downward.
        """
        leaves = [*self.tree.leaves(), Leaf(item, new_index)]
        family = self._recluster(matrix, leaves, index_offset)
        logger.debug(f"Added {item.id} to family {self.family_id} ({family.size} members)")
        return family

    def remove_items(
        self,
        matrix: DistanceMatrix,
        item_ids: Sequence[str],
        index_offset: int,
        index_map: Mapping[int, int] | None = None,
    ) -> Family | None:
        """
        Return a new family without the given items, or None if none remain.

        Args:
            matrix: Distance matrix the remaining leaves index into.
            item_ids: Ids of the items to remove.
            index_offset: Offset for new internal node indices.
            index_map: Old-to-new row mapping applied to remaining leaves.
        """
        remove = set(item_ids)
        leaves = [leaf for leaf in self.tree.leaves() if leaf.element.id not in remove]
        if not leaves:
            logger.debug(f"Family {self.family_id} is empty after removal")
            return None
        if index_map is not None:
            leaves = [Leaf(leaf.element, index_map[leaf.original_index]) for leaf in leaves]
        return self._recluster(matrix, leaves, index_offset)

    def reindexed(self, index_map: Mapping[int, int]) -> Family:
        """Same family with leaf indices renumbered through ``index_map``."""
        return self.with_tree(self.tree.remap_indices(index_map))

    def with_tree(self, tree: ClusterTree[Item]) -> Family:
        """Same family on a different tree over a subset of the members."""
        return Family.create(
            self.family_id, tree, self.aligner, self.linkage, self.leaf_ordering, self._alignments
        )

    def with_id(self, family_id: str) -> Family:
        return Family(
            family_id, self.tree, self._alignments, self.aligner, self.linkage, self.leaf_ordering
        )

    def induced_multiple_alignment(self) -> tuple[list[Item], list[tuple[str, ...]]]:
        """Members in leaf order with their induced alignment rows."""
        return induced_multiple_alignment(self.tree, self.alignment_for, self.family_id)

    def induced_alignment_text(self) -> str:
        items, rows = self.induced_multiple_alignment()
        return alignment_text(items, rows)

    def to_newick(self) -> str:
        return self.tree.to_newick(lambda item: item.id)

    def to_text(self, pvalues: AlignmentPValues | None = None) -> str:
        """Plain-text report of the family."""
        lines = [f"Family {self.family_id}", f"Members: {self.size}", f"Distance: {self.distance:.4f}"]
        if pvalues is not None:
            lines.append(f"Significance (log10 p): {self.family_significance(pvalues):.4f}")
        lines += ["", "Induced alignment:", self.induced_alignment_text(), ""]
        lines += ["Tree:", self.to_newick()]

        members = self.members
        if len(members) > 1:
            lines += ["", "Pairwise alignments:"]
            for i in range(len(members)):
                for j in range(i + 1, len(members)):
                    alignment = self.alignment_for(members[i].id, members[j].id)
                    lines.append(f"{members[i].id} vs {members[j].id}: cost {alignment.cost:.4f}")
                    lines.append(f"  {format_row(alignment.aligned_a)}")
                    lines.append(f"  {format_row(alignment.aligned_b)}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return self.size

    def __str__(self) -> str:
        return self.family_id

    def __repr__(self) -> str:
        return f"Family(id={self.family_id!r}, members={list(self.member_ids)})"
