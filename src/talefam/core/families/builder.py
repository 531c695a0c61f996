"""
Family builder: builds families from items and maintains them.

The builder owns the ordered item list, the distance matrix whose rows
follow that list, and the families partitioning the items. Mutating
operations (adding, removing, splitting) compute the complete new state
first and commit it in one step, so a failing operation leaves the
builder unchanged.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import NamedTuple

import numpy as np

from talefam.core.alignment import Aligner
from talefam.core.clustering.hclust import Hclust
from talefam.core.clustering.ordering import leaf_order
from talefam.core.clustering.tree import ClusterTree, Leaf, cut_tree
from talefam.core.distance_matrix import DistanceMatrix
from talefam.core.exceptions import (
    DistanceMatrixShapeError,
    DuplicateItemError,
    EmptyItemListError,
    FamilySplitError,
    IndexBookkeepingError,
    InvalidThresholdError,
    ItemNotFoundError,
    NoFamiliesError,
    UnknownFamilyError,
)
from talefam.core.families.family import Family, FamilyDistance
from talefam.core.significance import AlignmentPValues
from talefam.models.config import FamilyConfig
from talefam.models.items import Item
from talefam.models.records import (
    BuilderRecord,
    FamilyRecord,
    alignment_from_record,
    alignment_to_record,
    tree_from_record,
    tree_to_record,
)

logger = logging.getLogger(__name__)

FamilyRef = int | str


class RelatedMatch(NamedTuple):
    """A significant alignment between members of two different families."""

    family_id: str
    member_id: str
    other_family_id: str
    other_member_id: str
    cost: float
    log10_pvalue: float


def _index_offset(families: Iterable[Family]) -> int:
    """Offset that makes new internal node indices unique among ``families``."""
    min_index = min((f.tree.min_original_index() for f in families), default=0)
    return max(0, -min_index)


def _check_unique(items: Sequence[Item], existing: Iterable[str] = ()) -> None:
    counts = Counter(item.id for item in items)
    counts.update(existing)
    duplicates = [item_id for item_id, n in counts.items() if n > 1]
    if duplicates:
        raise DuplicateItemError(duplicates)


class FamilyBuilder:
    """
    Builds and maintains families of items.

    Example:
        >>> builder = FamilyBuilder.build(items, FamilyConfig(cut=3.0))
        >>> family, distance = builder.get_closest_family(query)
        >>> builder.add_items_to_families([(family.family_id, [query])])
    """

    def __init__(
        self,
        items: Sequence[Item],
        matrix: DistanceMatrix,
        families: Sequence[Family],
        config: FamilyConfig | None = None,
        aligner: Aligner | None = None,
    ) -> None:
        self.config = config if config is not None else FamilyConfig()
        self.aligner = aligner if aligner is not None else self.config.alignment.make_aligner()
        _check_unique(items)
        self._check_bookkeeping(items, matrix, families)
        self._items: tuple[Item, ...] = tuple(items)
        self._matrix = matrix
        self._families: tuple[Family, ...] = tuple(families)

    @classmethod
    def build(
        cls,
        items: Sequence[Item],
        config: FamilyConfig | None = None,
        aligner: Aligner | None = None,
        cut: float | None = None,
    ) -> FamilyBuilder:
        """
        Build families from scratch.

        Computes the full distance matrix, clusters once, cuts the tree at
        the cut threshold, leaf-orders each subtree and numbers the
        families "1", "2", ... from left to right.

        Args:
            items: Items to cluster; ids must be unique.
            config: Builder configuration (defaults to ``FamilyConfig()``).
            aligner: Aligner to use instead of the one described by the
                configuration.
            cut: Overrides ``config.cut``.

        Raises:
            EmptyItemListError: If ``items`` is empty.
            DuplicateItemError: If item ids are not unique.
            InvalidThresholdError: If ``cut`` is negative.
        """
        config = config if config is not None else FamilyConfig()
        if cut is not None:
            if not 0 <= cut < math.inf:
                raise InvalidThresholdError("cut", cut, 0, math.inf)
            config = config.model_copy(update={"cut": cut})
        items = list(items)
        if not items:
            raise EmptyItemListError("build families")
        _check_unique(items)
        aligner = aligner if aligner is not None else config.alignment.make_aligner()

        matrix = DistanceMatrix.from_items(items, aligner, config.symmetry_tolerance)
        tree = Hclust(config.linkage).cluster(matrix, items)
        families = [
            Family.create(
                str(k + 1),
                leaf_order(subtree, matrix, config.leaf_ordering),
                aligner,
                config.linkage,
                config.leaf_ordering,
            )
            for k, subtree in enumerate(cut_tree(config.cut, tree))
        ]
        logger.info(
            f"Built {len(families)} families from {len(items)} items "
            f"({config.linkage.value} linkage, cut {config.cut})"
        )
        return cls(items, matrix, families, config, aligner)

    @staticmethod
    def _check_bookkeeping(
        items: Sequence[Item], matrix: DistanceMatrix, families: Sequence[Family]
    ) -> None:
        """Every item row must be the index of exactly one family leaf holding that item."""
        if len(matrix) != len(items):
            raise DistanceMatrixShapeError(len(matrix), len(matrix), expected=len(items))
        seen: set[int] = set()
        for family in families:
            for leaf in family.tree.leaves():
                row = leaf.original_index
                matrix.require_index(row)
                if row in seen or items[row].id != leaf.element.id:
                    raise IndexBookkeepingError(row, len(matrix))
                seen.add(row)
        missing = sorted(set(range(len(items))) - seen)
        if missing:
            raise IndexBookkeepingError(missing[0], len(matrix))

    @property
    def items(self) -> tuple[Item, ...]:
        return self._items

    @property
    def matrix(self) -> DistanceMatrix:
        return self._matrix

    @property
    def families(self) -> tuple[Family, ...]:
        return self._families

    @property
    def family_ids(self) -> tuple[str, ...]:
        return tuple(f.family_id for f in self._families)

    def __len__(self) -> int:
        return len(self._families)

    def _resolve(self, ref: FamilyRef) -> int:
        """Position of a family given by index or id."""
        if isinstance(ref, int):
            if 0 <= ref < len(self._families):
                return ref
        else:
            for k, family in enumerate(self._families):
                if family.family_id == ref:
                    return k
        raise UnknownFamilyError(ref, self.family_ids)

    def family(self, ref: FamilyRef) -> Family:
        return self._families[self._resolve(ref)]

    def family_of(self, item_id: str) -> Family | None:
        for family in self._families:
            if family.contains(item_id):
                return family
        return None

    def get_closest_family(
        self, item: Item, style: FamilyDistance | None = None
    ) -> tuple[Family, float]:
        """Family with the smallest ``distance_to(item)``; the first one wins ties."""
        if not self._families:
            raise NoFamiliesError()
        best, best_distance = self._families[0], self._families[0].distance_to(item, style)
        for family in self._families[1:]:
            distance = family.distance_to(item, style)
            if distance < best_distance:
                best, best_distance = family, distance
        return best, best_distance

    def significance_engine(self) -> AlignmentPValues:
        """
        Significance engine over all items of the builder.

        The null model depends only on the builder's items, so a query item
        gets the same p-values alone or as part of a batch.
        """
        return AlignmentPValues(self._items, self.aligner.costs)

    def get_most_significant_family(
        self,
        item: Item,
        pvalues: AlignmentPValues | None = None,
        style: FamilyDistance | None = None,
    ) -> tuple[Family, float]:
        """Family with the smallest ``significance_to(item)``; the first one wins ties."""
        if not self._families:
            raise NoFamiliesError()
        if pvalues is None:
            pvalues = self.significance_engine()
        best = self._families[0]
        best_value = best.significance_to(item, pvalues, style)
        for family in self._families[1:]:
            value = family.significance_to(item, pvalues, style)
            if value < best_value:
                best, best_value = family, value
        return best, best_value

    def add_items_to_families(
        self,
        assignments: Sequence[tuple[FamilyRef, Sequence[Item]]],
        unassigned: Sequence[Item] = (),
    ) -> list[Family]:
        """
        Add items to existing families and cluster the rest into new ones.

        The distance matrix is extended by the new rows only. Each assigned
        item is added to its family (given by index or id) with
        ``Family.add_item``; unassigned items are clustered among
        themselves and cut at the configured threshold.

        Returns:
            The newly created families.

        Raises:
            DuplicateItemError: If a new item id is already in use.
            UnknownFamilyError: If an assignment names a missing family.
            IndexBookkeepingError: If trees and matrix are out of sync.
        """
        new_items = [item for _, group in assignments for item in group] + list(unassigned)
        if not new_items:
            return []
        _check_unique(new_items, (item.id for item in self._items))
        targets = [self._resolve(ref) for ref, _ in assignments]
        self._check_bookkeeping(self._items, self._matrix, self._families)

        matrix = self._matrix.extend(
            self._items, new_items, self.aligner, self.config.symmetry_tolerance
        )
        families = list(self._families)
        offset = _index_offset(families)
        row = len(self._items)

        for k, (_, group) in zip(targets, assignments):
            for item in group:
                families[k] = families[k].add_item(matrix, item, row, offset)
                offset = max(offset, -families[k].tree.min_original_index())
                row += 1

        created: list[Family] = []
        if unassigned:
            leaves = [Leaf(item, row + t) for t, item in enumerate(unassigned)]
            tree = Hclust(self.config.linkage).cluster_forest(matrix, leaves, offset)
            ids = self.config.new_family_ids([f.family_id for f in families])
            for subtree in cut_tree(self.config.cut, tree):
                created.append(
                    Family.create(
                        next(ids),
                        leaf_order(subtree, matrix, self.config.leaf_ordering),
                        self.aligner,
                        self.config.linkage,
                        self.config.leaf_ordering,
                    )
                )
            families.extend(created)

        self._items = (*self._items, *new_items)
        self._matrix = matrix
        self._families = tuple(families)
        logger.info(
            f"Added {len(new_items)} items ({len(new_items) - len(unassigned)} assigned, "
            f"{len(created)} new families)"
        )
        return created

    def remove_items_from_families(self, items: Iterable[Item | str]) -> None:
        """
        Remove items from the builder.

        Rows of the remaining items are renumbered densely; affected
        families are re-clustered and dropped when empty.

        Raises:
            ItemNotFoundError: If an item is not part of the builder.
        """
        ids = {item.id if isinstance(item, Item) else item for item in items}
        if not ids:
            return
        unknown = ids - {item.id for item in self._items}
        if unknown:
            raise ItemNotFoundError(unknown)
        self._check_bookkeeping(self._items, self._matrix, self._families)

        keep = [row for row, item in enumerate(self._items) if item.id not in ids]
        index_map = {old: new for new, old in enumerate(keep)}
        matrix = self._matrix.restrict(keep)
        offset = _index_offset(self._families)

        families: list[Family] = []
        for family in self._families:
            if any(family.contains(item_id) for item_id in ids):
                reduced = family.remove_items(matrix, sorted(ids), offset, index_map)
                if reduced is None:
                    logger.info(f"Dropped family {family.family_id}: all members removed")
                    continue
                offset = max(offset, -reduced.tree.min_original_index())
                families.append(reduced)
            else:
                families.append(family.reindexed(index_map))

        self._items = tuple(self._items[row] for row in keep)
        self._matrix = matrix
        self._families = tuple(families)
        logger.info(f"Removed {len(ids)} items; {len(families)} families remain")

    def split_family(self, ref: FamilyRef) -> list[Family]:
        """
        Split a family by cutting its tree just below its merge distance.

        The largest part keeps the family id (the leftmost on ties); the
        other parts get fresh ids.

        Returns:
            The families replacing the split one, the one keeping the id first.

        Raises:
            FamilySplitError: If the family has a single member.
        """
        position = self._resolve(ref)
        family = self._families[position]
        if family.size < 2:
            raise FamilySplitError(family.family_id)

        parts = cut_tree(family.distance - self.config.split_epsilon, family.tree)
        largest = max(range(len(parts)), key=lambda k: (parts[k].size, -k))
        ids = self.config.new_family_ids(self.family_ids)

        kept: Family | None = None
        others: list[Family] = []
        for k, part in enumerate(parts):
            ordered = leaf_order(part, self._matrix, self.config.leaf_ordering)
            family_id = family.family_id if k == largest else next(ids)
            new_family = Family.create(
                family_id,
                ordered,
                self.aligner,
                family.linkage,
                family.leaf_ordering,
                known=family.alignments,
            )
            if k == largest:
                kept = new_family
            else:
                others.append(new_family)

        result = [kept, *others]
        self._families = (
            *self._families[:position],
            *result,
            *self._families[position + 1 :],
        )
        logger.info(
            f"Split family {family.family_id} into "
            f"{', '.join(f.family_id for f in result)}"
        )
        return result

    def cluster_families(self) -> ClusterTree[Family]:
        """
        Cluster the families themselves.

        Each family's tree enters the clustering as one pre-built subtree;
        the result is collapsed so that every family becomes a single leaf.
        """
        if not self._families:
            raise NoFamiliesError()
        forest = [family.tree.index_tree() for family in self._families]
        roots = [family.tree.original_index for family in self._families]
        tree = Hclust(self.config.linkage).cluster_forest(
            self._matrix, forest, _index_offset(self._families)
        )
        return tree.drop_below(roots, self._families)

    def related_families(
        self,
        ref: FamilyRef,
        pvalues: AlignmentPValues | None = None,
        pvalue: float | None = None,
    ) -> list[RelatedMatch]:
        """
        Significant matches between a family and members of other families.

        Args:
            ref: Family index or id.
            pvalues: Significance engine (built from all items if omitted).
            pvalue: Significance threshold (defaults to ``config.pvalue``).

        Returns:
            Matches with a p-value below the threshold, most significant first.
        """
        threshold = self.config.pvalue if pvalue is None else pvalue
        if not 0 < threshold <= 1:
            raise InvalidThresholdError("pvalue", threshold, 0, 1)
        log_threshold = math.log10(threshold)
        family = self.family(ref)
        if pvalues is None:
            pvalues = self.significance_engine()
        rows = {item.id: row for row, item in enumerate(self._items)}

        matches: list[RelatedMatch] = []
        for other in self._families:
            if other is family:
                continue
            for member in family.members:
                for candidate in other.members:
                    cost = self._matrix.get(rows[member.id], rows[candidate.id])
                    log_p = pvalues.log10_pvalue_pair(
                        member,
                        candidate,
                        cost,
                        self.aligner.extra_gap_opening,
                        self.aligner.extra_gap_extension,
                    )
                    if log_p < log_threshold:
                        matches.append(
                            RelatedMatch(
                                family.family_id,
                                member.id,
                                other.family_id,
                                candidate.id,
                                cost,
                                log_p,
                            )
                        )
        matches.sort(key=lambda m: m.log10_pvalue)
        return matches

    def to_record(self) -> BuilderRecord:
        """Snapshot of the builder for persistence."""
        families = []
        for family in self._families:
            alignments = tuple(
                alignment_to_record(a, b, alignment)
                for (a, b), alignment in family.alignments.items()
            )
            families.append(
                FamilyRecord(
                    family_id=family.family_id,
                    linkage=family.linkage,
                    leaf_ordering=family.leaf_ordering,
                    tree=tree_to_record(family.tree),
                    alignments=alignments,
                )
            )
        return BuilderRecord(
            config=self.config,
            aligner=repr(self.aligner),
            items=self._items,
            distances=tuple(tuple(row) for row in self._matrix.to_list()),
            families=tuple(families),
        )

    @classmethod
    def from_record(cls, record: BuilderRecord, aligner: Aligner | None = None) -> FamilyBuilder:
        """Restore a builder from a record without realigning any pair."""
        config = record.config
        if aligner is None:
            aligner = config.alignment.make_aligner()
            if record.aligner is not None and record.aligner != repr(aligner):
                logger.warning(
                    f"Families were computed with {record.aligner} but the saved "
                    f"config describes {aligner!r}; pass aligner= to reproduce them"
                )
        items_by_id = {item.id: item for item in record.items}
        if record.distances:
            matrix = DistanceMatrix(record.distances)
        else:
            matrix = DistanceMatrix(np.zeros((0, 0)))
        families = [
            Family(
                fr.family_id,
                tree_from_record(fr.tree, items_by_id),
                {(ar.a, ar.b): alignment_from_record(ar) for ar in fr.alignments},
                aligner,
                fr.linkage,
                fr.leaf_ordering,
            )
            for fr in record.families
        ]
        return cls(record.items, matrix, families, config, aligner)

    def save_json(self, path: Path) -> None:
        path.write_text(self.to_record().to_json())
        logger.info(f"Saved {len(self._families)} families to {path}")

    @classmethod
    def load_json(cls, path: Path, aligner: Aligner | None = None) -> FamilyBuilder:
        record = BuilderRecord.from_json(path.read_text())
        return cls.from_record(record, aligner)
