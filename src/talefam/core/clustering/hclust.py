"""
Agglomerative hierarchical clustering.

Clusters either singleton leaves or a forest of pre-built subtrees, using
single, complete or average linkage over a ``DistanceMatrix``. Internal
nodes get negative bookkeeping indices so they never collide with matrix
rows.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from enum import Enum
from typing import Generic, TypeVar

import numpy as np

from talefam.core.clustering.tree import ClusterTree, Internal, Leaf
from talefam.core.distance_matrix import DistanceMatrix
from talefam.core.exceptions import DistanceMatrixShapeError, EmptyItemListError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Linkage(str, Enum):
    """Rule reducing the distances between two clusters to one merge distance."""

    SINGLE = "single"
    COMPLETE = "complete"
    AVERAGE = "average"


def linkage_distance(
    linkage: Linkage,
    matrix: DistanceMatrix,
    indices_a: Sequence[int],
    indices_b: Sequence[int],
) -> float:
    """
    Linkage distance between two groups of matrix rows.

    Reads the lower triangle of ``matrix`` only.
    """
    values = matrix.values
    a = np.asarray(indices_a, dtype=np.intp)
    b = np.asarray(indices_b, dtype=np.intp)
    rows = np.maximum(a[:, None], b[None, :])
    cols = np.minimum(a[:, None], b[None, :])
    block = values[rows, cols]
    if linkage == Linkage.SINGLE:
        return float(block.min())
    if linkage == Linkage.COMPLETE:
        return float(block.max())
    return float(block.mean())


class Hclust(Generic[T]):
    """
    Hierarchical clusterer for a fixed linkage.

    At each step the pair of active clusters with the smallest linkage
    distance is merged. Among equal distances the pair found first in a
    row-major scan of the lower triangle wins; the later cluster of the
    pair becomes the first child of the new node.

    Example:
        >>> clusterer = Hclust(Linkage.AVERAGE)
        >>> tree = clusterer.cluster(matrix, items)
    """

    def __init__(self, linkage: Linkage = Linkage.AVERAGE) -> None:
        self.linkage = Linkage(linkage)

    def cluster(self, matrix: DistanceMatrix, items: Sequence[T]) -> ClusterTree[T]:
        """
        Cluster ``items``; item ``i`` belongs to row ``i`` of ``matrix``.

        Raises:
            EmptyItemListError: If ``items`` is empty.
            DistanceMatrixShapeError: If the matrix size differs from the
                number of items.
        """
        if not items:
            raise EmptyItemListError("cluster")
        if len(matrix) != len(items):
            raise DistanceMatrixShapeError(len(matrix), len(matrix), expected=len(items))
        leaves = [Leaf(item, i) for i, item in enumerate(items)]
        return self.cluster_forest(matrix, leaves, index_offset=0)

    def cluster_forest(
        self,
        matrix: DistanceMatrix,
        forest: Sequence[ClusterTree[T]],
        index_offset: int = 0,
    ) -> ClusterTree[T]:
        """
        Cluster a forest of existing subtrees into one tree.

        Subtrees are merged as they are; their internal structure is never
        revisited. New internal nodes are numbered ``-index_offset - 1``,
        ``-index_offset - 2``, ... so pass ``-min_index`` of any indices
        already in use to keep them unique.

        Raises:
            EmptyItemListError: If ``forest`` is empty.
            IndexBookkeepingError: If a leaf index is not a row of ``matrix``.
        """
        if not forest:
            raise EmptyItemListError("cluster an empty forest")

        groups: list[list[int]] = []
        for tree in forest:
            indices = [leaf.original_index for leaf in tree.leaves()]
            for index in indices:
                matrix.require_index(index)
            groups.append(indices)

        active: list[ClusterTree[T]] = list(forest)
        sizes: list[int] = [len(g) for g in groups]
        k = len(active)
        dist = np.zeros((k, k), dtype=np.float64)
        for i in range(k):
            for j in range(i):
                d = linkage_distance(self.linkage, matrix, groups[i], groups[j])
                dist[i, j] = d
                dist[j, i] = d

        next_index = -index_offset - 1
        while len(active) > 1:
            k = len(active)
            masked = np.where(np.tri(k, k, -1, dtype=bool), dist, np.inf)
            i, j = np.unravel_index(int(np.argmin(masked)), masked.shape)
            i, j = int(i), int(j)
            merge_distance = float(dist[i, j])

            node = Internal(merge_distance, next_index, (active[i], active[j]))
            logger.debug(
                f"Merged nodes {active[i].original_index} and {active[j].original_index} "
                f"at {merge_distance:.4f} into {next_index}"
            )
            next_index -= 1

            merged_row = self._merged_distances(dist[i], dist[j], sizes[i], sizes[j])
            keep = [m for m in range(k) if m != i and m != j]
            new_dist = np.zeros((k - 1, k - 1), dtype=np.float64)
            new_dist[: k - 2, : k - 2] = dist[np.ix_(keep, keep)]
            new_dist[k - 2, : k - 2] = merged_row[keep]
            new_dist[: k - 2, k - 2] = merged_row[keep]

            active = [active[m] for m in keep] + [node]
            sizes = [sizes[m] for m in keep] + [sizes[i] + sizes[j]]
            dist = new_dist

        return active[0]

    def _merged_distances(
        self, row_i: np.ndarray, row_j: np.ndarray, size_i: int, size_j: int
    ) -> np.ndarray:
        """Lance-Williams update for the distances of a merged cluster."""
        if self.linkage == Linkage.SINGLE:
            return np.minimum(row_i, row_j)
        if self.linkage == Linkage.COMPLETE:
            return np.maximum(row_i, row_j)
        return (size_i * row_i + size_j * row_j) / (size_i + size_j)
