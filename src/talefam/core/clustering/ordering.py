"""
Leaf ordering of cluster trees.

Reorders the children of internal nodes so that similar leaves end up next
to each other, without changing the merge structure or merge distances.
Two methods are available:

- ``boundary``: bottom-up heuristic that compares the four boundary
  distances between the outermost leaves of two sibling subtrees and picks
  the orientation with the smallest distance across the seam.
- ``optimal``: optimal leaf ordering for binary trees (Bar-Joseph et al.,
  2001), minimising the summed distance of all adjacent leaf pairs.
"""

from __future__ import annotations

import logging
from typing import Literal, TypeVar

import numpy as np

from talefam.core.clustering.tree import ClusterTree, Internal, Leaf
from talefam.core.distance_matrix import DistanceMatrix
from talefam.core.exceptions import ClusterTreeError

logger = logging.getLogger(__name__)

T = TypeVar("T")

LeafOrderMethod = Literal["boundary", "optimal"]


def leaf_order(
    tree: ClusterTree[T],
    matrix: DistanceMatrix,
    method: LeafOrderMethod = "boundary",
) -> ClusterTree[T]:
    """
    Reorder the leaves of ``tree`` using distances from ``matrix``.

    Args:
        tree: Tree whose leaf indices address rows of ``matrix``.
        matrix: Distance matrix (lower triangle is read).
        method: ``"boundary"`` or ``"optimal"``.

    Returns:
        New tree with the same nodes and merge distances.

    Raises:
        IndexBookkeepingError: If a leaf index is not a row of ``matrix``.
        ClusterTreeError: If ``method`` is ``"optimal"`` and the tree is
            not binary, or the method is unknown.
    """
    for leaf in tree.leaves():
        matrix.require_index(leaf.original_index)

    if method == "boundary":
        return _boundary_order(tree, matrix)
    if method == "optimal":
        return _optimal_order(tree, matrix)
    msg = f"Unknown leaf ordering method: {method}"
    raise ClusterTreeError(msg)


def _boundary_order(node: ClusterTree[T], matrix: DistanceMatrix) -> ClusterTree[T]:
    if isinstance(node, Leaf):
        return node

    children = tuple(_boundary_order(sub, matrix) for sub in node.subtrees)
    if len(children) != 2:
        logger.warning(
            f"Boundary leaf ordering keeps the child order of non-binary node "
            f"{node.original_index} ({len(children)} children)"
        )
        return Internal(node.distance, node.original_index, children)

    left, right = children
    left_leaves = left.leaves()
    right_leaves = right.leaves()
    l_first = left_leaves[0].original_index
    l_last = left_leaves[-1].original_index
    r_first = right_leaves[0].original_index
    r_last = right_leaves[-1].original_index

    keep = matrix.lower(l_last, r_first)
    flip_left = matrix.lower(l_first, r_first)
    flip_both = matrix.lower(l_first, r_last)
    flip_right = matrix.lower(l_last, r_last)

    if flip_left < keep and flip_left < flip_both and flip_left < flip_right:
        left = left.mirrored()
    elif flip_both < keep and flip_both < flip_right:
        left, right = left.mirrored(), right.mirrored()
    elif flip_right < keep:
        right = right.mirrored()

    return Internal(node.distance, node.original_index, (left, right))


def _symmetric(matrix: DistanceMatrix) -> np.ndarray:
    values = matrix.values
    return np.tril(values) + np.tril(values, -1).T


class _OptimalOrdering:
    """
    Dynamic program of optimal leaf ordering.

    For every node the table ``cost[a, b]`` holds the minimal sum of
    adjacent distances over all orderings of the node's leaves that start
    with leaf ``a`` and end with leaf ``b`` (positions in ``indices``).
    """

    def __init__(self, distances: np.ndarray) -> None:
        self.distances = distances
        self.tables: dict[int, tuple[list[int], np.ndarray]] = {}

    def table(self, node: ClusterTree[T]) -> tuple[list[int], np.ndarray]:
        key = id(node)
        if key not in self.tables:
            self.tables[key] = self._compute(node)
        return self.tables[key]

    def _compute(self, node: ClusterTree[T]) -> tuple[list[int], np.ndarray]:
        if isinstance(node, Leaf):
            return [node.original_index], np.zeros((1, 1))
        if len(node.subtrees) != 2:
            raise ClusterTreeError(
                f"Optimal leaf ordering needs a binary tree; node {node.original_index} "
                f"has {len(node.subtrees)} children"
            )
        left, right = node.subtrees
        idx_l, cost_l = self.table(left)
        idx_r, cost_r = self.table(right)
        between = self.distances[np.ix_(idx_l, idx_r)]

        # best[a, k]: left ordering starting at a, seam to right leaf k
        best = (cost_l[:, :, None] + between[None, :, :]).min(axis=1)
        joined = (best[:, :, None] + cost_r[None, :, :]).min(axis=1)

        n_l, n_r = len(idx_l), len(idx_r)
        cost = np.full((n_l + n_r, n_l + n_r), np.inf)
        cost[:n_l, n_l:] = joined
        cost[n_l:, :n_l] = joined.T
        return idx_l + idx_r, cost

    def arrange(self, node: ClusterTree[T], first: int, last: int) -> ClusterTree[T]:
        """Rebuild ``node`` so that its leaves run from ``first`` to ``last``."""
        if isinstance(node, Leaf):
            return node
        left, right = node.subtrees
        idx_left, _ = self.table(left)
        if first in idx_left:
            head, tail = left, right
        else:
            head, tail = right, left
        idx_head, cost_head = self.table(head)
        idx_tail, cost_tail = self.table(tail)
        pos_first = idx_head.index(first)
        pos_last = idx_tail.index(last)

        total = (
            cost_head[pos_first, :, None]
            + self.distances[np.ix_(idx_head, idx_tail)]
            + cost_tail[:, pos_last][None, :]
        )
        m, k = np.unravel_index(int(np.argmin(total)), total.shape)
        return Internal(
            node.distance,
            node.original_index,
            (
                self.arrange(head, first, idx_head[m]),
                self.arrange(tail, idx_tail[k], last),
            ),
        )


def _optimal_order(tree: ClusterTree[T], matrix: DistanceMatrix) -> ClusterTree[T]:
    if isinstance(tree, Leaf):
        return tree
    ordering = _OptimalOrdering(_symmetric(matrix))
    indices, cost = ordering.table(tree)
    a, b = np.unravel_index(int(np.argmin(cost)), cost.shape)
    logger.debug(f"Optimal leaf order of {len(indices)} leaves has cost {cost[a, b]:.4f}")
    return ordering.arrange(tree, indices[a], indices[b])
