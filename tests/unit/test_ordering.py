"""Unit tests for leaf ordering."""

from __future__ import annotations

import pytest

from talefam.core.clustering import Hclust, Internal, Leaf, leaf_order
from talefam.core.exceptions import ClusterTreeError, IndexBookkeepingError


def _indices(tree) -> list[int]:
    return [leaf.original_index for leaf in tree.leaves()]


def _adjacent_cost(tree, matrix) -> float:
    order = _indices(tree)
    return sum(matrix.get(a, b) for a, b in zip(order, order[1:]))


@pytest.fixture
def misordered_tree() -> Internal[str]:
    """(p0, p1) next to (p11, p10): the right subtree faces the wrong way."""
    left = Internal(1.0, -1, (Leaf("p0", 0), Leaf("p1", 1)))
    right = Internal(1.0, -2, (Leaf("p11", 3), Leaf("p10", 2)))
    return Internal(10.0, -3, (left, right))


class TestBoundaryOrdering:
    """Tests for the boundary heuristic."""

    def test_flips_right_subtree(self, misordered_tree, line_matrix):
        ordered = leaf_order(misordered_tree, line_matrix, "boundary")
        assert _indices(ordered) == [0, 1, 2, 3]

    def test_keeps_good_order(self, line_matrix):
        tree = Internal(
            10.0,
            -3,
            (
                Internal(1.0, -1, (Leaf("p0", 0), Leaf("p1", 1))),
                Internal(1.0, -2, (Leaf("p10", 2), Leaf("p11", 3))),
            ),
        )
        assert _indices(leaf_order(tree, line_matrix)) == [0, 1, 2, 3]

    def test_preserves_structure(self, misordered_tree, line_matrix):
        ordered = leaf_order(misordered_tree, line_matrix)
        assert ordered.distance == misordered_tree.distance
        assert ordered.original_index == misordered_tree.original_index
        assert sorted(ordered.elements) == sorted(misordered_tree.elements)
        assert {frozenset(s.elements) for s in ordered.subtrees} == {
            frozenset(s.elements) for s in misordered_tree.subtrees
        }

    def test_leaf_unchanged(self, line_matrix):
        leaf = Leaf("p0", 0)
        assert leaf_order(leaf, line_matrix) is leaf

    def test_non_binary_node_kept(self, line_matrix):
        tree = Internal(5.0, -1, (Leaf("p0", 0), Leaf("p11", 3), Leaf("p1", 1)))
        assert _indices(leaf_order(tree, line_matrix)) == [0, 3, 1]


class TestOptimalOrdering:
    """Tests for optimal leaf ordering."""

    def test_orders_line(self, misordered_tree, line_matrix):
        ordered = leaf_order(misordered_tree, line_matrix, "optimal")
        assert _indices(ordered) in ([0, 1, 2, 3], [3, 2, 1, 0])

    def test_never_worse_than_boundary(self, random_matrix):
        tree = Hclust().cluster(random_matrix, list(range(len(random_matrix))))
        optimal = leaf_order(tree, random_matrix, "optimal")
        boundary = leaf_order(tree, random_matrix, "boundary")
        assert _adjacent_cost(optimal, random_matrix) <= _adjacent_cost(boundary, random_matrix) + 1e-9
        assert _adjacent_cost(optimal, random_matrix) <= _adjacent_cost(tree, random_matrix) + 1e-9

    def test_preserves_merge_heights(self, random_matrix):
        tree = Hclust().cluster(random_matrix, list(range(len(random_matrix))))
        optimal = leaf_order(tree, random_matrix, "optimal")
        assert sorted(n.distance for n in optimal.nodes()) == sorted(n.distance for n in tree.nodes())
        assert sorted(optimal.elements) == sorted(tree.elements)

    def test_non_binary_rejected(self, line_matrix):
        tree = Internal(5.0, -1, (Leaf("p0", 0), Leaf("p11", 3), Leaf("p1", 1)))
        with pytest.raises(ClusterTreeError):
            leaf_order(tree, line_matrix, "optimal")


class TestOrderingValidation:
    def test_unknown_method(self, misordered_tree, line_matrix):
        with pytest.raises(ClusterTreeError):
            leaf_order(misordered_tree, line_matrix, "random")

    def test_leaf_outside_matrix(self, line_matrix):
        tree = Internal(1.0, -1, (Leaf("a", 0), Leaf("b", 8)))
        with pytest.raises(IndexBookkeepingError):
            leaf_order(tree, line_matrix)
