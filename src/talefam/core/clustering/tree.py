"""
Immutable cluster trees.

A tree is either a ``Leaf`` holding one element or an ``Internal`` node
holding its merge distance and subtrees. Every node carries the index of
the distance matrix row (leaves) or the negative bookkeeping index
(internal nodes) it was created with. Operations that restructure a tree
return new nodes and never mutate existing ones.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from functools import cached_property
from io import StringIO
from typing import Generic, TypeVar

from talefam.core.exceptions import ClusterTreeError

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")


class ClusterTree(Generic[T]):
    """Common interface of ``Leaf`` and ``Internal``."""

    original_index: int

    @property
    def distance(self) -> float:
        raise NotImplementedError

    @property
    def subtrees(self) -> tuple[ClusterTree[T], ...]:
        raise NotImplementedError

    @property
    def elements(self) -> tuple[T, ...]:
        raise NotImplementedError

    @property
    def size(self) -> int:
        return len(self.elements)

    def leaves(self) -> list[Leaf[T]]:
        """Leaves in left-to-right order."""
        result: list[Leaf[T]] = []
        stack: list[ClusterTree[T]] = [self]
        while stack:
            node = stack.pop()
            if isinstance(node, Leaf):
                result.append(node)
            else:
                stack.extend(reversed(node.subtrees))
        return result

    def nodes(self) -> list[ClusterTree[T]]:
        """All nodes in pre-order."""
        result: list[ClusterTree[T]] = []
        stack: list[ClusterTree[T]] = [self]
        while stack:
            node = stack.pop()
            result.append(node)
            stack.extend(reversed(node.subtrees))
        return result

    def num_internal_nodes(self) -> int:
        return sum(1 for node in self.nodes() if isinstance(node, Internal))

    def min_original_index(self) -> int:
        return min(node.original_index for node in self.nodes())

    def min_distance(self) -> float:
        return min(node.distance for node in self.nodes())

    def index_tree(self) -> ClusterTree[int]:
        """Same structure with each leaf's element replaced by its original index."""
        return self.map_elements_with_index(lambda element, index: index)

    def map_elements(self, fn: Callable[[T], U]) -> ClusterTree[U]:
        return self.map_elements_with_index(lambda element, index: fn(element))

    def map_elements_with_index(self, fn: Callable[[T, int], U]) -> ClusterTree[U]:
        if isinstance(self, Leaf):
            return Leaf(fn(self.element, self.original_index), self.original_index)
        return Internal(
            self.distance,
            self.original_index,
            tuple(sub.map_elements_with_index(fn) for sub in self.subtrees),
        )

    def remap_indices(self, index_map: Mapping[int, int]) -> ClusterTree[T]:
        """
        Renumber leaf indices through ``index_map``.

        Internal (negative) indices are kept as they are. A leaf whose index
        is missing from the map is a bookkeeping error.
        """
        if isinstance(self, Leaf):
            if self.original_index not in index_map:
                raise ClusterTreeError(
                    f"No new index for leaf {self.element} (index {self.original_index})"
                )
            return Leaf(self.element, index_map[self.original_index])
        return Internal(
            self.distance,
            self.original_index,
            tuple(sub.remap_indices(index_map) for sub in self.subtrees),
        )

    def mirrored(self) -> ClusterTree[T]:
        """Reverse the left-to-right order of the whole subtree."""
        if isinstance(self, Leaf):
            return self
        return Internal(
            self.distance,
            self.original_index,
            tuple(sub.mirrored() for sub in reversed(self.subtrees)),
        )

    def drop_below(self, root_indices: Sequence[int], payloads: Sequence[U]) -> ClusterTree[U]:
        """
        Collapse subtrees rooted at ``root_indices`` into leaves.

        The subtree whose root has ``original_index == root_indices[k]`` is
        replaced by a leaf holding ``payloads[k]`` (keeping that index).
        Every leaf of this tree must lie under one of the given roots.
        """
        if len(root_indices) != len(payloads):
            raise ClusterTreeError(
                f"Got {len(root_indices)} root indices but {len(payloads)} payloads"
            )
        lookup = {index: k for k, index in enumerate(root_indices)}
        if len(lookup) != len(root_indices):
            raise ClusterTreeError("Root indices passed to drop_below must be unique")
        return self._drop_below(lookup, payloads)

    def _drop_below(self, lookup: Mapping[int, int], payloads: Sequence[U]) -> ClusterTree[U]:
        if self.original_index in lookup:
            return Leaf(payloads[lookup[self.original_index]], self.original_index)
        if isinstance(self, Leaf):
            raise ClusterTreeError(
                f"Leaf with index {self.original_index} is not below any of the given roots"
            )
        return Internal(
            self.distance,
            self.original_index,
            tuple(sub._drop_below(lookup, payloads) for sub in self.subtrees),
        )

    def to_newick(self, label: Callable[[T], str] = str) -> str:
        """
        Render the tree in Newick format.

        Branch lengths are the differences between merge heights, so the
        leaf-to-root path length equals the root's merge distance.
        """
        from Bio import Phylo
        from Bio.Phylo.BaseTree import Clade, Tree

        def build(node: ClusterTree[T], parent_distance: float | None) -> Clade:
            branch = None if parent_distance is None else parent_distance - node.distance
            if isinstance(node, Leaf):
                return Clade(branch_length=branch, name=label(node.element))
            return Clade(
                branch_length=branch,
                clades=[build(sub, node.distance) for sub in node.subtrees],
            )

        tree = Tree(root=build(self, None), rooted=True)
        output = StringIO()
        Phylo.write(tree, output, "newick")
        return output.getvalue().strip()


@dataclass(frozen=True)
class Leaf(ClusterTree[T]):
    """A single element at merge height zero."""

    element: T
    original_index: int

    @property
    def distance(self) -> float:
        return 0.0

    @property
    def subtrees(self) -> tuple[ClusterTree[T], ...]:
        return ()

    @property
    def elements(self) -> tuple[T, ...]:
        return (self.element,)

    def __repr__(self) -> str:
        return f"Leaf({self.element!s}, {self.original_index})"


@dataclass(frozen=True)
class Internal(ClusterTree[T]):
    """A merge of two or more subtrees at ``distance``."""

    merge_distance: float
    original_index: int
    children: tuple[ClusterTree[T], ...]

    def __post_init__(self) -> None:
        if len(self.children) < 1:
            raise ClusterTreeError("Internal node needs at least one subtree")
        if math.isnan(self.merge_distance) or self.merge_distance < 0:
            raise ClusterTreeError(
                f"Merge distance must be >= 0, got {self.merge_distance} "
                f"at node {self.original_index}"
            )

    @property
    def distance(self) -> float:
        return self.merge_distance

    @property
    def subtrees(self) -> tuple[ClusterTree[T], ...]:
        return self.children

    @cached_property
    def elements(self) -> tuple[T, ...]:
        return tuple(leaf.element for leaf in self.leaves())

    def __repr__(self) -> str:
        inner = ", ".join(repr(sub) for sub in self.children)
        return f"Internal({self.merge_distance}, {self.original_index}, [{inner}])"


def cut_tree(threshold: float, tree: ClusterTree[T]) -> list[ClusterTree[T]]:
    """
    Cut ``tree`` at ``threshold``.

    Returns the maximal subtrees whose merge distance is <= ``threshold``,
    in left-to-right order. Leaves (distance 0) are always kept whole, so a
    negative threshold splits the tree into its leaves.
    """
    result: list[ClusterTree[T]] = []
    stack: list[ClusterTree[T]] = [tree]
    while stack:
        node = stack.pop()
        if isinstance(node, Leaf) or node.distance <= threshold:
            result.append(node)
        else:
            stack.extend(reversed(node.subtrees))
    return result


def cut_elements(threshold: float, tree: ClusterTree[T]) -> list[tuple[T, ...]]:
    """Cut ``tree`` and return the element groups of the resulting subtrees."""
    return [sub.elements for sub in cut_tree(threshold, tree)]
