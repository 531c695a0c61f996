"""Hierarchical clustering, tree cutting and leaf ordering."""

from talefam.core.clustering.hclust import Hclust, Linkage, linkage_distance
from talefam.core.clustering.ordering import leaf_order
from talefam.core.clustering.tree import ClusterTree, Internal, Leaf, cut_elements, cut_tree

__all__ = [
    "ClusterTree",
    "Hclust",
    "Internal",
    "Leaf",
    "Linkage",
    "cut_elements",
    "cut_tree",
    "leaf_order",
    "linkage_distance",
]
