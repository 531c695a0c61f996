"""
Talefam: hierarchical family building for RVD-encoded effector sequences.

Clusters items by pairwise alignment cost, cuts the dendrogram into
families, maintains those families incrementally, and scores how
significant a family (or a new item's match to it) is under a null model
derived from the population's symbol frequencies.
"""

__version__ = "0.1.0"
__author__ = "Talefam Team"

from talefam.core.families.builder import FamilyBuilder
from talefam.core.families.family import Family
from talefam.models.config import FamilyConfig
from talefam.models.items import Item

__all__ = [
    "Family",
    "FamilyBuilder",
    "FamilyConfig",
    "Item",
    "__version__",
]
