"""
Pairwise alignment of RVD sequences with affine gap costs.

Provides the cost models (RVD-aware and flat match/mismatch), a Gotoh
three-state aligner supporting global and semi-global alignment, and the
``Aligner`` protocol that the clustering and family code depends on. Any
object with the same ``align`` signature can replace ``AffineAligner``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from enum import Enum
from typing import NamedTuple, Protocol

import numpy as np

from talefam.core.constants import (
    DEFAULT_EXTRA_GAP_EXTENSION,
    DEFAULT_EXTRA_GAP_OPENING,
    DEFAULT_GAP_COST,
    DEFAULT_GAP_OPEN,
    DEFAULT_MATCH_COST,
    DEFAULT_POSITION12_COST,
    DEFAULT_POSITION13_COST,
    GAP,
)
from talefam.models.items import Item

logger = logging.getLogger(__name__)


class AlignmentType(str, Enum):
    """Alignment mode."""

    GLOBAL = "global"
    SEMI_GLOBAL = "semi_global"


class PairwiseAlignment(NamedTuple):
    """Result of aligning two items: cost plus both gapped token rows."""

    cost: float
    aligned_a: tuple[str, ...]
    aligned_b: tuple[str, ...]

    def swapped(self) -> PairwiseAlignment:
        return PairwiseAlignment(self.cost, self.aligned_b, self.aligned_a)

    def __len__(self) -> int:
        return len(self.aligned_a)


def ungapped(row: Sequence[str]) -> tuple[str, ...]:
    """Drop gap tokens from an aligned row."""
    return tuple(token for token in row if token != GAP)


def format_row(row: Sequence[str], width: int = 2) -> str:
    """
    Render an aligned row as text.

    Symbols are separated by a single space and gaps are padded to the
    symbol width so that columns line up (``NI -- NG``).
    """
    return " ".join(GAP * width if token == GAP else token.ljust(width) for token in row)


class CostModel(Protocol):
    """Substitution and gap extension costs for symbol pairs."""

    gap: float

    def cost(self, a: str, b: str) -> float: ...


class RVDCosts:
    """
    Substitution costs for RVDs.

    Identical RVDs cost ``match``. Otherwise the residue at position 12
    (first character) adds ``position12`` when it differs and the residue
    at position 13 (second character) adds ``position13`` when it differs.
    RVDs lacking residue 13 (``N*``) differ from every two-residue RVD
    there.
    """

    __slots__ = ("gap", "match", "position12", "position13")

    def __init__(
        self,
        gap: float = DEFAULT_GAP_COST,
        position12: float = DEFAULT_POSITION12_COST,
        position13: float = DEFAULT_POSITION13_COST,
        match: float = DEFAULT_MATCH_COST,
    ) -> None:
        self.gap = gap
        self.position12 = position12
        self.position13 = position13
        self.match = match

    def cost(self, a: str, b: str) -> float:
        if a == b:
            return self.match
        total = 0.0
        if a[:1] != b[:1]:
            total += self.position12
        if a[1:] != b[1:]:
            total += self.position13
        return total

    def __repr__(self) -> str:
        return (
            f"RVDCosts(gap={self.gap}, position12={self.position12}, "
            f"position13={self.position13}, match={self.match})"
        )


class MatchMismatchCosts:
    """Flat costs: ``match`` for identical symbols, ``mismatch`` otherwise."""

    __slots__ = ("gap", "match", "mismatch")

    def __init__(self, match: float = 0.0, mismatch: float = 1.0, gap: float = 1.0) -> None:
        self.match = match
        self.mismatch = mismatch
        self.gap = gap

    def cost(self, a: str, b: str) -> float:
        return self.match if a == b else self.mismatch

    def __repr__(self) -> str:
        return f"MatchMismatchCosts(match={self.match}, mismatch={self.mismatch}, gap={self.gap})"


class Aligner(Protocol):
    """Pairwise aligner consumed by the distance matrix and family code."""

    costs: CostModel
    extra_gap_opening: float
    extra_gap_extension: float

    def align(self, a: Item, b: Item) -> PairwiseAlignment: ...


# DP states
_MATCH, _GAP_A, _GAP_B = 0, 1, 2


class AffineAligner:
    """
    Gotoh alignment with affine gap costs.

    An interior gap of length k costs ``gap_open + k * costs.gap``. In
    semi-global mode a gap that overhangs either end of the alignment
    costs ``extra_gap_opening + k * extra_gap_extension`` instead, so
    items of different lengths are compared mainly over their overlap.

    State ``_GAP_A`` consumes a symbol of ``b`` against a gap in ``a``;
    ``_GAP_B`` consumes a symbol of ``a`` against a gap in ``b``.
    """

    def __init__(
        self,
        costs: CostModel | None = None,
        gap_open: float = DEFAULT_GAP_OPEN,
        alignment_type: AlignmentType = AlignmentType.SEMI_GLOBAL,
        extra_gap_opening: float = DEFAULT_EXTRA_GAP_OPENING,
        extra_gap_extension: float = DEFAULT_EXTRA_GAP_EXTENSION,
    ) -> None:
        self.costs = costs if costs is not None else RVDCosts()
        self.gap_open = gap_open
        self.alignment_type = AlignmentType(alignment_type)
        self.extra_gap_opening = extra_gap_opening
        self.extra_gap_extension = extra_gap_extension

    def __repr__(self) -> str:
        return (
            f"AffineAligner(costs={self.costs!r}, gap_open={self.gap_open}, "
            f"alignment_type={self.alignment_type.value}, "
            f"extra_gap_opening={self.extra_gap_opening}, "
            f"extra_gap_extension={self.extra_gap_extension})"
        )

    def _gap_costs(self, terminal: bool) -> tuple[float, float]:
        """Return (open, extend) costs for an interior or terminal gap."""
        if terminal and self.alignment_type == AlignmentType.SEMI_GLOBAL:
            return self.extra_gap_opening, self.extra_gap_extension
        return self.gap_open, self.costs.gap

    def align(self, a: Item, b: Item) -> PairwiseAlignment:
        """Align ``a`` against ``b`` and return the cost and both gapped rows."""
        return self.align_symbols(a.rvds, b.rvds)

    def align_symbols(self, a: Sequence[str], b: Sequence[str]) -> PairwiseAlignment:
        m, n = len(a), len(b)
        inf = np.inf
        score = np.full((3, m + 1, n + 1), inf)
        # back[state, i, j] holds the predecessor state
        back = np.full((3, m + 1, n + 1), -1, dtype=np.int8)
        score[_MATCH, 0, 0] = 0.0

        for i in range(m + 1):
            for j in range(n + 1):
                if i > 0 and j > 0:
                    sub = self.costs.cost(a[i - 1], b[j - 1])
                    prev = score[:, i - 1, j - 1]
                    k = int(np.argmin(prev))
                    score[_MATCH, i, j] = prev[k] + sub
                    back[_MATCH, i, j] = k
                if j > 0:
                    # gap in a, consuming b[j-1]; terminal when a is exhausted or not started
                    open_cost, ext_cost = self._gap_costs(i == 0 or i == m)
                    opened = min(score[_MATCH, i, j - 1], score[_GAP_B, i, j - 1]) + open_cost + ext_cost
                    extended = score[_GAP_A, i, j - 1] + ext_cost
                    if extended <= opened:
                        score[_GAP_A, i, j] = extended
                        back[_GAP_A, i, j] = _GAP_A
                    else:
                        score[_GAP_A, i, j] = opened
                        back[_GAP_A, i, j] = (
                            _MATCH if score[_MATCH, i, j - 1] <= score[_GAP_B, i, j - 1] else _GAP_B
                        )
                if i > 0:
                    open_cost, ext_cost = self._gap_costs(j == 0 or j == n)
                    opened = min(score[_MATCH, i - 1, j], score[_GAP_A, i - 1, j]) + open_cost + ext_cost
                    extended = score[_GAP_B, i - 1, j] + ext_cost
                    if extended <= opened:
                        score[_GAP_B, i, j] = extended
                        back[_GAP_B, i, j] = _GAP_B
                    else:
                        score[_GAP_B, i, j] = opened
                        back[_GAP_B, i, j] = (
                            _MATCH if score[_MATCH, i - 1, j] <= score[_GAP_A, i - 1, j] else _GAP_A
                        )

        state = int(np.argmin(score[:, m, n]))
        cost = float(score[state, m, n])

        row_a: list[str] = []
        row_b: list[str] = []
        i, j = m, n
        while i > 0 or j > 0:
            previous = int(back[state, i, j])
            if state == _MATCH:
                row_a.append(a[i - 1])
                row_b.append(b[j - 1])
                i, j = i - 1, j - 1
            elif state == _GAP_A:
                row_a.append(GAP)
                row_b.append(b[j - 1])
                j -= 1
            else:
                row_a.append(a[i - 1])
                row_b.append(GAP)
                i -= 1
            state = previous

        return PairwiseAlignment(cost, tuple(reversed(row_a)), tuple(reversed(row_b)))
