"""
Dense pairwise distance matrix over an ordered item list.

Distances are alignment costs computed in both directions. The matrix is
validated on construction (square, finite, non-negative, zero diagonal)
and optionally checked for symmetry, since linkage computations only read
the lower triangle.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from talefam.core.alignment import Aligner
from talefam.core.constants import SYMMETRY_TOLERANCE
from talefam.core.exceptions import (
    AsymmetricDistanceError,
    DistanceMatrixShapeError,
    IndexBookkeepingError,
    InvalidDistanceError,
)
from talefam.models.items import Item

logger = logging.getLogger(__name__)


class DistanceMatrix:
    """
    Square float64 distance matrix addressed by dense integer indices.

    Row ``i`` belongs to the ``i``-th item of the list the matrix was built
    from. Instances are treated as immutable: ``extend`` and ``restrict``
    return new matrices.
    """

    __slots__ = ("_values",)

    def __init__(self, values: np.ndarray | Sequence[Sequence[float]]) -> None:
        array = np.array(values, dtype=np.float64)
        if array.ndim != 2 or array.shape[0] != array.shape[1]:
            rows = array.shape[0] if array.ndim >= 1 else 0
            cols = array.shape[1] if array.ndim == 2 else 0
            raise DistanceMatrixShapeError(rows, cols)

        invalid_mask = ~np.isfinite(array) | (array < 0)
        np.fill_diagonal(invalid_mask, np.diag(invalid_mask) | (np.diag(array) != 0))
        if invalid_mask.any():
            invalid = [(int(i), int(j), float(array[i, j])) for i, j in np.argwhere(invalid_mask)]
            raise InvalidDistanceError(invalid)

        array.setflags(write=False)
        self._values = array

    @classmethod
    def from_items(
        cls,
        items: Sequence[Item],
        aligner: Aligner,
        symmetry_tolerance: float | None = SYMMETRY_TOLERANCE,
    ) -> DistanceMatrix:
        """
        Align every ordered pair of items and collect the costs.

        Args:
            items: Items in row order.
            aligner: Pairwise aligner.
            symmetry_tolerance: Maximum allowed |d(i,j) - d(j,i)|; None
                disables the check.

        Returns:
            DistanceMatrix with a zero diagonal.

        Raises:
            AsymmetricDistanceError: If the aligner is not symmetric within
                the tolerance.
        """
        n = len(items)
        values = np.zeros((n, n), dtype=np.float64)
        for i in range(n):
            for j in range(n):
                if i != j:
                    values[i, j] = aligner.align(items[i], items[j]).cost
        matrix = cls(values)
        matrix.check_symmetry(symmetry_tolerance)
        logger.info(f"Computed distance matrix for {n} items")
        return matrix

    def extend(
        self,
        old_items: Sequence[Item],
        new_items: Sequence[Item],
        aligner: Aligner,
        symmetry_tolerance: float | None = SYMMETRY_TOLERANCE,
    ) -> DistanceMatrix:
        """
        Add rows and columns for ``new_items``, reusing the existing block.

        Only pairs involving at least one new item are aligned, so the work
        is proportional to ``len(new_items) * (len(old_items) + len(new_items))``.
        """
        n_old = len(self)
        if len(old_items) != n_old:
            raise DistanceMatrixShapeError(n_old, n_old, expected=len(old_items))

        items = [*old_items, *new_items]
        n = len(items)
        values = np.zeros((n, n), dtype=np.float64)
        values[:n_old, :n_old] = self._values
        for i in range(n):
            for j in range(max(i + 1, n_old), n):
                values[i, j] = aligner.align(items[i], items[j]).cost
                values[j, i] = aligner.align(items[j], items[i]).cost
        matrix = DistanceMatrix(values)
        matrix.check_symmetry(symmetry_tolerance)
        logger.info(f"Extended distance matrix from {n_old} to {n} items")
        return matrix

    def restrict(self, keep: Sequence[int]) -> DistanceMatrix:
        """Return the submatrix of the rows and columns in ``keep``, in that order."""
        for index in keep:
            self.require_index(index)
        idx = np.asarray(keep, dtype=np.intp)
        return DistanceMatrix(self._values[np.ix_(idx, idx)])

    def check_symmetry(self, tolerance: float | None) -> None:
        """Raise AsymmetricDistanceError if any pair differs by more than ``tolerance``."""
        if tolerance is None or len(self) < 2:
            return
        diff = np.abs(self._values - self._values.T)
        if diff.max() > tolerance:
            i, j = np.unravel_index(int(np.argmax(diff)), diff.shape)
            raise AsymmetricDistanceError(
                int(i), int(j), float(self._values[i, j]), float(self._values[j, i]), tolerance
            )

    def require_index(self, index: int) -> None:
        if not 0 <= index < len(self):
            raise IndexBookkeepingError(index, len(self))

    def get(self, i: int, j: int) -> float:
        return float(self._values[i, j])

    def lower(self, i: int, j: int) -> float:
        """Distance read from the lower triangle, ``d(max(i,j), min(i,j))``."""
        return float(self._values[max(i, j), min(i, j)])

    @property
    def values(self) -> np.ndarray:
        return self._values

    def max_asymmetry(self) -> float:
        if len(self) == 0:
            return 0.0
        return float(np.abs(self._values - self._values.T).max())

    def to_list(self) -> list[list[float]]:
        return self._values.tolist()

    def __len__(self) -> int:
        return int(self._values.shape[0])

    def __getitem__(self, key: tuple[int, int]) -> float:
        i, j = key
        return float(self._values[i, j])

    def __repr__(self) -> str:
        return f"DistanceMatrix(n={len(self)})"
