"""
Custom exceptions with actionable guidance.

Provides specific error types for the failure scenarios of family
building, each with a suggestion for resolution.
"""

from __future__ import annotations

from collections.abc import Iterable


class TalefamError(Exception):
    """Base exception for talefam errors."""

    def __init__(self, message: str, suggestion: str | None = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self.full_message)

    @property
    def full_message(self) -> str:
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


def _preview(values: Iterable[object], limit: int = 5) -> str:
    values = [str(v) for v in values]
    text = ", ".join(values[:limit])
    if len(values) > limit:
        text += f"... and {len(values) - limit} more"
    return text


class ConfigurationError(TalefamError):
    """Raised when configuration is invalid."""


class InvalidThresholdError(ConfigurationError):
    """Raised when a threshold parameter is out of valid range."""

    def __init__(self, param_name: str, value: float, min_val: float, max_val: float):
        super().__init__(
            message=f"{param_name} = {value} is out of valid range [{min_val}, {max_val}]",
            suggestion=f"Set {param_name} to a value between {min_val} and {max_val}.",
        )
        self.param_name = param_name
        self.value = value


class EmptyItemListError(ConfigurationError):
    """Raised when an operation needs at least one item but got none."""

    def __init__(self, operation: str):
        super().__init__(
            message=f"Cannot {operation}: the item list is empty",
            suggestion="Provide at least one item with a non-empty RVD sequence.",
        )


class DuplicateItemError(ConfigurationError):
    """Raised when item identifiers are not unique."""

    def __init__(self, duplicates: Iterable[str]):
        duplicates = sorted(set(duplicates))
        super().__init__(
            message=f"Duplicate item identifiers: {_preview(duplicates)}",
            suggestion=(
                "Item ids must be unique within a family builder. Rename the "
                "duplicated items or remove them before adding."
            ),
        )
        self.duplicates = duplicates


class DistanceMatrixError(TalefamError):
    """Base class for distance matrix errors."""


class DistanceMatrixShapeError(DistanceMatrixError):
    """Raised when a distance matrix is not square or does not match its items."""

    def __init__(self, rows: int, cols: int, expected: int | None = None):
        if expected is None:
            message = f"Distance matrix is not square: {rows} rows x {cols} columns"
        else:
            message = (
                f"Distance matrix has {rows} x {cols} entries but {expected} "
                f"items were given"
            )
        super().__init__(
            message=message,
            suggestion=(
                "Recompute the distance matrix from the same ordered item list "
                "that is passed to the clusterer."
            ),
        )
        self.rows = rows
        self.cols = cols


class InvalidDistanceError(DistanceMatrixError):
    """Raised when a distance matrix contains non-finite or negative entries."""

    def __init__(self, invalid: list[tuple[int, int, float]]):
        example_str = ", ".join(f"d({i},{j}) = {val}" for i, j, val in invalid[:3])
        super().__init__(
            message=f"Distance matrix contains invalid values: {example_str}",
            suggestion=(
                "Alignment costs must be finite and non-negative. Check the cost "
                "model handed to the aligner."
            ),
        )


class AsymmetricDistanceError(DistanceMatrixError):
    """Raised when d(i,j) and d(j,i) disagree beyond the tolerance."""

    def __init__(self, i: int, j: int, forward: float, backward: float, tolerance: float):
        super().__init__(
            message=(
                f"Distance matrix is not symmetric: d({i},{j}) = {forward} but "
                f"d({j},{i}) = {backward} (tolerance {tolerance})"
            ),
            suggestion=(
                "Linkage reads only one triangle of the matrix, so the aligner "
                "must yield the same cost in both directions. Use a symmetric "
                "cost model, or raise symmetry_tolerance (None disables the check)."
            ),
        )
        self.i = i
        self.j = j


class IndexBookkeepingError(DistanceMatrixError):
    """Raised when a tree refers to a row the distance matrix does not have."""

    def __init__(self, index: int, size: int):
        super().__init__(
            message=f"distance matrix row missing for index {index} (matrix has {size} rows)",
            suggestion=(
                "The cluster tree and the distance matrix are out of sync. Rebuild "
                "the families from the full item list."
            ),
        )
        self.index = index


class ClusterTreeError(TalefamError):
    """Raised when a cluster tree is malformed for the requested operation."""


class FamilyError(TalefamError):
    """Base class for family maintenance errors."""


class UnknownFamilyError(FamilyError):
    """Raised when a family id or index does not exist."""

    def __init__(self, family: str | int, available: Iterable[str] = ()):
        available = list(available)
        suggestion = "List the current families with 'talefam report'."
        if available:
            suggestion = f"Known families: {_preview(available, 10)}"
        super().__init__(message=f"Unknown family: {family}", suggestion=suggestion)
        self.family = family


class FamilySplitError(FamilyError):
    """Raised when a family cannot be split any further."""

    def __init__(self, family_id: str):
        super().__init__(
            message=f"Family {family_id} has a single member and cannot be split",
            suggestion="Only families with at least two members can be split.",
        )


class ItemNotFoundError(FamilyError):
    """Raised when items to remove are not part of the builder."""

    def __init__(self, item_ids: Iterable[str]):
        item_ids = sorted(item_ids)
        super().__init__(
            message=f"Items not found in any family: {_preview(item_ids)}",
            suggestion="Check the item ids against the families' member lists.",
        )
        self.item_ids = item_ids


class NoFamiliesError(FamilyError):
    """Raised when a family query runs against a builder without families."""

    def __init__(self):
        super().__init__(
            message="The family builder holds no families",
            suggestion="Build families from at least one item before querying.",
        )


class AlignmentLookupError(FamilyError):
    """Raised when a stored pairwise alignment is requested for non-members."""

    def __init__(self, family_id: str, id_a: str, id_b: str):
        super().__init__(
            message=f"No stored alignment for {id_a} vs {id_b} in family {family_id}",
            suggestion="Both items must be distinct members of the family.",
        )


class InducedAlignmentError(FamilyError):
    """Raised when an induced multiple alignment violates its round-trip invariant."""

    def __init__(self, family_id: str, detail: str):
        super().__init__(
            message=f"Induced alignment of family {family_id} is inconsistent: {detail}",
            suggestion=(
                "The stored pairwise alignments do not agree with the member "
                "sequences. Rebuild the family so alignments are recomputed."
            ),
        )


class SignificanceError(TalefamError):
    """Base class for significance computation errors."""


class UnknownSymbolError(SignificanceError):
    """Raised when a query uses a symbol the significance engine has no cost table for."""

    def __init__(self, symbol: str, alphabet: Iterable[str]):
        super().__init__(
            message=f"Symbol '{symbol}' is not part of the significance alphabet",
            suggestion=(
                f"Known symbols: {_preview(sorted(alphabet), 12)}. Build the engine "
                "with an alphabet that includes every symbol you query."
            ),
        )
        self.symbol = symbol
