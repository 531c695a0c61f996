"""
Induced multiple alignment of a family.

Builds a multi-row alignment of all family members from the stored
pairwise alignments only. The merge tree fixes the leaf order; adjacent
members (last member of one child block, first member of the next) are
connected through their pairwise alignment, and gaps are reconciled so
that every block agrees column-for-column with the connecting alignment.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from talefam.core.alignment import PairwiseAlignment, format_row, ungapped
from talefam.core.clustering.tree import ClusterTree, Leaf
from talefam.core.constants import GAP
from talefam.core.exceptions import InducedAlignmentError
from talefam.models.items import Item

logger = logging.getLogger(__name__)

Row = list[str]
AlignmentLookup = Callable[[str, str], PairwiseAlignment]


def _merge_blocks(
    top: list[Row],
    top_anchor: int,
    bottom: list[Row],
    bottom_anchor: int,
    family_id: str,
) -> tuple[list[Row], list[Row]]:
    """
    Merge two blocks that share one sequence.

    ``top[top_anchor]`` and ``bottom[bottom_anchor]`` hold the same
    sequence with different gaps. Both anchor rows are walked from the end
    backward. Where only one of them has a gap, a gap is inserted into
    every row of the other block at that column.

    Returns:
        Both blocks widened to the same number of columns.
    """
    anchor_a, anchor_b = top[top_anchor], bottom[bottom_anchor]
    cols_top: list[list[str]] = []
    cols_bottom: list[list[str]] = []
    gaps_top = [GAP] * len(top)
    gaps_bottom = [GAP] * len(bottom)
    i, j = len(anchor_a) - 1, len(anchor_b) - 1

    while i >= 0 or j >= 0:
        a = anchor_a[i] if i >= 0 else None
        b = anchor_b[j] if j >= 0 else None
        if a == GAP:
            cols_top.append([row[i] for row in top])
            cols_bottom.append(gaps_bottom)
            i -= 1
        elif b == GAP:
            cols_top.append(gaps_top)
            cols_bottom.append([row[j] for row in bottom])
            j -= 1
        elif a is not None and b is not None:
            if a != b:
                raise InducedAlignmentError(
                    family_id, f"shared sequence differs ({a} vs {b}) while merging blocks"
                )
            cols_top.append([row[i] for row in top])
            cols_bottom.append([row[j] for row in bottom])
            i -= 1
            j -= 1
        else:
            raise InducedAlignmentError(
                family_id, "shared sequence has different lengths in the merged blocks"
            )

    cols_top.reverse()
    cols_bottom.reverse()
    return (
        [[col[r] for col in cols_top] for r in range(len(top))],
        [[col[r] for col in cols_bottom] for r in range(len(bottom))],
    )


def _drop_gap_columns(rows: list[Row]) -> list[Row]:
    if not rows:
        return rows
    keep = [c for c in range(len(rows[0])) if any(row[c] != GAP for row in rows)]
    return [[row[c] for c in keep] for row in rows]


def _block(
    node: ClusterTree[Item], lookup: AlignmentLookup, family_id: str
) -> tuple[list[Item], list[Row]]:
    if isinstance(node, Leaf):
        return [node.element], [list(node.element.rvds)]

    children = node.subtrees
    if len(children) == 2 and all(isinstance(c, Leaf) for c in children):
        first, second = children[0].element, children[1].element
        pair = lookup(first.id, second.id)
        return [first, second], [list(pair.aligned_a), list(pair.aligned_b)]

    items, rows = _block(children[0], lookup, family_id)
    for child in children[1:]:
        next_items, next_rows = _block(child, lookup, family_id)
        prev, curr = items[-1], next_items[0]
        pair = lookup(prev.id, curr.id)

        # widen the connecting alignment to the block so far, through prev
        rows, pair_rows = _merge_blocks(
            rows, len(rows) - 1, [list(pair.aligned_a), list(pair.aligned_b)], 0, family_id
        )
        # then the next block, through curr
        merged, next_rows = _merge_blocks(
            [*rows, pair_rows[1]], len(rows), next_rows, 0, family_id
        )
        rows = merged[:-1]

        items = items + next_items
        rows = rows + next_rows

    return items, _drop_gap_columns(rows)


def induced_multiple_alignment(
    tree: ClusterTree[Item],
    lookup: AlignmentLookup,
    family_id: str = "",
) -> tuple[list[Item], list[tuple[str, ...]]]:
    """
    Compute the induced multiple alignment of the members of ``tree``.

    Args:
        tree: Family tree; its leaf order is the row order.
        lookup: Returns the stored pairwise alignment for two member ids.
        family_id: Used in error messages.

    Returns:
        Members in leaf order and one aligned token row per member.

    Raises:
        InducedAlignmentError: If a row does not reproduce its member's
            sequence once gaps are removed.
    """
    items, rows = _block(tree, lookup, family_id)
    for item, row in zip(items, rows):
        if ungapped(row) != item.rvds:
            raise InducedAlignmentError(family_id, f"row of {item.id} does not match its sequence")
    if len({len(row) for row in rows}) > 1:
        raise InducedAlignmentError(family_id, "rows have different lengths")
    logger.debug(f"Induced alignment of family {family_id}: {len(rows)} rows")
    return items, [tuple(row) for row in rows]


def alignment_text(items: Sequence[Item], rows: Sequence[Sequence[str]]) -> str:
    """Render aligned rows with their item ids, one member per line."""
    if not items:
        return ""
    width = max(len(token) for row in rows for token in row if token != GAP)
    name_width = max(len(item.id) for item in items)
    return "\n".join(
        f"{item.id.ljust(name_width)}  {format_row(row, width)}" for item, row in zip(items, rows)
    )
