"""Unit tests for induced multiple alignments."""

from __future__ import annotations

import pytest

from talefam.core.alignment import AffineAligner, AlignmentType, PairwiseAlignment, ungapped
from talefam.core.clustering import Hclust, Internal, Leaf, leaf_order
from talefam.core.distance_matrix import DistanceMatrix
from talefam.core.exceptions import InducedAlignmentError
from talefam.core.families.family import Family
from talefam.core.families.induced_alignment import alignment_text, induced_multiple_alignment
from talefam.models.items import Item


def _family(items: list[Item], aligner: AffineAligner, method: str = "boundary") -> Family:
    matrix = DistanceMatrix.from_items(items, aligner)
    tree = leaf_order(Hclust().cluster(matrix, items), matrix, method)
    return Family.create("F", tree, aligner)


def _assert_round_trip(items: list[Item], rows: list[tuple[str, ...]]) -> None:
    assert len({len(row) for row in rows}) == 1
    for item, row in zip(items, rows):
        assert ungapped(row) == item.rvds


class TestInducedAlignment:
    """Tests for the round-trip property and row layout."""

    def test_single_member(self):
        item = Item.from_string("solo", "NI-NG")
        family = Family.create("F", Leaf(item, 0), AffineAligner())
        items, rows = family.induced_multiple_alignment()
        assert items == [item]
        assert rows == [("NI", "NG")]

    def test_pair_uses_stored_alignment(self):
        a, b = Item.from_string("a", "NI-NG-NN"), Item.from_string("b", "NG-NN")
        family = _family([a, b], AffineAligner())
        items, rows = family.induced_multiple_alignment()
        first, second = items
        stored = family.alignment_for(first.id, second.id)
        assert rows == [stored.aligned_a, stored.aligned_b]

    def test_round_trip_with_varied_lengths(self, tale_items):
        family = _family(tale_items, AffineAligner())
        items, rows = family.induced_multiple_alignment()
        assert [item.id for item in items] == list(family.member_ids)
        _assert_round_trip(items, rows)

    def test_round_trip_global_alignments(self, tale_items):
        aligner = AffineAligner(alignment_type=AlignmentType.GLOBAL)
        items, rows = _family(tale_items, aligner, "optimal").induced_multiple_alignment()
        _assert_round_trip(items, rows)

    def test_round_trip_with_interior_gaps(self):
        items = [
            Item.from_string("x1", "NI-HD-NG-NN-NI-HD-NG"),
            Item.from_string("x2", "NI-HD-NN-NI-HD-NG"),
            Item.from_string("x3", "NI-HD-NG-NN-NI-NG"),
            Item.from_string("x4", "HD-NG-NN-NI-HD-NG-NN"),
        ]
        aligner = AffineAligner(gap_open=0.5, alignment_type=AlignmentType.GLOBAL)
        rows_items, rows = _family(items, aligner).induced_multiple_alignment()
        _assert_round_trip(rows_items, rows)

    def test_no_gap_only_columns(self, tale_items):
        _, rows = _family(tale_items, AffineAligner()).induced_multiple_alignment()
        for column in zip(*rows):
            assert any(token != "-" for token in column)

    def test_inconsistent_alignment_detected(self):
        a, b, c = (Item.from_string(i, "NI-NG") for i in ("a", "b", "c"))
        tree = Internal(1.0, -2, (Internal(0.0, -1, (Leaf(a, 0), Leaf(b, 1))), Leaf(c, 2)))
        good = PairwiseAlignment(0.0, ("NI", "NG"), ("NI", "NG"))
        broken = PairwiseAlignment(0.0, ("NI", "HD"), ("NI", "NG"))

        def lookup(id_a: str, id_b: str) -> PairwiseAlignment:
            return broken if (id_a, id_b) == ("b", "c") else good

        with pytest.raises(InducedAlignmentError):
            induced_multiple_alignment(tree, lookup, "F")


class TestAlignmentText:
    def test_columns_line_up(self):
        items = [Item.from_string("a", "NI-NG"), Item.from_string("long_id", "NG")]
        text = alignment_text(items, [("NI", "NG"), ("-", "NG")])
        lines = text.splitlines()
        assert lines[0] == "a        NI NG"
        assert lines[1] == "long_id  -- NG"

    def test_empty(self):
        assert alignment_text([], []) == ""
