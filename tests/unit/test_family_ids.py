"""Unit tests for family id generators."""

from __future__ import annotations

import itertools

import pytest

from talefam.core.exceptions import FamilyError
from talefam.core.families.ids import schema_family_ids, sequential_family_ids


class TestSequentialIds:
    def test_counts_from_one(self):
        assert list(itertools.islice(sequential_family_ids(set()), 3)) == ["1", "2", "3"]

    def test_skips_used(self):
        assert list(itertools.islice(sequential_family_ids({"1", "3"}), 3)) == ["2", "4", "5"]


class TestSchemaIds:
    def test_first_ids(self):
        assert list(itertools.islice(schema_family_ids(set()), 3)) == ["TalAA", "TalAB", "TalAC"]

    def test_skips_used(self):
        assert next(schema_family_ids({"TalAA", "TalAB"})) == "TalAC"

    def test_custom_prefix(self):
        assert next(schema_family_ids(set(), prefix="Fam")) == "FamAA"

    def test_exhausted(self):
        used = {f"Tal{a}{b}" for a, b in itertools.product("ABCDEFGHIJKLMNOPQRSTUVWXYZ", repeat=2)}
        with pytest.raises(FamilyError):
            next(schema_family_ids(used))
