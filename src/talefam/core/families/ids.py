"""
Family identifier generators.

A generator receives the ids already in use and yields fresh ones in
order. Built families are numbered "1", "2", ...; new families created
later draw the next free id from the configured generator.
"""

from __future__ import annotations

import itertools
from collections.abc import Collection, Iterator
from typing import Protocol

from talefam.core.constants import FAMILY_ID_LETTERS, FAMILY_ID_PREFIX
from talefam.core.exceptions import FamilyError


class FamilyIdGenerator(Protocol):
    def __call__(self, used: Collection[str]) -> Iterator[str]: ...


def sequential_family_ids(used: Collection[str]) -> Iterator[str]:
    """Smallest positive integers (as strings) not in ``used``."""
    for number in itertools.count(1):
        candidate = str(number)
        if candidate not in used:
            yield candidate


def schema_family_ids(used: Collection[str], prefix: str = FAMILY_ID_PREFIX) -> Iterator[str]:
    """Ids ``TalAA`` .. ``TalZZ`` not in ``used``."""
    for first, second in itertools.product(FAMILY_ID_LETTERS, repeat=2):
        candidate = f"{prefix}{first}{second}"
        if candidate not in used:
            yield candidate
    raise FamilyError(
        f"All {len(FAMILY_ID_LETTERS) ** 2} family ids with prefix {prefix} are in use",
        suggestion="Use sequential family ids or reserve fewer names.",
    )
