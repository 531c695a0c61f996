"""
Parsers for item tables using Polars.

An item table lists one item per row with its identifier, its RVDs joined
by a separator, and optionally a strain label. Tab- and comma-separated
files are accepted, compressed or not.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import ClassVar

import polars as pl

from talefam.core.constants import RVD_SEPARATOR
from talefam.core.exceptions import DuplicateItemError, EmptyItemListError
from talefam.models.items import Item

logger = logging.getLogger(__name__)


class ItemTableParser:
    """
    Parser for item tables.

    Expected format:
    - Header row with at least the columns ``id`` and ``rvds``
    - Optional ``strain`` column
    - RVDs joined by ``-`` (e.g. ``NI-HD-NG-NN``)
    """

    REQUIRED_COLUMNS: ClassVar[tuple[str, ...]] = ("id", "rvds")

    def __init__(self, path: Path, separator: str = RVD_SEPARATOR) -> None:
        """
        Initialize item table parser.

        Args:
            path: Path to the item table (CSV/TSV).
            separator: Separator between RVDs in the ``rvds`` column.
        """
        self.path = path
        self.separator = separator
        self._validate_path()

    def _validate_path(self) -> None:
        if not self.path.exists():
            msg = f"Item table not found: {self.path}"
            raise FileNotFoundError(msg)

    def parse(self) -> pl.DataFrame:
        """
        Read the table into a DataFrame.

        Raises:
            ValueError: If required columns are missing or contain nulls.
        """
        path_str = str(self.path)
        field_separator = "," if path_str.endswith((".csv", ".csv.gz")) else "\t"
        df = pl.read_csv(
            self.path,
            separator=field_separator,
            has_header=True,
            infer_schema_length=0,
        )

        missing = [c for c in self.REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            msg = f"Item table {self.path} lacks required columns: {', '.join(missing)}"
            raise ValueError(msg)

        required = df.select(self.REQUIRED_COLUMNS)
        if required.null_count().sum_horizontal()[0] > 0:
            msg = f"Item table {self.path} has rows without id or rvds"
            raise ValueError(msg)
        return df

    def items(self) -> list[Item]:
        """
        Parse the table into items, in file order.

        Raises:
            EmptyItemListError: If the table has no rows.
            DuplicateItemError: If an id occurs more than once.
        """
        df = self.parse()
        if df.is_empty():
            raise EmptyItemListError(f"read items from {self.path}")

        duplicated = df.filter(pl.col("id").is_duplicated())["id"].unique().to_list()
        if duplicated:
            raise DuplicateItemError(duplicated)

        has_strain = "strain" in df.columns
        items = [
            Item.from_string(
                row["id"],
                row["rvds"],
                strain=row["strain"] if has_strain else None,
                sep=self.separator,
            )
            for row in df.iter_rows(named=True)
        ]
        logger.info(f"Read {len(items)} items from {self.path}")
        return items


def write_item_table(items: list[Item], path: Path) -> None:
    """Write items as a tab-separated table readable by ``ItemTableParser``."""
    df = pl.DataFrame(
        {
            "id": [item.id for item in items],
            "rvds": [item.rvd_string for item in items],
            "strain": [item.strain for item in items],
        },
        schema={"id": pl.Utf8, "rvds": pl.Utf8, "strain": pl.Utf8},
    )
    df.write_csv(path, separator="\t")
