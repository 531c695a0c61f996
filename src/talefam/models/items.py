"""
Pydantic model for RVD-encoded items.

An item is an identifier plus its sequence of repeat-variable diresidues
(RVDs). The clustering core only needs identity and the symbol sequence;
the strain label is carried for reporting.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from talefam.core.constants import GAP, RVD_SEPARATOR


class Item(BaseModel):
    """A single RVD sequence with its identifier."""

    id: str = Field(..., min_length=1, description="Unique item identifier")
    rvds: tuple[str, ...] = Field(..., min_length=1, description="RVD symbols in order")
    strain: str | None = Field(
        default=None,
        description="Strain or group label, used for reporting only",
    )

    @field_validator("rvds")
    @classmethod
    def validate_symbols(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Symbols must be non-empty and must not be the gap token."""
        for symbol in v:
            if not symbol or symbol == GAP or set(symbol) == {GAP}:
                msg = f"Invalid RVD symbol {symbol!r}"
                raise ValueError(msg)
        return v

    @classmethod
    def from_string(
        cls,
        item_id: str,
        rvds: str,
        strain: str | None = None,
        sep: str = RVD_SEPARATOR,
    ) -> Item:
        """
        Create an item from its textual RVD representation.

        Args:
            item_id: Item identifier.
            rvds: RVDs joined by ``sep``, e.g. ``"NI-NG-NN"``.
            strain: Optional strain label.
            sep: Separator between RVDs.

        Returns:
            Item with the parsed symbol tuple.
        """
        symbols = tuple(s.strip() for s in rvds.strip().split(sep) if s.strip())
        return cls(id=item_id, rvds=symbols, strain=strain)

    @property
    def rvd_string(self) -> str:
        return RVD_SEPARATOR.join(self.rvds)

    def symbol_at(self, index: int) -> str:
        return self.rvds[index]

    def __len__(self) -> int:
        return len(self.rvds)

    def __str__(self) -> str:
        return self.id

    model_config = {"frozen": True}
