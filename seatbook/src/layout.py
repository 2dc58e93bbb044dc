"""
Seat layout resolution for SeatBook.

A layout is an ordered list of floors. Each floor owns a seat number prefix
and a grid of `rows` x `columns` seats numbered in row-major order, so that
`A01` is the first seat of the floor using prefix `A`.

This module converts seat numbers into grid positions and generates the seat
numbers of a layout. It never raises for unknown seat numbers: when no floor
matches, a positional guess is made from the seat number alone.
"""

import re
from typing import Iterable, List, Optional
from pydantic import BaseModel, Field, field_validator

from seatbook.src.constants import (
    DEFAULT_FLOOR_LABELS,
    FALLBACK_COLUMNS,
    MAX_FLOORS,
    REGEX_SEAT_PREFIX,
    SEAT_NUMBER_PAD,
)

_leadingLetters = re.compile(r"^([A-Z]+)")
_leadingDigits = re.compile(r"^(\d+)")
_trailingDigits = re.compile(r"(\d+)$")


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------
class LayoutFloor(BaseModel):
    floor: int = Field(ge=1, le=MAX_FLOORS)
    prefix: str = Field(pattern=REGEX_SEAT_PREFIX)
    rows: int = Field(ge=1)
    columns: int = Field(ge=1)
    label: Optional[str] = Field(default=None, max_length=32)

    @field_validator("prefix")
    @classmethod
    def upperPrefix(cls, value: str) -> str:
        return value.strip().upper()

    def displayLabel(self) -> str:
        if self.label:
            return self.label
        return DEFAULT_FLOOR_LABELS.get(self.floor, f"Floor {self.floor}")


class SeatPosition(BaseModel):
    floor: int | str
    row: int
    col: int
    display_index: str
    columns: int
    prefix: Optional[str] = None
    label: Optional[str] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def toFloors(layoutConfig: Iterable[LayoutFloor | dict] | None) -> List[LayoutFloor]:
    """Accept stored JSON floors or LayoutFloor objects and return LayoutFloor objects."""
    if not layoutConfig:
        return []
    return [
        floor if isinstance(floor, LayoutFloor) else LayoutFloor.model_validate(floor)
        for floor in layoutConfig
    ]


def _grid(order: int, columns: int) -> tuple[int, int]:
    return (order - 1) // columns + 1, (order - 1) % columns + 1


def _fallback(seatNumber: str, fallbackIndex: int) -> SeatPosition:
    letters = _leadingLetters.match(seatNumber)
    if letters:
        floor = letters.group(1)
    elif seatNumber:
        floor = seatNumber[0]
    else:
        floor = f"F{fallbackIndex}"

    digits = _trailingDigits.search(seatNumber)
    order = int(digits.group(1)) if digits else 0
    if order <= 0:
        order = fallbackIndex + 1

    row, col = _grid(order, FALLBACK_COLUMNS)
    return SeatPosition(
        floor=floor,
        row=row,
        col=col,
        display_index=str(order),
        columns=FALLBACK_COLUMNS,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def resolvePosition(
    seatNumber: str,
    layoutConfig: Iterable[LayoutFloor | dict] | None,
    fallbackIndex: int = 0,
) -> SeatPosition:
    """
    Resolve the grid position of a seat number.

    The longest configured prefix that starts the seat number selects the
    floor ("AB" wins over "A"); the digits after it are the 1-based order of
    the seat on that floor.

    Args:
        seatNumber (str): Seat number such as `a03` or `B12`. Case-insensitive.
        layoutConfig (Iterable[LayoutFloor | dict] | None): Floors of the bus layout.
        fallbackIndex (int): Position of the seat in its listing, used when the
            seat number carries no usable order.

    Returns:
        SeatPosition: Floor, row and column of the seat. When no floor matches,
        the floor is the leading letters of the seat number and a 3 column
        grid is assumed.

    Example:
        >>> floors = [LayoutFloor(floor=1, prefix="A", rows=2, columns=2)]
        >>> resolvePosition("A03", floors)
        SeatPosition(floor=1, row=2, col=1, display_index='3', columns=2, ...)
        >>> resolvePosition("Z7", floors).floor
        'Z'
    """
    normalized = (seatNumber or "").strip().upper()
    floors = toFloors(layoutConfig)

    matched = None
    for floor in floors:
        if normalized.startswith(floor.prefix):
            if matched is None or len(floor.prefix) > len(matched.prefix):
                matched = floor

    if matched is not None:
        digits = _leadingDigits.match(normalized[len(matched.prefix) :])
        order = int(digits.group(1)) if digits else 0
        if order > 0:
            row, col = _grid(order, matched.columns)
            return SeatPosition(
                floor=matched.floor,
                row=row,
                col=col,
                display_index=str(order),
                columns=matched.columns,
                prefix=matched.prefix,
                label=matched.displayLabel(),
            )

    return _fallback(normalized, fallbackIndex)


def formatSeatNumber(prefix: str, order: int) -> str:
    return f"{prefix.upper()}{order:0{SEAT_NUMBER_PAD}d}"


def generateSeatNumbers(layoutConfig: Iterable[LayoutFloor | dict] | None) -> List[str]:
    """
    Generate every seat number of a layout.

    Floors are taken in configured order; within a floor seats are numbered
    row by row, left to right.

    Example:
        >>> generateSeatNumbers([LayoutFloor(floor=1, prefix="A", rows=2, columns=2)])
        ['A01', 'A02', 'A03', 'A04']
    """
    seatNumbers = []
    for floor in toFloors(layoutConfig):
        for order in range(1, floor.rows * floor.columns + 1):
            seatNumbers.append(formatSeatNumber(floor.prefix, order))
    return seatNumbers


def seatCount(layoutConfig: Iterable[LayoutFloor | dict] | None) -> int:
    return sum(floor.rows * floor.columns for floor in toFloors(layoutConfig))
