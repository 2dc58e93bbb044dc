"""
Validation checks for SeatBook API.

This module centralizes guard logic such as:
- State transition enforcement
- Seat layout validation against the bus
- Batch size limits

All functions raise appropriate exceptions from `seatbook.src.exceptions`
when validation fails, ensuring consistent error handling.
"""

from typing import Any, List
from sqlalchemy import Column

from seatbook.src import exceptions
from seatbook.src.db import Bus
from seatbook.src.constants import MAX_FLOORS
from seatbook.src.functions import isValidTransition
from seatbook.src.layout import LayoutFloor


# ---------------------------------------------------------------------------
# State transitions
# ---------------------------------------------------------------------------
def stateTransition(
    transitions: dict[Any, list[Any]], old_state: Any, new_state: Any, state: Column
) -> bool:
    """
    Validate whether a state transition is allowed.

    Args:
        transitions (dict[Any, list[Any]]): Mapping of valid transitions.
        old_state (Any): Current state value.
        new_state (Any): Desired new state value.
        state (Column): SQLAlchemy column representing the state
            (used to format error messages).

    Returns:
        bool: True if the transition is valid.

    Raises:
        exceptions.InvalidTransition: If the transition is not permitted.
    """
    if not isValidTransition(transitions, old_state, new_state):
        raise exceptions.InvalidTransition(state)
    return True


# ---------------------------------------------------------------------------
# Seat layout
# ---------------------------------------------------------------------------
def seatLayout(floors: List[LayoutFloor], bus: Bus) -> bool:
    """
    Validate a seat layout against the bus it is configured for.

    Conditions:
        - At least one floor, and no more floors than the bus has decks.
        - Floor numbers are unique and within the decks of the bus.
        - Prefixes are unique, ignoring case.

    Raises:
        exceptions.InvalidLayout: If any condition fails.
    """
    floorLimit = min(bus.floor_count or 1, MAX_FLOORS)
    if not floors:
        raise exceptions.InvalidLayout("At least one floor is required")
    if len(floors) > floorLimit:
        raise exceptions.InvalidLayout(f"The bus has only {floorLimit} floor(s)")

    floorNumbers = [floor.floor for floor in floors]
    if len(set(floorNumbers)) != len(floorNumbers):
        raise exceptions.InvalidLayout("Floor numbers must be unique")
    if any(number > floorLimit for number in floorNumbers):
        raise exceptions.InvalidLayout(f"Floor number exceeds {floorLimit}")

    prefixes = [floor.prefix.upper() for floor in floors]
    if len(set(prefixes)) != len(prefixes):
        raise exceptions.InvalidLayout("Seat number prefixes must be unique")
    return True


# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------
def batchSize(items: list, limit: int, orm_class) -> bool:
    """Raise `ExceededMaxLimit` when a request carries more than `limit` items."""
    if len(items) > limit:
        raise exceptions.ExceededMaxLimit(orm_class)
    return True
