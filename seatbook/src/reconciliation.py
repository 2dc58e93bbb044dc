"""
Seat status reconciliation for SeatBook.

The status of every seat of a trip is merged from two sources:

1. Trip-scoped hints from the catalog service. A BOOKED hint is trusted
   as is.
2. The ticket ledger. A seat is booked when a PENDING or COMPLETED ticket
   exists for the trip; CANCELLED, FAILED and PAYMENT_FAILED tickets never
   book a seat.

Hidden seats are displayed as HIDDEN whatever their booking state, and are
never available for sale. Nothing is cached, so a cancellation is visible on
the next computation.
"""

from typing import Callable, Dict, Iterable, List, NamedTuple
from pydantic import BaseModel
from sqlalchemy.orm.session import Session

from seatbook.src import exceptions, getters, upstream
from seatbook.src.db import ACTIVE_TICKET_STATES, Seat, Ticket, Trip
from seatbook.src.enums import SeatStatus

STATUS_VERSION = 1

HintProvider = Callable[[int, int], Dict[int, SeatStatus]]


class SeatState(NamedTuple):
    seat: Seat
    status: SeatStatus
    booked: bool


class StatusSummary(BaseModel):
    total: int
    available: int
    booked: int
    hidden: int
    hidden_booked: int


def bookedSeatIds(session: Session, tripId: int) -> set[int]:
    rows = (
        session.query(Ticket.seat_id)
        .filter(
            Ticket.trip_id == tripId,
            Ticket.seat_id.isnot(None),
            Ticket.status.in_(ACTIVE_TICKET_STATES),
        )
        .all()
    )
    return {row.seat_id for row in rows}


def mergeStatus(
    seats: List[Seat], hints: Dict[int, SeatStatus], ledger: set[int]
) -> List[SeatState]:
    """Merge hints and ledger into the display status of each seat."""
    states = []
    for seat in seats:
        booked = hints.get(seat.id) == SeatStatus.BOOKED or seat.id in ledger
        if seat.is_hidden:
            status = SeatStatus.HIDDEN
        elif booked:
            status = SeatStatus.BOOKED
        else:
            status = SeatStatus.AVAILABLE
        states.append(SeatState(seat, status, booked))
    return states


def summarize(states: List[SeatState]) -> StatusSummary:
    counts = {status: 0 for status in SeatStatus}
    for state in states:
        counts[state.status] += 1
    return StatusSummary(
        total=len(states),
        available=counts[SeatStatus.AVAILABLE],
        booked=counts[SeatStatus.BOOKED],
        hidden=counts[SeatStatus.HIDDEN],
        hidden_booked=sum(
            1 for state in states if state.status == SeatStatus.HIDDEN and state.booked
        ),
    )


def syncTripCounters(session: Session, tripId: int) -> Trip:
    """
    Recompute `total_seats` and `available_seats` of a trip from the ledger.

    The trip row is locked while counting so concurrent batches do not
    overwrite each other with stale numbers.
    """
    trip = session.query(Trip).filter(Trip.id == tripId).with_for_update().first()
    if trip is None:
        raise exceptions.InvalidIdentifier()
    seats = session.query(Seat).filter(Seat.bus_id == trip.bus_id).all()
    summary = summarize(mergeStatus(seats, {}, bookedSeatIds(session, tripId)))
    trip.total_seats = summary.total
    trip.available_seats = summary.available
    session.commit()
    return trip


def syncBusTrips(session: Session, busIds: Iterable[int]) -> int:
    """Resynchronise the counters of every trip served by the given buses."""
    rows = (
        session.query(Trip.id)
        .filter(Trip.bus_id.in_(set(busIds)))
        .order_by(Trip.id)
        .all()
    )
    for row in rows:
        syncTripCounters(session, row.id)
    return len(rows)


class ReconciliationEngine:
    """
    Computes the canonical seat status of a trip.

    Args:
        hintProvider (HintProvider): Callable `(busId, tripId) -> {seatId: status}`
            returning trip-scoped hints. Defaults to the catalog service.
    """

    def __init__(self, hintProvider: HintProvider | None = None):
        self.hintProvider = hintProvider

    def seatStates(self, session: Session, tripId: int) -> List[SeatState]:
        trip = getters.trip(session, tripId)
        seats = (
            session.query(Seat).filter(Seat.bus_id == trip.bus_id).order_by(Seat.id).all()
        )
        hintProvider = self.hintProvider or upstream.seatHints
        hints = hintProvider(trip.bus_id, trip.id) or {}

        # The ledger is only read when some seat is not already known as booked
        if seats and all(hints.get(seat.id) == SeatStatus.BOOKED for seat in seats):
            ledger = set()
        else:
            ledger = bookedSeatIds(session, trip.id)
        return mergeStatus(seats, hints, ledger)

    def computeStatus(self, session: Session, tripId: int) -> Dict[int, SeatStatus]:
        """
        Return `{seat_id: AVAILABLE | BOOKED | HIDDEN}` for every seat of the trip.

        Raises:
            exceptions.InvalidIdentifier: If the trip is not known.
        """
        return {state.seat.id: state.status for state in self.seatStates(session, tripId)}

    def computeSummary(self, session: Session, tripId: int) -> StatusSummary:
        return summarize(self.seatStates(session, tripId))
