"""
Seat catalog for SeatBook.

The catalog owns the seats of every bus and the stored seat layout. All
changes to seats go through this module so that the following hold:

- Seat numbers are uppercase and unique per bus.
- Bulk creation is all or nothing; the colliding numbers are reported.
- A seat referenced by a PENDING or COMPLETED ticket is never deleted.
- The seat counters of every trip of the bus are resynchronised after each change.

Functions take an open SQLAlchemy session and commit their own work.
Serializing concurrent writers of the same bus is the caller's job
(see `seatbook.src.redis.acquireLock`).
"""

from decimal import Decimal
from logging import getLogger
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm.session import Session

from seatbook.src import exceptions, getters, validators
from seatbook.src.constants import MAX_BULK_SEATS, REGEX_SEAT_NUMBER
from seatbook.src.db import ACTIVE_TICKET_STATES, Bus, Seat, SeatLayout, Ticket
from seatbook.src.enums import SeatType
from seatbook.src.functions import updateIfChanged
from seatbook.src.layout import LayoutFloor, generateSeatNumbers, seatCount
from seatbook.src.reconciliation import syncBusTrips

logger = getLogger("uvicorn.error")


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------
class SeatCreate(BaseModel):
    bus_id: int
    seat_number: str = Field(pattern=REGEX_SEAT_NUMBER)
    seat_type: SeatType = SeatType.STANDARD
    is_hidden: bool = False
    price_override: Optional[Decimal] = Field(default=None, ge=0)

    @field_validator("seat_number")
    @classmethod
    def upperSeatNumber(cls, value: str) -> str:
        return value.upper()


class SeatUpdate(BaseModel):
    id: int
    seat_type: Optional[SeatType] = None
    is_hidden: Optional[bool] = None
    price_override: Optional[Decimal] = Field(default=None, ge=0)


class DeleteSummary(BaseModel):
    deleted: int
    blocked: int
    blocked_seat_ids: List[int] = []


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def listSeats(session: Session, busId: int) -> List[Seat]:
    return session.query(Seat).filter(Seat.bus_id == busId).order_by(Seat.id).all()


def activeTicketExists(session: Session, seatId: int) -> bool:
    """True if any PENDING or COMPLETED ticket references the seat."""
    ticket = (
        session.query(Ticket.id)
        .filter(Ticket.seat_id == seatId, Ticket.status.in_(ACTIVE_TICKET_STATES))
        .first()
    )
    return ticket is not None


# ---------------------------------------------------------------------------
# Seats
# ---------------------------------------------------------------------------
def createSeats(session: Session, batch: List[SeatCreate]) -> List[Seat]:
    """
    Create a batch of seats, possibly across several buses.

    Every seat number is checked against the existing seats of its bus and
    against the rest of the batch before anything is written.

    Raises:
        exceptions.ExceededMaxLimit: If the batch is larger than `MAX_BULK_SEATS`.
        exceptions.UnknownValue: If a bus of the batch is not known.
        exceptions.SeatNumberCollision: With the colliding seat numbers; no seat is created.
    """
    validators.batchSize(batch, MAX_BULK_SEATS, Seat)
    if not batch:
        return []

    byBus: Dict[int, List[SeatCreate]] = {}
    for item in batch:
        byBus.setdefault(item.bus_id, []).append(item)

    collisions = set()
    for busId, items in byBus.items():
        getters.bus(session, busId)
        requested = [item.seat_number for item in items]
        seen = set()
        for number in requested:
            if number in seen:
                collisions.add(number)
            seen.add(number)
        existing = (
            session.query(Seat.seat_number)
            .filter(Seat.bus_id == busId, Seat.seat_number.in_(requested))
            .all()
        )
        collisions.update(row.seat_number for row in existing)

    if collisions:
        raise exceptions.SeatNumberCollision(collisions)

    seats = [
        Seat(
            bus_id=item.bus_id,
            seat_number=item.seat_number,
            seat_type=item.seat_type,
            is_hidden=item.is_hidden,
            price_override=item.price_override,
        )
        for item in batch
    ]
    session.add_all(seats)
    session.commit()
    for seat in seats:
        session.refresh(seat)

    for busId in byBus:
        _warnOverCapacity(session, busId)
    syncBusTrips(session, byBus)
    return seats


def updateSeats(session: Session, batch: List[SeatUpdate]) -> List[Seat]:
    """
    Apply partial updates to several seats in one transaction.

    Only the provided fields change. An unknown seat id rejects the whole batch.
    """
    validators.batchSize(batch, MAX_BULK_SEATS, Seat)
    if not batch:
        return []

    seatIds = [item.id for item in batch]
    query = session.query(Seat).filter(Seat.id.in_(seatIds))
    seats = {seat.id: seat for seat in query}
    if any(seatId not in seats for seatId in seatIds):
        raise exceptions.UnknownValue(Ticket.seat_id)

    for item in batch:
        updateIfChanged(
            seats[item.id],
            item,
            [Seat.seat_type.key, Seat.is_hidden.key, Seat.price_override.key],
            nullable=[Seat.price_override.key],
        )
    modified = [seat for seat in seats.values() if session.is_modified(seat)]
    if modified:
        session.commit()
        for seat in modified:
            session.refresh(seat)
        syncBusTrips(session, {seat.bus_id for seat in modified})
    return [seats[seatId] for seatId in dict.fromkeys(seatIds)]


def deleteSeat(session: Session, seatId: int) -> Optional[Seat]:
    """
    Delete a seat unless an active ticket references it.

    The seat row is locked first so a concurrent sale of the seat either
    completes before the check or waits until the delete is committed.

    Returns:
        Seat | None: The deleted seat, or None if it did not exist.

    Raises:
        exceptions.SeatInUse: If a PENDING or COMPLETED ticket references the seat.
    """
    seat = session.query(Seat).filter(Seat.id == seatId).with_for_update().first()
    if seat is None:
        return None
    if activeTicketExists(session, seat.id):
        session.rollback()
        raise exceptions.SeatInUse()
    session.delete(seat)
    session.commit()
    syncBusTrips(session, [seat.bus_id])
    return seat


def deleteAllSeatsForBus(session: Session, busId: int) -> DeleteSummary:
    """
    Delete every seat of a bus that is not referenced by an active ticket.

    Blocked seats are left in place and counted. Once the bus has no seats
    left, its stored layout is removed as well.
    """
    getters.bus(session, busId)
    seats = (
        session.query(Seat)
        .filter(Seat.bus_id == busId)
        .order_by(Seat.id)
        .with_for_update()
        .all()
    )
    blocked = []
    deleted = 0
    for seat in seats:
        if activeTicketExists(session, seat.id):
            blocked.append(seat.id)
            continue
        session.delete(seat)
        deleted += 1

    if not blocked:
        session.query(SeatLayout).filter(SeatLayout.bus_id == busId).delete()
    session.commit()
    syncBusTrips(session, [busId])
    return DeleteSummary(deleted=deleted, blocked=len(blocked), blocked_seat_ids=blocked)


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------
def getLayout(session: Session, busId: int) -> List[LayoutFloor]:
    floors = getters.layoutFloors(session, busId)
    return [LayoutFloor.model_validate(floor) for floor in floors]


def saveLayout(session: Session, busId: int, floors: List[LayoutFloor]) -> SeatLayout:
    """Validate and store the layout of a bus, replacing any previous layout."""
    bus = getters.bus(session, busId)
    validators.seatLayout(floors, bus)
    floorData = [floor.model_dump() for floor in floors]

    layout = session.query(SeatLayout).filter(SeatLayout.bus_id == busId).first()
    if layout is None:
        layout = SeatLayout(bus_id=busId, floors=floorData)
        session.add(layout)
    else:
        layout.floors = floorData
    session.commit()
    session.refresh(layout)

    if seatCount(floors) > bus.capacity:
        logger.warning(
            "Layout of bus %s has %s seats, capacity is %s",
            busId,
            seatCount(floors),
            bus.capacity,
        )
    return layout


def generateSeats(
    session: Session,
    busId: int,
    seatType: SeatType = SeatType.STANDARD,
    priceOverride: Optional[Decimal] = None,
    allowOverCapacity: bool = False,
) -> List[Seat]:
    """
    Create the seats described by the stored layout of a bus.

    Raises:
        exceptions.InvalidLayout: If the bus has no stored layout.
        exceptions.ExceededMaxLimit: If the layout holds more seats than the
            bus capacity and `allowOverCapacity` is not set.
        exceptions.SeatNumberCollision: If some of the numbers already exist.
    """
    bus = getters.bus(session, busId)
    floors = getLayout(session, busId)
    if not floors:
        raise exceptions.InvalidLayout("The bus has no seat layout")
    if seatCount(floors) > bus.capacity and not allowOverCapacity:
        raise exceptions.ExceededMaxLimit(Bus)

    batch = [
        SeatCreate(
            bus_id=busId,
            seat_number=number,
            seat_type=seatType,
            price_override=priceOverride,
        )
        for number in generateSeatNumbers(floors)
    ]
    return createSeats(session, batch)


def _warnOverCapacity(session: Session, busId: int) -> None:
    bus = session.query(Bus).filter(Bus.id == busId).first()
    total = session.query(Seat).filter(Seat.bus_id == busId).count()
    if bus is not None and total > bus.capacity:
        logger.warning("Bus %s has %s seats, capacity is %s", busId, total, bus.capacity)
