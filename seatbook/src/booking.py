"""
Ticket issuance and lifecycle for SeatBook.

`BookingCoordinator` is the only writer of tickets. Issuing tickets for a
batch of seats processes every seat independently: one seat being taken
does not fail the others, and the caller receives the outcome of each seat.

Double selling is prevented by the storage layer. A partial unique index on
`ticket(trip_id, seat_id)` covering PENDING and COMPLETED tickets makes the
check-and-insert atomic; a violation is reported as `SeatUnavailable`.

Ticket states:

    PENDING   -> COMPLETED | CANCELLED | FAILED | PAYMENT_FAILED
    COMPLETED -> CANCELLED

Every other state is terminal.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, List, NamedTuple, Optional
from pydantic import BaseModel
from psycopg2.errorcodes import UNIQUE_VIOLATION
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.session import Session

from seatbook.src import exceptions, getters, validators
from seatbook.src.constants import MAX_ISSUE_CONCURRENCY, MAX_SEATS_PER_ISSUE
from seatbook.src.db import (
    ACTIVE_TICKET_STATES,
    Seat,
    Ticket,
    Trip,
    generateTicketCode,
    sessionMaker,
)
from seatbook.src.enums import SaleMode, TicketStatus
from seatbook.src.pricing import priceFor
from seatbook.src.reconciliation import syncTripCounters

TICKET_TRANSITIONS = {
    TicketStatus.PENDING: [
        TicketStatus.COMPLETED,
        TicketStatus.CANCELLED,
        TicketStatus.FAILED,
        TicketStatus.PAYMENT_FAILED,
    ],
    TicketStatus.COMPLETED: [TicketStatus.CANCELLED],
}

INITIAL_STATUS = {
    SaleMode.ONLINE: TicketStatus.PENDING,
    SaleMode.COUNTER: TicketStatus.COMPLETED,
}


class SeatFailure(BaseModel):
    seat_id: int
    reason: str
    message: Optional[str] = None


class IssueResult(NamedTuple):
    succeeded: List[Ticket]
    failed: List[SeatFailure]


class BookingCoordinator:
    """
    Issues and manages tickets.

    Args:
        sessionFactory (Callable[[], Session]): Creates the session used by
            each seat worker. Defaults to the application session maker.
        maxConcurrency (int): Maximum number of seats processed at once.
    """

    def __init__(
        self,
        sessionFactory: Callable[[], Session] = sessionMaker,
        maxConcurrency: int = MAX_ISSUE_CONCURRENCY,
    ):
        self.sessionFactory = sessionFactory
        self.maxConcurrency = max(1, maxConcurrency)

    # -----------------------------------------------------------------------
    # Issuance
    # -----------------------------------------------------------------------
    async def issue(
        self,
        tripId: int,
        seatIds: List[int],
        userId: Optional[int],
        mode: SaleMode,
    ) -> IssueResult:
        """
        Issue one ticket per seat for a trip.

        COUNTER sales are COMPLETED immediately, ONLINE sales start PENDING
        until the payment outcome is reported. Seats are processed with at
        most `maxConcurrency` in flight and the call returns once every seat
        has an outcome. Results keep the order of `seatIds`.

        Raises:
            exceptions.ExceededMaxLimit: If more than `MAX_SEATS_PER_ISSUE` seats are requested.
            exceptions.InvalidIdentifier: If the trip is not known.
        """
        validators.batchSize(seatIds, MAX_SEATS_PER_ISSUE, Ticket)
        session = self.sessionFactory()
        try:
            trip = getters.trip(session, tripId)
        finally:
            session.close()

        semaphore = asyncio.Semaphore(self.maxConcurrency)

        async def worker(seatId: int) -> Ticket:
            async with semaphore:
                return await asyncio.to_thread(
                    self._issueSeat, trip, seatId, userId, mode
                )

        uniqueIds = list(dict.fromkeys(seatIds))
        outcomes = await asyncio.gather(
            *(worker(seatId) for seatId in uniqueIds), return_exceptions=True
        )

        byId = dict(zip(uniqueIds, outcomes))
        succeeded, failed = [], []
        seen = set()
        for seatId in seatIds:
            if seatId in seen:
                failed.append(_failure(seatId, exceptions.SeatUnavailable()))
                continue
            seen.add(seatId)
            outcome = byId[seatId]
            if isinstance(outcome, Ticket):
                succeeded.append(outcome)
            elif isinstance(outcome, Exception):
                failed.append(_failure(seatId, outcome))
            else:
                raise outcome

        if succeeded:
            await asyncio.to_thread(self._syncCounters, tripId)
        return IssueResult(succeeded, failed)

    def _issueSeat(
        self, trip: Trip, seatId: int, userId: Optional[int], mode: SaleMode
    ) -> Ticket:
        session = self.sessionFactory()
        try:
            seat = (
                session.query(Seat)
                .filter(Seat.id == seatId)
                .with_for_update(read=True)
                .first()
            )
            if seat is None or seat.bus_id != trip.bus_id:
                raise exceptions.UnknownValue(Ticket.seat_id)
            if seat.is_hidden:
                raise exceptions.SeatUnavailable()

            if self._activeTicketId(session, trip.id, seat.id) is not None:
                raise exceptions.SeatUnavailable()

            ticket = Ticket(
                trip_id=trip.id,
                seat_id=seat.id,
                seat_number=seat.seat_number,
                ticket_code=generateTicketCode(),
                user_id=userId,
                mode=mode,
                status=INITIAL_STATUS[mode],
                price=priceFor(session, seat, trip.route_id),
            )
            session.add(ticket)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                # A concurrent sale committed first
                if exceptions.integrityErrorCode(e) == UNIQUE_VIOLATION:
                    raise exceptions.SeatUnavailable()
                raise
            session.refresh(ticket)
            return ticket
        finally:
            session.close()

    def _activeTicketId(
        self, session: Session, tripId: int, seatId: int
    ) -> Optional[int]:
        active = (
            session.query(Ticket.id)
            .filter(
                Ticket.trip_id == tripId,
                Ticket.seat_id == seatId,
                Ticket.status.in_(ACTIVE_TICKET_STATES),
            )
            .first()
        )
        return None if active is None else active.id

    def _syncCounters(self, tripId: int) -> None:
        session = self.sessionFactory()
        try:
            syncTripCounters(session, tripId)
        finally:
            session.close()

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------
    def transition(
        self, session: Session, ticketId: int, newStatus: TicketStatus
    ) -> Ticket:
        """
        Move a ticket to a new state.

        Raises:
            exceptions.InvalidIdentifier: If the ticket is not known.
            exceptions.InvalidTransition: If the state machine forbids the change.
        """
        ticket = (
            session.query(Ticket).filter(Ticket.id == ticketId).with_for_update().first()
        )
        if ticket is None:
            raise exceptions.InvalidIdentifier()
        validators.stateTransition(
            TICKET_TRANSITIONS, ticket.status, newStatus, Ticket.status
        )
        ticket.status = newStatus
        if newStatus == TicketStatus.CANCELLED:
            ticket.cancelled_on = datetime.now(timezone.utc)
        session.commit()
        syncTripCounters(session, ticket.trip_id)
        session.refresh(ticket)
        return ticket

    def cancel(self, session: Session, ticketId: int) -> Ticket:
        """Cancel a PENDING or COMPLETED ticket; the seat is free immediately."""
        return self.transition(session, ticketId, TicketStatus.CANCELLED)

    def remove(self, session: Session, ticketId: int) -> Optional[Ticket]:
        """
        Delete a ticket in a terminal state.

        Raises:
            exceptions.DataInUse: If the ticket still holds its seat.
        """
        ticket = session.query(Ticket).filter(Ticket.id == ticketId).first()
        if ticket is None:
            return None
        if ticket.status in ACTIVE_TICKET_STATES:
            raise exceptions.DataInUse(Ticket)
        session.delete(ticket)
        session.commit()
        return ticket


def _failure(seatId: int, e: Exception) -> SeatFailure:
    if isinstance(e, exceptions.APIException):
        return SeatFailure(
            seat_id=seatId, reason=exceptions.errorKind(e), message=str(e.detail)
        )
    exceptions.logException(e)
    return SeatFailure(seat_id=seatId, reason="InternalError", message=None)
