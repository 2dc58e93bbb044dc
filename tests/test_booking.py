from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from seatbook.src import db, exceptions
from seatbook.src.booking import BookingCoordinator
from seatbook.src.db import ACTIVE_TICKET_STATES, Ticket, Trip
from seatbook.src.enums import SaleMode, SeatType, TicketStatus


@pytest.fixture
def coordinator():
    return BookingCoordinator(maxConcurrency=1)


@pytest.fixture
def seats(makeBus, makeSeats, makeTrip, setPrices):
    makeBus(1)
    makeBus(2)
    setPrices(routeId=1, basePrice="100000", typePrices={SeatType.VIP: "50000"})
    makeTrip(1, busId=1, routeId=1)
    return makeSeats(1, ["A01", "A02", "A03"])


def tripCounters(session, tripId):
    trip = session.query(Trip).filter(Trip.id == tripId).one()
    result = (trip.total_seats, trip.available_seats)
    session.commit()
    return result


# ---------------------------------------------------------------------------
# Issuance
# ---------------------------------------------------------------------------
async def test_batch_with_one_booked_seat(coordinator, seats, makeTicket, session):
    makeTicket(1, seats[1])
    seatIds = [seat.id for seat in seats]

    result = await coordinator.issue(1, seatIds, 7, SaleMode.COUNTER)

    assert [ticket.seat_id for ticket in result.succeeded] == [seats[0].id, seats[2].id]
    assert len({ticket.id for ticket in result.succeeded}) == 2
    assert [failure.seat_id for failure in result.failed] == [seats[1].id]
    assert result.failed[0].reason == "SeatUnavailable"
    assert tripCounters(session, 1) == (3, 0)


async def test_counter_sale_is_completed(coordinator, seats):
    result = await coordinator.issue(1, [seats[0].id], None, SaleMode.COUNTER)
    (ticket,) = result.succeeded
    assert ticket.status == TicketStatus.COMPLETED
    assert ticket.mode == SaleMode.COUNTER
    assert ticket.seat_number == "A01"
    assert ticket.price == Decimal("100000")


async def test_online_sale_is_pending(coordinator, seats):
    result = await coordinator.issue(1, [seats[0].id], 12, SaleMode.ONLINE)
    (ticket,) = result.succeeded
    assert ticket.status == TicketStatus.PENDING
    assert ticket.mode == SaleMode.ONLINE
    assert ticket.user_id == 12


async def test_ticket_price_includes_seat_type_price(coordinator, seats, makeSeats):
    (vip,) = makeSeats(1, ["V01"], seatType=SeatType.VIP, priceOverride=Decimal("20000"))
    result = await coordinator.issue(1, [vip.id], None, SaleMode.COUNTER)
    assert result.succeeded[0].price == Decimal("150000")


async def test_repeated_seat_in_request(coordinator, seats):
    seatId = seats[0].id
    result = await coordinator.issue(1, [seatId, seatId], None, SaleMode.COUNTER)
    assert len(result.succeeded) == 1
    assert [(f.seat_id, f.reason) for f in result.failed] == [(seatId, "SeatUnavailable")]


async def test_seat_of_another_bus_and_hidden_seat(coordinator, seats, makeSeats):
    (foreign,) = makeSeats(2, ["A01"])
    (hidden,) = makeSeats(1, ["H01"], hidden=("H01",))

    result = await coordinator.issue(
        1, [foreign.id, hidden.id, 9999, seats[0].id], None, SaleMode.COUNTER
    )

    assert [ticket.seat_id for ticket in result.succeeded] == [seats[0].id]
    assert [(f.seat_id, f.reason) for f in result.failed] == [
        (foreign.id, "UnknownValue"),
        (hidden.id, "SeatUnavailable"),
        (9999, "UnknownValue"),
    ]


async def test_second_sale_of_same_seat_fails(coordinator, seats):
    first = await coordinator.issue(1, [seats[0].id], None, SaleMode.ONLINE)
    second = await coordinator.issue(1, [seats[0].id], None, SaleMode.COUNTER)
    assert len(first.succeeded) == 1
    assert second.succeeded == []
    assert second.failed[0].reason == "SeatUnavailable"


async def test_unknown_trip(coordinator, seats):
    with pytest.raises(exceptions.InvalidIdentifier):
        await coordinator.issue(404, [seats[0].id], None, SaleMode.COUNTER)


async def test_too_many_seats(coordinator, seats):
    with pytest.raises(exceptions.ExceededMaxLimit):
        await coordinator.issue(1, list(range(1, 22)), None, SaleMode.COUNTER)


async def test_sale_committed_after_check_loses_to_the_index(
    coordinator, seats, makeTicket, monkeypatch, session
):
    activeTicketId = coordinator._activeTicketId

    def competingSale(checkSession, tripId, seatId):
        found = activeTicketId(checkSession, tripId, seatId)
        if seatId == seats[1].id:
            makeTicket(tripId, seats[1], status=TicketStatus.PENDING, mode=SaleMode.ONLINE)
        return found

    monkeypatch.setattr(coordinator, "_activeTicketId", competingSale)
    seatIds = [seat.id for seat in seats]

    result = await coordinator.issue(1, seatIds, 7, SaleMode.COUNTER)

    assert [ticket.seat_id for ticket in result.succeeded] == [seats[0].id, seats[2].id]
    assert [(f.seat_id, f.reason) for f in result.failed] == [
        (seats[1].id, "SeatUnavailable")
    ]
    active = (
        session.query(Ticket)
        .filter(Ticket.seat_id == seats[1].id, Ticket.status.in_(ACTIVE_TICKET_STATES))
        .all()
    )
    assert [ticket.mode for ticket in active] == [SaleMode.ONLINE]
    assert tripCounters(session, 1) == (3, 0)


async def test_other_integrity_errors_are_not_reported_as_taken(
    coordinator, seats, monkeypatch
):
    def tripRemoved(checkSession, tripId, seatId):
        other = db.sessionMaker()
        try:
            other.query(Trip).filter(Trip.id == tripId).delete()
            other.commit()
        finally:
            other.close()
        return None

    monkeypatch.setattr(coordinator, "_activeTicketId", tripRemoved)

    result = await coordinator.issue(1, [seats[0].id], None, SaleMode.COUNTER)

    assert result.succeeded == []
    assert [(f.seat_id, f.reason) for f in result.failed] == [
        (seats[0].id, "InternalError")
    ]


async def test_issued_tickets_carry_unique_codes(coordinator, seats):
    result = await coordinator.issue(1, [seat.id for seat in seats], None, SaleMode.ONLINE)
    codes = [ticket.ticket_code for ticket in result.succeeded]
    assert len(set(codes)) == 3
    assert all(code.startswith("TK") and len(code) == 14 for code in codes)
    assert all(code == code.upper() for code in codes)


def test_active_ticket_index_rejects_second_active_ticket(seats, makeTicket):
    makeTicket(1, seats[0], status=TicketStatus.PENDING)
    with pytest.raises(IntegrityError):
        makeTicket(1, seats[0], status=TicketStatus.COMPLETED)
    makeTicket(1, seats[1], status=TicketStatus.CANCELLED)
    makeTicket(1, seats[1], status=TicketStatus.COMPLETED)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
async def test_cancel_frees_seat_immediately(coordinator, seats, session):
    result = await coordinator.issue(1, [seats[0].id], None, SaleMode.COUNTER)
    ticket = coordinator.cancel(session, result.succeeded[0].id)
    assert ticket.status == TicketStatus.CANCELLED
    assert ticket.cancelled_on is not None
    assert tripCounters(session, 1) == (3, 3)

    again = await coordinator.issue(1, [seats[0].id], None, SaleMode.COUNTER)
    assert len(again.succeeded) == 1
    assert again.succeeded[0].id != ticket.id


@pytest.mark.parametrize(
    "newStatus",
    [
        TicketStatus.COMPLETED,
        TicketStatus.CANCELLED,
        TicketStatus.FAILED,
        TicketStatus.PAYMENT_FAILED,
    ],
)
def test_pending_transitions(coordinator, seats, makeTicket, session, newStatus):
    ticket = makeTicket(1, seats[0], status=TicketStatus.PENDING, mode=SaleMode.ONLINE)
    assert coordinator.transition(session, ticket.id, newStatus).status == newStatus


@pytest.mark.parametrize(
    "oldStatus, newStatus",
    [
        (TicketStatus.COMPLETED, TicketStatus.PENDING),
        (TicketStatus.COMPLETED, TicketStatus.FAILED),
        (TicketStatus.CANCELLED, TicketStatus.COMPLETED),
        (TicketStatus.FAILED, TicketStatus.CANCELLED),
        (TicketStatus.PAYMENT_FAILED, TicketStatus.COMPLETED),
    ],
)
def test_forbidden_transitions(coordinator, seats, makeTicket, session, oldStatus, newStatus):
    ticket = makeTicket(1, seats[0], status=oldStatus)
    with pytest.raises(exceptions.InvalidTransition):
        coordinator.transition(session, ticket.id, newStatus)
    session.rollback()


def test_transition_of_unknown_ticket(coordinator, session):
    with pytest.raises(exceptions.InvalidIdentifier):
        coordinator.transition(session, 404, TicketStatus.CANCELLED)


def test_failed_payment_releases_seat(coordinator, seats, makeTicket, session):
    ticket = makeTicket(1, seats[0], status=TicketStatus.PENDING, mode=SaleMode.ONLINE)
    coordinator.transition(session, ticket.id, TicketStatus.PAYMENT_FAILED)
    assert tripCounters(session, 1) == (3, 3)


def test_remove_requires_terminal_state(coordinator, seats, makeTicket, session):
    ticket = makeTicket(1, seats[0], status=TicketStatus.COMPLETED)
    with pytest.raises(exceptions.DataInUse):
        coordinator.remove(session, ticket.id)

    coordinator.cancel(session, ticket.id)
    assert coordinator.remove(session, ticket.id).id == ticket.id
    assert session.query(Ticket).count() == 0
    assert coordinator.remove(session, ticket.id) is None
