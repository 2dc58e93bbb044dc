from fastapi import Request
from sqlalchemy.orm.session import Session

from seatbook.src import schemas, exceptions
from seatbook.src.db import Bus, Seat, SeatLayout, Ticket, Trip


def requestInfo(request: Request) -> schemas.RequestInfo:
    """
    Extract metadata about the incoming request.

    Args:
        request (Request): FastAPI request object.

    Returns:
        schemas.RequestInfo: Pydantic model containing:
            - method (str): HTTP method (GET, POST, etc.).
            - path (str): Path portion of the request URL.
            - app_id (int): Application ID from app state.
    """
    return schemas.RequestInfo(
        method=request.method,
        path=request.url.path,
        app_id=request.scope["app"].state.id,
    )


def bus(session: Session, busId: int) -> Bus:
    """Fetch a bus or raise `UnknownValue` on the bus id."""
    busRecord = session.query(Bus).filter(Bus.id == busId).first()
    if busRecord is None:
        raise exceptions.UnknownValue(Seat.bus_id)
    return busRecord


def trip(session: Session, tripId: int) -> Trip:
    """Fetch a trip or raise `InvalidIdentifier`."""
    tripRecord = session.query(Trip).filter(Trip.id == tripId).first()
    if tripRecord is None:
        raise exceptions.InvalidIdentifier()
    return tripRecord


def layoutFloors(session: Session, busId: int) -> list[dict]:
    """Return the stored layout floors of a bus, or an empty list."""
    layout = session.query(SeatLayout).filter(SeatLayout.bus_id == busId).first()
    if layout is None:
        return []
    return list(layout.floors or [])


def ticket(session: Session, ticketId: int) -> Ticket:
    """Fetch a ticket or raise `InvalidIdentifier`."""
    ticketRecord = session.query(Ticket).filter(Ticket.id == ticketId).first()
    if ticketRecord is None:
        raise exceptions.InvalidIdentifier()
    return ticketRecord


def ticketByCode(session: Session, ticketCode: str) -> Ticket:
    """Fetch a ticket by its printed code, ignoring case and surrounding spaces."""
    code = ticketCode.strip().upper()
    ticketRecord = session.query(Ticket).filter(Ticket.ticket_code == code).first()
    if ticketRecord is None:
        raise exceptions.UnknownValue(Ticket.ticket_code)
    return ticketRecord
