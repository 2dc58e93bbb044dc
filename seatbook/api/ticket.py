from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Body, Depends, Form, Query
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from seatbook.src.db import Ticket, sessionMaker
from seatbook.src import exceptions, getters
from seatbook.src.booking import BookingCoordinator, SeatFailure
from seatbook.src.enums import OrderIn, SaleMode, TicketStatus
from seatbook.src.functions import enumStr, makeEnvelope, makeExceptionResponses
from seatbook.src.loggers import logEvent, logEvents
from seatbook.src.schemas import Envelope, RequestInfo
from seatbook.src.urls import (
    URL_TICKET,
    URL_TICKET_CANCEL,
    URL_TICKET_COUNTER,
    URL_TICKET_ID,
    URL_TICKET_LOOKUP,
    URL_TICKET_STATUS,
)

route_operator = APIRouter()
coordinator = BookingCoordinator()


## Output Schema
class TicketSchema(BaseModel):
    id: int
    trip_id: int
    seat_id: Optional[int]
    seat_number: str
    ticket_code: str
    user_id: Optional[int]
    mode: int
    status: int
    price: float
    cancelled_on: Optional[datetime]
    updated_on: Optional[datetime]
    created_on: datetime


class IssueResultSchema(BaseModel):
    succeeded: List[TicketSchema]
    failed: List[SeatFailure]


## Input Forms
class IssueBody(BaseModel):
    trip_id: int
    seat_ids: List[int] = Field(min_length=1)
    user_id: Optional[int] = None


class StatusForm(BaseModel):
    status: TicketStatus = Field(Form(description=enumStr(TicketStatus)))


class LookupParams(BaseModel):
    ticket_code: str = Field(Query(min_length=1, max_length=16))


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    seat_number = 2
    updated_on = 3
    created_on = 4


class QueryParams(BaseModel):
    # filters
    trip_id: int | None = Field(Query(default=None))
    seat_id: int | None = Field(Query(default=None))
    user_id: int | None = Field(Query(default=None))
    ticket_code: str | None = Field(Query(default=None))
    status: TicketStatus | None = Field(
        Query(default=None, description=enumStr(TicketStatus))
    )
    mode: SaleMode | None = Field(Query(default=None, description=enumStr(SaleMode)))
    # id based
    id: int | None = Field(Query(default=None))
    id_ge: int | None = Field(Query(default=None))
    id_le: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # created_on based
    created_on_ge: datetime | None = Field(Query(default=None))
    created_on_le: datetime | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def searchTicket(session: Session, qParam: QueryParams) -> List[Ticket]:
    query = session.query(Ticket)

    # Filters
    if qParam.trip_id is not None:
        query = query.filter(Ticket.trip_id == qParam.trip_id)
    if qParam.seat_id is not None:
        query = query.filter(Ticket.seat_id == qParam.seat_id)
    if qParam.user_id is not None:
        query = query.filter(Ticket.user_id == qParam.user_id)
    if qParam.ticket_code is not None:
        query = query.filter(Ticket.ticket_code == qParam.ticket_code.strip().upper())
    if qParam.status is not None:
        query = query.filter(Ticket.status == qParam.status)
    if qParam.mode is not None:
        query = query.filter(Ticket.mode == qParam.mode)
    # id based
    if qParam.id is not None:
        query = query.filter(Ticket.id == qParam.id)
    if qParam.id_ge is not None:
        query = query.filter(Ticket.id >= qParam.id_ge)
    if qParam.id_le is not None:
        query = query.filter(Ticket.id <= qParam.id_le)
    if qParam.id_list is not None:
        query = query.filter(Ticket.id.in_(qParam.id_list))
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Ticket.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Ticket.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttribute = getattr(Ticket, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


async def issueTickets(
    body: IssueBody, mode: SaleMode, request_info: RequestInfo
) -> dict:
    """
    Issue tickets through the coordinator and log every sold ticket.

    The envelope message tells how many of the requested seats were sold.
    """
    result = await coordinator.issue(body.trip_id, body.seat_ids, body.user_id, mode)

    ticketData = jsonable_encoder(result.succeeded)
    if ticketData:
        logEvents(request_info, ticketData, body.user_id)
    return makeEnvelope(
        {
            "succeeded": ticketData,
            "failed": [failure.model_dump() for failure in result.failed],
        },
        message=f"{len(ticketData)} of {len(body.seat_ids)} seats issued",
    )


## API endpoints [Operator]
@route_operator.get(
    URL_TICKET,
    tags=["Ticket"],
    response_model=Envelope[List[TicketSchema]],
    description="""
    Fetches a list of tickets.
    Supports filtering by trip, seat, user, ticket code, status, sale mode and id ranges.
    Newest tickets come first by default.
    """,
)
async def fetch_tickets(qParam: QueryParams = Depends()):
    try:
        session = sessionMaker()
        return makeEnvelope(jsonable_encoder(searchTicket(session, qParam)))
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.get(
    URL_TICKET_LOOKUP,
    tags=["Ticket"],
    response_model=Envelope[TicketSchema],
    responses=makeExceptionResponses([exceptions.UnknownValue]),
    description="""
    Looks up a ticket by the code printed on it.
    The code is matched ignoring case.
    """,
)
async def lookup_ticket(qParam: LookupParams = Depends()):
    try:
        session = sessionMaker()
        ticket = getters.ticketByCode(session, qParam.ticket_code)
        return makeEnvelope(jsonable_encoder(ticket))
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.get(
    URL_TICKET_ID,
    tags=["Ticket"],
    response_model=Envelope[TicketSchema],
    responses=makeExceptionResponses([exceptions.InvalidIdentifier]),
    description="""
    Fetches a ticket.
    """,
)
async def fetch_ticket(ticket_id: int):
    try:
        session = sessionMaker()
        ticket = getters.ticket(session, ticket_id)
        return makeEnvelope(jsonable_encoder(ticket))
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.post(
    URL_TICKET,
    tags=["Ticket"],
    response_model=Envelope[IssueResultSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidIdentifier, exceptions.ExceededMaxLimit]
    ),
    description="""
    Issues online tickets, one per seat. The tickets are PENDING until the payment outcome is reported.
    Every seat is processed independently; a seat that can not be sold is reported in `failed` with its reason (`SeatUnavailable`, `UnknownValue`) and does not block the other seats.
    A seat is never sold twice for the same trip.
    Logs every issued ticket.
    """,
)
async def issue_online_tickets(
    body: IssueBody = Body(),
    request_info=Depends(getters.requestInfo),
):
    try:
        return await issueTickets(body, SaleMode.ONLINE, request_info)
    except Exception as e:
        exceptions.handle(e)


@route_operator.post(
    URL_TICKET_COUNTER,
    tags=["Ticket"],
    response_model=Envelope[IssueResultSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidIdentifier, exceptions.ExceededMaxLimit]
    ),
    description="""
    Issues counter tickets, one per seat. Counter tickets are paid at the counter and are COMPLETED immediately.
    Every seat is processed independently; a seat that can not be sold is reported in `failed` with its reason.
    Logs every issued ticket.
    """,
)
async def issue_counter_tickets(
    body: IssueBody = Body(),
    request_info=Depends(getters.requestInfo),
):
    try:
        return await issueTickets(body, SaleMode.COUNTER, request_info)
    except Exception as e:
        exceptions.handle(e)


@route_operator.patch(
    URL_TICKET_CANCEL,
    tags=["Ticket"],
    response_model=Envelope[TicketSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidIdentifier, exceptions.InvalidTransition]
    ),
    description="""
    Cancels a PENDING or COMPLETED ticket.
    The seat becomes available for the trip immediately.
    Logs the cancellation.
    """,
)
async def cancel_ticket(
    ticket_id: int,
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        ticket = coordinator.cancel(session, ticket_id)

        ticketData = jsonable_encoder(ticket)
        logEvent(request_info, ticketData, ticket.user_id)
        return makeEnvelope(ticketData)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.patch(
    URL_TICKET_STATUS,
    tags=["Ticket"],
    response_model=Envelope[TicketSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidIdentifier, exceptions.InvalidTransition]
    ),
    description="""
    Reports the outcome of a ticket, typically the payment result of an online sale.
    Allowed changes: PENDING to COMPLETED, CANCELLED, FAILED or PAYMENT_FAILED, and COMPLETED to CANCELLED.
    Failed and cancelled tickets release their seat.
    Logs the change.
    """,
)
async def update_ticket_status(
    ticket_id: int,
    fParam: StatusForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        ticket = coordinator.transition(session, ticket_id, fParam.status)

        ticketData = jsonable_encoder(ticket)
        logEvent(request_info, ticketData, ticket.user_id)
        return makeEnvelope(ticketData)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.delete(
    URL_TICKET_ID,
    tags=["Ticket"],
    response_model=Envelope[Optional[TicketSchema]],
    responses=makeExceptionResponses([exceptions.DataInUse]),
    description="""
    Deletes a ticket in a terminal state (CANCELLED, FAILED or PAYMENT_FAILED).
    An active ticket must be cancelled first.
    Deleting an unknown ticket succeeds with no data.
    Logs the deletion.
    """,
)
async def delete_ticket(
    ticket_id: int,
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        ticket = coordinator.remove(session, ticket_id)
        if ticket is None:
            return makeEnvelope(None)

        ticketData = jsonable_encoder(ticket)
        logEvent(request_info, ticketData, ticket.user_id)
        return makeEnvelope(ticketData)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
