import asyncio
from fastapi import APIRouter, Body, Depends, Query
from fastapi.encoders import jsonable_encoder

from seatbook.src.db import sessionMaker
from seatbook.src import exceptions, getters
from seatbook.src.enums import SaleMode
from seatbook.src.functions import makeEnvelope, makeExceptionResponses
from seatbook.src.schemas import Envelope
from seatbook.src.urls import (
    URL_BUS_SEATS,
    URL_TICKET,
    URL_TICKET_LOOKUP,
    URL_TRIP_SEAT_STATUS,
)
from seatbook.api import bus as bus_api
from seatbook.api import ticket as ticket_api
from seatbook.api import trip as trip_api

route_public = APIRouter()


@route_public.get(
    URL_BUS_SEATS,
    tags=["Seat"],
    response_model=Envelope[bus_api.SeatMapSchema],
    responses=makeExceptionResponses(
        [exceptions.UnknownValue, exceptions.InvalidIdentifier]
    ),
    description="""
    Public endpoint to fetch the seat map of a bus.
    When `trip_id` is given, every seat carries its status for that trip.
    No authentication required.
    """,
)
async def fetch_public_seat_map(
    bus_id: int,
    trip_id: int | None = Query(default=None),
):
    try:
        seatMap = await asyncio.to_thread(bus_api.seatMapData, bus_id, trip_id)
        return makeEnvelope(seatMap)
    except Exception as e:
        exceptions.handle(e)


@route_public.get(
    URL_TRIP_SEAT_STATUS,
    tags=["Trip"],
    response_model=Envelope[trip_api.SeatStatusSchema],
    responses=makeExceptionResponses([exceptions.InvalidIdentifier]),
    description="""
    Public endpoint to fetch the status of every seat of a trip.
    No authentication required.
    """,
)
async def fetch_public_seat_status(trip_id: int):
    try:
        seatStatus = await asyncio.to_thread(
            trip_api.seatStatusData, trip_id, trip_api.reconciliationEngine
        )
        return makeEnvelope(seatStatus)
    except Exception as e:
        exceptions.handle(e)


@route_public.post(
    URL_TICKET,
    tags=["Ticket"],
    response_model=Envelope[ticket_api.IssueResultSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidIdentifier, exceptions.ExceededMaxLimit]
    ),
    description="""
    Public endpoint to book seats online.
    Tickets are PENDING until the payment outcome is reported.
    Seats that can not be booked are listed in `failed` with their reason.
    """,
)
async def book_public_tickets(
    body: ticket_api.IssueBody = Body(),
    request_info=Depends(getters.requestInfo),
):
    try:
        return await ticket_api.issueTickets(body, SaleMode.ONLINE, request_info)
    except Exception as e:
        exceptions.handle(e)


@route_public.get(
    URL_TICKET_LOOKUP,
    tags=["Ticket"],
    response_model=Envelope[ticket_api.TicketSchema],
    responses=makeExceptionResponses([exceptions.UnknownValue]),
    description="""
    Public endpoint to look up a ticket by the code printed on it.
    No authentication required.
    """,
)
async def lookup_public_ticket(qParam: ticket_api.LookupParams = Depends()):
    try:
        session = sessionMaker()
        ticket = getters.ticketByCode(session, qParam.ticket_code)
        return makeEnvelope(jsonable_encoder(ticket))
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
