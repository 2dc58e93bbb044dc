import asyncio
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Body, Depends, Query, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from seatbook.src.db import Bus, Ticket, sessionMaker
from seatbook.src import catalog, exceptions, getters
from seatbook.src.constants import MAX_BUS_CAPACITY, MAX_FLOORS
from seatbook.src.enums import SeatType
from seatbook.src.functions import enumStr, makeEnvelope, makeExceptionResponses
from seatbook.src.layout import LayoutFloor, resolvePosition, toFloors
from seatbook.src.loggers import logEvent
from seatbook.src.reconciliation import ReconciliationEngine, StatusSummary, summarize
from seatbook.src.redis import acquireLock, releaseLock
from seatbook.src.schemas import Envelope
from seatbook.src.urls import (
    URL_BUS,
    URL_BUS_LAYOUT,
    URL_BUS_LAYOUT_SEATS,
    URL_BUS_SEATS,
)
from seatbook.api.seat import SeatSchema

route_operator = APIRouter()
reconciliationEngine = ReconciliationEngine()


## Output Schema
class BusSchema(BaseModel):
    id: int
    company_id: int
    capacity: int
    floor_count: int
    updated_on: Optional[datetime]
    created_on: datetime


class LayoutFloorSchema(LayoutFloor):
    label: str


class LayoutSchema(BaseModel):
    bus_id: int
    floors: List[LayoutFloorSchema]
    seat_count: int


class PositionSchema(BaseModel):
    floor: int | str
    row: int
    col: int
    display_index: str
    columns: int
    label: Optional[str]


class SeatInMapSchema(SeatSchema):
    status: Optional[str] = None
    position: PositionSchema


class SeatMapSchema(BaseModel):
    bus_id: int
    trip_id: Optional[int]
    seats: List[SeatInMapSchema]
    layout_config: List[LayoutFloorSchema]
    summary: Optional[StatusSummary]


class DeleteSummarySchema(BaseModel):
    deleted: int
    blocked: int
    blocked_seat_ids: List[int]


## Input Forms
class SyncForm(BaseModel):
    company_id: int = Field(Form())
    capacity: int = Field(Form(ge=1, le=MAX_BUS_CAPACITY))
    floor_count: int = Field(Form(ge=1, le=MAX_FLOORS, default=1))


class LayoutBody(BaseModel):
    floors: List[LayoutFloor] = Field(min_length=1, max_length=MAX_FLOORS)


class GenerateForm(BaseModel):
    seat_type: SeatType = Field(
        Form(description=enumStr(SeatType), default=SeatType.STANDARD)
    )
    price_override: Decimal | None = Field(Form(ge=0, default=None))
    allow_over_capacity: bool = Field(Form(default=False))


## Function
def layoutData(busId: int, floors: List[LayoutFloor]) -> dict:
    floorData = [
        {**floor.model_dump(), "label": floor.displayLabel()} for floor in floors
    ]
    return {
        "bus_id": busId,
        "floors": floorData,
        "seat_count": sum(floor.rows * floor.columns for floor in floors),
    }


def buildSeatMap(
    session: Session,
    busId: int,
    tripId: int | None = None,
    engine: ReconciliationEngine = reconciliationEngine,
) -> dict:
    """
    Build the seat map of a bus, with the reconciled status of each seat
    when a trip is given.

    Seat positions come from the stored layout; seats whose number does not
    match the layout are placed on a fallback grid.
    """
    getters.bus(session, busId)
    floors = catalog.getLayout(session, busId)
    layout = layoutData(busId, floors)

    statuses = {}
    summary = None
    if tripId is not None:
        trip = getters.trip(session, tripId)
        if trip.bus_id != busId:
            raise exceptions.UnknownValue(Ticket.trip_id)
        states = engine.seatStates(session, tripId)
        statuses = {state.seat.id: state.status.name for state in states}
        summary = summarize(states)

    seats = []
    for index, seat in enumerate(catalog.listSeats(session, busId)):
        position = resolvePosition(seat.seat_number, floors, index)
        seatData = jsonable_encoder(seat)
        seatData["status"] = statuses.get(seat.id)
        seatData["position"] = position.model_dump(exclude={"prefix"})
        seats.append(seatData)

    return {
        "bus_id": busId,
        "trip_id": tripId,
        "seats": seats,
        "layout_config": layout["floors"],
        "summary": summary,
    }


def seatMapData(busId: int, tripId: int | None = None) -> dict:
    session = sessionMaker()
    try:
        return buildSeatMap(session, busId, tripId)
    finally:
        session.close()


## API endpoints [Operator]
@route_operator.put(
    URL_BUS,
    tags=["Bus"],
    response_model=Envelope[BusSchema],
    description="""
    Synchronises a bus from the catalog service.
    Creates the local bus record if it does not exist, otherwise updates it.
    Only the capacity and number of floors are used by the seat inventory.
    Logs the synchronisation when the record changed.
    """,
)
async def sync_bus(
    bus_id: int,
    fParam: SyncForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        bus = session.query(Bus).filter(Bus.id == bus_id).first()
        if bus is None:
            bus = Bus(id=bus_id)
            session.add(bus)
        bus.company_id = fParam.company_id
        bus.capacity = fParam.capacity
        bus.floor_count = fParam.floor_count

        haveUpdates = bus in session.new or session.is_modified(bus)
        if haveUpdates:
            session.commit()
            session.refresh(bus)

        busData = jsonable_encoder(bus)
        if haveUpdates:
            logEvent(request_info, busData)
        return makeEnvelope(busData)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.get(
    URL_BUS_LAYOUT,
    tags=["Seat Layout"],
    response_model=Envelope[LayoutSchema],
    responses=makeExceptionResponses([exceptions.UnknownValue]),
    description="""
    Fetches the seat layout of a bus.
    A bus without a stored layout returns an empty floor list.
    """,
)
async def fetch_layout(bus_id: int):
    try:
        session = sessionMaker()
        getters.bus(session, bus_id)
        return makeEnvelope(layoutData(bus_id, catalog.getLayout(session, bus_id)))
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.put(
    URL_BUS_LAYOUT,
    tags=["Seat Layout"],
    response_model=Envelope[LayoutSchema],
    responses=makeExceptionResponses(
        [
            exceptions.UnknownValue,
            exceptions.InvalidLayout,
            exceptions.LockAcquireTimeout,
        ]
    ),
    description="""
    Stores the seat layout of a bus, replacing the previous one.
    The number of floors can not exceed the floors of the bus (maximum 2).
    Seat number prefixes must be unique, ignoring case, and are stored uppercase.
    Every floor must have at least one row and one column.
    A layout holding more seats than the bus capacity is accepted with a warning.
    Logs the layout update.
    """,
)
async def update_layout(
    bus_id: int,
    body: LayoutBody = Body(),
    request_info=Depends(getters.requestInfo),
):
    busLock = None
    try:
        session = sessionMaker()
        busLock = acquireLock(Bus, bus_id)
        layout = catalog.saveLayout(session, bus_id, body.floors)

        logEvent(request_info, jsonable_encoder(layout))
        return makeEnvelope(layoutData(bus_id, toFloors(layout.floors)))
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(busLock)
        session.close()


@route_operator.post(
    URL_BUS_LAYOUT_SEATS,
    tags=["Seat Layout"],
    response_model=Envelope[List[SeatSchema]],
    status_code=status.HTTP_201_CREATED,
    responses=makeExceptionResponses(
        [
            exceptions.UnknownValue,
            exceptions.InvalidLayout,
            exceptions.ExceededMaxLimit,
            exceptions.SeatNumberCollision,
            exceptions.LockAcquireTimeout,
        ]
    ),
    description="""
    Creates every seat described by the stored layout of the bus.
    Seat numbers are the floor prefix followed by the two digit order of the seat (A01, A02, ...).
    Fails without creating anything if one of the numbers already exists.
    Fails when the layout holds more seats than the bus capacity, unless `allow_over_capacity` is set.
    Logs the creation of the seats.
    """,
)
async def generate_seats(
    bus_id: int,
    fParam: GenerateForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    busLock = None
    try:
        session = sessionMaker()
        busLock = acquireLock(Bus, bus_id)
        seats = catalog.generateSeats(
            session,
            bus_id,
            fParam.seat_type,
            fParam.price_override,
            fParam.allow_over_capacity,
        )

        seatData = jsonable_encoder(seats)
        seatIds = [seat["id"] for seat in seatData]
        logEvent(request_info, {"bus_id": bus_id, "seat_ids": seatIds})
        return makeEnvelope(seatData, message=f"{len(seatData)} seats created")
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(busLock)
        session.close()


@route_operator.get(
    URL_BUS_SEATS,
    tags=["Seat"],
    response_model=Envelope[SeatMapSchema],
    responses=makeExceptionResponses(
        [exceptions.UnknownValue, exceptions.InvalidIdentifier]
    ),
    description="""
    Fetches the seat map of a bus.
    Every seat carries its grid position resolved from the stored layout.
    When `trip_id` is given, every seat also carries its reconciled status (AVAILABLE, BOOKED, HIDDEN) for that trip.
    """,
)
async def fetch_seat_map(
    bus_id: int,
    trip_id: int | None = Query(default=None),
):
    try:
        seatMap = await asyncio.to_thread(seatMapData, bus_id, trip_id)
        return makeEnvelope(seatMap)
    except Exception as e:
        exceptions.handle(e)


@route_operator.delete(
    URL_BUS_SEATS,
    tags=["Seat"],
    response_model=Envelope[DeleteSummarySchema],
    responses=makeExceptionResponses(
        [exceptions.UnknownValue, exceptions.LockAcquireTimeout]
    ),
    description="""
    Deletes every seat of a bus that is not referenced by a pending or completed ticket.
    Blocked seats are kept and counted in the response.
    The stored layout is removed once the bus has no seat left.
    Logs the deletion.
    """,
)
async def delete_bus_seats(
    bus_id: int,
    request_info=Depends(getters.requestInfo),
):
    busLock = None
    try:
        session = sessionMaker()
        busLock = acquireLock(Bus, bus_id)
        summary = catalog.deleteAllSeatsForBus(session, bus_id)

        summaryData = summary.model_dump()
        logEvent(request_info, {"bus_id": bus_id, **summaryData})
        return makeEnvelope(summaryData)
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(busLock)
        session.close()
