from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from seatbook.src.db import Bus, Seat, sessionMaker
from seatbook.src import catalog, exceptions, getters
from seatbook.src.constants import MAX_BULK_SEATS
from seatbook.src.enums import OrderIn, SeatType
from seatbook.src.functions import enumStr, makeEnvelope, makeExceptionResponses
from seatbook.src.loggers import logEvent
from seatbook.src.redis import acquireLocks, releaseLocks
from seatbook.src.schemas import Envelope
from seatbook.src.urls import URL_SEAT, URL_SEAT_BULK, URL_SEAT_ID

route_operator = APIRouter()


## Output Schema
class SeatSchema(BaseModel):
    id: int
    bus_id: int
    seat_number: str
    seat_type: int
    is_hidden: bool
    price_override: Optional[float]
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class BulkCreateBody(BaseModel):
    seats: List[catalog.SeatCreate] = Field(min_length=1, max_length=MAX_BULK_SEATS)


class BulkUpdateBody(BaseModel):
    seats: List[catalog.SeatUpdate] = Field(min_length=1, max_length=MAX_BULK_SEATS)


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    seat_number = 2
    updated_on = 3
    created_on = 4


class QueryParams(BaseModel):
    # filters
    bus_id: int | None = Field(Query(default=None))
    seat_number: str | None = Field(Query(default=None))
    seat_type: SeatType | None = Field(
        Query(default=None, description=enumStr(SeatType))
    )
    is_hidden: bool | None = Field(Query(default=None))
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
    order_in: OrderIn = Field(Query(default=OrderIn.ASC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=50, gt=0, le=MAX_BULK_SEATS))


## Function
def searchSeat(session: Session, qParam: QueryParams) -> List[Seat]:
    query = session.query(Seat)

    # Filters
    if qParam.bus_id is not None:
        query = query.filter(Seat.bus_id == qParam.bus_id)
    if qParam.seat_number is not None:
        query = query.filter(Seat.seat_number.ilike(f"%{qParam.seat_number}%"))
    if qParam.seat_type is not None:
        query = query.filter(Seat.seat_type == qParam.seat_type)
    if qParam.is_hidden is not None:
        query = query.filter(Seat.is_hidden == qParam.is_hidden)
    # id based
    if qParam.id is not None:
        query = query.filter(Seat.id == qParam.id)
    if qParam.id_ge is not None:
        query = query.filter(Seat.id >= qParam.id_ge)
    if qParam.id_le is not None:
        query = query.filter(Seat.id <= qParam.id_le)
    if qParam.id_list is not None:
        query = query.filter(Seat.id.in_(qParam.id_list))
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Seat.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Seat.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttribute = getattr(Seat, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Operator]
@route_operator.get(
    URL_SEAT,
    tags=["Seat"],
    response_model=Envelope[List[SeatSchema]],
    description="""
    Fetches a list of seats.
    Supports filtering by bus, seat number, seat type, hidden flag and id ranges.
    """,
)
async def fetch_seats(qParam: QueryParams = Depends()):
    try:
        session = sessionMaker()
        return makeEnvelope(jsonable_encoder(searchSeat(session, qParam)))
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.post(
    URL_SEAT_BULK,
    tags=["Seat"],
    response_model=Envelope[List[SeatSchema]],
    status_code=status.HTTP_201_CREATED,
    responses=makeExceptionResponses(
        [
            exceptions.UnknownValue,
            exceptions.SeatNumberCollision,
            exceptions.ExceededMaxLimit,
            exceptions.LockAcquireTimeout,
        ]
    ),
    description="""
    Creates a batch of seats.
    Seat numbers are stored uppercase and must be unique per bus.
    If any seat number already exists on its bus, or repeats within the batch, nothing is created and the colliding numbers are returned in `data.seat_numbers`.
    Logs the seat creation.
    """,
)
async def create_seats(
    body: BulkCreateBody = Body(),
    request_info=Depends(getters.requestInfo),
):
    busLocks = None
    try:
        session = sessionMaker()
        busLocks = acquireLocks(Bus, [item.bus_id for item in body.seats])
        seats = catalog.createSeats(session, body.seats)

        seatData = jsonable_encoder(seats)
        logEvent(request_info, {"seat_ids": [seat["id"] for seat in seatData]})
        return makeEnvelope(seatData)
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLocks(busLocks)
        session.close()


@route_operator.put(
    URL_SEAT_BULK,
    tags=["Seat"],
    response_model=Envelope[List[SeatSchema]],
    responses=makeExceptionResponses(
        [
            exceptions.UnknownValue,
            exceptions.ExceededMaxLimit,
            exceptions.LockAcquireTimeout,
        ]
    ),
    description="""
    Updates a batch of seats.
    Only the provided fields (`seat_type`, `is_hidden`, `price_override`) are changed.
    Sending `price_override` as null clears it.
    If one seat id is unknown, no seat is updated.
    Logs the seat update.
    """,
)
async def update_seats(
    body: BulkUpdateBody = Body(),
    request_info=Depends(getters.requestInfo),
):
    busLocks = None
    try:
        session = sessionMaker()
        seatIds = [item.id for item in body.seats]
        busIds = (
            session.query(Seat.bus_id).filter(Seat.id.in_(seatIds)).distinct().all()
        )
        session.rollback()
        busLocks = acquireLocks(Bus, [row.bus_id for row in busIds])
        seats = catalog.updateSeats(session, body.seats)

        seatData = jsonable_encoder(seats)
        logEvent(request_info, {"seats": seatData})
        return makeEnvelope(seatData)
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLocks(busLocks)
        session.close()


@route_operator.delete(
    URL_SEAT_ID,
    tags=["Seat"],
    status_code=status.HTTP_200_OK,
    response_model=Envelope[Optional[SeatSchema]],
    responses=makeExceptionResponses([exceptions.SeatInUse]),
    description="""
    Deletes a seat.
    A seat referenced by a pending or completed ticket can not be deleted.
    Deleting an unknown seat succeeds with no data.
    Logs the deletion.
    """,
)
async def delete_seat(
    seat_id: int,
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        seat = catalog.deleteSeat(session, seat_id)
        if seat is None:
            return makeEnvelope(None)

        seatData = jsonable_encoder(seat)
        logEvent(request_info, seatData)
        return makeEnvelope(seatData)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
