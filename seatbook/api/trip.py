import asyncio, json
from datetime import datetime
from typing import Dict, Optional
from fastapi import APIRouter, Depends, Form, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from logging import getLogger

from seatbook.src.db import Bus, Trip, sessionMaker
from seatbook.src import exceptions, getters
from seatbook.src.reconciliation import syncTripCounters
from seatbook.src.constants import POLL_INTERVAL
from seatbook.src.functions import makeEnvelope, makeExceptionResponses
from seatbook.src.loggers import logEvent
from seatbook.src.polling import PollingClient, makeStatusFetcher, statusSnapshot
from seatbook.src.reconciliation import ReconciliationEngine, StatusSummary
from seatbook.src.schemas import Envelope
from seatbook.src.urls import (
    URL_TRIP,
    URL_TRIP_ID,
    URL_TRIP_SEAT_LIVE,
    URL_TRIP_SEAT_STATUS,
)

route_operator = APIRouter()
reconciliationEngine = ReconciliationEngine()
logger = getLogger("uvicorn.error")


## Output Schema
class TripSchema(BaseModel):
    id: int
    route_id: int
    bus_id: int
    departure_at: Optional[datetime]
    arrival_at: Optional[datetime]
    total_seats: int
    available_seats: int
    updated_on: Optional[datetime]
    created_on: datetime


class TripWithSummarySchema(TripSchema):
    summary: StatusSummary


class SeatStatusSchema(BaseModel):
    version: int
    trip_id: int
    statuses: Dict[int, str]
    summary: StatusSummary


## Input Forms
class IngestForm(BaseModel):
    id: int = Field(Form())
    route_id: int = Field(Form())
    bus_id: int = Field(Form())
    departure_at: datetime | None = Field(Form(default=None))
    arrival_at: datetime | None = Field(Form(default=None))


## Function
def seatStatusData(tripId: int, engine: ReconciliationEngine) -> dict:
    session = sessionMaker()
    try:
        return statusSnapshot(session, tripId, engine)
    finally:
        session.close()


def tripSummaryData(tripId: int, engine: ReconciliationEngine) -> dict:
    session = sessionMaker()
    try:
        trip = getters.trip(session, tripId)
        tripData = jsonable_encoder(trip)
        tripData["summary"] = engine.computeSummary(session, tripId)
        return tripData
    finally:
        session.close()


async def liveStream(request: Request, tripId: int, limit: int, interval: float):
    """
    Stream seat status snapshots of a trip as server-sent events.

    The stream ends when the client disconnects or after `limit` snapshots
    (0 for no limit).
    """
    queue: asyncio.Queue = asyncio.Queue()
    poller = PollingClient(makeStatusFetcher(reconciliationEngine), interval=interval)
    poller.subscribe(queue.put_nowait)
    poller.enable(tripId)
    sent = 0
    try:
        while limit == 0 or sent < limit:
            try:
                snapshot = await asyncio.wait_for(queue.get(), timeout=interval * 2)
            except asyncio.TimeoutError:
                yield ": heartbeat\n\n"
            else:
                yield f"event: snapshot\ndata: {json.dumps(snapshot)}\n\n"
                sent += 1
            if await request.is_disconnected():
                break
    except asyncio.CancelledError:
        logger.info("Live stream of trip %s cancelled", tripId)
    finally:
        poller.disable()


## API endpoints [Operator]
@route_operator.post(
    URL_TRIP,
    tags=["Trip"],
    response_model=Envelope[TripSchema],
    status_code=status.HTTP_201_CREATED,
    responses=makeExceptionResponses([exceptions.UnknownValue]),
    description="""
    Ingests a trip generated by the external scheduler.
    Creates the trip or updates its route, bus and times if it already exists.
    The seat counters of the trip are recomputed from the ticket ledger.
    Logs the ingestion.
    """,
)
async def ingest_trip(
    fParam: IngestForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        bus = session.query(Bus).filter(Bus.id == fParam.bus_id).first()
        if bus is None:
            raise exceptions.UnknownValue(Trip.bus_id)

        trip = session.query(Trip).filter(Trip.id == fParam.id).first()
        if trip is None:
            trip = Trip(id=fParam.id)
            session.add(trip)
        trip.route_id = fParam.route_id
        trip.bus_id = fParam.bus_id
        trip.departure_at = fParam.departure_at
        trip.arrival_at = fParam.arrival_at
        session.commit()
        trip = syncTripCounters(session, fParam.id)
        session.refresh(trip)

        tripData = jsonable_encoder(trip)
        logEvent(request_info, tripData)
        return makeEnvelope(tripData)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.get(
    URL_TRIP_ID,
    tags=["Trip"],
    response_model=Envelope[TripWithSummarySchema],
    responses=makeExceptionResponses([exceptions.InvalidIdentifier]),
    description="""
    Fetches a trip with the live summary of its seats (total, available, booked, hidden).
    """,
)
async def fetch_trip(trip_id: int):
    try:
        tripData = await asyncio.to_thread(
            tripSummaryData, trip_id, reconciliationEngine
        )
        return makeEnvelope(tripData)
    except Exception as e:
        exceptions.handle(e)


@route_operator.get(
    URL_TRIP_SEAT_STATUS,
    tags=["Trip"],
    response_model=Envelope[SeatStatusSchema],
    responses=makeExceptionResponses([exceptions.InvalidIdentifier]),
    description="""
    Computes the status of every seat of the trip: AVAILABLE, BOOKED or HIDDEN.
    A seat is booked when the catalog service reports it booked for this trip, or when a pending or completed ticket exists.
    Cancelled and failed tickets never book a seat.
    Hidden seats are reported as HIDDEN and are never available.
    The response carries a `version` of the status contract.
    """,
)
async def fetch_seat_status(trip_id: int):
    try:
        seatStatus = await asyncio.to_thread(
            seatStatusData, trip_id, reconciliationEngine
        )
        return makeEnvelope(seatStatus)
    except Exception as e:
        exceptions.handle(e)


@route_operator.get(
    URL_TRIP_SEAT_LIVE,
    tags=["Trip"],
    responses=makeExceptionResponses([exceptions.InvalidIdentifier]),
    description="""
    Streams the seat status of the trip as server-sent events (`event: snapshot`).
    A new snapshot is computed every `interval` seconds (default 3).
    Failed polls are logged and skipped; the stream stays open.
    `limit` ends the stream after that many snapshots (0 keeps it open).
    """,
)
async def stream_seat_status(
    request: Request,
    trip_id: int,
    limit: int = Query(default=0, ge=0),
    interval: float = Query(default=POLL_INTERVAL, gt=0),
):
    try:
        session = sessionMaker()
        getters.trip(session, trip_id)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()

    return StreamingResponse(
        liveStream(request, trip_id, limit, interval),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
