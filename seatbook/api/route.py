from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from seatbook.src.db import RoutePrice, SeatTypePrice, sessionMaker
from seatbook.src import exceptions, getters
from seatbook.src.enums import SeatType
from seatbook.src.functions import enumStr, makeEnvelope
from seatbook.src.loggers import logEvent
from seatbook.src.schemas import Envelope
from seatbook.src.urls import (
    URL_ROUTE_PRICE,
    URL_ROUTE_SEAT_TYPE_PRICE,
    URL_ROUTE_SEAT_TYPE_PRICES,
)

route_operator = APIRouter()


## Output Schema
class RoutePriceSchema(BaseModel):
    route_id: int
    base_price: float
    updated_on: Optional[datetime]
    created_on: datetime


class SeatTypePriceSchema(BaseModel):
    id: int
    route_id: int
    seat_type: int
    price: float
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class RoutePriceForm(BaseModel):
    base_price: Decimal = Field(Form(ge=0))


class SeatTypePriceForm(BaseModel):
    seat_type: SeatType = Field(Form(description=enumStr(SeatType)))
    price: Decimal = Field(Form(ge=0))


## API endpoints [Operator]
@route_operator.put(
    URL_ROUTE_PRICE,
    tags=["Pricing"],
    response_model=Envelope[RoutePriceSchema],
    description="""
    Sets the base price of a route, mirrored from the catalog service.
    Every seat sold on a trip of this route costs at least this amount.
    Logs the change when the price differs from the stored one.
    """,
)
async def update_route_price(
    route_id: int,
    fParam: RoutePriceForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        routePrice = (
            session.query(RoutePrice).filter(RoutePrice.route_id == route_id).first()
        )
        if routePrice is None:
            routePrice = RoutePrice(route_id=route_id, base_price=fParam.base_price)
            session.add(routePrice)
        elif routePrice.base_price != fParam.base_price:
            routePrice.base_price = fParam.base_price

        haveUpdates = routePrice in session.new or session.is_modified(routePrice)
        if haveUpdates:
            session.commit()
            session.refresh(routePrice)

        priceData = jsonable_encoder(routePrice)
        if haveUpdates:
            logEvent(request_info, priceData)
        return makeEnvelope(priceData)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.get(
    URL_ROUTE_SEAT_TYPE_PRICES,
    tags=["Pricing"],
    response_model=Envelope[List[SeatTypePriceSchema]],
    description="""
    Fetches the seat type prices of a route.
    A seat type price is the surcharge added to the route base price for seats of that type.
    It takes precedence over the price override of the seat.
    """,
)
async def fetch_seat_type_prices(route_id: int):
    try:
        session = sessionMaker()
        prices = (
            session.query(SeatTypePrice)
            .filter(SeatTypePrice.route_id == route_id)
            .order_by(SeatTypePrice.seat_type)
            .all()
        )
        return makeEnvelope(jsonable_encoder(prices))
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.put(
    URL_ROUTE_SEAT_TYPE_PRICES,
    tags=["Pricing"],
    response_model=Envelope[SeatTypePriceSchema],
    description="""
    Creates or replaces the price of one seat type on a route.
    Logs the change.
    """,
)
async def update_seat_type_price(
    route_id: int,
    fParam: SeatTypePriceForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        seatTypePrice = (
            session.query(SeatTypePrice)
            .filter(
                SeatTypePrice.route_id == route_id,
                SeatTypePrice.seat_type == fParam.seat_type,
            )
            .first()
        )
        if seatTypePrice is None:
            seatTypePrice = SeatTypePrice(
                route_id=route_id, seat_type=fParam.seat_type, price=fParam.price
            )
            session.add(seatTypePrice)
        elif seatTypePrice.price != fParam.price:
            seatTypePrice.price = fParam.price

        haveUpdates = seatTypePrice in session.new or session.is_modified(
            seatTypePrice
        )
        if haveUpdates:
            session.commit()
            session.refresh(seatTypePrice)

        priceData = jsonable_encoder(seatTypePrice)
        if haveUpdates:
            logEvent(request_info, priceData)
        return makeEnvelope(priceData)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.delete(
    URL_ROUTE_SEAT_TYPE_PRICE,
    tags=["Pricing"],
    response_model=Envelope[None],
    description="""
    Removes the price of one seat type on a route.
    Seats of that type fall back to their own price override.
    """,
)
async def delete_seat_type_price(
    route_id: int,
    seat_type: SeatType,
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        seatTypePrice = (
            session.query(SeatTypePrice)
            .filter(
                SeatTypePrice.route_id == route_id,
                SeatTypePrice.seat_type == seat_type,
            )
            .first()
        )
        if seatTypePrice is not None:
            session.delete(seatTypePrice)
            session.commit()
            logEvent(request_info, jsonable_encoder(seatTypePrice))
        return makeEnvelope(None)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
