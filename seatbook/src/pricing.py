"""
Seat pricing for SeatBook.

The price of a seat on a route is the route base price plus a surcharge.
The surcharge is resolved in this order:

1. The seat type price configured for the route.
2. The seat's own `price_override`, when it is not zero.
3. Zero.

Missing price data is never an error; it resolves to zero and is logged.
"""

from decimal import Decimal
from logging import getLogger
from sqlalchemy.orm.session import Session

from seatbook.src.db import RoutePrice, Seat, SeatTypePrice

logger = getLogger("uvicorn.error")

ZERO = Decimal("0")


def toDecimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def basePrice(session: Session, routeId: int) -> Decimal:
    routePrice = session.query(RoutePrice).filter(RoutePrice.route_id == routeId).first()
    if routePrice is None:
        logger.warning("No base price for route %s, using 0", routeId)
        return ZERO
    return toDecimal(routePrice.base_price)


def seatTypePrices(session: Session, routeId: int) -> dict[int, Decimal]:
    rows = session.query(SeatTypePrice).filter(SeatTypePrice.route_id == routeId)
    return {row.seat_type: toDecimal(row.price) for row in rows}


def surcharge(seat: Seat, typePrices: dict[int, Decimal]) -> Decimal:
    if seat.seat_type in typePrices:
        return typePrices[seat.seat_type]
    override = toDecimal(seat.price_override)
    if override != ZERO:
        return override
    return ZERO


def priceFor(session: Session, seat: Seat, routeId: int) -> Decimal:
    """
    Compute the price of a seat on a route.

    Example:
        >>> # base 100000, VIP seat type price 50000, seat override 20000
        >>> priceFor(session, vipSeat, routeId)
        Decimal('150000.00')
    """
    return basePrice(session, routeId) + surcharge(seat, seatTypePrices(session, routeId))
