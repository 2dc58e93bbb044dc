import logging
from decimal import Decimal

from seatbook.src.db import Seat
from seatbook.src.enums import SeatType
from seatbook.src.pricing import priceFor, surcharge


def test_seat_type_price_takes_precedence(session, setPrices):
    setPrices(routeId=1, basePrice="100000", typePrices={SeatType.VIP: "50000"})
    seat = Seat(seat_type=SeatType.VIP, price_override=Decimal("20000"))
    assert priceFor(session, seat, 1) == Decimal("150000")


def test_override_applies_without_seat_type_price(session, setPrices):
    setPrices(routeId=1, basePrice="100000", typePrices={SeatType.VIP: "50000"})
    seat = Seat(seat_type=SeatType.STANDARD, price_override=Decimal("20000"))
    assert priceFor(session, seat, 1) == Decimal("120000")


def test_zero_override_means_no_surcharge(session, setPrices):
    setPrices(routeId=1, basePrice="100000")
    seat = Seat(seat_type=SeatType.STANDARD, price_override=Decimal("0"))
    assert priceFor(session, seat, 1) == Decimal("100000")


def test_prices_are_scoped_to_the_route(session, setPrices):
    setPrices(routeId=1, basePrice="100000", typePrices={SeatType.VIP: "50000"})
    setPrices(routeId=2, basePrice="80000")
    seat = Seat(seat_type=SeatType.VIP, price_override=None)
    assert priceFor(session, seat, 2) == Decimal("80000")


def test_missing_base_price_is_zero_with_warning(session, caplog):
    seat = Seat(seat_type=SeatType.LUXURY, price_override=Decimal("15000"))
    with caplog.at_level(logging.WARNING):
        assert priceFor(session, seat, 99) == Decimal("15000")
    assert "No base price for route 99" in caplog.text


def test_surcharge_without_any_price_data():
    seat = Seat(seat_type=SeatType.DOUBLE, price_override=None)
    assert surcharge(seat, {}) == Decimal("0")
