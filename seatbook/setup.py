import argparse
from http import HTTPStatus
from decimal import Decimal
from requests import post, put
from datetime import datetime, timedelta, timezone

from seatbook.src.enums import SeatType, TicketStatus, SaleMode
from seatbook.src.urls import (
    URL_BUS_LAYOUT,
    URL_BUS_LAYOUT_SEATS,
    URL_ROUTE_SEAT_TYPE_PRICES,
    URL_TICKET_COUNTER,
    URL_TRIP,
)
from seatbook.src.db import (
    Bus,
    RoutePrice,
    SeatTypePrice,
    sessionMaker,
    engine,
    ORMbase,
)


# ----------------------------------- Project Setup -------------------------------------------#
def removeTables():
    session = sessionMaker()
    ORMbase.metadata.drop_all(engine)
    session.commit()
    print("* All tables deleted")
    session.close()


def createTables():
    session = sessionMaker()
    ORMbase.metadata.create_all(engine)
    session.commit()
    print("* All tables created")
    session.close()


def initDB():
    session = sessionMaker()
    singleDecker = Bus(id=1, company_id=1, capacity=40, floor_count=1)
    sleeper = Bus(id=2, company_id=1, capacity=36, floor_count=2)
    session.add_all([singleDecker, sleeper])
    session.flush()

    routePrice = RoutePrice(route_id=1, base_price=Decimal("100000"))
    vipPrice = SeatTypePrice(
        route_id=1, seat_type=SeatType.VIP, price=Decimal("50000")
    )
    session.add_all([routePrice, vipPrice])
    session.flush()

    session.commit()
    print("* Initialization completed")
    session.close()


def POST(URL: str, header: dict = {}, status_code: int = HTTPStatus.CREATED, **kwargs):
    response = post(URL, headers=header, **kwargs)
    if response.status_code != status_code:
        assert response.status_code == status_code
    else:
        return response


def PUT(URL: str, header: dict = {}, status_code: int = HTTPStatus.OK, **kwargs):
    response = put(URL, headers=header, **kwargs)
    if response.status_code != status_code:
        assert response.status_code == status_code
    else:
        return response


def testDB():
    # Base URL
    BASE_URL = "http://127.0.0.1:8080/operator"

    # Seat layouts
    singleDeckerLayout = {
        "floors": [{"floor": 1, "prefix": "A", "rows": 10, "columns": 4}]
    }
    sleeperLayout = {
        "floors": [
            {"floor": 1, "prefix": "L", "rows": 6, "columns": 3},
            {"floor": 2, "prefix": "U", "rows": 6, "columns": 3},
        ]
    }
    PUT(BASE_URL + URL_BUS_LAYOUT.format(bus_id=1), json=singleDeckerLayout)
    PUT(BASE_URL + URL_BUS_LAYOUT.format(bus_id=2), json=sleeperLayout)
    print("* Created seat layouts")

    # Seats
    seats = POST(BASE_URL + URL_BUS_LAYOUT_SEATS.format(bus_id=1))
    POST(
        BASE_URL + URL_BUS_LAYOUT_SEATS.format(bus_id=2),
        data={"seat_type": int(SeatType.DOUBLE)},
    )
    print("* Created seats")

    # Seat type prices
    PUT(
        BASE_URL + URL_ROUTE_SEAT_TYPE_PRICES.format(route_id=1),
        data={"seat_type": int(SeatType.DOUBLE), "price": 30000},
    )
    print("* Created seat type prices")

    # Trips
    departure = datetime.now(timezone.utc) + timedelta(days=1)
    tripData = {
        "id": 1,
        "route_id": 1,
        "bus_id": 1,
        "departure_at": departure.isoformat(),
        "arrival_at": (departure + timedelta(hours=6)).isoformat(),
    }
    POST(BASE_URL + URL_TRIP, data=tripData)
    tripData.update({"id": 2, "bus_id": 2})
    POST(BASE_URL + URL_TRIP, data=tripData)
    print("* Created trips")

    # Counter tickets
    seatIds = [seat["id"] for seat in seats.json()["data"][:3]]
    tickets = POST(
        BASE_URL + URL_TICKET_COUNTER,
        json={"trip_id": 1, "seat_ids": seatIds},
        status_code=HTTPStatus.OK,
    )
    for ticket in tickets.json()["data"]["succeeded"]:
        assert ticket["mode"] == SaleMode.COUNTER
        assert ticket["status"] == TicketStatus.COMPLETED
    print("* Created counter tickets")


# Setup database
if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    # remove tables
    parser.add_argument("-rm", action="store_true", help="remove tables")
    parser.add_argument("-cr", action="store_true", help="create tables")
    parser.add_argument("-init", action="store_true", help="initialize DB")
    parser.add_argument("-test", action="store_true", help="add test data")
    args = parser.parse_args()

    if args.cr:
        createTables()
    if args.init:
        initDB()
    if args.test:
        testDB()
    if args.rm:
        removeTables()
