"""
Test configuration and fixtures.

The environment must be prepared before any `seatbook` module is imported,
since configuration is read at import time:

- A file-backed SQLite database replaces PostgreSQL.
- Seat issuance runs one seat at a time, SQLite serializes writers anyway.
- The catalog service is disabled so reconciliation relies on the ledger.
"""

import os, tempfile
from decimal import Decimal
from pathlib import Path

_dbFile = Path(tempfile.gettempdir()) / f"seatbook-test-{os.getpid()}.sqlite3"
os.environ["DATABASE_URL"] = f"sqlite:///{_dbFile}?check_same_thread=false"
os.environ["MAX_ISSUE_CONCURRENCY"] = "1"
os.environ["CATALOG_SERVICE_URL"] = ""

import pytest  # noqa: E402
from sqlalchemy import event  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from seatbook.src import db, openobserve  # noqa: E402
from seatbook.src import redis as seatbookRedis  # noqa: E402
from seatbook.src.db import (  # noqa: E402
    Bus,
    RoutePrice,
    Seat,
    SeatTypePrice,
    Ticket,
    Trip,
)
from seatbook.src.enums import SaleMode, SeatType, TicketStatus  # noqa: E402


@event.listens_for(db.engine, "connect")
def _enableForeignKeys(dbapiConnection, connectionRecord):
    cursor = dbapiConnection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class FakeLock:
    def __init__(self, name):
        self.name = name
        self.held = False

    def acquire(self, blocking=True, blocking_timeout=None):
        self.held = True
        return True

    def locked(self):
        return self.held

    def owned(self):
        return self.held

    def release(self):
        self.held = False


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------
@pytest.fixture(scope="session", autouse=True)
def databaseFile():
    yield _dbFile
    db.engine.dispose()
    _dbFile.unlink(missing_ok=True)


@pytest.fixture(autouse=True)
def tables():
    db.ORMbase.metadata.create_all(db.engine)
    yield
    db.ORMbase.metadata.drop_all(db.engine)


@pytest.fixture(autouse=True)
def redisLocks(monkeypatch):
    locks = []

    def lock(name, timeout=None):
        fakeLock = FakeLock(name)
        locks.append(fakeLock)
        return fakeLock

    monkeypatch.setattr(seatbookRedis.redisClient, "lock", lock)
    return locks


@pytest.fixture(autouse=True)
def auditEvents(monkeypatch):
    events = []

    def ingest(payload):
        if isinstance(payload, list):
            events.extend(payload)
        else:
            events.append(payload)
        return None

    monkeypatch.setattr(openobserve, "_ingest", ingest)
    return events


@pytest.fixture
def session():
    session = db.sessionMaker()
    yield session
    session.close()


@pytest.fixture
def client():
    from seatbook.main import app

    return TestClient(app)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
def _save(*records):
    session = db.sessionMaker()
    try:
        session.add_all(records)
        session.commit()
        for record in records:
            session.refresh(record)
        return records
    finally:
        session.close()


@pytest.fixture
def makeBus():
    def make(busId=1, capacity=40, floorCount=1, companyId=1) -> Bus:
        (bus,) = _save(
            Bus(id=busId, company_id=companyId, capacity=capacity, floor_count=floorCount)
        )
        return bus

    return make


@pytest.fixture
def makeSeats():
    def make(busId, numbers, seatType=SeatType.STANDARD, hidden=(), priceOverride=None):
        seats = [
            Seat(
                bus_id=busId,
                seat_number=number,
                seat_type=seatType,
                is_hidden=number in hidden,
                price_override=priceOverride,
            )
            for number in numbers
        ]
        return list(_save(*seats))

    return make


@pytest.fixture
def makeTrip():
    def make(tripId=1, busId=1, routeId=1) -> Trip:
        (trip,) = _save(Trip(id=tripId, bus_id=busId, route_id=routeId))
        return trip

    return make


@pytest.fixture
def makeTicket():
    def make(tripId, seat, status=TicketStatus.COMPLETED, mode=SaleMode.COUNTER) -> Ticket:
        (ticket,) = _save(
            Ticket(
                trip_id=tripId,
                seat_id=seat.id,
                seat_number=seat.seat_number,
                mode=mode,
                status=status,
                price=Decimal("0"),
            )
        )
        return ticket

    return make


@pytest.fixture
def setPrices():
    def make(routeId=1, basePrice=None, typePrices=None):
        records = []
        if basePrice is not None:
            records.append(RoutePrice(route_id=routeId, base_price=Decimal(basePrice)))
        for seatType, price in (typePrices or {}).items():
            records.append(
                SeatTypePrice(route_id=routeId, seat_type=seatType, price=Decimal(price))
            )
        _save(*records)

    return make
