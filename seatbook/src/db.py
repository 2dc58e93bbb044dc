from secrets import token_hex
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    create_engine,
    func,
    text,
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.dialects.postgresql import JSONB

from seatbook.src.constants import DATABASE_URL
from seatbook.src.enums import SeatType, TicketStatus


# Global DBMS variables
dbURL = DATABASE_URL
engine = create_engine(url=dbURL, echo=False)
sessionMaker = sessionmaker(bind=engine, expire_on_commit=False)
ORMbase = declarative_base()

# Ticket states that hold a seat for a trip
ACTIVE_TICKET_STATES = (TicketStatus.PENDING, TicketStatus.COMPLETED)
_activeTicketClause = text(
    f"status IN ({', '.join(str(int(s)) for s in ACTIVE_TICKET_STATES)})"
)


def generateTicketCode() -> str:
    return "TK" + token_hex(6).upper()


# ----------------------------------- Seat Inventory DB Models --------------------------------#
class Bus(ORMbase):
    """
    Local mirror of a bus managed by the catalog service.

    Only the attributes needed for seat inventory are kept here. The record
    is upserted by the catalog synchronisation endpoint and is the anchor for
    the seat layout and the seats of the bus.

    Columns:
        id (Integer):
            Primary key. Same identifier as the bus in the catalog service.

        company_id (Integer):
            Identifier of the company that owns the bus.
            Must be non-null. Indexed for filtering by company.

        capacity (Integer):
            Declared seating capacity of the bus.
            Must be non-null. Seat generation warns when the layout exceeds it.

        floor_count (Integer):
            Number of decks of the bus (1 or 2).
            Must be non-null. Defaults to 1.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the bus record was initially created.
            Must be non-null. Defaults to the current time.
    """

    __tablename__ = "bus"

    id = Column(Integer, primary_key=True, autoincrement=False)
    company_id = Column(Integer, nullable=False, index=True)
    capacity = Column(Integer, nullable=False)
    floor_count = Column(Integer, nullable=False, default=1)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class SeatLayout(ORMbase):
    """
    Stores the seat layout configuration of a bus.

    A layout is an ordered list of floors, each floor describing the seat
    number prefix and the grid used to place seats on that floor. The layout
    is shared by every terminal and is used to resolve seat positions and to
    generate seat numbers in bulk.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the layout.

        bus_id (Integer):
            Foreign key referencing the bus.
            Must be non-null and unique. Deletion of the bus cascades to its layout.

        floors (JSON):
            Ordered list of floor configurations. Each entry is a dictionary:
                - floor (int): Floor number (1 or 2).
                - prefix (str): Uppercase seat number prefix, unique per bus.
                - rows (int): Number of seat rows on the floor.
                - columns (int): Number of seat columns on the floor.
                - label (str): Display label of the floor.
            Stored as JSONB on PostgreSQL.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the layout was initially created.
            Must be non-null. Defaults to the current time.
    """

    __tablename__ = "seat_layout"

    id = Column(Integer, primary_key=True)
    bus_id = Column(
        Integer,
        ForeignKey("bus.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    floors = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Seat(ORMbase):
    """
    Represents a physical seat of a bus.

    Seats are created in bulk from a layout or individually. The seat number
    is stored uppercase and is unique per bus. A seat can never be deleted
    while a pending or completed ticket references it.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the seat.

        bus_id (Integer):
            Foreign key referencing the bus owning the seat.
            Must be non-null. Indexed for listing the seats of a bus.

        seat_number (String(16)):
            Seat label such as `A01` or `B12`.
            Must be non-null and unique per bus.

        seat_type (Integer):
            Seat class used for pricing (STANDARD, VIP, DOUBLE, LUXURY).
            Must be non-null. Defaults to `SeatType.STANDARD`.

        is_hidden (Boolean):
            Hidden seats are shown as HIDDEN and can not be sold,
            but still count towards the seats of the trip.
            Must be non-null. Defaults to False.

        price_override (Numeric(12, 2)):
            Per seat surcharge used when the route has no seat type price.
            Nullable.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the seat was initially created.
            Must be non-null. Defaults to the current time.
    """

    __tablename__ = "seat"
    __table_args__ = (UniqueConstraint("bus_id", "seat_number"),)

    id = Column(Integer, primary_key=True)
    bus_id = Column(
        Integer,
        ForeignKey("bus.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    seat_number = Column(String(16), nullable=False)
    seat_type = Column(Integer, nullable=False, default=SeatType.STANDARD)
    is_hidden = Column(Boolean, nullable=False, default=False)
    price_override = Column(Numeric(12, 2))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class RoutePrice(ORMbase):
    """
    Base fare of a route, mirrored from the catalog service.

    Columns:
        route_id (Integer):
            Primary key. Identifier of the route in the catalog service.

        base_price (Numeric(12, 2)):
            Price of a standard seat on the route.
            Must be non-null.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the record was initially created.
    """

    __tablename__ = "route_price"

    route_id = Column(Integer, primary_key=True, autoincrement=False)
    base_price = Column(Numeric(12, 2), nullable=False)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class SeatTypePrice(ORMbase):
    """
    Surcharge of a seat type on a route.

    When present, this value takes precedence over the per seat
    `price_override`.

    Columns:
        id (Integer):
            Primary key.

        route_id (Integer):
            Identifier of the route in the catalog service.
            Must be non-null. Unique together with `seat_type`.

        seat_type (Integer):
            Seat class the surcharge applies to.
            Must be non-null.

        price (Numeric(12, 2)):
            Surcharge added to the route base price.
            Must be non-null.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the record was initially created.
    """

    __tablename__ = "seat_type_price"
    __table_args__ = (UniqueConstraint("route_id", "seat_type"),)

    id = Column(Integer, primary_key=True)
    route_id = Column(Integer, nullable=False, index=True)
    seat_type = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Trip(ORMbase):
    """
    A scheduled run of a bus on a route.

    Trips are generated by the external scheduler and ingested here. Only the
    seat counters are written by this service.

    Columns:
        id (Integer):
            Primary key. Same identifier as the trip in the scheduler.

        route_id (Integer):
            Identifier of the route in the catalog service.
            Must be non-null. Indexed.

        bus_id (Integer):
            Foreign key referencing the bus serving the trip.
            Must be non-null. Deletion of the bus cascades to its trips.

        departure_at (DateTime):
            Scheduled departure time. Nullable.

        arrival_at (DateTime):
            Scheduled arrival time. Nullable.

        total_seats (Integer):
            Number of seats of the bus when last synchronised.
            Must be non-null. Defaults to 0.

        available_seats (Integer):
            Number of seats that can still be sold.
            Must be non-null. Defaults to 0.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the trip was ingested.
    """

    __tablename__ = "trip"

    id = Column(Integer, primary_key=True, autoincrement=False)
    route_id = Column(Integer, nullable=False, index=True)
    bus_id = Column(
        Integer,
        ForeignKey("bus.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    departure_at = Column(DateTime(timezone=True))
    arrival_at = Column(DateTime(timezone=True))
    total_seats = Column(Integer, nullable=False, default=0)
    available_seats = Column(Integer, nullable=False, default=0)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Ticket(ORMbase):
    """
    A ticket sold for one seat of one trip.

    Tickets are written only by the booking coordinator. At most one ticket
    per (trip, seat) can be PENDING or COMPLETED at any time; this is enforced
    by a partial unique index so that two concurrent sales of the same seat
    can never both commit.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the ticket.

        trip_id (Integer):
            Foreign key referencing the trip.
            Must be non-null. Deletion of the trip cascades to its tickets.

        seat_id (Integer):
            Foreign key referencing the seat.
            Set to null when the seat is removed after the ticket became inactive.

        seat_number (String(16)):
            Seat label at the time of sale, kept for history.
            Must be non-null.

        ticket_code (String(16)):
            Code printed on the ticket and used to look it up, such as `TK3F9A01C2B4D7`.
            Must be non-null and unique. Generated when the ticket is issued.

        user_id (Integer):
            Identifier of the buyer (customer or counter staff).
            Nullable for anonymous counter sales.

        mode (Integer):
            Sales channel (ONLINE, COUNTER). Stored explicitly.
            Must be non-null.

        status (Integer):
            Ticket state (PENDING, COMPLETED, CANCELLED, FAILED, PAYMENT_FAILED).
            Must be non-null. Defaults to `TicketStatus.PENDING`.

        price (Numeric(12, 2)):
            Price charged for the seat.
            Must be non-null.

        cancelled_on (DateTime):
            Timestamp of the cancellation. Nullable.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the ticket was issued.
    """

    __tablename__ = "ticket"
    __table_args__ = (
        Index(
            "ix_ticket_active_seat",
            "trip_id",
            "seat_id",
            unique=True,
            postgresql_where=_activeTicketClause,
            sqlite_where=_activeTicketClause,
        ),
    )

    id = Column(Integer, primary_key=True)
    trip_id = Column(
        Integer,
        ForeignKey("trip.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    seat_id = Column(Integer, ForeignKey("seat.id", ondelete="SET NULL"), index=True)
    seat_number = Column(String(16), nullable=False)
    ticket_code = Column(
        String(16), unique=True, nullable=False, default=generateTicketCode
    )
    user_id = Column(Integer, index=True)
    mode = Column(Integer, nullable=False)
    status = Column(Integer, nullable=False, default=TicketStatus.PENDING)
    price = Column(Numeric(12, 2), nullable=False)
    cancelled_on = Column(DateTime(timezone=True))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
