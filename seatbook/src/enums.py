from enum import IntEnum


class AppID(IntEnum):
    OPERATOR = 1
    PUBLIC = 2


class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class SeatType(IntEnum):
    STANDARD = 1
    VIP = 2
    DOUBLE = 3
    LUXURY = 4


class SeatStatus(IntEnum):
    AVAILABLE = 1
    BOOKED = 2
    HIDDEN = 3


class TicketStatus(IntEnum):
    PENDING = 1
    COMPLETED = 2
    CANCELLED = 3
    FAILED = 4
    PAYMENT_FAILED = 5


class SaleMode(IntEnum):
    ONLINE = 1
    COUNTER = 2
