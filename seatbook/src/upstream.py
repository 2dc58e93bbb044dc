"""
Trip-scoped seat status hints from the catalog service.

The catalog service can report which seats of a bus are booked for a trip.
Its answer is only used when it is explicitly correlated to the requested
trip; anything else is ignored. Failures are logged and treated as "no hint"
so that reconciliation always falls back to the ticket ledger.
"""

import requests
from logging import getLogger

from seatbook.src.constants import CATALOG_SERVICE_URL, CATALOG_SERVICE_TIMEOUT
from seatbook.src.enums import SeatStatus

logger = getLogger("Upstream")


def parseStatus(value) -> SeatStatus | None:
    try:
        if isinstance(value, str):
            return SeatStatus[value.strip().upper()]
        return SeatStatus(int(value))
    except (KeyError, ValueError, TypeError):
        return None


def seatHints(busId: int, tripId: int) -> dict[int, SeatStatus]:
    """
    Fetch BOOKED hints for the seats of a bus on a trip.

    Expected response body:
        {
            "success": true,
            "data": {
                "trip_id": 31,
                "seats": [{"id": 5, "status": "BOOKED"}, ...]
            }
        }

    Returns:
        dict[int, SeatStatus]: Seat id to status, limited to AVAILABLE and
        BOOKED. Empty when the service is not configured, unreachable, or
        answered for another trip.
    """
    if not CATALOG_SERVICE_URL:
        return {}

    url = f"{CATALOG_SERVICE_URL.rstrip('/')}/buses/{busId}/seats"
    try:
        response = requests.get(
            url, params={"tripId": tripId}, timeout=CATALOG_SERVICE_TIMEOUT
        )
        response.raise_for_status()
        body = response.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("Seat hints for trip %s unavailable: %s", tripId, e)
        return {}

    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, dict) or str(data.get("trip_id")) != str(tripId):
        logger.info("Ignoring seat hints not scoped to trip %s", tripId)
        return {}

    seats = data.get("seats")
    if not isinstance(seats, list):
        logger.info("Ignoring seat hints without a seat list for trip %s", tripId)
        return {}

    hints = {}
    for seat in seats:
        if not isinstance(seat, dict):
            continue
        try:
            seatId = int(seat.get("id"))
        except (TypeError, ValueError):
            logger.debug("Skipping seat hint with id %r", seat.get("id"))
            continue
        seatStatus = parseStatus(seat.get("status"))
        if seatStatus in (SeatStatus.AVAILABLE, SeatStatus.BOOKED):
            hints[seatId] = seatStatus
    return hints
