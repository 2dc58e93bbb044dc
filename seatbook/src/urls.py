"""
API Endpoint URL Constants

This module defines the URL paths used throughout the application
for accessing seat inventory, pricing, trip and ticket resources.

These URLs are relative paths and are prefixed by the mount point of the
application (`/operator` or `/public`) when making requests.
"""

# -------------------------------
# Bus & Layout
# -------------------------------
URL_BUS = "/buses/{bus_id}"
URL_BUS_LAYOUT = "/buses/{bus_id}/layout"
URL_BUS_LAYOUT_SEATS = "/buses/{bus_id}/layout/seats"
URL_BUS_SEATS = "/buses/{bus_id}/seats"

# -------------------------------
# Seat
# -------------------------------
URL_SEAT = "/seats"
URL_SEAT_BULK = "/seats/bulk"
URL_SEAT_ID = "/seats/{seat_id}"

# -------------------------------
# Pricing
# -------------------------------
URL_ROUTE_PRICE = "/routes/{route_id}/price"
URL_ROUTE_SEAT_TYPE_PRICES = "/routes/{route_id}/seat-type-prices"
URL_ROUTE_SEAT_TYPE_PRICE = "/routes/{route_id}/seat-type-prices/{seat_type}"

# -------------------------------
# Trip
# -------------------------------
URL_TRIP = "/trips"
URL_TRIP_ID = "/trips/{trip_id}"
URL_TRIP_SEAT_STATUS = "/trips/{trip_id}/seats/status"
URL_TRIP_SEAT_LIVE = "/trips/{trip_id}/seats/live"

# -------------------------------
# Ticket
# -------------------------------
URL_TICKET = "/tickets"
URL_TICKET_COUNTER = "/tickets/counter"
URL_TICKET_LOOKUP = "/tickets/lookup"
URL_TICKET_ID = "/tickets/{ticket_id}"
URL_TICKET_CANCEL = "/tickets/{ticket_id}/cancel"
URL_TICKET_STATUS = "/tickets/{ticket_id}/status"
