import asyncio
from datetime import datetime, timezone

import pytest

from seatbook.src import upstream
from seatbook.src.enums import AppID, SaleMode, SeatType, TicketStatus

OPERATOR = "/operator"
PUBLIC = "/public"


@pytest.fixture
def bus(client):
    response = client.put(
        f"{OPERATOR}/buses/1", data={"company_id": 1, "capacity": 4, "floor_count": 1}
    )
    assert response.status_code == 200
    return response.json()["data"]


@pytest.fixture
def seats(client, bus):
    layout = {"floors": [{"floor": 1, "prefix": "a", "rows": 2, "columns": 2}]}
    assert client.put(f"{OPERATOR}/buses/1/layout", json=layout).status_code == 200
    response = client.post(f"{OPERATOR}/buses/1/layout/seats")
    assert response.status_code == 201
    return response.json()["data"]


@pytest.fixture
def trip(client, seats):
    client.put(f"{OPERATOR}/routes/1/price", data={"base_price": "100000"})
    departure = datetime(2026, 11, 2, 8, 30, tzinfo=timezone.utc)
    response = client.post(
        f"{OPERATOR}/trips",
        data={
            "id": 11,
            "route_id": 1,
            "bus_id": 1,
            "departure_at": departure.isoformat(),
        },
    )
    assert response.status_code == 201
    return response.json()["data"]


def issue(client, seatIds, counter=True, tripId=11, app=OPERATOR):
    url = f"{app}/tickets/counter" if counter else f"{app}/tickets"
    return client.post(url, json={"trip_id": tripId, "seat_ids": seatIds, "user_id": 5})


def assertError(response, statusCode, errorKind):
    assert response.status_code == statusCode
    body = response.json()
    assert body["success"] is False
    assert body["data"]["errorKind"] == errorKind
    return body


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "OK"


# ---------------------------------------------------------------------------
# Layout & seats
# ---------------------------------------------------------------------------
def test_generated_seats(client, seats, auditEvents):
    body = client.get(f"{OPERATOR}/buses/1/layout").json()
    assert body["success"] is True
    assert body["data"]["floors"][0]["prefix"] == "A"
    assert body["data"]["floors"][0]["label"] == "Lower deck"
    assert body["data"]["seat_count"] == 4
    assert [seat["seat_number"] for seat in seats] == ["A01", "A02", "A03", "A04"]
    assert any(event["_path"] == "/operator/buses/1/layout/seats" for event in auditEvents)
    assert all(event["_app_id"] == AppID.OPERATOR for event in auditEvents)


def test_seat_map_positions(client, seats):
    body = client.get(f"{OPERATOR}/buses/1/seats").json()
    positions = {
        seat["seat_number"]: seat["position"] for seat in body["data"]["seats"]
    }
    assert (positions["A03"]["floor"], positions["A03"]["row"], positions["A03"]["col"]) == (1, 2, 1)
    assert positions["A03"]["display_index"] == "3"
    assert body["data"]["summary"] is None
    assert body["data"]["layout_config"][0]["columns"] == 2


def test_layout_with_too_many_floors(client, bus):
    layout = {
        "floors": [
            {"floor": 1, "prefix": "L", "rows": 1, "columns": 1},
            {"floor": 2, "prefix": "U", "rows": 1, "columns": 1},
        ]
    }
    response = client.put(f"{OPERATOR}/buses/1/layout", json=layout)
    assertError(response, 406, "InvalidLayout")


def test_generate_over_capacity_is_opt_in(client, bus):
    layout = {"floors": [{"floor": 1, "prefix": "A", "rows": 3, "columns": 2}]}
    client.put(f"{OPERATOR}/buses/1/layout", json=layout)
    assertError(client.post(f"{OPERATOR}/buses/1/layout/seats"), 406, "ExceededMaxLimit")
    response = client.post(
        f"{OPERATOR}/buses/1/layout/seats", data={"allow_over_capacity": True}
    )
    assert response.status_code == 201
    assert response.json()["message"] == "6 seats created"


def test_bulk_create_collision(client, seats):
    response = client.post(
        f"{OPERATOR}/seats/bulk",
        json={
            "seats": [
                {"bus_id": 1, "seat_number": "a01"},
                {"bus_id": 1, "seat_number": "B01", "seat_type": SeatType.VIP},
            ]
        },
    )
    body = assertError(response, 409, "SeatNumberCollision")
    assert body["data"]["seat_numbers"] == ["A01"]
    assert response.headers["X-Error"] == "SeatNumberCollision"
    assert len(client.get(f"{OPERATOR}/seats", params={"bus_id": 1}).json()["data"]) == 4


def test_bulk_create_and_update(client, bus, redisLocks):
    response = client.post(
        f"{OPERATOR}/seats/bulk",
        json={"seats": [{"bus_id": 1, "seat_number": "v1", "seat_type": SeatType.VIP}]},
    )
    assert response.status_code == 201
    (seat,) = response.json()["data"]
    assert seat["seat_number"] == "V1"

    response = client.put(
        f"{OPERATOR}/seats/bulk",
        json={"seats": [{"id": seat["id"], "is_hidden": True, "price_override": 2500}]},
    )
    assert response.status_code == 200
    (updated,) = response.json()["data"]
    assert updated["is_hidden"] is True
    assert updated["price_override"] == 2500
    assert updated["seat_type"] == SeatType.VIP
    assert "lock:bus:1" in [lock.name for lock in redisLocks]

    response = client.put(
        f"{OPERATOR}/seats/bulk", json={"seats": [{"id": seat["id"], "price_override": None}]}
    )
    (cleared,) = response.json()["data"]
    assert cleared["price_override"] is None
    assert cleared["is_hidden"] is True


def test_unknown_bus(client):
    assertError(client.get(f"{OPERATOR}/buses/9/layout"), 404, "UnknownValue")


# ---------------------------------------------------------------------------
# Trips & tickets
# ---------------------------------------------------------------------------
def test_trip_ingest_sets_counters(client, trip):
    assert (trip["total_seats"], trip["available_seats"]) == (4, 4)
    body = client.get(f"{OPERATOR}/trips/11").json()
    assert body["data"]["summary"]["available"] == 4


def test_seat_changes_keep_trip_counters(client, seats, trip):
    client.put(
        f"{OPERATOR}/seats/bulk", json={"seats": [{"id": seats[0]["id"], "is_hidden": True}]}
    )
    client.post(f"{OPERATOR}/seats/bulk", json={"seats": [{"bus_id": 1, "seat_number": "A05"}]})

    body = client.get(f"{OPERATOR}/trips/11").json()["data"]
    assert (body["total_seats"], body["available_seats"]) == (5, 4)
    assert body["total_seats"] == body["summary"]["total"]
    assert body["available_seats"] == body["summary"]["available"]

    client.delete(f"{OPERATOR}/seats/{seats[1]['id']}")
    body = client.get(f"{OPERATOR}/trips/11").json()["data"]
    assert (body["total_seats"], body["available_seats"]) == (4, 3)


def test_seat_status_is_computed_off_the_event_loop(client, seats, trip, monkeypatch):
    calls = []

    def seatHints(busId, tripId):
        try:
            asyncio.get_running_loop()
            calls.append("event loop")
        except RuntimeError:
            calls.append("worker thread")
        return {}

    monkeypatch.setattr(upstream, "seatHints", seatHints)
    assert client.get(f"{OPERATOR}/trips/11/seats/status").status_code == 200
    assert client.get(f"{OPERATOR}/trips/11").status_code == 200
    assert client.get(f"{OPERATOR}/buses/1/seats", params={"trip_id": 11}).status_code == 200
    assert client.get(f"{PUBLIC}/trips/11/seats/status").status_code == 200
    assert client.get(f"{PUBLIC}/buses/1/seats", params={"trip_id": 11}).status_code == 200
    assert calls == ["worker thread"] * 5


def test_counter_sale_and_status(client, seats, trip, auditEvents):
    seatIds = [seat["id"] for seat in seats]
    response = issue(client, seatIds[:2])
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "2 of 2 seats issued"
    tickets = body["data"]["succeeded"]
    assert [ticket["status"] for ticket in tickets] == [TicketStatus.COMPLETED] * 2
    assert tickets[0]["price"] == 100000
    assert [e["_user_id"] for e in auditEvents if e.get("seat_id") in seatIds[:2]] == [5, 5]

    status = client.get(f"{OPERATOR}/trips/11/seats/status").json()["data"]
    assert status["version"] == 1
    assert status["statuses"][str(seatIds[0])] == "BOOKED"
    assert status["statuses"][str(seatIds[3])] == "AVAILABLE"
    summary = status["summary"]
    assert (summary["booked"], summary["available"]) == (2, 2)
    assert summary["booked"] + summary["available"] + summary["hidden"] == summary["total"]


def test_partial_batch(client, seats, trip):
    seatIds = [seat["id"] for seat in seats]
    issue(client, [seatIds[1]])
    body = issue(client, seatIds[:3]).json()
    assert [t["seat_id"] for t in body["data"]["succeeded"]] == [seatIds[0], seatIds[2]]
    assert body["data"]["failed"] == [
        {
            "seat_id": seatIds[1],
            "reason": "SeatUnavailable",
            "message": "The seat is already booked or not open for sale",
        }
    ]
    assert client.get(f"{OPERATOR}/trips/11").json()["data"]["available_seats"] == 1


def test_cancel_makes_seat_available(client, seats, trip):
    seatId = seats[0]["id"]
    ticket = issue(client, [seatId]).json()["data"]["succeeded"][0]

    response = client.patch(f"{OPERATOR}/tickets/{ticket['id']}/cancel")
    assert response.status_code == 200
    assert response.json()["data"]["status"] == TicketStatus.CANCELLED

    status = client.get(f"{OPERATOR}/trips/11/seats/status").json()["data"]
    assert status["statuses"][str(seatId)] == "AVAILABLE"
    assert len(issue(client, [seatId]).json()["data"]["succeeded"]) == 1


def test_ticket_status_transitions(client, seats, trip):
    ticket = issue(client, [seats[0]["id"]], counter=False).json()["data"]["succeeded"][0]
    assert ticket["status"] == TicketStatus.PENDING
    assert ticket["mode"] == SaleMode.ONLINE
    url = f"{OPERATOR}/tickets/{ticket['id']}/status"

    response = client.patch(url, data={"status": int(TicketStatus.COMPLETED)})
    assert response.json()["data"]["status"] == TicketStatus.COMPLETED
    response = client.patch(url, data={"status": int(TicketStatus.PENDING)})
    assertError(response, 406, "InvalidTransition")


def test_delete_ticket(client, seats, trip):
    ticket = issue(client, [seats[0]["id"]]).json()["data"]["succeeded"][0]
    url = f"{OPERATOR}/tickets/{ticket['id']}"

    assertError(client.delete(url), 406, "DataInUse")
    client.patch(f"{url}/cancel")
    assert client.delete(url).json()["data"]["id"] == ticket["id"]
    assert client.delete(url).json() == {"success": True, "data": None, "message": None}


def test_search_tickets(client, seats, trip):
    seatIds = [seat["id"] for seat in seats]
    issue(client, seatIds[:2])
    issue(client, [seatIds[2]], counter=False)

    params = {"trip_id": 11, "mode": int(SaleMode.ONLINE)}
    tickets = client.get(f"{OPERATOR}/tickets", params=params).json()["data"]
    assert [ticket["seat_id"] for ticket in tickets] == [seatIds[2]]
    tickets = client.get(f"{OPERATOR}/tickets", params={"trip_id": 11}).json()["data"]
    assert len(tickets) == 3


def test_ticket_detail_and_lookup(client, seats, trip):
    ticket = issue(client, [seats[0]["id"]]).json()["data"]["succeeded"][0]
    code = ticket["ticket_code"]
    assert code.startswith("TK")

    body = client.get(f"{OPERATOR}/tickets/{ticket['id']}").json()
    assert body["data"]["ticket_code"] == code
    assertError(client.get(f"{OPERATOR}/tickets/9999"), 404, "InvalidIdentifier")

    params = {"ticket_code": f" {code.lower()} "}
    for app in (OPERATOR, PUBLIC):
        body = client.get(f"{app}/tickets/lookup", params=params).json()
        assert body["data"]["id"] == ticket["id"]
    missing = client.get(f"{PUBLIC}/tickets/lookup", params={"ticket_code": "TK000000000000"})
    assertError(missing, 404, "UnknownValue")

    tickets = client.get(f"{OPERATOR}/tickets", params={"ticket_code": code}).json()["data"]
    assert [t["id"] for t in tickets] == [ticket["id"]]


def test_seat_with_active_ticket_can_not_be_deleted(client, seats, trip):
    issue(client, [seats[0]["id"]])
    assertError(client.delete(f"{OPERATOR}/seats/{seats[0]['id']}"), 409, "SeatInUse")

    body = client.delete(f"{OPERATOR}/buses/1/seats").json()["data"]
    assert (body["deleted"], body["blocked"]) == (3, 1)


def test_seat_map_with_trip(client, seats, trip):
    issue(client, [seats[1]["id"]])
    body = client.get(f"{OPERATOR}/buses/1/seats", params={"trip_id": 11}).json()
    statuses = {seat["seat_number"]: seat["status"] for seat in body["data"]["seats"]}
    assert statuses == {"A01": "AVAILABLE", "A02": "BOOKED", "A03": "AVAILABLE", "A04": "AVAILABLE"}
    assert body["data"]["summary"]["booked"] == 1


def test_errors_use_envelope(client, trip):
    assertError(client.get(f"{OPERATOR}/trips/99/seats/status"), 404, "InvalidIdentifier")
    assertError(issue(client, [1], tripId=99), 404, "InvalidIdentifier")
    assertError(issue(client, list(range(1, 22))), 406, "ExceededMaxLimit")
    body = assertError(
        client.post(f"{OPERATOR}/tickets", json={"trip_id": 11, "seat_ids": []}),
        422,
        "PydanticError",
    )
    assert body["data"]["errors"]


def test_live_seat_status_stream(client, seats, trip):
    url = f"{OPERATOR}/trips/11/seats/live"
    with client.stream("GET", url, params={"limit": 1, "interval": 1}) as response:
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        text = "".join(response.iter_text())
    assert "event: snapshot\ndata: " in text
    assert '"trip_id": 11' in text


# ---------------------------------------------------------------------------
# Public app
# ---------------------------------------------------------------------------
def test_public_booking(client, seats, trip, auditEvents):
    response = issue(client, [seats[0]["id"]], counter=False, app=PUBLIC)
    assert response.status_code == 200
    (ticket,) = response.json()["data"]["succeeded"]
    assert ticket["status"] == TicketStatus.PENDING
    assert auditEvents[-1]["_app_id"] == AppID.PUBLIC

    status = client.get(f"{PUBLIC}/trips/11/seats/status").json()["data"]
    assert status["statuses"][str(seats[0]["id"])] == "BOOKED"
    seatMap = client.get(f"{PUBLIC}/buses/1/seats", params={"trip_id": 11}).json()
    assert seatMap["data"]["seats"][0]["status"] == "BOOKED"


def test_public_app_has_no_counter_sales(client, seats, trip):
    assert issue(client, [seats[0]["id"]], app=PUBLIC).status_code in (404, 405)
