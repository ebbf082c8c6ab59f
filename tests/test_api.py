"""HTTP tests for the room endpoints.

Each client starts the app against a freshly recreated SQLite database;
timer minutes last 0.2 seconds (see conftest).
"""

import time
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from database import build_engine, build_session_factory
from lifecycle import ReservationLifecycle
from main import app
from scheduler import TimerScheduler
from store import ReservationStore

MINUTE = 0.2


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


def check(client, room_id=1):
    response = client.get(f"/room/check-reservation/{room_id}")
    assert response.status_code == 200
    return response.json()


def test_check_without_reservation(client):
    assert check(client) == {"result": False, "reason": ""}


def test_reserve_now(client):
    response = client.post("/room/reserve/1", json={})

    assert response.status_code == 200
    body = response.json()
    assert body["result"] is True
    assert len(body["ids"]) == 1

    assert check(client) == {"result": True, "reason": "Reservation already exists."}


def test_reserve_without_body(client):
    response = client.post("/room/reserve/2")

    assert response.status_code == 200
    assert response.json()["result"] is True
    assert check(client, 2)["result"] is True


def test_reserve_twice(client):
    client.post("/room/reserve/1", json={})

    response = client.post("/room/reserve/1", json={})

    assert response.status_code == 200
    assert response.json() == {
        "result": False,
        "reason": "Reservation already exists.",
        "ids": [],
    }


def test_reserve_unknown_room(client):
    response = client.post("/room/reserve/99", json={})

    assert response.status_code == 404
    assert response.json() == {
        "result": False,
        "reason": "Room with id 99 does not exist",
    }


def test_room_id_must_be_an_integer(client):
    response = client.get("/room/check-reservation/abc")

    assert response.status_code == 422


def test_delete_reservation(client):
    client.post("/room/reserve/1", json={})

    response = client.delete("/room/delete-reservation/1")

    assert response.status_code == 200
    assert response.json() == {"result": True, "reason": ""}
    assert check(client)["result"] is False


def test_delete_without_reservation(client):
    response = client.delete("/room/delete-reservation/1")

    assert response.status_code == 200
    assert response.json() == {
        "result": False,
        "reason": "Reservation for room 1 does not exist.",
    }


def test_reservation_expiry(client):
    client.post("/room/reserve/1", json={"reservationLength": 1})
    assert check(client)["result"] is True

    time.sleep(MINUTE * 3)

    assert check(client)["result"] is False


def test_zero_length_does_not_expire(client):
    client.post("/room/reserve/1", json={"reservationLength": 0})

    time.sleep(MINUTE * 3)

    assert check(client)["result"] is True


def test_future_reservation(client):
    start = datetime.now(timezone.utc) + timedelta(minutes=1)

    response = client.post("/room/reserve/1", json={"startTime": start.isoformat()})

    assert response.status_code == 200
    assert response.json() == {"result": True, "reason": "", "ids": []}
    assert check(client)["result"] is False

    time.sleep(MINUTE * 3)

    assert check(client)["result"] is True


def test_zero_start_time_reserves_now(client):
    response = client.post(
        "/room/reserve/1", json={"startTime": "0001-01-01T00:00:00Z"}
    )

    assert len(response.json()["ids"]) == 1
    assert check(client)["result"] is True


def test_store_unavailable_is_a_server_error(client, tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nope.db'}")
    app.state.lifecycle = ReservationLifecycle(
        ReservationStore(build_session_factory(engine)),
        TimerScheduler(seconds_per_minute=MINUTE),
    )

    response = client.get("/room/check-reservation/1")

    assert response.status_code == 503
    assert response.json()["result"] is False
