# tests/test_schedule_routes.py
"""API tests for the schedule endpoints, backed by the SQLite store fixture."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from datetime import datetime, timezone
from fastapi.testclient import TestClient
from schoolpool.main import app
from schoolpool.services.schedule_store import ScheduleGraphStore, get_schedule_store

MONDAY_8AM = "2024-01-08T08:00:00.000Z"


@pytest.fixture
def client(store, seed):
    app.dependency_overrides[get_schedule_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def put_vehicle(client, vehicle_id="vehicle-1", **extra):
    body = {"datetime": MONDAY_8AM, "vehicle_id": vehicle_id, **extra}
    response = client.post("/api/v1/groups/group-1/schedule-slots", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestSlotEndpoints:
    def test_create_slot_with_vehicle(self, client):
        data = put_vehicle(client, driver_id="driver-1")
        assert data["vehicle"]["name"] == "Blue Minivan"
        assert data["driver"]["id"] == "driver-1"
        assert data["effective_capacity"] == 3
        assert data["is_at_capacity"] is False
        assert data["created_at"].endswith("Z")

    def test_get_slot(self, client):
        slot_id = put_vehicle(client)["schedule_slot_id"]
        response = client.get(f"/api/v1/schedule-slots/{slot_id}")
        assert response.status_code == 200
        assert response.json()["datetime"] == MONDAY_8AM

    def test_get_missing_slot(self, client):
        assert client.get("/api/v1/schedule-slots/slot-404").status_code == 404

    def test_unknown_vehicle(self, client):
        response = client.post(
            "/api/v1/groups/group-1/schedule-slots",
            json={"datetime": MONDAY_8AM, "vehicle_id": "vehicle-404"},
        )
        assert response.status_code == 404
        assert response.json()["error"] == "VehicleNotFoundError"

    def test_duplicate_vehicle(self, client):
        slot_id = put_vehicle(client)["schedule_slot_id"]
        response = client.post(f"/api/v1/schedule-slots/{slot_id}/vehicles", json={"vehicle_id": "vehicle-1"})
        assert response.status_code == 409
        assert response.json()["error"] == "DuplicateAssignmentError"

    def test_detach_last_vehicle_removes_slot(self, client):
        slot_id = put_vehicle(client)["schedule_slot_id"]
        response = client.delete(f"/api/v1/schedule-slots/{slot_id}/vehicles/vehicle-1")
        assert response.status_code == 200
        assert response.json()["slot_was_deleted"] is True
        assert client.get(f"/api/v1/schedule-slots/{slot_id}").status_code == 404


class TestWeekQuery:
    def test_week_by_number(self, client):
        put_vehicle(client)
        response = client.get("/api/v1/groups/group-1/schedule",
                              params={"year": 2024, "week": 2, "timezone": "Europe/Paris"})
        assert response.status_code == 200
        assert [s["datetime"] for s in response.json()] == [MONDAY_8AM]

    def test_week_by_reference(self, client):
        put_vehicle(client)
        response = client.get("/api/v1/groups/group-1/schedule",
                              params={"reference": "2024-01-14T10:00:00Z", "timezone": "America/Los_Angeles"})
        assert len(response.json()) == 1

    def test_explicit_range(self, client):
        put_vehicle(client)
        response = client.get("/api/v1/groups/group-1/schedule",
                              params={"start": "2024-01-09T00:00:00Z", "end": "2024-01-10T00:00:00Z"})
        assert response.json() == []

    def test_missing_week_selector(self, client):
        response = client.get("/api/v1/groups/group-1/schedule")
        assert response.status_code == 400
        assert response.json()["error"] == "CalendarError"

    def test_week_53_of_52_week_year(self, client):
        response = client.get("/api/v1/groups/group-1/schedule", params={"year": 2024, "week": 53})
        assert response.status_code == 400

    def test_unknown_timezone(self, client):
        response = client.get("/api/v1/groups/group-1/schedule",
                              params={"year": 2024, "week": 1, "timezone": "Mars/Olympus_Mons"})
        assert response.status_code == 400


class TestChildEndpoints:
    def test_attach_child_and_capacity(self, client):
        va = put_vehicle(client)
        slot_id = va["schedule_slot_id"]

        response = client.post(f"/api/v1/schedule-slots/{slot_id}/children",
                               json={"child_id": "child-1", "vehicle_assignment_id": va["id"]})
        assert response.status_code == 201
        assert response.json()["over_capacity"] is False

        summary = client.get(f"/api/v1/schedule-slots/{slot_id}/capacity").json()
        assert summary["child_count"] == 1
        assert summary["available_seats"] == 2

    def test_duplicate_child(self, client):
        va = put_vehicle(client)
        body = {"child_id": "child-1", "vehicle_assignment_id": va["id"]}
        client.post(f"/api/v1/schedule-slots/{va['schedule_slot_id']}/children", json=body)
        response = client.post(f"/api/v1/schedule-slots/{va['schedule_slot_id']}/children", json=body)
        assert response.status_code == 409
        assert response.json()["error"] == "DuplicateChildAssignmentError"

    def test_unknown_child(self, client):
        va = put_vehicle(client)
        response = client.post(f"/api/v1/schedule-slots/{va['schedule_slot_id']}/children",
                               json={"child_id": "child-404", "vehicle_assignment_id": va["id"]})
        assert response.status_code == 404

    def test_detach_child(self, client):
        va = put_vehicle(client)
        client.post(f"/api/v1/schedule-slots/{va['schedule_slot_id']}/children",
                    json={"child_id": "child-2", "vehicle_assignment_id": va["id"]})
        response = client.delete(f"/api/v1/schedule-slots/{va['schedule_slot_id']}/children/child-2")
        assert response.status_code == 200
        assert response.json()["child"]["name"] == "Liam"


class TestUpdateEndpoints:
    def test_seat_override_out_of_range(self, client):
        va = put_vehicle(client)
        response = client.patch(f"/api/v1/vehicle-assignments/{va['id']}/seat-override", json={"seat_override": 11})
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidSeatOverrideError"

    def test_seat_override(self, client):
        va = put_vehicle(client)
        response = client.patch(f"/api/v1/vehicle-assignments/{va['id']}/seat-override", json={"seat_override": 0})
        assert response.status_code == 200
        assert response.json()["effective_capacity"] == 0

    def test_change_driver(self, client):
        va = put_vehicle(client, driver_id="driver-1")
        response = client.patch(f"/api/v1/schedule-slots/{va['schedule_slot_id']}/vehicles/vehicle-1/driver",
                                json={"driver_id": "driver-2"})
        assert response.json()["driver"]["name"] == "Alex Parent"


class TestGridView:
    def test_slots_carry_local_labels(self, client):
        put_vehicle(client)
        response = client.get("/api/v1/groups/group-1/schedule",
                              params={"year": 2024, "week": 2, "timezone": "Europe/Paris"})
        slot = response.json()[0]
        assert slot["timezone"] == "Europe/Paris"
        assert (slot["day"], slot["time"], slot["week"]) == ("MONDAY", "09:00", "2024-W02")
        assert slot["datetime"] == MONDAY_8AM

    def test_abbreviated_timezone_is_refused(self, client):
        response = client.get("/api/v1/groups/group-1/schedule",
                              params={"year": 2024, "week": 2, "timezone": "CET"})
        assert response.status_code == 400
        assert response.json()["error"] == "CalendarError"


class TestConflictEndpoints:
    def test_vehicle_booked_in_another_group(self, client):
        slot_id = put_vehicle(client)["schedule_slot_id"]
        response = client.post("/api/v1/groups/group-2/schedule-slots",
                               json={"datetime": MONDAY_8AM, "vehicle_id": "vehicle-1"})
        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "SchedulingConflictError"
        assert body["conflicts"][0]["type"] == "VEHICLE_DOUBLE_BOOKING"
        assert body["conflicts"][0]["conflicting_slot_id"] == slot_id
        assert body["conflicts"][0]["datetime"] == MONDAY_8AM

    def test_list_conflicts(self, client):
        put_vehicle(client, driver_id="driver-1")
        response = client.get("/api/v1/schedule-conflicts",
                              params={"datetime": MONDAY_8AM, "driver_id": "driver-1"})
        assert response.status_code == 200
        assert [c["type"] for c in response.json()] == ["DRIVER_DOUBLE_BOOKING"]

    def test_no_conflicts(self, client):
        put_vehicle(client)
        response = client.get("/api/v1/schedule-conflicts",
                              params={"datetime": "2024-01-09T08:00:00Z", "vehicle_id": "vehicle-1"})
        assert response.json() == []


class TestPastSlotEndpoints:
    def test_past_slot_cannot_be_created(self, session_factory, seed):
        late = ScheduleGraphStore(session_factory, clock=lambda: datetime(2024, 6, 1, tzinfo=timezone.utc))
        app.dependency_overrides[get_schedule_store] = lambda: late
        try:
            response = TestClient(app).post("/api/v1/groups/group-1/schedule-slots",
                                            json={"datetime": MONDAY_8AM, "vehicle_id": "vehicle-1"})
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == 400
        assert response.json()["error"] == "SlotInPastError"
