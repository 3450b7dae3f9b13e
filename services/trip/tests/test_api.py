"""
Tests for the trip service HTTP API.

Runs the real application, lifespan included, through FastAPI's TestClient.
"""
from uuid import uuid4

import pytest
from fastapi.routing import APIRoute
from fastapi.testclient import TestClient

from app import main


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(main, "SEED_DEMO_DATA", True)
    with TestClient(main.app) as client:
        yield client


@pytest.fixture
def empty_client(monkeypatch):
    monkeypatch.setattr(main, "SEED_DEMO_DATA", False)
    with TestClient(main.app) as client:
        yield client


@pytest.fixture
def started_trip(client):
    driver = client.get("/queries/drivers", params={"available": True}).json()[0]
    vehicle = client.get("/queries/vehicles", params={"available": True}).json()[0]
    route = client.get("/queries/routes").json()[0]
    response = client.post("/commands/trips", json={
        "driver_id": driver["id"],
        "vehicle_id": vehicle["id"],
        "route_id": route["id"],
        "cargo_description": "Medical supplies",
    })
    assert response.status_code == 200
    return response.json(), route


def test_health(client):
    response = client.get("/health")
    assert response.json() == {"status": "ok", "service": "trip-service"}


def test_demo_data_is_seeded(client):
    assert len(client.get("/queries/drivers").json()) == 2
    assert len(client.get("/queries/vehicles").json()) == 2
    assert client.get("/queries/routes").json()[0]["danger_rating"] == 5


def test_seeding_can_be_disabled(empty_client):
    assert empty_client.get("/queries/drivers").json() == []


class TestTripEndpoints:
    def test_trip_lifecycle(self, client, started_trip):
        trip, route = started_trip
        trip_id = trip["id"]
        assert trip["version"] == 1

        response = client.post(f"/commands/trips/{trip_id}/checkpoints", json={
            "checkpoint_id": route["checkpoints"][0]["id"],
            "expected_version": 1,
        })
        assert response.json()["checkpoints_reached"] == 1

        response = client.post(f"/commands/trips/{trip_id}/incidents", json={
            "type": "FuelLeak",
            "description": "Tank 2 venting",
            "severity": "Critical",
            "expected_version": 2,
        })
        incident_id = response.json()["incident_id"]

        response = client.post(f"/commands/trips/{trip_id}/complete", json={"expected_version": 3})
        assert response.status_code == 409
        assert response.json()["code"] == "INVARIANT_VIOLATION"

        response = client.post(
            f"/commands/trips/{trip_id}/incidents/{incident_id}/resolve",
            json={"resolution_notes": "Sealed", "expected_version": 3},
        )
        assert response.json()["incidents"][0]["is_resolved"] is True

        response = client.post(f"/commands/trips/{trip_id}/complete", json={"expected_version": 4})
        assert response.status_code == 200
        summary = response.json()
        assert summary["status"] == "Completed"
        assert summary["has_critical_incidents"] is True

        events = client.get(f"/events/{trip_id}").json()
        assert [e["event_type"] for e in events] == [
            "TripStarted",
            "CheckpointReached",
            "IncidentOccurred",
            "IncidentResolved",
            "TripCompleted",
        ]
        assert client.get("/queries/trips/active").json() == []

    def test_stale_version_returns_409(self, client, started_trip):
        trip, _ = started_trip
        client.post(f"/commands/trips/{trip['id']}/cancel", json={
            "reason": "Storm", "expected_version": 1,
        })

        response = client.post(f"/commands/trips/{trip['id']}/cancel", json={
            "reason": "Storm", "expected_version": 1,
        })

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "CONCURRENCY_CONFLICT"
        assert body["actual_version"] == 2

    def test_blank_reason_returns_400(self, client, started_trip):
        trip, _ = started_trip
        response = client.post(f"/commands/trips/{trip['id']}/cancel", json={
            "reason": "  ", "expected_version": 1,
        })
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_busy_driver_returns_409(self, client, started_trip):
        trip, route = started_trip
        response = client.post("/commands/trips", json={
            "driver_id": trip["driver_id"],
            "vehicle_id": trip["vehicle_id"],
            "route_id": route["id"],
            "cargo_description": "More supplies",
        })
        assert response.status_code == 409

    def test_unknown_trip_returns_404(self, client):
        assert client.get(f"/queries/trips/{uuid4()}").status_code == 404
        response = client.get(f"/queries/trips/{uuid4()}/summary")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_driver_trips(self, client, started_trip):
        trip, _ = started_trip
        trips = client.get(f"/queries/drivers/{trip['driver_id']}/trips").json()
        assert [t["id"] for t in trips] == [trip["id"]]


class TestFleetEndpoints:
    def test_driver_crud(self, empty_client):
        created = empty_client.post("/commands/drivers", json={
            "name": "Starbuck", "license_number": "PILOT-002", "experience_years": 10,
        }).json()

        updated = empty_client.put(f"/commands/drivers/{created['id']}", json={
            "name": "Kara Thrace", "experience_years": 11,
        }).json()
        assert updated["name"] == "Kara Thrace"

        assert empty_client.delete(f"/commands/drivers/{created['id']}").status_code == 200
        assert empty_client.get(f"/queries/drivers/{created['id']}").status_code == 404

    def test_invalid_vehicle_returns_400(self, empty_client):
        response = empty_client.post("/commands/vehicles", json={
            "name": "Dud", "type": "SpaceCycle", "max_cargo_capacity_kg": 0, "max_speed": 10,
        })
        assert response.status_code == 400

    def test_route_with_checkpoints(self, empty_client):
        location = {"name": "Earth", "sector": "Sol", "x": 0, "y": 0, "z": 0}
        route = empty_client.post("/commands/routes", json={
            "name": "Short Hop",
            "origin": location,
            "destination": {**location, "name": "Moon", "x": 0.384},
            "checkpoints": [{
                "name": "Halfway",
                "location": {**location, "name": "L1", "x": 0.2},
                "sequence_number": 1,
                "estimated_duration_minutes": 90,
            }],
        }).json()

        assert route["estimated_duration"] == "1h 30m"
        assert route["total_distance"] == pytest.approx(0.384)

        response = empty_client.post(f"/commands/routes/{route['id']}/checkpoints", json={
            "name": "Halfway again",
            "location": location,
            "sequence_number": 1,
        })
        assert response.status_code == 400

        checkpoint_id = route["checkpoints"][0]["id"]
        response = empty_client.delete(
            f"/commands/routes/{route['id']}/checkpoints/{checkpoint_id}"
        )
        assert response.status_code == 200
        assert response.json()["checkpoints"] == []

        response = empty_client.delete(
            f"/commands/routes/{route['id']}/checkpoints/{checkpoint_id}"
        )
        assert response.status_code == 404


class TestEventEndpoints:
    def test_negative_after_version_is_rejected(self, client, started_trip):
        trip, _ = started_trip
        response = client.get(f"/events/{trip['id']}", params={"after_version": -1})
        assert response.status_code == 422

    def test_after_version_returns_the_suffix(self, client, started_trip):
        trip, route = started_trip
        client.post(f"/commands/trips/{trip['id']}/checkpoints", json={
            "checkpoint_id": route["checkpoints"][0]["id"],
            "expected_version": 1,
        })

        events = client.get(f"/events/{trip['id']}", params={"after_version": 1}).json()

        assert [e["event_type"] for e in events] == ["CheckpointReached"]

    def test_reads_of_unknown_ids_leave_the_store_unchanged(self, empty_client):
        for _ in range(20):
            assert empty_client.get(f"/events/{uuid4()}").json() == []
            assert empty_client.get(f"/queries/trips/{uuid4()}").status_code == 404

        assert main.ctx.event_store._locks == {}

    def test_malformed_body_and_business_rule_differ(self, client, started_trip):
        trip, _ = started_trip
        response = client.post(f"/commands/trips/{trip['id']}/complete", json={})
        assert response.status_code == 422
        assert "code" not in response.json()


def test_every_endpoint_is_documented():
    undocumented = [
        route.path
        for route in main.app.routes
        if isinstance(route, APIRoute) and route.path != "/health" and not route.description
    ]
    assert undocumented == []
