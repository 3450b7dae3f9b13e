"""
Tests for trip and fleet command handlers against a full service context.
"""
from datetime import timedelta
from uuid import uuid4

import pytest

from app import commands, queries
from app.aggregate import TripStatus
from app.errors import (
    ConcurrencyConflictError,
    DomainValidationError,
    EntityNotFoundError,
    InvalidTripStateError,
    InvariantViolationError,
)
from app.events import IncidentSeverity, IncidentType
from app.fleet import SpaceLocation, VehicleType
from app.seed import seed_demo_data


@pytest.fixture
async def fleet(ctx):
    """One driver, one vehicle and a route with two checkpoints."""
    driver = await commands.register_driver(ctx, "Han Solo", "PILOT-001", 15)
    vehicle = await commands.register_vehicle(
        ctx, "Millennium Falcon", VehicleType.CARGO_FREIGHTER, 10000, 1500
    )
    route = await commands.create_route(
        ctx,
        "Earth-Mars Express",
        SpaceLocation.create("Earth", "Sol", 0, 0, 0),
        SpaceLocation.create("Mars", "Sol", 225, 0, 0),
        danger_rating=5,
        checkpoints=[
            commands.CheckpointDraft(
                name="Lunar Waystation",
                location=SpaceLocation.create("Moon", "Sol", 0.384, 0, 0),
                sequence_number=1,
                estimated_duration=timedelta(minutes=30),
            ),
            commands.CheckpointDraft(
                name="Asteroid Belt Checkpoint",
                location=SpaceLocation.create("Ceres", "Sol", 100, 0, 0),
                sequence_number=2,
                estimated_duration=timedelta(minutes=45),
            ),
        ],
    )
    return driver, vehicle, route


async def _start(ctx, fleet):
    driver, vehicle, route = fleet
    return await commands.create_trip(ctx, driver.id, vehicle.id, route.id, "Spice")


class TestCreateTrip:
    async def test_books_driver_and_vehicle(self, ctx, fleet):
        driver, vehicle, _ = fleet

        trip = await _start(ctx, fleet)

        assert trip.version == 1
        assert trip.uncommitted_events == []
        assert (await ctx.drivers.get(driver.id)).is_available is False
        assert (await ctx.vehicles.get(vehicle.id)).is_available is False

    async def test_busy_driver_is_rejected(self, ctx, fleet):
        driver, _, route = fleet
        await _start(ctx, fleet)
        other_vehicle = await commands.register_vehicle(
            ctx, "Runner", VehicleType.ROCKET_VAN, 2000, 2500
        )

        with pytest.raises(InvariantViolationError):
            await commands.create_trip(ctx, driver.id, other_vehicle.id, route.id, "More spice")

    async def test_unknown_route_is_rejected(self, ctx, fleet):
        driver, vehicle, _ = fleet

        with pytest.raises(EntityNotFoundError) as exc_info:
            await commands.create_trip(ctx, driver.id, vehicle.id, uuid4(), "Spice")
        assert exc_info.value.entity_type == "Route"
        assert (await ctx.drivers.get(driver.id)).is_available is True


class TestTripLifecycle:
    async def test_full_trip(self, ctx, clock, fleet):
        driver, vehicle, route = fleet
        trip = await _start(ctx, fleet)

        clock.advance(minutes=30)
        trip = await commands.reach_checkpoint(ctx, trip.id, route.checkpoints[0].id, 1)
        assert trip.version == 2

        trip, incident_id = await commands.record_incident(
            ctx, trip.id, IncidentType.PIRATE_ENCOUNTER, "Raiders",
            IncidentSeverity.CRITICAL, 2,
        )
        assert trip.version == 3

        with pytest.raises(InvariantViolationError):
            await commands.complete_trip(ctx, trip.id, 3)

        clock.advance(minutes=15)
        trip = await commands.resolve_incident(ctx, trip.id, incident_id, "Outran them", 3)
        trip = await commands.reach_checkpoint(ctx, trip.id, route.checkpoints[1].id, 4)
        assert trip.version == 5

        clock.advance(hours=1)
        summary = await commands.complete_trip(ctx, trip.id, 5)

        assert summary.status == TripStatus.COMPLETED
        assert summary.duration == timedelta(hours=1, minutes=45)
        assert summary.checkpoints_reached == 2
        assert summary.resolved_incidents == 1
        assert summary.has_critical_incidents is True
        assert await ctx.event_store.current_version(trip.id) == 6
        assert (await ctx.drivers.get(driver.id)).is_available is True
        assert (await ctx.vehicles.get(vehicle.id)).is_available is True

    async def test_repeat_checkpoint_keeps_version(self, ctx, fleet):
        _, _, route = fleet
        trip = await _start(ctx, fleet)
        checkpoint_id = route.checkpoints[0].id
        await commands.reach_checkpoint(ctx, trip.id, checkpoint_id, 1)

        trip = await commands.reach_checkpoint(ctx, trip.id, checkpoint_id, 2)

        assert trip.version == 2
        assert await ctx.event_store.current_version(trip.id) == 2

    async def test_checkpoint_must_belong_to_route(self, ctx, fleet):
        trip = await _start(ctx, fleet)

        with pytest.raises(EntityNotFoundError) as exc_info:
            await commands.reach_checkpoint(ctx, trip.id, uuid4(), 1)
        assert exc_info.value.entity_type == "Checkpoint"

    async def test_stale_version_is_rejected(self, ctx, fleet):
        _, _, route = fleet
        trip = await _start(ctx, fleet)
        await commands.reach_checkpoint(ctx, trip.id, route.checkpoints[0].id, 1)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await commands.cancel_trip(ctx, trip.id, "Changed plans", 1)
        assert exc_info.value.actual_version == 2

    async def test_cancel_releases_resources(self, ctx, fleet):
        driver, vehicle, _ = fleet
        trip = await _start(ctx, fleet)

        summary = await commands.cancel_trip(ctx, trip.id, "Solar flare", 1)

        assert summary.status == TripStatus.CANCELLED
        assert (await ctx.drivers.get(driver.id)).is_available is True
        assert (await ctx.vehicles.get(vehicle.id)).is_available is True

    async def test_cancel_completed_trip_is_rejected(self, ctx, fleet):
        trip = await _start(ctx, fleet)
        await commands.complete_trip(ctx, trip.id, 1)

        with pytest.raises(InvalidTripStateError):
            await commands.cancel_trip(ctx, trip.id, "Too late", 2)

    async def test_unknown_trip(self, ctx):
        with pytest.raises(EntityNotFoundError):
            await commands.complete_trip(ctx, uuid4(), 0)


class TestFleetCommands:
    async def test_driver_on_trip_cannot_be_removed(self, ctx, fleet):
        driver, _, _ = fleet
        await _start(ctx, fleet)

        with pytest.raises(InvariantViolationError):
            await commands.remove_driver(ctx, driver.id)

    async def test_remove_free_vehicle(self, ctx, fleet):
        _, vehicle, _ = fleet

        await commands.remove_vehicle(ctx, vehicle.id)

        assert await ctx.vehicles.get(vehicle.id) is None

    async def test_update_unknown_driver(self, ctx):
        with pytest.raises(EntityNotFoundError):
            await commands.update_driver(ctx, uuid4(), "Nobody", 1)

    async def test_update_vehicle_validates(self, ctx, fleet):
        _, vehicle, _ = fleet
        with pytest.raises(DomainValidationError):
            await commands.update_vehicle(ctx, vehicle.id, "Falcon", 0, 1500)

    async def test_add_route_checkpoint(self, ctx, fleet):
        _, _, route = fleet
        route = await commands.add_route_checkpoint(ctx, route.id, commands.CheckpointDraft(
            name="Phobos Dock",
            location=SpaceLocation.create("Phobos", "Sol", 220, 0, 0),
            sequence_number=3,
            estimated_duration=timedelta(minutes=20),
        ))

        assert [c.sequence_number for c in route.checkpoints] == [1, 2, 3]

    async def test_remove_route_checkpoint(self, ctx, fleet):
        _, _, route = fleet
        first, second = route.checkpoints

        route = await commands.remove_route_checkpoint(ctx, route.id, first.id)

        assert [c.id for c in route.checkpoints] == [second.id]
        assert (await ctx.routes.get(route.id)).find_checkpoint(first.id) is None

    async def test_removed_checkpoint_cannot_be_reached(self, ctx, fleet):
        _, _, route = fleet
        trip = await _start(ctx, fleet)
        removed_id = route.checkpoints[0].id
        await commands.remove_route_checkpoint(ctx, route.id, removed_id)

        with pytest.raises(EntityNotFoundError):
            await commands.reach_checkpoint(ctx, trip.id, removed_id, 1)

    async def test_remove_checkpoint_of_unknown_route(self, ctx):
        with pytest.raises(EntityNotFoundError):
            await commands.remove_route_checkpoint(ctx, uuid4(), uuid4())

    async def test_remove_route(self, ctx, fleet):
        _, _, route = fleet
        await commands.remove_route(ctx, route.id)

        with pytest.raises(EntityNotFoundError):
            await commands.remove_route(ctx, route.id)


class TestQueries:
    async def test_trip_projection(self, ctx, fleet):
        trip = await _start(ctx, fleet)

        data = await queries.get_trip(ctx, trip.id)

        assert data["status"] == "InProgress"
        assert data["version"] == 1
        assert data["incidents"] == []

    async def test_summary_of_running_trip(self, ctx, clock, fleet):
        trip = await _start(ctx, fleet)
        clock.advance(hours=2, minutes=5)

        data = await queries.get_trip_summary(ctx, trip.id)

        assert data["duration"] == "2h 5m"

    async def test_active_and_driver_trips(self, ctx, fleet):
        driver, _, _ = fleet
        trip = await _start(ctx, fleet)

        assert [t["id"] for t in await queries.list_active_trips(ctx)] == [str(trip.id)]
        assert len(await queries.list_trips_by_driver(ctx, driver.id)) == 1

        await commands.complete_trip(ctx, trip.id, 1)
        assert await queries.list_active_trips(ctx) == []

    @pytest.mark.parametrize("duration,expected", [
        (timedelta(days=2, hours=3, minutes=15), "2d 3h 15m"),
        (timedelta(hours=3, minutes=15), "3h 15m"),
        (timedelta(minutes=15, seconds=30), "15m 30s"),
    ])
    def test_format_duration(self, duration, expected):
        assert queries.format_duration(duration) == expected

    async def test_seed_demo_data(self, ctx):
        await seed_demo_data(ctx)

        assert len(await queries.list_drivers(ctx, available_only=True)) == 2
        assert len(await queries.list_vehicles(ctx)) == 2
        routes = await queries.list_routes(ctx)
        assert routes[0]["name"] == "Earth-Mars Express"
        assert routes[0]["estimated_duration"] == "1h 15m"
