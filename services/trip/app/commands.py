"""
Trip Service - command handlers (write side of CQRS)

A command loads the trip by replaying its events, asks the aggregate to
perform the intent, and saves the resulting events under the version the
caller last saw. Drivers and vehicles are booked when a trip starts and
released when it ends.

Concurrency conflicts are passed straight back to the caller, who has to
reload the trip and decide whether to try again.
"""

from collections.abc import Iterable
from datetime import timedelta
from uuid import UUID

import structlog
from pydantic import BaseModel

from .aggregate import TripAggregate, TripSummary
from .context import ServiceContext
from .errors import EntityNotFoundError, InvariantViolationError
from .events import IncidentSeverity, IncidentType
from .fleet import Checkpoint, Driver, Route, SpaceLocation, Vehicle, VehicleType

logger = structlog.get_logger(__name__)


async def _load_trip(
    ctx: ServiceContext,
    trip_id: UUID,
    expected_version: int,
    action: str,
) -> TripAggregate:
    trip = await ctx.trips.get_by_id_with_version(trip_id, expected_version)
    if trip is None:
        logger.warning("trip_not_found", trip_id=str(trip_id), action=action)
        raise EntityNotFoundError("Trip", trip_id)
    return trip


async def _save(ctx: ServiceContext, trip: TripAggregate, expected_version: int) -> None:
    await ctx.trips.save(trip, expected_version)
    trip.clear_uncommitted_events()


# ── Trip commands ────────────────────────────────


async def create_trip(
    ctx: ServiceContext,
    driver_id: UUID,
    vehicle_id: UUID,
    route_id: UUID,
    cargo_description: str,
) -> TripAggregate:
    """
    Start a trip.

    1. Check that driver, vehicle and route exist and are free
    2. Emit TripStarted and store it as version 1
    3. Book the driver and the vehicle
    """
    log = logger.bind(
        driver_id=str(driver_id), vehicle_id=str(vehicle_id), route_id=str(route_id)
    )

    driver = await ctx.drivers.get(driver_id)
    if driver is None:
        log.warning("trip_creation_rejected", reason="driver_not_found")
        raise EntityNotFoundError("Driver", driver_id)
    if not driver.is_available:
        log.warning("trip_creation_rejected", reason="driver_unavailable")
        raise InvariantViolationError(f"Driver {driver.name} is not available")

    vehicle = await ctx.vehicles.get(vehicle_id)
    if vehicle is None:
        log.warning("trip_creation_rejected", reason="vehicle_not_found")
        raise EntityNotFoundError("Vehicle", vehicle_id)
    if not vehicle.is_available:
        log.warning("trip_creation_rejected", reason="vehicle_unavailable")
        raise InvariantViolationError(f"Vehicle {vehicle.name} is not available")

    route = await ctx.routes.get(route_id)
    if route is None:
        log.warning("trip_creation_rejected", reason="route_not_found")
        raise EntityNotFoundError("Route", route_id)

    trip = TripAggregate.create(
        ctx.ids.new_id(),
        driver_id,
        vehicle_id,
        route_id,
        cargo_description,
        ctx.clock.now(),
    )
    await _save(ctx, trip, 0)

    driver.mark_unavailable()
    vehicle.mark_unavailable()
    await ctx.drivers.save(driver)
    await ctx.vehicles.save(vehicle)

    log.info(
        "trip_created",
        trip_id=str(trip.id),
        driver_name=driver.name,
        vehicle_name=vehicle.name,
        route_name=route.name,
        cargo=cargo_description,
    )
    return trip


async def reach_checkpoint(
    ctx: ServiceContext,
    trip_id: UUID,
    checkpoint_id: UUID,
    expected_version: int,
) -> TripAggregate:
    """Record a checkpoint of the trip's route. Repeats are accepted and change nothing."""
    trip = await _load_trip(ctx, trip_id, expected_version, "reach_checkpoint")

    route = await ctx.routes.get(trip.route_id)
    checkpoint = route.find_checkpoint(checkpoint_id) if route else None
    if checkpoint is None:
        logger.warning(
            "checkpoint_not_on_route",
            trip_id=str(trip_id),
            checkpoint_id=str(checkpoint_id),
            route_id=str(trip.route_id),
        )
        raise EntityNotFoundError("Checkpoint", checkpoint_id)

    trip.reach_checkpoint(
        checkpoint.id,
        checkpoint.name,
        checkpoint.sequence_number,
        ctx.clock.now(),
    )
    await _save(ctx, trip, expected_version)

    logger.info(
        "checkpoint_reached",
        trip_id=str(trip_id),
        checkpoint=checkpoint.name,
        sequence_number=checkpoint.sequence_number,
        total_checkpoints=len(trip.reached_checkpoint_ids),
    )
    return trip


async def record_incident(
    ctx: ServiceContext,
    trip_id: UUID,
    incident_type: IncidentType,
    description: str,
    severity: IncidentSeverity,
    expected_version: int,
) -> tuple[TripAggregate, UUID]:
    trip = await _load_trip(ctx, trip_id, expected_version, "record_incident")

    incident_id = trip.record_incident(
        incident_type,
        description,
        severity,
        ctx.clock.now(),
        id_factory=ctx.ids.new_id,
    )
    await _save(ctx, trip, expected_version)

    logger.warning(
        "incident_recorded",
        trip_id=str(trip_id),
        incident_id=str(incident_id),
        incident_type=incident_type.value,
        severity=severity.value,
    )
    return trip, incident_id


async def resolve_incident(
    ctx: ServiceContext,
    trip_id: UUID,
    incident_id: UUID,
    resolution_notes: str,
    expected_version: int,
) -> TripAggregate:
    trip = await _load_trip(ctx, trip_id, expected_version, "resolve_incident")

    trip.resolve_incident(incident_id, resolution_notes, ctx.clock.now())
    await _save(ctx, trip, expected_version)

    logger.info("incident_resolved", trip_id=str(trip_id), incident_id=str(incident_id))
    return trip


async def complete_trip(
    ctx: ServiceContext,
    trip_id: UUID,
    expected_version: int,
) -> TripSummary:
    trip = await _load_trip(ctx, trip_id, expected_version, "complete_trip")

    now = ctx.clock.now()
    trip.complete(now)
    await _save(ctx, trip, expected_version)
    await _release_resources(ctx, trip)

    summary = trip.generate_summary(now)
    logger.info(
        "trip_completed",
        trip_id=str(trip_id),
        duration_seconds=summary.duration.total_seconds(),
        checkpoints=summary.checkpoints_reached,
        incidents=summary.total_incidents,
        resolved_incidents=summary.resolved_incidents,
    )
    return summary


async def cancel_trip(
    ctx: ServiceContext,
    trip_id: UUID,
    reason: str,
    expected_version: int,
) -> TripSummary:
    trip = await _load_trip(ctx, trip_id, expected_version, "cancel_trip")

    now = ctx.clock.now()
    trip.cancel(reason, now)
    await _save(ctx, trip, expected_version)
    await _release_resources(ctx, trip)

    logger.warning(
        "trip_cancelled",
        trip_id=str(trip_id),
        reason=reason,
        checkpoints=len(trip.reached_checkpoint_ids),
        incidents=len(trip.incidents),
    )
    return trip.generate_summary(now)


async def _release_resources(ctx: ServiceContext, trip: TripAggregate) -> None:
    driver = await ctx.drivers.get(trip.driver_id)
    if driver is not None:
        driver.mark_available()
        await ctx.drivers.save(driver)

    vehicle = await ctx.vehicles.get(trip.vehicle_id)
    if vehicle is not None:
        vehicle.mark_available()
        await ctx.vehicles.save(vehicle)


# ── Fleet commands ───────────────────────────────


async def register_driver(
    ctx: ServiceContext,
    name: str,
    license_number: str,
    experience_years: int,
) -> Driver:
    driver = Driver.create(ctx.ids.new_id(), name, license_number, experience_years)
    await ctx.drivers.save(driver)
    logger.info("driver_registered", driver_id=str(driver.id), name=name)
    return driver


async def update_driver(
    ctx: ServiceContext,
    driver_id: UUID,
    name: str,
    experience_years: int,
) -> Driver:
    driver = await ctx.drivers.get(driver_id)
    if driver is None:
        raise EntityNotFoundError("Driver", driver_id)
    driver.update_details(name, experience_years)
    await ctx.drivers.save(driver)
    return driver


async def remove_driver(ctx: ServiceContext, driver_id: UUID) -> None:
    driver = await ctx.drivers.get(driver_id)
    if driver is None:
        raise EntityNotFoundError("Driver", driver_id)
    if not driver.is_available:
        raise InvariantViolationError("Cannot delete driver currently on a trip")
    await ctx.drivers.delete(driver_id)
    logger.info("driver_removed", driver_id=str(driver_id))


async def register_vehicle(
    ctx: ServiceContext,
    name: str,
    vehicle_type: VehicleType,
    max_cargo_capacity_kg: float,
    max_speed: float,
) -> Vehicle:
    vehicle = Vehicle.create(
        ctx.ids.new_id(), name, vehicle_type, max_cargo_capacity_kg, max_speed
    )
    await ctx.vehicles.save(vehicle)
    logger.info("vehicle_registered", vehicle_id=str(vehicle.id), name=name)
    return vehicle


async def update_vehicle(
    ctx: ServiceContext,
    vehicle_id: UUID,
    name: str,
    max_cargo_capacity_kg: float,
    max_speed: float,
) -> Vehicle:
    vehicle = await ctx.vehicles.get(vehicle_id)
    if vehicle is None:
        raise EntityNotFoundError("Vehicle", vehicle_id)
    vehicle.update_details(name, max_cargo_capacity_kg, max_speed)
    await ctx.vehicles.save(vehicle)
    return vehicle


async def remove_vehicle(ctx: ServiceContext, vehicle_id: UUID) -> None:
    vehicle = await ctx.vehicles.get(vehicle_id)
    if vehicle is None:
        raise EntityNotFoundError("Vehicle", vehicle_id)
    if not vehicle.is_available:
        raise InvariantViolationError("Cannot delete vehicle currently on a trip")
    await ctx.vehicles.delete(vehicle_id)
    logger.info("vehicle_removed", vehicle_id=str(vehicle_id))


class CheckpointDraft(BaseModel):
    """A checkpoint before it has been given an id."""
    name: str
    location: SpaceLocation
    sequence_number: int
    estimated_duration: timedelta


async def create_route(
    ctx: ServiceContext,
    name: str,
    origin: SpaceLocation,
    destination: SpaceLocation,
    danger_rating: int = 1,
    checkpoints: Iterable[CheckpointDraft] = (),
) -> Route:
    route = Route.create(ctx.ids.new_id(), name, origin, destination, danger_rating)
    for draft in checkpoints:
        route.add_checkpoint(_checkpoint_from_draft(ctx, draft))
    await ctx.routes.save(route)
    logger.info(
        "route_created",
        route_id=str(route.id),
        name=name,
        checkpoints=len(route.checkpoints),
    )
    return route


async def add_route_checkpoint(
    ctx: ServiceContext,
    route_id: UUID,
    draft: CheckpointDraft,
) -> Route:
    route = await ctx.routes.get(route_id)
    if route is None:
        raise EntityNotFoundError("Route", route_id)
    route.add_checkpoint(_checkpoint_from_draft(ctx, draft))
    await ctx.routes.save(route)
    return route


async def remove_route_checkpoint(
    ctx: ServiceContext,
    route_id: UUID,
    checkpoint_id: UUID,
) -> Route:
    """Trips already past the checkpoint keep it in their reached set."""
    route = await ctx.routes.get(route_id)
    if route is None:
        raise EntityNotFoundError("Route", route_id)
    route.remove_checkpoint(checkpoint_id)
    await ctx.routes.save(route)
    logger.info(
        "route_checkpoint_removed",
        route_id=str(route_id),
        checkpoint_id=str(checkpoint_id),
    )
    return route


async def remove_route(ctx: ServiceContext, route_id: UUID) -> None:
    if not await ctx.routes.exists(route_id):
        raise EntityNotFoundError("Route", route_id)
    await ctx.routes.delete(route_id)
    logger.info("route_removed", route_id=str(route_id))


def _checkpoint_from_draft(ctx: ServiceContext, draft: CheckpointDraft) -> Checkpoint:
    return Checkpoint.create(
        ctx.ids.new_id(),
        draft.name,
        draft.location,
        draft.sequence_number,
        draft.estimated_duration,
    )
