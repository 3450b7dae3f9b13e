"""
Trip Service - query handlers (read side of CQRS)

Trips have no separate read model here: a query replays the trip and
projects the state into plain dicts for the API.
"""

from datetime import datetime, timedelta
from uuid import UUID

from .aggregate import TripAggregate, TripIncident, TripSummary
from .context import ServiceContext
from .errors import EntityNotFoundError
from .fleet import Driver, Route, SpaceLocation, Vehicle


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def format_duration(duration: timedelta) -> str:
    """Render as '2d 3h 15m', '3h 15m' or '15m 30s'."""
    total = int(duration.total_seconds())
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    if days >= 1:
        return f"{days}d {hours}h {minutes}m"
    if hours >= 1:
        return f"{hours}h {minutes}m"
    return f"{minutes}m {seconds}s"


# ── Projections ──────────────────────────────────


def incident_to_dict(incident: TripIncident) -> dict:
    return {
        "id": str(incident.id),
        "type": incident.incident_type.value,
        "description": incident.description,
        "severity": incident.severity.value,
        "occurred_at": _iso(incident.occurred_at),
        "is_resolved": incident.is_resolved,
        "resolution_notes": incident.resolution_notes,
        "resolved_at": _iso(incident.resolved_at),
    }


def trip_to_dict(trip: TripAggregate) -> dict:
    return {
        "id": str(trip.id),
        "driver_id": str(trip.driver_id),
        "vehicle_id": str(trip.vehicle_id),
        "route_id": str(trip.route_id),
        "cargo_description": trip.cargo_description,
        "status": trip.status.value,
        "started_at": _iso(trip.started_at),
        "completed_at": _iso(trip.completed_at),
        "version": trip.version,
        "checkpoints_reached": len(trip.reached_checkpoint_ids),
        "incidents": [incident_to_dict(i) for i in trip.incidents],
    }


def summary_to_dict(summary: TripSummary) -> dict:
    return {
        "trip_id": str(summary.trip_id),
        "driver_id": str(summary.driver_id),
        "vehicle_id": str(summary.vehicle_id),
        "route_id": str(summary.route_id),
        "cargo_description": summary.cargo_description,
        "status": summary.status.value,
        "started_at": _iso(summary.started_at),
        "completed_at": _iso(summary.completed_at),
        "duration": format_duration(summary.duration),
        "checkpoints_reached": summary.checkpoints_reached,
        "total_incidents": summary.total_incidents,
        "resolved_incidents": summary.resolved_incidents,
        "has_critical_incidents": summary.has_critical_incidents,
        "incidents": [incident_to_dict(i) for i in summary.incidents],
    }


def driver_to_dict(driver: Driver) -> dict:
    return {
        "id": str(driver.id),
        "name": driver.name,
        "license_number": driver.license_number,
        "experience_years": driver.experience_years,
        "is_available": driver.is_available,
    }


def vehicle_to_dict(vehicle: Vehicle) -> dict:
    return {
        "id": str(vehicle.id),
        "name": vehicle.name,
        "type": vehicle.vehicle_type.value,
        "max_cargo_capacity_kg": vehicle.max_cargo_capacity_kg,
        "max_speed": vehicle.max_speed,
        "is_available": vehicle.is_available,
    }


def _location_to_dict(location: SpaceLocation) -> dict:
    return {
        "name": location.name,
        "sector": location.sector,
        "x": location.x,
        "y": location.y,
        "z": location.z,
    }


def route_to_dict(route: Route) -> dict:
    return {
        "id": str(route.id),
        "name": route.name,
        "origin": _location_to_dict(route.origin),
        "destination": _location_to_dict(route.destination),
        "danger_rating": route.danger_rating,
        "total_distance": route.total_distance(),
        "estimated_duration": format_duration(route.estimated_total_duration()),
        "checkpoints": [
            {
                "id": str(c.id),
                "name": c.name,
                "location": _location_to_dict(c.location),
                "sequence_number": c.sequence_number,
                "estimated_duration_minutes": int(c.estimated_duration.total_seconds() // 60),
            }
            for c in route.checkpoints
        ],
    }


# ── Queries ──────────────────────────────────────


async def get_trip(ctx: ServiceContext, trip_id: UUID) -> dict | None:
    trip = await ctx.trips.get_by_id(trip_id)
    if trip is None:
        return None
    return trip_to_dict(trip)


async def get_trip_summary(ctx: ServiceContext, trip_id: UUID) -> dict:
    trip = await ctx.trips.get_by_id(trip_id)
    if trip is None:
        raise EntityNotFoundError("Trip", trip_id)
    return summary_to_dict(trip.generate_summary(ctx.clock.now()))


async def list_active_trips(ctx: ServiceContext) -> list[dict]:
    return [trip_to_dict(t) for t in await ctx.trips.get_active_trips()]


async def list_trips_by_driver(ctx: ServiceContext, driver_id: UUID) -> list[dict]:
    return [trip_to_dict(t) for t in await ctx.trips.get_trips_by_driver(driver_id)]


async def list_drivers(ctx: ServiceContext, available_only: bool = False) -> list[dict]:
    drivers = await (ctx.drivers.list_available() if available_only else ctx.drivers.list_all())
    return [driver_to_dict(d) for d in drivers]


async def get_driver(ctx: ServiceContext, driver_id: UUID) -> dict | None:
    driver = await ctx.drivers.get(driver_id)
    return driver_to_dict(driver) if driver else None


async def list_vehicles(ctx: ServiceContext, available_only: bool = False) -> list[dict]:
    vehicles = await (
        ctx.vehicles.list_available() if available_only else ctx.vehicles.list_all()
    )
    return [vehicle_to_dict(v) for v in vehicles]


async def get_vehicle(ctx: ServiceContext, vehicle_id: UUID) -> dict | None:
    vehicle = await ctx.vehicles.get(vehicle_id)
    return vehicle_to_dict(vehicle) if vehicle else None


async def list_routes(ctx: ServiceContext) -> list[dict]:
    return [route_to_dict(r) for r in await ctx.routes.list_all()]


async def get_route(ctx: ServiceContext, route_id: UUID) -> dict | None:
    route = await ctx.routes.get(route_id)
    return route_to_dict(route) if route else None
