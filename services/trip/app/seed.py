"""
Trip Service - demo data

Two drivers, two vehicles and one route with two checkpoints, so the API
can be tried right after start-up.
"""

from datetime import timedelta

import structlog

from . import commands
from .context import ServiceContext
from .fleet import SpaceLocation, VehicleType

logger = structlog.get_logger(__name__)


async def seed_demo_data(ctx: ServiceContext) -> None:
    drivers = [
        await commands.register_driver(ctx, "Han Solo", "PILOT-001", 15),
        await commands.register_driver(ctx, "Starbuck", "PILOT-002", 10),
    ]
    vehicles = [
        await commands.register_vehicle(
            ctx, "Millennium Falcon", VehicleType.CARGO_FREIGHTER, 10000, 1500
        ),
        await commands.register_vehicle(
            ctx, "Express Runner", VehicleType.ROCKET_VAN, 2000, 2500
        ),
    ]
    route = await commands.create_route(
        ctx,
        "Earth-Mars Express",
        SpaceLocation.create("Earth Station Alpha", "Sol", 0, 0, 0),
        SpaceLocation.create("Mars Colony Beta", "Sol", 225, 0, 0),
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
                location=SpaceLocation.create("Ceres Station", "Sol", 100, 0, 0),
                sequence_number=2,
                estimated_duration=timedelta(minutes=45),
            ),
        ],
    )
    logger.info(
        "demo_data_seeded",
        drivers=[d.name for d in drivers],
        vehicles=[v.name for v in vehicles],
        route=route.name,
        checkpoints=len(route.checkpoints),
    )
