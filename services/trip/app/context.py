"""
Trip Service - service context

Everything a command or query needs, built once per application start.
"""

from dataclasses import dataclass, field

from .event_store import InMemoryEventStore
from .fleet import DriverStore, RouteStore, VehicleStore
from .ports import Clock, IdGenerator, SystemClock, UuidGenerator
from .repository import TripRepository


@dataclass
class ServiceContext:
    event_store: InMemoryEventStore
    trips: TripRepository
    drivers: DriverStore = field(default_factory=DriverStore)
    vehicles: VehicleStore = field(default_factory=VehicleStore)
    routes: RouteStore = field(default_factory=RouteStore)
    clock: Clock = field(default_factory=SystemClock)
    ids: IdGenerator = field(default_factory=UuidGenerator)


def build_context(
    clock: Clock | None = None,
    ids: IdGenerator | None = None,
) -> ServiceContext:
    event_store = InMemoryEventStore()
    return ServiceContext(
        event_store=event_store,
        trips=TripRepository(event_store),
        clock=clock or SystemClock(),
        ids=ids or UuidGenerator(),
    )
