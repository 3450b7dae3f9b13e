"""
Pytest configuration and fixtures for trip service tests.
"""
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from app.aggregate import TripAggregate
from app.context import ServiceContext, build_context
from app.event_store import InMemoryEventStore
from app.fleet import Checkpoint, SpaceLocation
from app.repository import TripRepository

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def event_store():
    return InMemoryEventStore()


@pytest.fixture
def repository(event_store):
    return TripRepository(event_store)


@pytest.fixture
def ctx(clock) -> ServiceContext:
    return build_context(clock=clock)


@pytest.fixture
def new_trip():
    """Factory for a freshly started, unsaved trip."""

    def _make(trip_id: UUID | None = None, now: datetime = T0) -> TripAggregate:
        return TripAggregate.create(
            trip_id or uuid4(),
            uuid4(),
            uuid4(),
            uuid4(),
            "Ice from Europa",
            now,
        )

    return _make


@pytest.fixture
def moon():
    return SpaceLocation.create("Moon", "Sol", 0.384, 0, 0)


@pytest.fixture
def make_checkpoint(moon):
    def _make(sequence_number: int = 1, minutes: int = 30) -> Checkpoint:
        return Checkpoint.create(
            uuid4(),
            f"Waypoint {sequence_number}",
            moon,
            sequence_number,
            timedelta(minutes=minutes),
        )

    return _make
