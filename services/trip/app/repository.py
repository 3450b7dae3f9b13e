"""
Trip Service - trip repository

Loads a trip by replaying its stream and saves it by appending the
uncommitted events under the version the caller loaded.

The repository keeps a small index of the last version it saw per trip.
It only lets a doomed write fail before the replay is paid for; the event
store's own version check is the one that decides.
"""

import threading
from collections.abc import Callable
from uuid import UUID

import structlog

from .aggregate import TripAggregate, TripStatus
from .errors import ConcurrencyConflictError
from .event_store import InMemoryEventStore

logger = structlog.get_logger(__name__)


class TripRepository:
    def __init__(self, event_store: InMemoryEventStore) -> None:
        self._event_store = event_store
        self._versions: dict[UUID, int] = {}
        self._versions_lock = threading.Lock()

    def _remember_version(self, trip_id: UUID, version: int) -> None:
        with self._versions_lock:
            self._versions[trip_id] = version

    def _known_version(self, trip_id: UUID) -> int | None:
        with self._versions_lock:
            return self._versions.get(trip_id)

    async def get_by_id(self, trip_id: UUID) -> TripAggregate | None:
        events = await self._event_store.load_events(trip_id)
        if not events:
            return None
        trip = TripAggregate.from_events(events)
        self._remember_version(trip_id, trip.version)
        return trip

    async def get_by_id_with_version(
        self,
        trip_id: UUID,
        expected_version: int,
    ) -> TripAggregate | None:
        """Load a trip the caller intends to modify at `expected_version`."""
        known = self._known_version(trip_id)
        if known is not None and known != expected_version:
            # the index may lag behind other writers; ask the store before refusing
            actual = await self._event_store.current_version(trip_id)
            self._remember_version(trip_id, actual)
            if actual != expected_version:
                raise ConcurrencyConflictError(trip_id, expected_version, actual)
        return await self.get_by_id(trip_id)

    async def save(self, trip: TripAggregate, expected_version: int) -> None:
        try:
            version = await self._event_store.append_events(
                trip.id, list(trip.uncommitted_events), expected_version
            )
        except ConcurrencyConflictError as exc:
            self._remember_version(trip.id, exc.actual_version)
            raise
        self._remember_version(trip.id, version)
        logger.debug("trip_saved", trip_id=str(trip.id), version=version)

    async def get_active_trips(self) -> list[TripAggregate]:
        return await self._find(lambda t: t.status == TripStatus.IN_PROGRESS)

    async def get_trips_by_driver(self, driver_id: UUID) -> list[TripAggregate]:
        return await self._find(lambda t: t.driver_id == driver_id)

    async def _find(
        self,
        predicate: Callable[[TripAggregate], bool],
    ) -> list[TripAggregate]:
        # full replay per trip; there are no snapshots
        trips = []
        for trip_id in await self._event_store.aggregate_ids():
            trip = await self.get_by_id(trip_id)
            if trip is not None and predicate(trip):
                trips.append(trip)
        return trips
