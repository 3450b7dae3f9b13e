"""
Trip Service - event store

The core of event sourcing: one append-only stream of events per
aggregate. The stream length is the aggregate's version, and the version
check gives optimistic locking: a writer states the version it loaded and
the append is refused if someone else got there first.

Each stream has its own lock, so checking the length and appending are one
step for writers of the same trip while different trips never wait on each
other. Events are kept as JSON, the way they would sit in a database
column.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from uuid import UUID

import structlog

from .errors import ConcurrencyConflictError
from .events import TripEvent, deserialize_event, serialize_event

logger = structlog.get_logger(__name__)


class InMemoryEventStore:
    def __init__(self) -> None:
        self._streams: dict[UUID, list[str]] = {}
        self._locks: dict[UUID, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, aggregate_id: UUID) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(aggregate_id, threading.Lock())

    def _existing_lock(self, aggregate_id: UUID) -> threading.Lock | None:
        # readers never register a lock; only writers do
        with self._locks_guard:
            return self._locks.get(aggregate_id)

    async def append_events(
        self,
        aggregate_id: UUID,
        events: Sequence[TripEvent],
        expected_version: int,
    ) -> int:
        """
        Append events to the aggregate's stream and return the new version.

        The append succeeds only if the stream currently holds exactly
        `expected_version` events (0 for a stream that does not exist yet).
        All events are appended or none are.
        """
        payloads = [serialize_event(e) for e in events]

        with self._lock_for(aggregate_id):
            stream = self._streams.get(aggregate_id)
            actual_version = len(stream) if stream is not None else 0
            if actual_version != expected_version:
                logger.warning(
                    "event_append_conflict",
                    aggregate_id=str(aggregate_id),
                    expected_version=expected_version,
                    actual_version=actual_version,
                )
                raise ConcurrencyConflictError(
                    aggregate_id, expected_version, actual_version
                )

            if not payloads:
                return actual_version
            if stream is None:
                stream = self._streams[aggregate_id] = []
            stream.extend(payloads)
            new_version = len(stream)

        logger.debug(
            "events_appended",
            aggregate_id=str(aggregate_id),
            count=len(payloads),
            version=new_version,
        )
        return new_version

    async def load_events(
        self,
        aggregate_id: UUID,
        after_version: int = 0,
    ) -> list[TripEvent]:
        """
        Read the aggregate's events in version order.

        With `after_version`, only the events after that version are
        returned; a negative `after_version` reads the whole stream. An
        unknown aggregate has an empty history.
        """
        lock = self._existing_lock(aggregate_id)
        if lock is None:
            return []
        with lock:
            stream = self._streams.get(aggregate_id, [])
            payloads = stream[max(after_version, 0):]
        return [deserialize_event(p) for p in payloads]

    async def current_version(self, aggregate_id: UUID) -> int:
        lock = self._existing_lock(aggregate_id)
        if lock is None:
            return 0
        with lock:
            return len(self._streams.get(aggregate_id, []))

    async def aggregate_ids(self) -> list[UUID]:
        with self._locks_guard:
            return [agg_id for agg_id in self._locks if agg_id in self._streams]

    async def load_all_events(self) -> list[dict]:
        """All events of every stream in occurrence order (debugging)."""
        rows = []
        for aggregate_id in await self.aggregate_ids():
            for version, event in enumerate(await self.load_events(aggregate_id), start=1):
                rows.append((event.occurred_at, version, {
                    "aggregate_id": str(aggregate_id),
                    "event_type": event.event_type,
                    "event_data": event.model_dump(mode="json"),
                    "version": version,
                    "occurred_at": event.occurred_at.isoformat(),
                }))
        rows.sort(key=lambda r: (r[0], r[1]))
        return [row for _, _, row in rows]
