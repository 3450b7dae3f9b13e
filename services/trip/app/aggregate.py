"""
Trip Service - trip aggregate

The aggregate never stores its state directly. The current state is the
fold of the trip's events, computed by the pure reducer `when`.

Intent methods (reach_checkpoint, record_incident, ...) validate first and
only then produce exactly one event, or nothing at all when the request is
a repeat of something that already happened.

State transitions:
    IN_PROGRESS → COMPLETED  (arrived, no unresolved critical incident)
    IN_PROGRESS → CANCELLED
"""

from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict

from .errors import (
    EntityNotFoundError,
    InvalidTripStateError,
    InvariantViolationError,
)
from .events import (
    CheckpointReached,
    IncidentOccurred,
    IncidentResolved,
    IncidentSeverity,
    IncidentType,
    TripCancelled,
    TripCompleted,
    TripEvent,
    TripStarted,
)
from .guards import NIL_ID, require_id, require_text


class TripStatus(str, Enum):
    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class TripIncident(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    incident_type: IncidentType
    description: str
    severity: IncidentSeverity
    occurred_at: datetime
    is_resolved: bool = False
    resolution_notes: str | None = None
    resolved_at: datetime | None = None

    @property
    def is_unresolved_critical(self) -> bool:
        return not self.is_resolved and self.severity == IncidentSeverity.CRITICAL


class TripState(BaseModel):
    """Folded state of one trip. The zero value is the state before TripStarted."""

    model_config = ConfigDict(frozen=True)

    trip_id: UUID = NIL_ID
    driver_id: UUID = NIL_ID
    vehicle_id: UUID = NIL_ID
    route_id: UUID = NIL_ID
    cargo_description: str = ""
    status: TripStatus = TripStatus.NOT_STARTED
    started_at: datetime | None = None
    completed_at: datetime | None = None
    reached_checkpoint_ids: frozenset[UUID] = frozenset()
    incidents: tuple[TripIncident, ...] = ()


class TripSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    trip_id: UUID
    driver_id: UUID
    vehicle_id: UUID
    route_id: UUID
    cargo_description: str
    status: TripStatus
    started_at: datetime | None
    completed_at: datetime | None
    duration: timedelta
    checkpoints_reached: int
    total_incidents: int
    resolved_incidents: int
    has_critical_incidents: bool
    incidents: tuple[TripIncident, ...]


# ── Reducer ──────────────────────────────────────


def _when_trip_started(state: TripState, e: TripStarted) -> TripState:
    return state.model_copy(update={
        "trip_id": e.trip_id,
        "driver_id": e.driver_id,
        "vehicle_id": e.vehicle_id,
        "route_id": e.route_id,
        "cargo_description": e.cargo_description,
        "status": TripStatus.IN_PROGRESS,
        "started_at": e.occurred_at,
    })


def _when_checkpoint_reached(state: TripState, e: CheckpointReached) -> TripState:
    return state.model_copy(update={
        "reached_checkpoint_ids": state.reached_checkpoint_ids | {e.checkpoint_id},
    })


def _when_incident_occurred(state: TripState, e: IncidentOccurred) -> TripState:
    incident = TripIncident(
        id=e.incident_id,
        incident_type=e.incident_type,
        description=e.description,
        severity=e.severity,
        occurred_at=e.occurred_at,
    )
    return state.model_copy(update={"incidents": state.incidents + (incident,)})


def _when_incident_resolved(state: TripState, e: IncidentResolved) -> TripState:
    # the first resolution wins; unknown incidents are ignored
    incidents = tuple(
        i.model_copy(update={
            "is_resolved": True,
            "resolution_notes": e.resolution_notes,
            "resolved_at": e.occurred_at,
        })
        if i.id == e.incident_id and not i.is_resolved
        else i
        for i in state.incidents
    )
    return state.model_copy(update={"incidents": incidents})


def _when_trip_completed(state: TripState, e: TripCompleted) -> TripState:
    return state.model_copy(update={
        "status": TripStatus.COMPLETED,
        "completed_at": e.occurred_at,
    })


def _when_trip_cancelled(state: TripState, e: TripCancelled) -> TripState:
    return state.model_copy(update={
        "status": TripStatus.CANCELLED,
        "completed_at": e.occurred_at,
    })


_REDUCERS = {
    "TripStarted": _when_trip_started,
    "CheckpointReached": _when_checkpoint_reached,
    "IncidentOccurred": _when_incident_occurred,
    "IncidentResolved": _when_incident_resolved,
    "TripCompleted": _when_trip_completed,
    "TripCancelled": _when_trip_cancelled,
}


def when(state: TripState, event: TripEvent) -> TripState:
    """Fold one event into the state and return the new state."""
    reducer = _REDUCERS.get(event.event_type)
    if reducer is None:
        raise ValueError(f"Unknown event type: {event.event_type}")
    return reducer(state, event)


# ── Aggregate ────────────────────────────────────


class TripAggregate:
    """
    Trip aggregate: folded state plus the bookkeeping event sourcing needs.

    `uncommitted_events` holds events produced since the last save, in
    order. `version` counts every event applied to this instance, replayed
    or new. Event ids already applied are remembered so that re-delivering
    an event is a no-op.
    """

    def __init__(self) -> None:
        self.state = TripState()
        self.version: int = 0
        self.uncommitted_events: list[TripEvent] = []
        self._applied_event_ids: set[UUID] = set()

    # ── Read access ──────────────────────────────

    @property
    def id(self) -> UUID:
        return self.state.trip_id

    @property
    def driver_id(self) -> UUID:
        return self.state.driver_id

    @property
    def vehicle_id(self) -> UUID:
        return self.state.vehicle_id

    @property
    def route_id(self) -> UUID:
        return self.state.route_id

    @property
    def cargo_description(self) -> str:
        return self.state.cargo_description

    @property
    def status(self) -> TripStatus:
        return self.state.status

    @property
    def started_at(self) -> datetime | None:
        return self.state.started_at

    @property
    def completed_at(self) -> datetime | None:
        return self.state.completed_at

    @property
    def reached_checkpoint_ids(self) -> frozenset[UUID]:
        return self.state.reached_checkpoint_ids

    @property
    def incidents(self) -> tuple[TripIncident, ...]:
        return self.state.incidents

    def find_incident(self, incident_id: UUID) -> TripIncident | None:
        return next((i for i in self.state.incidents if i.id == incident_id), None)

    # ── Construction ─────────────────────────────

    @classmethod
    def create(
        cls,
        trip_id: UUID,
        driver_id: UUID,
        vehicle_id: UUID,
        route_id: UUID,
        cargo_description: str,
        now: datetime,
    ) -> "TripAggregate":
        """Start a new trip. The result holds one uncommitted TripStarted."""
        require_id(trip_id, "trip_id", "Trip ID")
        require_id(driver_id, "driver_id", "Driver ID")
        require_id(vehicle_id, "vehicle_id", "Vehicle ID")
        require_id(route_id, "route_id", "Route ID")
        require_text(cargo_description, "cargo_description", "Cargo description")

        trip = cls()
        trip.apply_event(TripStarted(
            trip_id=trip_id,
            driver_id=driver_id,
            vehicle_id=vehicle_id,
            route_id=route_id,
            cargo_description=cargo_description,
            occurred_at=now,
        ))
        return trip

    @classmethod
    def from_events(cls, events: Iterable[TripEvent]) -> "TripAggregate":
        """Rebuild a trip from its persisted history. Nothing is left uncommitted."""
        trip = cls()
        for event in events:
            trip.state = when(trip.state, event)
            trip._applied_event_ids.add(event.event_id)
            trip.version += 1
        if trip.version == 0:
            raise ValueError("Cannot rehydrate a trip from an empty event stream")
        return trip

    # ── Intents ──────────────────────────────────

    def reach_checkpoint(
        self,
        checkpoint_id: UUID,
        checkpoint_name: str,
        sequence_number: int,
        now: datetime,
    ) -> None:
        self._ensure_in_progress("reach checkpoint")
        if checkpoint_id in self.state.reached_checkpoint_ids:
            return

        self.apply_event(CheckpointReached(
            trip_id=self.id,
            checkpoint_id=checkpoint_id,
            checkpoint_name=checkpoint_name,
            sequence_number=sequence_number,
            occurred_at=now,
        ))

    def record_incident(
        self,
        incident_type: IncidentType,
        description: str,
        severity: IncidentSeverity,
        now: datetime,
        id_factory: Callable[[], UUID] = uuid4,
    ) -> UUID:
        """Record a new incident and return its id. Every call records one."""
        self._ensure_in_progress("record incident")
        require_text(description, "description", "Incident description")

        incident_id = id_factory()
        self.apply_event(IncidentOccurred(
            trip_id=self.id,
            incident_id=incident_id,
            incident_type=incident_type,
            description=description,
            severity=severity,
            occurred_at=now,
        ))
        return incident_id

    def resolve_incident(
        self,
        incident_id: UUID,
        resolution_notes: str,
        now: datetime,
    ) -> None:
        self._ensure_in_progress("resolve incident")

        incident = self.find_incident(incident_id)
        if incident is None:
            raise EntityNotFoundError("Incident", incident_id)
        if incident.is_resolved:
            return

        self.apply_event(IncidentResolved(
            trip_id=self.id,
            incident_id=incident_id,
            resolution_notes=resolution_notes,
            occurred_at=now,
        ))

    def complete(self, now: datetime) -> None:
        self._ensure_in_progress("complete")

        unresolved = [i for i in self.state.incidents if i.is_unresolved_critical]
        if unresolved:
            raise InvariantViolationError(
                f"Cannot complete trip with {len(unresolved)} "
                "unresolved critical incident(s)"
            )

        self.apply_event(TripCompleted(trip_id=self.id, occurred_at=now))

    def cancel(self, reason: str, now: datetime) -> None:
        if self.status == TripStatus.COMPLETED:
            raise InvalidTripStateError(self.status.value, "cancel")
        if self.status == TripStatus.CANCELLED:
            return
        require_text(reason, "reason", "Cancellation reason")

        self.apply_event(TripCancelled(trip_id=self.id, reason=reason, occurred_at=now))

    # ── Projection ───────────────────────────────

    def generate_summary(self, now: datetime | None = None) -> TripSummary:
        state = self.state
        if state.status == TripStatus.COMPLETED and state.started_at and state.completed_at:
            duration = state.completed_at - state.started_at
        elif state.status == TripStatus.IN_PROGRESS and state.started_at:
            duration = (now or datetime.now(timezone.utc)) - state.started_at
        else:
            duration = timedelta(0)

        return TripSummary(
            trip_id=state.trip_id,
            driver_id=state.driver_id,
            vehicle_id=state.vehicle_id,
            route_id=state.route_id,
            cargo_description=state.cargo_description,
            status=state.status,
            started_at=state.started_at,
            completed_at=state.completed_at,
            duration=duration,
            checkpoints_reached=len(state.reached_checkpoint_ids),
            total_incidents=len(state.incidents),
            resolved_incidents=sum(1 for i in state.incidents if i.is_resolved),
            has_critical_incidents=any(
                i.severity == IncidentSeverity.CRITICAL for i in state.incidents
            ),
            incidents=state.incidents,
        )

    # ── Event application ────────────────────────

    def apply_event(self, event: TripEvent) -> None:
        """Fold a new event and buffer it. Already-applied event ids are dropped."""
        if event.event_id in self._applied_event_ids:
            return
        self.state = when(self.state, event)
        self._applied_event_ids.add(event.event_id)
        self.uncommitted_events.append(event)
        self.version += 1

    def clear_uncommitted_events(self) -> None:
        """Forget the buffer once the repository has persisted it."""
        self.uncommitted_events.clear()

    def _ensure_in_progress(self, operation: str) -> None:
        if self.status != TripStatus.IN_PROGRESS:
            raise InvalidTripStateError(self.status.value, operation)
