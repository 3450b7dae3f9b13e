"""
Trip Service - event definitions

Facts that happened to a delivery trip. Events are named in the past tense
and are immutable once constructed. The aggregate validates before it
produces one, so nothing here checks business rules.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class IncidentType(str, Enum):
    ASTEROID_FIELD = "AsteroidField"
    COSMIC_STORM = "CosmicStorm"
    EMERGENCY_MAINTENANCE = "EmergencyMaintenance"
    PIRATE_ENCOUNTER = "PirateEncounter"
    NAVIGATION_ERROR = "NavigationError"
    CARGO_SHIFT = "CargoShift"
    FUEL_LEAK = "FuelLeak"
    COMMUNICATION_FAILURE = "CommunicationFailure"
    OTHER = "Other"


class IncidentSeverity(str, Enum):
    MINOR = "Minor"
    MODERATE = "Moderate"
    MAJOR = "Major"
    CRITICAL = "Critical"


class TripEventBase(BaseModel):
    """Fields shared by every trip event."""

    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(default_factory=uuid4)
    trip_id: UUID
    occurred_at: datetime


class TripStarted(TripEventBase):
    """A trip was started with a driver, a vehicle and a route"""
    event_type: Literal["TripStarted"] = "TripStarted"
    driver_id: UUID
    vehicle_id: UUID
    route_id: UUID
    cargo_description: str


class CheckpointReached(TripEventBase):
    """The trip reached a checkpoint on its route"""
    event_type: Literal["CheckpointReached"] = "CheckpointReached"
    checkpoint_id: UUID
    checkpoint_name: str
    sequence_number: int


class IncidentOccurred(TripEventBase):
    """An incident happened during the trip"""
    event_type: Literal["IncidentOccurred"] = "IncidentOccurred"
    incident_id: UUID
    incident_type: IncidentType
    description: str
    severity: IncidentSeverity


class IncidentResolved(TripEventBase):
    """A previously recorded incident was resolved"""
    event_type: Literal["IncidentResolved"] = "IncidentResolved"
    incident_id: UUID
    resolution_notes: str


class TripCompleted(TripEventBase):
    """The trip arrived and was completed"""
    event_type: Literal["TripCompleted"] = "TripCompleted"


class TripCancelled(TripEventBase):
    """The trip was cancelled"""
    event_type: Literal["TripCancelled"] = "TripCancelled"
    reason: str


TripEvent = Annotated[
    Union[
        TripStarted,
        CheckpointReached,
        IncidentOccurred,
        IncidentResolved,
        TripCompleted,
        TripCancelled,
    ],
    Field(discriminator="event_type"),
]

_event_adapter: TypeAdapter[TripEvent] = TypeAdapter(TripEvent)


def serialize_event(event: TripEventBase) -> str:
    """Encode an event as JSON, keeping its tag and identity."""
    return event.model_dump_json()


def deserialize_event(payload: str | bytes) -> TripEvent:
    """Decode JSON produced by serialize_event back into its event class."""
    return _event_adapter.validate_json(payload)
