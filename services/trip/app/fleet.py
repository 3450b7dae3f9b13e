"""
Trip Service - drivers, vehicles and routes

Plain entities kept in keyed maps. They carry no history and no version:
the only shared state worth protecting is the map itself, so each store
holds a single lock.
"""

import math
import threading
from datetime import timedelta
from enum import Enum
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .errors import DomainValidationError, EntityNotFoundError
from .guards import (
    require_id,
    require_non_negative,
    require_positive,
    require_text,
)


class VehicleType(str, Enum):
    HOVER_TRUCK = "HoverTruck"
    ROCKET_VAN = "RocketVan"
    SPACE_CYCLE = "SpaceCycle"
    CARGO_FREIGHTER = "CargoFreighter"
    EXPRESS_POD = "ExpressPod"


# ── Entities ─────────────────────────────────────


class Driver(BaseModel):
    id: UUID
    name: str
    license_number: str
    experience_years: int
    is_available: bool = True

    @classmethod
    def create(
        cls, driver_id: UUID, name: str, license_number: str, experience_years: int
    ) -> "Driver":
        require_id(driver_id, "id", "Driver ID")
        require_text(name, "name", "Driver name")
        require_text(license_number, "license_number", "License number")
        require_non_negative(experience_years, "experience_years", "Experience years")
        return cls(
            id=driver_id,
            name=name,
            license_number=license_number,
            experience_years=experience_years,
        )

    def mark_unavailable(self) -> None:
        self.is_available = False

    def mark_available(self) -> None:
        self.is_available = True

    def update_details(self, name: str, experience_years: int) -> None:
        require_text(name, "name", "Driver name")
        require_non_negative(experience_years, "experience_years", "Experience years")
        self.name = name
        self.experience_years = experience_years


class Vehicle(BaseModel):
    id: UUID
    name: str
    vehicle_type: VehicleType
    max_cargo_capacity_kg: float
    max_speed: float
    is_available: bool = True

    @classmethod
    def create(
        cls,
        vehicle_id: UUID,
        name: str,
        vehicle_type: VehicleType,
        max_cargo_capacity_kg: float,
        max_speed: float,
    ) -> "Vehicle":
        require_id(vehicle_id, "id", "Vehicle ID")
        require_text(name, "name", "Vehicle name")
        require_positive(max_cargo_capacity_kg, "max_cargo_capacity_kg", "Max cargo capacity")
        require_positive(max_speed, "max_speed", "Max speed")
        return cls(
            id=vehicle_id,
            name=name,
            vehicle_type=vehicle_type,
            max_cargo_capacity_kg=max_cargo_capacity_kg,
            max_speed=max_speed,
        )

    def mark_unavailable(self) -> None:
        self.is_available = False

    def mark_available(self) -> None:
        self.is_available = True

    def update_details(self, name: str, max_cargo_capacity_kg: float, max_speed: float) -> None:
        require_text(name, "name", "Vehicle name")
        require_positive(max_cargo_capacity_kg, "max_cargo_capacity_kg", "Max cargo capacity")
        require_positive(max_speed, "max_speed", "Max speed")
        self.name = name
        self.max_cargo_capacity_kg = max_cargo_capacity_kg
        self.max_speed = max_speed


class SpaceLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    sector: str
    x: float
    y: float
    z: float

    @classmethod
    def create(cls, name: str, sector: str, x: float, y: float, z: float) -> "SpaceLocation":
        require_text(name, "name", "Location name")
        require_text(sector, "sector", "Sector")
        return cls(name=name, sector=sector, x=x, y=y, z=z)

    def distance_to(self, other: "SpaceLocation") -> float:
        return math.dist((self.x, self.y, self.z), (other.x, other.y, other.z))


class Checkpoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    location: SpaceLocation
    sequence_number: int
    estimated_duration: timedelta

    @classmethod
    def create(
        cls,
        checkpoint_id: UUID,
        name: str,
        location: SpaceLocation,
        sequence_number: int,
        estimated_duration: timedelta,
    ) -> "Checkpoint":
        require_id(checkpoint_id, "id", "Checkpoint ID")
        require_text(name, "name", "Checkpoint name")
        require_non_negative(sequence_number, "sequence_number", "Sequence number")
        return cls(
            id=checkpoint_id,
            name=name,
            location=location,
            sequence_number=sequence_number,
            estimated_duration=estimated_duration,
        )


class Route(BaseModel):
    """A route from origin to destination through checkpoints kept in sequence order."""

    id: UUID
    name: str
    origin: SpaceLocation
    destination: SpaceLocation
    danger_rating: int = 1
    checkpoints: list[Checkpoint] = Field(default_factory=list)

    @classmethod
    def create(
        cls,
        route_id: UUID,
        name: str,
        origin: SpaceLocation,
        destination: SpaceLocation,
        danger_rating: int = 1,
    ) -> "Route":
        require_id(route_id, "id", "Route ID")
        require_text(name, "name", "Route name")
        if not 1 <= danger_rating <= 10:
            raise DomainValidationError(
                "Danger rating must be between 1 and 10", field="danger_rating"
            )
        return cls(
            id=route_id,
            name=name,
            origin=origin,
            destination=destination,
            danger_rating=danger_rating,
        )

    def add_checkpoint(self, checkpoint: Checkpoint) -> None:
        if any(c.id == checkpoint.id for c in self.checkpoints):
            raise DomainValidationError(
                f"Checkpoint with ID {checkpoint.id} already exists", field="id"
            )
        if any(c.sequence_number == checkpoint.sequence_number for c in self.checkpoints):
            raise DomainValidationError(
                f"Checkpoint with sequence number {checkpoint.sequence_number} already exists",
                field="sequence_number",
            )
        self.checkpoints.append(checkpoint)
        self.checkpoints.sort(key=lambda c: c.sequence_number)

    def remove_checkpoint(self, checkpoint_id: UUID) -> None:
        checkpoint = self.find_checkpoint(checkpoint_id)
        if checkpoint is None:
            raise EntityNotFoundError("Checkpoint", checkpoint_id)
        self.checkpoints.remove(checkpoint)

    def find_checkpoint(self, checkpoint_id: UUID) -> Checkpoint | None:
        return next((c for c in self.checkpoints if c.id == checkpoint_id), None)

    def total_distance(self) -> float:
        stops = [self.origin, *(c.location for c in self.checkpoints), self.destination]
        return sum(a.distance_to(b) for a, b in zip(stops, stops[1:]))

    def estimated_total_duration(self) -> timedelta:
        return sum((c.estimated_duration for c in self.checkpoints), timedelta(0))


# ── Stores ───────────────────────────────────────

T = TypeVar("T", Driver, Vehicle, Route)


class InMemoryStore(Generic[T]):
    """Keyed map of entities. Saving an entity replaces the stored one."""

    def __init__(self) -> None:
        self._items: dict[UUID, T] = {}
        self._lock = threading.Lock()

    async def get(self, item_id: UUID) -> T | None:
        with self._lock:
            return self._items.get(item_id)

    async def list_all(self) -> list[T]:
        with self._lock:
            return list(self._items.values())

    async def save(self, item: T) -> None:
        with self._lock:
            self._items[item.id] = item

    async def delete(self, item_id: UUID) -> None:
        with self._lock:
            self._items.pop(item_id, None)

    async def exists(self, item_id: UUID) -> bool:
        with self._lock:
            return item_id in self._items


class DriverStore(InMemoryStore[Driver]):
    async def list_available(self) -> list[Driver]:
        return [d for d in await self.list_all() if d.is_available]


class VehicleStore(InMemoryStore[Vehicle]):
    async def list_available(self) -> list[Vehicle]:
        return [v for v in await self.list_all() if v.is_available]


class RouteStore(InMemoryStore[Route]):
    pass
