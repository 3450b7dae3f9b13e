"""
Trip Service - FastAPI entry point

Command (POST/PUT/DELETE) and query (GET) endpoints are kept apart in the
CQRS style. Every change to a trip is recorded as an event; commands that
modify an existing trip take the version the client last saw and answer
409 when someone else changed the trip first.
"""

import os
from contextlib import asynccontextmanager
from datetime import timedelta
from uuid import UUID

import structlog
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import commands, queries
from .context import ServiceContext, build_context
from .errors import DomainError
from .events import IncidentSeverity, IncidentType
from .fleet import SpaceLocation, VehicleType
from .logging_setup import configure_logging
from .seed import seed_demo_data

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")
SEED_DEMO_DATA = os.environ.get("SEED_DEMO_DATA", "true").lower() == "true"
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8000"))

logger = structlog.get_logger(__name__)

ctx: ServiceContext | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global ctx
    configure_logging(LOG_LEVEL, LOG_FORMAT)
    ctx = build_context()
    if SEED_DEMO_DATA:
        await seed_demo_data(ctx)
    logger.info("trip_service_started", seed_demo_data=SEED_DEMO_DATA)
    yield
    ctx = None


app = FastAPI(title="Trip Service", lifespan=lifespan)


@app.exception_handler(DomainError)
async def handle_domain_error(request: Request, exc: DomainError) -> JSONResponse:
    logger.warning(
        "request_rejected",
        path=request.url.path,
        code=exc.error_code,
        detail=exc.message,
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


# ── Request Models ───────────────────────────────


class CreateTripRequest(BaseModel):
    driver_id: UUID
    vehicle_id: UUID
    route_id: UUID
    cargo_description: str


class ReachCheckpointRequest(BaseModel):
    checkpoint_id: UUID
    expected_version: int


class RecordIncidentRequest(BaseModel):
    type: IncidentType
    description: str
    severity: IncidentSeverity
    expected_version: int


class ResolveIncidentRequest(BaseModel):
    resolution_notes: str
    expected_version: int


class CompleteTripRequest(BaseModel):
    expected_version: int


class CancelTripRequest(BaseModel):
    reason: str
    expected_version: int


class CreateDriverRequest(BaseModel):
    name: str
    license_number: str
    experience_years: int


class UpdateDriverRequest(BaseModel):
    name: str
    experience_years: int


class CreateVehicleRequest(BaseModel):
    name: str
    type: VehicleType
    max_cargo_capacity_kg: float
    max_speed: float


class UpdateVehicleRequest(BaseModel):
    name: str
    max_cargo_capacity_kg: float
    max_speed: float


class LocationModel(BaseModel):
    name: str
    sector: str
    x: float
    y: float
    z: float

    def to_location(self) -> SpaceLocation:
        return SpaceLocation.create(self.name, self.sector, self.x, self.y, self.z)


class CheckpointModel(BaseModel):
    name: str
    location: LocationModel
    sequence_number: int
    estimated_duration_minutes: int = 0

    def to_draft(self) -> commands.CheckpointDraft:
        return commands.CheckpointDraft(
            name=self.name,
            location=self.location.to_location(),
            sequence_number=self.sequence_number,
            estimated_duration=timedelta(minutes=self.estimated_duration_minutes),
        )


class CreateRouteRequest(BaseModel):
    name: str
    origin: LocationModel
    destination: LocationModel
    danger_rating: int = 1
    checkpoints: list[CheckpointModel] = Field(default_factory=list)


# ── Trip Command Endpoints (Write 側) ────────────


@app.post("/commands/trips")
async def cmd_create_trip(req: CreateTripRequest):
    """トリップ開始コマンド（ドライバーと車両を確保する）"""
    trip = await commands.create_trip(
        ctx, req.driver_id, req.vehicle_id, req.route_id, req.cargo_description
    )
    return queries.trip_to_dict(trip)


@app.post("/commands/trips/{trip_id}/checkpoints")
async def cmd_reach_checkpoint(trip_id: UUID, req: ReachCheckpointRequest):
    """チェックポイント到達コマンド"""
    trip = await commands.reach_checkpoint(
        ctx, trip_id, req.checkpoint_id, req.expected_version
    )
    return queries.trip_to_dict(trip)


@app.post("/commands/trips/{trip_id}/incidents")
async def cmd_record_incident(trip_id: UUID, req: RecordIncidentRequest):
    """インシデント記録コマンド"""
    trip, incident_id = await commands.record_incident(
        ctx, trip_id, req.type, req.description, req.severity, req.expected_version
    )
    return {"incident_id": str(incident_id), "trip": queries.trip_to_dict(trip)}


@app.post("/commands/trips/{trip_id}/incidents/{incident_id}/resolve")
async def cmd_resolve_incident(trip_id: UUID, incident_id: UUID, req: ResolveIncidentRequest):
    """インシデント解決コマンド"""
    trip = await commands.resolve_incident(
        ctx, trip_id, incident_id, req.resolution_notes, req.expected_version
    )
    return queries.trip_to_dict(trip)


@app.post("/commands/trips/{trip_id}/complete")
async def cmd_complete_trip(trip_id: UUID, req: CompleteTripRequest):
    """トリップ完了コマンド（未解決の重大インシデントがあれば拒否）"""
    summary = await commands.complete_trip(ctx, trip_id, req.expected_version)
    return queries.summary_to_dict(summary)


@app.post("/commands/trips/{trip_id}/cancel")
async def cmd_cancel_trip(trip_id: UUID, req: CancelTripRequest):
    """トリップキャンセルコマンド"""
    summary = await commands.cancel_trip(ctx, trip_id, req.reason, req.expected_version)
    return queries.summary_to_dict(summary)


# ── Trip Query Endpoints (Read 側) ───────────────


@app.get("/queries/trips/active")
async def query_active_trips():
    """進行中のトリップ一覧をイベントから再構築して取得"""
    return await queries.list_active_trips(ctx)


@app.get("/queries/trips/{trip_id}")
async def query_get_trip(trip_id: UUID):
    """指定トリップをイベントから再構築して取得"""
    trip = await queries.get_trip(ctx, trip_id)
    if not trip:
        raise HTTPException(404, "Trip not found")
    return trip


@app.get("/queries/trips/{trip_id}/summary")
async def query_trip_summary(trip_id: UUID):
    """トリップのサマリーを取得"""
    return await queries.get_trip_summary(ctx, trip_id)


@app.get("/queries/drivers/{driver_id}/trips")
async def query_driver_trips(driver_id: UUID):
    """指定ドライバーのトリップ一覧を取得"""
    return await queries.list_trips_by_driver(ctx, driver_id)


# ── Fleet Endpoints ──────────────────────────────


@app.post("/commands/drivers")
async def cmd_register_driver(req: CreateDriverRequest):
    """ドライバー登録コマンド"""
    driver = await commands.register_driver(
        ctx, req.name, req.license_number, req.experience_years
    )
    return queries.driver_to_dict(driver)


@app.put("/commands/drivers/{driver_id}")
async def cmd_update_driver(driver_id: UUID, req: UpdateDriverRequest):
    """ドライバー更新コマンド"""
    driver = await commands.update_driver(ctx, driver_id, req.name, req.experience_years)
    return queries.driver_to_dict(driver)


@app.delete("/commands/drivers/{driver_id}")
async def cmd_remove_driver(driver_id: UUID):
    """ドライバー削除コマンド（トリップ中は拒否）"""
    await commands.remove_driver(ctx, driver_id)
    return {"deleted": str(driver_id)}


@app.get("/queries/drivers")
async def query_list_drivers(available: bool = False):
    """ドライバー一覧を取得（available=true で空きのみ）"""
    return await queries.list_drivers(ctx, available_only=available)


@app.get("/queries/drivers/{driver_id}")
async def query_get_driver(driver_id: UUID):
    """指定ドライバーを取得"""
    driver = await queries.get_driver(ctx, driver_id)
    if not driver:
        raise HTTPException(404, "Driver not found")
    return driver


@app.post("/commands/vehicles")
async def cmd_register_vehicle(req: CreateVehicleRequest):
    """車両登録コマンド"""
    vehicle = await commands.register_vehicle(
        ctx, req.name, req.type, req.max_cargo_capacity_kg, req.max_speed
    )
    return queries.vehicle_to_dict(vehicle)


@app.put("/commands/vehicles/{vehicle_id}")
async def cmd_update_vehicle(vehicle_id: UUID, req: UpdateVehicleRequest):
    """車両更新コマンド"""
    vehicle = await commands.update_vehicle(
        ctx, vehicle_id, req.name, req.max_cargo_capacity_kg, req.max_speed
    )
    return queries.vehicle_to_dict(vehicle)


@app.delete("/commands/vehicles/{vehicle_id}")
async def cmd_remove_vehicle(vehicle_id: UUID):
    """車両削除コマンド（トリップ中は拒否）"""
    await commands.remove_vehicle(ctx, vehicle_id)
    return {"deleted": str(vehicle_id)}


@app.get("/queries/vehicles")
async def query_list_vehicles(available: bool = False):
    """車両一覧を取得（available=true で空きのみ）"""
    return await queries.list_vehicles(ctx, available_only=available)


@app.get("/queries/vehicles/{vehicle_id}")
async def query_get_vehicle(vehicle_id: UUID):
    """指定車両を取得"""
    vehicle = await queries.get_vehicle(ctx, vehicle_id)
    if not vehicle:
        raise HTTPException(404, "Vehicle not found")
    return vehicle


@app.post("/commands/routes")
async def cmd_create_route(req: CreateRouteRequest):
    """ルート作成コマンド"""
    route = await commands.create_route(
        ctx,
        req.name,
        req.origin.to_location(),
        req.destination.to_location(),
        req.danger_rating,
        [c.to_draft() for c in req.checkpoints],
    )
    return queries.route_to_dict(route)


@app.post("/commands/routes/{route_id}/checkpoints")
async def cmd_add_route_checkpoint(route_id: UUID, req: CheckpointModel):
    """ルートへのチェックポイント追加コマンド"""
    route = await commands.add_route_checkpoint(ctx, route_id, req.to_draft())
    return queries.route_to_dict(route)


@app.delete("/commands/routes/{route_id}/checkpoints/{checkpoint_id}")
async def cmd_remove_route_checkpoint(route_id: UUID, checkpoint_id: UUID):
    """ルートからのチェックポイント削除コマンド"""
    route = await commands.remove_route_checkpoint(ctx, route_id, checkpoint_id)
    return queries.route_to_dict(route)


@app.delete("/commands/routes/{route_id}")
async def cmd_remove_route(route_id: UUID):
    """ルート削除コマンド"""
    await commands.remove_route(ctx, route_id)
    return {"deleted": str(route_id)}


@app.get("/queries/routes")
async def query_list_routes():
    """全ルートを取得"""
    return await queries.list_routes(ctx)


@app.get("/queries/routes/{route_id}")
async def query_get_route(route_id: UUID):
    """指定ルートを取得"""
    route = await queries.get_route(ctx, route_id)
    if not route:
        raise HTTPException(404, "Route not found")
    return route


# ── Event Store (デバッグ用) ─────────────────────


@app.get("/events")
async def get_all_events():
    """イベントストアの全イベントを返す（デバッグ用）"""
    return await ctx.event_store.load_all_events()


@app.get("/events/{aggregate_id}")
async def get_aggregate_events(aggregate_id: UUID, after_version: int = Query(0, ge=0)):
    """指定集約のイベントを返す"""
    events = await ctx.event_store.load_events(aggregate_id, after_version)
    return [e.model_dump(mode="json") for e in events]


@app.get("/health")
async def health():
    return {"status": "ok", "service": "trip-service"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=HOST, port=PORT, log_level=LOG_LEVEL.lower())
