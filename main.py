from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

from dotenv import load_dotenv
from fastapi import APIRouter, Body, Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from aggregation.view import TrackingViewAggregator
from config.settings import PointStoreBackend, Settings, get_settings, validate_startup
from domain.clock import Clock, utc_now
from domain.models import Actor, Role
from errors.exceptions import unauthorized
from errors.handlers import register_exception_handlers
from geocoding.client import Geocoder, build_geocoder
from health.service import HealthCheckService
from ingestion.plausibility import IngestionThresholds
from ingestion.service import IngestionValidator
from middleware.rate_limiter import (
    api_limit,
    get_actor_key,
    limiter,
    location_report_limit,
    setup_rate_limiting,
)
from middleware.request_id import RequestIDMiddleware
from points.elasticsearch_store import ElasticsearchPointStore
from points.memory_store import InMemoryPointStore
from points.store import PointStore
from registry.memory import InMemoryShipmentRegistry
from registry.store import ShipmentRegistry
from telemetry.service import TelemetryService, initialize_telemetry
from tracking.controller import TrackingStateController
from tracking.locks import KeyedLock

logger = logging.getLogger(__name__)

SERVICE_NAME = "Courier Tracking API"
SERVICE_VERSION = "1.0.0"


@dataclass
class TrackingServices:
    """Everything the routes need, built once per application."""
    registry: ShipmentRegistry
    point_store: PointStore
    geocoder: Geocoder
    controller: TrackingStateController
    validator: IngestionValidator
    aggregator: TrackingViewAggregator
    health: HealthCheckService


def build_point_store(settings: Settings) -> PointStore:
    if settings.point_store_backend == PointStoreBackend.ELASTICSEARCH:
        return ElasticsearchPointStore.from_settings(settings)
    return InMemoryPointStore()


def build_services(
    settings: Settings,
    registry: Optional[ShipmentRegistry] = None,
    point_store: Optional[PointStore] = None,
    geocoder: Optional[Geocoder] = None,
    telemetry: Optional[TelemetryService] = None,
    clock: Clock = utc_now,
) -> TrackingServices:
    """
    Wire the tracking components together.

    The shipment registry is owned by another system; without one supplied,
    an in-memory registry is used (development and tests).
    """
    registry = registry or InMemoryShipmentRegistry()
    point_store = point_store or build_point_store(settings)
    geocoder = geocoder or build_geocoder(settings, telemetry)

    # Toggles and ingestion for one shipment are serialized on the same lock
    locks = KeyedLock()

    return TrackingServices(
        registry=registry,
        point_store=point_store,
        geocoder=geocoder,
        controller=TrackingStateController(
            registry,
            locks=locks,
            telemetry=telemetry,
            clock=clock,
        ),
        validator=IngestionValidator(
            registry,
            point_store,
            thresholds=IngestionThresholds.from_settings(settings),
            timestamp_policy=settings.timestamp_policy,
            locks=locks,
            telemetry=telemetry,
            clock=clock,
            max_attempts=settings.ingestion_max_attempts,
        ),
        aggregator=TrackingViewAggregator(
            registry,
            point_store,
            geocoder,
            geocode_timeout_seconds=settings.geocoding_timeout_seconds,
            proximity_tolerance_meters=settings.facility_proximity_meters,
            telemetry=telemetry,
        ),
        health=HealthCheckService(
            point_store=point_store,
            geocoder=geocoder,
            check_timeout=5.0
        ),
    )


# =============================================================================
# Request dependencies
# =============================================================================


def get_services(request: Request) -> TrackingServices:
    return request.app.state.services


async def get_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> Actor:
    """
    Caller identity as forwarded by the authentication layer.

    Raises:
        AppException: UNAUTHORIZED if either header is missing or the role
            is not recognised
    """
    if not x_actor_id or not x_actor_id.strip() or not x_actor_role:
        raise unauthorized("Missing caller identity")

    try:
        role = Role(x_actor_role.strip().upper())
    except ValueError:
        raise unauthorized(
            "Unrecognised caller role",
            details={"role": x_actor_role},
        )

    return Actor(user_id=x_actor_id.strip(), role=role)


class TrackingToggleRequest(BaseModel):
    enabled: bool


# =============================================================================
# Tracking routes
# =============================================================================

router = APIRouter(prefix="/api/shipments")


@router.patch("/{shipment_id}/tracking")
@limiter.limit(api_limit)
async def toggle_tracking(
    request: Request,
    shipment_id: str,
    body: TrackingToggleRequest,
    actor: Actor = Depends(get_actor),
    services: TrackingServices = Depends(get_services),
):
    """
    Enable or disable GPS tracking for a shipment.

    Allowed for admins and the shipment's assigned driver.

    Returns:
        dict: {"enabled": bool, "started_at": ISO timestamp or null}
    """
    state = await services.controller.set_tracking(shipment_id, body.enabled, actor)
    return state.to_dict()


@router.post("/{shipment_id}/locations")
@limiter.limit(location_report_limit, key_func=get_actor_key)
async def submit_location(
    request: Request,
    shipment_id: str,
    payload: Dict[str, Any] = Body(...),
    actor: Actor = Depends(get_actor),
    services: TrackingServices = Depends(get_services),
):
    """
    Submit a GPS location report for a shipment.

    Only the assigned driver may report. The response distinguishes:
    - 201 {"status": "accepted", "point": {...}}: stored
    - 200 {"status": "ignored", "reason": "jitter"}: movement below GPS noise,
      nothing stored
    - 4xx error: rejected with a typed error code

    Returns:
        JSONResponse: The ingestion outcome
    """
    outcome = await services.validator.submit(shipment_id, payload, actor)
    outcome.raise_for_rejection()

    return JSONResponse(
        status_code=201 if outcome.is_accepted else 200,
        content=outcome.to_dict(),
    )


@router.get("/{shipment_id}/tracking")
@limiter.limit(api_limit)
async def get_tracking_view(
    request: Request,
    shipment_id: str,
    actor: Actor = Depends(get_actor),
    services: TrackingServices = Depends(get_services),
):
    """
    Fetch the tracking view for a shipment.

    Viewers are expected to poll this endpoint (every ~5 seconds).
    Waypoints whose coordinates could not be resolved are returned with
    null coordinates rather than failing the request.
    """
    view = await services.aggregator.build_view(shipment_id, actor)
    return view.model_dump(mode="json")


# =============================================================================
# Health Check Endpoints
# =============================================================================

health_router = APIRouter()


@health_router.get("/health")
async def health_basic(services: TrackingServices = Depends(get_services)):
    """
    Basic health check endpoint.

    Returns 200 OK when the service is accepting requests, without
    consulting dependencies.
    """
    result = await services.health.check_health()
    return {
        "status": result["status"],
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": result["timestamp"]
    }


@health_router.get("/health/ready")
async def health_ready(services: TrackingServices = Depends(get_services)):
    """
    Readiness check endpoint with dependency verification.

    Returns:
        JSONResponse: Health status with dependency details
        - 200 OK: All dependencies healthy, or only the geocoder is down
        - 503 Service Unavailable: The point store is unavailable
    """
    health_status = await services.health.check_readiness()
    response_data = {
        "status": health_status.status,
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": health_status.timestamp,
        "dependencies": [dep.to_dict() for dep in health_status.dependencies]
    }

    if health_status.status == "unhealthy":
        response_data["failure_reasons"] = [
            {
                "dependency": dep.name,
                "error": dep.error
            }
            for dep in health_status.dependencies if not dep.healthy
        ]
        return JSONResponse(
            status_code=503,
            content=response_data
        )

    return response_data


@health_router.get("/health/live")
async def health_live(services: TrackingServices = Depends(get_services)):
    """Returns 200 OK if the process is running, regardless of dependency status."""
    result = await services.health.check_liveness()
    return {
        "status": result["status"],
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": result["timestamp"]
    }


# =============================================================================
# Application factory
# =============================================================================


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[TrackingServices] = None,
    rate_limiting: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings; loaded from the environment if omitted
        services: Pre-built services (tests inject registries and clocks here)
        rate_limiting: Whether slowapi limits are enforced

    Returns:
        The configured application
    """
    settings = settings or get_settings()
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        validate_startup(settings)
        logger.info(
            f"Starting {SERVICE_NAME}",
            extra={"extra_data": {
                "environment": settings.environment.value,
                "point_store_backend": settings.point_store_backend.value,
            }}
        )
        if isinstance(services.point_store, ElasticsearchPointStore):
            try:
                await services.point_store.ensure_index()
            except Exception as e:
                # Readiness reports the store as down until it recovers
                logger.error(f"Failed to prepare point store index: {e}")

        yield

        logger.info(f"Shutting down {SERVICE_NAME}")
        await services.point_store.close()
        await services.geocoder.close()

    app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)
    app.state.services = services

    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=[
            "Accept",
            "Content-Type",
            "Authorization",
            "X-Request-ID",
            "X-Actor-Id",
            "X-Actor-Role",
        ],
        expose_headers=["X-Request-ID"],
        max_age=600,
    )

    # Added after CORS so it wraps every request
    app.add_middleware(RequestIDMiddleware)

    setup_rate_limiting(
        app,
        api_rate_limit=settings.rate_limit_requests_per_minute,
        location_report_rate_limit=settings.rate_limit_location_reports_per_minute,
        enabled=rate_limiting,
    )

    app.include_router(router)
    app.include_router(health_router)

    return app


# ENVIRONMENT itself may come from .env, which decides the layered env files
load_dotenv()

settings = get_settings()
telemetry_service = initialize_telemetry(settings)
app = create_app(settings, build_services(settings, telemetry=telemetry_service))


if __name__ == "__main__":
    import uvicorn
    import os
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
