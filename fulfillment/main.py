"""
FastAPI Application Entry Point

Order Fulfillment Engine - tracks orders from placement to completion and
routes their items to the kitchen and bar displays.

Endpoints:
    - POST /api/orders: Create order (checkout collaborator)
    - GET /api/orders: List orders, optionally active-only / per station
    - GET /api/orders/{id}: Get one order
    - PATCH /api/orders/{id}/status: Request a status change from a display
    - GET /api/orders/{id}/history: Transition history
    - GET /api/orders/{id}/ticket: Preparation ticket for a station
    - GET /api/catalog: Catalog snapshot displays classify with
    - GET /health: System health check

Run with:
    uvicorn fulfillment.main:app --port 8001
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import redis
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Internal imports
from fulfillment.core.config import get_settings, setup_logging
from fulfillment.core.exceptions import (
    ConflictOnWrite,
    EmptyTicket,
    FulfillmentError,
    InvalidTransition,
    MutationInFlight,
    NotFound,
    TransportFailure,
    UnknownItem,
)
from fulfillment.database import engine, init_db
from fulfillment.models import Station
from fulfillment.schemas import (
    CatalogSnapshot,
    ErrorResponse,
    HealthResponse,
    OrderCreate,
    OrderHistoryResponse,
    OrderListResponse,
    OrderRecord,
    StationTicket,
    TransitionRequest,
    TransitionResponse,
)
from fulfillment.services.catalog import BaseCatalogService, get_catalog_service
from fulfillment.services.fulfillment import FulfillmentService, get_fulfillment_service

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


ERROR_STATUS_CODES = [
    (NotFound, 404),
    (EmptyTicket, 404),
    (UnknownItem, 404),
    (InvalidTransition, 422),
    (ConflictOnWrite, 409),
    (MutationInFlight, 409),
    (TransportFailure, 503),
]


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    if settings.use_real_services:
        await init_db()
        logger.info("✅ Database initialized")

        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    service = get_fulfillment_service()
    logger.info(f"✅ Order Store: {service.store.provider_name}")
    logger.info(f"✅ Catalog: {get_catalog_service().provider_name}")
    if service.auto_completer is not None:
        logger.info(
            f"✅ Auto-completion: {service.auto_completer.provider_name} "
            f"({settings.auto_complete_delay_ms}ms)"
        )

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    if service.auto_completer is not None:
        await service.auto_completer.shutdown()
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Order fulfillment engine: station routing, status state machine "
        "and the polling protocol used by kitchen, bar and cashier displays."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    service: FulfillmentService = Depends(get_fulfillment_service),
    catalog: BaseCatalogService = Depends(get_catalog_service),
) -> HealthResponse:
    """Verify all system components are operational."""

    store_status = "healthy" if await service.store.health_check() else "unhealthy"
    catalog_status = "healthy" if await catalog.health_check() else "unhealthy"

    # The broker only carries auto-completion tasks in real-service modes
    broker_status = "not used"
    if settings.use_real_services:
        broker_status = "healthy"
        try:
            r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
            r.ping()
            r.close()
        except Exception as e:
            broker_status = f"unhealthy: {str(e)}"
            logger.error(f"Redis health check failed: {e}")

    overall = "operational" if all(
        s in ("healthy", "not used") for s in [store_status, catalog_status, broker_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        order_store=store_status,
        catalog=catalog_status,
        broker=broker_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderRecord,
    status_code=201,
    responses={422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Create Order",
)
async def create_order(
    order_data: OrderCreate,
    service: FulfillmentService = Depends(get_fulfillment_service),
) -> OrderRecord:
    """
    Place a new order in the `queued` state.

    Called by the checkout flow once payment is accepted or deferred.
    """
    return await service.create_order(order_data)


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    station: Optional[Station] = Query(None, description="Only orders with items for this station"),
    active: bool = Query(False, description="Only orders that are not completed or cancelled"),
    service: FulfillmentService = Depends(get_fulfillment_service),
) -> OrderListResponse:
    """Retrieve orders, newest first."""
    if active:
        orders = await service.list_active_orders(station)
    else:
        orders = await service.list_orders()
        if station is not None:
            orders = (await service.router()).filter_for_station(orders, station)

    return OrderListResponse(total=len(orders), orders=orders)


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderRecord,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order(
    order_id: str,
    service: FulfillmentService = Depends(get_fulfillment_service),
) -> OrderRecord:
    """Get a specific order by ID."""
    return await service.get_order(order_id)


@app.patch(
    "/api/orders/{order_id}/status",
    response_model=TransitionResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    tags=["Orders"],
    summary="Request Status Change",
)
async def update_order_status(
    order_id: str,
    body: TransitionRequest,
    service: FulfillmentService = Depends(get_fulfillment_service),
) -> TransitionResponse:
    """
    Move an order through its fulfillment lifecycle.

    `station` is required when asking for `ready`. A bar request on a mixed
    order is acknowledged (`applied: false`) and leaves the status alone.
    """
    result = await service.request_transition(order_id, body.status, body.station)
    return TransitionResponse(
        order=result.order,
        applied=result.decision.applies,
        acknowledged=result.decision.acknowledged,
        message=result.decision.message,
    )


@app.get(
    "/api/orders/{order_id}/history",
    response_model=OrderHistoryResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order_history(
    order_id: str,
    service: FulfillmentService = Depends(get_fulfillment_service),
) -> OrderHistoryResponse:
    """Every transition attempt recorded for an order, oldest first."""
    events = await service.get_history(order_id)
    return OrderHistoryResponse(order_id=order_id, events=events)


@app.get(
    "/api/orders/{order_id}/ticket",
    response_model=StationTicket,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order_ticket(
    order_id: str,
    station: Optional[Station] = Query(None),
    service: FulfillmentService = Depends(get_fulfillment_service),
) -> StationTicket:
    """Preparation ticket with only the items for `station` (all items if omitted)."""
    return await service.render_ticket(order_id, station)


# =============================================================================
# CATALOG ENDPOINTS
# =============================================================================

@app.get(
    "/api/catalog",
    response_model=CatalogSnapshot,
    tags=["Catalog"],
)
async def get_catalog(
    catalog: BaseCatalogService = Depends(get_catalog_service),
) -> CatalogSnapshot:
    """Categories and menu items, for classifying items on the displays."""
    return await catalog.get_snapshot()


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(FulfillmentError)
async def fulfillment_error_handler(request: Request, exc: FulfillmentError) -> JSONResponse:
    """Translate engine errors into their HTTP status codes."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES if isinstance(exc, error_type)),
        400,
    )
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
