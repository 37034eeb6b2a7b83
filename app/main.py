"""
FastAPI Application Entry Point

Delta Restaurant Backend: menu, contact form, reservations and table orders
with a daily-resetting order number.

Endpoints:
    - GET /menus: List menu items
    - POST /menus: Add a menu item
    - POST /contacts: Send a contact message
    - POST /reservations: Book a table
    - GET /generateOrderNumber: Reserve the next order number
    - POST /commandes: Place an order
    - GET /commandes: List today's orders
    - GET /health: System health check
"""

import asyncio
import logging
from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import redis

from app.core.config import SchedulerMode, get_settings, setup_logging
from app.core.exceptions import ServiceError, StorageUnavailable
from app.database import init_db, engine
from app.models import ORDER_NUMBER_SORT, Contact, MenuItem, Order, Reservation
from app.schemas import (
    ContactCreate,
    ContactResponse,
    ErrorResponse,
    HealthResponse,
    MenuItemCreate,
    MenuItemResponse,
    OrderConfirmation,
    OrderCreate,
    OrderListResponse,
    OrderNumberResponse,
    OrderResponse,
    ReservationCreate,
    ReservationResponse,
)
from app.services.ordering import (
    OrderIntakeService,
    OrderNumberGenerator,
    get_intake_service,
    get_order_number_generator,
    get_reset_scheduler,
)
from app.services.records import RecordStore, get_record_store
from app.services.sequence import get_sequence_store

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}


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
    logger.info(f"   Sequence backend: {settings.sequence_backend.value}")
    logger.info(f"   Daily reset: {settings.reset_time} ({settings.scheduler_mode.value})")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    store = get_sequence_store()
    await store.init()
    logger.info(f"✅ Sequence store ready: {store.backend_name}")

    problems = settings.validate_production_config()
    if problems:
        logger.warning(f"⚠️ Configuration problems: {problems}")

    scheduler = None
    if settings.scheduler_mode == SchedulerMode.EMBEDDED:
        scheduler = get_reset_scheduler()
        scheduler.start()

    logger.info("✅ Application ready!")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    if scheduler is not None:
        await scheduler.stop()
    await store.close()
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Restaurant backend: menu, contacts, reservations and table orders.",
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials="*" not in origins,
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


def _ping_redis() -> None:
    client = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
    try:
        client.ping()
    finally:
        client.close()


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    records: RecordStore = Depends(get_record_store),
) -> HealthResponse:
    """Verify all system components are operational."""
    db_status = "healthy" if await records.health_check() else "unhealthy"

    store = get_sequence_store()
    last_issued = None
    try:
        last_issued = await store.read()
        sequence_status = "healthy"
    except StorageUnavailable as e:
        sequence_status = f"unhealthy: {e.message}"

    redis_status = None
    next_reset_at = None
    if settings.scheduler_mode == SchedulerMode.CELERY:
        scheduler_status = "celery"
        try:
            await asyncio.to_thread(_ping_redis)
            redis_status = "healthy"
        except redis.RedisError as e:
            redis_status = f"unhealthy: {str(e)}"
            logger.error(f"Redis health check failed: {e}")
    elif settings.scheduler_mode == SchedulerMode.EMBEDDED:
        scheduler = get_reset_scheduler()
        scheduler_status = "running" if scheduler.running else "stopped"
        next_reset_at = scheduler.next_run()
    else:
        scheduler_status = "disabled"

    checks = [db_status, sequence_status] + ([redis_status] if redis_status else [])
    overall = "operational" if all(s == "healthy" for s in checks) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        sequence_store=sequence_status,
        scheduler=scheduler_status,
        redis=redis_status,
        last_issued=last_issued,
        next_reset_at=next_reset_at,
        timestamp=datetime.now(),
    )


# =============================================================================
# MENU ENDPOINTS
# =============================================================================

@app.get(
    "/menus",
    response_model=list[MenuItemResponse],
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def list_menus(
    records: RecordStore = Depends(get_record_store),
) -> list[MenuItemResponse]:
    """List every menu item."""
    items = await records.list(MenuItem, order_by=(MenuItem.name,))
    return [MenuItemResponse.model_validate(item) for item in items]


@app.post(
    "/menus",
    response_model=MenuItemResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def create_menu_item(
    item: MenuItemCreate,
    records: RecordStore = Depends(get_record_store),
) -> MenuItemResponse:
    """Add an item to the menu."""
    menu_item = await records.create(MenuItem(**item.model_dump()))
    logger.info(f"Menu item added: {menu_item.name}")
    return MenuItemResponse.model_validate(menu_item)


# =============================================================================
# CONTACT & RESERVATION ENDPOINTS
# =============================================================================

@app.post(
    "/contacts",
    response_model=ContactResponse,
    responses=ERROR_RESPONSES,
    tags=["Contacts"],
)
async def create_contact(
    contact_data: ContactCreate,
    records: RecordStore = Depends(get_record_store),
) -> ContactResponse:
    """Store a message from the contact form."""
    contact = await records.create(Contact(**contact_data.model_dump()))
    logger.info(f"Contact message {contact.id} received from {contact.email}")
    return ContactResponse(message="Message sent successfully.", contact_id=contact.id)


@app.post(
    "/reservations",
    response_model=ReservationResponse,
    responses=ERROR_RESPONSES,
    tags=["Reservations"],
)
async def create_reservation(
    reservation_data: ReservationCreate,
    records: RecordStore = Depends(get_record_store),
) -> ReservationResponse:
    """Book a table."""
    reservation = await records.create(Reservation(**reservation_data.model_dump()))
    logger.info(
        f"Reservation {reservation.id}: {reservation.guests} guest(s) "
        f"at {reservation.date_time.isoformat()}"
    )
    return ReservationResponse(
        message="Reservation made successfully.",
        reservation_id=reservation.id,
    )


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.get(
    "/generateOrderNumber",
    response_model=OrderNumberResponse,
    responses={500: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Reserve the next order number",
)
async def generate_order_number(
    generator: OrderNumberGenerator = Depends(get_order_number_generator),
) -> OrderNumberResponse:
    """
    Issue the next order number without creating an order.

    The number can be sent back as ``orderNumber`` in POST /commandes.
    """
    order_number = await generator.issue_next()
    return OrderNumberResponse(order_number=order_number)


@app.post(
    "/commandes",
    response_model=OrderConfirmation,
    status_code=201,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Place an order",
)
async def create_order(
    order_data: OrderCreate,
    intake: OrderIntakeService = Depends(get_intake_service),
) -> OrderConfirmation:
    """Place an order and return its order number."""
    return await intake.submit(order_data)


@app.get(
    "/commandes",
    response_model=OrderListResponse,
    responses={500: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="List today's orders",
)
async def list_orders(
    records: RecordStore = Depends(get_record_store),
) -> OrderListResponse:
    """Orders placed since the last daily reset."""
    orders = await records.list(Order, order_by=ORDER_NUMBER_SORT)
    return OrderListResponse(
        total=len(orders),
        orders=[OrderResponse.model_validate(order) for order in orders],
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(ServiceError)
async def service_exception_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Convert service exceptions to the standard error body."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.error_code, detail=exc.message).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Missing or invalid request fields are a 400, not FastAPI's 422."""
    fields = [
        ".".join(str(loc) for loc in error.get("loc", ()) if loc != "body")
        for error in exc.errors()
    ]
    content = ErrorResponse(
        error="validation_error",
        detail=f"Missing or invalid fields: {', '.join(f for f in fields if f) or 'body'}",
    ).model_dump()
    content["errors"] = jsonable_encoder([
        {"loc": error.get("loc"), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ])
    return JSONResponse(status_code=400, content=content)


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
