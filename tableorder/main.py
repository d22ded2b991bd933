"""
FastAPI Application Entry Point

Table-side QR Ordering - Hybrid Architecture
In-memory notifier and mock checkout in development, Redis pub/sub and
Stripe Checkout in staging/production.

Endpoints:
    - POST /webhook/order-create: Customer places an order from a table
    - POST /webhook/kitchen-update: Kitchen marks items preparing/ready
    - POST /webhook/order-served: Waiter marks items served
    - POST /webhook/generate-bill: Waiter requests a checkout link
    - POST /webhook/stripe-webhook: Payment provider completion events
    - POST /api/orders/{order_id}/close: Cash close-out
    - POST /api/order-items/{order_item_id}/status: Single item status change
    - GET /api/menu, /api/orders, /api/orders/{order_id}, /api/tables/{table_id}/order
    - WS /ws/orders: Live change stream for dashboards
    - GET /health: System health check

Security Notes:
    - Write endpoints check X-Webhook-Secret against a static shared
      string. This is a placeholder control, not authentication; put a
      real authorization service in front before exposing it publicly.

Version: 1.0.0
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tableorder.core.config import Settings, get_settings, setup_logging
from tableorder.core.exceptions import NotFound, OrderingError, Unauthorized
from tableorder.database import dispose_engine, get_db, init_db
from tableorder.models import OrderStatus
from tableorder.schemas import (
    ErrorResponse,
    GenerateBillRequest,
    GenerateBillResponse,
    HealthResponse,
    ItemStatusResponse,
    ItemStatusUpdateRequest,
    KitchenUpdateRequest,
    MenuItemResponse,
    OrderCreateRequest,
    OrderCreateResponse,
    OrderListResponse,
    OrderResponse,
    OrderServedRequest,
    OrderStatusResponse,
)
from tableorder.services import (
    BillingService,
    CartLine,
    ItemChange,
    OrderGateway,
    OrderStore,
    StatusTransitionEngine,
)
from tableorder.services.notifications import BaseChangeNotifier, ChangeEvent, get_change_notifier
from tableorder.services.payment import BasePaymentService, PaymentProviderError, get_payment_service

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("Database initialized")

    notifier = get_change_notifier()
    payment_service = get_payment_service()
    logger.info(f"Change Notifier: {notifier.provider_name}")
    logger.info(f"Payment Service: {payment_service.provider_name}")

    if settings.uses_default_webhook_secret and not settings.is_development:
        logger.warning("WEBHOOK_SECRET is the default demo value; write endpoints are effectively open")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    logger.info("Application ready!")

    yield  # Application runs

    logger.info("Shutting down...")
    await notifier.close()
    await dispose_engine()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "QR table ordering with a kitchen/waiter status lifecycle, "
        "optimistic concurrency and a live change stream."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def require_webhook_secret(
    x_webhook_secret: Optional[str] = Header(None, alias="X-Webhook-Secret"),
    settings: Settings = Depends(get_settings),
) -> None:
    """Exact match against the configured shared secret (weak control)."""
    if x_webhook_secret != settings.webhook_secret:
        raise Unauthorized()


def get_gateway(
    db: AsyncSession = Depends(get_db),
    notifier: BaseChangeNotifier = Depends(get_change_notifier),
) -> OrderGateway:
    return OrderGateway(db, notifier)


def get_transition_engine(
    db: AsyncSession = Depends(get_db),
    notifier: BaseChangeNotifier = Depends(get_change_notifier),
) -> StatusTransitionEngine:
    return StatusTransitionEngine(db, notifier)


def get_billing_service(
    db: AsyncSession = Depends(get_db),
    notifier: BaseChangeNotifier = Depends(get_change_notifier),
    payment_service: BasePaymentService = Depends(get_payment_service),
) -> BillingService:
    return BillingService(db, notifier, payment_service)


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
    db: AsyncSession = Depends(get_db),
    notifier: BaseChangeNotifier = Depends(get_change_notifier),
    payment_service: BasePaymentService = Depends(get_payment_service),
) -> HealthResponse:
    """Verify all system components are operational."""

    db_status = "healthy"
    try:
        await db.execute(select(1))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    notifier_status = "healthy" if await notifier.health_check() else "unhealthy"
    payment_status = "healthy" if await payment_service.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, notifier_status, payment_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        notifier=notifier_status,
        payment_service=payment_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# ORDERING WEBHOOKS
# =============================================================================

@app.post(
    "/webhook/order-create",
    response_model=OrderCreateResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
    dependencies=[Depends(require_webhook_secret)],
    tags=["Orders"],
    summary="Create Order From Table",
)
async def create_order(
    payload: OrderCreateRequest,
    gateway: OrderGateway = Depends(get_gateway),
) -> OrderCreateResponse:
    """
    Validate the table token and cart, then create the order atomically.

    Prices come from the menu catalog; client-sent prices are ignored.
    """
    logger.info(f"Order request from table {payload.table_id} ({len(payload.items)} lines)")
    order_id = await gateway.submit(
        payload.table_id,
        payload.token,
        [CartLine(line.menu_item_id, line.quantity, line.name) for line in payload.items],
    )
    return OrderCreateResponse(order_id=order_id)


@app.post(
    "/webhook/kitchen-update",
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    dependencies=[Depends(require_webhook_secret)],
    tags=["Kitchen"],
    summary="Kitchen Item Status Update",
)
async def kitchen_update(
    payload: KitchenUpdateRequest,
    engine: StatusTransitionEngine = Depends(get_transition_engine),
) -> Response:
    """Mark items of one order preparing or ready. Empty 200 on success."""
    await engine.apply_kitchen_updates(
        payload.order_id,
        [
            ItemChange(update.order_item_id, update.status, update.expected_status)
            for update in payload.updates
        ],
    )
    return Response(status_code=200)


@app.post(
    "/webhook/order-served",
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    dependencies=[Depends(require_webhook_secret)],
    tags=["Waiter"],
    summary="Mark Items Served",
)
async def order_served(
    payload: OrderServedRequest,
    engine: StatusTransitionEngine = Depends(get_transition_engine),
) -> Response:
    """Mark the listed items served; the order is recomputed once."""
    if payload.timestamp:
        logger.debug(f"Order {payload.order_id} served at {payload.timestamp.isoformat()} (client time)")
    await engine.mark_served(payload.order_id, payload.served_items)
    return Response(status_code=200)


@app.post(
    "/webhook/generate-bill",
    response_model=GenerateBillResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    dependencies=[Depends(require_webhook_secret)],
    tags=["Billing"],
    summary="Generate Bill",
)
async def generate_bill(
    payload: GenerateBillRequest,
    billing: BillingService = Depends(get_billing_service),
) -> GenerateBillResponse:
    """Create a hosted checkout for a served order."""
    checkout_url = await billing.generate_bill(payload.order_id)
    return GenerateBillResponse(checkout_url=checkout_url)


@app.post(
    "/webhook/stripe-webhook",
    responses={400: {"model": ErrorResponse}},
    tags=["Billing"],
    summary="Payment Provider Webhook",
)
async def stripe_webhook(
    request: Request,
    billing: BillingService = Depends(get_billing_service),
    payment_service: BasePaymentService = Depends(get_payment_service),
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
) -> dict[str, Any]:
    """
    Handle checkout events from the payment provider.

    Authenticated by the provider's signature rather than the shared
    secret, since the provider cannot send custom headers.
    """
    body = await request.body()
    event = await payment_service.verify_webhook(body, stripe_signature)
    if event is None:
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="invalid_webhook", message="Webhook could not be verified").model_dump(),
        )

    logger.info(f"Payment webhook received: {event.get('type', 'unknown')}")
    await billing.handle_webhook_event(event)
    return {"received": True}


# =============================================================================
# STAFF API
# =============================================================================

@app.post(
    "/api/orders/{order_id}/close",
    response_model=OrderStatusResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    dependencies=[Depends(require_webhook_secret)],
    tags=["Billing"],
    summary="Close Order (Cash)",
)
async def close_order(
    order_id: str,
    billing: BillingService = Depends(get_billing_service),
) -> OrderStatusResponse:
    status = await billing.close_order(order_id)
    return OrderStatusResponse(order_id=order_id, status=status)


@app.post(
    "/api/order-items/{order_item_id}/status",
    response_model=ItemStatusResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    dependencies=[Depends(require_webhook_secret)],
    tags=["Kitchen"],
    summary="Set One Item's Status",
)
async def set_item_status(
    order_item_id: str,
    payload: ItemStatusUpdateRequest,
    engine: StatusTransitionEngine = Depends(get_transition_engine),
) -> ItemStatusResponse:
    order_status = await engine.apply_item_status(
        order_item_id, payload.status, payload.expected_status
    )
    return ItemStatusResponse(order_status=order_status)


# =============================================================================
# READ API
# =============================================================================

@app.get(
    "/api/menu",
    response_model=List[MenuItemResponse],
    tags=["Menu"],
)
async def list_menu(db: AsyncSession = Depends(get_db)) -> List[MenuItemResponse]:
    """Available menu items, grouped by category."""
    items = await OrderStore(db).list_menu()
    return [MenuItemResponse.model_validate(item) for item in items]


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    status: Optional[List[OrderStatus]] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    """Orders with their items, newest first. Dashboards call this on start."""
    orders = await OrderStore(db).list_orders(status, limit=limit)
    return OrderListResponse(
        total=len(orders),
        orders=[OrderResponse.model_validate(order) for order in orders],
    )


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """Get a specific order by ID."""
    order = await OrderStore(db).require_order(order_id)
    return OrderResponse.model_validate(order)


@app.get(
    "/api/tables/{table_id}/order",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_table_order(
    table_id: str,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """The newest order at a table that has not been settled yet."""
    order = await OrderStore(db).active_order_for_table(table_id)
    if order is None:
        raise NotFound(f"No open order for table {table_id}")
    return OrderResponse.model_validate(order)


# =============================================================================
# LIVE CHANGE STREAM
# =============================================================================

@app.websocket("/ws/orders")
async def order_stream(
    websocket: WebSocket,
    notifier: BaseChangeNotifier = Depends(get_change_notifier),
) -> None:
    """
    Push every order / order-item change to a dashboard.

    No replay: the dashboard loads /api/orders first, then applies deltas.
    """
    accepted = asyncio.Event()

    async def forward(event: ChangeEvent) -> None:
        await accepted.wait()
        await websocket.send_json(event.to_dict())

    # Subscribed before the handshake completes: every change committed
    # after the client sees the connection open is delivered
    subscription = notifier.subscribe(forward)
    try:
        await websocket.accept()
        accepted.set()
        logger.info(f"Dashboard connected (subscriber {subscription.subscription_id})")
        while True:
            # Dashboards may send keep-alive pings; content is ignored
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        subscription.unsubscribe()
        logger.info(f"Dashboard disconnected (subscriber {subscription.subscription_id})")


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderingError)
async def ordering_error_handler(request: Request, exc: OrderingError) -> JSONResponse:
    """Domain errors carry their own status code and message."""
    if exc.status_code >= 409:
        logger.warning(f"{request.url.path}: {exc.error_code} - {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(PaymentProviderError)
async def payment_provider_error_handler(request: Request, exc: PaymentProviderError) -> JSONResponse:
    logger.error(f"Payment provider error: {exc.result.error_code} - {exc}")
    return JSONResponse(
        status_code=502,
        content={
            "success": False,
            "error": exc.result.error_code or "payment_error",
            "message": str(exc),
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and parameters: 422 with the offending fields named."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    message = "; ".join(problems) or "Invalid request"
    logger.warning(f"{request.url.path}: invalid request - {message}")
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": "invalid_request", "message": message},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": "http_error", "message": str(exc.detail)},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "internal_error",
            "message": str(exc) if settings.debug else "Something went wrong, please try again",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
