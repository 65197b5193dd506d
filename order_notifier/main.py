import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from order_notifier.config import settings
from order_notifier.errors import OrderServiceError
from order_notifier.logging_utils import setup_logging, RequestLoggingMiddleware, log_order_data
from order_notifier.metrics import get_metrics, get_metrics_content_type
from order_notifier.orders import OrderOrchestrator, build_orchestrator
from order_notifier.rate_limit import enforce_rate_limit
from order_notifier.security import SecurityHeadersMiddleware
from order_notifier.storage import init_db, check_db_health, get_db
from order_notifier.utils import verify_hmac_signature
from order_notifier.schemas import (
    CustomerResponse,
    ErrorResponse,
    HealthResponse,
    HistoryEntry,
    IdentifyRequest,
    IdentifyResponse,
    OrderCreatedResponse,
    ProbeResponse,
    SessionEvent,
    WebhookResponse,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: create tables, wire the orchestrator
    - Shutdown: drop follow-up notifications that have not fired yet
    """
    init_db()
    app.state.started_at = time.monotonic()
    app.state.orchestrator = build_orchestrator(settings)
    logger.info("Order service started")
    yield
    await app.state.orchestrator.scheduler.shutdown()


app = FastAPI(
    title="Order Notifier API",
    description="Takes delivery orders and keeps the customer posted over WhatsApp",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware, content_security_policy=settings.CONTENT_SECURITY_POLICY)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


def get_orchestrator(request: Request) -> OrderOrchestrator:
    return request.app.state.orchestrator


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message).model_dump(),
    )


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(OrderServiceError)
async def order_service_error_handler(request: Request, exc: OrderServiceError) -> JSONResponse:
    return _error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """API clients get a 400 with the standard error body; webhooks keep 422."""
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
    if request.url.path.startswith("/api/"):
        return _error_response(status.HTTP_400_BAD_REQUEST, "Invalid request data.")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors()},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if request.url.path.startswith("/api/"):
        return _error_response(exc.status_code, str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error: {exc}")
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected server error occurred.")


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health", response_model=HealthResponse)
async def health(
    request: Request,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
) -> HealthResponse:
    """Messaging session state, checked-out storage connections and process uptime."""
    uptime = time.monotonic() - request.app.state.started_at
    return HealthResponse(**orchestrator.health(uptime_seconds=round(uptime, 3)))


@app.get("/health/live", response_model=ProbeResponse)
async def health_live() -> ProbeResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return ProbeResponse(status="ok")


@app.get("/health/ready", response_model=ProbeResponse)
async def health_ready(
    response: Response,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
) -> ProbeResponse:
    """
    Readiness probe - returns 200 only if:
    1. DB is reachable and schema is applied
    2. The messaging session is ready

    Otherwise returns 503 (Service Unavailable).
    """
    if not await run_in_threadpool(check_db_health):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ProbeResponse(status="not_ready", reason="Database not reachable or schema not applied")

    if not orchestrator.session_gate.is_ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ProbeResponse(
            status="not_ready",
            reason=f"Messaging session is {orchestrator.session_gate.state.value}",
        )

    return ProbeResponse(status="ready")


# =============================================================================
# Order API Routes
# =============================================================================

api = APIRouter(prefix="/api", dependencies=[Depends(enforce_rate_limit)])


@api.post(
    "/customers/identify",
    response_model=IdentifyResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def identify_customer(
    body: IdentifyRequest,
    db: Session = Depends(get_db),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
) -> IdentifyResponse:
    """
    Identify a customer by phone. Returns the stored customer, or only the
    normalized phone when the number has never ordered.
    """
    result = await orchestrator.identify_customer(db, body.phone)
    return IdentifyResponse(
        is_new=result["is_new"],
        customer=CustomerResponse.model_validate(result["customer"]),
    )


@api.post(
    "/orders",
    response_model=OrderCreatedResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid phone, cart or payment"},
        500: {"model": ErrorResponse, "description": "Storage failure"},
        503: {"model": ErrorResponse, "description": "Messaging session not ready"},
    },
)
async def create_order(
    request: Request,
    db: Session = Depends(get_db),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
) -> OrderCreatedResponse:
    """
    Accept an order: store it, send the receipt and schedule the follow-up
    messages. The response does not wait for the follow-ups.

    The body is parsed here rather than by FastAPI so the session check can
    reject the request before the payload is looked at.
    """
    raw_body = await request.body()
    try:
        raw_order = json.loads(raw_body) if raw_body else None
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON: {e}")
        raw_order = None

    try:
        order_id = await orchestrator.create_order(db, raw_order)
    except OrderServiceError as e:
        log_order_data(request, result=e.code)
        raise

    log_order_data(request, order_id=order_id, result="created")
    return OrderCreatedResponse(order_id=order_id)


@api.get(
    "/orders/history/{phone}",
    response_model=list[HistoryEntry],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def order_history(
    phone: str,
    db: Session = Depends(get_db),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
) -> list[HistoryEntry]:
    """Up to the last 20 orders for the phone, newest first. Empty list when none."""
    history = await orchestrator.order_history(db, phone)
    return [HistoryEntry(**entry) for entry in history]


app.include_router(api)


# =============================================================================
# Messaging Session Webhook
# =============================================================================

@app.post(
    "/webhook/session",
    response_model=WebhookResponse,
    responses={
        401: {"description": "Invalid signature"},
        422: {"description": "Validation error"},
    }
)
async def session_webhook(
    request: Request,
    x_signature: Annotated[str | None, Header(alias="X-Signature")] = None,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
) -> WebhookResponse:
    """
    Lifecycle events from the messaging gateway (qr, authenticated, ready,
    auth_failure, disconnected).

    Headers:
        - X-Signature: hex HMAC-SHA256 of raw body using WEBHOOK_SECRET
    """
    raw_body = await request.body()

    if not x_signature or not verify_hmac_signature(raw_body, x_signature, settings.WEBHOOK_SECRET):
        logger.error("Missing or invalid X-Signature on session event")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid signature"
        )

    try:
        event = SessionEvent.model_validate_json(raw_body)
    except ValueError as e:
        logger.error(f"Invalid session event: {e}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="invalid session event"
        )

    state = orchestrator.session_gate.handle_event(event.event, event.data)
    logger.info(f"Session event {event.event.value} applied, state: {state.value}")
    return WebhookResponse(status="ok")


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
