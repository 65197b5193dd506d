"""
Order lifecycle orchestration.

OrderOrchestrator sequences a single order creation:

    session check -> validation -> phone normalization -> customer upsert +
    order insert (one transaction) -> receipt -> follow-up scheduling

It also serves customer identification and order history, which do not
depend on the messaging session being ready.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

import pydantic
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from order_notifier.config import Settings
from order_notifier.errors import OrderServiceError, ValidationError
from order_notifier.messaging import GatewayMessagingClient, MessagingSession
from order_notifier.metrics import record_order_outcome
from order_notifier.notifications import NotificationScheduler
from order_notifier.phone import messaging_address, normalize_phone, storage_key
from order_notifier.receipt import compute_totals, render_receipt
from order_notifier.schemas import OrderRequest
from order_notifier.session import SessionGate
from order_notifier.storage import (
    SessionLocal,
    active_connections,
    fetch_customer,
    fetch_order_history,
    mark_notification_sent,
    save_order,
)

logger = logging.getLogger(__name__)


def record_follow_up_sent(order_id: int, leg: str) -> None:
    """Persist the sent flag for a delivered follow-up leg."""
    with SessionLocal() as db:
        mark_notification_sent(db, order_id, leg)


def _order_payload(order: OrderRequest, phone: str, delivery_fee: Decimal) -> dict:
    totals = compute_totals(order.cart, delivery_fee)
    customer = order.customer
    return {
        "customer": {
            "phone": phone,
            "display_phone": customer.phone,
            "name": customer.name,
            "address": customer.address,
            "reference": customer.reference,
        },
        "cart": [
            {
                "name": item.name,
                "price": float(item.price),
                "quantity": item.quantity,
                "observation": item.observation,
            }
            for item in order.cart
        ],
        "payment_method": order.payment_method,
        "cash_tendered": float(order.cash_tendered) if order.cash_tendered is not None else None,
        "subtotal": float(totals.subtotal),
        "delivery_fee": float(totals.delivery_fee),
        "total": float(totals.total),
    }


class OrderOrchestrator:
    """Façade over the session gate, store, receipt and notification scheduler."""

    def __init__(
        self,
        session_gate: SessionGate,
        messaging: MessagingSession,
        scheduler: NotificationScheduler,
        business_name: str = "Doka Burger",
        delivery_fee: Decimal = Decimal("5.00"),
        utc_offset_hours: int = -3,
        address_suffix: str = "@c.us",
        history_limit: int = 20,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_gate = session_gate
        self.messaging = messaging
        self.scheduler = scheduler
        self.business_name = business_name
        self.delivery_fee = delivery_fee
        self.timezone = timezone(timedelta(hours=utc_offset_hours))
        self.address_suffix = address_suffix
        self.history_limit = history_limit
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        """Current time in the business timezone."""
        return self._clock().astimezone(self.timezone)

    @staticmethod
    def _normalize(raw_phone, message: str) -> str:
        canonical = normalize_phone(raw_phone)
        if canonical is None:
            logger.warning(f"Rejected phone number: {raw_phone!r}")
            raise ValidationError(message)
        return canonical

    async def identify_customer(self, db: Session, raw_phone) -> dict:
        """
        Look up a customer by phone.

        When the session is ready the number is also checked against the
        messaging service; an error during that check is logged and ignored.

        Returns:
            {"is_new": bool, "customer": Customer or {"phone": ...}}
        """
        canonical = self._normalize(raw_phone, "Invalid phone number format. Use area code + number.")
        phone = storage_key(canonical)

        if self.session_gate.is_ready:
            address = messaging_address(canonical, self.address_suffix)
            try:
                registered = await self.messaging.is_registered_address(address)
            except Exception as e:
                logger.error(f"Failed to check number on messaging service: {e}")
            else:
                if not registered:
                    raise ValidationError("This number does not appear to be a valid WhatsApp account.")

        customer = await run_in_threadpool(fetch_customer, db, phone)
        if customer is None:
            logger.info(f"New customer, phone validated: {phone}")
            return {"is_new": True, "customer": {"phone": phone}}

        logger.info(f"Customer found: {customer.name}")
        return {"is_new": False, "customer": customer}

    async def create_order(self, db: Session, raw_order) -> int:
        """
        Accept an order and start its notifications.

        The session check runs before anything else, so an unavailable
        session is reported even for an invalid payload.

        Returns:
            The new order id

        Raises:
            SessionUnavailableError: messaging session not ready
            ValidationError: bad phone, empty cart or missing payment method
            StorageError: customer/order could not be stored
        """
        try:
            order_id = await self._create_order(db, raw_order)
        except OrderServiceError as e:
            record_order_outcome(e.code)
            raise
        record_order_outcome("created")
        return order_id

    async def _create_order(self, db: Session, raw_order) -> int:
        self.session_gate.ensure_ready()

        try:
            order = OrderRequest.model_validate(raw_order)
        except pydantic.ValidationError as e:
            logger.warning(f"Invalid order payload: {e.error_count()} error(s)")
            raise ValidationError("Invalid order data.") from e

        canonical = self._normalize(order.customer.phone, "Invalid customer data (phone).")
        phone = storage_key(canonical)
        address = messaging_address(canonical, self.address_suffix)

        order_id = await run_in_threadpool(
            save_order,
            db,
            phone=phone,
            name=order.customer.name,
            address=order.customer.address,
            reference=order.customer.reference,
            payload=_order_payload(order, phone, self.delivery_fee),
        )

        # The order is stored; notification problems no longer affect the response
        receipt = render_receipt(order, self.now(), self.business_name, self.delivery_fee)
        await self.scheduler.send_receipt(order_id, address, receipt)
        self.scheduler.schedule_follow_ups(order_id, address)
        return order_id

    async def order_history(self, db: Session, raw_phone) -> list[dict]:
        canonical = self._normalize(raw_phone, "Invalid phone number format.")
        return await run_in_threadpool(
            fetch_order_history, db, storage_key(canonical), limit=self.history_limit
        )

    def health(self, uptime_seconds: float) -> dict:
        return {
            "whatsapp": self.session_gate.state.value,
            "database_connections": active_connections(),
            "uptime_seconds": uptime_seconds,
        }


def build_orchestrator(
    settings: Settings,
    messaging: Optional[MessagingSession] = None,
    session_gate: Optional[SessionGate] = None,
) -> OrderOrchestrator:
    """Wire an orchestrator from settings; messaging defaults to the HTTP gateway."""
    if messaging is None:
        messaging = GatewayMessagingClient(
            base_url=settings.WHATSAPP_GATEWAY_URL,
            api_key=settings.WHATSAPP_API_KEY,
            timeout=settings.WHATSAPP_TIMEOUT_SECONDS,
        )
    scheduler = NotificationScheduler(
        messaging,
        confirmation_delay=settings.CONFIRMATION_DELAY_SECONDS,
        delivery_delay=settings.DELIVERY_DELAY_SECONDS,
        on_sent=record_follow_up_sent,
    )
    return OrderOrchestrator(
        session_gate=session_gate or SessionGate(),
        messaging=messaging,
        scheduler=scheduler,
        business_name=settings.BUSINESS_NAME,
        delivery_fee=Decimal(settings.DELIVERY_FEE),
        utc_offset_hours=settings.BUSINESS_UTC_OFFSET_HOURS,
        address_suffix=settings.WHATSAPP_ADDRESS_SUFFIX,
        history_limit=settings.HISTORY_LIMIT,
    )

