"""
Pytest configuration and shared fixtures.

Environment variables are set here before any app import so the settings
object and the engine pick up the test database.
"""

import os
import time
from datetime import datetime, timezone

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_orders.db")
os.environ.setdefault("WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

# Clear settings cache before any app imports to ensure test env vars are used
from order_notifier.config import get_settings
get_settings.cache_clear()

from fastapi.testclient import TestClient

from order_notifier.errors import NotificationSendError
from order_notifier.main import app
from order_notifier.notifications import NotificationScheduler
from order_notifier.orders import OrderOrchestrator, record_follow_up_sent
from order_notifier.rate_limit import api_limiter
from order_notifier.schemas import SessionEventType
from order_notifier.session import SessionGate
from order_notifier.storage import Base, SessionLocal, engine

# 2025-01-15 13:30 UTC is 10:30 in the business timezone (UTC-3)
FIXED_NOW = datetime(2025, 1, 15, 13, 30, tzinfo=timezone.utc)


class FakeMessaging:
    """In-memory MessagingSession that records what would have been sent."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.fail_markers: set[str] = set()
        self.registered = True
        self.check_error: Exception | None = None

    async def is_registered_address(self, address: str) -> bool:
        if self.check_error is not None:
            raise self.check_error
        return self.registered

    async def send_message(self, address: str, text: str) -> None:
        if any(marker in text for marker in self.fail_markers):
            raise NotificationSendError(f"gateway refused message to {address}")
        self.sent.append((address, text))


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    """Poll until predicate() is true; follow-up legs run on the app's loop thread."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def wait_for():
    return _wait_for


@pytest.fixture
def tables():
    """Fresh tables for each test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(tables):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def messaging():
    return FakeMessaging()


@pytest.fixture
def session_gate():
    gate = SessionGate()
    gate.handle_event(SessionEventType.READY)
    return gate


@pytest.fixture
def client(tables, messaging, session_gate):
    """Test client whose orchestrator talks to the fake messaging session."""
    api_limiter.reset()
    with TestClient(app) as test_client:
        app.state.orchestrator = OrderOrchestrator(
            session_gate=session_gate,
            messaging=messaging,
            scheduler=NotificationScheduler(
                messaging,
                confirmation_delay=0,
                delivery_delay=0,
                on_sent=record_follow_up_sent,
            ),
            clock=lambda: FIXED_NOW,
        )
        yield test_client


@pytest.fixture
def order_body() -> dict:
    return {
        "customer": {
            "phone": "(11) 98765-4321",
            "name": "Maria Souza",
            "address": "Rua das Flores, 10",
            "reference": "Portão azul",
        },
        "cart": [
            {"name": "X-Burger", "price": 10.0, "quantity": 2, "observation": "Sem cebola"},
        ],
        "payment_method": "Dinheiro",
        "cash_tendered": "30,00",
    }
