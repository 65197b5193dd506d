"""
Readiness of the external messaging session.

The gateway reports lifecycle events (QR challenge, authenticated, ready,
auth failure, disconnected). A single SessionGate instance owns the resulting
state; the event handler is its only writer and the order flow reads it
before anything that needs to message a customer.
"""

import logging
from enum import Enum
from typing import Optional
from urllib.parse import quote

from order_notifier.errors import SessionUnavailableError
from order_notifier.metrics import record_session_event
from order_notifier.schemas import SessionEventType

logger = logging.getLogger(__name__)

QR_IMAGE_URL = "https://api.qrserver.com/v1/create-qr-code/?size=250x250&data={payload}"


class SessionState(str, Enum):
    INITIALIZING = "initializing"
    READY = "ready"
    DISCONNECTED = "disconnected"


class SessionGate:
    """Current messaging session state plus the check that guards order creation."""

    def __init__(self) -> None:
        self._state = SessionState.INITIALIZING
        self.last_qr: Optional[str] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is SessionState.READY

    def ensure_ready(self) -> None:
        """
        Raises:
            SessionUnavailableError: the session is not ready to send messages
        """
        if not self.is_ready:
            logger.warning(f"Rejecting request, messaging session is {self._state.value}")
            raise SessionUnavailableError()

    def handle_event(self, event: SessionEventType, data: Optional[str] = None) -> SessionState:
        """Apply a lifecycle event and return the resulting state."""
        record_session_event(event.value)

        if event is SessionEventType.QR:
            self.last_qr = data
            logger.info("QR code issued, scan it to pair the messaging session")
            if data:
                logger.info(f"QR code image: {QR_IMAGE_URL.format(payload=quote(data, safe=''))}")
        elif event is SessionEventType.AUTHENTICATED:
            logger.info("Messaging session authenticated")
        elif event is SessionEventType.READY:
            self._state = SessionState.READY
            self.last_qr = None
            logger.info("Messaging session connected and ready")
        elif event is SessionEventType.AUTH_FAILURE:
            self._state = SessionState.DISCONNECTED
            logger.error(f"Messaging session authentication failed: {data}")
        elif event is SessionEventType.DISCONNECTED:
            self._state = SessionState.DISCONNECTED
            logger.error(f"Messaging session disconnected: {data}")

        return self._state
