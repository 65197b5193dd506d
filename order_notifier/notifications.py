"""
Customer notifications for an accepted order.

Every order gets three messages ("legs"):
- receipt: sent while the order request is being handled
- confirmation: sent after a short delay
- delivery: sent after a longer delay

The two delayed legs run as independent asyncio tasks. A failure in one leg
is logged and counted, never retried, and never reaches the request that
created the order or the other leg. Pending legs live only in memory and are
lost if the process stops before they fire.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from starlette.concurrency import run_in_threadpool

from order_notifier.messaging import MessagingSession
from order_notifier.metrics import record_notification

logger = logging.getLogger(__name__)

CONFIRMATION_MESSAGE = (
    "✅ PEDIDO CONFIRMADO! 🚀\n"
    "Sua explosão de sabores está INDO PARA CHAPA🔥️!!! 😋️🍔\n\n"
    "⏱ *Tempo estimado:* 40-50 minutos\n"
    "📱 *Acompanharemos seu pedido e avisaremos quando sair para entrega!"
)

DELIVERY_MESSAGE = (
    "🛵 *😋️OIEEE!!! SEU PEDIDO ESTÁ A CAMINHO!* 🔔\n"
    "Deve chegar em 10 a 15 minutinhos!\n\n"
    "_Se já recebeu, por favor ignore esta mensagem._"
)


class Leg(str, Enum):
    RECEIPT = "receipt"
    CONFIRMATION = "confirmation"
    DELIVERY = "delivery"


class NotificationScheduler:
    """
    Sends the receipt and owns the delayed follow-up tasks.

    Args:
        messaging: Capability used to deliver text messages
        confirmation_delay: Seconds between acceptance and the confirmation leg
        delivery_delay: Seconds between acceptance and the delivery leg
        on_sent: Called with (order_id, leg) after a follow-up is delivered,
            from a threadpool worker
    """

    def __init__(
        self,
        messaging: MessagingSession,
        confirmation_delay: float = 30.0,
        delivery_delay: float = 30 * 60.0,
        on_sent: Optional[Callable[[int, str], None]] = None,
    ):
        self.messaging = messaging
        self.confirmation_delay = confirmation_delay
        self.delivery_delay = delivery_delay
        self.on_sent = on_sent
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    async def send_receipt(self, order_id: int, address: str, text: str) -> bool:
        """Send the receipt now. Returns False on failure instead of raising."""
        return await self._send(Leg.RECEIPT, order_id, address, text)

    def schedule_follow_ups(self, order_id: int, address: str) -> None:
        """Register the confirmation and delivery legs. Must run inside the event loop."""
        self._schedule(Leg.CONFIRMATION, order_id, address, CONFIRMATION_MESSAGE, self.confirmation_delay)
        self._schedule(Leg.DELIVERY, order_id, address, DELIVERY_MESSAGE, self.delivery_delay)
        logger.info(
            f"Follow-ups scheduled for order #{order_id}",
            extra={
                "order_id": order_id,
                "confirmation_delay": self.confirmation_delay,
                "delivery_delay": self.delivery_delay,
            },
        )

    async def wait_idle(self) -> None:
        """Wait until every scheduled leg has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel legs that have not fired yet; they are not persisted anywhere."""
        pending = list(self._tasks)
        if not pending:
            return
        logger.warning(f"Dropping {len(pending)} pending notification(s) on shutdown")
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    def _schedule(self, leg: Leg, order_id: int, address: str, text: str, delay: float) -> None:
        task = asyncio.get_running_loop().create_task(
            self._run_leg(leg, order_id, address, text, delay),
            name=f"order-{order_id}-{leg.value}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_leg(self, leg: Leg, order_id: int, address: str, text: str, delay: float) -> None:
        await asyncio.sleep(delay)
        if not await self._send(leg, order_id, address, text):
            return
        if self.on_sent is None:
            return
        try:
            await run_in_threadpool(self.on_sent, order_id, leg.value)
        except Exception as e:
            logger.error(
                f"Failed to record {leg.value} notification for order #{order_id}: {e}",
                extra={"order_id": order_id, "leg": leg.value},
            )

    async def _send(self, leg: Leg, order_id: int, address: str, text: str) -> bool:
        try:
            await self.messaging.send_message(address, text)
        except Exception as e:
            logger.error(
                f"Failed to send {leg.value} message for order #{order_id}: {e}",
                extra={"order_id": order_id, "leg": leg.value},
            )
            record_notification(leg.value, sent=False)
            return False

        logger.info(
            f"{leg.value.capitalize()} message for order #{order_id} sent to {address}",
            extra={"order_id": order_id, "leg": leg.value},
        )
        record_notification(leg.value, sent=True)
        return True
