"""
Messaging capability used to reach customers.

The service talks to a WhatsApp HTTP gateway that owns the actual session
(pairing, authentication, transport). Only two calls are needed here: check
whether an address is a real messaging account, and send a text message.
"""

import logging
from typing import Protocol

import httpx

from order_notifier.errors import NotificationSendError

logger = logging.getLogger(__name__)


class MessagingSession(Protocol):
    async def is_registered_address(self, address: str) -> bool:
        ...

    async def send_message(self, address: str, text: str) -> None:
        """Deliver a text message. Raises NotificationSendError on failure."""
        ...


class GatewayMessagingClient:
    """MessagingSession backed by the WhatsApp HTTP gateway."""

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def is_registered_address(self, address: str) -> bool:
        """
        Ask the gateway whether the address belongs to a messaging account.

        Raises:
            httpx.HTTPError: gateway unreachable or returned an error status
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                f"{self.base_url}/contact/registered",
                params={"address": address},
                headers=self._headers(),
            )
            response.raise_for_status()
            return bool(response.json().get("registered"))

    async def send_message(self, address: str, text: str) -> None:
        logger.debug(f"Sending message to {address} ({len(text)} chars)")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/message/send",
                    json={"to": address, "message": text},
                    headers=self._headers(),
                )
        except httpx.RequestError as e:
            raise NotificationSendError(f"Could not reach messaging gateway: {e}") from e

        if response.status_code != 200:
            raise NotificationSendError(
                f"Failed to send message (HTTP {response.status_code}): {response.text}"
            )
