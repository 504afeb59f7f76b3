"""
Outbound message delivery to customers and operators.

``NotificationDispatcher`` is the contract the order engine talks to;
``TelegramDispatcher`` implements it over the Telegram Bot API with
HTML parse mode and a bounded retry loop per message.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from atelier.core.config import Settings, get_settings
from atelier.core.exceptions import AtelierError
from atelier.core.logging import get_logger

logger = get_logger(__name__)

WALK_IN_PREFIX = "walkin_"


class NotificationDeliveryError(AtelierError):
    """Raised when a message could not be delivered after all attempts."""

    pass


class NotificationDispatcher(ABC):
    """Delivery contract used by the order notifier."""

    @abstractmethod
    async def notify_customer(self, customer_ref: str, message: str) -> None:
        """Deliver a message to one customer."""

    @abstractmethod
    async def notify_operators(self, message: str) -> None:
        """Deliver a message to every configured operator."""

    async def aclose(self) -> None:
        """Release transport resources."""


class TelegramDispatcher(NotificationDispatcher):
    """
    Telegram Bot API dispatcher.

    Customer references are Telegram chat IDs. Walk-in customers recorded
    by operators have no chat and are skipped. When no bot token is
    configured every send is a logged no-op.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self.token = self.settings.telegram_bot_token
        self.max_retries = self.settings.notification_max_retries
        self.retry_backoff = self.settings.notification_retry_backoff
        self.operator_chat_ids = self.settings.operator_chat_id_list
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=self.settings.telegram_api_base,
            timeout=self.settings.notification_timeout,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.token)

    async def notify_customer(self, customer_ref: str, message: str) -> None:
        if not customer_ref or customer_ref.startswith(WALK_IN_PREFIX):
            logger.debug("Skipping customer without chat", customer_ref=customer_ref)
            return
        await self.send_message(customer_ref, message)

    async def notify_operators(self, message: str) -> None:
        """
        Deliver to every operator chat concurrently.

        Raises:
            NotificationDeliveryError: If any operator chat failed; the
                others are still attempted
        """
        if not self.operator_chat_ids:
            logger.debug("No operator chats configured")
            return

        results = await asyncio.gather(
            *(self.send_message(chat_id, message) for chat_id in self.operator_chat_ids),
            return_exceptions=True,
        )
        failed = [
            chat_id
            for chat_id, result in zip(self.operator_chat_ids, results)
            if isinstance(result, Exception)
        ]
        if failed:
            raise NotificationDeliveryError(
                "Operator notification failed",
                failed_chats=failed,
                total_chats=len(self.operator_chat_ids),
            )

    async def send_message(self, chat_id: str, text: str) -> dict[str, Any]:
        """
        Send one HTML message with retry logic.

        Returns:
            Telegram API result payload, empty when delivery is disabled

        Raises:
            NotificationDeliveryError: If all attempts fail
        """
        if not self.enabled:
            logger.info("Telegram delivery disabled, message dropped", chat_id=chat_id)
            return {}

        url = f"/bot{self.token}/sendMessage"
        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }

        last_exception: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                response = await self.client.post(url, json=payload)
                # Don't retry on unknown chats or blocked bots
                if response.status_code in (400, 403):
                    raise NotificationDeliveryError(
                        "Telegram rejected message",
                        chat_id=chat_id,
                        status_code=response.status_code,
                        description=response.text[:200],
                    )
                response.raise_for_status()
                logger.debug(
                    "Telegram message sent",
                    chat_id=chat_id,
                    attempt=attempt + 1,
                )
                return response.json().get("result", {})

            except NotificationDeliveryError:
                raise
            except (httpx.HTTPStatusError, httpx.TransportError) as e:
                last_exception = e
                logger.warning(
                    "Telegram send attempt failed",
                    chat_id=chat_id,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_backoff * (2**attempt))

        raise NotificationDeliveryError(
            f"Failed to send message after {self.max_retries} attempts",
            chat_id=chat_id,
            last_error=str(last_exception),
        ) from last_exception

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
