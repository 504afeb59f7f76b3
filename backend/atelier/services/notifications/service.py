"""
Order notification service.

Turns order lifecycle events into rendered customer and operator messages
and hands them to the dispatcher in background tasks. Emission never
blocks the caller and a delivery failure never reaches it: the state
change that triggered the event has already been committed.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from atelier.core.config import Settings, get_settings
from atelier.core.logging import get_logger
from atelier.database.models.order import Order
from atelier.database.models.revision import Revision
from atelier.services.notifications.dispatcher import NotificationDispatcher
from atelier.services.notifications.templates import TemplateEngine, TemplateRenderError
from atelier.services.orders.enums import OrderStatus, RevisionStatus

logger = get_logger(__name__)

CUSTOMER = "customer"
OPERATOR = "operator"


class NotificationKind(str, Enum):
    ORDER_RECEIVED = "order_received"
    QUOTE_ISSUED = "quote_issued"
    DEPOSIT_CONFIRMED = "deposit_confirmed"
    STATUS_CHANGED = "status_changed"
    REVISION_REQUESTED = "revision_requested"
    REVISION_APPROVED = "revision_approved"
    REVISION_REJECTED = "revision_rejected"
    REVISION_FEE_PAID = "revision_fee_paid"


# Audience and template per event kind. STATUS_CHANGED picks its customer
# template from the new status.
ROUTES: dict[NotificationKind, tuple[tuple[str, Optional[str]], ...]] = {
    NotificationKind.ORDER_RECEIVED: ((CUSTOMER, "order_received"), (OPERATOR, "new_order")),
    NotificationKind.QUOTE_ISSUED: ((CUSTOMER, "order_quote"),),
    NotificationKind.DEPOSIT_CONFIRMED: ((CUSTOMER, "deposit_confirmed"),),
    NotificationKind.STATUS_CHANGED: ((CUSTOMER, None),),
    NotificationKind.REVISION_REQUESTED: (
        (CUSTOMER, "revision_submitted"),
        (OPERATOR, "new_revision"),
    ),
    NotificationKind.REVISION_APPROVED: ((CUSTOMER, "revision_approved"),),
    NotificationKind.REVISION_REJECTED: ((CUSTOMER, "revision_rejected"),),
    NotificationKind.REVISION_FEE_PAID: ((CUSTOMER, "revision_fee_paid"),),
}

STATUS_TEMPLATES = {
    OrderStatus.READY: "order_ready",
    OrderStatus.DELIVERED: "order_delivered",
}


@dataclass
class NotificationEvent:
    """Snapshot of an order event, taken when the event is emitted."""

    kind: NotificationKind
    order_id: str
    customer_ref: str
    context: dict[str, Any] = field(default_factory=dict)


def build_context(
    order: Order,
    revision: Optional[Revision],
    settings: Settings,
) -> dict[str, Any]:
    """Template variables for an order, and a revision when given."""
    profile = order.client_profile or {}
    multiplier = Decimal(order.rush_multiplier or 1)
    context: dict[str, Any] = {
        "order_id": str(order.id),
        "full_name": profile.get("full_name", ""),
        "order_type": order.order_type,
        "occasion": order.occasion,
        "delivery_date": order.preferred_delivery_date,
        "status": order.status,
        "total_price": order.total_price,
        "deposit_amount": order.deposit_amount,
        "balance_due": order.balance_due,
        "rush_fee": max(order.total_price - order.base_price, Decimal("0")),
        "rush_percent": int(((multiplier - 1) * 100).to_integral_value()),
        "currency_code": settings.currency_code,
        "admin_url": settings.admin_url.rstrip("/"),
    }
    if revision is not None:
        context.update(
            revision_id=str(revision.id),
            revision_number=revision.revision_number,
            revision_fee=revision.revision_fee,
            is_free=revision.is_free,
            reason=(
                revision.admin_notes
                if revision.status == RevisionStatus.REJECTED
                else revision.revision_reason
            ),
        )
    return context


class OrderNotifier:
    """
    Renders lifecycle events and delivers them in the background.

    Delivery tasks are tracked so shutdown can wait for in-flight
    messages with ``drain()``.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        templates: Optional[TemplateEngine] = None,
        settings: Optional[Settings] = None,
    ):
        self.dispatcher = dispatcher
        self.templates = templates or TemplateEngine()
        self.settings = settings or get_settings()
        self._pending: set[asyncio.Task] = set()

    def emit(
        self,
        kind: NotificationKind,
        order: Order,
        revision: Optional[Revision] = None,
    ) -> NotificationEvent:
        """
        Render and schedule delivery of one event.

        Must be called from a running event loop. Rendering failures are
        logged and the event is dropped.
        """
        event = NotificationEvent(
            kind=kind,
            order_id=str(order.id),
            customer_ref=order.customer_ref,
            context=build_context(order, revision, self.settings),
        )

        try:
            messages = self.render(event)
        except TemplateRenderError as e:
            logger.error(
                "Notification dropped, rendering failed",
                kind=kind.value,
                order_id=event.order_id,
                error=str(e),
                **e.context,
            )
            return event

        task = asyncio.create_task(self._deliver(event, messages))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        logger.debug(
            "Notification scheduled",
            kind=kind.value,
            order_id=event.order_id,
            audiences=[audience for audience, _ in messages],
        )
        return event

    def render(self, event: NotificationEvent) -> list[tuple[str, str]]:
        """Render every message of an event as (audience, text) pairs."""
        messages = []
        for audience, template_name in ROUTES[event.kind]:
            if template_name is None:
                template_name = STATUS_TEMPLATES.get(event.context["status"], "status_update")
            messages.append(
                (audience, self.templates.render(audience, template_name, event.context))
            )
        return messages

    async def _deliver(self, event: NotificationEvent, messages: list[tuple[str, str]]) -> None:
        for audience, text in messages:
            try:
                if audience == CUSTOMER:
                    await self.dispatcher.notify_customer(event.customer_ref, text)
                else:
                    await self.dispatcher.notify_operators(text)
            except Exception as e:
                # Don't raise - notification failure must not affect the order
                logger.error(
                    "Notification delivery failed",
                    kind=event.kind.value,
                    order_id=event.order_id,
                    audience=audience,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
