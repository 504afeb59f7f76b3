"""
Order status policy.

Operators may set any status on an order; the engine does not block
unusual moves because they are the only way to correct mistakes. Moves
outside the conventional progression are logged so they can be audited.
"""

from dataclasses import dataclass
from typing import Optional

from atelier.core.logging import get_logger
from atelier.services.orders.enums import (
    OrderStatus,
    is_conventional_order_transition,
    next_conventional_status,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class StatusChange:
    previous: OrderStatus
    new: OrderStatus
    conventional: bool

    @property
    def changed(self) -> bool:
        return self.previous != self.new


class OrderStatusPolicy:
    """Classifies and audits order status changes without rejecting them."""

    def evaluate(
        self,
        current: OrderStatus,
        new: OrderStatus,
        order_id: Optional[str] = None,
        actor_ref: Optional[str] = None,
    ) -> StatusChange:
        conventional = current == new or is_conventional_order_transition(current, new)
        if not conventional:
            expected = next_conventional_status(current)
            logger.warning(
                "Unconventional order status change",
                order_id=order_id,
                actor_ref=actor_ref,
                transition=f"{current.value}->{new.value}",
                expected_next=expected.value if expected else None,
            )
        return StatusChange(previous=current, new=new, conventional=conventional)
