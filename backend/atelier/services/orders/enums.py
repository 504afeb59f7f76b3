"""Order, revision and garment enums for the order lifecycle.

Defines the order status set with its conventional progression, the
revision status set with its enforced transition table, and the closed
vocabularies used on intake (order type, occasion, measurement names).
"""

from enum import Enum
from typing import Dict, Optional, Set


class OrderStatus(str, Enum):
    """Order lifecycle status.

    Conventional progression:
    - FORM_SUBMITTED -> BILL_SENT -> PAID -> IN_PROGRESS -> READY -> DELIVERED
    - REVISION_REQUESTED is a side state reachable from any non-terminal
      status and left again through a quote or an explicit status change
    - DELIVERED -> (terminal state)
    """

    FORM_SUBMITTED = "form_submitted"
    BILL_SENT = "bill_sent"
    PAID = "paid"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    DELIVERED = "delivered"
    REVISION_REQUESTED = "revision_requested"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus enum.

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value.lower())
        except ValueError:
            valid_values = ", ".join([s.value for s in cls])
            raise ValueError(
                f"Invalid order status: {value}. "
                f"Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        return self == OrderStatus.DELIVERED

    def is_active(self) -> bool:
        """Check if the order is still being worked on."""
        return self in {
            OrderStatus.FORM_SUBMITTED,
            OrderStatus.BILL_SENT,
            OrderStatus.PAID,
            OrderStatus.IN_PROGRESS,
            OrderStatus.REVISION_REQUESTED,
        }

    @property
    def display_name(self) -> str:
        """Human-readable display name, e.g. ``Bill Sent``."""
        return self.value.replace("_", " ").title()


class RevisionStatus(str, Enum):
    """Revision decision status.

    Valid transitions:
    - PENDING -> APPROVED, REJECTED
    - APPROVED -> APPLIED
    - REJECTED -> (terminal state)
    - APPLIED -> (terminal state)
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    APPLIED = "applied"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class OrderType(str, Enum):
    CUSTOM_EVENT_DRESS = "custom_event_dress"
    SIGNATURE_DRESS = "signature_dress"


class OccasionType(str, Enum):
    WEDDING = "wedding"
    PARTY = "party"
    GRADUATION = "graduation"
    OTHER = "other"


class MeasurementName(str, Enum):
    """Closed set of body measurements recorded for an order, in cm."""

    BUST = "bust"
    WAIST = "waist"
    HIPS = "hips"
    SHOULDER_WIDTH = "shoulder_width"
    DRESS_LENGTH = "dress_length"
    ARM_LENGTH = "arm_length"
    HEIGHT = "height"


# Conventional forward progression; revision_requested may be entered from
# any non-terminal status and may return to any of them.
ORDER_STATUS_PROGRESSION: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.FORM_SUBMITTED: {
        OrderStatus.BILL_SENT,
        OrderStatus.REVISION_REQUESTED,
    },
    OrderStatus.BILL_SENT: {
        OrderStatus.PAID,
        OrderStatus.BILL_SENT,
        OrderStatus.REVISION_REQUESTED,
    },
    OrderStatus.PAID: {
        OrderStatus.IN_PROGRESS,
        OrderStatus.BILL_SENT,
        OrderStatus.REVISION_REQUESTED,
    },
    OrderStatus.IN_PROGRESS: {
        OrderStatus.READY,
        OrderStatus.BILL_SENT,
        OrderStatus.REVISION_REQUESTED,
    },
    OrderStatus.READY: {
        OrderStatus.DELIVERED,
        OrderStatus.BILL_SENT,
        OrderStatus.REVISION_REQUESTED,
    },
    OrderStatus.REVISION_REQUESTED: {
        OrderStatus.FORM_SUBMITTED,
        OrderStatus.BILL_SENT,
        OrderStatus.PAID,
        OrderStatus.IN_PROGRESS,
        OrderStatus.READY,
        OrderStatus.REVISION_REQUESTED,
    },
    OrderStatus.DELIVERED: set(),  # Terminal
}

REVISION_STATUS_TRANSITIONS: Dict[RevisionStatus, Set[RevisionStatus]] = {
    RevisionStatus.PENDING: {
        RevisionStatus.APPROVED,
        RevisionStatus.REJECTED,
    },
    RevisionStatus.APPROVED: {
        RevisionStatus.APPLIED,
    },
    RevisionStatus.REJECTED: set(),  # Terminal
    RevisionStatus.APPLIED: set(),  # Terminal
}


def is_conventional_order_transition(
    current: OrderStatus,
    new: OrderStatus,
) -> bool:
    """Check whether an order status change follows the usual progression."""
    return new in ORDER_STATUS_PROGRESSION.get(current, set())


def validate_revision_status_transition(
    current: RevisionStatus,
    new: RevisionStatus,
) -> bool:
    """Validate if revision status transition is allowed.

    Args:
        current: Current revision status
        new: Desired new status

    Returns:
        True if transition is valid
    """
    return new in REVISION_STATUS_TRANSITIONS.get(current, set())


def get_allowed_revision_transitions(
    current: RevisionStatus,
) -> Set[RevisionStatus]:
    return REVISION_STATUS_TRANSITIONS.get(current, set()).copy()


def next_conventional_status(current: OrderStatus) -> Optional[OrderStatus]:
    """Return the next status on the happy path, if any."""
    happy_path = [
        OrderStatus.FORM_SUBMITTED,
        OrderStatus.BILL_SENT,
        OrderStatus.PAID,
        OrderStatus.IN_PROGRESS,
        OrderStatus.READY,
        OrderStatus.DELIVERED,
    ]
    if current not in happy_path or current == OrderStatus.DELIVERED:
        return None
    return happy_path[happy_path.index(current) + 1]
