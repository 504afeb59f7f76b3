"""
Order model for custom garment orders.

One row per order. The client profile snapshot, measurements and the
revision history references are stored as JSONB on the row itself so an
order can be read without joins.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from atelier.database.base import AuditedModel
from atelier.services.orders.enums import OccasionType, OrderStatus, OrderType
from atelier.services.pricing import calculator

if TYPE_CHECKING:
    from atelier.database.models.catalog import CatalogItem


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Order(AuditedModel):
    """
    Custom garment order.

    Attributes:
        customer_ref: Opaque reference of the ordering customer
        client_profile: Contact snapshot taken at creation time
        status: Current lifecycle status
        rush_multiplier: Pricing multiplier derived from the delivery date
        base_price: Operator-assigned price before the rush multiplier
        total_price: Base price times multiplier plus revision fees
        deposit_amount: Always round(total_price * 0.30)
        history: Revision IDs, oldest first; index 0 is the originating
            snapshot once it has been recorded
        revision_count: Number of requested revisions, snapshot excluded
    """

    __tablename__ = "orders"

    customer_ref: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Opaque customer reference supplied by the gateway",
    )

    client_profile: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
        comment="Contact snapshot at order creation",
    )

    order_type: Mapped[OrderType] = mapped_column(
        SQLEnum(
            OrderType,
            name="order_type",
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    occasion: Mapped[OccasionType] = mapped_column(
        SQLEnum(
            OccasionType,
            name="occasion_type",
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    fabric_preference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    catalog_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("catalog_items.id", ondelete="SET NULL"),
        nullable=True,
        comment="Catalog design the order is based on",
    )

    event_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    preferred_delivery_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    is_rush_order: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    rush_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(precision=3, scale=2),
        nullable=False,
        default=Decimal("1.0"),
    )

    days_until_delivery: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    measurements: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
        comment="Body measurements keyed by measurement name",
    )

    body_concerns: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    color_preference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    inspiration_photo_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    inspiration_storage_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    terms_accepted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    terms_accepted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    revision_policy_accepted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    revision_policy_accepted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(
            OrderStatus,
            name="order_status",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=OrderStatus.FORM_SUBMITTED,
        index=True,
    )

    revision_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    base_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0"),
    )

    total_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0"),
    )

    deposit_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0"),
    )

    deposit_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deposit_paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    final_payment_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    final_payment_paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    history: Mapped[list[str]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
        comment="Revision IDs, oldest first",
    )

    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    catalog_item: Mapped[Optional["CatalogItem"]] = relationship(
        "CatalogItem",
        foreign_keys=[catalog_item_id],
        lazy="noload",
    )

    __table_args__ = (
        Index("ix_orders_customer_created", "customer_ref", "created_at"),
        Index("ix_orders_status_created", "status", "created_at"),
        Index("ix_orders_rush", "is_rush_order"),
        CheckConstraint(
            "rush_multiplier >= 1.0 AND rush_multiplier <= 1.4",
            name="ck_orders_rush_multiplier_range",
        ),
        CheckConstraint("base_price >= 0", name="ck_orders_base_price_non_negative"),
        CheckConstraint("total_price >= 0", name="ck_orders_total_price_non_negative"),
        CheckConstraint("revision_count >= 0", name="ck_orders_revision_count_non_negative"),
        {"comment": "Custom garment orders"},
    )

    @property
    def has_originating_snapshot(self) -> bool:
        return bool(self.history)

    @property
    def balance_due(self) -> Decimal:
        """Outstanding amount: total minus the deposit once it is paid."""
        return calculator.balance_due(self.total_price, self.deposit_amount, self.deposit_paid)

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, customer_ref={self.customer_ref!r}, "
            f"status={self.status.value if self.status else None})>"
        )
