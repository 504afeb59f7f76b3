"""
Revision model: append-only snapshots of an order's measurements and
preferences.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from atelier.database.base import AuditedModel
from atelier.services.orders.enums import RevisionStatus


class Revision(AuditedModel):
    """
    Snapshot of an order's measurements and preferences.

    Sequence 0 is the originating snapshot recorded at order creation; it
    is free and approved from the start. Later sequences are customer
    requests carrying a fee of 10% of the order's base price at request
    time. Rows are never deleted.
    """

    __tablename__ = "revisions"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    revision_number: Mapped[int] = mapped_column(Integer, nullable=False)

    measurements: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
        comment="Full merged measurement snapshot",
    )

    inspiration_photo_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    inspiration_storage_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    body_concerns: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    color_preference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    is_free: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    revision_fee: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0"),
    )

    revision_fee_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[RevisionStatus] = mapped_column(
        SQLEnum(
            RevisionStatus,
            name="revision_status",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=RevisionStatus.PENDING,
        index=True,
    )

    revision_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("order_id", "revision_number", name="uq_revisions_order_number"),
        Index("ix_revisions_status_created", "status", "created_at"),
        {"comment": "Append-only order revision snapshots"},
    )

    def __repr__(self) -> str:
        return (
            f"<Revision(id={self.id}, order_id={self.order_id}, "
            f"revision_number={self.revision_number})>"
        )
