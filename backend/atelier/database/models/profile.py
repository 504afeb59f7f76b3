"""
Client profile model: per-customer contact record with a running order
counter.
"""

from typing import Optional

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from atelier.database.base import BaseModel


class ClientProfile(BaseModel):
    """
    Contact details of a customer, keyed by the customer reference.

    Contact fields are overwritten by every submission; ``order_count`` is
    only ever changed by atomic increments or a recount.
    """

    __tablename__ = "client_profiles"

    customer_ref: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    instagram_handle: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    order_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("order_count >= 0", name="ck_client_profiles_order_count"),
    )

    def snapshot(self) -> dict:
        """Contact fields as embedded on an order."""
        return {
            "full_name": self.full_name,
            "phone_number": self.phone_number,
            "city": self.city,
            "instagram_handle": self.instagram_handle,
        }
