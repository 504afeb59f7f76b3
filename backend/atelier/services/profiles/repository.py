"""
Client profile data access repository.

Contact fields are written with a single ``INSERT ... ON CONFLICT DO
UPDATE`` and the order counter with an atomic ``order_count + 1`` so two
submissions from the same customer never lose an update.
"""

from typing import Any, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.exceptions import AtelierError
from atelier.core.logging import get_logger
from atelier.database.models.order import Order
from atelier.database.models.profile import ClientProfile

logger = get_logger(__name__)

CONTACT_FIELDS = ("full_name", "phone_number", "city", "instagram_handle")


class ProfileRepositoryError(AtelierError):
    """Raised when a profile query or write fails at the database level."""

    pass


class ProfileRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, customer_ref: str, fields: dict[str, Any]) -> ClientProfile:
        """
        Insert a profile or overwrite the contact fields of an existing one.

        ``order_count`` is only set on insert.
        """
        contact = {name: fields.get(name) for name in CONTACT_FIELDS}
        try:
            stmt = (
                insert(ClientProfile)
                .values(customer_ref=customer_ref, order_count=0, **contact)
                .on_conflict_do_update(
                    index_elements=[ClientProfile.customer_ref],
                    set_={**contact, "updated_at": func.now()},
                )
                .returning(ClientProfile)
                .execution_options(populate_existing=True)
            )
            result = await self.session.execute(stmt)
            return result.scalar_one()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to upsert client profile",
                customer_ref=customer_ref,
                error=str(e),
            )
            raise ProfileRepositoryError(
                "Failed to save client profile",
                customer_ref=customer_ref,
                error=str(e),
            ) from e

    async def increment_order_count(self, customer_ref: str) -> int:
        """
        Atomically add one to a profile's order counter.

        Returns:
            Number of rows updated (0 when the profile does not exist)
        """
        try:
            stmt = (
                update(ClientProfile)
                .where(ClientProfile.customer_ref == customer_ref)
                .values(order_count=ClientProfile.order_count + 1)
            )
            result = await self.session.execute(stmt)
            return result.rowcount
        except SQLAlchemyError as e:
            raise ProfileRepositoryError(
                "Failed to increment order count",
                customer_ref=customer_ref,
                error=str(e),
            ) from e

    async def set_order_count(self, customer_ref: str, order_count: int) -> int:
        try:
            stmt = (
                update(ClientProfile)
                .where(ClientProfile.customer_ref == customer_ref)
                .values(order_count=order_count)
            )
            result = await self.session.execute(stmt)
            return result.rowcount
        except SQLAlchemyError as e:
            raise ProfileRepositoryError(
                "Failed to set order count",
                customer_ref=customer_ref,
                error=str(e),
            ) from e

    async def count_orders(self, customer_ref: str) -> int:
        """Number of orders stored for a customer."""
        try:
            stmt = (
                select(func.count())
                .select_from(Order)
                .where(Order.customer_ref == customer_ref)
            )
            result = await self.session.execute(stmt)
            return result.scalar_one()
        except SQLAlchemyError as e:
            raise ProfileRepositoryError(
                "Failed to count customer orders",
                customer_ref=customer_ref,
                error=str(e),
            ) from e

    async def get_by_ref(self, customer_ref: str) -> Optional[ClientProfile]:
        try:
            stmt = select(ClientProfile).where(ClientProfile.customer_ref == customer_ref)
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise ProfileRepositoryError(
                "Failed to fetch client profile",
                customer_ref=customer_ref,
                error=str(e),
            ) from e

    async def get_by_phone(self, phone_number: str) -> Optional[ClientProfile]:
        """Most recently updated profile with the given phone number."""
        try:
            stmt = (
                select(ClientProfile)
                .where(ClientProfile.phone_number == phone_number)
                .order_by(ClientProfile.updated_at.desc())
                .limit(1)
            )
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise ProfileRepositoryError(
                "Failed to fetch client profile by phone",
                error=str(e),
            ) from e

    async def list_profiles(
        self,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[ClientProfile], int]:
        try:
            stmt = (
                select(ClientProfile)
                .order_by(ClientProfile.created_at.desc())
                .offset(skip)
                .limit(limit)
            )
            count_stmt = select(func.count()).select_from(ClientProfile)

            result = await self.session.execute(stmt)
            count_result = await self.session.execute(count_stmt)
            return result.scalars().all(), count_result.scalar_one()
        except SQLAlchemyError as e:
            logger.error("Failed to list client profiles", error=str(e))
            raise ProfileRepositoryError("Failed to list client profiles", error=str(e)) from e
