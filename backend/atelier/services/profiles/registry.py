"""
Client profile registry.

Keeps one contact record per customer up to date with every submission
and maintains the per-customer order counter.
"""

from typing import Any, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.logging import get_logger
from atelier.database.models.profile import ClientProfile
from atelier.services.profiles.repository import (
    ProfileRepository,
    ProfileRepositoryError,
)

logger = get_logger(__name__)


class ClientProfileRegistry:
    """
    Profile operations used by the order service and the profile routes.

    ``upsert_from_submission`` participates in the caller's transaction.
    ``increment_order_count`` commits on its own: the order it counts is
    already durable when it runs, and a failed increment only costs an
    accurate counter, which ``recount_orders`` restores.
    """

    def __init__(
        self,
        session: AsyncSession,
        repository: Optional[ProfileRepository] = None,
    ):
        self.session = session
        self.repository = repository or ProfileRepository(session)

    async def upsert_from_submission(
        self,
        customer_ref: str,
        profile_fields: dict[str, Any],
    ) -> ClientProfile:
        profile = await self.repository.upsert(customer_ref, profile_fields)
        logger.info("Client profile upserted", customer_ref=customer_ref)
        return profile

    async def increment_order_count(self, customer_ref: str) -> bool:
        """
        Add one to a customer's order counter.

        Returns:
            True if the counter was incremented; failures are logged and
            reported as False
        """
        try:
            updated = await self.repository.increment_order_count(customer_ref)
            await self.session.commit()
        except (ProfileRepositoryError, SQLAlchemyError) as e:
            await self.session.rollback()
            logger.error(
                "Failed to increment order count",
                customer_ref=customer_ref,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if not updated:
            logger.warning("No profile to count order against", customer_ref=customer_ref)
            return False
        return True

    async def recount_orders(self, customer_ref: str) -> int:
        """Reset the counter to the number of stored orders."""
        count = await self.repository.count_orders(customer_ref)
        await self.repository.set_order_count(customer_ref, count)
        await self.session.commit()
        logger.info("Order count recomputed", customer_ref=customer_ref, order_count=count)
        return count

    async def get_profile(self, customer_ref: str) -> Optional[ClientProfile]:
        return await self.repository.get_by_ref(customer_ref)

    async def find_by_phone(self, phone_number: str) -> Optional[ClientProfile]:
        return await self.repository.get_by_phone(phone_number)

    async def list_profiles(
        self,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[ClientProfile], int]:
        return await self.repository.list_profiles(skip=skip, limit=limit)
