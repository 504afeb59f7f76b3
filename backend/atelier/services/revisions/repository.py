"""
Revision data access repository.

Revisions are append-only: this repository inserts and reads rows and
flushes status changes, but never deletes.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.exceptions import AtelierError
from atelier.core.logging import get_logger
from atelier.database.models.order import Order
from atelier.database.models.revision import Revision
from atelier.services.orders.enums import RevisionStatus

logger = get_logger(__name__)


class RevisionRepositoryError(AtelierError):
    """Raised when a revision query or write fails at the database level."""

    pass


class RevisionConflictError(RevisionRepositoryError):
    """Raised when a revision number is already taken for the order."""

    pass


class RevisionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, revision: Revision) -> Revision:
        """
        Insert a revision and flush it.

        Raises:
            RevisionConflictError: If the (order, revision number) pair exists
            RevisionRepositoryError: If the insert fails otherwise
        """
        try:
            self.session.add(revision)
            await self.session.flush()
            logger.debug(
                "Revision staged",
                revision_id=str(revision.id),
                order_id=str(revision.order_id),
                revision_number=revision.revision_number,
            )
            return revision
        except IntegrityError as e:
            logger.warning(
                "Revision number already taken",
                order_id=str(revision.order_id),
                revision_number=revision.revision_number,
            )
            raise RevisionConflictError(
                "Revision number already taken",
                order_id=str(revision.order_id),
                revision_number=revision.revision_number,
            ) from e
        except SQLAlchemyError as e:
            logger.error(
                "Failed to stage revision",
                order_id=str(revision.order_id),
                error=str(e),
            )
            raise RevisionRepositoryError(
                "Failed to save revision",
                order_id=str(revision.order_id),
                error=str(e),
            ) from e

    async def save(self, revision: Revision) -> Revision:
        try:
            await self.session.flush()
            return revision
        except SQLAlchemyError as e:
            logger.error(
                "Failed to flush revision changes",
                revision_id=str(revision.id),
                error=str(e),
            )
            raise RevisionRepositoryError(
                "Failed to update revision",
                revision_id=str(revision.id),
                error=str(e),
            ) from e

    async def get_by_id(
        self,
        revision_id: uuid.UUID,
        for_update: bool = False,
    ) -> Optional[Revision]:
        try:
            stmt = select(Revision).where(Revision.id == revision_id)
            if for_update:
                stmt = stmt.with_for_update().execution_options(populate_existing=True)
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to fetch revision",
                revision_id=str(revision_id),
                error=str(e),
            )
            raise RevisionRepositoryError(
                "Failed to fetch revision",
                revision_id=str(revision_id),
                error=str(e),
            ) from e

    async def get_by_number(
        self,
        order_id: uuid.UUID,
        revision_number: int,
    ) -> Optional[Revision]:
        try:
            stmt = select(Revision).where(
                Revision.order_id == order_id,
                Revision.revision_number == revision_number,
            )
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RevisionRepositoryError(
                "Failed to fetch revision by number",
                order_id=str(order_id),
                revision_number=revision_number,
                error=str(e),
            ) from e

    async def count_for_order(self, order_id: uuid.UUID) -> int:
        """Number of revisions stored for an order, snapshot included."""
        try:
            stmt = (
                select(func.count())
                .select_from(Revision)
                .where(Revision.order_id == order_id)
            )
            result = await self.session.execute(stmt)
            return result.scalar_one()
        except SQLAlchemyError as e:
            raise RevisionRepositoryError(
                "Failed to count revisions",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def list_for_order(self, order_id: uuid.UUID) -> Sequence[Revision]:
        """All revisions of an order ordered by sequence number."""
        try:
            stmt = (
                select(Revision)
                .where(Revision.order_id == order_id)
                .order_by(Revision.revision_number)
            )
            result = await self.session.execute(stmt)
            return result.scalars().all()
        except SQLAlchemyError as e:
            raise RevisionRepositoryError(
                "Failed to list order revisions",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def list_all(
        self,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[Revision], int]:
        """All revisions newest first with total count."""
        try:
            stmt = (
                select(Revision)
                .order_by(Revision.created_at.desc())
                .offset(skip)
                .limit(limit)
            )
            count_stmt = select(func.count()).select_from(Revision)

            result = await self.session.execute(stmt)
            count_result = await self.session.execute(count_stmt)
            return result.scalars().all(), count_result.scalar_one()
        except SQLAlchemyError as e:
            raise RevisionRepositoryError("Failed to list revisions", error=str(e)) from e

    async def list_by_status(self, status: RevisionStatus) -> Sequence[Revision]:
        try:
            stmt = (
                select(Revision)
                .where(Revision.status == status)
                .order_by(Revision.created_at.desc())
            )
            result = await self.session.execute(stmt)
            return result.scalars().all()
        except SQLAlchemyError as e:
            raise RevisionRepositoryError(
                "Failed to list revisions by status",
                status=status.value,
                error=str(e),
            ) from e

    async def list_for_customer(self, customer_ref: str) -> Sequence[Revision]:
        """Revisions across every order of one customer, newest first."""
        try:
            stmt = (
                select(Revision)
                .join(Order, Order.id == Revision.order_id)
                .where(Order.customer_ref == customer_ref)
                .order_by(Revision.created_at.desc())
            )
            result = await self.session.execute(stmt)
            return result.scalars().all()
        except SQLAlchemyError as e:
            raise RevisionRepositoryError(
                "Failed to list customer revisions",
                customer_ref=customer_ref,
                error=str(e),
            ) from e
