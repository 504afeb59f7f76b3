"""
Order data access repository.

Async queries over the ``orders`` table: single-row reads (optionally
locked for update), filtered pagination with total counts, dashboard
aggregates and the lookup used by the history repair loop. Writes are
flushed, never committed; the calling service owns commit points.
"""

import uuid
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.exceptions import AtelierError
from atelier.core.logging import get_logger
from atelier.database.models.order import Order
from atelier.services.orders.enums import OrderStatus

logger = get_logger(__name__)


class OrderRepositoryError(AtelierError):
    """Raised when an order query or write fails at the database level."""

    pass


class OrderRepository:
    """
    Repository for order data access operations.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, order: Order) -> Order:
        """
        Stage a new order and flush it so constraint violations surface now.

        Raises:
            OrderRepositoryError: If the insert fails
        """
        try:
            self.session.add(order)
            await self.session.flush()
            logger.debug("Order staged", order_id=str(order.id))
            return order
        except SQLAlchemyError as e:
            logger.error(
                "Failed to stage order",
                order_id=str(order.id),
                error=str(e),
            )
            raise OrderRepositoryError(
                "Failed to save order",
                order_id=str(order.id),
                error=str(e),
            ) from e

    async def save(self, order: Order) -> Order:
        """Flush pending changes on an order already in the session."""
        try:
            await self.session.flush()
            return order
        except SQLAlchemyError as e:
            logger.error(
                "Failed to flush order changes",
                order_id=str(order.id),
                error=str(e),
            )
            raise OrderRepositoryError(
                "Failed to update order",
                order_id=str(order.id),
                error=str(e),
            ) from e

    async def get_by_id(
        self,
        order_id: uuid.UUID,
        for_update: bool = False,
    ) -> Optional[Order]:
        """
        Get order by ID.

        Args:
            order_id: Order identifier
            for_update: Lock the row until the transaction ends and reload
                its current state into the session

        Returns:
            Order if found, None otherwise
        """
        try:
            stmt = select(Order).where(Order.id == order_id)
            if for_update:
                stmt = stmt.with_for_update().execution_options(populate_existing=True)

            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            logger.error(
                "Failed to fetch order",
                order_id=str(order_id),
                error=str(e),
            )
            raise OrderRepositoryError(
                "Failed to fetch order",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        customer_ref: Optional[str] = None,
        rush_only: bool = False,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[Order], int]:
        """
        List orders newest first with optional filters.

        Returns:
            Tuple of (orders, total_count)
        """
        try:
            conditions = []
            if status is not None:
                conditions.append(Order.status == status)
            if customer_ref is not None:
                conditions.append(Order.customer_ref == customer_ref)
            if rush_only:
                conditions.append(Order.rush_multiplier > Decimal("1.0"))

            stmt = select(Order).order_by(Order.created_at.desc()).offset(skip).limit(limit)
            count_stmt = select(func.count()).select_from(Order)
            if conditions:
                stmt = stmt.where(and_(*conditions))
                count_stmt = count_stmt.where(and_(*conditions))

            result = await self.session.execute(stmt)
            count_result = await self.session.execute(count_stmt)

            orders = result.scalars().all()
            total_count = count_result.scalar_one()

            logger.debug(
                "Orders fetched",
                status=status.value if status else None,
                customer_ref=customer_ref,
                rush_only=rush_only,
                count=len(orders),
                total=total_count,
            )

            return orders, total_count

        except SQLAlchemyError as e:
            logger.error("Failed to list orders", error=str(e))
            raise OrderRepositoryError("Failed to list orders", error=str(e)) from e

    async def find_missing_history(self, limit: int = 50) -> Sequence[Order]:
        """Orders whose originating snapshot was never recorded."""
        try:
            stmt = (
                select(Order)
                .where(func.jsonb_array_length(Order.history) == 0)
                .order_by(Order.created_at)
                .limit(limit)
            )
            result = await self.session.execute(stmt)
            return result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to find orders missing history", error=str(e))
            raise OrderRepositoryError(
                "Failed to find orders missing history",
                error=str(e),
            ) from e

    async def get_statistics(self) -> dict[str, Any]:
        """
        Aggregate figures for the operator dashboard.

        Returns:
            Dictionary with total count, per-status counts, rush count,
            revenue (sum of totals) and outstanding balance
        """
        try:
            status_stmt = select(Order.status, func.count()).group_by(Order.status)
            rush_stmt = select(func.count()).select_from(Order).where(
                Order.rush_multiplier > Decimal("1.0")
            )
            revenue_stmt = select(func.coalesce(func.sum(Order.total_price), 0))
            deposits_stmt = select(func.coalesce(func.sum(Order.deposit_amount), 0)).where(
                Order.deposit_paid.is_(True)
            )

            status_result = await self.session.execute(status_stmt)
            rush_result = await self.session.execute(rush_stmt)
            revenue_result = await self.session.execute(revenue_stmt)
            deposits_result = await self.session.execute(deposits_stmt)

            status_breakdown = {
                status: count for status, count in status_result.all()
            }
            total_revenue = Decimal(revenue_result.scalar_one())
            deposits_collected = Decimal(deposits_result.scalar_one())

            return {
                "total_orders": sum(status_breakdown.values()),
                "status_breakdown": status_breakdown,
                "rush_orders": rush_result.scalar_one(),
                "total_revenue": total_revenue,
                "outstanding_balance": total_revenue - deposits_collected,
            }

        except SQLAlchemyError as e:
            logger.error("Failed to fetch order statistics", error=str(e))
            raise OrderRepositoryError(
                "Failed to fetch order statistics",
                error=str(e),
            ) from e
