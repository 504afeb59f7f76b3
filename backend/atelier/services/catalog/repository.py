"""
Catalog item data access repository.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.exceptions import AtelierError
from atelier.core.logging import get_logger
from atelier.database.models.catalog import CatalogItem

logger = get_logger(__name__)


class CatalogRepositoryError(AtelierError):
    pass


class CatalogRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, item: CatalogItem) -> CatalogItem:
        try:
            self.session.add(item)
            await self.session.flush()
            return item
        except SQLAlchemyError as e:
            logger.error("Failed to stage catalog item", error=str(e))
            raise CatalogRepositoryError("Failed to save catalog item", error=str(e)) from e

    async def save(self, item: CatalogItem) -> CatalogItem:
        try:
            await self.session.flush()
            return item
        except SQLAlchemyError as e:
            raise CatalogRepositoryError(
                "Failed to update catalog item",
                item_id=str(item.id),
                error=str(e),
            ) from e

    async def delete(self, item: CatalogItem) -> None:
        try:
            await self.session.delete(item)
            await self.session.flush()
        except SQLAlchemyError as e:
            raise CatalogRepositoryError(
                "Failed to delete catalog item",
                item_id=str(item.id),
                error=str(e),
            ) from e

    async def get_by_id(self, item_id: uuid.UUID) -> Optional[CatalogItem]:
        try:
            result = await self.session.execute(
                select(CatalogItem).where(CatalogItem.id == item_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise CatalogRepositoryError(
                "Failed to fetch catalog item",
                item_id=str(item_id),
                error=str(e),
            ) from e

    async def list_items(self) -> Sequence[CatalogItem]:
        """All catalog items newest first."""
        try:
            result = await self.session.execute(
                select(CatalogItem).order_by(CatalogItem.created_at.desc())
            )
            return result.scalars().all()
        except SQLAlchemyError as e:
            raise CatalogRepositoryError("Failed to list catalog items", error=str(e)) from e
