"""
Catalog service: showcase designs with a stored image each.

Images are uploaded before any row is written, so a storage outage
leaves the catalog unchanged. Removing an old image is best-effort.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.exceptions import NotFoundError, UpstreamUnavailableError
from atelier.core.logging import get_logger
from atelier.database.models.catalog import CatalogItem
from atelier.services.catalog.repository import CatalogRepository
from atelier.services.storage.cloudinary import CloudinaryStorage, ImageUpload, StoredObject

logger = get_logger(__name__)

CATALOG_FOLDER = "catalog"


class CatalogService:
    def __init__(
        self,
        session: AsyncSession,
        storage: Optional[CloudinaryStorage],
        repository: Optional[CatalogRepository] = None,
    ):
        self.session = session
        self.storage = storage
        self.repository = repository or CatalogRepository(session)

    async def create_item(
        self,
        title: str,
        image: ImageUpload,
        tags: Optional[list[str]] = None,
    ) -> CatalogItem:
        """
        Upload the image and store a new catalog item.

        Raises:
            UpstreamUnavailableError: If the image cannot be uploaded
        """
        stored = await self._upload(image)

        item = CatalogItem(
            id=uuid.uuid4(),
            title=title,
            image_url=stored.url,
            storage_id=stored.storage_id,
            tags=list(tags or []),
        )
        await self.repository.add(item)
        await self.session.commit()

        logger.info("Catalog item created", item_id=str(item.id), title=title)
        return item

    async def update_item(
        self,
        item_id: uuid.UUID,
        title: Optional[str] = None,
        tags: Optional[list[str]] = None,
        image: Optional[ImageUpload] = None,
    ) -> CatalogItem:
        """
        Update title, tags and optionally replace the image.

        Raises:
            NotFoundError: If the item does not exist
            UpstreamUnavailableError: If the new image cannot be uploaded
        """
        item = await self.repository.get_by_id(item_id)
        if item is None:
            raise NotFoundError("Catalog item not found", item_id=str(item_id))

        if image is not None:
            stored = await self._upload(image)
            if item.storage_id:
                await self.storage.delete(item.storage_id)
            item.image_url = stored.url
            item.storage_id = stored.storage_id

        if title is not None:
            item.title = title
        if tags is not None:
            item.tags = list(tags)

        await self.repository.save(item)
        await self.session.commit()

        logger.info(
            "Catalog item updated",
            item_id=str(item_id),
            image_replaced=image is not None,
        )
        return item

    async def delete_item(self, item_id: uuid.UUID) -> bool:
        """Delete an item and its image. Returns False if it did not exist."""
        item = await self.repository.get_by_id(item_id)
        if item is None:
            return False

        if item.storage_id and self.storage is not None:
            await self.storage.delete(item.storage_id)
        await self.repository.delete(item)
        await self.session.commit()

        logger.info("Catalog item deleted", item_id=str(item_id))
        return True

    async def list_items(self) -> Sequence[CatalogItem]:
        return await self.repository.list_items()

    async def _upload(self, image: ImageUpload) -> StoredObject:
        if self.storage is None:
            raise UpstreamUnavailableError("Content storage is not configured")
        return await self.storage.upload(image.data, CATALOG_FOLDER, image.filename)
