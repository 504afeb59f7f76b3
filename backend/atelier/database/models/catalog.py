"""
Catalog item model: showcase designs customers can base an order on.
"""

from typing import Any, Optional

from sqlalchemy import String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from atelier.database.base import BaseModel


class CatalogItem(BaseModel):
    __tablename__ = "catalog_items"

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    image_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    storage_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    tags: Mapped[list[Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )
