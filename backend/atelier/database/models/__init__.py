"""
Database models package initialization.

Models are imported here so they are registered with the Base metadata for
Alembic and relationship resolution.
"""

from atelier.database.base import AuditedModel, Base, BaseModel
from atelier.database.models.catalog import CatalogItem
from atelier.database.models.order import Order
from atelier.database.models.profile import ClientProfile
from atelier.database.models.revision import Revision

__all__ = [
    "Base",
    "BaseModel",
    "AuditedModel",
    "CatalogItem",
    "ClientProfile",
    "Order",
    "Revision",
]
