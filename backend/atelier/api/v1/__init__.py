"""
API v1 routers.
"""

from atelier.api.v1.catalog import router as catalog_router
from atelier.api.v1.orders import router as orders_router
from atelier.api.v1.profiles import router as profiles_router
from atelier.api.v1.revisions import router as revisions_router

__all__ = ["catalog_router", "orders_router", "profiles_router", "revisions_router"]
