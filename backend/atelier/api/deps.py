"""
FastAPI dependencies for identity context, sessions and services.

Customers and operators are identified by opaque references that the
fronting gateway forwards in ``X-Customer-Ref`` and ``X-Operator-Ref``
headers. The gateway authenticates; this service only requires that the
header is present and records the reference as the acting party.
"""

from dataclasses import dataclass
from typing import Annotated, Optional, TypeVar

from fastapi import Depends, Header, HTTPException, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.config import get_settings
from atelier.core.logging import get_logger, set_actor_ref
from atelier.database.connection import get_db
from atelier.services.catalog.service import CatalogService
from atelier.services.notifications.service import OrderNotifier
from atelier.services.orders.service import OrderService
from atelier.services.profiles.registry import ClientProfileRegistry
from atelier.services.revisions.ledger import RevisionLedger
from atelier.services.storage.cloudinary import CloudinaryStorage, ImageUpload

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


async def get_customer_ref(
    x_customer_ref: Annotated[Optional[str], Header()] = None,
) -> str:
    """
    Reference of the calling customer.

    Raises:
        HTTPException: 401 if the header is missing
    """
    if not x_customer_ref:
        logger.warning("Request without customer reference")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Customer reference required",
        )
    set_actor_ref(x_customer_ref)
    return x_customer_ref


async def get_operator_ref(
    x_operator_ref: Annotated[Optional[str], Header()] = None,
) -> str:
    """
    Reference of the calling operator.

    Raises:
        HTTPException: 401 if the header is missing
    """
    if not x_operator_ref:
        logger.warning("Request without operator reference")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Operator reference required",
        )
    set_actor_ref(x_operator_ref)
    return x_operator_ref


@dataclass(frozen=True)
class Actor:
    ref: str
    is_operator: bool


async def get_actor(
    x_customer_ref: Annotated[Optional[str], Header()] = None,
    x_operator_ref: Annotated[Optional[str], Header()] = None,
) -> Actor:
    """Operator if the operator header is present, else the customer."""
    if x_operator_ref:
        set_actor_ref(x_operator_ref)
        return Actor(ref=x_operator_ref, is_operator=True)
    if x_customer_ref:
        set_actor_ref(x_customer_ref)
        return Actor(ref=x_customer_ref, is_operator=False)
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Customer or operator reference required",
    )


async def read_image(upload: Optional[UploadFile]) -> Optional[ImageUpload]:
    """Read an optional multipart file into memory."""
    if upload is None:
        return None
    data = await upload.read()
    if not data:
        return None
    return ImageUpload(data=data, filename=upload.filename)


def get_notifier(request: Request) -> Optional[OrderNotifier]:
    return getattr(request.app.state, "notifier", None)


def get_storage(request: Request) -> Optional[CloudinaryStorage]:
    return getattr(request.app.state, "storage", None)


DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CustomerRef = Annotated[str, Depends(get_customer_ref)]
OperatorRef = Annotated[str, Depends(get_operator_ref)]
CurrentActor = Annotated[Actor, Depends(get_actor)]


async def get_order_service(
    db: DatabaseSession,
    notifier: Annotated[Optional[OrderNotifier], Depends(get_notifier)],
    storage: Annotated[Optional[CloudinaryStorage], Depends(get_storage)],
) -> OrderService:
    return OrderService(db, notifier=notifier, storage=storage)


async def get_revision_ledger(db: DatabaseSession) -> RevisionLedger:
    return RevisionLedger(db)


async def get_profile_registry(db: DatabaseSession) -> ClientProfileRegistry:
    return ClientProfileRegistry(db)


async def get_catalog_service(
    db: DatabaseSession,
    storage: Annotated[Optional[CloudinaryStorage], Depends(get_storage)],
) -> CatalogService:
    return CatalogService(db, storage)


def pagination_params(page: int, page_size: Optional[int]) -> tuple[int, int]:
    """Clamp a requested page size to the configured bounds."""
    settings = get_settings()
    size = page_size or settings.default_page_size
    return max(page, 1), min(max(size, 1), settings.max_page_size)


def page_count(total: int, page_size: int) -> int:
    return (total + page_size - 1) // page_size if total else 0


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
RevisionLedgerDep = Annotated[RevisionLedger, Depends(get_revision_ledger)]
ProfileRegistryDep = Annotated[ClientProfileRegistry, Depends(get_profile_registry)]
CatalogServiceDep = Annotated[CatalogService, Depends(get_catalog_service)]


def parse_form_json(model_cls: type[ModelT], data: str) -> ModelT:
    """
    Validate the JSON ``data`` field of a multipart form.

    Raises:
        RequestValidationError: If the payload does not match the model
    """
    try:
        return model_cls.model_validate_json(data)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False)) from e
