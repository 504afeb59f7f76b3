"""
Catalog API endpoints. Listing is public; changes require an operator.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, File, Form, UploadFile, status

from atelier.api.deps import CatalogServiceDep, OperatorRef, read_image
from atelier.core.exceptions import InvalidInputError, NotFoundError
from atelier.schemas.profiles import CatalogItemFields, CatalogItemResponse

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("", response_model=list[CatalogItemResponse], summary="List catalog items")
async def list_catalog_items(service: CatalogServiceDep) -> list[CatalogItemResponse]:
    items = await service.list_items()
    return [CatalogItemResponse.model_validate(item) for item in items]


@router.post(
    "",
    response_model=CatalogItemResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a catalog item",
)
async def create_catalog_item(
    operator_ref: OperatorRef,
    service: CatalogServiceDep,
    title: Annotated[str, Form()],
    image: Annotated[UploadFile, File()],
    tags: Annotated[Optional[str], Form()] = None,
) -> CatalogItemResponse:
    fields = CatalogItemFields(title=title, tags=tags)
    upload = await read_image(image)
    if upload is None:
        raise InvalidInputError("Catalog image is empty")

    item = await service.create_item(fields.title, upload, fields.tags)
    return CatalogItemResponse.model_validate(item)


@router.put("/{item_id}", response_model=CatalogItemResponse, summary="Update a catalog item")
async def update_catalog_item(
    item_id: UUID,
    operator_ref: OperatorRef,
    service: CatalogServiceDep,
    title: Annotated[Optional[str], Form()] = None,
    tags: Annotated[Optional[str], Form()] = None,
    image: Annotated[Optional[UploadFile], File()] = None,
) -> CatalogItemResponse:
    fields = CatalogItemFields(title=title, tags=tags)
    item = await service.update_item(
        item_id,
        title=fields.title,
        tags=fields.tags,
        image=await read_image(image),
    )
    return CatalogItemResponse.model_validate(item)


@router.delete(
    "/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a catalog item",
)
async def delete_catalog_item(
    item_id: UUID,
    operator_ref: OperatorRef,
    service: CatalogServiceDep,
) -> None:
    if not await service.delete_item(item_id):
        raise NotFoundError("Catalog item not found", item_id=str(item_id))
