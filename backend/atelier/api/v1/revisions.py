"""
Revision API endpoints.

Customers request revisions on their own orders; operators review,
decide and record fee payments.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, File, Form, Query, UploadFile, status

from atelier.api.deps import (
    CurrentActor,
    CustomerRef,
    OperatorRef,
    OrderServiceDep,
    RevisionLedgerDep,
    pagination_params,
    parse_form_json,
    read_image,
)
from atelier.core.exceptions import NotFoundError
from atelier.schemas.revisions import (
    RevisionListResponse,
    RevisionRequest,
    RevisionResponse,
    RevisionStatusUpdate,
)

router = APIRouter(prefix="/revisions", tags=["revisions"])


def _revisions(revisions) -> list[RevisionResponse]:
    return [RevisionResponse.model_validate(revision) for revision in revisions]


@router.post(
    "/{order_id}",
    response_model=RevisionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a revision",
    description="Multipart form: ``data`` holds the revision JSON, "
    "``inspiration_photo`` an optional replacement image",
)
async def request_revision(
    order_id: UUID,
    customer_ref: CustomerRef,
    service: OrderServiceDep,
    data: Annotated[str, Form()] = "{}",
    inspiration_photo: Annotated[Optional[UploadFile], File()] = None,
) -> RevisionResponse:
    request = parse_form_json(RevisionRequest, data)
    image = await read_image(inspiration_photo)

    revision = await service.request_revision(
        order_id,
        request,
        customer_ref=customer_ref,
        image=image,
    )
    return RevisionResponse.model_validate(revision)


@router.get("", response_model=RevisionListResponse, summary="List all revisions")
async def list_revisions(
    operator_ref: OperatorRef,
    ledger: RevisionLedgerDep,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
) -> RevisionListResponse:
    page, page_size = pagination_params(page, page_size)
    revisions, total = await ledger.list_all(skip=(page - 1) * page_size, limit=page_size)
    return RevisionListResponse(
        items=_revisions(revisions),
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/pending",
    response_model=list[RevisionResponse],
    summary="Revisions awaiting a decision",
)
async def list_pending_revisions(
    operator_ref: OperatorRef,
    ledger: RevisionLedgerDep,
) -> list[RevisionResponse]:
    return _revisions(await ledger.list_pending())


@router.get(
    "/customer/{customer_ref}",
    response_model=list[RevisionResponse],
    summary="Revisions of one customer",
)
async def list_customer_revisions(
    customer_ref: str,
    actor: CurrentActor,
    ledger: RevisionLedgerDep,
) -> list[RevisionResponse]:
    if not actor.is_operator and actor.ref != customer_ref:
        return []
    return _revisions(await ledger.list_for_customer(customer_ref))


@router.get(
    "/order/{order_id}",
    response_model=list[RevisionResponse],
    summary="Revisions of one order",
)
async def list_order_revisions(
    order_id: UUID,
    actor: CurrentActor,
    service: OrderServiceDep,
    ledger: RevisionLedgerDep,
) -> list[RevisionResponse]:
    order = await service.get_order(order_id)
    if order is None or (not actor.is_operator and order.customer_ref != actor.ref):
        raise NotFoundError("Order not found", order_id=str(order_id))
    return _revisions(await ledger.list_for_order(order_id))


@router.get("/{revision_id}", response_model=RevisionResponse, summary="Get a revision")
async def get_revision(
    revision_id: UUID,
    operator_ref: OperatorRef,
    ledger: RevisionLedgerDep,
) -> RevisionResponse:
    revision = await ledger.get_revision(revision_id)
    if revision is None:
        raise NotFoundError("Revision not found", revision_id=str(revision_id))
    return RevisionResponse.model_validate(revision)


@router.patch(
    "/{revision_id}/status",
    response_model=RevisionResponse,
    summary="Approve, reject or apply a revision",
)
async def update_revision_status(
    revision_id: UUID,
    request: RevisionStatusUpdate,
    operator_ref: OperatorRef,
    service: OrderServiceDep,
) -> RevisionResponse:
    revision = await service.decide_revision(
        revision_id,
        request.status,
        actor_ref=operator_ref,
        admin_notes=request.admin_notes,
    )
    return RevisionResponse.model_validate(revision)


@router.patch(
    "/{revision_id}/fee-paid",
    response_model=RevisionResponse,
    summary="Record payment of a revision fee",
)
async def mark_revision_fee_paid(
    revision_id: UUID,
    operator_ref: OperatorRef,
    service: OrderServiceDep,
) -> RevisionResponse:
    revision = await service.mark_revision_fee_paid(revision_id)
    return RevisionResponse.model_validate(revision)
