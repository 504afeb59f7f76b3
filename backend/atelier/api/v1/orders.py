"""
Order API endpoints.

Customer routes (intake, own orders, submission edits) identify the
caller with ``X-Customer-Ref``; operator routes (listing, statistics,
walk-in intake, quoting, deposits, status changes, history repair) with
``X-Operator-Ref``. Domain errors are translated to HTTP responses by the
application's exception handlers.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, File, Form, Query, UploadFile, status

from atelier.api.deps import (
    CurrentActor,
    CustomerRef,
    OperatorRef,
    OrderServiceDep,
    page_count,
    pagination_params,
    parse_form_json,
    read_image,
)
from atelier.core.exceptions import NotFoundError
from atelier.core.logging import get_logger
from atelier.schemas.orders import (
    DashboardStats,
    ManualOrderSubmission,
    OrderListResponse,
    OrderResponse,
    OrderSubmission,
    QuoteRequest,
    StatusUpdateRequest,
    SubmissionUpdate,
)
from atelier.services.orders.enums import OrderStatus

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def _order_list(orders, total: int, page: int, page_size: int) -> OrderListResponse:
    return OrderListResponse(
        items=[OrderResponse.model_validate(order) for order in orders],
        total=total,
        page=page,
        page_size=page_size,
        pages=page_count(total, page_size),
    )


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit an order",
    description="Multipart form: ``data`` holds the submission JSON, "
    "``inspiration_photo`` an optional image",
)
async def create_order(
    customer_ref: CustomerRef,
    service: OrderServiceDep,
    data: Annotated[str, Form()],
    inspiration_photo: Annotated[Optional[UploadFile], File()] = None,
) -> OrderResponse:
    submission = parse_form_json(OrderSubmission, data)
    image = await read_image(inspiration_photo)

    order = await service.create(submission, customer_ref, image=image)
    return OrderResponse.model_validate(order)


@router.get(
    "/mine",
    response_model=OrderListResponse,
    summary="List the caller's orders",
)
async def list_my_orders(
    customer_ref: CustomerRef,
    service: OrderServiceDep,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
) -> OrderListResponse:
    page, page_size = pagination_params(page, page_size)
    orders, total = await service.list_orders(
        page=page,
        page_size=page_size,
        customer_ref=customer_ref,
    )
    return _order_list(orders, total, page, page_size)


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List all orders",
)
async def list_orders(
    operator_ref: OperatorRef,
    service: OrderServiceDep,
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    rush_only: bool = Query(False),
    customer_ref: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
) -> OrderListResponse:
    page, page_size = pagination_params(page, page_size)
    orders, total = await service.list_orders(
        page=page,
        page_size=page_size,
        status=status_filter,
        rush_only=rush_only,
        customer_ref=customer_ref,
    )
    return _order_list(orders, total, page, page_size)


@router.get(
    "/stats",
    response_model=DashboardStats,
    summary="Dashboard statistics",
)
async def order_stats(
    operator_ref: OperatorRef,
    service: OrderServiceDep,
) -> DashboardStats:
    return DashboardStats(**await service.dashboard_stats())


@router.post(
    "/manual",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a walk-in order",
)
async def create_manual_order(
    operator_ref: OperatorRef,
    service: OrderServiceDep,
    data: Annotated[str, Form()],
    inspiration_photo: Annotated[Optional[UploadFile], File()] = None,
) -> OrderResponse:
    submission = parse_form_json(ManualOrderSubmission, data)
    image = await read_image(inspiration_photo)

    order = await service.create_manual(submission, image=image, actor_ref=operator_ref)
    return OrderResponse.model_validate(order)


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get an order",
)
async def get_order(
    order_id: UUID,
    actor: CurrentActor,
    service: OrderServiceDep,
) -> OrderResponse:
    order = await service.get_order(order_id)
    if order is None or (not actor.is_operator and order.customer_ref != actor.ref):
        raise NotFoundError("Order not found", order_id=str(order_id))
    return OrderResponse.model_validate(order)


@router.patch(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Edit a submission before it is quoted",
)
async def update_order(
    order_id: UUID,
    patch: SubmissionUpdate,
    customer_ref: CustomerRef,
    service: OrderServiceDep,
) -> OrderResponse:
    order = await service.update_submission(order_id, customer_ref, patch)
    return OrderResponse.model_validate(order)


@router.patch(
    "/{order_id}/quote",
    response_model=OrderResponse,
    summary="Send a quote",
)
async def quote_order(
    order_id: UUID,
    request: QuoteRequest,
    operator_ref: OperatorRef,
    service: OrderServiceDep,
) -> OrderResponse:
    order = await service.quote(
        order_id,
        request.base_price,
        delivery_date=request.preferred_delivery_date,
        actor_ref=operator_ref,
    )
    return OrderResponse.model_validate(order)


@router.patch(
    "/{order_id}/confirm-deposit",
    response_model=OrderResponse,
    summary="Confirm the deposit",
)
async def confirm_deposit(
    order_id: UUID,
    operator_ref: OperatorRef,
    service: OrderServiceDep,
) -> OrderResponse:
    order = await service.confirm_deposit(order_id, actor_ref=operator_ref)
    return OrderResponse.model_validate(order)


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Change the order status",
)
async def update_order_status(
    order_id: UUID,
    request: StatusUpdateRequest,
    operator_ref: OperatorRef,
    service: OrderServiceDep,
) -> OrderResponse:
    order = await service.change_status(order_id, request.status, actor_ref=operator_ref)
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/repair-history",
    response_model=OrderResponse,
    summary="Record a missing originating snapshot",
)
async def repair_order_history(
    order_id: UUID,
    operator_ref: OperatorRef,
    service: OrderServiceDep,
) -> OrderResponse:
    order = await service.repair_history(order_id)
    logger.info("History repair requested", order_id=str(order_id), actor_ref=operator_ref)
    return OrderResponse.model_validate(order)
