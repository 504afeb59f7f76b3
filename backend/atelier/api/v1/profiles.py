"""
Client profile API endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Query

from atelier.api.deps import (
    CustomerRef,
    OperatorRef,
    ProfileRegistryDep,
    page_count,
    pagination_params,
)
from atelier.core.exceptions import NotFoundError
from atelier.schemas.profiles import ClientProfileListResponse, ClientProfileResponse

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("/me", response_model=ClientProfileResponse, summary="The caller's profile")
async def get_my_profile(
    customer_ref: CustomerRef,
    registry: ProfileRegistryDep,
) -> ClientProfileResponse:
    profile = await registry.get_profile(customer_ref)
    if profile is None:
        raise NotFoundError("Client profile not found", customer_ref=customer_ref)
    return ClientProfileResponse.model_validate(profile)


@router.get("", response_model=ClientProfileListResponse, summary="List client profiles")
async def list_profiles(
    operator_ref: OperatorRef,
    registry: ProfileRegistryDep,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
) -> ClientProfileListResponse:
    page, page_size = pagination_params(page, page_size)
    profiles, total = await registry.list_profiles(
        skip=(page - 1) * page_size,
        limit=page_size,
    )
    return ClientProfileListResponse(
        items=[ClientProfileResponse.model_validate(profile) for profile in profiles],
        total=total,
        page=page,
        page_size=page_size,
        pages=page_count(total, page_size),
    )
