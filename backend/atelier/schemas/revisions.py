"""
Revision Pydantic schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from atelier.schemas.orders import MeasurementPatch
from atelier.services.orders.enums import RevisionStatus


class RevisionRequest(BaseModel):
    """
    Customer revision request.

    Every field is optional; whatever is omitted is inherited from the
    order's current values.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    measurements: Optional[MeasurementPatch] = None
    body_concerns: Optional[str] = Field(None, max_length=2000)
    color_preference: Optional[str] = Field(None, max_length=255)
    revision_reason: Optional[str] = Field(None, max_length=2000)


class RevisionStatusUpdate(BaseModel):
    status: RevisionStatus
    admin_notes: Optional[str] = Field(None, max_length=2000)


class RevisionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: UUID
    revision_number: int
    measurements: dict[str, Any]
    inspiration_photo_url: Optional[str] = None
    body_concerns: Optional[str] = None
    color_preference: Optional[str] = None
    is_free: bool
    revision_fee: Decimal
    revision_fee_paid: bool
    status: RevisionStatus
    revision_reason: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    created_at: Optional[datetime] = None


class RevisionListResponse(BaseModel):
    items: list[RevisionResponse]
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
