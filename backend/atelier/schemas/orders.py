"""
Order Pydantic schemas for API request/response validation.

Covers intake submissions (customer and walk-in), submission edits,
operator actions (quote, status change) and the order views returned to
customers and operators.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from atelier.services.orders.enums import OccasionType, OrderStatus, OrderType


class Measurements(BaseModel):
    """Full body measurement set in centimetres. Zero is a valid value."""

    model_config = ConfigDict(extra="forbid")

    bust: float = Field(..., ge=0)
    waist: float = Field(..., ge=0)
    hips: float = Field(..., ge=0)
    shoulder_width: float = Field(..., ge=0)
    dress_length: float = Field(..., ge=0)
    arm_length: float = Field(..., ge=0)
    height: float = Field(..., ge=0)


class MeasurementPatch(BaseModel):
    """
    Partial measurement update.

    Only the fields actually present in the payload are applied; absent
    fields keep their previous value. An explicit 0 is applied as 0.
    """

    model_config = ConfigDict(extra="forbid")

    bust: Optional[float] = Field(None, ge=0)
    waist: Optional[float] = Field(None, ge=0)
    hips: Optional[float] = Field(None, ge=0)
    shoulder_width: Optional[float] = Field(None, ge=0)
    dress_length: Optional[float] = Field(None, ge=0)
    arm_length: Optional[float] = Field(None, ge=0)
    height: Optional[float] = Field(None, ge=0)

    def present_values(self) -> dict[str, float]:
        """Fields supplied by the caller with a non-null value."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if getattr(self, name) is not None
        }


class ClientProfileRequest(BaseModel):
    """Contact details captured with each submission."""

    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: str = Field(..., min_length=1, max_length=255)
    phone_number: str = Field(..., min_length=5, max_length=50)
    city: Optional[str] = Field(None, max_length=100)
    instagram_handle: Optional[str] = Field(None, max_length=100)

    @field_validator("instagram_handle")
    @classmethod
    def strip_at_sign(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.lstrip("@") or None


class OrderSubmission(BaseModel):
    """Order intake form submitted by a customer."""

    model_config = ConfigDict(str_strip_whitespace=True)

    client_profile: ClientProfileRequest
    order_type: OrderType
    occasion: OccasionType
    fabric_preference: Optional[str] = Field(None, max_length=255)
    catalog_item_id: Optional[UUID] = None
    event_date: datetime
    preferred_delivery_date: datetime
    measurements: Measurements
    body_concerns: Optional[str] = Field(None, max_length=2000)
    color_preference: Optional[str] = Field(None, max_length=255)
    terms_accepted: bool = False
    revision_policy_accepted: bool = False


class ManualOrderSubmission(OrderSubmission):
    """
    Order recorded by an operator on behalf of a walk-in customer.

    Agreement flags are implied: the operator collects them in person.
    """

    terms_accepted: bool = True
    revision_policy_accepted: bool = True
    admin_notes: Optional[str] = Field(None, max_length=2000)


class SubmissionUpdate(BaseModel):
    """Customer edit of a submission that has not been quoted yet."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    order_type: Optional[OrderType] = None
    occasion: Optional[OccasionType] = None
    fabric_preference: Optional[str] = Field(None, max_length=255)
    event_date: Optional[datetime] = None
    preferred_delivery_date: Optional[datetime] = None
    measurements: Optional[MeasurementPatch] = None
    body_concerns: Optional[str] = Field(None, max_length=2000)
    color_preference: Optional[str] = Field(None, max_length=255)


class QuoteRequest(BaseModel):
    """Operator quote: base price and optionally a new delivery date."""

    base_price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    preferred_delivery_date: Optional[datetime] = None


class StatusUpdateRequest(BaseModel):
    status: OrderStatus


class OrderResponse(BaseModel):
    """Order view returned to customers and operators."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_ref: str
    client_profile: dict[str, Any]
    order_type: OrderType
    occasion: OccasionType
    fabric_preference: Optional[str] = None
    catalog_item_id: Optional[UUID] = None
    event_date: datetime
    preferred_delivery_date: datetime
    is_rush_order: bool
    rush_multiplier: Decimal
    days_until_delivery: int
    measurements: dict[str, Any]
    body_concerns: Optional[str] = None
    color_preference: Optional[str] = None
    inspiration_photo_url: Optional[str] = None
    terms_accepted: bool
    revision_policy_accepted: bool
    status: OrderStatus
    revision_count: int
    base_price: Decimal
    total_price: Decimal
    deposit_amount: Decimal
    deposit_paid: bool
    deposit_paid_at: Optional[datetime] = None
    final_payment_paid: bool
    balance_due: Decimal
    history: list[str]
    admin_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderListResponse(BaseModel):
    """Paginated order list."""

    items: list[OrderResponse]
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    pages: int = Field(..., ge=0)


class DashboardStats(BaseModel):
    """Operator dashboard figures."""

    total_orders: int
    active_orders: int
    pending_quotes: int
    rush_orders: int
    ready_orders: int
    pending_revisions: int
    total_revenue: Decimal
    outstanding_balance: Decimal
