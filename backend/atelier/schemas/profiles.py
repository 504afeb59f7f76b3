"""
Client profile and catalog Pydantic schemas.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClientProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_ref: str
    full_name: str
    phone_number: str
    city: Optional[str] = None
    instagram_handle: Optional[str] = None
    order_count: int
    created_at: Optional[datetime] = None


class ClientProfileListResponse(BaseModel):
    items: list[ClientProfileResponse]
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    pages: int = Field(..., ge=0)


class CatalogItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    image_url: str
    tags: list[Any]
    created_at: Optional[datetime] = None


def parse_tags(value: Optional[str]) -> list[str]:
    """Parse a comma-separated tag string from a form field."""
    if not value:
        return []
    return [tag.strip() for tag in value.split(",") if tag.strip()]


class CatalogItemFields(BaseModel):
    """Form fields accompanying a catalog image upload."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    tags: Optional[list[str]] = None

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v):
        if isinstance(v, str):
            return parse_tags(v)
        return v
