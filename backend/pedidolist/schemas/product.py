"""Product schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from pedidolist.core.enums import SyncStatus

CENT = Decimal("0.01")


class ProductPayload(BaseModel):
    """Business content of a product."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    business_id: str = Field(validation_alias=AliasChoices("business_id", "businessId"))
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    price: Decimal = Field(ge=0)
    cost: Optional[Decimal] = Field(default=None, ge=0)
    category: Optional[str] = None
    stock: int = 0
    image_url: Optional[str] = None
    is_active: bool = Field(default=True, validation_alias=AliasChoices("is_active", "isActive"))

    @field_validator("price", "cost")
    @classmethod
    def quantize_money(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is None:
            return v
        return v.quantize(CENT, rounding=ROUND_HALF_UP)


class ProductCreate(ProductPayload):
    """Product creation schema."""

    pass


class ProductUpdate(BaseModel):
    """Product update schema."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    cost: Optional[Decimal] = Field(default=None, ge=0)
    category: Optional[str] = None
    stock: Optional[int] = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None


class ProductResponse(ProductPayload):
    """Product response schema with sync metadata."""

    local_id: str
    server_id: Optional[str] = None
    version: int
    last_modified_at: Optional[datetime] = None
    sync_status: SyncStatus
