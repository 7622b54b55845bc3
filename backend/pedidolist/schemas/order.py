"""Order schemas."""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pedidolist.core.enums import OrderStatus, SyncStatus

CENT = Decimal("0.01")


class OrderItem(BaseModel):
    """Line of an order."""

    model_config = ConfigDict(extra="ignore")

    product_id: Optional[str] = None
    product_name: str
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)

    @field_validator("unit_price")
    @classmethod
    def quantize_price(cls, v: Decimal) -> Decimal:
        return v.quantize(CENT, rounding=ROUND_HALF_UP)


class OrderPayload(BaseModel):
    """Business content of an order, as stored locally and sent to the server."""

    model_config = ConfigDict(extra="ignore")

    business_id: str
    client_name: str = Field(min_length=1, max_length=255)
    client_phone: Optional[str] = None
    total: Decimal = Field(default=Decimal("0"), ge=0)
    delivery_date: date
    delivery_time: Optional[str] = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    notes: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING
    items: List[OrderItem] = []

    @field_validator("total")
    @classmethod
    def quantize_total(cls, v: Decimal) -> Decimal:
        return v.quantize(CENT, rounding=ROUND_HALF_UP)


class OrderCreate(OrderPayload):
    """Order creation schema."""

    pass


class OrderUpdate(BaseModel):
    """Order update schema. Omitted fields keep their current value."""

    client_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    client_phone: Optional[str] = None
    total: Optional[Decimal] = Field(default=None, ge=0)
    delivery_date: Optional[date] = None
    delivery_time: Optional[str] = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    notes: Optional[str] = None
    status: Optional[OrderStatus] = None
    items: Optional[List[OrderItem]] = None


class OrderResponse(OrderPayload):
    """Order response schema with sync metadata."""

    local_id: str
    server_id: Optional[str] = None
    version: int
    last_modified_at: Optional[datetime] = None
    sync_status: SyncStatus
