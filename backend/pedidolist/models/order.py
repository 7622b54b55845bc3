"""Order model."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Date, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pedidolist.core.enums import OrderStatus
from pedidolist.db.base import Base, SyncMetadataMixin, TimestampMixin


class Order(Base, TimestampMixin, SyncMetadataMixin):
    """Customer order captured at the terminal."""

    __tablename__ = "orders"

    # Payload columns sent to and compared against the server
    PAYLOAD_FIELDS = (
        "business_id", "client_name", "client_phone", "total", "delivery_date",
        "delivery_time", "notes", "status", "items",
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    business_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    client_name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    delivery_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    delivery_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)  # HH:MM
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.PENDING.value, nullable=False)
    items: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
