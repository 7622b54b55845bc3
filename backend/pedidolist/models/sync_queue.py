"""
Sync Queue Model - pending local mutations

Every local create/update/delete appends one row here in the same
transaction as the entity write.  Rows leave the queue only once the
server confirmed the write; failures bump ``retries`` and keep the row.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pedidolist.core.enums import QueueItemStatus
from pedidolist.db.base import Base, utcnow


class SyncQueueItem(Base):
    """One pending mutation awaiting server confirmation."""

    __tablename__ = "sync_queue"
    __table_args__ = (
        Index("ix_sync_queue_entity", "entity_type", "entity_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)  # local_id of the entity
    action: Mapped[str] = mapped_column(String(10), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    retries: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_attempt_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=QueueItemStatus.PENDING.value, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<SyncQueueItem id={self.id} {self.action} {self.entity_type}:{self.entity_id} "
            f"retries={self.retries} status={self.status}>"
        )
