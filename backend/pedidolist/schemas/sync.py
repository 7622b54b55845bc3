"""Sync status schemas."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


class SyncQueueItemResponse(BaseModel):
    """One pending or blocked mutation."""

    id: int
    entity_type: str
    entity_id: str
    action: str
    timestamp: datetime
    retries: int
    last_error: Optional[str] = None
    last_attempt_at: Optional[datetime] = None
    status: str

    model_config = {"from_attributes": True}


class ConnectivityReport(BaseModel):
    """Raw connectivity observation from the platform."""

    online: bool


class ConflictChoice(BaseModel):
    """Which copy a human kept for a conflict left for manual review."""

    keep: Literal["local", "server"]
