"""Value types exchanged between the local store, the resolver and the engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional

from pedidolist.core.enums import EntityType, SyncStatus


@dataclass
class EntityRecord:
    """An order or product with its synchronization metadata.

    ``payload`` holds the canonical JSON form of the business fields (see
    ``pedidolist.schemas.normalize_payload``).  The same type describes the
    server's copy of a record, in which case ``local_id`` may be unknown and
    ``sync_status`` is always ``synced``.
    """

    entity_type: EntityType
    payload: Dict[str, Any]
    local_id: Optional[str] = None
    server_id: Optional[str] = None
    version: int = 0
    last_modified_at: Optional[datetime] = None
    sync_status: SyncStatus = SyncStatus.PENDING
    is_deleted: bool = False

    def with_changes(self, **changes: Any) -> "EntityRecord":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.payload,
            "local_id": self.local_id,
            "server_id": self.server_id,
            "version": self.version,
            "last_modified_at": self.last_modified_at,
            "sync_status": self.sync_status.value,
        }


class Winner(str, enum.Enum):
    LOCAL = "local"
    SERVER = "server"
    MANUAL = "manual"


@dataclass(frozen=True)
class ConflictResolution:
    """Outcome of a conflict: consumed immediately, never persisted.

    For ``manual`` nothing is resolved: ``resolved`` is the untouched local
    copy and ``server`` carries the competing one for a human to compare.
    """

    winner: Winner
    resolved: EntityRecord
    server: Optional[EntityRecord] = None


@dataclass
class SyncReport:
    """Counters for one drain cycle."""

    trigger: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    processed: int = 0
    synced: int = 0
    failed: int = 0
    blocked: int = 0
    conflicts: int = 0
    skipped: int = 0
    remaining: int = 0
    cancelled: bool = False
    error: Optional[str] = None
    errors: list = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def ok(self) -> bool:
        """Cycle completed and no item failed."""
        return self.error is None and self.failed == 0 and self.blocked == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trigger": self.trigger,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": round(self.duration_seconds, 3),
            "processed": self.processed,
            "synced": self.synced,
            "failed": self.failed,
            "blocked": self.blocked,
            "conflicts": self.conflicts,
            "skipped": self.skipped,
            "remaining": self.remaining,
            "cancelled": self.cancelled,
            "error": self.error,
            "errors": list(self.errors),
        }
