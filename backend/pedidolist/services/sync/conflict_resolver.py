"""
Conflict Resolver

Pure decision functions used by the sync engine when the local copy of an
entity and the server copy disagree.

Staleness is decided by ``version`` alone: a conflict exists only when the
local record has unsynced changes, the server moved past the version the
local record was based on, and the business payloads differ.  The winner is
then decided by ``last_modified_at``: whole-record last-write-wins, with ties
going to the server so every replica converges.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from pedidolist.core.enums import EntityType, SyncStatus
from pedidolist.services.sync.types import ConflictResolution, EntityRecord, Winner

logger = logging.getLogger(__name__)

LAST_WRITE_WINS = "last_write_wins"
SERVER_WINS = "server_wins"
CLIENT_WINS = "client_wins"
MANUAL = "manual"
STRATEGIES = (LAST_WRITE_WINS, SERVER_WINS, CLIENT_WINS, MANUAL)

# Records without a timestamp lose every comparison
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _timestamp(record: EntityRecord) -> datetime:
    value: Optional[datetime] = record.last_modified_at
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def payloads_differ(local: EntityRecord, server: EntityRecord) -> bool:
    """True when any business field differs. Sync metadata is ignored."""
    if local.is_deleted != server.is_deleted:
        return True
    return local.payload != server.payload


def detect_conflict(local: EntityRecord, server: EntityRecord) -> bool:
    """Does the server copy reflect a concurrent edit of a locally changed record?"""
    if local.sync_status is SyncStatus.SYNCED:
        # No local changes: the server copy simply replaces ours
        return False
    if server.version <= local.version:
        return False
    return payloads_differ(local, server)


def keep_local(local: EntityRecord, server: EntityRecord) -> ConflictResolution:
    # Rebased on the server version so the write is not rejected as stale
    resolved = local.with_changes(
        server_id=server.server_id or local.server_id,
        version=max(local.version, server.version),
    )
    return ConflictResolution(winner=Winner.LOCAL, resolved=resolved)


def keep_server(local: EntityRecord, server: EntityRecord) -> ConflictResolution:
    resolved = server.with_changes(
        entity_type=local.entity_type,
        local_id=local.local_id,
        server_id=server.server_id or local.server_id,
        sync_status=SyncStatus.SYNCED,
        is_deleted=False,
    )
    return ConflictResolution(winner=Winner.SERVER, resolved=resolved)


def resolve_last_write_wins(
    local: EntityRecord,
    server: EntityRecord,
    entity_type: EntityType,
) -> ConflictResolution:
    """The strictly later ``last_modified_at`` wins the whole record; ties go to the server."""
    local_time = _timestamp(local)
    server_time = _timestamp(server)
    if local_time > server_time:
        resolution = keep_local(local, server)
    else:
        resolution = keep_server(local, server)
    logger.info(
        f"Conflict on {EntityType(entity_type).value} {local.local_id}: "
        f"local={local_time.isoformat()} server={server_time.isoformat()} "
        f"-> {resolution.winner.value} wins"
    )
    return resolution


def resolve_with_strategy(
    local: EntityRecord,
    server: EntityRecord,
    entity_type: EntityType,
    strategy: str = LAST_WRITE_WINS,
) -> ConflictResolution:
    if strategy == LAST_WRITE_WINS:
        return resolve_last_write_wins(local, server, entity_type)
    if strategy == SERVER_WINS:
        return keep_server(local, server)
    if strategy == CLIENT_WINS:
        return keep_local(local, server)
    if strategy == MANUAL:
        logger.info(f"Conflict on {EntityType(entity_type).value} {local.local_id} left for manual review")
        return ConflictResolution(winner=Winner.MANUAL, resolved=local, server=server)
    raise ValueError(f"Unknown conflict strategy: {strategy}")


class ConflictResolver:
    """Binds a resolution strategy for the engine."""

    def __init__(self, strategy: str = LAST_WRITE_WINS):
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown conflict strategy: {strategy}")
        self.strategy = strategy

    def detect(self, local: EntityRecord, server: EntityRecord) -> bool:
        return detect_conflict(local, server)

    def resolve(self, local: EntityRecord, server: EntityRecord, entity_type: EntityType) -> ConflictResolution:
        return resolve_with_strategy(local, server, entity_type, self.strategy)
