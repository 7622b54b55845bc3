"""Offline synchronization: local store, connectivity, conflict resolution and the drain engine."""

from pedidolist.services.sync.conflict_resolver import ConflictResolver, detect_conflict, resolve_last_write_wins
from pedidolist.services.sync.connectivity import ConnectivityMonitor
from pedidolist.services.sync.engine import SyncEngine, SyncEngineState
from pedidolist.services.sync.events import ConnectivityEvent, SyncCompleted, SyncFailed, SyncStarted, SyncTrigger
from pedidolist.services.sync.local_store import LocalStore
from pedidolist.services.sync.metrics import SyncMetricsReporter
from pedidolist.services.sync.remote_api import RemoteApiClient
from pedidolist.services.sync.types import ConflictResolution, EntityRecord, SyncReport, Winner

__all__ = [
    "ConflictResolution",
    "ConflictResolver",
    "ConnectivityEvent",
    "ConnectivityMonitor",
    "EntityRecord",
    "LocalStore",
    "RemoteApiClient",
    "SyncCompleted",
    "SyncEngine",
    "SyncEngineState",
    "SyncFailed",
    "SyncMetricsReporter",
    "SyncReport",
    "SyncStarted",
    "SyncTrigger",
    "Winner",
    "detect_conflict",
    "resolve_last_write_wins",
]
