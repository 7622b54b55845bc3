"""
Sync Engine

Drains the local sync queue against the remote API.

State machine: ``idle -> syncing -> idle`` for a cycle that ran to the end,
``syncing -> error`` when an unexpected exception aborted it.  Only one cycle
runs at a time; a trigger that arrives mid-cycle is dropped and the next
natural trigger picks up what is left.

Items are processed one at a time in FIFO order.  Each item's outcome is
committed before the next one starts, and per-item failures never abort the
cycle:

- transient remote errors and local storage failures bump ``retries``
- client errors (401/403/400/404), missing entities and conflicts left for
  manual review block the item until a human requeues or resolves it
- once an item of an entity fails, later items of that entity wait for the
  next cycle so its mutations keep their order
"""

import asyncio
import enum
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Set, Tuple

from pedidolist.core.alerting import AlertManager
from pedidolist.core.enums import EntityType, QueueItemStatus, SyncStatus
from pedidolist.db.base import utcnow
from pedidolist.models.sync_queue import SyncQueueItem
from pedidolist.services.sync.conflict_resolver import ConflictResolver, keep_local, keep_server
from pedidolist.services.sync.connectivity import ConnectivityMonitor
from pedidolist.services.sync.events import (
    ConnectivityEvent,
    SyncCompleted,
    SyncEvent,
    SyncFailed,
    SyncStarted,
    SyncTrigger,
)
from pedidolist.services.sync.exceptions import (
    ConflictNeedsReviewError,
    LocalEntityMissingError,
    LocalStoreError,
    RemoteApiError,
    RemoteClientError,
    RemoteConflictError,
    RemoteNotFoundError,
)
from pedidolist.services.sync.local_store import LocalStore
from pedidolist.services.sync.remote_api import RemoteApiClient, parse_server_record
from pedidolist.services.sync.types import EntityRecord, SyncReport, Winner

logger = logging.getLogger(__name__)

SyncListener = Callable[[SyncEvent], None]


class SyncEngineState(str, enum.Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


def backoff_delay(retries: int, base: float, cap: float) -> float:
    """Seconds an item waits after its ``retries``-th failure."""
    if retries <= 0:
        return 0.0
    return min(base * (2 ** (retries - 1)), cap)


class SyncEngine:
    """Orchestrates queue draining, conflict resolution and status reporting."""

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteApiClient,
        monitor: Optional[ConnectivityMonitor] = None,
        resolver: Optional[ConflictResolver] = None,
        notifier: Optional[AlertManager] = None,
        backoff_base: float = 1.0,
        backoff_cap: float = 300.0,
        max_retries: int = 10,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._remote = remote
        self._monitor = monitor
        self._resolver = resolver or ConflictResolver()
        self._notifier = notifier
        self._backoff_base = backoff_base
        self._backoff_cap = backoff_cap
        self._max_retries = max_retries
        self._clock = clock

        self.state = SyncEngineState.IDLE
        self.last_report: Optional[SyncReport] = None
        self.last_error: Optional[str] = None

        self._listeners: List[SyncListener] = []
        self._tasks: Set[asyncio.Task] = set()
        self._cancel_requested = False
        self._unsubscribe_monitor: Optional[Callable[[], None]] = None

    @property
    def is_syncing(self) -> bool:
        return self.state is SyncEngineState.SYNCING

    # ------------------------------------------------------------------ lifecycle

    async def init(self) -> None:
        """Subscribe to connectivity so a reconnect starts exactly one cycle."""
        if self._monitor is not None and self._unsubscribe_monitor is None:
            self._unsubscribe_monitor = self._monitor.subscribe(self._on_connectivity)

    async def dispose(self) -> None:
        """Stop reacting to triggers; a running cycle stops after its current item."""
        if self._unsubscribe_monitor is not None:
            self._unsubscribe_monitor()
            self._unsubscribe_monitor = None
        self.request_cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._listeners.clear()

    def subscribe(self, listener: SyncListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def request_cancel(self) -> None:
        """Ask the running cycle to stop at the next item boundary."""
        if self.is_syncing:
            self._cancel_requested = True

    def _emit(self, event: SyncEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Sync listener failed on {type(event).__name__}")

    def _on_connectivity(self, event: ConnectivityEvent) -> None:
        if event is ConnectivityEvent.WENT_ONLINE:
            self.schedule(SyncTrigger.RECONNECT)

    def schedule(self, trigger: SyncTrigger) -> Optional[asyncio.Task]:
        """Start a cycle in the background. No-op while one is running."""
        if self.is_syncing:
            logger.debug(f"Sync trigger '{SyncTrigger(trigger).value}' ignored: cycle in progress")
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                f"Sync trigger '{SyncTrigger(trigger).value}' dropped: no running event loop "
                "(report connectivity after init() or from inside the loop)"
            )
            return None
        task = loop.create_task(self.sync(trigger))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------ cycle

    async def sync(
        self,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
        force: Optional[bool] = None,
    ) -> Optional[SyncReport]:
        """Run one drain cycle.

        Returns None when the cycle did not start (already syncing or offline).
        ``force`` ignores per-item backoff and defaults to True for manual runs.
        """
        trigger = SyncTrigger(trigger)
        if self.is_syncing:
            logger.debug(f"Sync trigger '{trigger.value}' ignored: cycle in progress")
            return None
        if self._monitor is not None and not self._monitor.is_online:
            logger.debug(f"Sync trigger '{trigger.value}' ignored: offline")
            return None
        if force is None:
            force = trigger is SyncTrigger.MANUAL

        self.state = SyncEngineState.SYNCING
        self._cancel_requested = False
        report = SyncReport(trigger=trigger.value, started_at=self._clock())
        try:
            items = await self._store.list_pending()
            self._emit(SyncStarted(trigger=trigger, at=report.started_at, pending=len(items)))
            logger.info(f"Sync started ({trigger.value}): {len(items)} queued items")

            await self._drain(items, report, force)
            report.remaining = await self._store.pending_count()
        except Exception as e:
            report.error = str(e) or type(e).__name__
            report.finished_at = self._clock()
            self.state = SyncEngineState.ERROR
            self.last_error = report.error
            self.last_report = report
            logger.exception(f"Sync cycle aborted ({trigger.value})")
            self._emit(SyncFailed(
                trigger=trigger,
                error=report.error,
                at=report.finished_at,
                duration_seconds=report.duration_seconds,
            ))
            if self._notifier is not None:
                self._notifier.alert("critical", "Sync cycle aborted", report.error, source="sync")
            return report
        finally:
            if self.state is SyncEngineState.SYNCING and report.finished_at is None:
                # Cancelled from outside (task.cancel()): leave the machine usable
                self.state = SyncEngineState.IDLE

        report.finished_at = self._clock()
        self.state = SyncEngineState.IDLE
        self.last_report = report
        if report.errors:
            self.last_error = report.errors[-1]
        logger.info(
            f"Sync finished ({trigger.value}) in {report.duration_seconds:.2f}s: "
            f"{report.synced} synced, {report.failed} failed, {report.blocked} blocked, "
            f"{report.conflicts} conflicts, {report.skipped} skipped, {report.remaining} remaining"
        )
        self._emit(SyncCompleted(report=report, at=report.finished_at))
        return report

    def _backoff_elapsed(self, item: SyncQueueItem) -> bool:
        if not item.retries or item.last_attempt_at is None:
            return True
        delay = backoff_delay(item.retries, self._backoff_base, self._backoff_cap)
        return self._clock() >= item.last_attempt_at + timedelta(seconds=delay)

    async def _drain(self, items: List[SyncQueueItem], report: SyncReport, force: bool) -> None:
        halted: Set[Tuple[str, str]] = set()
        consumed: Dict[Tuple[str, str], int] = {}

        for item in items:
            if self._cancel_requested:
                report.cancelled = True
                logger.info("Sync cancelled between items")
                break

            key = (item.entity_type, item.entity_id)
            if key in consumed and item.id <= consumed[key]:
                # Already covered by an earlier submission of the same entity
                continue
            if item.status == QueueItemStatus.BLOCKED.value:
                halted.add(key)
                continue
            if key in halted:
                report.skipped += 1
                continue
            if not force and not self._backoff_elapsed(item):
                halted.add(key)
                report.skipped += 1
                continue

            report.processed += 1
            through = await self._process_item(item, report)
            if through is None:
                halted.add(key)
            else:
                consumed[key] = through

    async def _process_item(self, item: SyncQueueItem, report: SyncReport) -> Optional[int]:
        """Sync one item. Returns the last queue id it covered, or None on failure."""
        entity_type = EntityType(item.entity_type)
        try:
            # Read the queue position before the entity so no mutation is acknowledged unsent
            through = await self._store.latest_queue_id(entity_type, item.entity_id) or item.id
            local = await self._store.get(entity_type, item.entity_id)
            if local is None:
                raise LocalEntityMissingError(entity_type.value, item.entity_id)
            await self._push(entity_type, local, through, report)
        except (RemoteClientError, LocalEntityMissingError, ConflictNeedsReviewError) as e:
            await self._block(item, e, report)
            return None
        except (RemoteApiError, LocalStoreError) as e:
            await self._fail(item, e, report)
            return None

        report.synced += 1
        logger.debug(f"Synced {item.action} of {entity_type.value} {item.entity_id}")
        return through

    async def _fetch_for_comparison(self, entity_type: EntityType, server_id: str) -> Optional[EntityRecord]:
        """Best effort: without server state we proceed optimistically."""
        try:
            return await self._remote.fetch(entity_type, server_id)
        except RemoteApiError as e:
            logger.info(f"Could not fetch server copy of {entity_type.value} {server_id}: {e}")
            return None

    async def _push(
        self,
        entity_type: EntityType,
        local: EntityRecord,
        through: int,
        report: SyncReport,
    ) -> None:
        server = None
        if local.server_id:
            server = await self._fetch_for_comparison(entity_type, local.server_id)

        conflict_retried = False
        while True:
            if server is not None:
                if self._resolver.detect(local, server):
                    report.conflicts += 1
                    resolution = self._resolver.resolve(local, server, entity_type)
                    if resolution.winner is Winner.MANUAL:
                        raise ConflictNeedsReviewError(
                            entity_type.value, local.local_id,
                            resolution.resolved.to_dict(), resolution.server.to_dict(),
                        )
                    if resolution.winner is Winner.SERVER:
                        await self._store.apply_server_record(
                            entity_type, local.local_id, resolution.resolved,
                            through_queue_id=through, overwrite_payload=True,
                        )
                        return
                    local = resolution.resolved
                elif server.version > local.version:
                    # Server already holds this content under a newer version
                    await self._store.apply_server_record(
                        entity_type, local.local_id, server, through_queue_id=through,
                    )
                    return

            try:
                await self._submit(entity_type, local, through)
                return
            except RemoteConflictError as e:
                if conflict_retried:
                    raise
                conflict_retried = True
                logger.info(f"Server reported a conflict on {entity_type.value} {local.local_id}; re-checking")
                server = None
                if e.current:
                    server = parse_server_record(entity_type, e.current)
                elif local.server_id:
                    server = await self._fetch_for_comparison(entity_type, local.server_id)
                if server is None:
                    raise

    async def _submit(self, entity_type: EntityType, local: EntityRecord, through: int) -> None:
        if local.is_deleted:
            if local.server_id:
                try:
                    await self._remote.delete(local)
                except RemoteNotFoundError:
                    logger.debug(f"{entity_type.value} {local.server_id} already gone on server")
            await self._store.purge(entity_type, local.local_id, through_queue_id=through)
            return

        if local.server_id:
            record = await self._remote.update(local)
        else:
            # Never acknowledged by the server: replays stay idempotent on the client id
            record = await self._remote.create(local)
        await self._store.apply_server_record(entity_type, local.local_id, record, through_queue_id=through)

    async def resolve_conflict(self, queue_id: int, keep: Winner) -> Optional[EntityRecord]:
        """Apply a human's choice for a conflict parked by the ``manual`` strategy.

        Keeping the server copy overwrites the local entity and drops its
        queued mutations.  Keeping the local copy rebases it on the server
        version and requeues the item so the next cycle pushes it.  Returns
        None when the queue item does not exist.
        """
        keep = Winner(keep)
        if keep is Winner.MANUAL:
            raise ValueError("keep must be 'local' or 'server'")
        item = await self._store.get_queue_item(queue_id)
        if item is None:
            return None
        entity_type = EntityType(item.entity_type)
        local = await self._store.get(entity_type, item.entity_id)
        if local is None:
            raise LocalEntityMissingError(entity_type.value, item.entity_id)

        server = await self._remote.fetch(entity_type, local.server_id) if local.server_id else None
        if server is None:
            # Nothing left to compare against: push the mutation as queued
            await self._store.requeue(queue_id)
            return await self._store.get(entity_type, local.local_id)

        if keep is Winner.SERVER:
            through = await self._store.latest_queue_id(entity_type, local.local_id)
            record = await self._store.apply_server_record(
                entity_type, local.local_id, keep_server(local, server).resolved,
                through_queue_id=through, overwrite_payload=True,
            )
        else:
            rebased = keep_local(local, server).resolved.with_changes(sync_status=SyncStatus.PENDING)
            await self._store.put(entity_type, rebased)
            await self._store.requeue(queue_id)
            record = await self._store.get(entity_type, local.local_id)
        logger.info(f"Conflict on {entity_type.value} {local.local_id} resolved manually: kept {keep.value}")
        return record

    async def _fail(self, item: SyncQueueItem, error: Exception, report: SyncReport) -> None:
        message = str(error) or type(error).__name__
        report.failed += 1
        report.errors.append(message)
        logger.warning(f"Sync of {item.entity_type} {item.entity_id} failed: {message}")
        try:
            retries = await self._store.increment_retry(item.id, message)
        except LocalStoreError as e:
            logger.error(f"Could not record retry for queue item {item.id}: {e}")
            return
        if self._max_retries and retries >= self._max_retries:
            await self._block(item, error, report, count=False)

    async def _block(
        self,
        item: SyncQueueItem,
        error: Exception,
        report: SyncReport,
        count: bool = True,
    ) -> None:
        message = str(error) or type(error).__name__
        if count:
            report.blocked += 1
            report.errors.append(message)
        logger.warning(f"Queue item {item.id} ({item.action} {item.entity_type} {item.entity_id}) blocked: {message}")
        try:
            await self._store.mark_blocked(item.id, message)
        except LocalStoreError as e:
            logger.error(f"Could not block queue item {item.id}: {e}")
            return
        if self._notifier is not None:
            self._notifier.alert(
                "warning",
                "Sync needs attention",
                f"{item.action} of {item.entity_type} {item.entity_id} blocked: {message}",
                source="sync",
            )
