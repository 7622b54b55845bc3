"""Wires the sync components together and owns their lifecycle."""

import logging
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.orm import sessionmaker

from pedidolist.core.alerting import AlertManager
from pedidolist.core.config import Settings
from pedidolist.core.enums import EntityType, SyncAction
from pedidolist.services.scheduler_service import TaskScheduler
from pedidolist.services.sync.conflict_resolver import ConflictResolver
from pedidolist.services.sync.connectivity import ConnectivityMonitor
from pedidolist.services.sync.engine import SyncEngine
from pedidolist.services.sync.events import SyncTrigger
from pedidolist.services.sync.local_store import LocalStore
from pedidolist.services.sync.metrics import SyncMetricsReporter
from pedidolist.services.sync.remote_api import RemoteApiClient, TokenProvider
from pedidolist.services.sync.types import EntityRecord

logger = logging.getLogger(__name__)

RETENTION_INTERVAL_SECONDS = 24 * 60 * 60


class SyncRuntime:
    """Everything the local API needs to run offline-first.

    Built once per application from settings; tests build their own with a
    mock transport and an in-memory session factory.
    """

    def __init__(
        self,
        settings: Settings,
        session_factory: sessionmaker,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        token_provider: Optional[TokenProvider] = None,
        initial_online: bool = True,
    ):
        self.settings = settings
        self.alerts = AlertManager()
        self.store = LocalStore(session_factory)
        self.remote = RemoteApiClient(
            settings.remote_api_url,
            token=settings.remote_api_token,
            token_provider=token_provider,
            timeout=settings.request_timeout_seconds,
            probe_path=settings.connectivity_probe_path,
            transport=transport,
        )
        self.metrics = SyncMetricsReporter()
        self.monitor = ConnectivityMonitor(
            initial_online=initial_online,
            quiet_period=settings.connectivity_quiet_period,
            probe=self._heartbeat,
            probe_interval=settings.connectivity_probe_interval_seconds,
        )
        self.engine = SyncEngine(
            self.store,
            self.remote,
            monitor=self.monitor,
            resolver=ConflictResolver(settings.sync_conflict_strategy),
            notifier=self.alerts,
            backoff_base=settings.sync_backoff_base_seconds,
            backoff_cap=settings.sync_backoff_cap_seconds,
            max_retries=settings.sync_max_retries,
        )
        self.scheduler = TaskScheduler(tick_seconds=settings.scheduler_tick_seconds)
        self.metrics.attach(self.engine, self.monitor)
        self._started = False

    async def _heartbeat(self) -> bool:
        reachable = await self.remote.ping()
        self.metrics.record_heartbeat(reachable)
        return reachable

    async def periodic_sync(self) -> None:
        await self.engine.sync(SyncTrigger.PERIODIC)

    async def expire_stale_records(self) -> int:
        days_left = await self.store.expire_stale_records(self.settings.retention_days)
        if days_left <= 3:
            self.alerts.alert(
                "warning",
                "Local data expiring",
                f"Oldest synced records expire in {days_left} days",
                source="storage",
            )
        return days_left

    async def start(self) -> None:
        if self._started:
            return
        await self.engine.init()
        await self.monitor.init()
        if self.settings.periodic_sync_enabled and self.settings.sync_interval_seconds > 0:
            self.scheduler.add_task("periodic-sync", self.periodic_sync, self.settings.sync_interval_seconds)
        self.scheduler.add_task("storage-retention", self.expire_stale_records, RETENTION_INTERVAL_SECONDS)
        self.scheduler.start_background()
        self._started = True
        logger.info(f"Sync runtime started against {self.settings.remote_api_url}")

    async def stop(self) -> None:
        if not self._started:
            return
        await self.scheduler.stop()
        await self.engine.dispose()
        await self.monitor.dispose()
        self.metrics.detach()
        await self.remote.close()
        self._started = False
        logger.info("Sync runtime stopped")

    async def record_mutation(
        self,
        entity_type: EntityType,
        action: SyncAction,
        entity: EntityRecord,
    ) -> EntityRecord:
        """UI write path: persist and enqueue, then try the network right away."""
        record = await self.store.record_mutation(entity_type, action, entity)
        if self.monitor.is_online:
            self.engine.schedule(SyncTrigger.MUTATION)
        return record

    async def status(self) -> Dict[str, Any]:
        pending = await self.store.pending_count()
        blocked = await self.store.blocked_count()
        days_left = await self.store.days_until_expiry(self.settings.retention_days)
        offline_since = self.monitor.offline_since
        return {
            "state": self.engine.state.value,
            "online": self.monitor.is_online,
            "offline_since": offline_since.isoformat() if offline_since else None,
            "pending_items": pending,
            "blocked_items": blocked,
            "days_until_expiry": days_left,
            "last_error": self.engine.last_error,
            "last_report": self.engine.last_report.to_dict() if self.engine.last_report else None,
            "metrics": self.metrics.snapshot(),
            "scheduler": self.scheduler.get_status(),
        }

    async def prometheus_snapshot(self) -> Dict[str, Any]:
        snapshot = self.metrics.snapshot()
        snapshot["pending_items"] = await self.store.pending_count()
        snapshot["blocked_items"] = await self.store.blocked_count()
        snapshot["online"] = self.monitor.is_online
        return snapshot
