"""Tests for the offline/sync metrics reporter."""

from datetime import timedelta

import pytest

from pedidolist.core.enums import EntityType, SyncAction
from pedidolist.services.sync.connectivity import ConnectivityMonitor
from pedidolist.services.sync.engine import SyncEngine
from pedidolist.services.sync.events import ConnectivityEvent, SyncCompleted, SyncFailed, SyncStarted, SyncTrigger
from pedidolist.services.sync.metrics import SyncMetricsReporter
from pedidolist.services.sync.types import EntityRecord, SyncReport

from tests.fakes import order_payload


def _report(clock, seconds=2.0, **counts) -> SyncReport:
    started = clock()
    return SyncReport(trigger="manual", started_at=started, finished_at=started + timedelta(seconds=seconds), **counts)


class TestSyncMetricsReporter:

    def test_defaults(self, clock):
        reporter = SyncMetricsReporter(clock=clock)
        snapshot = reporter.snapshot()

        assert reporter.success_rate == 100.0
        assert snapshot["sync_attempts"] == 0
        assert snapshot["last_sync_at"] is None
        assert snapshot["session_stats"] is None

    def test_success_rate_and_average_duration(self, clock):
        reporter = SyncMetricsReporter(clock=clock)
        for report in (_report(clock, 2.0, synced=1), _report(clock, 4.0, synced=2), _report(clock, 1.0, failed=1)):
            reporter.on_sync_event(SyncStarted(trigger=SyncTrigger.MANUAL, at=clock(), pending=1))
            reporter.on_sync_event(SyncCompleted(report=report, at=clock()))

        assert reporter.sync_attempts == 3
        assert reporter.successful_syncs == 2
        assert reporter.failed_syncs == 1
        assert reporter.success_rate == pytest.approx(66.666, rel=1e-3)
        assert reporter.average_sync_seconds == pytest.approx(3.0)
        assert reporter.items_synced == 3
        assert reporter.items_failed == 1

    def test_aborted_cycle_records_error(self, clock):
        reporter = SyncMetricsReporter(clock=clock)
        reporter.on_sync_event(SyncFailed(trigger=SyncTrigger.PERIODIC, error="boom", at=clock(), duration_seconds=0.1))

        assert reporter.failed_syncs == 1
        assert reporter.last_error == "boom"
        assert reporter.success_rate == 0.0

    def test_offline_sessions(self, clock):
        reporter = SyncMetricsReporter(clock=clock)

        reporter.on_connectivity(ConnectivityEvent.WENT_OFFLINE)
        clock.advance(seconds=30)
        assert reporter.offline_seconds == pytest.approx(30)
        reporter.on_connectivity(ConnectivityEvent.WENT_ONLINE)

        reporter.on_connectivity(ConnectivityEvent.WENT_OFFLINE)
        clock.advance(seconds=90)
        reporter.on_connectivity(ConnectivityEvent.WENT_ONLINE)

        assert reporter.offline_sessions == 2
        assert reporter.offline_seconds == pytest.approx(120)
        stats = reporter.session_stats()
        assert stats["longest_seconds"] == 90
        assert stats["shortest_seconds"] == 30
        assert stats["average_seconds"] == 60

    def test_heartbeat_rate(self, clock):
        reporter = SyncMetricsReporter(clock=clock)
        reporter.record_heartbeat(True)
        reporter.record_heartbeat(True)
        reporter.record_heartbeat(False)
        reporter.record_heartbeat(True)

        assert reporter.heartbeat_success_rate == 75.0

    def test_reset(self, clock):
        reporter = SyncMetricsReporter(clock=clock)
        reporter.on_connectivity(ConnectivityEvent.WENT_OFFLINE)
        reporter.on_sync_event(SyncFailed(trigger=SyncTrigger.MANUAL, error="x", at=clock(), duration_seconds=0))

        reporter.reset()

        assert reporter.snapshot()["failed_syncs"] == 0
        assert reporter.current_session is None
        assert reporter.offline_seconds == 0

    @pytest.mark.asyncio
    async def test_attached_reporter_observes_engine(self, store, remote, clock):
        monitor = ConnectivityMonitor(initial_online=False, quiet_period=0, clock=clock)
        engine = SyncEngine(store, remote, monitor=monitor, clock=clock)
        reporter = SyncMetricsReporter(clock=clock)
        reporter.attach(engine, monitor)
        await store.record_mutation(EntityType.ORDER, SyncAction.CREATE, EntityRecord(EntityType.ORDER, order_payload()))

        clock.advance(seconds=45)
        monitor.report(True)
        await engine.sync(SyncTrigger.MANUAL)

        assert reporter.offline_sessions == 1
        assert reporter.total_offline_seconds == pytest.approx(45)
        assert reporter.sync_attempts == 1
        assert reporter.successful_syncs == 1
        assert reporter.items_synced == 1

        reporter.detach()
        await engine.sync(SyncTrigger.MANUAL)
        assert reporter.sync_attempts == 1
