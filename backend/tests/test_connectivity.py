"""Tests for the debounced connectivity monitor."""

import asyncio
import threading

import pytest

from pedidolist.services.sync.connectivity import ConnectivityMonitor
from pedidolist.services.sync.events import ConnectivityEvent


def _recording(monitor):
    events = []
    monitor.subscribe(events.append)
    return events


class TestTransitions:

    def test_initial_state(self):
        monitor = ConnectivityMonitor(initial_online=False)
        assert monitor.is_online is False
        assert monitor.offline_since is not None

    def test_zero_quiet_period_settles_immediately(self):
        monitor = ConnectivityMonitor(quiet_period=0)
        events = _recording(monitor)

        monitor.report(False)
        monitor.report(True)

        assert events == [ConnectivityEvent.WENT_OFFLINE, ConnectivityEvent.WENT_ONLINE]
        assert monitor.offline_since is None

    def test_repeated_observation_emits_nothing(self):
        monitor = ConnectivityMonitor(quiet_period=0)
        events = _recording(monitor)

        monitor.report(True)
        monitor.report(True)

        assert events == []

    def test_unsubscribe(self):
        monitor = ConnectivityMonitor(quiet_period=0)
        events = []
        unsubscribe = monitor.subscribe(events.append)
        unsubscribe()

        monitor.report(False)

        assert events == []

    def test_failing_listener_is_isolated(self):
        monitor = ConnectivityMonitor(quiet_period=0)

        def broken(event):
            raise RuntimeError("listener bug")

        monitor.subscribe(broken)
        events = _recording(monitor)
        monitor.report(False)

        assert events == [ConnectivityEvent.WENT_OFFLINE]


class TestDebounce:

    @pytest.mark.asyncio
    async def test_transition_waits_for_quiet_period(self):
        monitor = ConnectivityMonitor(initial_online=False, quiet_period=0.05)
        events = _recording(monitor)

        monitor.report(True)
        assert monitor.is_online is False

        await asyncio.sleep(0.1)
        assert monitor.is_online is True
        assert events == [ConnectivityEvent.WENT_ONLINE]

    @pytest.mark.asyncio
    async def test_flapping_is_suppressed(self):
        monitor = ConnectivityMonitor(initial_online=True, quiet_period=0.05)
        events = _recording(monitor)

        for _ in range(5):
            monitor.report(False)
            await asyncio.sleep(0.01)
            monitor.report(True)
            await asyncio.sleep(0.01)

        await asyncio.sleep(0.1)
        assert events == []
        assert monitor.is_online is True

    @pytest.mark.asyncio
    async def test_reconnect_emits_single_event(self):
        monitor = ConnectivityMonitor(initial_online=False, quiet_period=0.05)
        events = _recording(monitor)

        monitor.report(True)
        monitor.report(True)
        await asyncio.sleep(0.02)
        monitor.report(True)
        await asyncio.sleep(0.1)

        assert events == [ConnectivityEvent.WENT_ONLINE]

    @pytest.mark.asyncio
    async def test_dispose_cancels_pending_transition(self):
        monitor = ConnectivityMonitor(initial_online=False, quiet_period=0.05)
        events = _recording(monitor)

        monitor.report(True)
        await monitor.dispose()
        await asyncio.sleep(0.1)

        assert events == []
        assert monitor.is_online is False

    @pytest.mark.asyncio
    async def test_report_from_another_thread_runs_listeners_on_the_loop(self):
        monitor = ConnectivityMonitor(initial_online=False, quiet_period=0)
        await monitor.init()
        seen = []
        monitor.subscribe(lambda e: seen.append((e, threading.get_ident())))

        await asyncio.to_thread(monitor.report, True)
        await asyncio.sleep(0)

        assert seen == [(ConnectivityEvent.WENT_ONLINE, threading.get_ident())]
        assert monitor.is_online is True
        await monitor.dispose()


class TestHeartbeat:

    @pytest.mark.asyncio
    async def test_check_now_reports_probe_result(self):
        results = [False]

        async def probe():
            return results[0]

        monitor = ConnectivityMonitor(initial_online=True, quiet_period=0, probe=probe)

        assert await monitor.check_now() is False
        assert monitor.is_online is False

        results[0] = True
        assert await monitor.check_now() is True
        assert monitor.is_online is True

    @pytest.mark.asyncio
    async def test_probe_exception_counts_as_offline(self):
        async def probe():
            raise OSError("network unreachable")

        monitor = ConnectivityMonitor(initial_online=True, quiet_period=0, probe=probe)

        assert await monitor.check_now() is False
        assert monitor.is_online is False

    @pytest.mark.asyncio
    async def test_init_starts_probe_loop(self):
        calls = []

        async def probe():
            calls.append(1)
            return False

        monitor = ConnectivityMonitor(initial_online=True, quiet_period=0, probe=probe, probe_interval=0.01)
        await monitor.init()
        await asyncio.sleep(0.05)
        await monitor.dispose()

        assert len(calls) >= 2
        assert monitor.is_online is False

    @pytest.mark.asyncio
    async def test_no_probe_keeps_state(self):
        monitor = ConnectivityMonitor(initial_online=True)
        assert await monitor.check_now() is True
