"""Offline and sync metrics.

Read-only observer of the sync engine and connectivity monitor: it only
subscribes to their events and never calls back into them.
"""

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

from pedidolist.db.base import utcnow
from pedidolist.services.sync.connectivity import ConnectivityMonitor
from pedidolist.services.sync.engine import SyncEngine
from pedidolist.services.sync.events import (
    ConnectivityEvent,
    SyncCompleted,
    SyncEvent,
    SyncFailed,
    SyncStarted,
)

logger = logging.getLogger(__name__)

MAX_SESSION_HISTORY = 50


@dataclass
class OfflineSession:
    started_at: datetime
    ended_at: Optional[datetime] = None
    sync_attempts: int = 0

    @property
    def duration_seconds(self) -> float:
        if self.ended_at is None:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class SyncMetricsReporter:
    """Aggregates offline sessions, sync cycles and heartbeat results."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._unsubscribers: List[Callable[[], None]] = []
        self.reset()

    def reset(self) -> None:
        self.total_offline_seconds = 0.0
        self.offline_sessions = 0
        self.sync_attempts = 0
        self.successful_syncs = 0
        self.failed_syncs = 0
        self.average_sync_seconds = 0.0
        self.last_sync_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.items_synced = 0
        self.items_failed = 0
        self.conflicts = 0
        self.total_heartbeats = 0
        self.failed_heartbeats = 0
        self.history: Deque[OfflineSession] = deque(maxlen=MAX_SESSION_HISTORY)
        self.current_session: Optional[OfflineSession] = None

    # ------------------------------------------------------------------ wiring

    def attach(self, engine: SyncEngine, monitor: Optional[ConnectivityMonitor] = None) -> None:
        self._unsubscribers.append(engine.subscribe(self.on_sync_event))
        if monitor is not None:
            self._unsubscribers.append(monitor.subscribe(self.on_connectivity))
            if not monitor.is_online:
                self.current_session = OfflineSession(started_at=monitor.offline_since or self._clock())

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    # ------------------------------------------------------------------ events

    def on_connectivity(self, event: ConnectivityEvent) -> None:
        now = self._clock()
        if event is ConnectivityEvent.WENT_OFFLINE:
            if self.current_session is None:
                self.current_session = OfflineSession(started_at=now)
            return

        session = self.current_session
        if session is None:
            return
        session.ended_at = now
        self.total_offline_seconds += session.duration_seconds
        self.offline_sessions += 1
        self.history.append(session)
        self.current_session = None
        logger.debug(f"Offline session ended after {session.duration_seconds:.1f}s")

    def on_sync_event(self, event: SyncEvent) -> None:
        if isinstance(event, SyncStarted):
            self.sync_attempts += 1
            if self.current_session is not None:
                self.current_session.sync_attempts += 1
        elif isinstance(event, SyncCompleted):
            report = event.report
            self.last_sync_at = event.at
            self.items_synced += report.synced
            self.items_failed += report.failed + report.blocked
            self.conflicts += report.conflicts
            if report.ok:
                self.average_sync_seconds = (
                    self.average_sync_seconds * self.successful_syncs + report.duration_seconds
                ) / (self.successful_syncs + 1)
                self.successful_syncs += 1
            else:
                self.failed_syncs += 1
                if report.errors:
                    self.last_error = report.errors[-1]
        elif isinstance(event, SyncFailed):
            self.last_sync_at = event.at
            self.failed_syncs += 1
            self.last_error = event.error

    def record_heartbeat(self, success: bool) -> None:
        self.total_heartbeats += 1
        if not success:
            self.failed_heartbeats += 1

    # ------------------------------------------------------------------ derived

    @property
    def success_rate(self) -> float:
        """Percentage of finished cycles that succeeded; 100 before any attempt."""
        finished = self.successful_syncs + self.failed_syncs
        if finished == 0:
            return 100.0
        return self.successful_syncs / finished * 100

    @property
    def heartbeat_success_rate(self) -> float:
        if self.total_heartbeats == 0:
            return 100.0
        return (self.total_heartbeats - self.failed_heartbeats) / self.total_heartbeats * 100

    @property
    def offline_seconds(self) -> float:
        """Total offline time, including the session still open."""
        total = self.total_offline_seconds
        if self.current_session is not None:
            total += (self._clock() - self.current_session.started_at).total_seconds()
        return total

    def session_stats(self) -> Optional[Dict[str, float]]:
        if not self.history:
            return None
        durations = [s.duration_seconds for s in self.history]
        return {
            "total_sessions": len(durations),
            "average_seconds": round(sum(durations) / len(durations), 3),
            "longest_seconds": round(max(durations), 3),
            "shortest_seconds": round(min(durations), 3),
        }

    def snapshot(self) -> Dict[str, Any]:
        return {
            "offline_seconds": round(self.offline_seconds, 3),
            "offline_sessions": self.offline_sessions,
            "currently_offline": self.current_session is not None,
            "sync_attempts": self.sync_attempts,
            "successful_syncs": self.successful_syncs,
            "failed_syncs": self.failed_syncs,
            "success_rate": round(self.success_rate, 2),
            "average_sync_seconds": round(self.average_sync_seconds, 3),
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "last_error": self.last_error,
            "items_synced": self.items_synced,
            "items_failed": self.items_failed,
            "conflicts": self.conflicts,
            "heartbeat_success_rate": round(self.heartbeat_success_rate, 2),
            "session_stats": self.session_stats(),
            "recent_sessions": [s.to_dict() for s in self.history],
        }
