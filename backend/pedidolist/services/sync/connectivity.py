"""
Connectivity Monitor

Single source of truth for the terminal's online/offline state.

Raw observations come from the heartbeat probe or from the platform via
``report()``.  A transition is only declared once the new state has held for
a quiet period, so a flapping link produces no events at all and a real
reconnect produces exactly one ``went-online``.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from pedidolist.db.base import utcnow
from pedidolist.services.sync.events import ConnectivityEvent

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[ConnectivityEvent], None]
Probe = Callable[[], Awaitable[bool]]


class ConnectivityMonitor:
    """Debounced online/offline state with change notifications."""

    def __init__(
        self,
        initial_online: bool = True,
        quiet_period: float = 0.5,
        probe: Optional[Probe] = None,
        probe_interval: float = 30.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._online = initial_online
        self._observed = initial_online
        self._quiet_period = quiet_period
        self._probe = probe
        self._probe_interval = probe_interval
        self._clock = clock
        self._offline_since: Optional[datetime] = None if initial_online else clock()
        self._listeners: List[ConnectivityListener] = []
        self._pending: Optional[asyncio.Task] = None
        self._probe_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def offline_since(self) -> Optional[datetime]:
        return self._offline_since

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------ lifecycle

    async def init(self) -> None:
        """Start the heartbeat probe loop when a probe is configured."""
        self._loop = asyncio.get_running_loop()
        if self._probe is not None and self._probe_interval > 0 and self._probe_task is None:
            self._probe_task = asyncio.create_task(self._probe_loop())
            logger.info(f"Connectivity heartbeat started (every {self._probe_interval}s)")

    async def dispose(self) -> None:
        for task in (self._pending, self._probe_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._pending = None
        self._probe_task = None
        self._listeners.clear()
        self._loop = None

    # ---------------------------------------------------------------- observations

    def report(self, online: bool) -> None:
        """Feed a raw observation. Transitions settle after the quiet period.

        Safe to call from any thread: once ``init()`` ran, observations made
        outside the event loop are handed to it so listeners always run there.
        """
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is None and self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self.report, online)
            return

        self._observed = online
        if online == self._online:
            if self._pending is not None and not self._pending.done():
                self._pending.cancel()
                logger.debug("Connectivity flap suppressed")
            self._pending = None
            return

        if self._pending is not None and not self._pending.done():
            return  # already counting down toward this state

        if self._quiet_period <= 0:
            self._settle(online)
            return

        if running is None:
            # No loop was ever attached: no timer available
            self._settle(online)
            return
        self._pending = running.create_task(self._settle_after_quiet_period())

    async def check_now(self) -> bool:
        """Run the probe once and report its result."""
        if self._probe is None:
            return self._online
        try:
            reachable = bool(await self._probe())
        except Exception as e:
            logger.debug(f"Connectivity probe failed: {e}")
            reachable = False
        self.report(reachable)
        return reachable

    async def _settle_after_quiet_period(self) -> None:
        await asyncio.sleep(self._quiet_period)
        self._pending = None
        if self._observed != self._online:
            self._settle(self._observed)

    async def _probe_loop(self) -> None:
        while True:
            await self.check_now()
            await asyncio.sleep(self._probe_interval)

    def _settle(self, online: bool) -> None:
        self._online = online
        if online:
            event = ConnectivityEvent.WENT_ONLINE
            self._offline_since = None
            logger.info("Back online")
        else:
            event = ConnectivityEvent.WENT_OFFLINE
            self._offline_since = self._clock()
            logger.info("Gone offline - mutations will queue until reconnect")

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Connectivity listener failed on {event.value}")
