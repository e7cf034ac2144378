# pokerledger/services/sync_scheduler.py

import asyncio
import logging
from typing import Dict, Optional

from pokerledger.config import (
    ONLINE_DEBOUNCE_SECONDS,
    SYNC_INTERVAL_GOOD_SECONDS,
    SYNC_INTERVAL_POOR_SECONDS,
)
from pokerledger.services.autosave import AutoSaver
from pokerledger.services.sync_service import NetworkQuality, SyncCoordinator, SyncResult, SyncStatus
from pokerledger.services.sync_state import Trigger

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Turns environment events into sync attempts.

    Every trigger ends in ``SyncCoordinator.sync``, whose guard decides
    whether the attempt actually runs, so firing several triggers at once
    still produces at most one fetch.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        autosaver: AutoSaver,
        online_debounce: float = ONLINE_DEBOUNCE_SECONDS,
        intervals: Optional[Dict[NetworkQuality, float]] = None,
    ):
        self.coordinator = coordinator
        self.autosaver = autosaver
        self.online_debounce = online_debounce
        self.intervals = intervals or {
            NetworkQuality.GOOD: SYNC_INTERVAL_GOOD_SECONDS,
            NetworkQuality.POOR: SYNC_INTERVAL_POOR_SECONDS,
        }
        self._online_task: Optional[asyncio.Task] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._unsubscribe = []

    async def start(self) -> SyncResult:
        self._unsubscribe = [
            self.coordinator.sessions_changed.subscribe(self.autosaver.notify_changed),
            self.coordinator.saved.subscribe(self.autosaver.mark_saved),
            self.coordinator.status_changed.subscribe(self._on_status),
        ]
        self.autosaver.start()
        result = await self.coordinator.mount()
        self._restart_timer()
        return result

    # ─── environment events ───

    def on_online(self, quality: NetworkQuality = NetworkQuality.GOOD):
        self.coordinator.set_network(True, quality)
        self._cancel(self._online_task)
        self._online_task = asyncio.create_task(self._debounced_online())
        self._restart_timer()

    async def _debounced_online(self):
        try:
            await asyncio.sleep(self.online_debounce)
            await self.coordinator.sync(Trigger.ONLINE)
        except asyncio.CancelledError:
            pass

    def on_offline(self):
        self.coordinator.set_network(False)
        self._cancel(self._online_task)
        self._cancel(self._timer_task)
        self._cancel(self._retry_task)
        logger.info("Offline; periodic sync paused")

    def on_network_quality(self, quality: NetworkQuality):
        if quality != self.coordinator.network_quality:
            self.coordinator.set_network(self.coordinator.online, quality)
            self._restart_timer()

    async def on_visibility(self, visible: bool):
        if visible:
            await self.coordinator.sync(Trigger.VISIBILITY)
        else:
            await self.autosaver.on_hidden()

    async def request(self) -> SyncResult:
        return await self.coordinator.sync(Trigger.REQUEST)

    async def retry(self) -> SyncResult:
        """User-initiated retry: clears a stall or auth failure."""
        self._cancel(self._retry_task)
        return await self.coordinator.force_refresh()

    # ─── timers ───

    def _restart_timer(self):
        self._cancel(self._timer_task)
        if self.coordinator.online:
            self._timer_task = asyncio.create_task(self._timer_loop())

    async def _timer_loop(self):
        try:
            while True:
                await asyncio.sleep(self.intervals[self.coordinator.network_quality])
                await self.coordinator.sync(Trigger.TIMER)
        except asyncio.CancelledError:
            pass

    def _on_status(self, status: SyncStatus):
        # 失敗後、バックオフ時間が過ぎたら自動で再試行
        if status.next_retry_at is None or status.stalled or status.auth_required:
            return
        task = self._retry_task
        if task and not task.done() and task is not asyncio.current_task():
            return
        delay = max(0.0, status.next_retry_at - self.coordinator.clock())
        self._retry_task = asyncio.create_task(self._retry_after(delay))

    async def _retry_after(self, delay: float):
        try:
            await asyncio.sleep(delay)
            result = await self.coordinator.sync(Trigger.RETRY)
            if not result.ran and result.skipped_reason == "backing off":
                self._on_status(self.coordinator.status)
        except asyncio.CancelledError:
            pass

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]):
        if task and not task.done():
            task.cancel()

    async def shutdown(self):
        """Teardown: stop every timer and flush unsaved changes."""
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        for task in (self._online_task, self._timer_task, self._retry_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        await self.autosaver.close()
