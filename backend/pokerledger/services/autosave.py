# pokerledger/services/autosave.py

import asyncio
import logging
from typing import Callable, List, Optional

from pokerledger.config import AUTOSAVE_DEBOUNCE_SECONDS, AUTOSAVE_INTERVAL_SECONDS
from pokerledger.fingerprint import fingerprint
from pokerledger.models import Session
from pokerledger.services.local_store import LocalStore

logger = logging.getLogger(__name__)


class AutoSaver:
    """Writes the session list to the local store when it actually changed.

    A change schedules a debounced write; a periodic loop catches anything
    the debounce missed. Both go through ``flush``, which compares content
    fingerprints so unchanged data is never rewritten.
    """

    def __init__(
        self,
        store: LocalStore,
        snapshot: Callable[[], List[Session]],
        debounce: float = AUTOSAVE_DEBOUNCE_SECONDS,
        interval: float = AUTOSAVE_INTERVAL_SECONDS,
    ):
        self.store = store
        self.snapshot = snapshot
        self.debounce = debounce
        self.interval = interval
        self.last_fingerprint: Optional[str] = None
        self.save_count = 0
        self._debounce_task: Optional[asyncio.Task] = None
        self._interval_task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    def mark_saved(self, sessions: List[Session]):
        """Record that ``sessions`` is already on disk (e.g. right after a sync)."""
        self.last_fingerprint = fingerprint(sessions)

    def notify_changed(self, _sessions=None):
        """Listener for the coordinator's sessions_changed registry."""
        if self._debounce_task and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = asyncio.create_task(self._debounced_flush())

    async def _debounced_flush(self):
        try:
            await asyncio.sleep(self.debounce)
            await self.flush()
        except asyncio.CancelledError:
            pass

    def start(self):
        if self._interval_task is None or self._interval_task.done():
            self._interval_task = asyncio.create_task(self._interval_loop())

    async def _interval_loop(self):
        try:
            while True:
                await asyncio.sleep(self.interval)
                await self.flush()
        except asyncio.CancelledError:
            pass

    async def flush(self) -> bool:
        """Save now if the content changed. Returns True when a write happened."""
        async with self._lock:
            sessions = self.snapshot()
            current = fingerprint(sessions)
            if current == self.last_fingerprint:
                return False
            if not await self.store.save(sessions):
                logger.warning("Autosave failed; will retry on next change")
                return False
            self.last_fingerprint = current
            self.save_count += 1
            logger.debug("Autosaved %d sessions (%s)", len(sessions), current[:8])
            return True

    async def on_hidden(self) -> bool:
        return await self.flush()

    async def close(self):
        """Stop the timers and write whatever is pending."""
        for task in (self._debounce_task, self._interval_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._debounce_task = None
        self._interval_task = None
        await self.flush()
