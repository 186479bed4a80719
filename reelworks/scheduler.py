"""
Auto-post scheduler.

A single asyncio loop that wakes every SCHEDULER_INTERVAL_SECONDS, picks up
queue entries whose scheduled time has passed, claims each one and hands
the winners to the Posting Orchestrator. Claims are conditional updates in
the store, so overlapping ticks (or another worker running its own
scheduler) never post the same entry twice.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from . import config
from .errors import ReelworksError
from .posting import PostingOrchestrator
from .queue import QueueStore

logger = logging.getLogger(__name__)


class Scheduler:
    def __init__(
        self,
        queue: QueueStore,
        posting: PostingOrchestrator,
        interval: float = config.SCHEDULER_INTERVAL_SECONDS,
    ):
        self.queue = queue
        self.posting = posting
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            logger.warning("Scheduler already running")
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Auto-post scheduler started (every {self.interval}s)")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Auto-post scheduler stopped")

    async def _run(self):
        while True:
            try:
                await self.tick()
            except ReelworksError as e:
                logger.error(f"Scheduler tick failed: {e.message}")
            except Exception as e:
                logger.error(f"Scheduler tick crashed: {e}", exc_info=True)
            await asyncio.sleep(self.interval)

    async def tick(self) -> int:
        """Run one scan. Returns the number of entries this tick claimed and posted."""
        now = datetime.now(timezone.utc).isoformat()
        due = self.queue.list_due(now)
        if not due:
            return 0

        logger.info(f"Scheduler found {len(due)} due queue item(s)")
        posted = 0
        for entry in due:
            claimed = self.queue.claim(entry.id)
            if claimed is None:
                continue
            try:
                await self.posting.post_entry(claimed)
            except ReelworksError as e:
                logger.error(f"[queue {entry.id}] posting failed: {e.message}")
                continue
            except Exception as e:
                logger.error(f"[queue {entry.id}] posting crashed: {e}", exc_info=True)
                continue
            posted += 1
        return posted
