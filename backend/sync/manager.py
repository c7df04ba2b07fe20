"""
Sync Manager - keeps the wiki working copy in step with the master repository.

Runs one sync at startup (before requests are served) and then pulls on a
fixed interval in the background for the lifetime of the process. Merge
conflicts and unreachable remotes are logged and never interrupt serving.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import List, Optional

from storage import ContentItem, ContentStore, Outcome, Result, item_for_path, sort_items

logger = logging.getLogger(__name__)


class SyncState(Enum):
    """State of the sync loop."""
    IDLE = "idle"
    SYNCING = "syncing"


class SyncManager:
    """
    Periodic background synchronization of the content store.

    The blocking git work runs in the default executor so the event loop
    keeps handling requests while a pull is in progress.
    """

    def __init__(self, store: ContentStore, interval: float = 300):
        """
        Args:
            store: Content store to synchronize
            interval: Seconds between background syncs
        """
        self.store = store
        self.interval = interval
        self.state = SyncState.IDLE
        self.last_result: Optional[Result] = None
        self._running = False
        self._task: Optional[asyncio.Task] = None

    def sync_once(self) -> Optional[Result]:
        """
        Run one sync and log its outcome.

        Returns:
            The sync result, or None if the sync raised unexpectedly
        """
        self.state = SyncState.SYNCING
        started = time.monotonic()
        try:
            result = self.store.sync()
            self.last_result = result

            if result.outcome is Outcome.MERGE_CONFLICT:
                names = [item.name for item in self.conflicted_items(result)]
                logger.warning(
                    f"Sync left merge conflicts in {len(names)} item(s): {', '.join(names)} ({result.message})"
                )
            elif result.outcome is Outcome.CONNECTION_FAILED:
                logger.warning(f"Sync could not reach the master repository: {result.message}")
            else:
                logger.debug(f"Sync finished in {time.monotonic() - started:.2f}s")
        except Exception as e:
            logger.exception(f"Sync failed unexpectedly: {e}")
            return None
        finally:
            self.state = SyncState.IDLE

        return result

    def conflicted_items(self, result: Result) -> List[ContentItem]:
        """
        Items left conflicted by a sync.

        Combines the paths the merge reported (binary and modify/delete
        conflicts leave no markers behind) with the files that still
        contain conflict markers.
        """
        items = {item for item in map(item_for_path, result.conflicts) if item is not None}
        items.update(self.store.conflicts())
        return sort_items(items)

    async def start(self):
        """Start the background sync loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Sync manager started (every {self.interval}s)")

    async def stop(self):
        """Stop the background sync loop."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Sync manager stopped")

    async def _run(self):
        loop = asyncio.get_event_loop()
        while self._running:
            await asyncio.sleep(self.interval)
            await loop.run_in_executor(None, self.sync_once)
