# autosave loop + shutdown flush
import asyncio
import logging
import threading
from typing import Dict, Optional

from .config import AUTOSAVE_INTERVAL, COLLECTIONS
from .state import ContentStore

log = logging.getLogger(__name__)


class Autosaver:
    """
    Periodically snapshots every collection of the store. The periodic
    tick and the shutdown flush go through save_now(), and only one
    save runs at a time.
    """

    def __init__(self, store: ContentStore, interval: float = AUTOSAVE_INTERVAL) -> None:
        self.store = store
        self.interval = interval
        self._saving = threading.Lock()

    def save_now(self, reason: str = "interval", wait: bool = False) -> Optional[Dict[str, bool]]:
        """
        Snapshot all collections. Returns per-collection results, or None
        when another save was in progress and wait is False.
        """
        if not self._saving.acquire(blocking=wait):
            log.debug("Autosave (%s) skipped: a save is already running", reason)
            return None
        try:
            results = self.store.snapshot_all()
        finally:
            self._saving.release()

        saved = sum(1 for ok in results.values() if ok)
        log.info("Auto-save (%s) completed: %d/%d files saved", reason, saved, len(COLLECTIONS))
        failed = [name for name, ok in results.items() if not ok]
        if failed:
            log.error("Some snapshots failed to save: %s. Check disk space and permissions.", ", ".join(failed))
        return results

    async def run(self) -> None:
        """
        Loop in background: save every interval seconds (best effort).
        The write itself runs in a worker thread so the event loop keeps serving.
        """
        while True:
            await asyncio.sleep(self.interval)
            try:
                await asyncio.to_thread(self.save_now, "interval")
            except Exception:
                # keep the loop alive; the next tick retries every collection
                log.exception("Auto-save tick failed")

    def shutdown(self) -> Optional[Dict[str, bool]]:
        log.info("Saving data before shutdown...")
        return self.save_now("shutdown", wait=True)
