"""Rolling auto-backup of the ledger to a single Drive file.

Any successful ``KeyValueStore.save()`` marks the backup dirty. A dirty
backup is uploaded by the periodic loop (every ``interval_secs``) or once
the store has been quiet for ``debounce_secs``, whichever fires first.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from twicks.constants import (
    AUTO_BACKUP_DEBOUNCE_SECS,
    AUTO_BACKUP_FILENAME,
    AUTO_BACKUP_INTERVAL_SECS,
)
from twicks.snapshot import build_snapshot, collections_fingerprint

if TYPE_CHECKING:
    from twicks.drive_client import DriveClient
    from twicks.storage import KeyValueStore

logger = logging.getLogger(__name__)


class AutoBackup:
    """Process-scoped auto-backup service.

    - ``mark_dirty()`` is wired to the store as a save observer.
    - Only one backup runs at a time; a trigger that arrives while one is
      in flight is dropped.
    - Failures (auth, network) are logged, not raised; the dirty flag stays
      set so the next trigger retries.
    - Uploads are skipped when not signed in, or when the collections are
      unchanged since the last successful upload.
    """

    def __init__(
        self,
        store: KeyValueStore,
        drive: DriveClient,
        filename: str = AUTO_BACKUP_FILENAME,
        interval_secs: float = AUTO_BACKUP_INTERVAL_SECS,
        debounce_secs: float = AUTO_BACKUP_DEBOUNCE_SECS,
    ) -> None:
        self._store = store
        self._drive = drive
        self._filename = filename
        self._interval = interval_secs
        self._debounce = debounce_secs
        self._loop_task: asyncio.Task[None] | None = None
        self._idle_handle: asyncio.TimerHandle | None = None
        self._spawned: set[asyncio.Task[bool]] = set()
        self.reset()

    def reset(self) -> None:
        """Return every piece of backup state to its initial value."""
        self._dirty = False
        self._running = False
        self._last_fingerprint: str | None = None
        self._last_change: float | None = None
        self._last_backup_at: str | None = None
        self._total_backups = 0
        self._failed_attempts = 0

    # -- dirty tracking -------------------------------------------------------

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def running(self) -> bool:
        return self._running

    def attach(self) -> None:
        """Start observing saves on the store."""
        self._store.add_observer(self._on_save)

    def detach(self) -> None:
        self._store.remove_observer(self._on_save)

    def _on_save(self, key: str) -> None:
        self.mark_dirty()

    def mark_dirty(self) -> None:
        self._dirty = True
        self._last_change = time.monotonic()
        self._schedule_idle()

    def _schedule_idle(self) -> None:
        """(Re)arm the debounce timer; needs a running event loop."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._idle_handle is not None:
            self._idle_handle.cancel()
        self._idle_handle = loop.call_later(self._debounce, self._on_idle)

    def _on_idle(self) -> None:
        self._idle_handle = None
        if self._dirty:
            self._spawn("idle")

    def _spawn(self, reason: str) -> None:
        task = asyncio.create_task(self.perform_backup(reason))
        self._spawned.add(task)
        task.add_done_callback(self._spawned.discard)

    # -- backup ---------------------------------------------------------------

    @property
    def can_upload(self) -> bool:
        tokens = self._drive.tokens
        return tokens.is_signed_in or tokens.can_refresh

    async def perform_backup(self, reason: str = "interval", force: bool = False) -> bool:
        """Upload the snapshot if dirty (or ``force``). Returns True if uploaded."""
        if self._running:
            return False
        self._running = True
        try:
            if not self._dirty and not force:
                return False
            if not self.can_upload:
                logger.debug("Auto backup skipped (%s): not signed in.", reason)
                return False

            payload = await build_snapshot(self._store, auto=True)
            fingerprint = collections_fingerprint(payload)
            if not force and fingerprint == self._last_fingerprint:
                self._dirty = False
                return False

            # A save landing during the upload re-marks the backup dirty.
            self._dirty = False
            await self._drive.upsert_json(self._filename, payload)
            self._last_fingerprint = fingerprint
            self._last_backup_at = datetime.now(timezone.utc).isoformat()
            self._total_backups += 1
            logger.info("Auto backup saved (%s).", reason)
            return True
        except Exception as exc:
            self._dirty = True
            self._failed_attempts += 1
            logger.warning("Auto backup skipped (%s): %s", reason, exc)
            return False
        finally:
            self._running = False

    async def force_now(self) -> bool:
        """Back up immediately, ignoring the dirty flag."""
        return await self.perform_backup("manual", force=True)

    # -- background loop ------------------------------------------------------

    async def start(self) -> None:
        """Attach to the store and start the periodic backup task."""
        self.attach()
        if self._loop_task is not None:
            return
        self._loop_task = asyncio.create_task(self._interval_loop())

    async def _interval_loop(self) -> None:
        logger.info("Auto backup loop started (interval=%ss).", self._interval)
        cycles = 0
        try:
            while True:
                await asyncio.sleep(self._interval)
                cycles += 1
                if self._dirty:
                    await self.perform_backup("interval")
                elif cycles % 10 == 0:
                    logger.info(
                        "Auto backup heartbeat: cycle %d, total backups %d.",
                        cycles, self._total_backups,
                    )
        except asyncio.CancelledError:
            pass

    async def stop(self) -> None:
        """Cancel timers and the loop, then back up anything still dirty."""
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        if self._spawned:
            await asyncio.gather(*self._spawned, return_exceptions=True)
        self.detach()
        if self._dirty:
            await self.perform_backup("shutdown")

    def health(self) -> dict[str, object]:
        """Return backup state for monitoring."""
        return {
            "dirty": self._dirty,
            "running": self._running,
            "last_backup_at": self._last_backup_at,
            "total_backups": self._total_backups,
            "failed_attempts": self._failed_attempts,
            "loop_running": self._loop_task is not None and not self._loop_task.done(),
            "seconds_since_change": (
                None if self._last_change is None
                else round(time.monotonic() - self._last_change, 1)
            ),
        }
