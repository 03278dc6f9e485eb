"""
Cloud Purger - Background removal of unreferenced destination objects

===============================================================================
PROVENANCE TRACKING
===============================================================================
File: src/kvcloud/purger.py
Created: 2026-10-19
Author: KVCloud Contributors
Type: Core Implementation

Change History:
-------------------------------------------------------------------------------
Date        Author      Type    Description
-------------------------------------------------------------------------------
2026-10-19  kvcloud     CREATE  Periodic reconciliation of the destination
                                listing against the live file table, run on
                                one owned thread per environment.
-------------------------------------------------------------------------------

License: MIT
===============================================================================
"""

import logging
import threading
from typing import List, Optional

from .errors import NotFoundError
from .filename import listing_prefix

logger = logging.getLogger(__name__)


class CloudPurger:
    """
    Deletes destination objects that nothing references any more.

    Each cycle snapshots the environment's liveness table, lists the
    destination and deletes every listed object that is neither live nor
    opened for write since the snapshot. Errors end the cycle; the next
    one runs after the usual interval.

    Usage:
        purger = CloudPurger(env, periodicity_ms=600000)
        purger.start()
        ...
        purger.stop()
    """

    def __init__(self, env, periodicity_ms: int):
        self._env = env
        self._interval = max(periodicity_ms, 0) / 1000.0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.cycles = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the purge thread"""
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="kvcloud-purger", daemon=True)
        self._thread.start()
        logger.info(f"Started purger (every {self._interval:.1f}s)")

    def stop(self) -> None:
        """Signal the purge thread and wait for it to finish its current cycle"""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
            logger.info(f"Stopped purger after {self.cycles} cycles")

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self.run_once()
            except Exception:
                logger.exception("Purge cycle failed, skipping until next interval")
            self.cycles += 1

    def run_once(self) -> List[str]:
        """
        Run one purge cycle.

        Returns:
            Names (relative to the destination object path) that were deleted
        """
        env = self._env
        dest = env.dest_bucket
        provider = env.provider

        prefix = listing_prefix(dest.object_path)
        live = env.snapshot_live_files()
        try:
            names = provider.list_cloud_objects(dest.name, dest.object_path)
            deleted: List[str] = []
            for name in names:
                if self._stop.is_set():
                    break
                # nested keys belong to other databases sharing the path
                if "/" in name:
                    continue
                if name in live or env.is_write_guarded(name):
                    continue
                try:
                    provider.delete_cloud_object(dest.name, prefix + name)
                except NotFoundError:
                    continue
                deleted.append(name)
        finally:
            env.release_write_guard()

        if deleted:
            logger.info(f"Purged {len(deleted)} unreferenced objects from {dest.name}")
        else:
            logger.debug(f"Purge found nothing to delete in {dest.name}")
        return deleted
