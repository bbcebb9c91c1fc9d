"""Periodic sync: one pass at start-up, then one every ``interval`` seconds.

A tick that fires while a pass is still running is skipped rather than
queued, so passes over the same root never overlap.  A failed pass is logged
and retried on the next tick.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from zettel.errors import ZettelError

if TYPE_CHECKING:
    from zettel.sync.engine import Synchronizer, SyncReport

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 300.0


class PeriodicSync:
    def __init__(self, synchronizer: "Synchronizer", root: Path | str, interval: float = DEFAULT_INTERVAL) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.synchronizer = synchronizer
        self.root = Path(root)
        self.interval = interval
        self.last_report: "SyncReport | None" = None
        self._pass = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self) -> "SyncReport | None":
        """Run a pass now; returns ``None`` if one is already running or it failed."""
        if not self._pass.acquire(blocking=False):
            logger.info("sync: previous pass over %s still running, skipping tick", self.root)
            return None
        try:
            report = self.synchronizer.sync(self.root)
        except ZettelError:
            logger.exception("sync: pass over %s failed, retrying next tick", self.root)
            return None
        finally:
            self._pass.release()
        self.last_report = report
        return report

    def run_forever(self) -> None:
        """Block the calling thread, syncing until :meth:`stop` is called."""
        self.run_once()
        while not self._stop.wait(self.interval):
            self.run_once()

    def start(self) -> None:
        """Run :meth:`run_forever` on a background thread."""
        if self.running:
            raise RuntimeError("scheduler already started")
        self._stop.clear()
        self._thread = threading.Thread(target=self.run_forever, name="zettel-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
