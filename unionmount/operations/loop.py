"""Module with the loop that keeps mount points reconciled until it is cancelled."""

import threading
from typing import Optional

from unionmount.config import Config
from unionmount.context import Context
from unionmount.logger import log
from unionmount.mounting import ConvergenceEngine, MountTableUnreadable, PassReport
from .watcher import EventWatcher


class EventLoop:
    """Reloads the configuration and reconciles it after every trigger."""

    def __init__(
        self, context: Context, engine: ConvergenceEngine, watcher: EventWatcher
    ):
        self._context = context
        self._engine = engine
        self._watcher = watcher

        self.passes = 0

    def run(self, cancel: threading.Event) -> None:
        """
        Reconcile, then wait for mount activity or a timeout, until cancelled.

        The configuration is reloaded every time, so it can be edited while running.
        A configuration file that can't be read is fatal.
        """
        while not cancel.is_set():
            self.run_once()

            if cancel.is_set():
                break

            self._watcher.wait(cancel)

    def run_once(self) -> Optional[PassReport]:
        """Run a single reconciliation pass with the current configuration."""
        config = Config.load(self._context.config_path)

        self.passes += 1

        try:
            report = self._engine.reconcile(config.mounts)
        except MountTableUnreadable as e:
            log.error(f"reconciliation pass failed: {e}")
            return None

        for outcome in report.failures:
            mount_point = outcome.action.mount_point
            log.warning(f"{mount_point} will be retried: {outcome.error}")

        return report
