"""
Module with the reconciliation engine that converges mount points to their sources.

Every pass compares what should be mounted (the configured sources that are available
right now) with what the mount table says is mounted, and classifies each mount point:

* ABSENT: nothing is mounted, so mount the available sources (if any).
* MOUNTED_CORRECT: exactly the available sources are mounted in order, so do nothing.
* MOUNTED_STALE: something else is mounted, so unmount it and mount the right sources.

A mount point can have several mounts stacked on top of each other, for example after
repeated bind mounts. Only the topmost one is visible, so a stale mount point is
unmounted until nothing is left on it before the new mount is made. Remounting happens
within the same pass so the mount point doesn't stay empty until the next trigger.
"""

import os.path
from typing import Callable, List

import unionmount.constants as constants
from unionmount.config import MountSpec
from unionmount.logger import log
from . import sources as source_resolver
from .common import (
    Action,
    ActionKind,
    ActualMountState,
    MountState,
    Outcome,
    PassReport,
)
from .executor import MountExecutor, MountFailed, UnmountFailed
from .table import MountTableReader


def decide(state: ActualMountState, effective: List[str]) -> Action:
    """Decide what to do with a mount point given its state and effective sources."""
    mount_point = state.mount_point

    if not state.is_mounted:
        if len(effective) == 0:
            return Action(ActionKind.NOOP, mount_point, MountState.ABSENT)
        else:
            return Action(ActionKind.MOUNT, mount_point, MountState.ABSENT, effective)

    if state.mounted_sources == effective:
        return Action(
            ActionKind.NOOP, mount_point, MountState.MOUNTED_CORRECT, effective
        )

    if len(effective) == 0:
        return Action(ActionKind.UNMOUNT, mount_point, MountState.MOUNTED_STALE)
    else:
        return Action(
            ActionKind.REMOUNT, mount_point, MountState.MOUNTED_STALE, effective
        )


class ConvergenceEngine:
    """Applies the decisions for every configured mount point."""

    def __init__(
        self,
        reader: MountTableReader,
        executor: MountExecutor,
        resolve: Callable[[List[str]], List[str]] = source_resolver.resolve,
        max_unmount_attempts: int = constants.MAX_UNMOUNT_ATTEMPTS,
    ):
        self._reader = reader
        self._executor = executor
        self._resolve = resolve
        self._max_unmount_attempts = max_unmount_attempts

    def reconcile(self, specs: List[MountSpec], fail_fast: bool = False) -> PassReport:
        """
        Run a reconciliation pass over all mount specs.

        A mount point that fails to (un)mount is left as it is and reported, and the
        pass continues with the others unless fail_fast is set. The mount table being
        unreadable aborts the whole pass.
        """
        report = PassReport()

        for spec in specs:
            report.outcomes.append(self._converge_reported(spec, fail_fast))

        return report

    def _converge_reported(self, spec: MountSpec, fail_fast: bool) -> Outcome:
        action = self.plan(spec)

        try:
            self.apply(action)
        except (MountFailed, UnmountFailed) as e:
            log.error(f"{e}")

            if fail_fast:
                raise

            return Outcome(action, str(e))

        return Outcome(action)

    def converge(self, spec: MountSpec) -> Outcome:
        """Bring a single mount point in line with its available sources."""
        action = self.plan(spec)
        self.apply(action)

        return Outcome(action)

    def plan(self, spec: MountSpec) -> Action:
        """Decide on the action for a mount spec based on the current state."""
        effective = self._resolve(spec.sources)

        # The mount table lists mount points with symbolic links resolved
        state = self._reader.state(os.path.realpath(spec.mount_point))

        return decide(state, effective)

    def apply(self, action: Action) -> None:
        """Execute a decided action."""
        if action.kind == ActionKind.NOOP:
            if action.state == MountState.MOUNTED_CORRECT:
                log.debug(f"{action.mount_point} mount is correct. Nothing to do")
            else:
                log.debug(f"no sources available for {action.mount_point}")
        elif action.kind == ActionKind.MOUNT:
            log.info(f"{action.mount_point} mount does not exist. Mounting now")
            self._executor.mount(action.sources, action.mount_point)
        elif action.kind == ActionKind.UNMOUNT:
            log.info(f"{action.mount_point} has no sources left. Unmounting now")
            self._drain(action.mount_point)
        elif action.kind == ActionKind.REMOUNT:
            log.info(f"{action.mount_point} mount has changed. Remounting now")
            self._drain(action.mount_point)
            self._executor.mount(action.sources, action.mount_point)
        else:
            raise ValueError(f"unknown action {action.kind}")

    def _drain(self, mount_point: str) -> None:
        """Unmount the mount point until nothing is mounted on it anymore."""
        attempts = 0

        while self._reader.is_mounted(mount_point):
            if attempts >= self._max_unmount_attempts:
                raise UnmountFailed(
                    f"couldn't unmount '{mount_point}': still mounted after "
                    f"{attempts} attempts"
                )

            self._executor.unmount(mount_point)
            attempts += 1
