"""
Modules that reconcile union mount points with the directories that are available.

A union mount point presents several source directories as one. Sources come and go as
drives are plugged in and removed, so the set of directories that should be mounted is
recomputed over and over again and compared with what the kernel mount table reports.

* The table module reads the mount table.
* The sources module filters configured sources down to those available right now.
* The engine module decides whether to mount, unmount or remount and carries it out.
* The executor module turns those decisions into calls to the mount service.
* The service module runs the privileged mount, mhddfs and umount commands.

A single source is bind mounted. Multiple sources are merged with mhddfs, which writes
new files to the source with the most free space, so that adding a drive adds space.
"""

from .common import Action, ActionKind, ActualMountState, MountState, PassReport
from .engine import ConvergenceEngine, decide
from .executor import MountExecutor, MountFailed, UnmountFailed
from .service import MountService
from .table import MountTableReader, MountTableUnreadable

__all__ = [
    "Action",
    "ActionKind",
    "ActualMountState",
    "MountState",
    "PassReport",
    "ConvergenceEngine",
    "decide",
    "MountExecutor",
    "MountFailed",
    "UnmountFailed",
    "MountService",
    "MountTableReader",
    "MountTableUnreadable",
]
