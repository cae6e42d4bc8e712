"""Modules with the logic of the unionmount daemon and its privileged helper."""

from .common import Operations
from .daemon import DaemonOperations
from .helper import HelperOperations
from .loop import EventLoop
from .watcher import EventWatcher

__all__ = [
    "Operations",
    "DaemonOperations",
    "HelperOperations",
    "EventLoop",
    "EventWatcher",
]
