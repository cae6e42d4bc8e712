"""Data structures used by multiple mounting components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import auto, Enum
from typing import List, Optional


@dataclass
class CommandResult:
    """Outcome of an external command run by the mount service."""

    args: List[str]
    returncode: int
    output: str

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


@dataclass
class MountEntry:
    """A single record of the kernel mount table (see proc(5), /proc/pid/mountinfo)."""

    mount_id: int
    parent_id: int
    device: str
    root: str
    mount_point: str
    fs_type: str
    source: str


@dataclass
class ActualMountState:
    """What is currently mounted on a mount point according to the mount table."""

    mount_point: str
    mounted_sources: List[str] = field(default_factory=list)
    mount_count: int = 0

    @property
    def is_mounted(self) -> bool:
        return self.mount_count > 0


class MountState(Enum):
    """State of a mount point relative to its effective sources."""

    ABSENT = auto()
    MOUNTED_CORRECT = auto()
    MOUNTED_STALE = auto()


class ActionKind(Enum):
    """What needs to happen to a mount point to converge."""

    NOOP = auto()
    MOUNT = auto()
    UNMOUNT = auto()
    REMOUNT = auto()


@dataclass(frozen=True)
class Action:
    """Decision for a single mount point within one reconciliation pass."""

    kind: ActionKind
    mount_point: str
    state: MountState
    sources: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        if self.kind in (ActionKind.MOUNT, ActionKind.REMOUNT):
            sources = ",".join(self.sources)
            return f"{self.kind.name.lower()} {sources} at {self.mount_point}"
        else:
            return f"{self.kind.name.lower()} {self.mount_point}"


@dataclass
class Outcome:
    """Result of converging a single mount point."""

    action: Action
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PassReport:
    """Structured report of a full reconciliation pass."""

    outcomes: List[Outcome] = field(default_factory=list)

    @property
    def failures(self) -> List[Outcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def ok(self) -> bool:
        return len(self.failures) == 0

    def actions(self) -> List[ActionKind]:
        """Return the kind of action taken for every mount point, in order."""
        return [outcome.action.kind for outcome in self.outcomes]
