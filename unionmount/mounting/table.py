"""Module that reads what is currently mounted from the kernel mount table."""

import os.path
import re
from typing import List

import unionmount.constants as constants
from unionmount.logger import log
from .common import ActualMountState, MountEntry


class MountTableUnreadable(RuntimeError):
    """Exception raised when the mount table cannot be read."""


_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def _unescape(field: str) -> str:
    """Decode the octal escapes used for whitespace and backslashes in mountinfo."""
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


def parse_mountinfo(text: str) -> List[MountEntry]:
    """
    Parse the contents of a mountinfo file into mount entries, in table order.

    Each line looks like:

        36 35 98:0 /mnt1 /mnt2 rw,noatime master:1 - ext3 /dev/root rw,errors=continue

    The number of optional fields before the "-" separator varies.
    """
    entries = []

    for line in text.splitlines():
        fields = line.split()

        if len(fields) == 0:
            continue

        try:
            separator = fields.index("-", 6)

            entries.append(
                MountEntry(
                    mount_id=int(fields[0]),
                    parent_id=int(fields[1]),
                    device=fields[2],
                    root=_unescape(fields[3]),
                    mount_point=_unescape(fields[4]),
                    fs_type=fields[separator + 1],
                    source=_unescape(fields[separator + 2]),
                )
            )
        except (ValueError, IndexError):
            log.warning(f"skipping malformed mount table line: {line}")

    return entries


def _is_path_prefix(prefix: str, path: str) -> bool:
    return prefix == "/" or path == prefix or path.startswith(prefix + "/")


def entry_sources(entries: List[MountEntry], index: int) -> List[str]:
    """
    Determine the source directories backing the entry at the given table index.

    A union lists its branches in the source field. For any other mount the table only
    names the device, plus the directory within that device (root) that is mounted. The
    directory it was bound from is recovered from another mount of the same device,
    preferring the original mount (earlier in the table, shortest root).
    """
    entry = entries[index]

    if entry.fs_type == constants.UNION_FS_TYPE:
        return [branch for branch in entry.source.split(";") if len(branch) > 0]

    candidates = [
        (i >= index, len(base.root), i)
        for i, base in enumerate(entries)
        if i != index
        and base.device == entry.device
        and base.mount_point != entry.mount_point
        and _is_path_prefix(base.root, entry.root)
    ]

    if len(candidates) == 0:
        return [entry.source]

    base = entries[min(candidates)[2]]
    relative_root = entry.root[len(base.root) :].lstrip("/")

    if len(relative_root) == 0:
        return [base.mount_point]
    else:
        return [os.path.normpath(os.path.join(base.mount_point, relative_root))]


class MountTableReader:
    """Read-only view of the mount table, re-read on every query."""

    def __init__(self, path: str = constants.MOUNT_TABLE_PATH):
        self.path = path

    def entries(self) -> List[MountEntry]:
        """Read and parse all entries of the mount table."""
        try:
            with open(self.path, "r") as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise MountTableUnreadable(f"couldn't read mount table {self.path}: {e}")

        return parse_mountinfo(text)

    def state(self, mount_point: str) -> ActualMountState:
        """Observe the mounts stacked on a mount point, in table order."""
        entries = self.entries()
        state = ActualMountState(mount_point)

        for i, entry in enumerate(entries):
            if entry.mount_point == mount_point:
                state.mount_count += 1
                state.mounted_sources.extend(entry_sources(entries, i))

        return state

    def is_mounted(self, mount_point: str) -> bool:
        """Check if anything is mounted on the mount point."""
        return any(entry.mount_point == mount_point for entry in self.entries())

    def mounted_sources(self, mount_point: str) -> List[str]:
        """Return the sources currently backing the mount point (empty if unmounted)."""
        return self.state(mount_point).mounted_sources
