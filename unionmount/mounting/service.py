"""
Module with the privileged mount operations.

This is the only code that needs to run as root. It can bind a directory, create a union
of directories and unmount a mount point, and nothing else.
When unionmount isn't started as root, this service runs in a separate helper process
started with sudo and is called over RPC.
"""

import os
import os.path
import subprocess
from typing import List

from unionmount.logger import log
from .common import CommandResult


def _check_absolute(*paths: str) -> None:
    for path in paths:
        if not isinstance(path, str) or not os.path.isabs(path):
            raise ValueError(f"expected an absolute path, got {path!r}")


class MountService:
    """RPC service that performs mount and unmount operations."""

    @staticmethod
    def bind(source: str, mount_point: str) -> CommandResult:
        """Bind mount a single directory onto the mount point, creating it if needed."""
        _check_absolute(source, mount_point)

        os.makedirs(mount_point, exist_ok=True)

        return MountService._run(["mount", "--bind", source, mount_point])

    @staticmethod
    def union(
        sources: List[str], mount_point: str, options: List[str]
    ) -> CommandResult:
        """Mount the union of several directories onto the mount point using mhddfs."""
        _check_absolute(*sources, mount_point)

        if len(sources) < 2:
            raise ValueError("a union needs at least two sources")

        for option in options:
            if "," in option:
                raise ValueError(f"invalid mount option {option!r}")

        os.makedirs(mount_point, exist_ok=True)

        return MountService._run(
            ["mhddfs", ",".join(sources), mount_point, "-o", ",".join(options)]
        )

    @staticmethod
    def unmount(mount_point: str) -> CommandResult:
        """Unmount the topmost mount on the mount point."""
        _check_absolute(mount_point)

        return MountService._run(["umount", mount_point])

    @staticmethod
    def _run(args: List[str]) -> CommandResult:
        """Run a command and capture its combined output, even when it fails."""
        log.debug(f"running {args}")

        proc = subprocess.run(
            args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )

        return CommandResult(
            args=args,
            returncode=proc.returncode,
            output=proc.stdout.decode(errors="replace"),
        )
