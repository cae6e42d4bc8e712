"""Module that applies mount decisions through the (possibly remote) mount service."""

from typing import Any, List

from unionmount.logger import CommandLog, log
from .common import CommandResult


class MountFailed(RuntimeError):
    """Exception raised when directories couldn't be mounted onto a mount point."""


class UnmountFailed(RuntimeError):
    """Exception raised when a mount point couldn't be unmounted."""


class MountExecutor:
    """
    Performs mounts and unmounts and reports their failures.

    The service is either a MountService instance or an RPC client for one, so every
    call to it may also fail with an OSError (for example an RPC timeout).
    """

    def __init__(self, service: Any, command_log: CommandLog, union_options: List[str]):
        self._service = service
        self._command_log = command_log
        self._union_options = union_options

    def mount(self, sources: List[str], mount_point: str) -> None:
        """
        Mount the sources onto the mount point.

        A single directory is bind mounted, multiple directories are merged into a union
        that stores new files on the directory with the most free space.
        """
        if len(sources) == 0:
            log.debug(f"nothing to mount at {mount_point}")
            return

        try:
            if len(sources) == 1:
                log.info(
                    f"mounting just one dir ({sources[0]}) with bind at {mount_point}"
                )
                result = self._service.bind(sources[0], mount_point)
            else:
                log.info(
                    f"mounting several dirs ({','.join(sources)}) at {mount_point}"
                )
                result = self._service.union(sources, mount_point, self._union_options)
        except (OSError, ValueError) as e:
            raise MountFailed(f"couldn't mount '{mount_point}': {e}")

        self._check(result, MountFailed, f"couldn't mount '{mount_point}'")

    def unmount(self, mount_point: str) -> None:
        """Unmount the topmost mount on the mount point."""
        log.info(f"unmounting {mount_point}")

        try:
            result = self._service.unmount(mount_point)
        except (OSError, ValueError) as e:
            raise UnmountFailed(f"couldn't unmount '{mount_point}': {e}")

        self._check(result, UnmountFailed, f"couldn't unmount '{mount_point}'")

    def _check(self, result: CommandResult, error: type, message: str) -> None:
        """Record the command output and raise the given error if the command failed."""
        self._command_log.record(result.args, result.returncode, result.output)

        if not result.succeeded:
            output = result.output.strip()

            if len(output) > 0:
                raise error(f"{message}: {output}")
            else:
                raise error(f"{message} (exit code {result.returncode})")
