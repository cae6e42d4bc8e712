"""Module that waits for file systems to be attached or detached."""

import os.path
import subprocess
import threading
import time
from typing import List

from unionmount.logger import CommandLog, log

# inotifywait exit codes
_EVENT = 0
_TIMEOUT = 2

# Seconds between checks for cancellation while inotifywait is running
_POLL_INTERVAL = 0.1


class EventWatcher:
    """Blocks until there is activity in the watched roots, or a timeout passes."""

    def __init__(self, roots: List[str], timeout: int, command_log: CommandLog):
        self._roots = roots
        self._timeout = timeout
        self._command_log = command_log

    def wait(self, cancel: threading.Event) -> bool:
        """
        Wait for mount activity, a timeout or cancellation.

        Returns True if there was activity in one of the roots. There is no coalescing
        of events; the timeout doubles as a periodic re-check.
        """
        roots = [root for root in self._roots if os.path.isdir(root)]

        if len(roots) == 0:
            cancel.wait(self._timeout)
            return False

        args = ["inotifywait", "-q", "-t", str(self._timeout)] + roots
        t_start = time.monotonic()

        try:
            proc = subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            log.warning(f"failed to start inotifywait: {e}")
            cancel.wait(self._timeout)
            return False

        try:
            while proc.poll() is None:
                if cancel.wait(_POLL_INTERVAL):
                    return False
        finally:
            if proc.poll() is None:
                proc.terminate()

            output = proc.communicate()[0].decode(errors="replace")

        if proc.returncode == _EVENT:
            log.debug(f"mount activity: {output.strip()}")
            return True
        elif proc.returncode == _TIMEOUT:
            return False

        self._command_log.record(args, proc.returncode, output)
        log.warning(f"inotifywait failed with exit code {proc.returncode}")

        # Sleep out the rest of the timeout rather than spinning on a failing watch
        remaining = self._timeout - (time.monotonic() - t_start)

        if remaining > 0:
            cancel.wait(remaining)

        return False
