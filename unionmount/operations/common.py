"""Shared functionality between the daemon and the privileged helper."""

from abc import ABC
import contextlib
import threading
from typing import Any, Callable

from unionmount.context import Context


class Operations(ABC):
    """Base class for daemon or helper operations logic."""

    def __init__(self, context: Context):
        self.context = context

    def run(self) -> int:
        """Run the operations and clean up properly in case of errors."""
        with contextlib.ExitStack() as stack:
            return self._run(stack)

        # https://github.com/python/mypy/issues/7726
        assert False, "unreachable"

    def _run(self, stack: contextlib.ExitStack) -> int:
        """Run the actual operations."""
        raise NotImplementedError()

    @staticmethod
    def _start_thread(target: Callable[..., None], *args: Any) -> threading.Thread:
        """
        Start a thread with the specified function.

        It is still made a daemon just in case the thread fails to exit properly and
        blocks the shutting down of the program.
        """
        t = threading.Thread(target=target, args=args, daemon=True)
        t.start()
        return t
