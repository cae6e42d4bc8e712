"""Module containing utilities for logging, along with a standard logger."""

import collections
import logging
import sys
import traceback
from typing import Any, Deque, List, Optional

import unionmount.constants as constants


def _get_logger(name: Optional[str] = "unionmount") -> logging.Logger:
    stdoutOutput = logging.StreamHandler(sys.stdout)

    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    stdoutOutput.setFormatter(formatter)

    logger = logging.getLogger(name)
    logger.addHandler(stdoutOutput)

    return logger


def summarize(obj: Any, max_length: int = 255) -> str:
    """Return a stringified representation of the object up to the given length."""
    stringified_obj = str(obj)

    if len(stringified_obj) <= max_length:
        return stringified_obj
    else:
        return stringified_obj[: max_length - 3] + "..."


def diagnostic(exc: BaseException) -> str:
    """Format an exception as a file:line diagnostic pointing at where it was raised."""
    frames = traceback.extract_tb(exc.__traceback__)

    if len(frames) == 0:
        return f"ERROR: {exc}"

    origin = frames[-1]
    return f"{origin.filename}:{origin.lineno}: ERROR: {exc}"


class CommandLog:
    """
    Bounded buffer with the output of recently executed commands.

    Output is not printed as it is captured, only dumped when something fatal happens.
    """

    def __init__(self, max_entries: int = constants.COMMAND_LOG_SIZE):
        """Instantiate an empty command log keeping up to max_entries outputs."""
        self._entries: Deque[str] = collections.deque(maxlen=max_entries)

    def record(self, args: List[str], returncode: int, output: str) -> None:
        """Record the output and exit code of an executed command."""
        command = " ".join(args)
        self._entries.append(f"$ {command} (exit {returncode})\n{output.rstrip()}")

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def dump(self) -> str:
        """Return all recorded output, or a placeholder if nothing was recorded."""
        if len(self._entries) == 0:
            return "<empty>"
        else:
            return "\n".join(self._entries)


# Default logger
log = _get_logger()
log.setLevel(logging.INFO)
