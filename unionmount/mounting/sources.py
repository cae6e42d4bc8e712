"""Module that decides which configured source directories can be mounted right now."""

import os
import os.path
from typing import List


def is_available(path: str) -> bool:
    """
    Check if a source directory exists and can be entered.

    A drive that was yanked without unmounting can leave a directory behind that fails
    on access, and os.path.isdir() reports such errors as False.
    """
    return os.path.isdir(path) and os.access(path, os.X_OK)


def resolve(configured_sources: List[str]) -> List[str]:
    """
    Filter sources down to the available directories, preserving their order.

    Sources are returned with symbolic links resolved, since that is how the kernel
    records them in the mount table. Sources that turn out to be the same directory
    are only included once.
    """
    effective: List[str] = []

    for source in configured_sources:
        if not is_available(source):
            continue

        canonical = os.path.realpath(source)

        if canonical not in effective:
            effective.append(canonical)

    return effective
