"""Module that checks for the external programs unionmount relies on."""

import shutil
from typing import List


class DependencyMissing(RuntimeError):
    """Exception raised when a required program is not installed."""


def check_dependencies(programs: List[str]) -> None:
    """Ensure that all programs can be found on PATH."""
    missing = [program for program in programs if shutil.which(program) is None]

    if len(missing) == 1:
        raise DependencyMissing(
            f"program {missing[0]} not found. Please install it and re-run"
        )
    elif len(missing) > 1:
        raise DependencyMissing(
            f"programs {', '.join(missing)} not found. Please install them and re-run"
        )
