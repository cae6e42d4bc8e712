"""Module with the context shared by all components of a unionmount process."""

from dataclasses import dataclass, field
import os.path
from typing import List

import unionmount.constants as constants
from unionmount.logger import CommandLog


@dataclass
class Context:
    """Process-wide settings and state, passed explicitly to the components."""

    config_path: str = os.path.expanduser(constants.DEFAULT_CONFIG_PATH)

    command_log: CommandLog = field(default_factory=CommandLog)

    mount_table_path: str = constants.MOUNT_TABLE_PATH

    watched_roots: List[str] = field(
        default_factory=lambda: list(constants.WATCHED_ROOTS)
    )
    event_timeout: int = constants.EVENT_TIMEOUT

    union_options: List[str] = field(
        default_factory=lambda: list(constants.UNION_OPTIONS)
    )
