"""
Module for the mount configuration file.

The file is line oriented. Every line that is neither blank nor a comment declares one
union mount point followed by the directories to merge into it, in priority order:

    # mount point     sources
    /home/foo/music   /media/pendrive/music,/home/mldonkey/music
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
import os.path
from typing import List, Optional

from unionmount.logger import log


class ConfigUnreadable(RuntimeError):
    """Exception raised when the configuration file cannot be read."""


def normalize_path(path: str) -> Optional[str]:
    """Expand and normalize a configured path, returning None if it is not absolute."""
    path = os.path.normpath(os.path.expanduser(path))

    if not os.path.isabs(path):
        return None

    return path


@dataclass(frozen=True)
class MountSpec:
    """A union mount point and the ordered list of directories to merge into it."""

    mount_point: str
    sources: List[str]


@dataclass
class Config:
    """Declared mount points, in the order they appear in the configuration file."""

    mounts: List[MountSpec] = field(default_factory=list)

    @staticmethod
    def load(filename: str) -> Config:
        """Read and parse a configuration file."""
        try:
            with open(filename, "r") as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigUnreadable(
                f"couldn't open configuration file '{filename}': {e}"
            )

        return Config.parse(text, filename)

    @staticmethod
    def parse(text: str, filename: str = "<config>") -> Config:
        """
        Parse the contents of a configuration file.

        Malformed lines are skipped with a warning, the rest of the file still counts.
        """
        config = Config()
        seen = set()

        for lineno, line in enumerate(text.splitlines(), 1):
            spec = Config._parse_line(line, f"{filename}:{lineno}")

            if spec is None:
                continue

            if spec.mount_point in seen:
                log.warning(
                    f"{filename}:{lineno}: ignoring duplicate mount point "
                    f"{spec.mount_point}"
                )
                continue

            seen.add(spec.mount_point)
            config.mounts.append(spec)

        return config

    @staticmethod
    def _parse_line(line: str, location: str) -> Optional[MountSpec]:
        """Tokenize a line into a mount spec, or None if it declares nothing."""
        stripped = line.strip()

        # Blank lines and comments
        if len(stripped) == 0 or stripped.startswith("#"):
            return None

        fields = stripped.split(None, 1)

        if len(fields) != 2:
            log.warning(f"{location}: expected a mount point and sources, skipping")
            return None

        mount_point = normalize_path(fields[0])

        if mount_point is None:
            log.warning(f"{location}: mount point {fields[0]} is not an absolute path")
            return None

        sources = []

        for item in fields[1].split(","):
            item = item.strip()

            if len(item) == 0:
                continue

            source = normalize_path(item)

            if source is None:
                log.warning(f"{location}: ignoring source {item} (not absolute)")
            else:
                sources.append(source)

        return MountSpec(mount_point, sources)
