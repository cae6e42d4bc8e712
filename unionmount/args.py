"""Module defining the command-line arguments and providing a parser for them."""

from __future__ import annotations

import argparse
from typing import List, Optional

import semver

from unionmount.constants import DEFAULT_CONFIG_PATH, PROTOCOL_VERSION, VERSION


class Arguments(argparse.Namespace):
    """Parsed command-line arguments."""

    config: str

    helper: bool
    protocol: semver.VersionInfo
    port: Optional[int]

    @classmethod
    def parse(cls, args: Optional[List[str]] = None) -> Arguments:
        """
        Parse command-line arguments from the given list of strings.

        Defaults to sys.argv if none are specified.
        """
        return cls._get_parser().parse_args(args, namespace=cls())

    @classmethod
    def _get_parser(cls) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="unionmount",
            description=(
                "Merge directories into union mount points and keep them up to date as "
                "drives come and go."
            ),
            usage="unionmount [configuration file]",
            epilog=f"unionmount {VERSION}",
        )

        parser.add_argument(
            "config",
            type=str,
            nargs="?",
            default=DEFAULT_CONFIG_PATH,
            help=f"path to the mount configuration (default is {DEFAULT_CONFIG_PATH})",
        )

        # Hidden flag to indicate that this is the privileged helper process
        parser.add_argument("--helper", action="store_true", help=argparse.SUPPRESS)

        # Hidden flag to indicate the protocol version expected by the daemon
        parser.add_argument(
            "--protocol",
            type=cls._parse_version,
            default=semver.VersionInfo.parse(PROTOCOL_VERSION),
            help=argparse.SUPPRESS,
        )

        # Hidden flag with the port the privileged helper should listen on
        parser.add_argument("--port", type=cls._parse_port, help=argparse.SUPPRESS)

        return parser

    @staticmethod
    def _parse_version(arg: str) -> semver.VersionInfo:
        try:
            return semver.VersionInfo.parse(arg)
        except (ValueError, TypeError):
            raise argparse.ArgumentTypeError("expected semantic version string")

    @staticmethod
    def _parse_port(arg: str) -> int:
        try:
            val = int(arg)
            assert 0 < val < 65536
            return val
        except (ValueError, AssertionError):
            raise argparse.ArgumentTypeError("expected port number")
