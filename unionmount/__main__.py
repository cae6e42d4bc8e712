"""
Module implementing the command-line interface and invoking the logic of unionmount.

unionmount is started as a regular user and runs a loop that reconciles the configured
union mount points with the source directories available at that moment. Mounting needs
root, so unless the daemon already runs as root it launches a second copy of itself with
sudo in helper mode. The helper does nothing but execute mount and unmount requests from
the daemon, which keeps the code running with root privileges small.
"""

import os.path
import signal
import sys
from typing import List, NoReturn, Optional

from semver import VersionInfo

import unionmount.constants as constants
from unionmount.context import Context
from unionmount.logger import diagnostic, log
import unionmount.operations as operations
from .args import Arguments


def main(arguments: Optional[List[str]] = None) -> NoReturn:
    """
    Run either the daemon or the privileged helper with the given arguments.

    Defaults to parsing command-line arguments from sys.argv if none are specified.
    """
    # Parse command-line arguments.
    args = Arguments.parse(arguments)

    # Check if the daemon and helper use compatible protocols.
    if args.protocol.major != VersionInfo.parse(constants.PROTOCOL_VERSION).major:
        log.error(
            f"incompatible protocol ({args.protocol} != {constants.PROTOCOL_VERSION})"
        )
        sys.exit(constants.ERROR_CODE)

    context = Context(config_path=os.path.abspath(os.path.expanduser(args.config)))

    ops: operations.Operations

    if args.helper:
        ops = operations.HelperOperations(args, context)
    else:
        ops = operations.DaemonOperations(args, context)

    try:
        exit_code = ops.run()
    except KeyboardInterrupt:
        exit_code = 128 + signal.SIGINT
    except Exception as e:
        log.error(diagnostic(e))
        log.error(f"Execution log:\n{context.command_log.dump()}")
        exit_code = constants.ERROR_CODE

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
