"""Module that implements the privileged helper that performs mounts for the daemon."""

import contextlib
import curses.ascii
import hashlib
import os
import secrets
import sys
import threading
from typing import BinaryIO

from unionmount.args import Arguments
from unionmount.context import Context
from unionmount.logger import log
from unionmount.mounting import MountService
import unionmount.rpc as rpc
from .common import Operations


class HelperOperations(Operations):
    """
    Class that encapsulates all work of the privileged helper.

    The helper is started by the daemon through sudo. It serves mount operations until
    its stdin reaches end of file, which happens when the daemon closes it or dies. A
    parent death signal can't be used for this because it is cleared when sudo, a setuid
    program, is executed.
    """

    def __init__(self, args: Arguments, context: Context):
        """Initialize the helper based on the command-line arguments."""
        super().__init__(context)

        self._args = args
        self.stop = threading.Event()

    def _run(self, stack: contextlib.ExitStack) -> int:
        """Hand out an RPC token and serve mount operations until the daemon is gone."""
        if os.geteuid() != 0:
            raise RuntimeError("privileged helper must run as root")

        if self._args.port is None:
            raise RuntimeError("privileged helper started without a port")

        token = self._token_handshake()

        stdin_thread = self._start_thread(self._watch_stdin, sys.stdin.buffer)
        stack.callback(stdin_thread.join, timeout=1.0)

        server = rpc.Server(MountService(), token)
        stack.callback(server.context.destroy, linger=0)

        log.debug(f"privileged helper listening on port {self._args.port}")
        server.serve(f"tcp://127.0.0.1:{self._args.port}", self.stop)

        return 0

    def _watch_stdin(self, stdin: BinaryIO) -> None:
        """Stop serving once stdin is closed."""
        try:
            while len(stdin.read(1024)) > 0:
                pass
        finally:
            self.stop.set()

    @staticmethod
    def _token_handshake() -> str:
        """Generate and communicate a random authentication token over stdout."""
        token = secrets.token_hex(16)
        token_signature = hashlib.sha256(token.encode()).hexdigest()

        # Output token and its checksum as in-band signal
        sys.stdout.buffer.write(chr(curses.ascii.SOH).encode())
        sys.stdout.buffer.write(f"{token}{token_signature}".encode())
        sys.stdout.buffer.write(chr(curses.ascii.STX).encode())

        sys.stdout.buffer.flush()

        return token
