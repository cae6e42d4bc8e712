"""Module that implements the unionmount daemon."""

from __future__ import annotations

import contextlib
import curses.ascii
import hashlib
import os
import os.path
import queue
import random
import signal
import subprocess
import sys
import threading
from typing import Any, Callable, List, Optional, Tuple

import fasteners

from unionmount.args import Arguments
import unionmount.constants as constants
from unionmount.context import Context
from unionmount.dependencies import check_dependencies
from unionmount.logger import log
from unionmount.mounting import (
    ConvergenceEngine,
    MountExecutor,
    MountService,
    MountTableReader,
)
import unionmount.rpc as rpc
from .common import Operations
from .loop import EventLoop
from .watcher import EventWatcher


class HelperStartup:
    """
    Outcome of starting the privileged helper, as reported by the threads following it.

    The token skimmer reports the token or a broken handshake, and the helper watcher
    reports the helper exiting. Whichever report arrives first decides the startup.
    """

    def __init__(self) -> None:
        self._reports: queue.Queue[Tuple[Optional[str], Optional[Exception]]]
        self._reports = queue.Queue()

    def token_read(self, token: str) -> None:
        self._reports.put((token, None))

    def failed(self, error: Exception) -> None:
        self._reports.put((None, error))

    def wait_for_token(self) -> str:
        """Block until the helper handed out its token, or raise why it didn't."""
        token, error = self._reports.get()

        if error is not None:
            raise error

        assert token is not None
        return token


class DaemonOperations(Operations):
    """
    Class that encapsulates all work of the daemon.

    The daemon runs as the invoking user. Mount operations need root, so unless the
    daemon is already running as root they are delegated to a helper started with sudo
    that only exposes the mount service.
    """

    def __init__(self, args: Arguments, context: Context):
        """Initialize the daemon based on the command-line arguments."""
        super().__init__(context)

        self._args = args
        self._helper_port = random.randint(*constants.HELPER_PORT_RANGE)

        self.cancel = threading.Event()
        self.helper_stopped = threading.Event()
        self.helper_exited = threading.Event()

    def _run(self, stack: contextlib.ExitStack) -> int:
        """Run the reconciliation loop until cancelled."""
        privileged = os.geteuid() == 0

        programs = list(constants.REQUIRED_PROGRAMS)
        if not privileged:
            programs.append("sudo")
        check_dependencies(programs)

        self._acquire_instance_lock(stack)

        log.info("Starting unionmount")

        service: Any

        if privileged:
            service = MountService()
        else:
            service = self._start_helper(stack)

        executor = MountExecutor(
            service, self.context.command_log, self.context.union_options
        )
        engine = ConvergenceEngine(
            MountTableReader(self.context.mount_table_path), executor
        )
        watcher = EventWatcher(
            self.context.watched_roots,
            self.context.event_timeout,
            self.context.command_log,
        )

        # Stop cleanly between passes when asked to terminate
        previous_handler = signal.signal(signal.SIGTERM, lambda *_: self.cancel.set())
        stack.callback(signal.signal, signal.SIGTERM, previous_handler)

        EventLoop(self.context, engine, watcher).run(self.cancel)

        if self.helper_exited.is_set():
            raise RuntimeError("privileged helper unexpectedly stopped")

        log.info("Terminating unionmount")

        return 0

    @staticmethod
    def _acquire_instance_lock(stack: contextlib.ExitStack) -> None:
        """Ensure that no other daemon of this user is reconciling at the same time."""
        lock_path = os.path.expanduser(constants.LOCK_PATH)
        os.makedirs(os.path.dirname(lock_path), exist_ok=True)

        lock = fasteners.InterProcessLock(lock_path)

        if not lock.acquire(blocking=False):
            raise RuntimeError(f"another unionmount instance holds {lock_path}")

        stack.callback(lock.release)

    def _start_helper(self, stack: contextlib.ExitStack) -> rpc.Client:
        """Start the privileged helper and connect to its mount service."""
        log.info("I'm not running as root. Starting privileged helper with sudo...")

        startup = HelperStartup()

        # Set up stdout redirection where the RPC token can be read from the helper
        out_reader, out_writer = os.pipe()
        token_thread = self._start_thread(self._run_token_skimmer, startup, out_reader)
        stack.callback(token_thread.join, timeout=5.0)
        stack.callback(os.close, out_writer)

        helper_proc = self._spawn_helper(out_writer)

        helper_thread = self._start_thread(self._watch_helper, startup, helper_proc)
        stack.callback(helper_thread.join, timeout=5.0)

        # The helper exits once its stdin is closed, including when the daemon dies
        stack.callback(helper_proc.stdin.close)

        token = startup.wait_for_token()

        # No timeout is applied to mount calls since mounts may legitimately take long,
        # but a call is abandoned once the helper is gone.
        client = rpc.Client(
            MountService,
            f"tcp://127.0.0.1:{self._helper_port}",
            token,
            stop=self.helper_stopped,
        )
        stack.callback(client.close)

        # Ensure availability of the mount service.
        try:
            client.ping(constants.HELPER_PING_TIMEOUT)
        except IOError:
            raise RuntimeError("privileged helper is not responding")

        return client

    def _spawn_helper(self, stdout_writer: int) -> subprocess.Popen:
        """Start the privileged helper process through sudo."""
        try:
            helper_command = self._compose_helper_command()

            log.debug(f"running {helper_command}")

            return subprocess.Popen(
                helper_command, stdin=subprocess.PIPE, stdout=stdout_writer
            )
        except Exception as e:
            raise RuntimeError(f"failed to start privileged helper: {e}")

    def _compose_helper_command(self) -> List[str]:
        """Compose the command for invoking the privileged helper through sudo."""
        return [
            "sudo",
            "--",
            sys.executable,
            "-m",
            "unionmount",
            "--helper",
            f"--protocol={self._args.protocol}",
            f"--port={self._helper_port}",
        ]

    def _watch_helper(self, startup: HelperStartup, helper: subprocess.Popen) -> None:
        """Wait for the helper to exit and stop the loop, since mounts need it."""
        try:
            helper.wait()
            startup.failed(
                RuntimeError(
                    f"privileged helper failed to start (exit code {helper.returncode})"
                )
            )
        except Exception as e:
            startup.failed(RuntimeError(f"privileged helper failed: {e}"))
        finally:
            self.helper_stopped.set()

            if not self.cancel.is_set():
                self.helper_exited.set()
                self.cancel.set()

    @classmethod
    def _run_token_skimmer(cls, startup: HelperStartup, stdout_reader: int) -> None:
        """Forward the helper's stdout to the real stdout while capturing the token."""
        # Forward output until start marker of token
        cls._read_until_symbol(stdout_reader, curses.ascii.SOH, cls._write_stdout)

        # Read token
        buf_bytes: List[bytes] = []
        cls._read_until_symbol(stdout_reader, curses.ascii.STX, buf_bytes.append)

        buf = b"".join(buf_bytes)

        token = buf[:32].decode(errors="replace")
        token_checksum = buf[32:].decode(errors="replace")

        token_expected_checksum = hashlib.sha256(token.encode()).hexdigest()

        if token_checksum != token_expected_checksum:
            startup.failed(RuntimeError("handshake failed (invalid token checksum)"))

            # If the output was not a valid token then it should be forwarded as normal
            cls._write_stdout(buf)
        else:
            startup.token_read(token)

        # Simply pass through all other output from this point
        while True:
            chunk = os.read(stdout_reader, 1024)

            if len(chunk) > 0:
                cls._write_stdout(chunk)
            else:
                # End of stream
                break

        os.close(stdout_reader)

    @staticmethod
    def _write_stdout(data: bytes) -> None:
        """Write output to stdout and immediately flush it."""
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()

    @staticmethod
    def _read_until_symbol(
        fd: int, ascii_code: int, callback: Callable[[bytes], Any]
    ) -> None:
        """Read and forward bytes from the file descriptor until specific symbol."""
        symbol = chr(ascii_code).encode()

        while True:
            c = os.read(fd, 1)

            if c == symbol or len(c) == 0:
                break
            else:
                callback(c)
