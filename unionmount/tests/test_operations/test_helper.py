import curses.ascii
import hashlib
import io
import socket
from unittest import mock

import pytest

from unionmount.args import Arguments
from unionmount.context import Context
from unionmount.operations import HelperOperations


def free_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def test_requires_root():
    ops = HelperOperations(Arguments.parse(["--helper", "--port=31000"]), Context())

    with mock.patch("os.geteuid", return_value=1000):
        with pytest.raises(RuntimeError) as e:
            ops.run()

    assert "must run as root" in str(e.value)


def test_requires_port():
    ops = HelperOperations(Arguments.parse(["--helper"]), Context())

    with mock.patch("os.geteuid", return_value=0):
        with pytest.raises(RuntimeError) as e:
            ops.run()

    assert "without a port" in str(e.value)


def test_token_handshake(capsys):
    token = HelperOperations._token_handshake()

    out = capsys.readouterr().out

    assert out[0] == chr(curses.ascii.SOH)
    assert out[-1] == chr(curses.ascii.STX)
    assert out[1:-1] == token + hashlib.sha256(token.encode()).hexdigest()


def test_stdin_closed_stops_helper():
    ops = HelperOperations(Arguments.parse(["--helper", "--port=31000"]), Context())

    ops._watch_stdin(io.BytesIO(b"some input"))

    assert ops.stop.is_set()


def test_serves_until_stdin_closed(capsys):
    port = free_port()
    ops = HelperOperations(Arguments.parse(["--helper", f"--port={port}"]), Context())

    stdin = mock.Mock()
    stdin.buffer = io.BytesIO(b"")

    with mock.patch("os.geteuid", return_value=0), mock.patch("sys.stdin", stdin):
        assert ops.run() == 0

    assert ops.stop.is_set()
    assert capsys.readouterr().out.startswith(chr(curses.ascii.SOH))
