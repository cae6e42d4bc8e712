from unittest import mock
import os.path
import signal

import semver
import pytest

from unionmount.__main__ import main
from unionmount.constants import ERROR_CODE


def test_too_many_args():
    with pytest.raises(SystemExit):
        main(["a", "b"])


def test_protocol_check(caplog):
    mismatching_major = semver.VersionInfo.parse("0.0.0")

    with mock.patch("unionmount.operations.HelperOperations") as mock_operations:
        with pytest.raises(SystemExit) as e:
            main(["--helper", f"--protocol={mismatching_major}", "--port=31000"])

        assert not mock_operations().run.called

    assert e.value.code == ERROR_CODE
    assert "incompatible protocol" in caplog.text


def test_daemon_operations():
    with mock.patch("unionmount.operations.DaemonOperations") as mock_operations:
        mock_operations().run.return_value = 0

        with pytest.raises(SystemExit) as e:
            main([])

        assert mock_operations().run.called
        assert e.value.code == 0


def test_helper_operations():
    with mock.patch("unionmount.operations.HelperOperations") as mock_operations:
        mock_operations().run.return_value = 0

        with pytest.raises(SystemExit):
            main(["--helper", "--port=31000"])

        assert mock_operations().run.called


def test_config_path_absolute(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    with mock.patch("unionmount.operations.DaemonOperations") as mock_operations:
        mock_operations().run.return_value = 0

        with pytest.raises(SystemExit):
            main(["config"])

    _args, context = mock_operations.call_args[0]
    assert context.config_path == os.path.join(os.getcwd(), "config")


def test_fatal_error(caplog):
    with mock.patch("unionmount.operations.DaemonOperations") as mock_operations:
        mock_operations().run.side_effect = RuntimeError("foo")

        with pytest.raises(SystemExit) as e:
            main([])

    assert e.value.code == ERROR_CODE
    assert "ERROR: foo" in caplog.text
    assert "Execution log:\n<empty>" in caplog.text


def test_interrupted():
    with mock.patch("unionmount.operations.DaemonOperations") as mock_operations:
        mock_operations().run.side_effect = KeyboardInterrupt()

        with pytest.raises(SystemExit) as e:
            main([])

    assert e.value.code == 128 + signal.SIGINT
