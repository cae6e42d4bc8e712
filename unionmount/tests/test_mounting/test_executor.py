from unittest import mock

import pytest

from unionmount.logger import CommandLog
from unionmount.mounting.common import CommandResult
from unionmount.mounting.executor import MountExecutor, MountFailed, UnmountFailed


OPTIONS = ["allow_other", "mlimit=1024G"]


def ok(*args):
    return CommandResult(list(args), 0, "")


def test_no_sources():
    service = mock.Mock()
    executor = MountExecutor(service, CommandLog(), OPTIONS)

    executor.mount([], "/mnt/x")

    assert not service.bind.called
    assert not service.union.called


def test_single_source_binds():
    service = mock.Mock()
    service.bind.return_value = ok("mount", "--bind", "/a", "/mnt/x")
    executor = MountExecutor(service, CommandLog(), OPTIONS)

    executor.mount(["/a"], "/mnt/x")

    service.bind.assert_called_once_with("/a", "/mnt/x")
    assert not service.union.called


def test_multiple_sources_union():
    service = mock.Mock()
    service.union.return_value = ok("mhddfs", "/a,/b", "/mnt/x")
    executor = MountExecutor(service, CommandLog(), OPTIONS)

    executor.mount(["/a", "/b"], "/mnt/x")

    service.union.assert_called_once_with(["/a", "/b"], "/mnt/x", OPTIONS)
    assert not service.bind.called


def test_output_is_recorded():
    service = mock.Mock()
    service.bind.return_value = CommandResult(["mount"], 0, "some warning")
    command_log = CommandLog()
    executor = MountExecutor(service, command_log, OPTIONS)

    executor.mount(["/a"], "/mnt/x")

    assert len(command_log) == 1
    assert "some warning" in command_log.dump()


def test_mount_failure():
    service = mock.Mock()
    service.union.return_value = CommandResult(
        ["mhddfs"], 1, "fuse: device not found\n"
    )
    command_log = CommandLog()
    executor = MountExecutor(service, command_log, OPTIONS)

    with pytest.raises(MountFailed) as e:
        executor.mount(["/a", "/b"], "/mnt/x")

    assert "couldn't mount '/mnt/x'" in str(e.value)
    assert "fuse: device not found" in str(e.value)
    assert "fuse: device not found" in command_log.dump()


def test_mount_failure_without_output():
    service = mock.Mock()
    service.bind.return_value = CommandResult(["mount"], 32, "")
    executor = MountExecutor(service, CommandLog(), OPTIONS)

    with pytest.raises(MountFailed) as e:
        executor.mount(["/a"], "/mnt/x")

    assert "exit code 32" in str(e.value)


def test_service_error_is_mount_failure():
    service = mock.Mock()
    service.bind.side_effect = IOError("rpc call timed out")
    executor = MountExecutor(service, CommandLog(), OPTIONS)

    with pytest.raises(MountFailed) as e:
        executor.mount(["/a"], "/mnt/x")

    assert "rpc call timed out" in str(e.value)


def test_unmount():
    service = mock.Mock()
    service.unmount.return_value = ok("umount", "/mnt/x")
    executor = MountExecutor(service, CommandLog(), OPTIONS)

    executor.unmount("/mnt/x")

    service.unmount.assert_called_once_with("/mnt/x")


def test_unmount_failure():
    service = mock.Mock()
    service.unmount.return_value = CommandResult(["umount"], 32, "target is busy\n")
    executor = MountExecutor(service, CommandLog(), OPTIONS)

    with pytest.raises(UnmountFailed) as e:
        executor.unmount("/mnt/x")

    assert "target is busy" in str(e.value)


def test_unmount_service_error():
    service = mock.Mock()
    service.unmount.side_effect = PermissionError(1, "Operation not permitted")
    executor = MountExecutor(service, CommandLog(), OPTIONS)

    with pytest.raises(UnmountFailed):
        executor.unmount("/mnt/x")
