"""Module with shared fixtures and a pytest flag to enable tests that really mount."""

import os.path
from typing import List

import pytest

from unionmount.mounting.common import CommandResult


def pytest_addoption(parser):
    parser.addoption(
        "--privileged", action="store_true", default=False, help="Run tests that mount"
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "privileged: mark test as requiring root to mount"
    )


def pytest_collection_modifyitems(config, items):
    if not config.getoption("--privileged"):
        skip_mount = pytest.mark.skip(reason="only runs with --privileged option")

        for item in items:
            if "privileged" in item.keywords:
                item.add_marker(skip_mount)


class FakeMountService:
    """
    Stand-in for MountService that maintains a fake mountinfo file.

    Like the kernel, it records mount points and bind roots with symlinks resolved.
    """

    ROOT_ENTRY = "1 0 0:50 / / rw,relatime shared:1 - ext4 /dev/fake1 rw"

    def __init__(self, path):
        self.path = path
        self.calls = []
        self.failing = set()
        self.stuck = False

        self._entries = [self.ROOT_ENTRY]
        self._next_id = 100

        self._write()

    def _write(self):
        self.path.write_text("\n".join(self._entries) + "\n")

    @staticmethod
    def _escape(path):
        return path.replace("\\", "\\134").replace(" ", "\\040")

    def add(self, device, root, mount_point, fs_type, source):
        self._next_id += 1
        self._entries.append(
            f"{self._next_id} 1 {device} {self._escape(root)} "
            f"{self._escape(mount_point)} rw,relatime - {fs_type} "
            f"{self._escape(source)} rw"
        )
        self._write()

    def _result(self, operation, args):
        if operation in self.failing:
            return CommandResult(args, 32, f"{args[0]}: permission denied\n")
        else:
            return CommandResult(args, 0, "")

    def bind(self, source: str, mount_point: str) -> CommandResult:
        self.calls.append(("bind", [source], mount_point))
        result = self._result("bind", ["mount", "--bind", source, mount_point])

        if result.succeeded:
            self.add(
                "0:50",
                os.path.realpath(source),
                os.path.realpath(mount_point),
                "ext4",
                "/dev/fake1",
            )

        return result

    def union(
        self, sources: List[str], mount_point: str, options: List[str]
    ) -> CommandResult:
        self.calls.append(("union", list(sources), mount_point))
        args = ["mhddfs", ",".join(sources), mount_point, "-o", ",".join(options)]
        result = self._result("union", args)

        if result.succeeded:
            device = f"0:{self._next_id}"
            self.add(
                device,
                "/",
                os.path.realpath(mount_point),
                "fuse.mhddfs",
                ";".join(sources),
            )

        return result

    def unmount(self, mount_point: str) -> CommandResult:
        self.calls.append(("unmount", [], mount_point))
        result = self._result("unmount", ["umount", mount_point])

        if not result.succeeded or self.stuck:
            return result

        target = self._escape(os.path.realpath(mount_point))

        for i in reversed(range(len(self._entries))):
            if target == self._entries[i].split(" ")[4]:
                del self._entries[i]
                self._write()
                return result

        return CommandResult(["umount", mount_point], 32, "umount: not mounted\n")

    def operations(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_service(tmp_path):
    return FakeMountService(tmp_path / "mountinfo")
