from unittest import mock

import pytest

from unionmount.dependencies import check_dependencies, DependencyMissing


def test_present():
    check_dependencies(["sh"])


def test_missing():
    with pytest.raises(DependencyMissing) as e:
        check_dependencies(["sh", "definitely-not-a-program-xyz"])

    assert "definitely-not-a-program-xyz not found" in str(e.value)


def test_multiple_missing():
    with mock.patch("shutil.which", return_value=None):
        with pytest.raises(DependencyMissing) as e:
            check_dependencies(["mhddfs", "inotifywait"])

    assert "mhddfs, inotifywait" in str(e.value)
