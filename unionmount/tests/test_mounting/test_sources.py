import os

import pytest

from unionmount.mounting.sources import is_available, resolve


def test_filters_missing(tmp_path):
    (tmp_path / "a").mkdir()
    (tmp_path / "c").mkdir()

    sources = [str(tmp_path / name) for name in ["a", "b", "c"]]

    assert resolve(sources) == [str(tmp_path / "a"), str(tmp_path / "c")]


def test_preserves_order(tmp_path):
    (tmp_path / "a").mkdir()
    (tmp_path / "b").mkdir()

    sources = [str(tmp_path / "b"), str(tmp_path / "a")]

    assert resolve(sources) == sources


def test_nothing_available(tmp_path):
    assert resolve([str(tmp_path / "a"), str(tmp_path / "b")]) == []
    assert resolve([]) == []


def test_files_are_not_sources(tmp_path):
    (tmp_path / "file").write_text("")

    assert not is_available(str(tmp_path / "file"))


def test_duplicates_dropped(tmp_path):
    (tmp_path / "a").mkdir()

    assert resolve([str(tmp_path / "a")] * 2) == [str(tmp_path / "a")]


def test_symlinks_resolved(tmp_path):
    (tmp_path / "drives" / "usb").mkdir(parents=True)
    (tmp_path / "pendrive").symlink_to(tmp_path / "drives" / "usb")

    assert resolve([str(tmp_path / "pendrive")]) == [str(tmp_path / "drives" / "usb")]


def test_aliases_of_same_directory_dropped(tmp_path):
    (tmp_path / "a").mkdir()
    (tmp_path / "alias").symlink_to(tmp_path / "a")

    sources = [str(tmp_path / "alias"), str(tmp_path / "a")]

    assert resolve(sources) == [str(tmp_path / "a")]


@pytest.mark.skipif(os.geteuid() == 0, reason="root can enter any directory")
def test_inaccessible_directory(tmp_path):
    locked = tmp_path / "locked"
    locked.mkdir()
    locked.chmod(0o000)

    try:
        assert resolve([str(locked)]) == []
    finally:
        locked.chmod(0o755)
