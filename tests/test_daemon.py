import os
from pathlib import Path

import pytest

from cetus.runtime.daemon import is_process_alive, read_pidfile, remove_pidfile, write_pidfile
from cetus.utils.diagnostics import ResourceError


def test_is_process_alive_for_current_pid():
    assert is_process_alive(os.getpid())
    assert not is_process_alive(0)


def test_write_and_read_pidfile(tmp_path):
    path = write_pidfile(tmp_path / "run" / "cetus.pid")

    assert path.read_text() == f"{os.getpid()}\n"
    assert read_pidfile(path) == os.getpid()


def test_read_pidfile_garbage(tmp_path):
    path = tmp_path / "cetus.pid"
    path.write_text("not-a-pid")
    assert read_pidfile(path) is None
    assert read_pidfile(tmp_path / "absent.pid") is None


def test_remove_pidfile_only_for_owner(tmp_path):
    path = write_pidfile(tmp_path / "cetus.pid", pid=12345)

    assert remove_pidfile(path) is False
    assert path.exists()
    assert remove_pidfile(path, pid=12345) is True
    assert not path.exists()
    assert remove_pidfile(path, pid=12345) is False


def test_write_pidfile_failure(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")
    with pytest.raises(ResourceError) as excinfo:
        write_pidfile(blocker / "cetus.pid")
    assert "opening" in str(excinfo.value)


def test_unremovable_pidfile_reports_not_removed(tmp_path, monkeypatch, caplog):
    path = write_pidfile(tmp_path / "cetus.pid")

    def denied(self, missing_ok=False):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(Path, "unlink", denied)

    assert remove_pidfile(path) is False
    assert "removing pid-file" in caplog.text


def test_write_pidfile_refuses_live_holder(tmp_path):
    path = write_pidfile(tmp_path / "cetus.pid", pid=os.getppid())

    with pytest.raises(ResourceError) as excinfo:
        write_pidfile(path)
    assert "belongs to running process" in str(excinfo.value)
    assert read_pidfile(path) == os.getppid()


def test_write_pidfile_replaces_stale_holder(tmp_path, monkeypatch):
    path = write_pidfile(tmp_path / "cetus.pid", pid=424242)
    monkeypatch.setattr("cetus.runtime.daemon.is_process_alive", lambda pid: False)

    write_pidfile(path)

    assert read_pidfile(path) == os.getpid()
