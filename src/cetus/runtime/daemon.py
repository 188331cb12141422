from __future__ import annotations

import logging
import os
import signal
from pathlib import Path
from typing import Callable, Optional

from cetus.utils.diagnostics import ResourceError

logger = logging.getLogger(__name__)


def is_process_alive(pid: int) -> bool:
    """Return True when a process id appears to be alive on this host."""
    if pid <= 0:
        return False

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False

    return True


def write_pidfile(path: Path, pid: Optional[int] = None) -> Path:
    """
    Persist the running process id; raises ResourceError on failure.

    A pid file held by another live process is never overwritten.
    """
    pid = os.getpid() if pid is None else pid
    holder = read_pidfile(path)
    if holder is not None and holder != pid and is_process_alive(holder):
        raise ResourceError(f"pid-file '{path}' belongs to running process {holder}")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"{pid}\n", encoding="utf-8")
    except OSError as exc:
        raise ResourceError(f"opening '{path}' failed", exc) from exc
    return path


def read_pidfile(path: Path) -> Optional[int]:
    """Return the pid stored in ``path``, or None when absent or unreadable."""
    try:
        return int(path.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None


def remove_pidfile(path: Path, pid: Optional[int] = None) -> bool:
    """Delete the pid file if it still belongs to ``pid`` (default: this process)."""
    owner = os.getpid() if pid is None else pid
    if read_pidfile(path) != owner:
        return False
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        logger.warning("removing pid-file '%s' failed: %s", path, exc)
        return False
    return True


def daemonize(
    fork: Callable[[], int] = os.fork,
    exit_process: Callable[[int], None] = os._exit,
) -> None:
    """
    Detach from the controlling terminal with the classic double fork.

    Only the grandchild returns.
    """
    if fork() != 0:
        exit_process(0)

    os.setsid()
    signal.signal(signal.SIGHUP, signal.SIG_IGN)

    if fork() != 0:
        exit_process(0)

    os.chdir("/")
    os.umask(0)

    fd = os.open(os.devnull, os.O_RDWR)
    for target in (0, 1, 2):
        if fd != target:
            os.dup2(fd, target)
    if fd > 2:
        os.close(fd)
