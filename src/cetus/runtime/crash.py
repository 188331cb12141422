from __future__ import annotations

import faulthandler
import io
import logging
import os
import sys
import traceback
from types import TracebackType
from typing import IO, Mapping, Optional

logger = logging.getLogger(__name__)

BACKTRACE_DEPTH = 16

_INSTRUMENTATION_PRELOADS = ("vgpreload", "valgrind", "libasan", "libtsan", "libmsan")


def running_under_instrumentation(environ: Optional[Mapping[str, str]] = None) -> bool:
    """True when a memory checker owns the fatal-signal handlers."""
    env = os.environ if environ is None else environ
    preload = env.get("LD_PRELOAD", "").lower()
    if any(marker in preload for marker in _INSTRUMENTATION_PRELOADS):
        return True
    return bool(env.get("RUNNING_ON_VALGRIND"))


def log_backtrace(tb: Optional[TracebackType] = None, limit: int = BACKTRACE_DEPTH) -> int:
    """
    Emit up to ``limit`` stack frames as warnings and return how many were logged.

    Without a traceback the current call stack is used.
    """
    if tb is not None:
        frames = traceback.extract_tb(tb)[-limit:]
    else:
        frames = traceback.extract_stack(limit=limit + 1)[:-1]

    logger.warning("Obtained %d stack frames.", len(frames))
    for frame in frames:
        logger.warning("%s:%d in %s", frame.filename, frame.lineno, frame.name)
    return len(frames)


class CrashHandler:
    """
    Intercepts SIGSEGV, SIGBUS, SIGFPE, SIGILL and SIGABRT through
    ``faulthandler``.

    On a fatal signal the stacks are written straight to the log stream,
    then the default disposition is restored and the signal re-raised, so
    the process still dies the way a crash does (core dump, supervisor sees
    a signal).
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self.environ = environ
        self.installed = False
        self._previously_enabled = False
        self._stream: Optional[IO] = None

    def install(self, stream: Optional[IO] = None) -> bool:
        """Returns False when skipped (instrumented run, or no usable fd)."""
        if self.installed:
            return True

        if running_under_instrumentation(self.environ):
            logger.info("memory instrumentation detected, crash handler not installed")
            return False

        target = stream if stream is not None else sys.stderr
        self._previously_enabled = faulthandler.is_enabled()
        try:
            faulthandler.enable(file=target, all_threads=True)
        except (ValueError, OSError, io.UnsupportedOperation) as exc:
            logger.warning("cannot install crash handler: %s", exc)
            return False

        self._stream = target
        self.installed = True
        return True

    def retarget(self, stream: IO) -> bool:
        """Point dumps at a new stream, e.g. once the log file is open."""
        if not self.installed:
            return False
        try:
            faulthandler.enable(file=stream, all_threads=True)
        except (ValueError, OSError, io.UnsupportedOperation) as exc:
            logger.warning("cannot redirect crash handler output: %s", exc)
            return False
        self._stream = stream
        return True

    def restore(self) -> bool:
        """Put back the default disposition; returns False if nothing was installed."""
        if not self.installed:
            return False

        faulthandler.disable()
        if self._previously_enabled:
            faulthandler.enable(file=sys.__stderr__, all_threads=True)

        self._stream = None
        self.installed = False
        return True
