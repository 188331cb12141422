from __future__ import annotations

import logging
import os
import signal
import time
from enum import Enum
from typing import Callable, Dict, Optional, Sequence

from pydantic import BaseModel, Field

from cetus.utils.diagnostics import SupervisorError

logger = logging.getLogger(__name__)

FORWARDED_SIGNALS = (signal.SIGTERM, signal.SIGINT, signal.SIGHUP)


class SupervisorRole(str, Enum):
    """Which side of the keepalive fork the current process is on."""

    SUPERVISOR = "supervisor"
    CHILD = "child"


class SupervisionRecord(BaseModel):
    """State of one keepalive pair, alive only while auto-restart is enabled."""

    role: SupervisorRole = SupervisorRole.SUPERVISOR
    child_pid: Optional[int] = None
    last_child_status: Optional[int] = None
    exit_code: Optional[int] = None
    restarts: int = Field(default=0, ge=0)


def is_deliberate_shutdown(wait_status: int) -> bool:
    """
    A child that exited by itself chose to stop, whatever its exit code;
    a child killed by a signal crashed.
    """
    return os.WIFEXITED(wait_status)


def describe_wait_status(wait_status: int) -> str:
    if os.WIFEXITED(wait_status):
        return f"exit-code = {os.WEXITSTATUS(wait_status)}"
    if os.WIFSIGNALED(wait_status):
        signum = os.WTERMSIG(wait_status)
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        return f"signal = {name}"
    return f"status = {wait_status}"


class ProcessSupervisor:
    """
    Keeps a forked child alive.

    ``keepalive`` returns in the child with role CHILD right after the fork.
    In the supervisor it only returns once a child exits deliberately, with
    that child's exit code. fork/wait failures raise SupervisorError.
    """

    def __init__(
        self,
        fork: Callable[[], int] = os.fork,
        waitpid: Callable[[int, int], tuple] = os.waitpid,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        restart_delay: float = 3.0,
        min_uptime: float = 10.0,
        forward_signals: Sequence[int] = FORWARDED_SIGNALS,
        exit_process: Callable[[int], None] = os._exit,
    ) -> None:
        self._fork = fork
        self._waitpid = waitpid
        self._sleep = sleep
        self._clock = clock
        self.restart_delay = restart_delay
        self.min_uptime = min_uptime
        self.forward_signals = tuple(forward_signals)
        self._exit_process = exit_process
        self._previous_handlers: Dict[int, object] = {}
        self.record: Optional[SupervisionRecord] = None

    def keepalive(self) -> SupervisionRecord:
        record = SupervisionRecord()
        self.record = record
        self._install_forwarders(record)
        try:
            while True:
                try:
                    pid = self._fork()
                except OSError as exc:
                    raise SupervisorError(f"[angel] fork() failed: {exc}") from exc

                if pid == 0:
                    record.role = SupervisorRole.CHILD
                    record.child_pid = os.getpid()
                    return record

                record.child_pid = pid
                started = self._clock()
                logger.info("[angel] we try to keep PID=%d alive", pid)

                status = self._wait_for(pid)
                record.last_child_status = status

                if is_deliberate_shutdown(status):
                    record.exit_code = os.WEXITSTATUS(status)
                    logger.info("[angel] PID=%d exited normally with %s", pid, describe_wait_status(status))
                    return record

                record.restarts += 1
                uptime = self._clock() - started
                logger.critical(
                    "[angel] PID=%d died on %s after %.1fs, restarting",
                    pid,
                    describe_wait_status(status),
                    uptime,
                )
                if uptime < self.min_uptime:
                    self._sleep(self.restart_delay)
        finally:
            self._restore_handlers()

    def run_supervised(self, work: Callable[[], int]) -> int:
        """
        Run ``work`` in a kept-alive child and return the final exit status.

        The child never returns from here: it exits with ``work``'s result.
        """
        record = self.keepalive()
        if record.role == SupervisorRole.CHILD:
            code = 1
            try:
                code = work()
            finally:
                self._exit_process(code)
        return record.exit_code if record.exit_code is not None else 1

    def _wait_for(self, pid: int) -> int:
        while True:
            try:
                waited_pid, status = self._waitpid(pid, 0)
            except ChildProcessError as exc:
                raise SupervisorError(f"[angel] waitpid({pid}) failed: {exc}") from exc
            if waited_pid != pid:
                continue
            if os.WIFEXITED(status) or os.WIFSIGNALED(status):
                return status

    def _install_forwarders(self, record: SupervisionRecord) -> None:
        def forward(signum, _frame):
            if record.role == SupervisorRole.SUPERVISOR and record.child_pid:
                try:
                    os.kill(record.child_pid, signum)
                except ProcessLookupError:
                    pass

        for signum in self.forward_signals:
            try:
                self._previous_handlers[signum] = signal.signal(signum, forward)
            except ValueError:
                # not the main thread
                logger.debug("cannot forward signal %s from this thread", signum)

    def _restore_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
        self._previous_handlers.clear()
