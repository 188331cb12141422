from __future__ import annotations

import logging
import resource
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Set

from pydantic import BaseModel, ConfigDict

from cetus.chassis import Chassis
from cetus.config.frontend import FrontendConfig
from cetus.config.options import OptionRegistry
from cetus.runtime.crash import CrashHandler
from cetus.runtime.daemon import remove_pidfile
from cetus.runtime.log import ServiceLog
from cetus.runtime.supervisor import SupervisionRecord

logger = logging.getLogger("cetus")


class BootstrapOutcome(BaseModel):
    """Final verdict of one bootstrap run; created once by the funnel."""

    model_config = ConfigDict(frozen=True)

    exit_code: int
    origin: str
    version_only: bool = False

    @property
    def normal_shutdown(self) -> bool:
        return self.exit_code == 0


@dataclass
class ShutdownResources:
    """Everything the bootstrap may have acquired, in acquisition order."""

    log: Optional[ServiceLog] = None
    chassis: Optional[Chassis] = None
    frontend: Optional[FrontendConfig] = None
    registry: Optional[OptionRegistry] = None
    crash_handler: Optional[CrashHandler] = None
    supervision: Optional[SupervisionRecord] = None
    error: Optional[BaseException] = None
    pid_file: Optional[Path] = None


class ShutdownCoordinator:
    """
    The single exit funnel.

    Release order is fixed: monitor, shutdown flag, terminal log line,
    crash handler, error, service object (and pid file), option registry,
    logs, frontend record. Logs close late so every release above can
    still report. A second call releases nothing and returns the first
    outcome. A release that raises is logged and the remaining releases
    still run.
    """

    def __init__(self) -> None:
        self.outcome: Optional[BootstrapOutcome] = None
        self.released: List[str] = []
        self._released_ids: Set[int] = set()

    def shutdown(
        self,
        resources: ShutdownResources,
        exit_code: int,
        origin: str,
        version_only: bool = False,
    ) -> BootstrapOutcome:
        if self.outcome is not None:
            return self.outcome

        outcome = BootstrapOutcome(exit_code=exit_code, origin=origin, version_only=version_only)
        chassis = resources.chassis
        frontend = resources.frontend

        if chassis is not None and chassis.monitor is not None:
            self._release("monitor", chassis.monitor, chassis.monitor.stop)

        if chassis is not None:
            chassis.set_shutdown_location(origin)

        usage = resource.getrusage(resource.RUSAGE_SELF)
        logger.info("max resident set size (kBytes): %d", usage.ru_maxrss)

        if frontend is not None and not (version_only or frontend.print_version):
            level = logging.CRITICAL if frontend.verbose_shutdown else logging.INFO
            logger.log(level, "shutting down normally, exit code is: %d", exit_code)

        if resources.crash_handler is not None:
            self._release("crash-handler", resources.crash_handler, resources.crash_handler.restore)

        if resources.error is not None:
            self._release("error", resources.error, lambda: setattr(resources, "error", None))

        if chassis is not None:
            self._release("chassis", chassis, chassis.free)

        if resources.pid_file is not None:
            pid_file = resources.pid_file
            self._release("pid-file", pid_file, lambda: remove_pidfile(pid_file))

        if resources.registry is not None:
            self._release("options", resources.registry, resources.registry.release)

        if resources.log is not None:
            self._release("log", resources.log, resources.log.close)

        if frontend is not None:
            self._release("frontend", frontend, lambda: setattr(resources, "frontend", None))

        resources.supervision = None
        self.outcome = outcome
        return outcome

    def _release(self, label: str, target: object, release: Callable[[], object]) -> bool:
        key = id(target)
        if key in self._released_ids:
            return False
        self._released_ids.add(key)
        self.released.append(label)
        try:
            release()
        except Exception:
            logger.exception("releasing %s failed", label)
            return False
        return True
