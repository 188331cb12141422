from __future__ import annotations

import logging
import os
import platform
import signal
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict
from rich.console import Console

from cetus import __version__
from cetus.bootstrap.shutdown import BootstrapOutcome, ShutdownCoordinator, ShutdownResources
from cetus.chassis import Chassis, ServiceEngine
from cetus.cli.formatter import OutputFormatter
from cetus.config.frontend import (
    DEFAULT_CONF_DIR,
    DEFAULT_PLUGIN,
    DEFAULT_XA_LOG,
    FrontendConfig,
    base_option_descriptors,
    core_option_descriptors,
)
from cetus.config.options import OptionRegistry, ParseMode
from cetus.config.paths import init_basedir, init_plugin_dir, resolve_path
from cetus.config.remote import LocalDirectoryConfig
from cetus.config.resolver import ConfigResolver
from cetus.config.settings import finalize_settings
from cetus.plugins.loader import check_plugin_modes, load_plugins
from cetus.runtime.crash import CrashHandler, log_backtrace
from cetus.runtime.daemon import daemonize, write_pidfile
from cetus.runtime.limits import get_fdlimit, set_fdlimit
from cetus.runtime.log import ServiceLog
from cetus.runtime.monitor import BackgroundMonitor
from cetus.runtime.supervisor import ProcessSupervisor, SupervisionRecord, SupervisorRole
from cetus.utils.diagnostics import CetusError, PluginError, UnknownOptionError

logger = logging.getLogger("cetus")

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class Stage(str, Enum):
    """Bootstrap stages, in execution order."""

    INIT_RUNTIME = "init-runtime"
    OPEN_STDERR_LOG = "open-log(stderr)"
    CREATE_SERVICE = "create-service-object"
    PARSE_PASS_1 = "parse-pass-1"
    LOAD_CONFIG = "load-local-or-remote-config"
    INSTALL_CRASH_HANDLER = "install-crash-handler"
    RESOLVE_DIRS = "resolve-base-and-plugin-dirs"
    RESOLVE_PATHS = "resolve-paths"
    OPEN_FILE_LOG = "open-log(file)"
    APPLY_LOG_LEVEL = "apply-log-level"
    INIT_ENGINE = "init-engine"
    SELECT_DEFAULT_PLUGINS = "select-default-plugins-if-none"
    LOAD_PLUGINS = "load-plugins"
    INIT_PLUGINS = "init-plugins"
    PRINT_VERSIONS = "print-versions-if-requested"
    PARSE_PASS_2 = "parse-pass-2-strict"
    FINALIZE_CONFIG = "finalize-config"
    DAEMONIZE = "daemonize-if-requested"
    SUPERVISE = "supervise-if-requested"
    WRITE_PIDFILE = "write-pidfile"
    OPEN_XA_LOG = "open-xa-log"
    APPLY_LIMITS = "apply-runtime-limits"
    START_MONITORS = "start-background-monitors"
    RUN_MAINLOOP = "run-mainloop"
    STOP_MONITORS = "stop-background-monitors"


STAGE_ORDER: List[Stage] = list(Stage)


class StageStatus(str, Enum):
    ADVANCE = "advance"
    TERMINATE = "terminate"
    FAIL = "fail"


class StageResult(BaseModel):
    """Tagged result every stage produces."""

    model_config = ConfigDict(frozen=True)

    status: StageStatus
    stage: Stage
    exit_code: int = EXIT_SUCCESS
    version_only: bool = False
    message: Optional[str] = None

    @classmethod
    def advance(cls, stage: Stage) -> "StageResult":
        return cls(status=StageStatus.ADVANCE, stage=stage)

    @classmethod
    def terminate(cls, stage: Stage, exit_code: int = EXIT_SUCCESS, version_only: bool = False) -> "StageResult":
        return cls(status=StageStatus.TERMINATE, stage=stage, exit_code=exit_code, version_only=version_only)

    @classmethod
    def fail(cls, stage: Stage, message: str) -> "StageResult":
        return cls(status=StageStatus.FAIL, stage=stage, exit_code=EXIT_FAILURE, message=message)


class BootstrapSequencer:
    """
    Drives startup one stage at a time.

    A stage either advances, terminates early (version/help printed,
    supervisor finished) or fails; every path ends in the shutdown funnel
    with whatever was acquired so far.
    """

    def __init__(
        self,
        argv: Sequence[str],
        engine: Optional[ServiceEngine] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        crash_handler: Optional[CrashHandler] = None,
        daemonizer: Callable[[], None] = daemonize,
        console: Optional[Console] = None,
        cwd: Optional[Path] = None,
    ) -> None:
        self.argv = list(argv) or ["cetus"]
        self.engine = engine
        self.supervisor = supervisor or ProcessSupervisor()
        self.crash_handler = crash_handler or CrashHandler()
        self.daemonizer = daemonizer
        self.console = console
        self.cwd = cwd

        self.resources = ShutdownResources()
        self.coordinator = ShutdownCoordinator()
        self.frontend: Optional[FrontendConfig] = None
        self.registry: Optional[OptionRegistry] = None
        self.resolver: Optional[ConfigResolver] = None
        self.chassis: Optional[Chassis] = None
        self.log: Optional[ServiceLog] = None
        self.supervision: Optional[SupervisionRecord] = None
        self.completed: List[Stage] = []
        self.current_stage: Optional[Stage] = None

        self._handlers: Dict[Stage, Callable[[], Optional[StageResult]]] = {
            Stage.INIT_RUNTIME: self._init_runtime,
            Stage.OPEN_STDERR_LOG: self._open_stderr_log,
            Stage.CREATE_SERVICE: self._create_service,
            Stage.PARSE_PASS_1: self._parse_pass_1,
            Stage.LOAD_CONFIG: self._load_config,
            Stage.INSTALL_CRASH_HANDLER: self._install_crash_handler,
            Stage.RESOLVE_DIRS: self._resolve_dirs,
            Stage.RESOLVE_PATHS: self._resolve_paths,
            Stage.OPEN_FILE_LOG: self._open_file_log,
            Stage.APPLY_LOG_LEVEL: self._apply_log_level,
            Stage.INIT_ENGINE: self._init_engine,
            Stage.SELECT_DEFAULT_PLUGINS: self._select_default_plugins,
            Stage.LOAD_PLUGINS: self._load_plugins,
            Stage.INIT_PLUGINS: self._init_plugins,
            Stage.PRINT_VERSIONS: self._print_versions,
            Stage.PARSE_PASS_2: self._parse_pass_2,
            Stage.FINALIZE_CONFIG: self._finalize_config,
            Stage.DAEMONIZE: self._daemonize,
            Stage.SUPERVISE: self._supervise,
            Stage.WRITE_PIDFILE: self._write_pidfile,
            Stage.OPEN_XA_LOG: self._open_xa_log,
            Stage.APPLY_LIMITS: self._apply_limits,
            Stage.START_MONITORS: self._start_monitors,
            Stage.RUN_MAINLOOP: self._run_mainloop,
            Stage.STOP_MONITORS: self._stop_monitors,
        }

    def run(self) -> BootstrapOutcome:
        """Run every stage and funnel the result; always returns an outcome."""
        try:
            result = self._run_stages()
        except BaseException as exc:
            stage = self.current_stage or Stage.INIT_RUNTIME
            self.resources.error = exc
            self.shutdown(StageResult.fail(stage, str(exc)))
            raise
        return self.shutdown(result)

    def shutdown(self, result: StageResult) -> BootstrapOutcome:
        return self.coordinator.shutdown(
            self.resources,
            exit_code=result.exit_code,
            origin=result.stage.value,
            version_only=result.version_only,
        )

    def _run_stages(self) -> StageResult:
        for stage in STAGE_ORDER:
            self.current_stage = stage
            result = self._run_stage(stage)
            if result.status != StageStatus.ADVANCE:
                return result
            self.completed.append(stage)
        return StageResult.terminate(STAGE_ORDER[-1], EXIT_SUCCESS)

    def _run_stage(self, stage: Stage) -> StageResult:
        try:
            result = self._handlers[stage]()
        except UnknownOptionError as exc:
            self.resources.error = exc
            logger.critical("%s: %s (use --help to show all options)", stage.value, exc)
            return StageResult.fail(stage, str(exc))
        except CetusError as exc:
            self.resources.error = exc
            logger.critical("%s: %s", stage.value, exc)
            return StageResult.fail(stage, str(exc))
        except Exception as exc:
            self.resources.error = exc
            logger.critical("%s: unexpected %s: %s", stage.value, type(exc).__name__, exc)
            log_backtrace(exc.__traceback__)
            return StageResult.fail(stage, str(exc))
        return result or StageResult.advance(stage)

    # -- stages -----------------------------------------------------------

    def _init_runtime(self) -> None:
        try:
            signal.signal(signal.SIGPIPE, signal.SIG_IGN)
        except ValueError:
            logger.debug("SIGPIPE left untouched outside the main thread")

    def _open_stderr_log(self) -> None:
        self.log = ServiceLog(console=self.console)
        self.resources.log = self.log
        self.log.open_stderr(logging.INFO)

    def _create_service(self) -> None:
        self.chassis = Chassis(self.log, engine=self.engine)
        self.resources.chassis = self.chassis
        self.frontend = FrontendConfig()
        self.resources.frontend = self.frontend
        self.registry = OptionRegistry()
        self.resources.registry = self.registry
        self.chassis.options = self.registry
        self.resolver = ConfigResolver(self.frontend, self.registry)

    def _parse_pass_1(self) -> None:
        self.resolver.parse_base_options(self.argv)

    def _load_config(self) -> None:
        frontend = self.frontend
        self.resolver.load_default_file(cwd=self.cwd)

        # printed now; plugin versions follow once plugins are loaded
        if frontend.print_version:
            OutputFormatter.print_version(self.console)

        self.resolver.register_options(core_option_descriptors(frontend))
        self.resolver.apply_sources()
        if self.resolver.remote is not None:
            self.chassis.config_manager = self.resolver.remote

    def _install_crash_handler(self) -> None:
        if self.frontend.invoke_dbg_on_crash:
            self.resources.crash_handler = self.crash_handler
            self.chassis.crash_handler = self.crash_handler
            self.crash_handler.install(self.log.stream())

    def _resolve_dirs(self) -> None:
        frontend = self.frontend
        frontend.base_dir = init_basedir(self.argv[0], frontend.base_dir)
        self.chassis.base_dir = frontend.base_dir
        frontend.plugin_dir = init_plugin_dir(frontend.plugin_dir, frontend.base_dir)
        if not frontend.conf_dir:
            frontend.conf_dir = DEFAULT_CONF_DIR

    def _resolve_paths(self) -> None:
        frontend = self.frontend
        base_dir = frontend.base_dir
        frontend.log_filename = resolve_path(base_dir, frontend.log_filename)
        frontend.pid_file = resolve_path(base_dir, frontend.pid_file)
        frontend.plugin_dir = resolve_path(base_dir, frontend.plugin_dir)
        frontend.conf_dir = resolve_path(base_dir, frontend.conf_dir)
        frontend.log_xa_filename = resolve_path(base_dir, frontend.log_xa_filename or DEFAULT_XA_LOG)

        self.chassis.plugin_dir = frontend.plugin_dir
        self.chassis.conf_dir = frontend.conf_dir
        if self.chassis.config_manager is None:
            self.chassis.config_manager = LocalDirectoryConfig(Path(frontend.conf_dir), frontend.default_file)

    def _open_file_log(self) -> None:
        if not self.frontend.log_filename:
            return
        self.log.open(self.frontend.log_filename)
        self.crash_handler.retarget(self.log.stream())
        if not self.log.open_slow_query_log():
            logger.warning("cannot open slow-query log")

    def _apply_log_level(self) -> None:
        self.log.set_level(self.frontend.log_level)
        logger.info("starting cetus %s", __version__)
        logger.info("python version: %s", platform.python_version())
        logger.info("config dir: %s", self.frontend.conf_dir)

    def _init_engine(self) -> None:
        self.chassis.engine.init(self.chassis)

    def _select_default_plugins(self) -> None:
        if not self.frontend.plugin_names:
            self.frontend.plugin_names = [DEFAULT_PLUGIN]

    def _load_plugins(self) -> None:
        self.chassis.modules = load_plugins(self.frontend.plugin_names, self.frontend.plugin_dir)

    def _init_plugins(self) -> None:
        self.chassis.mode = check_plugin_modes(self.chassis.modules)

        for plugin in self.chassis.modules:
            names = self.resolver.register_options(plugin.get_options())
            self.resolver.apply_sources(only=set(names))
            try:
                plugin.init(self.chassis, self.chassis.config_manager)
            except CetusError:
                raise
            except Exception as exc:
                raise PluginError(plugin.name, f"init() failed: {exc}") from exc

    def _print_versions(self) -> Optional[StageResult]:
        if not self.frontend.print_version:
            return None
        OutputFormatter.print_plugin_versions(self.chassis.modules, self.console)
        return StageResult.terminate(Stage.PRINT_VERSIONS, EXIT_SUCCESS, version_only=True)

    def _parse_pass_2(self) -> Optional[StageResult]:
        result = self.resolver.apply_cmdline(ParseMode.REJECT_UNKNOWN)
        self.registry.seal()
        if result.help_requested:
            options = base_option_descriptors(self.frontend) + self.registry.all()
            OutputFormatter.print_help(options, prog_name=Path(self.argv[0]).name, console=self.console)
            return StageResult.terminate(Stage.PARSE_PASS_2, EXIT_SUCCESS)
        return None

    def _finalize_config(self) -> None:
        self.chassis.settings = finalize_settings(self.frontend)
        self.chassis.user = self.frontend.user

    def _daemonize(self) -> None:
        if self.frontend.daemon_mode:
            self.daemonizer()

    def _supervise(self) -> Optional[StageResult]:
        if not self.frontend.auto_restart:
            return None

        self.supervision = self.supervisor.keepalive()
        self.resources.supervision = self.supervision
        if self.supervision.role == SupervisorRole.SUPERVISOR:
            # the agent stopped
            exit_code = self.supervision.exit_code if self.supervision.exit_code is not None else EXIT_FAILURE
            return StageResult.terminate(Stage.SUPERVISE, exit_code)
        return None

    def _write_pidfile(self) -> None:
        if self.frontend.pid_file:
            self.resources.pid_file = write_pidfile(Path(self.frontend.pid_file))

        for plugin in self.chassis.modules:
            logger.info("plugin %s %s started", plugin.name, plugin.version)

    def _open_xa_log(self) -> None:
        logger.info("XA log file: %s", self.frontend.log_xa_filename)
        self.log.open_xa_log(self.frontend.log_xa_filename)

    def _apply_limits(self) -> None:
        if self.frontend.max_files_number:
            set_fdlimit(self.frontend.max_files_number)
        logger.debug("max open file-descriptors = %d", get_fdlimit())

    def _start_monitors(self) -> None:
        tasks = []
        for plugin in self.chassis.modules:
            tasks.extend(plugin.monitor_tasks(self.chassis.settings))
        self.chassis.monitor = BackgroundMonitor(tasks, is_shutdown=lambda: self.chassis.is_shutdown)
        self.chassis.monitor.start()

    def _run_mainloop(self) -> None:
        logger.info("cetus pid %d entering mainloop", os.getpid())
        if self.chassis.mainloop() != 0:
            raise CetusError("Failure from chassis_mainloop. Shutting down.")

    def _stop_monitors(self) -> None:
        if self.chassis.monitor is not None:
            self.chassis.monitor.stop()
