from __future__ import annotations

import logging
import os
import signal
import threading
from typing import Dict, List, Optional, Protocol

from cetus.config.options import OptionRegistry
from cetus.config.remote import ConfigSource
from cetus.config.settings import ServiceSettings
from cetus.plugins.base import CetusPlugin
from cetus.runtime.crash import CrashHandler
from cetus.runtime.log import ServiceLog
from cetus.runtime.monitor import BackgroundMonitor
from cetus.utils.diagnostics import PluginError, ResourceError

logger = logging.getLogger(__name__)


class ServiceEngine(Protocol):
    """The request-serving engine the bootstrap starts and stops."""

    def init(self, chassis: "Chassis") -> None: ...

    def run(self, settings: ServiceSettings) -> int: ...

    def stop(self) -> None: ...

    def shutdown(self) -> None: ...


class IdleEngine:
    """Engine that serves nothing and blocks until asked to stop."""

    def __init__(self) -> None:
        self._stop_event = threading.Event()
        self.settings: Optional[ServiceSettings] = None

    def init(self, chassis: "Chassis") -> None:
        self._stop_event.clear()

    def run(self, settings: ServiceSettings) -> int:
        self.settings = settings
        self._stop_event.wait()
        return 0

    def stop(self) -> None:
        self._stop_event.set()

    def shutdown(self) -> None:
        self._stop_event.set()


def drop_privileges(user: str) -> bool:
    """Switch to ``user`` when running as root; returns True if ids changed."""
    import pwd

    if os.geteuid() != 0:
        logger.warning("--user option is only valid when started as root, ignoring '%s'", user)
        return False

    try:
        entry = pwd.getpwnam(user)
    except KeyError as exc:
        raise ResourceError(f"unknown user '{user}'") from exc

    try:
        os.setgroups([])
        os.setgid(entry.pw_gid)
        os.setuid(entry.pw_uid)
    except OSError as exc:
        raise ResourceError(f"switching to user '{user}' failed", exc) from exc

    logger.info("now running as user: %s (%d/%d)", user, entry.pw_uid, entry.pw_gid)
    return True


class Chassis:
    """
    The service object: holds what the bootstrap acquired for the engine.

    Owned by the bootstrap until the mainloop starts; ``free`` is called
    once from the shutdown funnel and is safe to repeat.
    """

    def __init__(self, log: ServiceLog, engine: Optional[ServiceEngine] = None) -> None:
        self.log = log
        self.engine: ServiceEngine = engine if engine is not None else IdleEngine()
        self.options: Optional[OptionRegistry] = None
        self.modules: List[CetusPlugin] = []
        self.config_manager: Optional[ConfigSource] = None
        self.settings: Optional[ServiceSettings] = None
        self.monitor: Optional[BackgroundMonitor] = None
        self.base_dir: Optional[str] = None
        self.plugin_dir: Optional[str] = None
        self.conf_dir: Optional[str] = None
        self.user: Optional[str] = None
        self.mode: Optional[str] = None
        self.shutdown_location: Optional[str] = None
        self.crash_handler: Optional[CrashHandler] = None
        self._shutdown = threading.Event()
        self._previous_handlers: Dict[int, object] = {}
        self._freed = False

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown.is_set()

    @property
    def freed(self) -> bool:
        return self._freed

    def set_shutdown_location(self, location: str) -> None:
        if self.shutdown_location is None:
            self.shutdown_location = location
            logger.debug("shutdown initiated at %s", location)
        self._shutdown.set()

    def request_stop(self, signum: Optional[int] = None) -> None:
        if signum is not None:
            logger.info("received signal %s, stopping", signum)
        self.engine.stop()

    def reopen_logs(self) -> None:
        """Reopen log files after rotation; crash dumps follow the new stream."""
        self.log.reopen()
        if self.crash_handler is not None:
            self.crash_handler.retarget(self.log.stream())

    def mainloop(self) -> int:
        """
        Let plugins apply their config, drop privileges, then block in the
        engine until it is stopped. Returns the engine's status.
        """
        if self.settings is None:
            raise RuntimeError("mainloop needs finalized settings")

        for plugin in self.modules:
            try:
                plugin.apply_config(self)
            except PluginError:
                raise
            except Exception as exc:
                raise PluginError(plugin.name, f"apply_config() failed: {exc}") from exc

        if self.user:
            drop_privileges(self.user)

        self._install_signal_handlers()
        try:
            return self.engine.run(self.settings)
        finally:
            self._restore_signal_handlers()

    def free(self) -> bool:
        """Destroy plugins (reverse load order) and the engine; False if already freed."""
        if self._freed:
            return False

        for plugin in reversed(self.modules):
            try:
                plugin.destroy()
            except Exception:
                logger.exception("destroying plugin '%s' failed", plugin.name)
        self.modules = []
        try:
            self.engine.shutdown()
        except Exception:
            logger.exception("engine shutdown failed")
        self.config_manager = None
        self._freed = True
        return True

    def _install_signal_handlers(self) -> None:
        handlers = {
            signal.SIGTERM: lambda signum, _frame: self.request_stop(signum),
            signal.SIGINT: lambda signum, _frame: self.request_stop(signum),
            signal.SIGHUP: lambda _signum, _frame: self.reopen_logs(),
        }
        for signum, handler in handlers.items():
            try:
                self._previous_handlers[signum] = signal.signal(signum, handler)
            except ValueError:
                logger.debug("cannot install handler for signal %s from this thread", signum)

    def _restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
        self._previous_handlers.clear()
