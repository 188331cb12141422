"""Process-level runtime pieces: logging, crash handling, supervision, daemon mode."""

from cetus.runtime.crash import CrashHandler, log_backtrace, running_under_instrumentation
from cetus.runtime.daemon import daemonize, is_process_alive, read_pidfile, remove_pidfile, write_pidfile
from cetus.runtime.log import ServiceLog
from cetus.runtime.monitor import BackgroundMonitor, MonitorTask
from cetus.runtime.supervisor import ProcessSupervisor, SupervisionRecord, SupervisorRole

__all__ = [
	"BackgroundMonitor",
	"CrashHandler",
	"MonitorTask",
	"ProcessSupervisor",
	"ServiceLog",
	"SupervisionRecord",
	"SupervisorRole",
	"daemonize",
	"is_process_alive",
	"log_backtrace",
	"read_pidfile",
	"remove_pidfile",
	"running_under_instrumentation",
	"write_pidfile",
]
