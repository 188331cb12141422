from __future__ import annotations

import logging
import os
import sys
from typing import IO, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

from cetus.utils.diagnostics import ConfigError, ResourceError

LOGGER_NAME = "cetus"
SLOW_QUERY_LOGGER_NAME = "cetus.slowquery"
XA_LOGGER_NAME = "cetus.xa"
SLOW_QUERY_SUFFIX = ".slowquery.log"

LOG_LEVELS: Dict[str, int] = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "message": logging.INFO,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

FILE_FORMAT = "%(asctime)s: (%(levelname)s) %(message)s"
SLOW_QUERY_FORMAT = "%(asctime)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ServiceLog:
    """
    Owns every log handler the bootstrap opens.

    Early messages go to a rich stderr console; once a log file is known
    the console handler is replaced by a file handler. ``close`` releases
    everything exactly once.
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        self.logger = logging.getLogger(LOGGER_NAME)
        self.console = console
        self.log_filename: Optional[str] = None
        self.xa_filename: Optional[str] = None
        self._stderr_handler: Optional[logging.Handler] = None
        self._file_handler: Optional[logging.FileHandler] = None
        self._slow_handler: Optional[logging.FileHandler] = None
        self._xa_handler: Optional[logging.FileHandler] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def open_stderr(self, level: int = logging.INFO) -> None:
        """Show messages on stderr while options are parsed and plugins load."""
        if self._stderr_handler is not None:
            return
        console = self.console or Console(stderr=True)
        handler = RichHandler(console=console, show_path=False, markup=False)
        self._stderr_handler = handler
        self.logger.addHandler(handler)
        self.logger.setLevel(level)

    def open(self, filename: str) -> None:
        """Start logging to ``filename``; raises ResourceError if it can't be opened."""
        handler = self._open_file_handler(filename, f"can't open log-file '{filename}'")
        handler.setFormatter(logging.Formatter(FILE_FORMAT, DATE_FORMAT))
        self.logger.addHandler(handler)
        self._file_handler = handler
        self.log_filename = filename

        if self._stderr_handler is not None:
            self.logger.removeHandler(self._stderr_handler)
            self._stderr_handler.close()
            self._stderr_handler = None

    def open_slow_query_log(self) -> bool:
        """Attach ``<log-file>.slowquery.log``; returns False when unavailable."""
        if not self.log_filename:
            return False
        path = f"{self.log_filename}{SLOW_QUERY_SUFFIX}"
        try:
            handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        except OSError:
            return False
        handler.setFormatter(logging.Formatter(SLOW_QUERY_FORMAT, DATE_FORMAT))
        slow_logger = logging.getLogger(SLOW_QUERY_LOGGER_NAME)
        slow_logger.addHandler(handler)
        slow_logger.setLevel(logging.INFO)
        slow_logger.propagate = False
        self._slow_handler = handler
        return True

    def open_xa_log(self, filename: str) -> None:
        try:
            os.makedirs(os.path.dirname(filename) or ".", exist_ok=True)
        except OSError as exc:
            raise ResourceError(f"can't create directory for xa log-file '{filename}'", exc) from exc
        handler = self._open_file_handler(filename, f"can't open xa log-file '{filename}'")
        handler.setFormatter(logging.Formatter(FILE_FORMAT, DATE_FORMAT))
        xa_logger = logging.getLogger(XA_LOGGER_NAME)
        xa_logger.addHandler(handler)
        xa_logger.setLevel(logging.INFO)
        xa_logger.propagate = False
        self._xa_handler = handler
        self.xa_filename = filename

    def set_level(self, level_name: Optional[str]) -> None:
        """
        Apply a level name; without one only critical messages are kept.
        """
        if level_name is None:
            self.logger.setLevel(logging.CRITICAL)
            return
        level = LOG_LEVELS.get(level_name.strip().lower())
        if level is None:
            raise ConfigError(f"--log-level=... failed, level '{level_name}' is unknown")
        self.logger.setLevel(level)

    def reopen(self) -> None:
        """Reopen file handlers after an external log rotation."""
        for handler in (self._file_handler, self._slow_handler, self._xa_handler):
            if handler is None:
                continue
            handler.acquire()
            try:
                if handler.stream is not None:
                    handler.stream.close()
                handler.stream = handler._open()
            finally:
                handler.release()

    def stream(self) -> IO:
        """The stream fatal-signal dumps are written to."""
        if self._file_handler is not None and self._file_handler.stream is not None:
            return self._file_handler.stream
        return sys.stderr

    def flush(self) -> None:
        for handler in self._handlers():
            handler.flush()

    def close(self) -> bool:
        """Flush and detach every handler; returns False when already closed."""
        if self._closed:
            return False

        for name, handler in (
            (LOGGER_NAME, self._stderr_handler),
            (LOGGER_NAME, self._file_handler),
            (SLOW_QUERY_LOGGER_NAME, self._slow_handler),
            (XA_LOGGER_NAME, self._xa_handler),
        ):
            if handler is None:
                continue
            handler.flush()
            logging.getLogger(name).removeHandler(handler)
            handler.close()

        self._stderr_handler = None
        self._file_handler = None
        self._slow_handler = None
        self._xa_handler = None
        self._closed = True
        return True

    def _handlers(self):
        return [h for h in (self._stderr_handler, self._file_handler, self._slow_handler, self._xa_handler) if h]

    @staticmethod
    def _open_file_handler(filename: str, message: str) -> logging.FileHandler:
        try:
            return logging.FileHandler(filename, mode="a", encoding="utf-8")
        except OSError as exc:
            raise ResourceError(message, exc) from exc
