import logging
import pytest
import sys
from pathlib import Path

# Ensure src/ is in the python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from cetus.chassis import IdleEngine
from cetus.runtime.crash import CrashHandler


@pytest.fixture(autouse=True)
def reset_cetus_loggers():
    """
    The bootstrap attaches handlers and levels to the shared "cetus"
    loggers; put them back after every test.
    """
    names = ("cetus", "cetus.slowquery", "cetus.xa")
    saved = {name: (logging.getLogger(name).level, list(logging.getLogger(name).handlers)) for name in names}
    yield
    for name, (level, handlers) in saved.items():
        target = logging.getLogger(name)
        for handler in list(target.handlers):
            if handler not in handlers:
                target.removeHandler(handler)
                handler.close()
        target.setLevel(level)
        target.propagate = True


@pytest.fixture
def root_dir(tmp_path):
    """
    Returns a temporary directory to act as the base directory for tests.
    """
    return tmp_path


class StoppedEngine(IdleEngine):
    """Engine whose mainloop returns immediately with a fixed status."""

    def __init__(self, status: int = 0):
        super().__init__()
        self.status = status
        self.init_calls = 0
        self.shutdown_calls = 0

    def init(self, chassis):
        self.init_calls += 1

    def run(self, settings):
        self.settings = settings
        return self.status

    def shutdown(self):
        self.shutdown_calls += 1
        super().shutdown()


@pytest.fixture
def stopped_engine():
    return StoppedEngine()


@pytest.fixture
def quiet_crash_handler():
    """A crash handler that never touches faulthandler."""
    return CrashHandler(environ={"RUNNING_ON_VALGRIND": "1"})
