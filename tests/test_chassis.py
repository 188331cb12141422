import signal

import pytest

from cetus.chassis import Chassis, drop_privileges
from cetus.config.frontend import FrontendConfig
from cetus.config.settings import finalize_settings
from cetus.plugins.base import CetusPlugin
from cetus.runtime.log import ServiceLog
from cetus.utils.diagnostics import PluginError


class RecordingPlugin(CetusPlugin):
    name = "recording"

    def __init__(self, events, fail_apply=False):
        self.events = events
        self.fail_apply = fail_apply

    def apply_config(self, chassis):
        if self.fail_apply:
            raise ValueError("bad backend list")
        self.events.append(f"apply:{self.name}")

    def destroy(self):
        self.events.append(f"destroy:{self.name}")


def _plugin(events, name, **kwargs):
    plugin = RecordingPlugin(events, **kwargs)
    plugin.name = name
    return plugin


@pytest.fixture
def chassis(stopped_engine):
    chassis = Chassis(ServiceLog(), engine=stopped_engine)
    chassis.settings = finalize_settings(FrontendConfig(default_username="app"))
    return chassis


def test_mainloop_runs_engine_with_settings(chassis, stopped_engine):
    events = []
    chassis.modules = [_plugin(events, "a"), _plugin(events, "b")]
    before = signal.getsignal(signal.SIGTERM)

    assert chassis.mainloop() == 0

    assert events == ["apply:a", "apply:b"]
    assert stopped_engine.settings is chassis.settings
    assert signal.getsignal(signal.SIGTERM) == before


def test_mainloop_needs_settings(stopped_engine):
    with pytest.raises(RuntimeError):
        Chassis(ServiceLog(), engine=stopped_engine).mainloop()


def test_apply_config_failure_names_plugin(chassis):
    chassis.modules = [_plugin([], "broken", fail_apply=True)]
    with pytest.raises(PluginError) as excinfo:
        chassis.mainloop()
    assert "plugin 'broken'" in str(excinfo.value)


def test_free_destroys_in_reverse_once(chassis, stopped_engine):
    events = []
    chassis.modules = [_plugin(events, "a"), _plugin(events, "b")]

    assert chassis.free() is True
    assert chassis.free() is False
    assert events == ["destroy:b", "destroy:a"]
    assert stopped_engine.shutdown_calls == 1


def test_shutdown_location_recorded_once(chassis):
    chassis.set_shutdown_location("run-mainloop")
    chassis.set_shutdown_location("later")
    assert chassis.shutdown_location == "run-mainloop"
    assert chassis.is_shutdown


def test_drop_privileges_requires_root(monkeypatch, caplog):
    monkeypatch.setattr("os.geteuid", lambda: 1000)
    assert drop_privileges("nobody") is False
    assert "only valid when started as root" in caplog.text


def test_reopen_logs_points_crash_dumps_at_new_stream(chassis, tmp_path):
    class RecordingCrashHandler:
        def __init__(self):
            self.streams = []

        def retarget(self, stream):
            self.streams.append(stream)
            return True

    log_file = tmp_path / "cetus.log"
    chassis.log.open(str(log_file))
    old_stream = chassis.log.stream()
    chassis.crash_handler = RecordingCrashHandler()

    chassis.reopen_logs()

    assert chassis.crash_handler.streams == [chassis.log.stream()]
    assert chassis.crash_handler.streams[0] is not old_stream
    chassis.log.close()
