import json

import pytest

from cetus.config.remote import LocalDirectoryConfig
from cetus.config.settings import finalize_settings
from cetus.config.frontend import FrontendConfig
from cetus.plugins.base import PROXY_MODE, SHARDING_MODE, CetusPlugin
from cetus.plugins.loader import check_plugin_modes, load_plugin, load_plugins
from cetus.plugins.proxy import ProxyPlugin
from cetus.plugins.shard import ShardPlugin
from cetus.utils.diagnostics import PluginError, PluginModeError


def test_builtin_plugins_load():
    proxy = load_plugin("proxy")
    shard = load_plugin("shard")

    assert isinstance(proxy, ProxyPlugin)
    assert proxy.mode == PROXY_MODE
    assert isinstance(shard, ShardPlugin)
    assert shard.mode == SHARDING_MODE


def test_unknown_plugin(tmp_path):
    with pytest.raises(PluginError) as excinfo:
        load_plugin("nope", str(tmp_path))
    assert "plugin 'nope'" in str(excinfo.value)


def test_plugin_dir_file_wins(tmp_path):
    (tmp_path / "admin.py").write_text(
        "from cetus.plugins.base import CetusPlugin\n"
        "\n"
        "class AdminPlugin(CetusPlugin):\n"
        "    name = 'admin'\n"
        "    version = '1.2.3'\n"
        "\n"
        "def plugin_init():\n"
        "    return AdminPlugin()\n"
    )
    plugin = load_plugin("admin", str(tmp_path))
    assert plugin.name == "admin"
    assert plugin.version == "1.2.3"
    assert plugin.mode is None


def test_plugin_must_return_a_plugin(tmp_path):
    (tmp_path / "bad.py").write_text("def plugin_init():\n    return object()\n")
    with pytest.raises(PluginError) as excinfo:
        load_plugin("bad", str(tmp_path))
    assert "not a CetusPlugin" in str(excinfo.value)


def test_plugin_module_without_entry(tmp_path):
    (tmp_path / "empty.py").write_text("VALUE = 1\n")
    with pytest.raises(PluginError):
        load_plugin("empty", str(tmp_path))


def test_plugin_selected_twice():
    with pytest.raises(PluginError):
        load_plugins(["proxy", "proxy"])


def test_shard_and_proxy_are_mutually_exclusive():
    with pytest.raises(PluginModeError) as excinfo:
        check_plugin_modes([ShardPlugin(), ProxyPlugin()])
    assert str(excinfo.value) == "shard & proxy is mutual exclusive"


def test_mode_selection(caplog):
    class Admin(CetusPlugin):
        name = "admin"

    assert check_plugin_modes([Admin(), ProxyPlugin()]) == PROXY_MODE
    assert check_plugin_modes([Admin()]) is None

    with caplog.at_level("INFO", logger="cetus"):
        assert check_plugin_modes([ShardPlugin(), Admin()]) == SHARDING_MODE
    assert "set sharding mode true" in caplog.text


def test_proxy_reads_users_object(tmp_path):
    (tmp_path / "users.json").write_text(json.dumps({"users": [{"user": "app", "client_pwd": "x"}]}))
    plugin = ProxyPlugin()

    plugin.init(None, LocalDirectoryConfig(tmp_path))

    assert plugin.initialized
    assert plugin.users["users"][0]["user"] == "app"


def test_shard_reads_sharding_layout(tmp_path):
    (tmp_path / "sharding.json").write_text(json.dumps({"vdb": [{"id": 1, "type": "int"}]}))
    plugin = ShardPlugin()

    plugin.init(None, LocalDirectoryConfig(tmp_path))

    assert plugin.sharding_layout["vdb"][0]["id"] == 1
    assert "allow-cross-shard-join" in [d.name for d in plugin.get_options()]


def test_slave_delay_task_only_with_read_only_backends():
    plugin = ProxyPlugin()
    settings = finalize_settings(FrontendConfig(default_username="app", check_slave_delay=True))
    assert plugin.monitor_tasks(settings) == []

    plugin.settings.read_only_backend_addresses = ["10.0.0.2:3306"]
    tasks = plugin.monitor_tasks(settings)
    assert [task.name for task in tasks] == ["proxy-slave-delay"]

    tasks[0].run()
    assert plugin.delay_checks == 1
