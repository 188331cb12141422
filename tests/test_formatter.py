import io

from rich.console import Console

from cetus import __version__
from cetus.cli.formatter import OutputFormatter
from cetus.config.frontend import FrontendConfig, base_option_descriptors, core_option_descriptors
from cetus.plugins.proxy import ProxyPlugin
from cetus.plugins.shard import ShardPlugin


def _console():
    return Console(file=io.StringIO(), width=200)


def test_version_lines():
    lines = OutputFormatter.version_lines()
    assert lines[0] == f"cetus {__version__}"
    assert any(line.strip().startswith("python:") for line in lines)


def test_plugin_versions_header_printed_once():
    console = _console()
    OutputFormatter.print_plugin_versions([ProxyPlugin(), ShardPlugin()], console)

    output = console.file.getvalue()
    assert output.count("== plugin versions ==") == 1
    assert "proxy:" in output
    assert "shard:" in output


def test_help_table_shows_short_names_and_arguments():
    console = _console()
    frontend = FrontendConfig()
    OutputFormatter.print_help(base_option_descriptors(frontend) + core_option_descriptors(frontend), console=console)

    output = console.file.getvalue()
    assert "-V, --version" in output
    assert "--defaults-file=<file>" in output
    assert "--worker-id=<integer>" in output
    assert "-h, --help" in output
