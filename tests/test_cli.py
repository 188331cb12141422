from typer.testing import CliRunner

from cetus import __version__
from cetus.cli.main import app

runner = CliRunner()


def _combined_output(result) -> str:
    return f"{result.stdout}{getattr(result, 'stderr', '')}"


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"cetus {__version__}" in result.stdout
    assert "== plugin versions ==" in result.stdout


def test_short_version_flag():
    result = runner.invoke(app, ["-V"])
    assert result.exit_code == 0
    assert f"cetus {__version__}" in result.stdout


def test_help_lists_options(tmp_path):
    result = runner.invoke(app, [f"--basedir={tmp_path}", "--help"])
    assert result.exit_code == 0
    assert "--default-username" in result.stdout
    assert "--proxy-address" in result.stdout


def test_unknown_option_exits_with_failure(tmp_path):
    result = runner.invoke(app, [f"--basedir={tmp_path}", "--default-username=app", "--bogus"])
    assert result.exit_code == 1
    assert "Unknown option --bogus" in _combined_output(result)


def test_missing_username_exits_with_failure(tmp_path):
    result = runner.invoke(app, [f"--basedir={tmp_path}"])
    assert result.exit_code == 1
    assert "default username" in _combined_output(result)
