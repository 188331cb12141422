import pytest

from cetus.config.frontend import FrontendConfig, core_option_descriptors
from cetus.config.options import OptionArity, OptionDescriptor, OptionRegistry, ParseMode
from cetus.config.resolver import ConfigResolver, OptionSource
from cetus.utils.diagnostics import RemoteConfigError, UnknownArgumentError, UnknownOptionError


@pytest.fixture
def resolver():
    frontend = FrontendConfig()
    resolver = ConfigResolver(frontend, OptionRegistry())
    return resolver


def _prepare(resolver, argv, tmp_path, keyfile_text=None):
    if keyfile_text is not None:
        conf = tmp_path / "cetus.conf"
        conf.write_text(keyfile_text)
        argv = [argv[0], f"--defaults-file={conf}"] + argv[1:]
    resolver.parse_base_options(argv)
    resolver.load_default_file(cwd=tmp_path)
    resolver.register_options(core_option_descriptors(resolver.frontend))
    return resolver


def test_pass_one_only_claims_base_options(resolver):
    result = resolver.parse_base_options(["cetus", "-V", "--daemon", "--defaults-file=/tmp/x.conf"])

    assert resolver.frontend.print_version is True
    assert resolver.frontend.default_file == "/tmp/x.conf"
    assert resolver.frontend.daemon_mode is False
    assert result.remaining == ["cetus", "--daemon"]


def test_command_line_beats_keyfile(resolver, tmp_path):
    _prepare(resolver, ["cetus", "--default-pool-size=200"], tmp_path, "[cetus]\ndefault-pool-size = 50\n")

    resolver.apply_keyfile()
    resolver.apply_cmdline(ParseMode.IGNORE_UNKNOWN)

    assert resolver.frontend.default_pool_size == 200
    assert resolver.origin_of("default_pool_size") == OptionSource.CMDLINE


def test_keyfile_cannot_override_command_line_applied_first(resolver, tmp_path):
    _prepare(resolver, ["cetus", "--default-pool-size=200"], tmp_path, "[cetus]\ndefault_pool_size = 50\n")

    resolver.apply_cmdline(ParseMode.IGNORE_UNKNOWN)
    resolver.apply_keyfile()

    assert resolver.frontend.default_pool_size == 200


def test_keyfile_value_used_when_command_line_is_silent(resolver, tmp_path):
    _prepare(resolver, ["cetus"], tmp_path, "[cetus]\ndefault_pool_size = 50\ndaemon = true\nunknown-key = 1\n")

    assert resolver.apply_keyfile() == 2
    assert resolver.frontend.default_pool_size == 50
    assert resolver.frontend.daemon_mode is True
    assert resolver.origin_of("max-pool-size") == OptionSource.DEFAULT


def test_remote_source_ranks_between_keyfile_and_command_line(resolver, tmp_path):
    remote_dir = tmp_path / "remote"
    remote_dir.mkdir()
    (remote_dir / "cetus.conf").write_text("[cetus]\ndefault-pool-size = 75\nmax-pool-size = 300\ndefault-db = remote\n")
    _prepare(
        resolver,
        ["cetus", f"--remote-conf-url=file://{remote_dir}", "--max-pool-size=400"],
        tmp_path,
        "[cetus]\ndefault-pool-size = 50\ndefault-db = local\n",
    )

    resolver.apply_sources()

    assert resolver.frontend.default_pool_size == 75
    assert resolver.frontend.max_pool_size == 400
    assert resolver.frontend.default_db == "remote"
    assert resolver.origin_of("default-db") == OptionSource.REMOTE
    assert resolver.remote is not None


def test_unknown_remote_scheme_is_reported(resolver, tmp_path):
    _prepare(resolver, ["cetus", "--remote-conf-url=mysql://host/db"], tmp_path)
    resolver.apply_cmdline()

    with pytest.raises(RemoteConfigError):
        resolver.apply_remote()


def test_strict_pass_rejects_unknown_option(resolver, tmp_path):
    _prepare(resolver, ["cetus", "--proxy-adress=:4040"], tmp_path)
    resolver.apply_cmdline(ParseMode.IGNORE_UNKNOWN)

    with pytest.raises(UnknownOptionError):
        resolver.apply_cmdline(ParseMode.REJECT_UNKNOWN)


def test_strict_pass_rejects_leftover_argument(resolver, tmp_path):
    _prepare(resolver, ["cetus", "extra"], tmp_path)

    with pytest.raises(UnknownArgumentError) as excinfo:
        resolver.apply_cmdline(ParseMode.REJECT_UNKNOWN)
    assert str(excinfo.value) == "unknown option: extra"


def test_plugin_options_applied_from_every_source(resolver, tmp_path):
    _prepare(
        resolver,
        ["cetus", "--listen=:6000"],
        tmp_path,
        "[cetus]\nlisten = :5000\nbackends = a:3306,b:3306\n",
    )
    resolver.apply_sources()
    assert resolver.argv == ["cetus", "--listen=:6000"]

    class Slots:
        listen = ":4040"
        backends = []

    slots = Slots()
    names = resolver.register_options([
        OptionDescriptor(name="listen", arity=OptionArity.STRING, target=slots, dest="listen"),
        OptionDescriptor(name="backends", arity=OptionArity.STRING_ARRAY, target=slots, dest="backends"),
    ])
    resolver.apply_sources(only=set(names))

    assert slots.listen == ":6000"
    assert slots.backends == ["a:3306", "b:3306"]
    assert resolver.argv == ["cetus"]
