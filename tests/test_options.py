import pytest
from types import SimpleNamespace

from cetus.config.options import (
    OptionArity,
    OptionDescriptor,
    OptionParser,
    OptionRegistry,
    ParseMode,
    normalize_option_name,
)
from cetus.utils.diagnostics import DuplicateOptionError, OptionError, OptionValueError, UnknownOptionError


def _registry(slots):
    registry = OptionRegistry()
    registry.register_all([
        OptionDescriptor(name="daemon", arity=OptionArity.NONE, target=slots, dest="daemon"),
        OptionDescriptor(name="pool-size", arity=OptionArity.INT, target=slots, dest="pool_size"),
        OptionDescriptor(name="delay", arity=OptionArity.DOUBLE, target=slots, dest="delay"),
        OptionDescriptor(name="plugins", arity=OptionArity.STRING_ARRAY, target=slots, dest="plugins"),
        OptionDescriptor(name="version", short_name="V", arity=OptionArity.NONE, target=slots, dest="version"),
        OptionDescriptor(name="user", short_name="u", arity=OptionArity.STRING, target=slots, dest="user"),
    ])
    return registry


@pytest.fixture
def slots():
    return SimpleNamespace(daemon=False, pool_size=0, delay=0.0, plugins=None, version=False, user=None)


def test_normalize_option_name_treats_underscore_as_dash():
    assert normalize_option_name("default_pool_size") == "default-pool-size"
    assert normalize_option_name(" log-level ") == "log-level"


def test_duplicate_registration_is_rejected(slots):
    registry = _registry(slots)
    with pytest.raises(DuplicateOptionError):
        registry.register(OptionDescriptor(name="pool_size", arity=OptionArity.INT, target=slots, dest="pool_size"))


def test_sealed_registry_is_read_only(slots):
    registry = _registry(slots)
    registry.seal()
    assert registry.sealed
    with pytest.raises(RuntimeError):
        registry.register(OptionDescriptor(name="extra", target=slots, dest="daemon"))


def test_release_is_idempotent(slots):
    registry = _registry(slots)
    assert len(registry) == 6
    assert registry.release() is True
    assert registry.release() is False
    assert len(registry) == 0


def test_lookup_accepts_either_spelling(slots):
    registry = _registry(slots)
    assert "pool_size" in registry
    assert registry.get("pool_size").name == "pool-size"
    with pytest.raises(KeyError):
        registry.get("missing")


def test_parse_long_forms_and_keeps_program_name(slots):
    parser = OptionParser(_registry(slots), mode=ParseMode.REJECT_UNKNOWN)
    result = parser.parse(["cetus", "--daemon", "--pool-size=200", "--delay", "1.5", "-uadmin"])

    assert result.remaining == ["cetus"]
    assert result.values == {"daemon": True, "pool-size": 200, "delay": 1.5, "user": "admin"}


def test_ignore_mode_leaves_unknown_tokens_in_order(slots):
    parser = OptionParser(_registry(slots), mode=ParseMode.IGNORE_UNKNOWN)
    result = parser.parse(["cetus", "--proxy-address=:4040", "--daemon", "extra", "-x"])

    assert result.remaining == ["cetus", "--proxy-address=:4040", "extra", "-x"]
    assert result.values == {"daemon": True}


def test_reject_mode_raises_on_unknown_flag(slots):
    parser = OptionParser(_registry(slots), mode=ParseMode.REJECT_UNKNOWN)
    with pytest.raises(UnknownOptionError) as excinfo:
        parser.parse(["cetus", "--bogus"])
    assert str(excinfo.value) == "Unknown option --bogus"


def test_reject_mode_keeps_positional_arguments(slots):
    parser = OptionParser(_registry(slots), mode=ParseMode.REJECT_UNKNOWN)
    result = parser.parse(["cetus", "stray"])
    assert result.remaining == ["cetus", "stray"]


def test_double_dash_ends_option_parsing(slots):
    parser = OptionParser(_registry(slots), mode=ParseMode.REJECT_UNKNOWN)
    result = parser.parse(["cetus", "--", "--daemon"])
    assert result.remaining == ["cetus", "--", "--daemon"]
    assert result.values == {}


def test_string_array_accumulates_and_splits(slots):
    parser = OptionParser(_registry(slots))
    result = parser.parse(["cetus", "--plugins=proxy,admin", "--plugins", "shard"])
    assert result.values["plugins"] == ["proxy", "admin", "shard"]


def test_help_only_recognized_when_enabled(slots):
    registry = _registry(slots)
    lenient = OptionParser(registry).parse(["cetus", "--help"])
    assert not lenient.help_requested
    assert lenient.remaining == ["cetus", "--help"]

    strict = OptionParser(registry, mode=ParseMode.REJECT_UNKNOWN, help_enabled=True).parse(["cetus", "--help"])
    assert strict.help_requested
    assert strict.remaining == ["cetus"]


def test_missing_value_is_an_error(slots):
    parser = OptionParser(_registry(slots))
    with pytest.raises(OptionError):
        parser.parse(["cetus", "--pool-size"])


@pytest.mark.parametrize("raw, expected", [("true", True), ("ON", True), ("1", True), ("no", False), ("", False)])
def test_boolean_coercion(slots, raw, expected):
    descriptor = OptionDescriptor(name="daemon", arity=OptionArity.NONE, target=slots, dest="daemon")
    assert descriptor.coerce(raw) is expected


def test_bad_integer_names_the_option(slots):
    descriptor = OptionDescriptor(name="pool-size", arity=OptionArity.INT, target=slots, dest="pool_size")
    with pytest.raises(OptionValueError) as excinfo:
        descriptor.coerce("many")
    assert "pool-size" in str(excinfo.value)
    assert descriptor.coerce(" 010 ") == 10


def test_assign_writes_the_slot(slots):
    descriptor = OptionDescriptor(name="user", arity=OptionArity.STRING, target=slots, dest="user")
    descriptor.assign("cetus")
    assert slots.user == "cetus"
    assert descriptor.current() == "cetus"
