from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from cetus.utils.diagnostics import (
    DuplicateOptionError,
    OptionError,
    OptionValueError,
    UnknownOptionError,
)


class OptionArity(str, Enum):
    """How many (and which kind of) values an option consumes."""

    NONE = "none"
    STRING = "string"
    INT = "int"
    DOUBLE = "double"
    STRING_ARRAY = "string_array"


class ParseMode(str, Enum):
    """Treatment of command-line flags that no registered option claims."""

    IGNORE_UNKNOWN = "ignore_unknown"
    REJECT_UNKNOWN = "reject_unknown"


_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off", ""}


def normalize_option_name(name: str) -> str:
    """Canonical lookup key: keyfiles spell some options with underscores."""
    return name.strip().replace("_", "-")


class OptionDescriptor(BaseModel):
    """
    One recognized setting.

    ``target`` and ``dest`` form the destination slot: a parsed value is
    written with ``setattr(target, dest, value)``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    short_name: Optional[str] = None
    arity: OptionArity = OptionArity.NONE
    target: Any
    dest: str
    help: str = ""
    arg_description: Optional[str] = None

    @property
    def takes_value(self) -> bool:
        return self.arity != OptionArity.NONE

    def assign(self, value: Any) -> None:
        setattr(self.target, self.dest, value)

    def current(self) -> Any:
        return getattr(self.target, self.dest, None)

    def coerce(self, raw: Any) -> Any:
        """Convert a raw (usually string) value into this option's arity."""
        if self.arity == OptionArity.NONE:
            if raw is None or isinstance(raw, bool):
                return True if raw is None else raw
            lowered = str(raw).strip().lower()
            if lowered in _TRUE_WORDS:
                return True
            if lowered in _FALSE_WORDS:
                return False
            raise OptionValueError(self.name, raw, "a boolean")

        if raw is None:
            raise OptionError(f"Missing argument for --{self.name}")

        if self.arity == OptionArity.STRING:
            return str(raw)

        if self.arity == OptionArity.INT:
            if isinstance(raw, bool):
                raise OptionValueError(self.name, raw, "an integer")
            try:
                return int(str(raw).strip()) if isinstance(raw, str) else int(raw)
            except ValueError as exc:
                raise OptionValueError(self.name, raw, "an integer") from exc

        if self.arity == OptionArity.DOUBLE:
            try:
                return float(str(raw).strip())
            except ValueError as exc:
                raise OptionValueError(self.name, raw, "a floating-point number") from exc

        if isinstance(raw, (list, tuple)):
            items = [str(item) for item in raw]
        else:
            items = [str(raw)]
        return [part.strip() for item in items for part in item.split(",") if part.strip()]


class OptionRegistry:
    """
    Append-only, ordered collection of every option the process recognizes.
    """

    def __init__(self) -> None:
        self._items: Dict[str, OptionDescriptor] = {}
        self._short: Dict[str, str] = {}
        self._sealed = False
        self._released = False

    def register(self, descriptor: OptionDescriptor) -> None:
        """
        Register a descriptor. Raises DuplicateOptionError if the name exists.
        """
        if self._sealed or self._released:
            raise RuntimeError("Option registry is read-only once parsing has finished.")

        key = normalize_option_name(descriptor.name)
        if key in self._items:
            raise DuplicateOptionError(descriptor.name)

        if descriptor.short_name:
            if descriptor.short_name in self._short:
                raise DuplicateOptionError(f"-{descriptor.short_name}")
            self._short[descriptor.short_name] = key

        self._items[key] = descriptor

    def register_all(self, descriptors: Sequence[OptionDescriptor]) -> None:
        for descriptor in descriptors:
            self.register(descriptor)

    def get(self, name: str) -> OptionDescriptor:
        key = normalize_option_name(name)
        if key not in self._items:
            raise KeyError(f"'{name}' not found in registry.")
        return self._items[key]

    def get_short(self, short_name: str) -> Optional[OptionDescriptor]:
        key = self._short.get(short_name)
        return self._items[key] if key is not None else None

    def all(self) -> List[OptionDescriptor]:
        return list(self._items.values())

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def release(self) -> bool:
        """Drop every descriptor; returns False when already released."""
        if self._released:
            return False
        self._items.clear()
        self._short.clear()
        self._released = True
        return True

    def __contains__(self, name: str) -> bool:
        return normalize_option_name(name) in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[OptionDescriptor]:
        return iter(list(self._items.values()))


@dataclass
class ParseResult:
    """Outcome of one pass over argv."""

    values: Dict[str, Any] = field(default_factory=dict)
    remaining: List[str] = field(default_factory=list)
    help_requested: bool = False


class OptionParser:
    """
    Parses long-form flags against a registry.

    The same parser serves both passes: ``IGNORE_UNKNOWN`` keeps unclaimed
    tokens in ``remaining`` untouched, ``REJECT_UNKNOWN`` raises on them.
    ``argv[0]`` is the program name and is always kept.
    """

    def __init__(
        self,
        registry: OptionRegistry,
        mode: ParseMode = ParseMode.IGNORE_UNKNOWN,
        help_enabled: bool = False,
    ) -> None:
        self.registry = registry
        self.mode = mode
        self.help_enabled = help_enabled

    def parse(self, argv: Sequence[str]) -> ParseResult:
        tokens = list(argv)
        result = ParseResult()
        if not tokens:
            return result

        result.remaining.append(tokens[0])
        index = 1
        while index < len(tokens):
            token = tokens[index]

            if token == "--":
                result.remaining.extend(tokens[index:])
                break

            if self.help_enabled and token in ("--help", "-h", "-?"):
                result.help_requested = True
                index += 1
                continue

            descriptor, inline_value = self._lookup(token)
            if descriptor is None:
                if token.startswith("-") and token != "-" and self.mode == ParseMode.REJECT_UNKNOWN:
                    raise UnknownOptionError(token)
                result.remaining.append(token)
                index += 1
                continue

            raw: Any = inline_value
            if descriptor.takes_value and raw is None:
                if index + 1 >= len(tokens):
                    raise OptionError(f"Missing argument for {token}")
                raw = tokens[index + 1]
                index += 2
            else:
                index += 1

            value = descriptor.coerce(raw)
            key = normalize_option_name(descriptor.name)
            if descriptor.arity == OptionArity.STRING_ARRAY and key in result.values:
                result.values[key] = result.values[key] + value
            else:
                result.values[key] = value

        return result

    def _lookup(self, token: str) -> tuple[Optional[OptionDescriptor], Optional[str]]:
        if token.startswith("--") and len(token) > 2:
            name, sep, value = token[2:].partition("=")
            if name not in self.registry:
                return None, None
            return self.registry.get(name), (value if sep else None)

        if token.startswith("-") and len(token) > 1 and not token.startswith("--"):
            short = token[1:2]
            descriptor = self.registry.get_short(short)
            if descriptor is None:
                return None, None
            rest = token[2:]
            return descriptor, (rest if rest else None)

        return None, None
