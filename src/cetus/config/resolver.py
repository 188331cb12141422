from __future__ import annotations

import logging
from enum import IntEnum
from pathlib import Path
from typing import Collection, Dict, List, Mapping, Optional, Sequence

from cetus.config.frontend import FrontendConfig, base_option_descriptors
from cetus.config.keyfile import KEYFILE_GROUP, Keyfile, load_keyfile, locate_default_file
from cetus.config.options import (
    OptionDescriptor,
    OptionParser,
    OptionRegistry,
    ParseMode,
    ParseResult,
    normalize_option_name,
)
from cetus.config.remote import ConfigSource, config_from_url
from cetus.utils.diagnostics import UnknownArgumentError

logger = logging.getLogger(__name__)


class OptionSource(IntEnum):
    """Where a slot value came from; higher ranks win."""

    DEFAULT = 0
    KEYFILE = 1
    REMOTE = 2
    CMDLINE = 3


class ConfigResolver:
    """
    Merges built-in defaults, keyfile/remote values and the command line
    into the frontend slots.

    ``argv`` shrinks as passes claim tokens; whatever is left after the
    strict pass must be the program name alone.
    """

    def __init__(
        self,
        frontend: FrontendConfig,
        registry: OptionRegistry,
        group: str = KEYFILE_GROUP,
    ) -> None:
        self.frontend = frontend
        self.registry = registry
        self.group = group
        self.argv: List[str] = []
        self.prog_name: Optional[str] = None
        self.keyfile: Optional[Keyfile] = None
        self.remote: Optional[ConfigSource] = None
        self._remote_options: Optional[Dict[str, str]] = None
        self._origins: Dict[str, OptionSource] = {}

    def parse_base_options(self, argv: Sequence[str]) -> ParseResult:
        """Pass 1: pick up --version and --defaults-file, leave everything else."""
        base_registry = OptionRegistry()
        base_registry.register_all(base_option_descriptors(self.frontend))
        result = OptionParser(base_registry, mode=ParseMode.IGNORE_UNKNOWN).parse(argv)
        self._apply_parsed(base_registry, result.values)
        self.prog_name = argv[0] if argv else None
        self.argv = result.remaining
        return result

    def load_default_file(self, cwd: Optional[Path] = None) -> Optional[Keyfile]:
        path = locate_default_file(self.frontend.default_file, self.prog_name, cwd=cwd)
        if path is None:
            return None
        self.keyfile = load_keyfile(path)
        self.frontend.default_file = str(path)
        logger.debug("read keyfile %s", path)
        return self.keyfile

    def register_options(self, descriptors: Sequence[OptionDescriptor]) -> List[str]:
        self.registry.register_all(descriptors)
        return [normalize_option_name(d.name) for d in descriptors]

    def apply_cmdline(self, mode: ParseMode = ParseMode.IGNORE_UNKNOWN) -> ParseResult:
        """
        Parse the remaining argv against the registry.

        In ``REJECT_UNKNOWN`` mode any leftover positional argument is an error.
        """
        parser = OptionParser(
            self.registry,
            mode=mode,
            help_enabled=mode == ParseMode.REJECT_UNKNOWN,
        )
        result = parser.parse(self.argv)
        self._apply_parsed(self.registry, result.values)
        self.argv = result.remaining

        if mode == ParseMode.REJECT_UNKNOWN and not result.help_requested and len(result.remaining) > 1:
            raise UnknownArgumentError(result.remaining[1])
        return result

    def apply_keyfile(self, only: Optional[Collection[str]] = None) -> int:
        if self.keyfile is None:
            return 0
        return self.apply_mapping(dict(self.keyfile.items(self.group)), OptionSource.KEYFILE, only=only)

    def open_remote(self) -> Optional[ConfigSource]:
        url = self.frontend.remote_config_url
        if not url:
            return None
        if self.remote is None:
            self.remote = config_from_url(url, prog_name=self.prog_name or "cetus")
            logger.info("using remote config %s", self.remote.describe())
        return self.remote

    def apply_remote(self, only: Optional[Collection[str]] = None) -> int:
        source = self.open_remote()
        if source is None:
            return 0
        if self._remote_options is None:
            self._remote_options = source.load_options(self.group)
        return self.apply_mapping(self._remote_options, OptionSource.REMOTE, only=only)

    def apply_sources(self, only: Optional[Collection[str]] = None) -> None:
        """
        Apply keyfile, lenient command line and remote values. The command
        line goes before the remote source since it may name the remote URL;
        ranks decide which value sticks.
        """
        self.apply_keyfile(only=only)
        self.apply_cmdline(ParseMode.IGNORE_UNKNOWN)
        self.apply_remote(only=only)

    def apply_mapping(
        self,
        mapping: Mapping[str, str],
        source: OptionSource,
        only: Optional[Collection[str]] = None,
    ) -> int:
        """
        Apply key/value pairs to registered slots. Keys without a registered
        option are skipped.
        """
        applied = 0
        for key, raw in mapping.items():
            if key not in self.registry:
                logger.debug("ignoring unknown key '%s' from %s", key, source.name.lower())
                continue
            descriptor = self.registry.get(key)
            if only is not None and normalize_option_name(descriptor.name) not in only:
                continue
            if self._assign(descriptor, descriptor.coerce(raw), source):
                applied += 1
        return applied

    def origin_of(self, name: str) -> OptionSource:
        return self._origins.get(normalize_option_name(name), OptionSource.DEFAULT)

    def _apply_parsed(self, registry: OptionRegistry, values: Mapping[str, object]) -> None:
        for key, value in values.items():
            self._assign(registry.get(key), value, OptionSource.CMDLINE)

    def _assign(self, descriptor: OptionDescriptor, value: object, source: OptionSource) -> bool:
        key = normalize_option_name(descriptor.name)
        if self._origins.get(key, OptionSource.DEFAULT) > source:
            return False
        descriptor.assign(value)
        self._origins[key] = source
        return True
