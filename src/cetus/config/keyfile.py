import configparser
import os
import re
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import yaml

from cetus.utils.diagnostics import KeyfileError

ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]+))?\}")

KEYFILE_GROUP = "cetus"
YAML_SUFFIXES = {".yaml", ".yml"}


def interpolate_env_vars(content: str) -> str:
    """Replace ${VAR} or ${VAR:default} with environment variables."""
    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, content)


def _stringify(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_stringify(item) for item in value)
    if value is None:
        return ""
    return str(value)


class Keyfile:
    """
    Ordered key -> string mapping grouped into named sections.
    """

    def __init__(self, path: Optional[Path] = None, groups: Optional[Dict[str, Dict[str, str]]] = None):
        self.path = path
        self.groups: Dict[str, Dict[str, str]] = groups or {}

    def has_group(self, group: str) -> bool:
        return group in self.groups

    def items(self, group: str) -> Iterator[Tuple[str, str]]:
        return iter(list(self.groups.get(group, {}).items()))

    def get(self, group: str, key: str) -> Optional[str]:
        return self.groups.get(group, {}).get(key)

    def keys(self, group: str) -> List[str]:
        return list(self.groups.get(group, {}))

    def __repr__(self) -> str:
        return f"Keyfile(path={self.path!s}, groups={list(self.groups)})"


def parse_keyfile_text(content: str, yaml_format: bool = False, source: str = "<string>") -> Keyfile:
    """Parse keyfile content (INI unless ``yaml_format``) after env interpolation."""
    interpolated = interpolate_env_vars(content)

    if yaml_format:
        try:
            payload = yaml.safe_load(interpolated) or {}
        except yaml.YAMLError as exc:
            raise KeyfileError(source, str(exc)) from exc

        if not isinstance(payload, dict):
            raise KeyfileError(source, "top level must be a mapping of sections")

        groups: Dict[str, Dict[str, str]] = {}
        for group, entries in payload.items():
            if not isinstance(entries, dict):
                raise KeyfileError(source, f"section '{group}' must be a mapping")
            groups[str(group)] = {str(k): _stringify(v) for k, v in entries.items()}
        return Keyfile(groups=groups)

    parser = configparser.ConfigParser(interpolation=None, strict=True)
    parser.optionxform = str  # keep key spelling
    try:
        parser.read_string(interpolated, source=source)
    except configparser.Error as exc:
        raise KeyfileError(source, str(exc).strip()) from exc

    return Keyfile(groups={section: dict(parser.items(section)) for section in parser.sections()})


def load_keyfile(path: Path) -> Keyfile:
    """
    Load a keyfile from disk.

    Files ending in ``.yaml``/``.yml`` are read as YAML; everything else is
    read as INI. A missing or unreadable file is an error: callers only
    load files that were explicitly named or discovered.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise KeyfileError(str(path), exc.strerror or str(exc)) from exc

    keyfile = parse_keyfile_text(content, yaml_format=path.suffix.lower() in YAML_SUFFIXES, source=str(path))
    keyfile.path = path
    return keyfile


def locate_default_file(explicit: Optional[str], prog_name: Optional[str], cwd: Optional[Path] = None) -> Optional[Path]:
    """
    Pick the keyfile to read.

    Fallback order: the explicit path, else ``<prog>.conf`` in the working
    directory when it exists, else nothing.
    """
    if explicit:
        return Path(explicit)

    if not prog_name:
        return None

    stem = Path(prog_name).stem
    if not stem:
        return None

    candidate = (cwd or Path.cwd()) / f"{stem}.conf"
    if candidate.is_file():
        return candidate
    return None
