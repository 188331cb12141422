from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol
from urllib.parse import unquote, urlparse

from cetus.config.keyfile import KEYFILE_GROUP, Keyfile, load_keyfile
from cetus.utils.diagnostics import KeyfileError, RemoteConfigError


class ConfigSource(Protocol):
    """A configuration manager handed to plugins and, for options, to the resolver."""

    def describe(self) -> str: ...

    def load_options(self, group: str = KEYFILE_GROUP) -> Dict[str, str]: ...

    def read_object(self, name: str) -> Optional[Dict[str, Any]]: ...


class FileConfigSource:
    """``file://`` source: a keyfile, or a directory holding one."""

    def __init__(self, url: str, path: Path, prog_name: str = "cetus") -> None:
        self.url = url
        self.path = path
        self.prog_name = prog_name
        self._keyfile: Optional[Keyfile] = None

    def describe(self) -> str:
        return self.url

    def _keyfile_path(self) -> Path:
        if not self.path.is_dir():
            return self.path
        for name in (f"{Path(self.prog_name).stem}.conf", "cetus.conf", "cetus.yaml"):
            candidate = self.path / name
            if candidate.is_file():
                return candidate
        raise RemoteConfigError(f"remote config dir '{self.path}' holds no keyfile")

    def load_options(self, group: str = KEYFILE_GROUP) -> Dict[str, str]:
        if self._keyfile is None:
            try:
                self._keyfile = load_keyfile(self._keyfile_path())
            except KeyfileError as exc:
                raise RemoteConfigError(f"remote config '{self.url}' unreadable: {exc.message}") from exc
        return dict(self._keyfile.items(group))

    def read_object(self, name: str) -> Optional[Dict[str, Any]]:
        base = self.path if self.path.is_dir() else self.path.parent
        return _read_json_object(base / f"{name}.json")


class LocalDirectoryConfig:
    """
    Config directory discovery used when no remote URL is configured.
    Objects are JSON files named ``<conf-dir>/<name>.json``.
    """

    def __init__(self, conf_dir: Path, default_file: Optional[str] = None) -> None:
        self.conf_dir = conf_dir
        self.default_file = default_file

    def describe(self) -> str:
        return str(self.conf_dir)

    def load_options(self, group: str = KEYFILE_GROUP) -> Dict[str, str]:
        # the keyfile was already applied by the resolver
        return {}

    def read_object(self, name: str) -> Optional[Dict[str, Any]]:
        return _read_json_object(self.conf_dir / f"{name}.json")


def _read_json_object(path: Path) -> Optional[Dict[str, Any]]:
    if not path.exists():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise RemoteConfigError(f"cannot read config object '{path}': {exc}") from exc
    if not isinstance(payload, dict):
        raise RemoteConfigError(f"config object '{path}' must be a JSON object")
    return payload


SourceFactory = Callable[[str, str], ConfigSource]

_SCHEMES: Dict[str, SourceFactory] = {}


def register_config_scheme(scheme: str, factory: SourceFactory) -> None:
    """Make ``scheme://`` URLs resolvable by ``config_from_url``."""
    _SCHEMES[scheme.lower()] = factory


def _file_source(url: str, prog_name: str) -> ConfigSource:
    parsed = urlparse(url)
    raw_path = unquote(parsed.path or "")
    if parsed.netloc and parsed.netloc != "localhost":
        raw_path = f"/{parsed.netloc}{raw_path}"
    if not raw_path:
        raise RemoteConfigError(f"remote config url '{url}' names no path")
    path = Path(raw_path)
    if not path.exists():
        raise RemoteConfigError(f"remote config '{url}' does not exist")
    return FileConfigSource(url, path, prog_name=prog_name)


register_config_scheme("file", _file_source)


def config_from_url(url: str, prog_name: str = "cetus") -> ConfigSource:
    """Resolve a remote configuration URL by its scheme."""
    scheme = urlparse(url).scheme.lower()
    if not scheme:
        raise RemoteConfigError(f"remote config url '{url}' has no scheme")
    factory = _SCHEMES.get(scheme)
    if factory is None:
        raise RemoteConfigError(f"remote config scheme '{scheme}' is not supported")
    return factory(url, prog_name)
