from __future__ import annotations

import importlib
import importlib.util
import logging
from importlib.metadata import entry_points
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, List, Optional, Sequence

from cetus.plugins.base import SHARDING_MODE, CetusPlugin
from cetus.utils.diagnostics import PluginError, PluginModeError

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "cetus.plugins"

BUILTIN_PLUGINS: Dict[str, str] = {
    "proxy": "cetus.plugins.proxy",
    "shard": "cetus.plugins.shard",
}


def _import_from_dir(name: str, plugin_dir: Optional[str]) -> Optional[ModuleType]:
    if not plugin_dir:
        return None

    path = Path(plugin_dir) / f"{name}.py"
    if not path.is_file():
        return None

    spec = importlib.util.spec_from_file_location(f"cetus_plugin_{name}", path)
    if spec is None or spec.loader is None:
        raise PluginError(name, f"cannot build an import spec for '{path}'")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise PluginError(name, f"loading '{path}' failed: {exc}") from exc
    return module


def _load_entry_point(name: str) -> Optional[Any]:
    for entry_point in entry_points(group=ENTRY_POINT_GROUP):
        if entry_point.name != name:
            continue
        try:
            return entry_point.load()
        except Exception as exc:
            raise PluginError(name, f"loading entry point '{entry_point.value}' failed: {exc}") from exc
    return None


def _import_builtin(name: str) -> Optional[ModuleType]:
    module_name = BUILTIN_PLUGINS.get(name)
    if module_name is None:
        return None
    return importlib.import_module(module_name)


def load_plugin(name: str, plugin_dir: Optional[str] = None) -> CetusPlugin:
    """
    Locate and instantiate one plugin.

    Lookup order: ``<plugin_dir>/<name>.py``, the ``cetus.plugins`` entry
    point group, then the built-in plugins.
    """
    target = _import_from_dir(name, plugin_dir)
    if target is None:
        target = _load_entry_point(name)
    if target is None:
        target = _import_builtin(name)
    if target is None:
        raise PluginError(name, f"plugin not found (plugin-dir: {plugin_dir})")

    factory = target if not isinstance(target, ModuleType) else getattr(target, "plugin_init", None)
    if not callable(factory):
        raise PluginError(name, "module does not provide plugin_init()")

    try:
        plugin = factory()
    except Exception as exc:
        raise PluginError(name, f"plugin_init() failed: {exc}") from exc

    if not isinstance(plugin, CetusPlugin):
        raise PluginError(name, f"plugin_init() returned {type(plugin).__name__}, not a CetusPlugin")

    if not plugin.name:
        plugin.name = name
    logger.debug("loaded plugin %s %s", plugin.name, plugin.version)
    return plugin


def load_plugins(names: Sequence[str], plugin_dir: Optional[str] = None) -> List[CetusPlugin]:
    seen = set()
    plugins: List[CetusPlugin] = []
    for name in names:
        if name in seen:
            raise PluginError(name, "plugin selected more than once")
        seen.add(name)
        plugins.append(load_plugin(name, plugin_dir))
    return plugins


def check_plugin_modes(plugins: Sequence[CetusPlugin]) -> Optional[str]:
    """
    Return the operating mode selected by the plugins; raise PluginModeError
    when two plugins declare different modes.
    """
    modes: Dict[str, str] = {}
    for plugin in plugins:
        if plugin.mode is None:
            continue
        modes.setdefault(plugin.mode, plugin.name)

    if SHARDING_MODE in modes:
        logger.info("set sharding mode true")

    if len(modes) > 1:
        names = " & ".join(modes.values())
        raise PluginModeError(f"{names} is mutual exclusive")

    return next(iter(modes), None)
