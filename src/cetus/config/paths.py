import os
import shutil
from pathlib import Path
from typing import Optional

from cetus.utils.diagnostics import ConfigError

DEFAULT_PLUGIN_SUBDIR = os.path.join("lib", "cetus", "plugins")


def resolve_path(base_dir: Optional[str], candidate: Optional[str]) -> Optional[str]:
    """
    Make ``candidate`` absolute by joining it onto ``base_dir``.

    Empty and already-absolute values come back unchanged.
    """
    if not candidate:
        return candidate
    if os.path.isabs(candidate) or not base_dir:
        return candidate
    return os.path.join(base_dir, candidate)


def init_basedir(prog_name: Optional[str], base_dir: Optional[str]) -> str:
    """
    Return the configured base directory, or derive it from the executable.

    ``<prefix>/bin/cetus`` yields ``<prefix>``.
    """
    if base_dir:
        if not os.path.isabs(base_dir):
            raise ConfigError(f"--basedir option must be an absolute path, but was {base_dir}")
        return base_dir

    if not prog_name:
        raise ConfigError("could not derive the base directory: program name is unknown")

    executable = prog_name
    if os.sep not in executable:
        executable = shutil.which(executable) or executable

    real_path = Path(os.path.realpath(executable))
    return str(real_path.parent.parent)


def init_plugin_dir(plugin_dir: Optional[str], base_dir: str) -> str:
    if plugin_dir:
        return plugin_dir
    return os.path.join(base_dir, DEFAULT_PLUGIN_SUBDIR)
