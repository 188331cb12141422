"""Plugin contract, discovery and the built-in plugins."""

from cetus.plugins.base import PROXY_MODE, SHARDING_MODE, CetusPlugin
from cetus.plugins.loader import check_plugin_modes, load_plugin, load_plugins

__all__ = [
	"CetusPlugin",
	"PROXY_MODE",
	"SHARDING_MODE",
	"check_plugin_modes",
	"load_plugin",
	"load_plugins",
]
