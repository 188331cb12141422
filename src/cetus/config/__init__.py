"""Option declaration, keyfile loading and configuration resolution."""

from cetus.config.frontend import FrontendConfig
from cetus.config.options import OptionArity, OptionDescriptor, OptionParser, OptionRegistry, ParseMode
from cetus.config.resolver import ConfigResolver, OptionSource
from cetus.config.settings import ServiceSettings, finalize_settings

__all__ = [
	"ConfigResolver",
	"FrontendConfig",
	"OptionArity",
	"OptionDescriptor",
	"OptionParser",
	"OptionRegistry",
	"OptionSource",
	"ParseMode",
	"ServiceSettings",
	"finalize_settings",
]
