from typing import Optional


class CetusError(Exception):
    """
    Base class for every fatal condition raised while bootstrapping the service.
    """


class ConfigError(CetusError):
    """Malformed or conflicting configuration."""


class KeyfileError(ConfigError):
    """
    Raised when a keyfile cannot be read or parsed.
    """
    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"loading config from '{path}' failed: {message}")


class RemoteConfigError(ConfigError):
    """Remote configuration source could not be resolved or read."""


class OptionError(ConfigError):
    """Problems with a single option or command-line token."""


class DuplicateOptionError(OptionError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"option '{name}' is already registered")


class UnknownOptionError(OptionError):
    def __init__(self, token: str):
        self.token = token
        super().__init__(f"Unknown option {token}")


class UnknownArgumentError(OptionError):
    def __init__(self, token: str):
        self.token = token
        super().__init__(f"unknown option: {token}")


class OptionValueError(OptionError):
    """
    Raised when a value cannot be converted to the arity its option declares.
    """
    def __init__(self, name: str, value: object, expected: str):
        self.name = name
        self.value = value
        self.expected = expected
        super().__init__(f"option '{name}' expects {expected}, got '{value}'")


class PluginModeError(ConfigError):
    """Two selected plugins declare operating modes that exclude each other."""


class PluginError(CetusError):
    """
    Raised when a named plugin fails to load or initialize.
    """
    def __init__(self, plugin_name: str, message: str):
        self.plugin_name = plugin_name
        self.message = message
        super().__init__(f"plugin '{plugin_name}': {message}")


class ResourceError(CetusError):
    """
    Raised when an operating-system resource cannot be acquired.
    """
    def __init__(self, message: str, os_error: Optional[OSError] = None):
        self.message = message
        self.os_error = os_error
        detail = ""
        if os_error is not None:
            detail = f": {os_error.strerror or os_error} ({os_error.errno})"
        super().__init__(f"{message}{detail}")


class SupervisorError(CetusError):
    """fork/wait failures inside the keepalive supervisor."""
