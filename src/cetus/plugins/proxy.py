from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional

from pydantic import BaseModel, Field

from cetus import __version__
from cetus.config.options import OptionArity, OptionDescriptor
from cetus.plugins.base import PROXY_MODE, CetusPlugin
from cetus.runtime.monitor import MonitorTask

if TYPE_CHECKING:
    from cetus.chassis import Chassis
    from cetus.config.remote import ConfigSource
    from cetus.config.settings import ServiceSettings

logger = logging.getLogger(__name__)

SLAVE_DELAY_CHECK_INTERVAL = 1.0


class ProxySettings(BaseModel):
    """Slots for the proxy plugin's own options."""

    address: str = ":4040"
    backend_addresses: List[str] = Field(default_factory=list)
    read_only_backend_addresses: List[str] = Field(default_factory=list)
    connect_timeout: float = 2.0
    read_timeout: float = 600.0
    write_timeout: float = 600.0


class ProxyPlugin(CetusPlugin):
    """Read/write splitting proxy front."""

    name = "proxy"
    version = __version__
    mode: Optional[str] = PROXY_MODE

    def __init__(self) -> None:
        self.settings = ProxySettings()
        self.users: dict = {}
        self.initialized = False
        self.destroyed = False
        self.delay_checks = 0

    def get_options(self) -> List[OptionDescriptor]:
        s = self.settings
        return [
            OptionDescriptor(name="proxy-address", arity=OptionArity.STRING, target=s, dest="address",
                             help="listening address:port of the proxy-server", arg_description="<host:port>"),
            OptionDescriptor(name="proxy-backend-addresses", arity=OptionArity.STRING_ARRAY, target=s,
                             dest="backend_addresses", help="address:port of the remote backend-servers",
                             arg_description="<host:port>"),
            OptionDescriptor(name="proxy-read-only-backend-addresses", arity=OptionArity.STRING_ARRAY, target=s,
                             dest="read_only_backend_addresses",
                             help="address:port of the remote slave-server", arg_description="<host:port>"),
            OptionDescriptor(name="proxy-connect-timeout", arity=OptionArity.DOUBLE, target=s,
                             dest="connect_timeout", help="connect timeout in seconds", arg_description="<double>"),
            OptionDescriptor(name="proxy-read-timeout", arity=OptionArity.DOUBLE, target=s,
                             dest="read_timeout", help="read timeout in seconds", arg_description="<double>"),
            OptionDescriptor(name="proxy-write-timeout", arity=OptionArity.DOUBLE, target=s,
                             dest="write_timeout", help="write timeout in seconds", arg_description="<double>"),
        ]

    def init(self, chassis: "Chassis", config: Optional["ConfigSource"]) -> None:
        if config is not None:
            self.users = config.read_object("users") or {}
        if not self.settings.backend_addresses:
            logger.warning("%s: no backend addresses configured", self.name)
        self.initialized = True

    def apply_config(self, chassis: "Chassis") -> None:
        logger.info("%s listening on %s", self.name, self.settings.address)

    def monitor_tasks(self, settings: "ServiceSettings") -> List[MonitorTask]:
        if not settings.check_slave_delay or not self.settings.read_only_backend_addresses:
            return []
        return [MonitorTask(name=f"{self.name}-slave-delay", interval_seconds=SLAVE_DELAY_CHECK_INTERVAL,
                            run=self._check_slave_delay)]

    def destroy(self) -> None:
        self.destroyed = True

    def _check_slave_delay(self) -> None:
        self.delay_checks += 1
        logger.debug("%s: checking %d read-only backend(s)", self.name,
                     len(self.settings.read_only_backend_addresses))


def plugin_init() -> CetusPlugin:
    return ProxyPlugin()
