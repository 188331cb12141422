from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from cetus.config.options import OptionDescriptor
from cetus.runtime.monitor import MonitorTask

if TYPE_CHECKING:
    from cetus.chassis import Chassis
    from cetus.config.remote import ConfigSource
    from cetus.config.settings import ServiceSettings

PROXY_MODE = "proxy"
SHARDING_MODE = "sharding"


class CetusPlugin:
    """
    Load/init contract every plugin module fulfils through ``plugin_init()``.

    Lifecycle: ``get_options`` (registered before the strict parse pass),
    ``init`` (after plugin options were applied), ``apply_config`` (right
    before the mainloop), ``destroy`` (shutdown funnel).
    """

    name: str = ""
    version: str = "0.0.0"
    mode: Optional[str] = None

    def get_options(self) -> List[OptionDescriptor]:
        return []

    def init(self, chassis: "Chassis", config: Optional["ConfigSource"]) -> None:
        return None

    def apply_config(self, chassis: "Chassis") -> None:
        return None

    def monitor_tasks(self, settings: "ServiceSettings") -> List[MonitorTask]:
        return []

    def destroy(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, version={self.version!r})"
