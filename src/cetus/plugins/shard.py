from typing import List, Optional

from cetus.config.options import OptionArity, OptionDescriptor
from cetus.plugins.base import SHARDING_MODE, CetusPlugin
from cetus.plugins.proxy import ProxyPlugin


class ShardPlugin(ProxyPlugin):
    """Sharding front; shares the proxy options and adds a table layout."""

    name = "shard"
    mode: Optional[str] = SHARDING_MODE

    def __init__(self) -> None:
        super().__init__()
        self.sharding_layout: dict = {}
        self.allow_cross_shard_join = False

    def get_options(self) -> List[OptionDescriptor]:
        return super().get_options() + [
            OptionDescriptor(name="allow-cross-shard-join", arity=OptionArity.NONE, target=self,
                             dest="allow_cross_shard_join", help="Allow joins that span shards"),
        ]

    def init(self, chassis, config) -> None:
        super().init(chassis, config)
        if config is not None:
            self.sharding_layout = config.read_object("sharding") or {}


def plugin_init() -> CetusPlugin:
    return ShardPlugin()
