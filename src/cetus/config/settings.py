from __future__ import annotations

import logging
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict

from cetus.config.frontend import (
    MAX_ALLOWED_PACKET_CEIL,
    MAX_ALLOWED_PACKET_FLOOR,
    MAX_QUERY_TIME,
    FrontendConfig,
)
from cetus.utils.diagnostics import ConfigError

logger = logging.getLogger(__name__)

WORKER_ID_MASK = 0x3F


def derive_max_pool_size(default_pool_size: int, max_pool_size: int) -> int:
    if max_pool_size >= default_pool_size:
        return max_pool_size
    return default_pool_size * 2


def derive_slave_delay_recover(down: float, recover: float) -> Tuple[float, bool]:
    """Return the recover threshold and whether it had to be clamped to ``down``."""
    if recover > 0:
        if recover > down:
            return down, True
        return recover, False
    return down / 2, False


def mask_worker_id(worker_id: int) -> int:
    if worker_id > 0:
        return worker_id & WORKER_ID_MASK
    return 0


def clamp_max_allowed_packet(value: int) -> int:
    return min(max(value, MAX_ALLOWED_PACKET_FLOOR), MAX_ALLOWED_PACKET_CEIL)


class ServiceSettings(BaseModel):
    """
    Read-only snapshot of the resolved configuration handed to the engine.
    """
    model_config = ConfigDict(frozen=True)

    base_dir: str
    conf_dir: str
    plugin_dir: str
    pid_file: Optional[str] = None
    log_file: Optional[str] = None
    xa_log_file: Optional[str] = None
    user: Optional[str] = None

    default_username: str
    default_charset: Optional[str] = None
    default_db: Optional[str] = None
    plugin_names: Tuple[str, ...] = ()
    remote_config_url: Optional[str] = None

    daemon_mode: bool = False
    auto_restart: bool = False
    verbose_shutdown: bool = False
    disable_threads: bool = False
    back_compress_enabled: bool = False
    client_compress_enabled: bool = False
    query_cache_enabled: bool = False
    tcp_stream_enabled: bool = False
    disable_dns_cache: bool = False
    master_preferred: bool = False
    reset_connection_enabled: bool = False
    client_found_rows: bool = False
    reduce_connections: bool = False
    check_slave_delay: bool = False
    xa_log_detailed: bool = False

    default_pool_size: int
    max_pool_size: int
    max_resp_len: int
    merged_output_size: int
    compressed_merged_output_size: int
    max_header_size: int
    worker_id: int = 0
    max_allowed_packet: int
    long_query_time: int
    default_query_cache_timeout: int
    slave_delay_down_threshold_sec: float
    slave_delay_recover_threshold_sec: float
    max_open_files: int = 0


def finalize_settings(frontend: FrontendConfig) -> ServiceSettings:
    """
    Apply derived defaults and clamps once every source has been merged.

    Raises ConfigError when no default username is configured.
    """
    if not frontend.default_username:
        raise ConfigError("proxy needs default username")

    logger.info("set default pool size:%d", frontend.default_pool_size)
    max_pool_size = derive_max_pool_size(frontend.default_pool_size, frontend.max_pool_size)
    logger.info("set max pool size:%d", max_pool_size)
    logger.info("set max resp len:%d", frontend.max_resp_len)
    logger.info("set merged output size:%d", frontend.merged_output_size)
    logger.info("set max header size:%d", frontend.max_header_size)
    logger.info("set client_found_rows %s", "true" if frontend.set_client_found_rows else "false")
    logger.info("xa_log_detailed %s", "true" if frontend.xa_log_detailed else "false")
    if frontend.is_tcp_stream_enabled:
        logger.info("tcp stream enabled")

    down = frontend.slave_delay_down_threshold_sec
    recover, clamped = derive_slave_delay_recover(down, frontend.slave_delay_recover_threshold_sec)
    if clamped:
        logger.warning("`slave-delay-recover` should be lower than `slave-delay-down`.")
        logger.warning("Set slave-delay-recover=%.3f", down)

    return ServiceSettings(
        base_dir=frontend.base_dir or "",
        conf_dir=frontend.conf_dir or "",
        plugin_dir=frontend.plugin_dir or "",
        pid_file=frontend.pid_file,
        log_file=frontend.log_filename,
        xa_log_file=frontend.log_xa_filename,
        user=frontend.user,
        default_username=frontend.default_username,
        default_charset=frontend.default_charset,
        default_db=frontend.default_db,
        plugin_names=tuple(frontend.plugin_names or ()),
        remote_config_url=frontend.remote_config_url,
        daemon_mode=frontend.daemon_mode,
        auto_restart=frontend.auto_restart,
        verbose_shutdown=frontend.verbose_shutdown,
        disable_threads=frontend.disable_threads,
        back_compress_enabled=frontend.is_back_compressed,
        client_compress_enabled=frontend.is_client_compress_support,
        query_cache_enabled=frontend.query_cache_enabled,
        tcp_stream_enabled=frontend.is_tcp_stream_enabled,
        disable_dns_cache=frontend.disable_dns_cache,
        master_preferred=frontend.master_preferred,
        reset_connection_enabled=frontend.is_reset_conn_enabled,
        client_found_rows=frontend.set_client_found_rows,
        reduce_connections=frontend.is_reduce_conns,
        check_slave_delay=frontend.check_slave_delay,
        xa_log_detailed=frontend.xa_log_detailed,
        default_pool_size=frontend.default_pool_size,
        max_pool_size=max_pool_size,
        max_resp_len=frontend.max_resp_len,
        merged_output_size=frontend.merged_output_size,
        compressed_merged_output_size=frontend.merged_output_size * 8,
        max_header_size=frontend.max_header_size,
        worker_id=mask_worker_id(frontend.worker_id),
        max_allowed_packet=clamp_max_allowed_packet(frontend.max_allowed_packet),
        long_query_time=min(frontend.long_query_time, MAX_QUERY_TIME),
        default_query_cache_timeout=max(frontend.default_query_cache_timeout, 1),
        slave_delay_down_threshold_sec=down,
        slave_delay_recover_threshold_sec=recover,
        max_open_files=frontend.max_files_number,
    )
