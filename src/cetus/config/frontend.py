from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from cetus.config.options import OptionArity, OptionDescriptor

MAX_QUERY_TIME = 1000  # ms
MAX_ALLOWED_PACKET_FLOOR = 1024
MAX_ALLOWED_PACKET_CEIL = 1024 * 1024 * 1024
MAX_ALLOWED_PACKET_DEFAULT = 32 * 1024 * 1024

DEFAULT_PLUGIN = "proxy"
DEFAULT_CONF_DIR = "conf"
DEFAULT_XA_LOG = "logs/xa.log"


class FrontendConfig(BaseModel):
    """
    Mutable option slots filled by the resolver.

    Only the bootstrap writes to this record; the engine receives a frozen
    ``ServiceSettings`` built from it.
    """
    model_config = ConfigDict(validate_assignment=False)

    print_version: bool = False
    verbose_shutdown: bool = False

    daemon_mode: bool = False
    set_client_found_rows: bool = False
    default_pool_size: int = 100
    max_pool_size: int = 0
    merged_output_size: int = 8192
    max_header_size: int = 65536
    max_resp_len: int = 10 * 1024 * 1024
    master_preferred: bool = False
    worker_id: int = 0
    disable_threads: bool = False
    is_tcp_stream_enabled: bool = False
    is_back_compressed: bool = False
    is_client_compress_support: bool = False
    check_slave_delay: bool = False
    is_reduce_conns: bool = False
    is_reset_conn_enabled: bool = False
    long_query_time: int = MAX_QUERY_TIME
    xa_log_detailed: bool = False
    max_allowed_packet: int = MAX_ALLOWED_PACKET_DEFAULT
    default_query_cache_timeout: int = 100
    query_cache_enabled: bool = False
    disable_dns_cache: bool = False
    slave_delay_down_threshold_sec: float = 60.0
    slave_delay_recover_threshold_sec: float = 0.0

    invoke_dbg_on_crash: bool = True
    auto_restart: bool = False
    max_files_number: int = 0

    user: Optional[str] = None
    base_dir: Optional[str] = None
    conf_dir: Optional[str] = None
    default_file: Optional[str] = None
    pid_file: Optional[str] = None
    plugin_dir: Optional[str] = None
    plugin_names: Optional[List[str]] = None

    log_level: Optional[str] = None
    log_filename: Optional[str] = None
    log_xa_filename: Optional[str] = None
    default_username: Optional[str] = None
    default_charset: Optional[str] = None
    default_db: Optional[str] = None

    remote_config_url: Optional[str] = None


def base_option_descriptors(frontend: FrontendConfig) -> List[OptionDescriptor]:
    """Options understood by the lenient first pass."""
    return [
        OptionDescriptor(
            name="version", short_name="V", arity=OptionArity.NONE,
            target=frontend, dest="print_version", help="Show version",
        ),
        OptionDescriptor(
            name="defaults-file", arity=OptionArity.STRING,
            target=frontend, dest="default_file",
            help="configuration file", arg_description="<file>",
        ),
    ]


# (name, arity, dest, help, arg_description)
_CORE_OPTIONS = [
    ("verbose-shutdown", OptionArity.NONE, "verbose_shutdown", "Always log the exit code when shutting down", None),
    ("daemon", OptionArity.NONE, "daemon_mode", "Start in daemon-mode", None),
    ("user", OptionArity.STRING, "user", "Run cetus as user", "<user>"),
    ("basedir", OptionArity.STRING, "base_dir", "Base directory to prepend to relative paths in the config", "<absolute path>"),
    ("conf-dir", OptionArity.STRING, "conf_dir", "Configuration directory", "<absolute path>"),
    ("pid-file", OptionArity.STRING, "pid_file", "PID file in case we are started as daemon", "<file>"),
    ("plugin-dir", OptionArity.STRING, "plugin_dir", "Path to the plugins", "<path>"),
    ("plugins", OptionArity.STRING_ARRAY, "plugin_names", "Plugins to load", "<name>"),
    ("log-level", OptionArity.STRING, "log_level", "Log all messages of level ... or higher", "(error|warning|info|message|debug)"),
    ("log-file", OptionArity.STRING, "log_filename", "Log all messages in a file", "<file>"),
    ("log-xa-file", OptionArity.STRING, "log_xa_filename", "Log all xa messages in a file", "<file>"),
    ("log-backtrace-on-crash", OptionArity.NONE, "invoke_dbg_on_crash", "Try to invoke debugger on crash", None),
    ("keepalive", OptionArity.NONE, "auto_restart", "Try to restart the proxy if it crashed", None),
    ("max-open-files", OptionArity.INT, "max_files_number", "Maximum number of open files (ulimit -n)", None),
    ("default-charset", OptionArity.STRING, "default_charset", "Set the default character set for backends", "<string>"),
    ("default-username", OptionArity.STRING, "default_username", "Set the default username for visiting backends", "<string>"),
    ("default-db", OptionArity.STRING, "default_db", "Set the default db for visiting backends", "<string>"),
    ("default-pool-size", OptionArity.INT, "default_pool_size", "Set the default pool size for visiting backends", "<integer>"),
    ("max-pool-size", OptionArity.INT, "max_pool_size", "Set the max pool size for visiting backends", "<integer>"),
    ("max-resp-size", OptionArity.INT, "max_resp_len", "Set the max response size for one backend", "<integer>"),
    ("merged-output-size", OptionArity.INT, "merged_output_size", "set the merged output size for tcp streaming", "<integer>"),
    ("max-header-size", OptionArity.INT, "max_header_size", "set the max header size for tcp streaming", "<integer>"),
    ("worker-id", OptionArity.INT, "worker_id", "Set the worker id and the maximum value allowed is 63 and the min value is 1", "<integer>"),
    ("disable-threads", OptionArity.NONE, "disable_threads", "Disable all threads creation", None),
    ("enable-back-compress", OptionArity.NONE, "is_back_compressed", "enable compression for backend interactions", None),
    ("enable-client-compress", OptionArity.NONE, "is_client_compress_support", "enable compression for client interactions", None),
    ("check-slave-delay", OptionArity.NONE, "check_slave_delay", "Check ro backends with heartbeat", None),
    ("slave-delay-down", OptionArity.DOUBLE, "slave_delay_down_threshold_sec", "Slave will be set down after reach this delay seconds", "<double>"),
    ("slave-delay-recover", OptionArity.DOUBLE, "slave_delay_recover_threshold_sec", "Slave will recover after below this delay seconds", "<double>"),
    ("default-query-cache-timeout", OptionArity.INT, "default_query_cache_timeout", "timeout when proxy connect to backends", "<integer>"),
    ("long-query-time", OptionArity.INT, "long_query_time", "Long query time in ms", "<integer>"),
    ("enable-client-found-rows", OptionArity.NONE, "set_client_found_rows", "Set client found rows flag", None),
    ("reduce-connections", OptionArity.NONE, "is_reduce_conns", "Reduce connections when idle connection num is too high", None),
    ("enable-reset-connection", OptionArity.NONE, "is_reset_conn_enabled", "Restart connections when feature changed", None),
    ("enable-query-cache", OptionArity.NONE, "query_cache_enabled", "Enable the query cache", None),
    ("enable-tcp-stream", OptionArity.NONE, "is_tcp_stream_enabled", "Enable tcp streaming of results", None),
    ("log-xa-in-detail", OptionArity.NONE, "xa_log_detailed", "log xa in detail", None),
    ("disable-dns-cache", OptionArity.NONE, "disable_dns_cache", "Every new connection to backends will resolve domain name", None),
    ("master-preferred", OptionArity.NONE, "master_preferred", "Access to master preferentially", None),
    ("max-allowed-packet", OptionArity.INT, "max_allowed_packet", "Max allowed packet as in mysql", "<int>"),
    ("remote-conf-url", OptionArity.STRING, "remote_config_url", "Remote config url, file:///path", "<string>"),
]


def core_option_descriptors(frontend: FrontendConfig) -> List[OptionDescriptor]:
    """Every option the frontend itself owns, in help-text order."""
    return [
        OptionDescriptor(
            name=name,
            arity=arity,
            target=frontend,
            dest=dest,
            help=help_text,
            arg_description=arg_description,
        )
        for name, arity, dest, help_text, arg_description in _CORE_OPTIONS
    ]
