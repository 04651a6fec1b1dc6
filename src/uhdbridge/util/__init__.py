# -*- coding: utf-8 -*-
"""
Utility functions and constants for the bridge.

- Logging configuration and management
- Settings resolution (defaults, INI file, command line)

See Also
--------
uhdbridge.util.logging : Logging configuration
uhdbridge.util.config : Settings file handling
"""

from .config import (
    BridgeSettings,
    create_default_config_file,
    default_config_path,
    load_settings,
)
from .defaults import (
    DEFAULT_ACCEPT_TIMEOUT,
    DEFAULT_CAPTURE_TIMEOUT,
    DEFAULT_HOST_ADDR,
    DEFAULT_JOIN_TIMEOUT,
    DEFAULT_LOGLEVEL,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SCPI_PORT,
    DEFAULT_WAVEFORM_PORT,
    SINGLE_LINE_ERR_LOG,
)
from .logging import (
    clear_log,
    format_error_response,
    log_default_path_server,
    resolve_log_level,
    shutdown_server_log,
    start_server_log,
)

__all__ = [
    "BridgeSettings",
    "create_default_config_file",
    "default_config_path",
    "load_settings",
    "DEFAULT_ACCEPT_TIMEOUT",
    "DEFAULT_CAPTURE_TIMEOUT",
    "DEFAULT_HOST_ADDR",
    "DEFAULT_JOIN_TIMEOUT",
    "DEFAULT_LOGLEVEL",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_SCPI_PORT",
    "DEFAULT_WAVEFORM_PORT",
    "SINGLE_LINE_ERR_LOG",
    "clear_log",
    "format_error_response",
    "log_default_path_server",
    "resolve_log_level",
    "shutdown_server_log",
    "start_server_log",
]
