# -*- coding: utf-8 -*-

from pathlib import Path

DEFAULT_HOST_ADDR = "0.0.0.0"
DEFAULT_SCPI_PORT = 5025
DEFAULT_WAVEFORM_PORT = 5026
DEFAULT_CAPTURE_TIMEOUT = 3.0  # seconds, per receive call
DEFAULT_POLL_INTERVAL = 0.001  # seconds, max wait between quit/arm checks
DEFAULT_ACCEPT_TIMEOUT = 0.1  # seconds, data listener re-checks quit
DEFAULT_JOIN_TIMEOUT = 10.0  # seconds, worker join on session teardown
DEFAULT_LOGLEVEL = "INFO"
SINGLE_LINE_ERR_LOG = False  # reformat tracebacks into a single line for err replies

CONFIG_DIR = Path.home() / ".uhdbridge"
CONFIG_FILE_NAME = "bridge.ini"
