"""Bridge settings from defaults, an INI file and command-line overrides.

Settings are resolved in three layers, later layers winning:

1. Package defaults (`uhdbridge.util.defaults`)
2. `~/.uhdbridge/bridge.ini`, section `[bridge]` (or a file given with --config)
3. Command-line options

The INI file format:

[bridge]
device = addr=192.168.10.2
host = 0.0.0.0
scpi_port = 5025
waveform_port = 5026
capture_timeout = 3.0
poll_interval = 0.001
log_level = INFO

Every key is optional.
"""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from mashumaro import DataClassDictMixin

from .defaults import (
    CONFIG_DIR,
    CONFIG_FILE_NAME,
    DEFAULT_CAPTURE_TIMEOUT,
    DEFAULT_HOST_ADDR,
    DEFAULT_LOGLEVEL,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SCPI_PORT,
    DEFAULT_WAVEFORM_PORT,
)

SECTION = "bridge"


@dataclass(kw_only=True)
class BridgeSettings(DataClassDictMixin):
    """Resolved server settings.

    Attributes
    ----------
    device : str
        Capture source string: "mock[,key=value...]" or UHD device args
    host : str
        Address both listeners bind to
    scpi_port : int
        Control plane port
    waveform_port : int
        Data plane port
    capture_timeout : float
        Timeout of one receive call, in seconds
    poll_interval : float
        Longest the streaming worker waits before re-checking its flags
    log_level : str
        Loguru level name
    """

    device: str = ""
    host: str = DEFAULT_HOST_ADDR
    scpi_port: int = DEFAULT_SCPI_PORT
    waveform_port: int = DEFAULT_WAVEFORM_PORT
    capture_timeout: float = DEFAULT_CAPTURE_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    log_level: str = DEFAULT_LOGLEVEL

    def with_overrides(self, **overrides: Any) -> "BridgeSettings":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def default_config_path() -> Path:
    return CONFIG_DIR / CONFIG_FILE_NAME


def _read_section(config: ConfigParser) -> dict[str, Any]:
    section = config[SECTION]
    values: dict[str, Any] = {}
    for key in ("device", "host", "log_level"):
        if key in section:
            values[key] = section.get(key)
    for key in ("scpi_port", "waveform_port"):
        if key in section:
            values[key] = section.getint(key)
    for key in ("capture_timeout", "poll_interval"):
        if key in section:
            values[key] = section.getfloat(key)

    unknown = set(section.keys()) - set(BridgeSettings.__dataclass_fields__)
    if unknown:
        logger.warning("Ignoring unknown bridge settings: {}", sorted(unknown))
    return values


def load_settings(config_path: Optional[Path | str] = None) -> BridgeSettings:
    """Load settings from an INI file on top of the package defaults.

    Parameters
    ----------
    config_path : Path | str, optional
        File to read. Defaults to ~/.uhdbridge/bridge.ini. A missing default
        file is not an error; a missing explicit file is.

    Returns
    -------
    BridgeSettings
        Settings with file values applied

    Raises
    ------
    FileNotFoundError
        If an explicit config_path does not exist
    ValueError
        If a numeric setting cannot be parsed
    """
    explicit = config_path is not None
    path = Path(config_path) if explicit else default_config_path()

    if not path.exists():
        if explicit:
            raise FileNotFoundError(f"Bridge config file not found: {path}")
        logger.debug("No bridge config at {}, using defaults", path)
        return BridgeSettings()

    config = ConfigParser()
    config.read(path)
    if SECTION not in config:
        logger.warning("Bridge config {} has no [{}] section", path, SECTION)
        return BridgeSettings()

    values = _read_section(config)
    logger.debug("Loaded bridge settings from {}: {}", path, values)
    return BridgeSettings.from_dict(values)


def create_default_config_file(file_path: Optional[Path] = None) -> Path:
    """Write a commented default config file, keeping existing values.

    Returns
    -------
    Path
        The file written
    """
    file_path = Path(file_path) if file_path is not None else default_config_path()
    file_path.parent.mkdir(parents=True, exist_ok=True)

    defaults = BridgeSettings()
    config = ConfigParser()
    config.read_dict(
        {
            "DEFAULT": {
                "# uhdbridge settings": "",
                "# every key is optional, command-line options win": "",
            },
            SECTION: {
                key: str(value) for key, value in defaults.to_dict().items()
            },
        }
    )

    if file_path.exists():
        existing = ConfigParser()
        existing.read(file_path)
        if SECTION in existing:
            for key, value in existing[SECTION].items():
                logger.debug("Preserving existing setting {} = {}", key, value)
                config[SECTION][key] = value

    logger.debug("Writing bridge config to {}", file_path)
    with file_path.open("w") as f:
        config.write(f)
    return file_path
