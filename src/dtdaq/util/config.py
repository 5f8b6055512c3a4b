"""Device connection settings loaded from INI files.

Each instrument is a section; keys not given fall back to the defaults in
`dtdaq.util.defaults`:

[lab_daq]
host = 192.168.1.40
port = 5025
timeout = 1.0
password = admin

Search order:
1. An explicit path passed to `load_device_config`
2. ~/.dtdaq/devices.ini
"""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from .defaults import DEFAULT_HOST_ADDR, DEFAULT_PORT, DEFAULT_TIMEOUT

USER_CONFIG_PATH = Path.home() / ".dtdaq" / "devices.ini"


@dataclass
class DeviceConfig:
    """Connection settings for one DT8824.

    Attributes
    ----------
    name : str
        Section name the settings were loaded from
    host : str
        Host name or IP address of the instrument
    port : int
        TCP port of the SCPI socket
    timeout : float
        Per-operation I/O timeout in seconds
    password : str, optional
        Password for enabling protected commands
    """

    name: str
    host: str = DEFAULT_HOST_ADDR
    port: int = DEFAULT_PORT
    timeout: float = DEFAULT_TIMEOUT
    password: Optional[str] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        validators = {
            "host": (bool(self.host), "Host must not be empty"),
            "port": (0 < self.port < 65536, "Port must be between 1 and 65535"),
            "timeout": (self.timeout > 0, "Timeout must be positive"),
        }
        for param, (valid, message) in validators.items():
            if not valid:
                raise ValueError(f"{message} (got {getattr(self, param)})")


def _read_config(path: Optional[Union[str, Path]]) -> ConfigParser:
    config = ConfigParser()
    paths = [USER_CONFIG_PATH]
    if path is not None:
        paths.insert(0, Path(path))
    for p in reversed(paths):
        # later reads override earlier ones, so the explicit path wins
        if p.exists():
            config.read(p)
            logger.debug("Read device config from {}", p)
    return config


def load_device_config(
    name: str, path: Optional[Union[str, Path]] = None
) -> DeviceConfig:
    """Load connection settings for the named device.

    Parameters
    ----------
    name : str
        Section name in the INI file
    path : str or Path, optional
        Explicit INI file, takes precedence over ~/.dtdaq/devices.ini

    Returns
    -------
    DeviceConfig
        Validated connection settings

    Raises
    ------
    ValueError
        If no section with that name exists, or a value is invalid
    """
    config = _read_config(path)
    if not config.has_section(name):
        raise ValueError(f"Device configuration '{name}' not found")

    section = config[name]
    return DeviceConfig(
        name=name,
        host=section.get("host", DEFAULT_HOST_ADDR),
        port=section.getint("port", DEFAULT_PORT),
        timeout=section.getfloat("timeout", DEFAULT_TIMEOUT),
        password=section.get("password", None),
    )


def list_device_configs(path: Optional[Union[str, Path]] = None) -> list[str]:
    """Names of all device sections available."""
    return _read_config(path).sections()
